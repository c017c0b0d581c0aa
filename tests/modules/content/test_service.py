"""
Unit tests for the content service layer.

These tests cover:
- File data decoding (plain base64 and data URLs)
- Upload validation order (type, encoding, size, cohort, folder)
- Drive failures storing nothing
"""

import base64
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fellowship.core.google import DriveItem, GooglePermissionDeniedError
from fellowship.modules.cohorts.service import CohortNotFoundError
from fellowship.modules.content.models import ContentType
from fellowship.modules.content.service import (
    CohortFolderMissingError,
    FileTooLargeError,
    FileTypeNotAllowedError,
    InvalidFileDataError,
    decode_file_data,
    is_allowed_mime_type,
    upload_content,
)
from fellowship.modules.shared import GoogleNotConnectedError, StorageUnavailableError

SERVICE = "fellowship.modules.content.service"

PDF_BYTES = b"%PDF-1.4 fellowship handbook"
PDF_DATA = base64.b64encode(PDF_BYTES).decode()


@pytest.fixture
def cohort():
    return SimpleNamespace(id="cohort-1", drive_folder_id="folder-1")


@pytest.fixture
def institution():
    return SimpleNamespace(id="inst-1", google_refresh_token="refresh-token")


async def upload(db, google, **overrides):
    kwargs = dict(
        institution_id="inst-1",
        cohort_id="cohort-1",
        title="Handbook",
        description=None,
        content_type=ContentType.DOCUMENT,
        file_name="handbook.pdf",
        mime_type="application/pdf",
        file_data=PDF_DATA,
        uploaded_by="admin-1",
    )
    kwargs.update(overrides)
    return await upload_content(db, google, **kwargs)


class TestDecodeFileData:
    """Tests for decode_file_data."""

    def test_plain_base64(self):
        assert decode_file_data(PDF_DATA) == PDF_BYTES

    def test_data_url_prefix_is_stripped(self):
        assert decode_file_data(f"data:application/pdf;base64,{PDF_DATA}") == PDF_BYTES

    def test_invalid_base64_is_rejected(self):
        with pytest.raises(InvalidFileDataError):
            decode_file_data("not base64 at all!")


class TestIsAllowedMimeType:
    """Tests for is_allowed_mime_type."""

    @pytest.mark.parametrize("mime_type", ["image/png", "video/mp4", "text/plain", "Application/PDF"])
    def test_allowed_families(self, mime_type):
        assert is_allowed_mime_type(mime_type)

    @pytest.mark.parametrize("mime_type", ["audio/mpeg", "font/woff2", "multipart/form-data"])
    def test_rejected_families(self, mime_type):
        assert not is_allowed_mime_type(mime_type)


class TestUploadContent:
    """Tests for upload_content."""

    @pytest.mark.asyncio
    async def test_disallowed_type_is_rejected_first(self, mock_db, mock_google):
        with patch(f"{SERVICE}.cohort_repository") as mock_cohorts:
            mock_cohorts.get_for_institution = AsyncMock()

            with pytest.raises(FileTypeNotAllowedError):
                await upload(mock_db, mock_google, mime_type="audio/mpeg", file_data="!!")

        mock_cohorts.get_for_institution.assert_not_called()

    @pytest.mark.asyncio
    async def test_oversized_file_is_rejected(self, mock_db, mock_google):
        with patch(
            f"{SERVICE}.settings", SimpleNamespace(max_upload_bytes=8, max_upload_mb=0)
        ):
            with pytest.raises(FileTooLargeError):
                await upload(mock_db, mock_google)

    @pytest.mark.asyncio
    async def test_cohort_of_another_institution_is_not_found(self, mock_db, mock_google):
        with patch(f"{SERVICE}.cohort_repository") as mock_cohorts:
            mock_cohorts.get_for_institution = AsyncMock(return_value=None)

            with pytest.raises(CohortNotFoundError):
                await upload(mock_db, mock_google)

    @pytest.mark.asyncio
    async def test_cohort_without_folder_is_rejected(self, mock_db, mock_google):
        with patch(f"{SERVICE}.cohort_repository") as mock_cohorts:
            mock_cohorts.get_for_institution = AsyncMock(
                return_value=SimpleNamespace(id="cohort-1", drive_folder_id=None)
            )

            with pytest.raises(CohortFolderMissingError):
                await upload(mock_db, mock_google)

    @pytest.mark.asyncio
    async def test_institution_without_google_is_not_connected(
        self, mock_db, mock_google, cohort
    ):
        with (
            patch(f"{SERVICE}.cohort_repository") as mock_cohorts,
            patch(f"{SERVICE}.InstitutionRepository") as mock_institutions,
        ):
            mock_cohorts.get_for_institution = AsyncMock(return_value=cohort)
            mock_institutions.get_by_id = AsyncMock(
                return_value=SimpleNamespace(id="inst-1", google_refresh_token=None)
            )

            with pytest.raises(GoogleNotConnectedError):
                await upload(mock_db, mock_google)

    @pytest.mark.asyncio
    async def test_drive_failure_stores_nothing(self, mock_db, mock_google, cohort, institution):
        mock_google.drive.return_value = MagicMock(
            upload_file=AsyncMock(side_effect=GooglePermissionDeniedError("scope"))
        )

        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.cohort_repository") as mock_cohorts,
            patch(f"{SERVICE}.InstitutionRepository") as mock_institutions,
        ):
            mock_repo.create = AsyncMock()
            mock_cohorts.get_for_institution = AsyncMock(return_value=cohort)
            mock_institutions.get_by_id = AsyncMock(return_value=institution)

            with pytest.raises(StorageUnavailableError):
                await upload(mock_db, mock_google)

        mock_repo.create.assert_not_called()
        mock_db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_upload_records_drive_file(self, mock_db, mock_google, cohort, institution):
        drive = MagicMock(
            upload_file=AsyncMock(
                return_value=DriveItem(
                    item_id="file-1", name="handbook.pdf", link="https://drive/file-1"
                )
            )
        )
        mock_google.drive.return_value = drive

        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.cohort_repository") as mock_cohorts,
            patch(f"{SERVICE}.InstitutionRepository") as mock_institutions,
        ):
            mock_repo.create = AsyncMock(return_value=SimpleNamespace(id="content-1"))
            mock_cohorts.get_for_institution = AsyncMock(return_value=cohort)
            mock_institutions.get_by_id = AsyncMock(return_value=institution)

            content = await upload(mock_db, mock_google)

        assert content.id == "content-1"
        assert drive.upload_file.call_args.kwargs == {
            "folder_id": "folder-1",
            "file_name": "handbook.pdf",
            "mime_type": "application/pdf",
            "data": PDF_BYTES,
        }
        created = mock_repo.create.call_args.kwargs
        assert created["file_size"] == len(PDF_BYTES)
        assert created["drive_file_id"] == "file-1"
        assert created["share_link"] == "https://drive/file-1"
        mock_db.commit.assert_called_once()
