"""
Google Workspace Clients

Thin async clients over the Google Calendar v3 and Drive v3 REST APIs, built
on httpx. Every institution authorises the platform once; its OAuth refresh
token is exchanged for a short-lived access token per client instance.

Clients are created from a ``GoogleClientFactory`` that owns the shared
``httpx.AsyncClient`` and lives on ``app.state.google``.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import uuid4

import httpx
from fastapi import Request

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GOOGLE_DRIVE_API = "https://www.googleapis.com/drive/v3"
GOOGLE_DRIVE_UPLOAD_API = "https://www.googleapis.com/upload/drive/v3"

DRIVE_FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


class GoogleError(Exception):
    """Base class for Google API failures."""


class GoogleNotConfiguredError(GoogleError):
    """No refresh token stored, or OAuth client credentials missing."""


class GooglePermissionDeniedError(GoogleError):
    """Google rejected the credentials or the requested scope."""


class GoogleAPIError(GoogleError):
    """Any other Google API or transport failure."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True)
class CalendarEvent:
    event_id: str
    join_link: str | None
    html_link: str | None = None


@dataclass(frozen=True)
class DriveItem:
    item_id: str
    name: str
    link: str | None


class GoogleClientFactory:
    """Builds Calendar and Drive clients for a stored refresh token."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.http = http_client or httpx.AsyncClient(timeout=timeout)

    def _require_configuration(self, refresh_token: str | None) -> str:
        if not refresh_token:
            raise GoogleNotConfiguredError("Google account not connected")
        if not self.client_id or not self.client_secret:
            raise GoogleNotConfiguredError("Google OAuth client credentials are not configured")
        return refresh_token

    def calendar(self, refresh_token: str | None) -> "CalendarClient":
        """
        Calendar client for a refresh token.

        Raises:
            GoogleNotConfiguredError: If no token is stored or OAuth is not configured
        """
        return CalendarClient(self, self._require_configuration(refresh_token))

    def drive(self, refresh_token: str | None) -> "DriveClient":
        """
        Drive client for a refresh token.

        Raises:
            GoogleNotConfiguredError: If no token is stored or OAuth is not configured
        """
        return DriveClient(self, self._require_configuration(refresh_token))

    async def exchange_refresh_token(self, refresh_token: str) -> str:
        """
        Exchange a refresh token for an access token.

        Raises:
            GooglePermissionDeniedError: If Google rejects the refresh token
            GoogleAPIError: On transport or unexpected API failures
        """
        try:
            response = await self.http.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.HTTPError as e:
            raise GoogleAPIError(f"Token refresh failed: {e}") from e

        if response.status_code in (400, 401, 403):
            logger.warning(f"Google token refresh rejected: {response.status_code}")
            raise GooglePermissionDeniedError("Google rejected the stored credentials")
        if response.status_code != 200:
            raise GoogleAPIError(
                f"Token refresh failed: {response.status_code}", response.status_code
            )

        return response.json()["access_token"]

    async def aclose(self) -> None:
        await self.http.aclose()


class _GoogleAPIClient:
    """Shared request plumbing: lazy access token, status mapping."""

    def __init__(self, factory: GoogleClientFactory, refresh_token: str):
        self._factory = factory
        self._refresh_token = refresh_token
        self._access_token: str | None = None

    async def _headers(self) -> dict[str, str]:
        if self._access_token is None:
            self._access_token = await self._factory.exchange_refresh_token(self._refresh_token)
        return {"Authorization": f"Bearer {self._access_token}"}

    async def _request(
        self,
        method: str,
        url: str,
        *,
        allow_statuses: tuple[int, ...] = (),
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        request_headers = await self._headers()
        if headers:
            request_headers.update(headers)

        try:
            response = await self._factory.http.request(
                method, url, headers=request_headers, **kwargs
            )
        except httpx.HTTPError as e:
            raise GoogleAPIError(f"{method} {url} failed: {e}") from e

        if response.status_code in allow_statuses:
            return {}
        if response.status_code in (401, 403):
            logger.warning(f"Google denied {method} {url}: {response.status_code}")
            raise GooglePermissionDeniedError(
                f"Google denied the request ({response.status_code})"
            )
        if response.status_code >= 400:
            logger.error(f"Google API error on {method} {url}: {response.status_code}")
            raise GoogleAPIError(
                f"Google API returned {response.status_code}", response.status_code
            )

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()


def _event_time(value: datetime) -> dict[str, str]:
    return {"dateTime": value.isoformat(), "timeZone": "UTC"}


class CalendarClient(_GoogleAPIClient):
    """Events on the institution's primary calendar."""

    calendar_id = "primary"

    def _events_url(self, event_id: str | None = None) -> str:
        url = f"{GOOGLE_CALENDAR_API}/calendars/{self.calendar_id}/events"
        return f"{url}/{event_id}" if event_id else url

    async def create_event(
        self,
        *,
        title: str,
        description: str | None,
        start: datetime,
        end: datetime,
        attendee_emails: list[str],
    ) -> CalendarEvent:
        """
        Create an event with a generated Google Meet link and invite attendees.

        Returns:
            CalendarEvent with the event id and join link
        """
        body = {
            "summary": title,
            "description": description or "",
            "start": _event_time(start),
            "end": _event_time(end),
            "attendees": [{"email": email} for email in attendee_emails],
            "conferenceData": {
                "createRequest": {
                    "requestId": uuid4().hex,
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            },
            "reminders": {
                "useDefault": False,
                "overrides": [
                    {"method": "email", "minutes": 24 * 60},
                    {"method": "popup", "minutes": 30},
                ],
            },
        }

        data = await self._request(
            "POST",
            self._events_url(),
            params={"conferenceDataVersion": 1, "sendUpdates": "all"},
            json=body,
        )

        join_link = data.get("hangoutLink")
        if not join_link:
            for entry in data.get("conferenceData", {}).get("entryPoints", []):
                if entry.get("entryPointType") == "video":
                    join_link = entry.get("uri")
                    break

        logger.info(f"Created calendar event {data.get('id')} with {len(attendee_emails)} attendees")
        return CalendarEvent(event_id=data["id"], join_link=join_link, html_link=data.get("htmlLink"))

    async def update_event(
        self,
        event_id: str,
        *,
        title: str | None = None,
        description: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> None:
        """Patch the given fields of an event and notify attendees."""
        body: dict[str, Any] = {}
        if title is not None:
            body["summary"] = title
        if description is not None:
            body["description"] = description
        if start is not None:
            body["start"] = _event_time(start)
        if end is not None:
            body["end"] = _event_time(end)

        await self._request(
            "PATCH",
            self._events_url(event_id),
            params={"sendUpdates": "all"},
            json=body,
        )

    async def delete_event(self, event_id: str) -> None:
        """Delete an event; an event that is already gone counts as deleted."""
        await self._request(
            "DELETE",
            self._events_url(event_id),
            params={"sendUpdates": "all"},
            allow_statuses=(404, 410),
        )

    async def count_calendars(self) -> int:
        data = await self._request("GET", f"{GOOGLE_CALENDAR_API}/users/me/calendarList")
        return len(data.get("items", []))


class DriveClient(_GoogleAPIClient):
    """Folders and files in the institution's Drive."""

    async def share_with_anyone(self, item_id: str) -> None:
        """Grant read access to anyone with the link."""
        await self._request(
            "POST",
            f"{GOOGLE_DRIVE_API}/files/{item_id}/permissions",
            json={"role": "reader", "type": "anyone"},
        )

    async def create_folder(self, name: str, parent_folder_id: str | None = None) -> DriveItem:
        """Create a link-shared folder, optionally inside ``parent_folder_id``."""
        metadata: dict[str, Any] = {"name": name, "mimeType": DRIVE_FOLDER_MIME_TYPE}
        if parent_folder_id:
            metadata["parents"] = [parent_folder_id]

        data = await self._request(
            "POST",
            f"{GOOGLE_DRIVE_API}/files",
            params={"fields": "id,name,webViewLink"},
            json=metadata,
        )
        await self.share_with_anyone(data["id"])

        logger.info(f"Created Drive folder {data['id']}")
        return DriveItem(item_id=data["id"], name=data.get("name", name), link=data.get("webViewLink"))

    async def upload_file(
        self,
        *,
        folder_id: str,
        file_name: str,
        mime_type: str,
        data: bytes,
    ) -> DriveItem:
        """Upload a file into a folder (multipart upload) and share it by link."""
        boundary = uuid4().hex
        metadata = json.dumps({"name": file_name, "parents": [folder_id]})
        body = (
            f"--{boundary}\r\n"
            "Content-Type: application/json; charset=UTF-8\r\n\r\n"
            f"{metadata}\r\n"
            f"--{boundary}\r\n"
            f"Content-Type: {mime_type}\r\n\r\n"
        ).encode() + data + f"\r\n--{boundary}--".encode()

        uploaded = await self._request(
            "POST",
            f"{GOOGLE_DRIVE_UPLOAD_API}/files",
            params={"uploadType": "multipart", "fields": "id,name,webViewLink"},
            headers={"Content-Type": f"multipart/related; boundary={boundary}"},
            content=body,
        )
        await self.share_with_anyone(uploaded["id"])

        logger.info(f"Uploaded Drive file {uploaded['id']} ({len(data)} bytes)")
        return DriveItem(
            item_id=uploaded["id"],
            name=uploaded.get("name", file_name),
            link=uploaded.get("webViewLink"),
        )

    async def about_user_email(self) -> str | None:
        data = await self._request("GET", f"{GOOGLE_DRIVE_API}/about", params={"fields": "user"})
        return data.get("user", {}).get("emailAddress")


def get_google(request: Request) -> GoogleClientFactory:
    """FastAPI dependency returning the application's GoogleClientFactory."""
    return request.app.state.google
