"""
Cohort Service Layer

Business logic for the cohort lifecycle.

1. Creation:
   - Reject inverted windows, windows starting before the active cohort ends,
     and windows overlapping any active or upcoming cohort
   - Compute the initial status; a cohort created while another is active is
     always upcoming
   - Provision the cohort's Drive folder (best-effort)
2. Reconciliation:
   - Pure transitions from ``lifecycle.reconcile``, applied with conditional
     updates so duplicate or concurrent runs are harmless
3. Queries and the folder repair action
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.core.google import GoogleClientFactory, GoogleError, GoogleNotConfiguredError
from fellowship.modules.cohorts import lifecycle, repository
from fellowship.modules.cohorts.lifecycle import ConflictKind
from fellowship.modules.cohorts.models import Cohort, CohortStatus
from fellowship.modules.institutions.models import Institution
from fellowship.modules.institutions.repository import InstitutionRepository
from fellowship.modules.institutions.service import (
    InstitutionNotFoundError,
    ensure_drive_root_folder,
)
from fellowship.modules.shared import (
    GoogleNotConnectedError,
    ServiceError,
    StorageUnavailableError,
    utc_now,
)

logger = logging.getLogger(__name__)


class CohortServiceError(ServiceError):
    """Base exception for cohort service errors."""


class InvalidDateRangeError(CohortServiceError):
    def __init__(self):
        super().__init__(
            message="End date must be after start date",
            error_code="INVALID_DATE_RANGE",
            status_code=400,
        )


class MustStartAfterActiveCohortError(CohortServiceError):
    def __init__(self, active: Cohort):
        super().__init__(
            message=(
                f"New cohort must start after the active cohort '{active.name}' ends "
                f"({active.end_date.date().isoformat()})"
            ),
            error_code="MUST_START_AFTER_ACTIVE_COHORT",
            status_code=409,
        )


class DateRangeOverlapError(CohortServiceError):
    def __init__(self, conflicting: Cohort):
        super().__init__(
            message=(
                f"Date range overlaps with cohort '{conflicting.name}' "
                f"({conflicting.start_date.date().isoformat()} to "
                f"{conflicting.end_date.date().isoformat()})"
            ),
            error_code="DATE_RANGE_OVERLAP",
            status_code=409,
        )


class CohortNotFoundError(CohortServiceError):
    def __init__(self, cohort_id: str | None = None):
        message = f"Cohort {cohort_id} not found" if cohort_id else "Cohort not found"
        super().__init__(message=message, error_code="COHORT_NOT_FOUND", status_code=404)


class ActiveCohortConflictError(CohortServiceError):
    """Raised when a concurrent writer activated another cohort first."""

    def __init__(self):
        super().__init__(
            message="Another cohort became active for this institution. Please try again.",
            error_code="ACTIVE_COHORT_CONFLICT",
            status_code=409,
        )


@dataclass
class ReconcileResult:
    activated: int = 0
    deactivated: int = 0


# ============================================
# Creation
# ============================================


async def create_cohort(
    db: AsyncSession,
    google: GoogleClientFactory,
    *,
    institution_id: str,
    name: str,
    description: str | None,
    start_date: datetime,
    end_date: datetime,
    now: datetime | None = None,
) -> Cohort:
    """
    Create a cohort for an institution.

    Raises:
        InvalidDateRangeError: If end_date is not after start_date
        MustStartAfterActiveCohortError: If it starts on or before the active cohort's end
        DateRangeOverlapError: If it overlaps an active or upcoming cohort
        InstitutionNotFoundError: If the institution does not exist
        ActiveCohortConflictError: If another cohort was activated concurrently
    """
    now = now or utc_now()

    # Held until commit or rollback; concurrent creations check overlap one at a time
    if not await repository.lock_institution(db, institution_id):
        raise InstitutionNotFoundError(institution_id)
    open_cohorts = await repository.list_open(db, institution_id)

    conflict = lifecycle.find_window_conflict(start_date, end_date, open_cohorts)
    if conflict is not None:
        logger.info(f"Rejected cohort '{name}' for {institution_id}: {conflict.kind.value}")
        if conflict.kind == ConflictKind.INVALID_RANGE:
            raise InvalidDateRangeError()
        if conflict.kind == ConflictKind.MUST_START_AFTER_ACTIVE:
            raise MustStartAfterActiveCohortError(conflict.cohort)
        raise DateRangeOverlapError(conflict.cohort)

    has_active = any(c.status == CohortStatus.ACTIVE for c in open_cohorts)
    status = lifecycle.initial_status(now, start_date, end_date, has_active)

    try:
        cohort = await repository.create(
            db,
            institution_id=institution_id,
            name=name,
            description=description,
            start_date=start_date,
            end_date=end_date,
            status=status,
        )
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"Cohort creation for {institution_id} lost an activation race: {e}")
        raise ActiveCohortConflictError() from e

    logger.info(f"Created cohort {cohort.id} for {institution_id} as {status.value}")

    institution = await InstitutionRepository.get_by_id(db, institution_id)
    if institution is not None:
        await _provision_cohort_folder_best_effort(db, google, institution, cohort)

    return cohort


async def _provision_cohort_folder(
    db: AsyncSession,
    google: GoogleClientFactory,
    institution: Institution,
    cohort: Cohort,
) -> tuple[str, str]:
    """
    Create the root and cohort folders where missing. Returns both folder ids.

    Each folder id is committed as soon as Drive returns it, so a failure on
    the second call keeps the first folder recorded.
    """
    root_folder_id = await ensure_drive_root_folder(db, google, institution)
    await db.commit()
    if not cohort.drive_folder_id:
        folder = await google.drive(institution.google_refresh_token).create_folder(
            cohort.name, parent_folder_id=root_folder_id
        )
        await repository.set_drive_folder(db, cohort, folder.item_id, folder.link)
        await db.commit()
        logger.info(f"Provisioned Drive folder for cohort {cohort.id}")
    return root_folder_id, cohort.drive_folder_id


async def _provision_cohort_folder_best_effort(
    db: AsyncSession,
    google: GoogleClientFactory,
    institution: Institution,
    cohort: Cohort,
) -> None:
    if not institution.google_refresh_token:
        logger.info(f"Institution {institution.id} has no Google credential; skipping folder")
        return
    try:
        await _provision_cohort_folder(db, google, institution, cohort)
    except GoogleError as e:
        logger.error(f"Drive folder provisioning failed for cohort {cohort.id}: {e}")


async def repair_cohort_folder(
    db: AsyncSession,
    google: GoogleClientFactory,
    *,
    institution_id: str,
    cohort_id: str,
) -> dict:
    """
    Create whichever of the root and cohort folders is missing.

    Returns:
        Dict with root_folder_id, folder_id and folder_link

    Raises:
        CohortNotFoundError: If the cohort is not in the institution
        GoogleNotConnectedError: If no Google credential is stored
        StorageUnavailableError: If Drive rejects the calls
    """
    cohort = await repository.get_for_institution(db, cohort_id, institution_id)
    if cohort is None:
        raise CohortNotFoundError(cohort_id)

    institution = await InstitutionRepository.get_by_id(db, institution_id)
    if institution is None or not institution.google_refresh_token:
        raise GoogleNotConnectedError()

    try:
        root_folder_id, folder_id = await _provision_cohort_folder(db, google, institution, cohort)
    except GoogleNotConfiguredError as e:
        raise GoogleNotConnectedError() from e
    except GoogleError as e:
        logger.error(f"Drive folder repair failed for cohort {cohort.id}: {e}")
        raise StorageUnavailableError("create the cohort folder") from e

    return {
        "root_folder_id": root_folder_id,
        "folder_id": folder_id,
        "folder_link": cohort.drive_folder_link,
    }


# ============================================
# Reconciliation
# ============================================


async def _apply_transitions(
    db: AsyncSession,
    transitions: list[lifecycle.Transition],
) -> ReconcileResult:
    """
    Apply transitions and commit.

    A concurrent run that activated a cohort first trips the partial unique
    index; the batch is then rolled back and left to the next run.
    """
    try:
        result = await _apply_conditional_updates(db, transitions)
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"Reconciliation pass conflicted with a concurrent run: {e}")
        return ReconcileResult()
    return result


async def _apply_conditional_updates(
    db: AsyncSession,
    transitions: list[lifecycle.Transition],
) -> ReconcileResult:
    result = ReconcileResult()
    for transition in transitions:
        if transition.to_status == CohortStatus.COMPLETED:
            if await repository.complete(db, transition.cohort_id):
                result.deactivated += 1
                logger.info(f"Cohort {transition.cohort_id} completed")
        elif transition.to_status == CohortStatus.ACTIVE:
            if await repository.activate(db, transition.cohort_id, transition.institution_id):
                result.activated += 1
                logger.info(f"Cohort {transition.cohort_id} activated")
            else:
                logger.info(f"Cohort {transition.cohort_id} not activated; state changed")
    return result


async def reconcile_institution(
    db: AsyncSession,
    institution_id: str,
    now: datetime | None = None,
) -> ReconcileResult:
    """Advance one institution's cohorts. Safe to call repeatedly."""
    now = now or utc_now()
    cohorts = await repository.list_open(db, institution_id)
    return await _apply_transitions(db, lifecycle.reconcile_institution(now, cohorts))


async def reconcile_all(db: AsyncSession, now: datetime | None = None) -> dict:
    """
    Advance every institution's cohorts.

    Each institution's transitions are committed on their own, so a conflict
    in one institution leaves the others applied.

    Returns:
        Dict with activated, deactivated and the number of institutions examined
    """
    now = now or utc_now()
    cohorts = await repository.list_open(db)
    institution_ids = list(dict.fromkeys(c.institution_id for c in cohorts))

    by_institution: dict[str, list[lifecycle.Transition]] = defaultdict(list)
    for transition in lifecycle.reconcile(now, cohorts):
        by_institution[transition.institution_id].append(transition)

    activated = deactivated = 0
    for institution_id in institution_ids:
        if not by_institution[institution_id]:
            continue
        result = await _apply_transitions(db, by_institution[institution_id])
        activated += result.activated
        deactivated += result.deactivated

    logger.info(
        f"Reconciled {len(institution_ids)} institutions: "
        f"{activated} activated, {deactivated} completed"
    )
    return {
        "activated": activated,
        "deactivated": deactivated,
        "institutions": len(institution_ids),
    }


# ============================================
# Queries
# ============================================


async def list_cohorts(db: AsyncSession, institution_id: str) -> list[tuple[Cohort, int]]:
    """Institution cohorts, newest first, with fellow counts."""
    cohorts = await repository.list_for_institution(db, institution_id)
    counts = await repository.count_fellows(db, [c.id for c in cohorts])
    return [(cohort, counts.get(cohort.id, 0)) for cohort in cohorts]


async def get_cohort(
    db: AsyncSession,
    institution_id: str,
    cohort_id: str,
) -> tuple[Cohort, list[str]]:
    """
    A cohort of the institution with its fellow ids.

    Raises:
        CohortNotFoundError: If missing or owned by another institution
    """
    cohort = await repository.get_for_institution(db, cohort_id, institution_id)
    if cohort is None:
        raise CohortNotFoundError(cohort_id)
    return cohort, await repository.get_fellow_ids(db, cohort.id)
