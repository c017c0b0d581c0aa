"""
Application Service Layer

Business logic for fellowship applications.

1. Submission:
   - One application per (fellow, institution), whatever its status
   - Only approved institutions accept applications
   - Every admin of the institution is notified
2. Review:
   - Scoped to the reviewer's institution; other institutions' applications
     are reported as not found
   - Pending -> approved | rejected, exactly once
   - Approval enrolls the fellow (institution, and cohort when given) in the
     same transaction as the decision
   - The fellow is emailed the outcome after commit

Email failures are logged and never affect the stored decision.
"""

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.core.email import (
    send_application_approved,
    send_application_rejected,
    send_application_submitted,
)
from fellowship.modules.applications import repository
from fellowship.modules.applications.models import Application, ApplicationStatus
from fellowship.modules.applications.schemas import ReviewDecision
from fellowship.modules.cohorts import repository as cohort_repository
from fellowship.modules.cohorts.membership import enroll_fellow
from fellowship.modules.cohorts.service import CohortNotFoundError
from fellowship.modules.institutions.models import InstitutionStatus
from fellowship.modules.institutions.repository import InstitutionRepository
from fellowship.modules.institutions.service import InstitutionNotFoundError
from fellowship.modules.shared import ServiceError
from fellowship.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)


class ApplicationServiceError(ServiceError):
    """Base exception for application service errors."""


class DuplicateApplicationError(ApplicationServiceError):
    def __init__(self):
        super().__init__(
            message="You have already applied to this fellowship",
            error_code="DUPLICATE_APPLICATION",
            status_code=409,
        )


class ApplicationNotFoundError(ApplicationServiceError):
    def __init__(self, application_id: str | None = None):
        message = (
            f"Application {application_id} not found" if application_id else "Application not found"
        )
        super().__init__(message=message, error_code="APPLICATION_NOT_FOUND", status_code=404)


class ApplicationAlreadyReviewedError(ApplicationServiceError):
    def __init__(self):
        super().__init__(
            message="Application has already been reviewed",
            error_code="ALREADY_REVIEWED",
            status_code=409,
        )


# ============================================
# Submission
# ============================================


async def submit_application(
    db: AsyncSession,
    *,
    fellow_id: str,
    institution_id: str,
    application_data: dict[str, Any],
) -> Application:
    """
    Submit an application to an institution.

    Raises:
        DuplicateApplicationError: If the fellow already applied there
        InstitutionNotFoundError: If the institution does not exist or is not approved
    """
    if await repository.get_by_fellow_and_institution(db, fellow_id, institution_id):
        logger.warning(f"Duplicate application attempt: fellow={fellow_id}, institution={institution_id}")
        raise DuplicateApplicationError()

    institution = await InstitutionRepository.get_by_id(db, institution_id)
    if institution is None or institution.status != InstitutionStatus.APPROVED:
        raise InstitutionNotFoundError(institution_id)

    try:
        application = await repository.create(
            db,
            fellow_id=fellow_id,
            institution_id=institution_id,
            application_data=application_data,
        )
        await db.commit()
    except IntegrityError as e:
        # Lost a race against a concurrent submission
        await db.rollback()
        raise DuplicateApplicationError() from e

    logger.info(f"Created application {application.id} for institution {institution_id}")

    applicant_name = application_data.get("full_name", "")
    applicant_email = application_data.get("email", "")
    for admin in await UserRepository.list_admins(db, institution_id):
        try:
            email_sent = await send_application_submitted(
                to_email=admin.email,
                admin_name=admin.name,
                applicant_name=applicant_name,
                applicant_email=applicant_email,
                institution_name=institution.name,
                application_id=application.id,
            )
            if not email_sent:
                logger.error(f"Failed to notify admin {admin.id} of application {application.id}")
        except Exception as e:
            logger.error(f"Exception notifying admin {admin.id} of application {application.id}: {e}")

    return application


async def list_my_applications(db: AsyncSession, fellow_id: str) -> list[Application]:
    return await repository.list_for_fellow(db, fellow_id)


# ============================================
# Admin review
# ============================================


async def list_applications(
    db: AsyncSession,
    institution_id: str,
    status: ApplicationStatus | None = None,
) -> list[Application]:
    return await repository.list_for_institution(db, institution_id, status)


async def get_application(
    db: AsyncSession,
    institution_id: str,
    application_id: str,
) -> Application:
    application = await repository.get_for_institution(db, application_id, institution_id)
    if application is None:
        raise ApplicationNotFoundError(application_id)
    return application


async def review_application(
    db: AsyncSession,
    *,
    application_id: str,
    reviewer_id: str,
    reviewer_institution_id: str,
    action: ReviewDecision,
    notes: str | None = None,
    cohort_id: str | None = None,
) -> Application:
    """
    Approve or reject a pending application.

    The decision and, on approval, the fellow's enrolment are committed
    together: if enrolment fails the decision is rolled back too.

    Raises:
        ApplicationNotFoundError: If the application is not in the reviewer's institution
        ApplicationAlreadyReviewedError: If it was already approved or rejected
        CohortNotFoundError: If ``cohort_id`` is not a cohort of the institution
    """
    application = await get_application(db, reviewer_institution_id, application_id)

    if application.status != ApplicationStatus.PENDING:
        logger.warning(f"Application {application_id} already {application.status.value}")
        raise ApplicationAlreadyReviewedError()

    approve = action == ReviewDecision.APPROVE
    cohort = None
    if approve and cohort_id:
        cohort = await cohort_repository.get_for_institution(db, cohort_id, reviewer_institution_id)
        if cohort is None:
            raise CohortNotFoundError(cohort_id)

    new_status = ApplicationStatus.APPROVED if approve else ApplicationStatus.REJECTED

    try:
        # ============================================
        # ATOMIC TRANSACTION: decision + enrolment
        # ============================================
        recorded = await repository.record_decision(
            db,
            application_id,
            new_status,
            reviewed_by=reviewer_id,
            review_notes=notes,
            cohort_id=cohort.id if cohort else None,
        )
        if not recorded:
            await db.rollback()
            raise ApplicationAlreadyReviewedError()

        if approve:
            await enroll_fellow(
                db,
                user_id=application.fellow_id,
                institution_id=reviewer_institution_id,
                cohort_id=cohort.id if cohort else None,
            )

        await db.commit()
    except ApplicationServiceError:
        raise
    except Exception:
        await db.rollback()
        logger.error(f"Review of application {application_id} failed; rolled back", exc_info=True)
        raise

    await db.refresh(application)
    logger.info(f"Application {application_id} {new_status.value} by {reviewer_id}")

    await _notify_fellow_of_decision(db, application, cohort.name if cohort else None)
    return application


async def _notify_fellow_of_decision(
    db: AsyncSession,
    application: Application,
    cohort_name: str | None,
) -> None:
    fellow = await UserRepository.get_by_id(db, application.fellow_id)
    institution = await InstitutionRepository.get_by_id(db, application.institution_id)
    if fellow is None or institution is None:
        return

    applicant_name = application.application_data.get("full_name") or fellow.name
    try:
        if application.status == ApplicationStatus.APPROVED:
            email_sent = await send_application_approved(
                to_email=fellow.email,
                applicant_name=applicant_name,
                institution_name=institution.name,
                cohort_name=cohort_name,
            )
        else:
            email_sent = await send_application_rejected(
                to_email=fellow.email,
                applicant_name=applicant_name,
                institution_name=institution.name,
                review_notes=application.review_notes,
            )
        if not email_sent:
            logger.error(f"Failed to send decision email for application {application.id}")
    except Exception as e:
        logger.error(f"Exception sending decision email for application {application.id}: {e}")
