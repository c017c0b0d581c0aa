"""
Cohort Membership

The single writer of the fellow <-> cohort edge. Enrolment also moves the
fellow into the cohort's institution; both writes happen in the caller's
transaction and are committed (or rolled back) together.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.modules.cohorts import repository
from fellowship.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)


async def enroll_fellow(
    db: AsyncSession,
    *,
    user_id: str,
    institution_id: str,
    cohort_id: str | None = None,
) -> bool:
    """
    Assign a fellow to an institution and, optionally, one of its cohorts.

    Does not commit. The caller owns the transaction, so a failure between the
    two writes leaves neither in place.

    Args:
        db: Database session
        user_id: Fellow being enrolled
        institution_id: Institution the fellow joins
        cohort_id: Cohort of that institution to join (optional)

    Returns:
        True if a new cohort membership was created
    """
    await UserRepository.assign_institution(db, user_id, institution_id)

    if cohort_id is None:
        logger.info(f"Fellow {user_id} joined institution {institution_id} without a cohort")
        return False

    if await repository.membership_exists(db, cohort_id, user_id):
        return False

    await repository.add_membership(db, cohort_id, user_id)
    logger.info(f"Fellow {user_id} enrolled in cohort {cohort_id}")
    return True
