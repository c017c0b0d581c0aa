"""
Cohort Lifecycle Rules

Pure functions over cohort windows. Nothing here touches the database or the
clock: callers pass ``now`` and the cohorts they loaded, and get back either a
decision or a list of transitions to apply.

Rules:
- Date windows are inclusive on both ends. A cohort ending on the day another
  starts overlaps it.
- A new cohort cannot start on or before the end of the institution's active
  cohort, and cannot overlap any active or upcoming cohort.
- While an institution has an active cohort, new cohorts are created upcoming.
- Reconciliation completes the active cohort once ``now`` is past its end,
  then activates at most one upcoming cohort whose window contains ``now``.
"""

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol

from fellowship.modules.cohorts.models import CohortStatus

OPEN_STATUSES = (CohortStatus.ACTIVE, CohortStatus.UPCOMING)


class CohortWindow(Protocol):
    """Anything with the fields the lifecycle rules read (ORM rows included)."""

    id: str
    institution_id: str
    name: str
    status: CohortStatus
    start_date: datetime
    end_date: datetime


class ConflictKind(str, Enum):
    INVALID_RANGE = "invalid_range"
    MUST_START_AFTER_ACTIVE = "must_start_after_active"
    OVERLAP = "overlap"


@dataclass(frozen=True)
class WindowConflict:
    kind: ConflictKind
    cohort: CohortWindow | None = None


@dataclass(frozen=True)
class Transition:
    cohort_id: str
    institution_id: str
    from_status: CohortStatus
    to_status: CohortStatus


def windows_overlap(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime,
) -> bool:
    """Inclusive overlap: touching endpoints count as overlapping."""
    return start_a <= end_b and start_b <= end_a


def find_window_conflict(
    start: datetime,
    end: datetime,
    existing: Iterable[CohortWindow],
) -> WindowConflict | None:
    """
    Check a proposed window against the institution's cohorts.

    Only active and upcoming cohorts are considered; completed ones never block.

    Returns:
        The first conflict found, or None if the window is acceptable
    """
    if end <= start:
        return WindowConflict(ConflictKind.INVALID_RANGE)

    open_cohorts = [c for c in existing if c.status in OPEN_STATUSES]

    for cohort in open_cohorts:
        if cohort.status == CohortStatus.ACTIVE and start <= cohort.end_date:
            return WindowConflict(ConflictKind.MUST_START_AFTER_ACTIVE, cohort)

    for cohort in open_cohorts:
        if windows_overlap(start, end, cohort.start_date, cohort.end_date):
            return WindowConflict(ConflictKind.OVERLAP, cohort)

    return None


def initial_status(
    now: datetime,
    start: datetime,
    end: datetime,
    institution_has_active: bool,
) -> CohortStatus:
    """Status a cohort is created with."""
    if institution_has_active:
        return CohortStatus.UPCOMING
    if start <= now <= end:
        return CohortStatus.ACTIVE
    if now > end:
        return CohortStatus.COMPLETED
    return CohortStatus.UPCOMING


def reconcile_institution(now: datetime, cohorts: Sequence[CohortWindow]) -> list[Transition]:
    """
    Transitions for one institution's cohorts at ``now``.

    Completions come first, so an activation in the same pass sees the
    predecessor already completed. Upcoming cohorts whose window has already
    passed are left alone.
    """
    transitions: list[Transition] = []
    still_active = False

    for cohort in cohorts:
        if cohort.status != CohortStatus.ACTIVE:
            continue
        if now > cohort.end_date:
            transitions.append(
                Transition(
                    cohort.id, cohort.institution_id, CohortStatus.ACTIVE, CohortStatus.COMPLETED
                )
            )
        else:
            still_active = True

    if still_active:
        return transitions

    upcoming = sorted(
        (c for c in cohorts if c.status == CohortStatus.UPCOMING),
        key=lambda c: c.start_date,
    )
    for cohort in upcoming:
        if cohort.start_date <= now <= cohort.end_date:
            transitions.append(
                Transition(
                    cohort.id, cohort.institution_id, CohortStatus.UPCOMING, CohortStatus.ACTIVE
                )
            )
            break

    return transitions


def reconcile(now: datetime, cohorts: Iterable[CohortWindow]) -> list[Transition]:
    """
    Transitions for any number of institutions at ``now``.

    Idempotent: applying the result and calling again with the same ``now``
    yields no transitions.
    """
    by_institution: dict[str, list[CohortWindow]] = defaultdict(list)
    for cohort in cohorts:
        by_institution[cohort.institution_id].append(cohort)

    transitions: list[Transition] = []
    for institution_cohorts in by_institution.values():
        transitions.extend(reconcile_institution(now, institution_cohorts))
    return transitions
