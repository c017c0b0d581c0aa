"""
Cohort invariants checked against a real (SQLite) database.

These tests cover:
- Atomic activation: only one writer can activate a cohort per institution
- The partial unique index backing "one active cohort per institution"
- Reconciliation end to end, including the no-op second run
- Inclusive overlap through create_cohort, including concurrent creations
- A conflict in one institution leaving the others reconciled
"""

import asyncio
from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from fellowship.core.google import GoogleClientFactory
from fellowship.modules.cohorts import repository
from fellowship.modules.cohorts.models import Cohort, CohortStatus
from fellowship.modules.cohorts.service import (
    DateRangeOverlapError,
    create_cohort,
    reconcile_all,
    reconcile_institution,
)


def utc(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, tzinfo=UTC)


async def statuses(database, institution_id):
    async with database.session() as session:
        result = await session.execute(
            select(Cohort.name, Cohort.status).where(Cohort.institution_id == institution_id)
        )
        return dict(result.all())


class TestAtomicActivation:
    """Tests for repository.activate against the database."""

    @pytest.mark.asyncio
    async def test_second_activation_for_same_institution_is_refused(self, db, factory):
        institution = await factory.institution(db)
        first = await factory.cohort(db, institution.id, utc(2025, 1, 1), utc(2025, 3, 31), name="A")
        second = await factory.cohort(db, institution.id, utc(2025, 4, 1), utc(2025, 6, 30), name="B")

        assert await repository.activate(db, first.id, institution.id) is True
        assert await repository.activate(db, second.id, institution.id) is False
        await db.commit()

        result = await db.execute(
            select(Cohort.id).where(
                Cohort.institution_id == institution.id,
                Cohort.status == CohortStatus.ACTIVE,
            )
        )
        assert result.scalars().all() == [first.id]

    @pytest.mark.asyncio
    async def test_activation_of_non_upcoming_cohort_is_refused(self, db, factory):
        institution = await factory.institution(db)
        done = await factory.cohort(
            db, institution.id, utc(2025, 1, 1), utc(2025, 3, 31), CohortStatus.COMPLETED
        )

        assert await repository.activate(db, done.id, institution.id) is False

    @pytest.mark.asyncio
    async def test_complete_is_conditional_on_active(self, db, factory):
        institution = await factory.institution(db)
        cohort = await factory.cohort(
            db, institution.id, utc(2025, 1, 1), utc(2025, 3, 31), CohortStatus.ACTIVE
        )

        assert await repository.complete(db, cohort.id) is True
        assert await repository.complete(db, cohort.id) is False

    @pytest.mark.asyncio
    async def test_index_rejects_a_second_active_cohort(self, db, factory):
        """The store itself refuses two active cohorts, whatever the writer does."""
        institution = await factory.institution(db)
        await factory.cohort(
            db, institution.id, utc(2025, 1, 1), utc(2025, 3, 31), CohortStatus.ACTIVE
        )

        db.add(
            Cohort(
                institution_id=institution.id,
                name="Rogue",
                start_date=utc(2025, 4, 1),
                end_date=utc(2025, 6, 30),
                status=CohortStatus.ACTIVE,
            )
        )
        with pytest.raises(IntegrityError):
            await db.commit()
        await db.rollback()

    @pytest.mark.asyncio
    async def test_active_cohorts_of_different_institutions_coexist(self, db, factory):
        x = await factory.institution(db, name="X")
        y = await factory.institution(db, name="Y")

        await factory.cohort(db, x.id, utc(2025, 1, 1), utc(2025, 3, 31), CohortStatus.ACTIVE)
        await factory.cohort(db, y.id, utc(2025, 1, 1), utc(2025, 3, 31), CohortStatus.ACTIVE)


class TestReconcileAgainstStore:
    """Reconciliation applied to real rows."""

    @pytest.mark.asyncio
    async def test_predecessor_completes_and_successor_activates_once(
        self, db, database, factory
    ):
        institution = await factory.institution(db)
        await factory.cohort(
            db, institution.id, utc(2025, 1, 1), utc(2025, 3, 31), CohortStatus.ACTIVE, "A"
        )
        await factory.cohort(db, institution.id, utc(2025, 4, 1), utc(2025, 6, 30), name="C")

        async with database.session() as session:
            first = await reconcile_institution(session, institution.id, now=utc(2025, 4, 5))
        async with database.session() as session:
            second = await reconcile_institution(session, institution.id, now=utc(2025, 4, 5))

        assert (first.activated, first.deactivated) == (1, 1)
        assert (second.activated, second.deactivated) == (0, 0)
        assert await statuses(database, institution.id) == {
            "A": CohortStatus.COMPLETED,
            "C": CohortStatus.ACTIVE,
        }

    @pytest.mark.asyncio
    async def test_reconcile_all_covers_every_institution(self, db, database, factory):
        x = await factory.institution(db, name="X")
        y = await factory.institution(db, name="Y")
        await factory.cohort(db, x.id, utc(2025, 1, 1), utc(2025, 3, 31), name="X1")
        await factory.cohort(
            db, y.id, utc(2024, 10, 1), utc(2024, 12, 31), CohortStatus.ACTIVE, "Y1"
        )

        async with database.session() as session:
            result = await reconcile_all(session, now=utc(2025, 2, 1))

        assert result == {"activated": 1, "deactivated": 1, "institutions": 2}
        assert await statuses(database, x.id) == {"X1": CohortStatus.ACTIVE}
        assert await statuses(database, y.id) == {"Y1": CohortStatus.COMPLETED}

    @pytest.mark.asyncio
    async def test_conflict_in_one_institution_leaves_others_applied(
        self, db, database, factory
    ):
        x = await factory.institution(db, name="X")
        y = await factory.institution(db, name="Y")
        x_id, y_id = x.id, y.id
        await factory.cohort(db, x_id, utc(2025, 1, 1), utc(2025, 3, 31), name="X1")
        await factory.cohort(db, y_id, utc(2025, 1, 1), utc(2025, 3, 31), name="Y1")

        activate = repository.activate

        async def activate_with_conflict_for_x(session, cohort_id, institution_id):
            if institution_id == x_id:
                raise IntegrityError("UPDATE", {}, Exception("unique"))
            return await activate(session, cohort_id, institution_id)

        with patch(f"{repository.__name__}.activate", new=activate_with_conflict_for_x):
            async with database.session() as session:
                result = await reconcile_all(session, now=utc(2025, 2, 1))

        assert result == {"activated": 1, "deactivated": 0, "institutions": 2}
        assert await statuses(database, x_id) == {"X1": CohortStatus.UPCOMING}
        assert await statuses(database, y_id) == {"Y1": CohortStatus.ACTIVE}


class TestCreateCohortAgainstStore:
    """create_cohort with real rows."""

    @pytest.fixture
    def google(self):
        return MagicMock(spec=GoogleClientFactory)

    @pytest.mark.asyncio
    async def test_same_day_boundary_overlap_is_rejected(self, db, factory, google):
        """A cohort starting the day an upcoming cohort ends overlaps it."""
        institution = await factory.institution(db)
        await create_cohort(
            db,
            google,
            institution_id=institution.id,
            name="A",
            description=None,
            start_date=utc(2025, 1, 1),
            end_date=utc(2025, 3, 31),
            now=utc(2024, 12, 1),
        )

        with pytest.raises(DateRangeOverlapError):
            await create_cohort(
                db,
                google,
                institution_id=institution.id,
                name="B",
                description=None,
                start_date=utc(2025, 3, 31),
                end_date=utc(2025, 6, 30),
                now=utc(2024, 12, 1),
            )

        result = await db.execute(select(Cohort.name).where(Cohort.institution_id == institution.id))
        assert result.scalars().all() == ["A"]

    @pytest.mark.asyncio
    async def test_sequential_activation(self, db, database, factory, google):
        """C is created upcoming while A is active, then activates after A ends."""
        institution = await factory.institution(db)
        a = await create_cohort(
            db,
            google,
            institution_id=institution.id,
            name="A",
            description=None,
            start_date=utc(2025, 1, 1),
            end_date=utc(2025, 3, 31),
            now=utc(2025, 2, 1),
        )
        c = await create_cohort(
            db,
            google,
            institution_id=institution.id,
            name="C",
            description=None,
            start_date=utc(2025, 4, 1),
            end_date=utc(2025, 6, 30),
            now=utc(2025, 2, 1),
        )

        assert a.status == CohortStatus.ACTIVE
        assert c.status == CohortStatus.UPCOMING

        async with database.session() as session:
            result = await reconcile_institution(session, institution.id, now=utc(2025, 4, 5))

        assert (result.activated, result.deactivated) == (1, 1)
        assert await statuses(database, institution.id) == {
            "A": CohortStatus.COMPLETED,
            "C": CohortStatus.ACTIVE,
        }

    @pytest.mark.asyncio
    async def test_concurrent_overlapping_creations_store_one(self, db, database, factory, google):
        """Two overlapping cohorts requested at once: one is stored, the other overlaps it."""
        institution = await factory.institution(db)
        institution_id = institution.id

        async def create(name, start, end):
            async with database.session() as session:
                return await create_cohort(
                    session,
                    google,
                    institution_id=institution_id,
                    name=name,
                    description=None,
                    start_date=start,
                    end_date=end,
                    now=utc(2024, 12, 1),
                )

        results = await asyncio.gather(
            create("A", utc(2025, 1, 1), utc(2025, 3, 31)),
            create("B", utc(2025, 2, 1), utc(2025, 4, 30)),
            return_exceptions=True,
        )

        created = [r for r in results if isinstance(r, Cohort)]
        rejected = [r for r in results if isinstance(r, DateRangeOverlapError)]
        assert (len(created), len(rejected)) == (1, 1)
        assert await statuses(database, institution_id) == {
            created[0].name: CohortStatus.UPCOMING
        }
