"""
Shared fixtures.

``mock_db`` stands in for an AsyncSession in service tests that patch the
repository. ``database``/``db`` give a real aiosqlite-backed store for the
tests that must prove an invariant against the database itself.
"""

from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

import fellowship.models  # noqa: F401 - registers every table
from fellowship.core.database import Database
from fellowship.core.google import GoogleClientFactory
from fellowship.modules.cohorts.models import Cohort, CohortStatus
from fellowship.modules.institutions.models import Institution, InstitutionStatus
from fellowship.modules.users.models import User, UserRole


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.refresh = AsyncMock()
    db.flush = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def mock_google():
    """GoogleClientFactory whose calendar() and drive() return AsyncMocks."""
    google = MagicMock(spec=GoogleClientFactory)
    google.calendar.return_value = AsyncMock()
    google.drive.return_value = AsyncMock()
    return google


@pytest_asyncio.fixture
async def database(tmp_path):
    """Isolated SQLite database with every table created."""
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'fellowship.db'}")
    await database.create_all()
    yield database
    await database.dispose()


@pytest_asyncio.fixture
async def db(database):
    async with database.session() as session:
        yield session


async def _create_institution(
    db,
    name: str = "Acme Institute",
    status: InstitutionStatus = InstitutionStatus.APPROVED,
    google_refresh_token: str | None = None,
) -> Institution:
    institution = Institution(
        name=name,
        admin_email=f"admin@{name.lower().replace(' ', '')}.org",
        status=status,
        google_refresh_token=google_refresh_token,
    )
    db.add(institution)
    await db.commit()
    return institution


async def _create_user(
    db,
    email: str,
    role: UserRole | None = UserRole.FELLOW,
    institution_id: str | None = None,
    name: str = "Test User",
) -> User:
    user = User(email=email, name=name, role=role, institution_id=institution_id)
    db.add(user)
    await db.commit()
    return user


async def _create_cohort(
    db,
    institution_id: str,
    start: datetime,
    end: datetime,
    status: CohortStatus = CohortStatus.UPCOMING,
    name: str = "Cohort",
) -> Cohort:
    cohort = Cohort(
        institution_id=institution_id,
        name=name,
        start_date=start,
        end_date=end,
        status=status,
    )
    db.add(cohort)
    await db.commit()
    return cohort


@pytest.fixture
def factory():
    """Helpers that persist a row and commit: ``await factory.user(db, ...)``."""
    return SimpleNamespace(
        institution=_create_institution,
        user=_create_user,
        cohort=_create_cohort,
    )
