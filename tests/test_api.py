"""
HTTP wiring tests: routers, dependencies and error mapping.

The app is assembled without its lifespan; the database, rate limiter and
Google factory are placed on ``app.state`` directly and authentication is
overridden with a stored admin.
"""

from unittest.mock import MagicMock

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI

from fellowship.api import api_router
from fellowship.core.auth import CurrentUser, get_current_user
from fellowship.core.config import settings
from fellowship.core.google import GoogleClientFactory
from fellowship.core.rate_limit import RateLimiter
from fellowship.modules.users.models import UserRole


@pytest_asyncio.fixture
async def admin(db, factory):
    institution = await factory.institution(db)
    user = await factory.user(db, "admin@acme.org", UserRole.ADMIN, institution.id)
    return CurrentUser(
        id=user.id,
        email=user.email,
        name=user.name,
        role=UserRole.ADMIN,
        institution_id=institution.id,
    )


@pytest_asyncio.fixture
async def client(database, admin):
    app = FastAPI()
    app.include_router(api_router, prefix="/api/v1")
    app.state.database = database
    app.state.rate_limiter = RateLimiter()
    app.state.google = MagicMock(spec=GoogleClientFactory)
    app.dependency_overrides[get_current_user] = lambda: admin

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


class TestCronEndpoint:
    """POST /cron/cohorts/reconcile"""

    @pytest.mark.asyncio
    async def test_requires_the_cron_secret(self, client):
        response = await client.post("/api/v1/cron/cohorts/reconcile")

        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "INVALID_CRON_SECRET"

    @pytest.mark.asyncio
    async def test_reconciles_with_the_secret(self, client):
        response = await client.post(
            "/api/v1/cron/cohorts/reconcile",
            headers={"X-Cron-Secret": settings.cron_secret},
        )

        assert response.status_code == 200
        assert response.json() == {"activated": 0, "deactivated": 0, "institutions": 0}


class TestCohortEndpoints:
    """Cohort creation and listing over HTTP."""

    @pytest.mark.asyncio
    async def test_overlap_maps_to_409(self, client):
        first = await client.post(
            "/api/v1/cohorts",
            json={"name": "A", "start_date": "2030-01-01T00:00:00Z", "end_date": "2030-03-31T00:00:00Z"},
        )
        second = await client.post(
            "/api/v1/cohorts",
            json={"name": "B", "start_date": "2030-03-31T00:00:00Z", "end_date": "2030-06-30T00:00:00Z"},
        )

        assert first.status_code == 201
        assert first.json()["status"] == "upcoming"
        assert second.status_code == 409
        assert second.json()["detail"]["error"] == "DATE_RANGE_OVERLAP"

    @pytest.mark.asyncio
    async def test_list_includes_fellow_counts(self, client):
        await client.post(
            "/api/v1/cohorts",
            json={"name": "A", "start_date": "2030-01-01T00:00:00Z", "end_date": "2030-03-31T00:00:00Z"},
        )

        response = await client.get("/api/v1/cohorts")

        assert response.status_code == 200
        body = response.json()
        assert [item["name"] for item in body["items"]] == ["A"]
        assert body["items"][0]["fellow_count"] == 0

    @pytest.mark.asyncio
    async def test_unknown_fields_are_rejected(self, client):
        response = await client.post(
            "/api/v1/cohorts",
            json={
                "name": "A",
                "start_date": "2030-01-01T00:00:00Z",
                "end_date": "2030-03-31T00:00:00Z",
                "status": "active",
            },
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_malformed_cohort_id_is_rejected(self, client):
        response = await client.get("/api/v1/cohorts/not-a-uuid")

        assert response.status_code == 422
