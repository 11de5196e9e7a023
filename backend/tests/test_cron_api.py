"""Cron endpoint tests."""

from collections.abc import AsyncGenerator
from datetime import timedelta

import httpx
import pytest
from fastapi import FastAPI

from newsroom.api.v1.cron import get_pipeline, get_session_factory
from newsroom.config import get_settings
from newsroom.main import create_app
from newsroom.models import PipelineRun
from newsroom.schemas.pipeline import PipelineStats
from newsroom.services.pipeline_lock import DistributedLock
from newsroom.utils.time import utcnow

AUTH = {"Authorization": "Bearer test-secret"}


class FakePipeline:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.forced: list[bool] = []

    async def run(self, force: bool = False) -> PipelineStats:
        self.forced.append(force)
        if self.error is not None:
            raise self.error
        return PipelineStats(sources=3, fetched_items=12, articles_inserted=5)


@pytest.fixture
def pipeline() -> FakePipeline:
    return FakePipeline()


@pytest.fixture
def app(settings, session_factory, pipeline) -> FastAPI:
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    return app


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


class TestCronAuth:
    @pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer wrong"}, {"Authorization": "test-secret"}])
    async def test_rejects_missing_or_wrong_secret(self, client, pipeline, headers) -> None:
        response = await client.post("/api/v1/cron/run", headers=headers)

        assert response.status_code == 401
        assert pipeline.forced == []

    async def test_empty_secret_disables_endpoints(self, app, client, settings) -> None:
        app.dependency_overrides[get_settings] = lambda: settings.model_copy(update={"cron_secret": ""})

        response = await client.get("/api/v1/cron/status", headers={"Authorization": "Bearer "})

        assert response.status_code == 401


class TestCronRun:
    async def test_post_runs_pipeline(self, client, pipeline) -> None:
        response = await client.post("/api/v1/cron/run", headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert (body["sources"], body["fetched_items"], body["articles_inserted"]) == (3, 12, 5)
        assert body["skipped"] is False
        assert pipeline.forced == [False]

    async def test_get_runs_pipeline_with_force(self, client, pipeline) -> None:
        response = await client.get("/api/v1/cron/run", params={"force": "true"}, headers=AUTH)

        assert response.status_code == 200
        assert pipeline.forced == [True]

    async def test_failure_is_reported_as_500(self, app, client) -> None:
        app.dependency_overrides[get_pipeline] = lambda: FakePipeline(error=RuntimeError("database unavailable"))

        response = await client.post("/api/v1/cron/run", headers=AUTH)

        assert response.status_code == 500
        assert "database unavailable" in response.json()["detail"]


class TestCronStatus:
    async def test_empty_status(self, client) -> None:
        response = await client.get("/api/v1/cron/status", headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {"locked": False, "locked_until": None, "last_run": None}

    async def test_reports_lock_and_latest_run(self, client, session_factory, settings) -> None:
        async with session_factory() as session:
            session.add(PipelineRun(status="success", started_at=utcnow() - timedelta(hours=1), finished_at=utcnow()))
            session.add(PipelineRun(status="error", started_at=utcnow(), notes="RuntimeError: boom"))
            await session.commit()
        await DistributedLock(session_factory).try_acquire(settings.lock_name)

        response = await client.get("/api/v1/cron/status", headers=AUTH)

        body = response.json()
        assert body["locked"] is True
        assert body["locked_until"] is not None
        assert body["last_run"]["status"] == "error"
        assert body["last_run"]["notes"] == "RuntimeError: boom"
