"""
Tests for the operator API routes against a stubbed pipeline.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from feedpipe.api.routes import get_feed_job, router
from feedpipe.core.seeds import ZIMBABWE_NEWS_SOURCES
from feedpipe.models.domain import (
    AddSourceResult,
    BulkImportResult,
    PerformanceReport,
    PerformanceTotals,
    RunSummary,
)
from feedpipe.services.ingestion.base import IngestionRunError, StoreUnavailableError


@pytest.fixture
def job():
    job = MagicMock()
    job.is_running = False
    job.run = AsyncMock(return_value=RunSummary(sources=2, new_articles=5))
    job.registry.add_source = AsyncMock()
    job.registry.bulk_import = AsyncMock(return_value=BulkImportResult(added=1))
    job.registry.performance_report = AsyncMock(
        return_value=PerformanceReport(totals=PerformanceTotals(total_sources=3, active_sources=2))
    )
    job.registry.update_source = AsyncMock(return_value=None)
    job.article_store.count = AsyncMock(return_value=0)
    job.article_store.list = AsyncMock(return_value=[])
    return job


@pytest.fixture
def client(job):
    app = FastAPI()
    app.include_router(router, prefix="/api/v1")
    app.dependency_overrides[get_feed_job] = lambda: job
    return TestClient(app)


class TestIngestionRoutes:

    def test_run_returns_summary(self, client, job):
        response = client.post("/api/v1/admin/ingestion/run")

        assert response.status_code == 200
        assert response.json()["new_articles"] == 5
        job.run.assert_awaited_once()

    def test_run_rejected_while_running(self, client, job):
        job.is_running = True

        response = client.post("/api/v1/admin/ingestion/run")

        assert response.status_code == 409
        job.run.assert_not_called()

    def test_aborted_run_is_503(self, client, job):
        job.run.side_effect = IngestionRunError("Ingestion run aborted: database is locked")

        response = client.post("/api/v1/admin/ingestion/run")

        assert response.status_code == 503
        assert "database is locked" in response.json()["detail"]


class TestSourceRoutes:

    def test_add_source_status_codes(self, client, job):
        job.registry.add_source.return_value = AddSourceResult(success=False, message="No RSS feeds found on this website")
        rejected = client.post("/api/v1/sources", json={"site_url": "https://x.example.zw", "name": "X"})

        job.registry.add_source.return_value = AddSourceResult(success=True, message="Successfully added X with 80 quality score")
        added = client.post("/api/v1/sources", json={"site_url": "https://x.example.zw", "name": "X"})

        assert rejected.status_code == 200
        assert rejected.json()["success"] is False
        assert added.status_code == 201

    def test_report(self, client):
        response = client.get("/api/v1/sources/report")

        assert response.status_code == 200
        assert response.json()["totals"]["total_sources"] == 3

    def test_report_storage_failure(self, client, job):
        job.registry.performance_report.side_effect = StoreUnavailableError("source counts failed")

        assert client.get("/api/v1/sources/report").status_code == 503

    def test_update_unknown_source(self, client):
        response = client.patch("/api/v1/sources/ghost", json={"enabled": False})
        assert response.status_code == 404

    def test_update_rejects_out_of_range_priority(self, client, job):
        response = client.patch("/api/v1/sources/herald", json={"priority": 42})

        assert response.status_code == 422
        job.registry.update_source.assert_not_called()

    def test_import_defaults_to_seed_list(self, client, job):
        response = client.post("/api/v1/sources/import", json={})

        assert response.status_code == 200
        entries = job.registry.bulk_import.call_args.args[0]
        assert len(entries) == len(ZIMBABWE_NEWS_SOURCES)
        assert job.registry.bulk_import.call_args.kwargs == {"validate": False}


class TestArticleRoutes:

    def test_article_listing_filters(self, client, job):
        response = client.get("/api/v1/articles", params={"limit": 5, "source_id": "herald"})

        assert response.status_code == 200
        assert response.json() == {"total": 0, "items": []}
        job.article_store.list.assert_awaited_once_with(
            limit=5, offset=0, source_id="herald", category_id=None
        )

    def test_limit_is_bounded(self, client):
        assert client.get("/api/v1/articles", params={"limit": 500}).status_code == 422
