"""
Tests for the HTTP API (`api/main.py` and routers).

The app is built around a prebuilt ServiceContainer wired to FakeSupabase and
fake providers, so no database or network is touched.
"""

from __future__ import annotations

from typing import Optional

import pytest
from fastapi.testclient import TestClient

from api import __version__
from api.dependencies import ServiceContainer
from api.main import create_app
from conftest import FakeListings, FakeSupabase, make_orchestrator
from domain.run import PollStatus, ProviderRunState
from providers.instantly import SimulatedOutreachProvider
from repositories.channel_repository import ChannelRepository
from repositories.lead_repository import LeadRepository
from repositories.outreach_repository import OutreachRepository
from repositories.run_repository import RunRepository
from services.ingestion_service import IngestionPipeline
from services.outreach_service import OutreachService
from services.search_service import SearchRunService
from services.task_queue import EnrichmentQueue
from settings import Settings

RECORDS = [
    {"title": "Clínica Sol", "placeId": "p1", "email": "owner@clinic.es", "phone": "612345678"},
    {"title": "Cerrado", "placeId": "p2", "permanentlyClosed": True},
]


def build_test_container(db: FakeSupabase, listings: Optional[FakeListings] = None) -> ServiceContainer:
    leads = LeadRepository(db)
    channels = ChannelRepository(db)
    runs = RunRepository(db)
    orchestrator = make_orchestrator(db)
    queue = EnrichmentQueue(orchestrator, concurrency=2)
    pipeline = IngestionPipeline(leads=leads, channels=channels, runs=runs, queue=queue)
    search = None
    if listings is not None:
        search = SearchRunService(
            listings=listings, runs=runs, pipeline=pipeline, queue=queue, backend_url="https://api.example.com"
        )
    return ServiceContainer(
        settings=Settings(),
        leads=leads,
        queue=queue,
        pipeline=pipeline,
        orchestrator=orchestrator,
        outreach=OutreachService(
            leads=leads, channels=channels, outreach=OutreachRepository(db), provider=SimulatedOutreachProvider()
        ),
        search=search,
    )


@pytest.fixture
def listings() -> FakeListings:
    return FakeListings([PollStatus(state=ProviderRunState.RUNNING)], RECORDS)


@pytest.fixture
def client(db, listings):
    with TestClient(create_app(build_test_container(db, listings))) as test_client:
        yield test_client


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "version": __version__, "service": "lead-pipeline-api"}


def test_ingest_batch(client, db) -> None:
    response = client.post("/api/v1/ingest", json={"records": RECORDS, "search_query": "fisioterapia"})

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Ingestion accepted"
    assert body["accepted"] == 2
    assert body["created"] == 2
    assert body["discarded"] == 1
    assert body["enqueued"] == 1
    assert len(db.rows("leads")) == 2


def test_ingest_requires_records(client) -> None:
    assert client.post("/api/v1/ingest", json={}).status_code == 422


def test_enrich_unknown_lead(client) -> None:
    assert client.post("/api/v1/leads/missing/enrich").status_code == 404


def test_enrich_and_list_tasks(client) -> None:
    lead_id = client.post("/api/v1/ingest", json={"records": RECORDS[:1]}).json()["lead_ids"][0]

    queued = client.post(f"/api/v1/leads/{lead_id}/enrich", params={"force": "true"})
    tasks = client.get("/api/v1/enrichment/tasks")
    single = client.get(f"/api/v1/enrichment/tasks/{lead_id}")

    assert queued.status_code == 202
    assert queued.json()["lead_id"] == lead_id
    assert tasks.status_code == 200
    assert [t["lead_id"] for t in tasks.json()["tasks"]] == [lead_id]
    assert sum(tasks.json()["counts"].values()) == 1
    assert single.status_code == 200


def test_unknown_task(client) -> None:
    assert client.get("/api/v1/enrichment/tasks/nobody").status_code == 404


def test_enroll_and_pause(client) -> None:
    lead_id = client.post("/api/v1/ingest", json={"records": RECORDS[:1]}).json()["lead_ids"][0]

    enrolled = client.post("/api/v1/outreach/enrollments", json={"lead_id": lead_id, "campaign_id": "camp_1"})
    enrollment_id = enrolled.json()["enrollment_id"]
    paused = client.post(f"/api/v1/outreach/enrollments/{enrollment_id}/pause")

    assert enrolled.status_code == 201
    assert enrolled.json()["simulated"] is True
    assert paused.json()["status"] == "paused"


def test_enroll_errors(client) -> None:
    no_lead = client.post("/api/v1/outreach/enrollments", json={"lead_id": "missing", "campaign_id": "c"})
    lead_id = client.post("/api/v1/ingest", json={"records": RECORDS[1:]}).json()["lead_ids"][0]
    no_email = client.post("/api/v1/outreach/enrollments", json={"lead_id": lead_id, "campaign_id": "c"})

    assert no_lead.status_code == 404
    assert no_email.status_code == 400
    assert client.post("/api/v1/outreach/enrollments/missing/resume").status_code == 404


def test_instantly_webhook(client) -> None:
    client.post("/api/v1/ingest", json={"records": RECORDS[:1]})

    unsupported = client.post("/api/webhooks/instantly", json={"event_type": "meeting_booked", "email": "a@b.es"})
    unknown = client.post("/api/webhooks/instantly", json={"event_type": "reply", "email": "stranger@b.es"})
    reply = client.post("/api/webhooks/instantly", json={"event_type": "reply", "email": "owner@clinic.es"})

    assert unsupported.json()["status"] == "ignored"
    assert unknown.json() == {"status": "ok", "detail": "lead_not_found"}
    assert reply.json() == {"status": "ok", "detail": "recorded"}


def test_start_search(client, listings) -> None:
    response = client.post("/api/v1/search", json={"business_type": "yoga", "city": "Madrid", "limit": 5})

    assert response.status_code == 202
    assert response.json()["provider_run_id"] == "apify_run_1"
    _, webhook = listings.submitted[0]
    assert webhook.startswith("https://api.example.com/api/webhooks/apify?run_id=")


def test_start_search_validation(client) -> None:
    assert client.post("/api/v1/search", json={"business_type": "", "city": "Madrid"}).status_code == 422
    assert client.post("/api/v1/search", json={"business_type": " ", "city": "Madrid"}).status_code == 400


def test_apify_webhook(client, db, listings) -> None:
    db.tables["scrape_runs"].append({"id": "run-1", "query": "yoga", "geo": "Madrid", "status": "SCRAPING"})

    ignored = client.post("/api/webhooks/apify", params={"run_id": "run-1"}, json={"eventType": "ACTOR.RUN.SUCCEEDED"})
    done = client.post(
        "/api/webhooks/apify", params={"run_id": "run-1"}, json={"resource": {"defaultDatasetId": "ds_7"}}
    )
    unknown = client.post(
        "/api/webhooks/apify", params={"run_id": "nope"}, json={"resource": {"defaultDatasetId": "ds_7"}}
    )

    assert ignored.json()["status"] == "ignored"
    assert done.json() == {"status": "ok", "detail": "2 records accepted"}
    assert listings.fetched == ["ds_7"]
    assert db.rows("scrape_runs")[0]["status"] == "COMPLETED"
    assert unknown.status_code == 404


def test_search_disabled_without_listings_provider(db) -> None:
    with TestClient(create_app(build_test_container(db))) as client:
        response = client.post("/api/v1/search", json={"business_type": "yoga", "city": "Madrid"})

    assert response.status_code == 503
