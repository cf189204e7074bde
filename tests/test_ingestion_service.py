"""
Tests for `services/ingestion_service.py`.

Covers contract rules:
- Re-ingesting the same business updates one row, never creates a second.
- Places with different place ids never merge, even on a shared domain and city.
- Leads that already left `new` keep their lifecycle fields and are not re-enqueued.
- Discarded leads are persisted but never enqueued.
- Channel / run-link failures are logged, not fatal; a failed record does not stop the batch.
"""

from __future__ import annotations

from typing import List

from domain.lead import LeadStatus
from domain.routing import Route, RoutingPolicy
from repositories.channel_repository import ChannelRepository
from repositories.lead_repository import LeadRepository
from repositories.run_repository import RunRepository
from services.ingestion_service import IngestionPipeline, assess

GOLD_RECORD = {
    "title": "Clínica Sol",
    "placeId": "place-gold",
    "email": "owner@clinic.es",
    "phone": "612345678",
    "reviewsCount": 120,
    "totalScore": 4.8,
    "website": "https://clinic.es",
}

CLOSED_RECORD = {"title": "Cerrado", "placeId": "place-closed", "permanentlyClosed": True}


class StubQueue:
    def __init__(self) -> None:
        self.submitted: List[str] = []

    def submit(self, lead_id: str, *, force: bool = False) -> None:
        self.submitted.append(lead_id)


def _pipeline(db, queue=None, policy=None) -> IngestionPipeline:
    return IngestionPipeline(
        leads=LeadRepository(db),
        channels=ChannelRepository(db),
        runs=RunRepository(db),
        queue=queue,
        policy=policy,
    )


def test_assess_is_pure() -> None:
    assessment = assess(GOLD_RECORD)

    assert assessment.clean.name == "Clínica Sol"
    assert assessment.score.tier.value == "GOLD"
    assert assessment.decision.route is Route.OUTREACH_READY


def test_assess_strict_policy() -> None:
    landline = {"title": "Fijo", "placeId": "p", "phone": "912345678"}

    assert assess(landline).decision.route is Route.OUTREACH_READY
    assert assess(landline, RoutingPolicy(strict=True)).decision.route is Route.ENRICH


async def test_new_lead_is_persisted_and_enqueued(db) -> None:
    queue = StubQueue()

    result = await _pipeline(db, queue).ingest_batch([GOLD_RECORD], search_query="fisioterapia")

    assert result.accepted == 1
    assert result.created == 1
    assert result.enqueued == 1
    assert queue.submitted == result.lead_ids

    row = db.rows("leads")[0]
    assert row["status"] == "new"
    assert row["routing_status"] == "OUTREACH_READY"
    assert row["lead_tier"] == "GOLD"
    assert row["search_query"] == "fisioterapia"
    assert row["dedupe_key"] == "place:place-gold"
    assert {c["type"] for c in db.rows("lead_channels")} == {"email", "phone"}


async def test_reingestion_updates_the_same_row(db) -> None:
    pipeline = _pipeline(db, StubQueue())

    first = await pipeline.ingest_batch([GOLD_RECORD])
    second = await pipeline.ingest_batch([{**GOLD_RECORD, "reviewsCount": 200}])

    assert first.lead_ids == second.lead_ids
    assert second.created == 0
    assert second.updated == 1
    assert len(db.rows("leads")) == 1
    assert db.rows("leads")[0]["reviews_count"] == 200
    assert db.rows("leads")[0]["dedupe_key"] == "place:place-gold"


async def test_settled_lead_keeps_lifecycle_fields(db, leads) -> None:
    queue = StubQueue()
    pipeline = _pipeline(db, queue)
    first = await pipeline.ingest_batch([GOLD_RECORD])
    lead_id = first.lead_ids[0]
    await leads.update_lead(
        lead_id, {"status": "enriched", "lead_score": 85, "routing_status": "CLOSED_REPLY"}
    )
    queue.submitted.clear()

    second = await pipeline.ingest_batch([{**GOLD_RECORD, "totalScore": 3.1}])

    assert second.preserved == 1
    assert second.enqueued == 0
    assert queue.submitted == []
    stored = await leads.get_lead(lead_id)
    assert stored is not None
    assert stored.status is LeadStatus.ENRICHED
    assert stored.lead_score == 85
    assert stored.routing_status.value == "CLOSED_REPLY"
    assert stored.clean.total_score == 3.1


async def test_discarded_lead_is_stored_but_not_enqueued(db) -> None:
    queue = StubQueue()

    result = await _pipeline(db, queue).ingest_batch([CLOSED_RECORD])

    assert result.discarded == 1
    assert result.enqueued == 0
    assert queue.submitted == []
    row = db.rows("leads")[0]
    assert row["routing_status"] == "DISCARDED"
    assert row["pipeline_stage"] == "discarded"
    assert row["lead_tier"] == "DROP"


async def test_leads_are_linked_to_run(db, runs) -> None:
    run = await runs.create_run("fisioterapia", "Madrid", {"limit": 5})

    result = await _pipeline(db).ingest_batch([GOLD_RECORD, CLOSED_RECORD], run_id=run.run_id)

    links = db.rows("scrape_run_leads")
    assert {l["lead_id"] for l in links} == set(result.lead_ids)
    assert {l["run_id"] for l in links} == {run.run_id}


async def test_channel_and_link_failures_are_not_fatal(db) -> None:
    db.fail_when("lead_channels", "upsert")
    db.fail_when("scrape_run_leads", "upsert")

    result = await _pipeline(db, StubQueue()).ingest_batch([GOLD_RECORD], run_id="run-1")

    assert result.created == 1
    assert result.failed == 0
    assert len(db.rows("leads")) == 1


async def test_failed_record_does_not_stop_the_batch(db) -> None:
    db.fail_when("leads", "upsert", match=lambda payload: payload.get("business_name") == "Clínica Sol")

    result = await _pipeline(db).ingest_batch([GOLD_RECORD, CLOSED_RECORD, "not a record"])

    assert result.accepted == 3
    assert result.failed == 1
    assert len(result.lead_ids) == 2
    assert [r["business_name"] for r in db.rows("leads")] == ["Cerrado", ""]


async def test_without_queue_nothing_is_enqueued(db) -> None:
    result = await _pipeline(db).ingest_batch([GOLD_RECORD])

    assert result.enqueued == 0


async def test_places_sharing_domain_and_city_stay_separate(db) -> None:
    pipeline = _pipeline(db, StubQueue())
    north = {"title": "Gym Norte", "placeId": "p-1", "website": "https://gymchain.es", "city": "Madrid"}
    south = {"title": "Gym Sur", "placeId": "p-2", "website": "https://gymchain.es", "city": "Madrid"}

    first = await pipeline.ingest_batch([north, south])
    again = await pipeline.ingest_batch([north])
    placeless = await pipeline.ingest_batch([{"title": "Gym", "website": "https://gymchain.es", "city": "Madrid"}])

    assert first.created == 2
    assert len(set(first.lead_ids)) == 2
    assert again.lead_ids == first.lead_ids[:1]
    assert placeless.created == 0
    rows = db.rows("leads")
    assert len(rows) == 2
    assert {r["dedupe_key_primary"] for r in rows} == {"place:p-1", "place:p-2"}
    assert {r["dedupe_key"] for r in rows} == {"place:p-1", "place:p-2"}
    assert {r["lead_clean"]["dedupe_keys"]["primary"] for r in rows} == {"place:p-1", "place:p-2"}
