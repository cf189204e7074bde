"""
Tests for `services/search_service.py`.

Covers:
- Polling stops on the first terminal state; running out of attempts is TIMED_OUT.
- Provider errors while polling count as attempts; too many in a row end polling as FAILED.
- A rejected search marks the run FAILED and re-raises.
- The pull flow ends COMPLETED with every fetched lead linked to the run.
"""

from __future__ import annotations

from typing import List

import pytest

from conftest import FakeListings
from domain.run import PollOutcome, PollStatus, ProviderRunState, RunHandle, RunStatus, SearchRequest
from providers.base import ProviderError
from repositories.channel_repository import ChannelRepository
from repositories.lead_repository import LeadRepository
from repositories.run_repository import RunRepository
from services.ingestion_service import IngestionPipeline
from services.search_service import SearchRunService, poll_until_terminal

RUNNING = PollStatus(state=ProviderRunState.RUNNING, raw_status="RUNNING")
SUCCEEDED = PollStatus(state=ProviderRunState.SUCCEEDED, results_handle="dataset_9", raw_status="SUCCEEDED")
FAILED = PollStatus(state=ProviderRunState.FAILED, raw_status="ABORTED")

RECORDS = [
    {"title": "Clínica Sol", "placeId": "p1", "email": "owner@clinic.es", "phone": "612345678"},
    {"title": "Yoga Luz", "placeId": "p2", "phone": "912345678"},
]


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _service(db, listings, *, backend_url: str = "", max_attempts: int = 3, sleep=None) -> SearchRunService:
    runs = RunRepository(db)
    return SearchRunService(
        listings=listings,
        runs=runs,
        pipeline=IngestionPipeline(leads=LeadRepository(db), channels=ChannelRepository(db), runs=runs),
        backend_url=backend_url,
        poll_interval_seconds=5.0,
        max_poll_attempts=max_attempts,
        sleep=sleep or SleepRecorder(),
    )


def _run_row(db) -> dict:
    return db.rows("scrape_runs")[0]


async def test_poll_returns_on_success() -> None:
    listings = FakeListings([RUNNING, RUNNING, SUCCEEDED])
    sleep = SleepRecorder()

    result = await poll_until_terminal(
        listings, RunHandle("r1"), interval_seconds=2.0, max_attempts=10, sleep=sleep
    )

    assert result.outcome is PollOutcome.SUCCEEDED
    assert result.attempts == 3
    assert result.results_handle == "dataset_9"
    assert sleep.calls == [2.0, 2.0]


async def test_poll_returns_on_failure() -> None:
    result = await poll_until_terminal(
        FakeListings([FAILED]), RunHandle("r1"), interval_seconds=1.0, max_attempts=5, sleep=SleepRecorder()
    )

    assert result.outcome is PollOutcome.FAILED
    assert result.attempts == 1


async def test_poll_times_out_after_max_attempts() -> None:
    listings = FakeListings([RUNNING])
    sleep = SleepRecorder()

    result = await poll_until_terminal(listings, RunHandle("r1"), interval_seconds=1.0, max_attempts=4, sleep=sleep)

    assert result.outcome is PollOutcome.TIMED_OUT
    assert result.attempts == 4
    assert listings.polls == 4
    assert len(sleep.calls) == 3


async def test_poll_errors_count_as_attempts() -> None:
    listings = FakeListings([ProviderError("apify", "502"), ProviderError("apify", "502"), SUCCEEDED])

    result = await poll_until_terminal(
        listings, RunHandle("r1"), interval_seconds=1.0, max_attempts=5, sleep=SleepRecorder()
    )

    assert result.outcome is PollOutcome.SUCCEEDED
    assert result.attempts == 3


async def test_poll_stops_after_consecutive_errors() -> None:
    listings = FakeListings([RUNNING, ProviderError("apify", "502"), ProviderError("apify", "503"), RUNNING])

    result = await poll_until_terminal(
        listings, RunHandle("r1"), interval_seconds=1.0, max_attempts=10, max_consecutive_errors=2,
        sleep=SleepRecorder(),
    )

    assert result.outcome is PollOutcome.FAILED
    assert result.attempts == 3
    assert listings.polls == 3
    assert "503" in result.error
    assert result.last_status == RUNNING


async def test_successful_poll_resets_error_count() -> None:
    error = ProviderError("apify", "502")
    listings = FakeListings([error, RUNNING, error, RUNNING, error, SUCCEEDED])

    result = await poll_until_terminal(
        listings, RunHandle("r1"), interval_seconds=1.0, max_attempts=10, max_consecutive_errors=2,
        sleep=SleepRecorder(),
    )

    assert result.outcome is PollOutcome.SUCCEEDED
    assert result.attempts == 6


async def test_poll_rejects_non_positive_budget() -> None:
    with pytest.raises(ValueError):
        await poll_until_terminal(FakeListings([RUNNING]), RunHandle("r1"), interval_seconds=1.0, max_attempts=0)
    with pytest.raises(ValueError):
        await poll_until_terminal(
            FakeListings([RUNNING]), RunHandle("r1"), interval_seconds=1.0, max_attempts=3, max_consecutive_errors=0
        )


def test_search_request_validation() -> None:
    with pytest.raises(ValueError):
        SearchRequest(query=" ", geo="Madrid")
    with pytest.raises(ValueError):
        SearchRequest(query="yoga", geo="Madrid", limit=0)


async def test_start_search_registers_run_with_webhook(db) -> None:
    listings = FakeListings([RUNNING])
    service = _service(db, listings, backend_url="https://api.example.com/")

    run, handle = await service.start_search(SearchRequest(query="yoga", geo="Madrid", limit=10))

    assert handle.provider_run_id == "apify_run_1"
    _, webhook = listings.submitted[0]
    assert webhook == f"https://api.example.com/api/webhooks/apify?run_id={run.run_id}"
    row = _run_row(db)
    assert row["provider_run_id"] == "apify_run_1"
    assert row["config"] == {"limit": 10}
    assert row["status"] == "SCRAPING"


async def test_start_search_without_backend_url_has_no_webhook(db) -> None:
    listings = FakeListings([RUNNING])

    await _service(db, listings).start_search(SearchRequest(query="yoga", geo="Madrid"))

    assert listings.submitted[0][1] is None


async def test_rejected_search_marks_run_failed(db) -> None:
    listings = FakeListings([RUNNING], submit_error=ProviderError("apify", "401 unauthorized"))

    with pytest.raises(ProviderError):
        await _service(db, listings).start_search(SearchRequest(query="yoga", geo="Madrid"))

    row = _run_row(db)
    assert row["status"] == "FAILED"
    assert "401" in row["error"]


async def test_run_search_completes_and_links_leads(db) -> None:
    listings = FakeListings([RUNNING, SUCCEEDED], RECORDS)

    outcome = await _service(db, listings).run_search(SearchRequest(query="fisioterapia", geo="Madrid"))

    assert outcome.status is RunStatus.COMPLETED
    assert outcome.ingestion is not None
    assert outcome.ingestion.created == 2
    assert listings.fetched == ["dataset_9"]
    assert _run_row(db)["status"] == "COMPLETED"
    assert len(db.rows("scrape_run_leads")) == 2
    assert {r["search_query"] for r in db.rows("leads")} == {"fisioterapia"}


async def test_run_search_timeout_is_distinct_from_failure(db) -> None:
    listings = FakeListings([RUNNING], RECORDS)

    outcome = await _service(db, listings, max_attempts=2).run_search(SearchRequest(query="yoga", geo="Madrid"))

    assert outcome.status is RunStatus.TIMED_OUT
    assert _run_row(db)["status"] == "TIMED_OUT"
    assert listings.fetched == []
    assert db.rows("leads") == []


async def test_run_search_provider_failure(db) -> None:
    listings = FakeListings([FAILED], RECORDS)

    outcome = await _service(db, listings).run_search(SearchRequest(query="yoga", geo="Madrid"))

    assert outcome.status is RunStatus.FAILED
    assert _run_row(db)["error"] == "provider run ended as ABORTED"
    assert listings.fetched == []


async def test_run_search_fails_when_polling_keeps_erroring(db) -> None:
    listings = FakeListings([ProviderError("apify", "502")], RECORDS)

    outcome = await _service(db, listings, max_attempts=10).run_search(SearchRequest(query="yoga", geo="Madrid"))

    assert outcome.status is RunStatus.FAILED
    assert outcome.poll is not None and outcome.poll.attempts == 3
    assert _run_row(db)["error"].startswith("polling failed:")
    assert listings.fetched == []


async def test_complete_from_webhook_ingests_dataset(db, runs) -> None:
    run = await runs.create_run("fisioterapia", "Madrid", {})
    listings = FakeListings([RUNNING], RECORDS)

    result = await _service(db, listings).complete_from_webhook(run.run_id, "dataset_hook")

    assert result.created == 2
    assert listings.fetched == ["dataset_hook"]
    assert _run_row(db)["status"] == "COMPLETED"


async def test_complete_from_webhook_unknown_run(db) -> None:
    with pytest.raises(LookupError):
        await _service(db, FakeListings([RUNNING])).complete_from_webhook("missing", "dataset_1")
