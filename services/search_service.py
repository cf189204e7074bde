"""
Search runs against the listings provider.

A run is started (optionally with a completion webhook), then either the
webhook delivers the dataset id or the run is polled until it reaches a
terminal state. Polling is bounded by max_attempts; running out of attempts
is the distinct TIMED_OUT outcome, and repeated poll errors end the run as
FAILED.

Run status: SCRAPING -> ENRICHING -> AI_ANALYSIS -> COMPLETED,
or FAILED / TIMED_OUT.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional
from urllib.parse import quote

from domain.run import (
    PollOutcome,
    PollResult,
    PollStatus,
    ProviderRunState,
    RunHandle,
    RunStatus,
    ScrapeRun,
    SearchRequest,
)
from providers.base import ListingsProvider
from repositories.run_repository import RunRepository
from services.ingestion_service import IngestionPipeline, IngestionResult
from services.task_queue import EnrichmentQueue

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


async def poll_until_terminal(
    provider: ListingsProvider,
    handle: RunHandle,
    *,
    interval_seconds: float,
    max_attempts: int,
    max_consecutive_errors: int = 3,
    sleep: Sleep = asyncio.sleep,
) -> PollResult:
    """
    Poll a provider run until it succeeds, fails or the attempt budget runs out.

    A provider error while polling uses up an attempt and polling goes on. After `max_consecutive_errors`
    errors in a row polling stops with FAILED and the last error message; a
    successful poll resets the count.
    """

    if max_attempts <= 0:
        raise ValueError("max_attempts must be > 0")
    if max_consecutive_errors <= 0:
        raise ValueError("max_consecutive_errors must be > 0")

    last: Optional[PollStatus] = None
    errors = 0
    for attempt in range(1, max_attempts + 1):
        try:
            last = await provider.poll_status(handle)
        except Exception as exc:
            errors += 1
            logger.warning("Polling run %s failed (attempt %d/%d): %s",
                           handle.provider_run_id, attempt, max_attempts, exc)
            if errors >= max_consecutive_errors:
                logger.error("Giving up on run %s after %d consecutive poll errors",
                             handle.provider_run_id, errors)
                return PollResult(outcome=PollOutcome.FAILED, attempts=attempt, last_status=last, error=str(exc))
        else:
            errors = 0
            if last.state is ProviderRunState.SUCCEEDED:
                return PollResult(outcome=PollOutcome.SUCCEEDED, attempts=attempt, last_status=last)
            if last.state is ProviderRunState.FAILED:
                return PollResult(outcome=PollOutcome.FAILED, attempts=attempt, last_status=last)

        if attempt < max_attempts:
            await sleep(interval_seconds)

    logger.warning("Run %s still not finished after %d polls", handle.provider_run_id, max_attempts)
    return PollResult(outcome=PollOutcome.TIMED_OUT, attempts=max_attempts, last_status=last)


@dataclass(frozen=True, slots=True)
class SearchOutcome:
    run_id: str
    status: RunStatus
    poll: Optional[PollResult] = None
    ingestion: Optional[IngestionResult] = None


class SearchRunService:
    def __init__(
        self,
        *,
        listings: ListingsProvider,
        runs: RunRepository,
        pipeline: IngestionPipeline,
        queue: Optional[EnrichmentQueue] = None,
        backend_url: str = "",
        poll_interval_seconds: float = 10.0,
        max_poll_attempts: int = 60,
        max_poll_errors: int = 3,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._listings = listings
        self._runs = runs
        self._pipeline = pipeline
        self._queue = queue
        self._backend_url = backend_url.rstrip("/")
        self._poll_interval = poll_interval_seconds
        self._max_poll_attempts = max_poll_attempts
        self._max_poll_errors = max_poll_errors
        self._sleep = sleep

    def webhook_url(self, run_id: str) -> str:
        return f"{self._backend_url}/api/webhooks/apify?run_id={quote(str(run_id))}"

    async def start_search(self, request: SearchRequest, *, use_webhook: bool = True) -> tuple[ScrapeRun, RunHandle]:
        """
        Register a run and start the provider search.

        Raises:
        - ProviderError (after marking the run FAILED) if the provider rejects the search
        """

        run = await self._runs.create_run(request.query, request.geo, {"limit": request.limit})
        webhook = self.webhook_url(run.run_id) if use_webhook and self._backend_url else None
        try:
            handle = await self._listings.submit_search(request, webhook_url=webhook)
        except Exception as exc:
            await self._runs.update_run(run.run_id, status=RunStatus.FAILED, error=str(exc))
            raise
        await self._runs.update_run(run.run_id, provider_run_id=handle.provider_run_id)
        return run, handle

    async def ingest_results(
        self,
        run_id: str,
        results_handle: str,
        *,
        search_query: str = "",
        wait_for_enrichment: bool = False,
    ) -> IngestionResult:
        await self._runs.update_run(run_id, status=RunStatus.ENRICHING)
        try:
            records = await self._listings.fetch_results(results_handle)
        except Exception as exc:
            await self._runs.update_run(run_id, status=RunStatus.FAILED, error=str(exc))
            raise

        result = await self._pipeline.ingest_batch(records, run_id=run_id, search_query=search_query)

        await self._runs.update_run(run_id, status=RunStatus.AI_ANALYSIS)
        if wait_for_enrichment and self._queue is not None:
            await self._queue.join()
        await self._runs.update_run(run_id, status=RunStatus.COMPLETED)
        return result

    async def complete_from_webhook(self, run_id: str, dataset_id: str) -> IngestionResult:
        """Push-based completion: the provider told us the run finished."""

        run = await self._runs.get_run(run_id)
        if run is None:
            raise LookupError(f"Scrape run not found: {run_id}")
        return await self.ingest_results(run_id, dataset_id, search_query=run.query)

    async def run_search(self, request: SearchRequest, *, wait_for_enrichment: bool = False) -> SearchOutcome:
        """Pull-based flow: start, poll until terminal, then ingest."""

        run, handle = await self.start_search(request, use_webhook=False)
        poll = await poll_until_terminal(
            self._listings,
            handle,
            interval_seconds=self._poll_interval,
            max_attempts=self._max_poll_attempts,
            max_consecutive_errors=self._max_poll_errors,
            sleep=self._sleep,
        )

        if poll.outcome is PollOutcome.TIMED_OUT:
            await self._runs.update_run(run.run_id, status=RunStatus.TIMED_OUT)
            return SearchOutcome(run_id=run.run_id, status=RunStatus.TIMED_OUT, poll=poll)

        results_handle = poll.results_handle or handle.results_handle
        if poll.outcome is PollOutcome.FAILED or not results_handle:
            raw_status = poll.last_status.raw_status if poll.last_status else ""
            if poll.error:
                error = f"polling failed: {poll.error}"
            else:
                error = f"provider run ended as {raw_status or 'unknown'}"
            await self._runs.update_run(run.run_id, status=RunStatus.FAILED, error=error)
            return SearchOutcome(run_id=run.run_id, status=RunStatus.FAILED, poll=poll)

        ingestion = await self.ingest_results(
            run.run_id, results_handle, search_query=request.query, wait_for_enrichment=wait_for_enrichment
        )
        return SearchOutcome(run_id=run.run_id, status=RunStatus.COMPLETED, poll=poll, ingestion=ingestion)


__all__ = ["SearchOutcome", "SearchRunService", "poll_until_terminal"]
