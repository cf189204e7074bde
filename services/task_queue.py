"""
Bounded-concurrency enrichment queue.

Ingestion submits lead ids and returns immediately; enrichment runs in the
background on at most `concurrency` leads at a time. Each lead has at most one
active task, and every task's state is observable (snapshot), so a lead stuck
in `enriching` shows up as a failed task instead of disappearing into an
unawaited coroutine. Only the `max_finished` most recently finished tasks are
remembered.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Protocol

from domain.time import utc_now

logger = logging.getLogger(__name__)


class TaskState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        return self in (TaskState.QUEUED, TaskState.RUNNING)


class Enricher(Protocol):
    async def enrich(self, lead_id: str, *, force: bool = False) -> Any: ...


@dataclass(slots=True)
class EnrichmentTask:
    lead_id: str
    force: bool = False
    state: TaskState = TaskState.QUEUED
    error: Optional[str] = None
    submitted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    result: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "lead_id": self.lead_id,
            "force": self.force,
            "state": self.state.value,
            "error": self.error,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class EnrichmentQueue:
    def __init__(self, enricher: Enricher, *, concurrency: int = 4, max_finished: int = 1000) -> None:
        if concurrency <= 0:
            raise ValueError("concurrency must be > 0")
        if max_finished < 0:
            raise ValueError("max_finished must be >= 0")
        self._max_finished = max_finished
        self._enricher = enricher
        self._semaphore = asyncio.Semaphore(concurrency)
        self._tasks: dict[str, EnrichmentTask] = {}
        self._running: set[asyncio.Task[None]] = set()

    def submit(self, lead_id: str, *, force: bool = False) -> EnrichmentTask:
        """
        Schedule enrichment for a lead. Must be called from a running event loop.

        If the lead already has a queued or running task, that task is returned
        and nothing new is scheduled.
        """

        current = self._tasks.get(lead_id)
        if current is not None and current.state.is_active:
            return current

        task = EnrichmentTask(lead_id=lead_id, force=force, submitted_at=utc_now())
        self._tasks[lead_id] = task

        worker = asyncio.create_task(self._run(task), name=f"enrich:{lead_id}")
        self._running.add(worker)
        worker.add_done_callback(self._running.discard)
        return task

    async def _run(self, task: EnrichmentTask) -> None:
        try:
            async with self._semaphore:
                task.state = TaskState.RUNNING
                task.started_at = utc_now()
                try:
                    result = await self._enricher.enrich(task.lead_id, force=task.force)
                except Exception as exc:
                    logger.exception("Enrichment task failed for lead %s", task.lead_id)
                    task.state = TaskState.FAILED
                    task.error = str(exc)
                else:
                    task.result = result
                    outcome = getattr(result, "outcome", None)
                    skipped = getattr(outcome, "value", outcome) == "skipped"
                    task.state = TaskState.SKIPPED if skipped else TaskState.SUCCEEDED
        except asyncio.CancelledError:
            task.state = TaskState.FAILED
            task.error = "cancelled"
            raise
        finally:
            task.finished_at = utc_now()
            self._prune()

    def _prune(self) -> None:
        """Forget the oldest finished tasks beyond `max_finished`; active tasks are never dropped."""

        finished = [t for t in self._tasks.values() if not t.state.is_active]
        excess = len(finished) - self._max_finished
        if excess <= 0:
            return
        finished.sort(key=lambda t: t.finished_at or utc_now())
        for task in finished[:excess]:
            del self._tasks[task.lead_id]

    def get(self, lead_id: str) -> Optional[EnrichmentTask]:
        return self._tasks.get(lead_id)

    def snapshot(self) -> list[dict[str, Any]]:
        return [task.to_dict() for task in self._tasks.values()]

    def counts(self) -> dict[str, int]:
        counts = {state.value: 0 for state in TaskState}
        for task in self._tasks.values():
            counts[task.state.value] += 1
        return counts

    @property
    def pending(self) -> int:
        return len(self._running)

    async def join(self) -> None:
        """Wait until every submitted task (including ones submitted meanwhile) is finished."""

        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    async def close(self) -> None:
        for worker in list(self._running):
            worker.cancel()
        await asyncio.gather(*list(self._running), return_exceptions=True)


__all__ = ["EnrichmentQueue", "EnrichmentTask", "TaskState"]
