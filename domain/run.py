"""
Domain: Search runs against the listings provider.

Run status is tracked for observability only; no lead depends on it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class RunStatus(str, Enum):
    SCRAPING = "SCRAPING"
    ENRICHING = "ENRICHING"
    AI_ANALYSIS = "AI_ANALYSIS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"

    @property
    def is_finished(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.TIMED_OUT)


class ProviderRunState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProviderRunState.SUCCEEDED, ProviderRunState.FAILED)


class PollOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True, slots=True)
class SearchRequest:
    query: str
    geo: str
    limit: int = 20

    def __post_init__(self) -> None:
        if not self.query.strip():
            raise ValueError("query must be non-empty")
        if not self.geo.strip():
            raise ValueError("geo must be non-empty")
        if self.limit <= 0:
            raise ValueError("limit must be > 0")


@dataclass(frozen=True, slots=True)
class RunHandle:
    provider_run_id: str
    results_handle: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PollStatus:
    state: ProviderRunState
    results_handle: Optional[str] = None
    raw_status: str = ""


@dataclass(frozen=True, slots=True)
class PollResult:
    outcome: PollOutcome
    attempts: int
    last_status: Optional[PollStatus] = None
    error: str = ""

    @property
    def results_handle(self) -> Optional[str]:
        return self.last_status.results_handle if self.last_status else None


@dataclass(frozen=True, slots=True)
class ScrapeRun:
    run_id: str
    query: str
    geo: str
    status: RunStatus = RunStatus.SCRAPING
    provider_run_id: str = ""
    config: dict[str, Any] = field(default_factory=dict)
