"""
Pytest configuration and shared fakes.

Adds the project root to the Python path so tests can import domain,
repositories, providers, services and api, and provides:
- FakeSupabase: an in-memory stand-in for the async Supabase query builder.
  It enforces the unique keys the repositories rely on, so idempotency is
  exercised for real.
- Fake providers that record their calls.
"""

from __future__ import annotations

import asyncio
import copy
import sys
import uuid
from collections import defaultdict
from pathlib import Path
from typing import Any, Callable, Iterable, List, Mapping, Optional

# Add the project directory to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest  # noqa: E402
from postgrest.exceptions import APIError  # noqa: E402

from domain.intelligence import BusinessIntelligence  # noqa: E402
from domain.run import PollStatus, RunHandle  # noqa: E402
from domain.verification import VerificationOutcome, VerificationResult  # noqa: E402
from providers.base import ProviderError  # noqa: E402
from providers.instantly import SimulatedOutreachProvider  # noqa: E402
from repositories.channel_repository import ChannelRepository  # noqa: E402
from repositories.lead_repository import LeadRepository  # noqa: E402
from repositories.outreach_repository import OutreachRepository  # noqa: E402
from repositories.run_repository import RunRepository  # noqa: E402
from repositories.verification_repository import VerificationRepository  # noqa: E402
from services.enrichment_service import EnrichmentConfig, EnrichmentOrchestrator  # noqa: E402
from services.verification_service import EmailVerificationService  # noqa: E402


# ============================================================================
# In-memory Supabase
# ============================================================================

# Unique constraints per table (NULL never conflicts, as in Postgres).
UNIQUE_KEYS: Mapping[str, List[tuple[str, ...]]] = {
    "leads": [("dedupe_key",)],
    "lead_channels": [("lead_id", "type", "value")],
    "contacts": [("lead_id", "email")],
    "email_verifications": [("email",)],
    "scrape_run_leads": [("run_id", "lead_id")],
    "comm_events": [("external_id",)],
}


class FakeResponse:
    def __init__(self, data: Optional[List[dict]] = None, error: Optional[str] = None) -> None:
        self.data = data
        self.error = error


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str) -> None:
        self._db = db
        self.table = table
        self.op = "select"
        self.payload: Any = None
        self.on_conflict = ""
        self.ignore_duplicates = False
        self.filters: List[tuple[str, str, Any]] = []
        self.row_limit: Optional[int] = None

    def select(self, *columns: str) -> "FakeQuery":
        self.op = "select"
        return self

    def insert(self, payload: Any) -> "FakeQuery":
        self.op = "insert"
        self.payload = payload
        return self

    def upsert(self, payload: Any, on_conflict: str = "", ignore_duplicates: bool = False) -> "FakeQuery":
        self.op = "upsert"
        self.payload = payload
        self.on_conflict = on_conflict
        self.ignore_duplicates = ignore_duplicates
        return self

    def update(self, payload: Any) -> "FakeQuery":
        self.op = "update"
        self.payload = payload
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(("eq", column, value))
        return self

    def in_(self, column: str, values: Iterable[Any]) -> "FakeQuery":
        self.filters.append(("in", column, list(values)))
        return self

    def limit(self, count: int) -> "FakeQuery":
        self.row_limit = count
        return self

    def matches(self, row: Mapping[str, Any]) -> bool:
        for kind, column, value in self.filters:
            if kind == "eq" and row.get(column) != value:
                return False
            if kind == "in" and row.get(column) not in value:
                return False
        return True

    async def execute(self) -> FakeResponse:
        return self._db.run(self)


class FakeSupabase:
    """Stores rows per table; `fail_when` injects Supabase errors."""

    def __init__(self) -> None:
        self.tables: defaultdict[str, List[dict]] = defaultdict(list)
        self.calls: List[tuple[str, str]] = []
        self._failures: List[tuple[str, str, Optional[Callable[[Any], bool]]]] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rows(self, name: str) -> List[dict]:
        return self.tables[name]

    def fail_when(self, table: str, op: str, match: Optional[Callable[[Any], bool]] = None) -> None:
        """Make matching operations return an error response. `match` receives the payload."""

        self._failures.append((table, op, match))

    def _injected_failure(self, query: FakeQuery) -> bool:
        for table, op, match in self._failures:
            if table == query.table and op == query.op and (match is None or match(query.payload)):
                return True
        return False

    def run(self, query: FakeQuery) -> FakeResponse:
        self.calls.append((query.table, query.op))
        if self._injected_failure(query):
            return FakeResponse(None, error=f"injected {query.op} failure on {query.table}")

        if query.op == "select":
            rows = [copy.deepcopy(r) for r in self.tables[query.table] if query.matches(r)]
            if query.row_limit is not None:
                rows = rows[: query.row_limit]
            return FakeResponse(rows)

        if query.op == "update":
            updated = []
            for row in self.tables[query.table]:
                if query.matches(row):
                    row.update(copy.deepcopy(query.payload))
                    updated.append(copy.deepcopy(row))
            return FakeResponse(updated)

        payload = query.payload if isinstance(query.payload, list) else [query.payload]
        if query.op == "insert":
            return FakeResponse([self._insert(query.table, p) for p in payload])

        conflict = tuple(c.strip() for c in query.on_conflict.split(",") if c.strip())
        out = []
        for item in payload:
            existing = self._find_conflict(query.table, conflict, item) if conflict else None
            if existing is None:
                out.append(self._insert(query.table, item))
            elif not query.ignore_duplicates:
                existing.update(copy.deepcopy(item))
                out.append(copy.deepcopy(existing))
        return FakeResponse(out)

    def _find_conflict(self, table: str, columns: tuple[str, ...], item: Mapping[str, Any]) -> Optional[dict]:
        values = [item.get(c) for c in columns]
        if any(v is None for v in values):
            return None
        for row in self.tables[table]:
            if [row.get(c) for c in columns] == values:
                return row
        return None

    def _insert(self, table: str, item: Mapping[str, Any]) -> dict:
        row = copy.deepcopy(dict(item))
        row.setdefault("id", str(uuid.uuid4()))
        for columns in UNIQUE_KEYS.get(table, []):
            if self._find_conflict(table, columns, row) is not None:
                raise APIError(
                    {
                        "message": f"duplicate key value violates unique constraint on {table}{columns}",
                        "code": "23505",
                    }
                )
        self.tables[table].append(row)
        return copy.deepcopy(row)


# ============================================================================
# Fake providers
# ============================================================================

class FakeFetcher:
    def __init__(self, pages: Optional[List[str]] = None, error: Optional[Exception] = None, delay: float = 0) -> None:
        self.pages = pages if pages is not None else ["Centro de fisioterapia en Madrid"]
        self.error = error
        self.delay = delay
        self.calls: List[tuple[str, int]] = []

    async def fetch_pages(self, url: str, max_pages: int) -> List[str]:
        self.calls.append((url, max_pages))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.pages)


class FakeAnalyzer:
    def __init__(
        self,
        intelligence: Optional[BusinessIntelligence] = None,
        error: Optional[Exception] = None,
        delay: float = 0,
    ) -> None:
        self.intelligence = intelligence or BusinessIntelligence.empty()
        self.error = error
        self.delay = delay
        self.calls: List[tuple[str, List[str]]] = []

    async def summarize(self, business_name: str, texts: Any) -> BusinessIntelligence:
        self.calls.append((business_name, list(texts)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.intelligence


class FakeVerifier:
    name = "fake_verifier"

    def __init__(
        self,
        results: Optional[Mapping[str, VerificationResult]] = None,
        *,
        default: VerificationResult = VerificationResult.DELIVERABLE,
        configured: bool = True,
        error: Optional[Exception] = None,
        delay: float = 0,
    ) -> None:
        self.results = dict(results or {})
        self.default = default
        self._configured = configured
        self.error = error
        self.delay = delay
        self.calls: List[str] = []

    @property
    def configured(self) -> bool:
        return self._configured

    async def verify(self, email: str) -> VerificationOutcome:
        self.calls.append(email)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        result = self.results.get(email, self.default)
        return VerificationOutcome(result=result, raw={"result": result.value})


class FakeListings:
    """Poll statuses are served in order; the last one repeats. Exceptions are raised."""

    def __init__(
        self,
        statuses: Optional[List[Any]] = None,
        records: Optional[List[dict]] = None,
        *,
        submit_error: Optional[Exception] = None,
        results_handle: Optional[str] = "dataset_1",
    ) -> None:
        self.statuses = list(statuses or [])
        self.records = list(records or [])
        self.submit_error = submit_error
        self.results_handle = results_handle
        self.submitted: List[tuple[Any, Optional[str]]] = []
        self.polls = 0
        self.fetched: List[str] = []

    async def submit_search(self, request: Any, *, webhook_url: Optional[str] = None) -> RunHandle:
        self.submitted.append((request, webhook_url))
        if self.submit_error is not None:
            raise self.submit_error
        return RunHandle(provider_run_id="apify_run_1", results_handle=self.results_handle)

    async def poll_status(self, handle: RunHandle) -> PollStatus:
        self.polls += 1
        item = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def fetch_results(self, results_handle: str) -> List[dict]:
        self.fetched.append(results_handle)
        return list(self.records)


class RecordingOutreachProvider:
    simulated = False

    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.enrolled: List[tuple[str, str]] = []
        self.paused: List[str] = []
        self.resumed: List[str] = []

    async def enroll(self, campaign_id: str, *, email: str, business_name: str, variables: Mapping[str, Any]) -> str:
        if self.error is not None:
            raise self.error
        self.enrolled.append((campaign_id, email))
        return f"inst_{len(self.enrolled)}"

    async def pause(self, enrollment: Any) -> None:
        self.paused.append(enrollment.enrollment_id)

    async def resume(self, enrollment: Any) -> None:
        self.resumed.append(enrollment.enrollment_id)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def leads(db: FakeSupabase) -> LeadRepository:
    return LeadRepository(db)


@pytest.fixture
def channels(db: FakeSupabase) -> ChannelRepository:
    return ChannelRepository(db)


@pytest.fixture
def runs(db: FakeSupabase) -> RunRepository:
    return RunRepository(db)


@pytest.fixture
def outreach_repo(db: FakeSupabase) -> OutreachRepository:
    return OutreachRepository(db)


@pytest.fixture
def verifications(db: FakeSupabase) -> VerificationRepository:
    return VerificationRepository(db)


@pytest.fixture
def simulated_provider() -> SimulatedOutreachProvider:
    return SimulatedOutreachProvider()


def make_orchestrator(
    db: FakeSupabase,
    *,
    fetcher: Optional[FakeFetcher] = None,
    analyzer: Optional[FakeAnalyzer] = None,
    verifier: Optional[FakeVerifier] = None,
    config: Optional[EnrichmentConfig] = None,
) -> EnrichmentOrchestrator:
    return EnrichmentOrchestrator(
        leads=LeadRepository(db),
        channels=ChannelRepository(db),
        verification=EmailVerificationService(
            VerificationRepository(db), verifier or FakeVerifier(), timeout_seconds=1.0
        ),
        fetcher=fetcher or FakeFetcher(),
        analyzer=analyzer or FakeAnalyzer(),
        config=config or EnrichmentConfig(fetch_timeout_seconds=1.0, ai_timeout_seconds=1.0),
    )


__all__ = [
    "FakeAnalyzer",
    "FakeFetcher",
    "FakeListings",
    "FakeSupabase",
    "FakeVerifier",
    "ProviderError",
    "RecordingOutreachProvider",
    "make_orchestrator",
]
