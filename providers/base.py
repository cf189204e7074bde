"""
Contracts for the external collaborators of the pipeline.

Services depend on these Protocols, never on a concrete HTTP client, so any
provider can be swapped (or faked in tests) without touching orchestration
code.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Protocol, Sequence

from domain.intelligence import BusinessIntelligence
from domain.outreach import Enrollment
from domain.run import PollStatus, RunHandle, SearchRequest
from domain.verification import VerificationOutcome


class ProviderError(Exception):
    """A provider call failed (transport error, timeout, non-2xx, malformed body)."""

    def __init__(self, provider: str, message: str, *, status_code: Optional[int] = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"[{provider}] {message}")


class ListingsProvider(Protocol):
    async def submit_search(
        self, request: SearchRequest, *, webhook_url: Optional[str] = None
    ) -> RunHandle: ...

    async def poll_status(self, handle: RunHandle) -> PollStatus: ...

    async def fetch_results(self, results_handle: str) -> List[Mapping[str, Any]]: ...


class ContentFetcher(Protocol):
    async def fetch_pages(self, url: str, max_pages: int) -> List[str]: ...


class TextAnalyzer(Protocol):
    async def summarize(self, business_name: str, texts: Sequence[str]) -> BusinessIntelligence: ...


class EmailVerifier(Protocol):
    name: str

    @property
    def configured(self) -> bool: ...

    async def verify(self, email: str) -> VerificationOutcome: ...


class OutreachProvider(Protocol):
    simulated: bool

    async def enroll(
        self,
        campaign_id: str,
        *,
        email: str,
        business_name: str,
        variables: Mapping[str, Any],
    ) -> str: ...

    async def pause(self, enrollment: Enrollment) -> None: ...

    async def resume(self, enrollment: Enrollment) -> None: ...


__all__ = [
    "ContentFetcher",
    "EmailVerifier",
    "ListingsProvider",
    "OutreachProvider",
    "ProviderError",
    "TextAnalyzer",
]
