"""
Email verification with a permanent per-address cache.

Guarantees:
- A cached address never triggers a provider call.
- Concurrent requests for the same uncached address share one provider call.
- Every provider answer is cached; a missing API key, a provider error or a
  timeout is reported but never written to the cache.
- Malformed addresses short-circuit to `invalid` without any I/O.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from domain.time import utc_now
from domain.verification import (
    CACHEABLE_RESULTS,
    EmailVerificationRecord,
    VerificationResult,
    coerce_result,
    is_valid_email_format,
    is_verified_result,
)
from providers.base import EmailVerifier
from repositories.verification_repository import VerificationRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class VerificationCheck:
    """
    checked is False when no provider answer exists (verifier not configured,
    provider error, timeout): the address is neither verified nor rejected.
    """

    email: str
    result: VerificationResult
    cached: bool = False
    checked: bool = True

    @property
    def is_verified(self) -> bool:
        return is_verified_result(self.result)


class EmailVerificationService:
    def __init__(
        self,
        repository: VerificationRepository,
        verifier: EmailVerifier,
        *,
        timeout_seconds: float = 15.0,
    ) -> None:
        self._repository = repository
        self._verifier = verifier
        self._timeout = timeout_seconds
        self._inflight: dict[str, asyncio.Task[VerificationCheck]] = {}

    async def verify(self, email: str) -> VerificationCheck:
        address = (email or "").strip().lower()
        if not is_valid_email_format(address):
            logger.info("Invalid email format: %r", email)
            return VerificationCheck(email=address, result=VerificationResult.INVALID)

        task = self._inflight.get(address)
        if task is None:
            task = asyncio.create_task(self._verify_uncached(address))
            self._inflight[address] = task
            task.add_done_callback(lambda _t, key=address: self._inflight.pop(key, None))

        # shield: a cancelled caller must not cancel the call other callers share
        return await asyncio.shield(task)

    async def _cached(self, address: str) -> Optional[EmailVerificationRecord]:
        try:
            return await self._repository.get(address)
        except RuntimeError as exc:
            logger.warning("Verification cache read failed for %s: %s", address, exc)
            return None

    async def _verify_uncached(self, address: str) -> VerificationCheck:
        cached = await self._cached(address)
        if cached is not None:
            logger.debug("Verification cache hit for %s: %s", address, cached.result)
            return VerificationCheck(email=address, result=coerce_result(cached.result), cached=True)

        if not self._verifier.configured:
            logger.warning("Email verifier not configured; %s left unverified", address)
            return VerificationCheck(email=address, result=VerificationResult.UNKNOWN, checked=False)

        try:
            outcome = await asyncio.wait_for(self._verifier.verify(address), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("Verification of %s timed out after %.1fs", address, self._timeout)
            return VerificationCheck(email=address, result=VerificationResult.ERROR, checked=False)
        except Exception as exc:
            logger.warning("Verification of %s failed: %s", address, exc)
            return VerificationCheck(email=address, result=VerificationResult.ERROR, checked=False)

        if outcome.result in CACHEABLE_RESULTS:
            record = EmailVerificationRecord(
                email=address,
                result=outcome.result.value,
                provider=self._verifier.name,
                raw_response=dict(outcome.raw),
                verified_at=utc_now(),
            )
            try:
                await self._repository.save(record)
            except RuntimeError as exc:
                logger.warning("Verification cache write failed for %s: %s", address, exc)

        logger.info("Verified %s: %s", address, outcome.result.value)
        return VerificationCheck(email=address, result=outcome.result)


__all__ = ["EmailVerificationService", "VerificationCheck"]
