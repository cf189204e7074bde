"""
MillionVerifier single-address verification client.

Provider result codes are mapped onto VerificationResult:
  ok -> deliverable, catch_all -> risky, disposable -> undeliverable,
  invalid -> invalid, unknown -> unknown.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

import httpx

from domain.verification import VerificationOutcome, VerificationResult
from providers.base import ProviderError

logger = logging.getLogger(__name__)

MILLION_VERIFIER_URL = "https://api.millionverifier.com/api/v3/"
PROVIDER_NAME = "million_verifier"

# Seconds the provider itself may spend on an SMTP check.
PROVIDER_CHECK_TIMEOUT = 10

_RESULT_MAP: Mapping[str, VerificationResult] = {
    "ok": VerificationResult.DELIVERABLE,
    "catch_all": VerificationResult.RISKY,
    "disposable": VerificationResult.UNDELIVERABLE,
    "invalid": VerificationResult.INVALID,
    "unknown": VerificationResult.UNKNOWN,
}


def map_result(code: str) -> VerificationResult:
    return _RESULT_MAP.get((code or "").strip().lower(), VerificationResult.UNKNOWN)


class MillionVerifierClient:
    name = PROVIDER_NAME

    def __init__(
        self,
        api_key: Optional[str],
        *,
        timeout_seconds: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def verify(self, email: str) -> VerificationOutcome:
        if not self._api_key:
            return VerificationOutcome(result=VerificationResult.UNKNOWN)

        params = {"api": self._api_key, "email": email, "timeout": PROVIDER_CHECK_TIMEOUT}
        try:
            response = await self._client.get(MILLION_VERIFIER_URL, params=params)
        except httpx.TimeoutException as exc:
            raise ProviderError(PROVIDER_NAME, "verification timed out") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(PROVIDER_NAME, f"transport error: {exc}") from exc

        if response.status_code >= 400:
            raise ProviderError(
                PROVIDER_NAME, f"returned {response.status_code}", status_code=response.status_code
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderError(PROVIDER_NAME, "non-JSON response") from exc
        if not isinstance(body, dict):
            raise ProviderError(PROVIDER_NAME, "unexpected response shape")
        if body.get("error"):
            raise ProviderError(PROVIDER_NAME, f"provider error: {body['error']}")

        code = str(body.get("result") or body.get("resultcode") or "unknown")
        return VerificationOutcome(result=map_result(code), raw=body)


__all__ = ["MillionVerifierClient", "map_result"]
