"""
Domain: Email verification results and cache records.

The verification cache is write-once: a record for an address is stored the
first time a definitive provider answer arrives and is reused forever after.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from .time import require_utc_timestamp


class VerificationResult(str, Enum):
    DELIVERABLE = "deliverable"
    RISKY = "risky"
    UNDELIVERABLE = "undeliverable"
    UNKNOWN = "unknown"
    INVALID = "invalid"
    ERROR = "error"


# "ok" is the provider's raw spelling of deliverable; older cache rows store it verbatim.
VERIFIED_RESULTS = frozenset({"deliverable", "risky", "ok"})

# Everything a provider actually answered is cached; local errors are retried next time.
CACHEABLE_RESULTS = frozenset(
    {
        VerificationResult.DELIVERABLE,
        VerificationResult.RISKY,
        VerificationResult.UNDELIVERABLE,
        VerificationResult.UNKNOWN,
        VerificationResult.INVALID,
    }
)

_EMAIL_FORMAT_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email_format(email: str) -> bool:
    return bool(_EMAIL_FORMAT_RE.match(email or ""))


_LEGACY_RESULTS: Mapping[str, VerificationResult] = {
    "ok": VerificationResult.DELIVERABLE,
    "catch_all": VerificationResult.RISKY,
    "disposable": VerificationResult.UNDELIVERABLE,
}


def coerce_result(value: Any) -> VerificationResult:
    """Map a stored result string (current or legacy provider spelling) onto VerificationResult."""

    text = str(value or "").strip().lower()
    try:
        return VerificationResult(text)
    except ValueError:
        return _LEGACY_RESULTS.get(text, VerificationResult.UNKNOWN)


def is_verified_result(result: Any) -> bool:
    value = result.value if isinstance(result, VerificationResult) else str(result or "")
    return value.lower() in VERIFIED_RESULTS


@dataclass(frozen=True, slots=True)
class VerificationOutcome:
    """What a verification provider answered for one address."""

    result: VerificationResult
    raw: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_verified(self) -> bool:
        return is_verified_result(self.result)


@dataclass(frozen=True, slots=True)
class EmailVerificationRecord:
    email: str
    result: str
    provider: str
    raw_response: Mapping[str, Any]
    verified_at: datetime

    def __post_init__(self) -> None:
        if not self.email or self.email != self.email.strip().lower():
            raise ValueError("email must be a non-empty lower-cased address")
        require_utc_timestamp("verified_at", self.verified_at)

    @property
    def is_verified(self) -> bool:
        return is_verified_result(self.result)
