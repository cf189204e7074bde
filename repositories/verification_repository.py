"""
Email verification cache repository (persistence).

The `email_verifications` table is unique on `email` and written once: a
second save for the same address is ignored.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from domain.time import parse_utc_datetime, to_iso_utc
from domain.verification import EmailVerificationRecord

from repositories.client import execute

_VERIFICATIONS_TABLE: str = "email_verifications"


def _record_to_row(record: EmailVerificationRecord) -> dict[str, Any]:
    return {
        "email": record.email,
        "result": record.result,
        "provider": record.provider,
        "raw_response": dict(record.raw_response),
        "verified_at": to_iso_utc(record.verified_at, name="verified_at"),
    }


def _row_to_record(row: Mapping[str, Any]) -> EmailVerificationRecord:
    return EmailVerificationRecord(
        email=str(row["email"]),
        result=str(row.get("result") or "unknown"),
        provider=str(row.get("provider") or ""),
        raw_response=dict(row.get("raw_response") or {}),
        verified_at=parse_utc_datetime(row["verified_at"]),
    )


class VerificationRepository:
    def __init__(self, client: Any) -> None:
        self._client = client

    async def get(self, email: str) -> Optional[EmailVerificationRecord]:
        rows = await execute(
            self._client.table(_VERIFICATIONS_TABLE).select("*").eq("email", email).limit(1),
            "fetch email verification",
        )
        return _row_to_record(rows[0]) if rows else None

    async def save(self, record: EmailVerificationRecord) -> None:
        await execute(
            self._client.table(_VERIFICATIONS_TABLE).upsert(
                _record_to_row(record), on_conflict="email", ignore_duplicates=True
            ),
            "save email verification",
        )


__all__ = ["VerificationRepository"]
