"""
Lead repository (persistence).

This module provides *only* persistence operations for the Lead entity.
No business rules (scoring, routing, terminal-status protection) belong here.

Identity:
- `id` is generated by the database.
- `dedupe_key` holds the best non-empty dedupe key and is unique; the three
  ranked keys are stored alongside it so a record is matched through the
  column of its highest-ranked key.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from domain.lead import (
    CleanLead,
    DedupeKeys,
    LeadRecord,
    LeadStatus,
    PipelineStage,
    RoutingStatus,
)
from domain.time import utc_now

from repositories.client import execute

# Supabase table name for Lead records.
# Keep this aligned with your database schema.
_LEADS_TABLE: str = "leads"

_DEDUPE_COLUMNS: Mapping[str, str] = {
    "primary": "dedupe_key_primary",
    "secondary": "dedupe_key_secondary",
    "tertiary": "dedupe_key_tertiary",
}


def _enum_or_default(enum_cls: Any, value: Any, default: Any) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        return default


def clean_lead_columns(clean: CleanLead) -> dict[str, Any]:
    """Flat `leads` columns derived from a CleanLead (plus the full JSON copy)."""

    keys = clean.dedupe_keys
    return {
        "business_name": clean.name,
        "business_type": clean.category,
        "address": clean.address,
        "city": clean.city,
        "country": clean.country_code,
        "website": clean.website,
        "domain": clean.domain,
        "phone_number": clean.phone_primary,
        "email": clean.email_primary,
        "rating": clean.total_score,
        "reviews_count": clean.reviews_count,
        "place_id": clean.place_id or None,
        "phone_type": clean.phone_type.value,
        "whatsapp_likely": clean.whatsapp_likely,
        "lead_clean": clean.to_dict(),
        "dedupe_key": keys.best or None,
        "dedupe_key_primary": keys.primary or None,
        "dedupe_key_secondary": keys.secondary or None,
        "dedupe_key_tertiary": keys.tertiary or None,
    }


def _row_to_lead(row: Mapping[str, Any]) -> LeadRecord:
    """Convert a Supabase row into a LeadRecord."""

    clean_data = row.get("lead_clean") or {}
    if clean_data:
        clean = CleanLead.from_dict(clean_data)
    else:
        clean = CleanLead(
            name=str(row.get("business_name") or ""),
            website=str(row.get("website") or ""),
            domain=str(row.get("domain") or ""),
            email_primary=str(row.get("email") or ""),
            phone_primary=str(row.get("phone_number") or ""),
            city=str(row.get("city") or ""),
            address=str(row.get("address") or ""),
            place_id=str(row.get("place_id") or ""),
            dedupe_keys=DedupeKeys(
                primary=str(row.get("dedupe_key_primary") or ""),
                secondary=str(row.get("dedupe_key_secondary") or ""),
                tertiary=str(row.get("dedupe_key_tertiary") or ""),
            ),
        )

    return LeadRecord(
        lead_id=str(row["id"]),
        clean=clean,
        status=_enum_or_default(LeadStatus, row.get("status"), LeadStatus.NEW),
        pipeline_stage=_enum_or_default(PipelineStage, row.get("pipeline_stage"), PipelineStage.NEW),
        routing_status=_enum_or_default(RoutingStatus, row.get("routing_status"), RoutingStatus.ENRICH),
        lead_score=int(row.get("lead_score") or 0),
        lead_tier=str(row.get("lead_tier") or ""),
        email=str(row.get("email") or ""),
        search_query=str(row.get("search_query") or ""),
        personalization_summary=str(row.get("personalization_summary") or ""),
        icebreaker=str(row.get("icebreaker") or ""),
        meta=dict(row.get("meta") or {}),
    )


class LeadRepository:
    """Async persistence for the `leads` table."""

    def __init__(self, client: Any) -> None:
        self._client = client

    def _table(self) -> Any:
        return self._client.table(_LEADS_TABLE)

    async def get_lead(self, lead_id: str) -> Optional[LeadRecord]:
        """
        Fetch a Lead by ID.

        Returns:
        - LeadRecord if found
        - None if no record exists for the given ID
        """

        rows = await execute(
            self._table().select("*").eq("id", str(lead_id)).limit(1),
            "fetch lead",
        )
        return _row_to_lead(rows[0]) if rows else None

    async def find_by_dedupe_keys(self, keys: DedupeKeys) -> Optional[LeadRecord]:
        """
        Existing lead matching the record's highest-ranked dedupe key.

        Only the first non-empty key is compared, against the column of the
        same rank: a record with a place id never matches through its
        domain/city or name/address keys.
        """

        ranked = keys.ranked()
        if not ranked:
            return None

        rank, key = ranked[0]
        rows = await execute(
            self._table().select("*").eq(_DEDUPE_COLUMNS[rank], key).limit(1),
            "look up lead by dedupe key",
        )
        return _row_to_lead(rows[0]) if rows else None

    async def find_by_email(self, email: str) -> Optional[LeadRecord]:
        rows = await execute(
            self._table().select("*").eq("email", email.strip().lower()).limit(1),
            "look up lead by email",
        )
        return _row_to_lead(rows[0]) if rows else None

    async def insert_lead(self, fields: Mapping[str, Any]) -> LeadRecord:
        """
        Insert a new lead.

        Leads that carry a dedupe key are upserted on it, so two concurrent
        ingestions of the same business still produce a single row.
        """

        payload = {**fields, "updated_at": utc_now().isoformat()}
        if payload.get("dedupe_key"):
            query = self._table().upsert(payload, on_conflict="dedupe_key")
        else:
            query = self._table().insert(payload)

        rows = await execute(query, "insert lead")
        if not rows:
            raise RuntimeError("Failed to insert lead: no row returned")
        return _row_to_lead(rows[0])

    async def update_lead(self, lead_id: str, fields: Mapping[str, Any]) -> None:
        payload = {**fields, "updated_at": utc_now().isoformat()}
        await execute(
            self._table().update(payload).eq("id", str(lead_id)),
            "update lead",
        )

    async def set_status(self, lead_id: str, status: LeadStatus) -> None:
        await self.update_lead(lead_id, {"status": status.value})

    async def list_leads(
        self,
        *,
        status: Optional[LeadStatus] = None,
        routing_status: Optional[RoutingStatus] = None,
    ) -> list[LeadRecord]:
        query = self._table().select("*")
        if status is not None:
            query = query.eq("status", status.value)
        if routing_status is not None:
            query = query.eq("routing_status", routing_status.value)

        rows = await execute(query, "list leads")
        return [_row_to_lead(row) for row in rows]


__all__ = ["LeadRepository", "clean_lead_columns"]
