"""
Outreach repository (persistence).

Tables:
- comm_events: provider events, unique on external_id
- outreach_enrollments: one row per (lead, campaign) enrollment
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from domain.outreach import Enrollment, EnrollmentStatus, EventType, OutreachEvent
from domain.time import to_iso_utc, utc_now

from repositories.client import execute

_EVENTS_TABLE: str = "comm_events"
_ENROLLMENTS_TABLE: str = "outreach_enrollments"


def _row_to_enrollment(row: Mapping[str, Any]) -> Enrollment:
    try:
        status = EnrollmentStatus(row.get("status") or "active")
    except ValueError:
        status = EnrollmentStatus.ACTIVE
    try:
        last_event = EventType(row["last_event_type"]) if row.get("last_event_type") else None
    except ValueError:
        last_event = None
    return Enrollment(
        enrollment_id=str(row["id"]),
        lead_id=str(row["lead_id"]),
        campaign_id=str(row.get("campaign_id") or ""),
        provider_lead_id=str(row.get("provider_lead_id") or ""),
        status=status,
        current_step=int(row.get("current_step") or 1),
        simulated=bool(row.get("simulated")),
        last_event_type=last_event,
    )


class OutreachRepository:
    def __init__(self, client: Any) -> None:
        self._client = client

    async def record_event(
        self, lead_id: str, event: OutreachEvent, *, enrollment_id: Optional[str] = None
    ) -> bool:
        """
        Store an event once.

        Returns:
        - True if the event is new
        - False if an event with the same external_id was already recorded
        """

        rows = await execute(
            self._client.table(_EVENTS_TABLE).upsert(
                {
                    "lead_id": str(lead_id),
                    "enrollment_id": enrollment_id,
                    "event_type": event.event_type.value,
                    "provider": event.provider,
                    "external_id": event.external_id,
                    "meta": dict(event.raw),
                    "occurred_at": to_iso_utc(event.occurred_at, name="occurred_at"),
                },
                on_conflict="external_id",
                ignore_duplicates=True,
            ),
            "record outreach event",
        )
        return bool(rows)

    async def create_enrollment(
        self,
        *,
        lead_id: str,
        campaign_id: str,
        provider_lead_id: str,
        simulated: bool,
        variables: Mapping[str, Any],
    ) -> Enrollment:
        rows = await execute(
            self._client.table(_ENROLLMENTS_TABLE).insert(
                {
                    "lead_id": str(lead_id),
                    "campaign_id": campaign_id,
                    "provider_lead_id": provider_lead_id,
                    "status": EnrollmentStatus.ACTIVE.value,
                    "current_step": 1,
                    "simulated": simulated,
                    "meta": dict(variables),
                    "enrolled_at": utc_now().isoformat(),
                }
            ),
            "create enrollment",
        )
        if not rows:
            raise RuntimeError("Failed to create enrollment: no row returned")
        return _row_to_enrollment(rows[0])

    async def get_enrollment(self, enrollment_id: str) -> Optional[Enrollment]:
        rows = await execute(
            self._client.table(_ENROLLMENTS_TABLE).select("*").eq("id", str(enrollment_id)).limit(1),
            "fetch enrollment",
        )
        return _row_to_enrollment(rows[0]) if rows else None

    async def find_enrollment(self, lead_id: str, campaign_id: str = "") -> Optional[Enrollment]:
        query = self._client.table(_ENROLLMENTS_TABLE).select("*").eq("lead_id", str(lead_id))
        if campaign_id:
            query = query.eq("campaign_id", campaign_id)
        rows = await execute(query.limit(1), "find enrollment")
        return _row_to_enrollment(rows[0]) if rows else None

    async def update_enrollment(
        self,
        enrollment_id: str,
        *,
        status: Optional[EnrollmentStatus] = None,
        last_event_type: Optional[EventType] = None,
    ) -> None:
        payload: dict[str, Any] = {"updated_at": utc_now().isoformat()}
        if status is not None:
            payload["status"] = status.value
        if last_event_type is not None:
            payload["last_event_type"] = last_event_type.value
            payload["last_event_at"] = utc_now().isoformat()
        await execute(
            self._client.table(_ENROLLMENTS_TABLE).update(payload).eq("id", str(enrollment_id)),
            "update enrollment",
        )


__all__ = ["OutreachRepository"]
