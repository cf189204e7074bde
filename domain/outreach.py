"""
Domain: Outreach enrollments and provider events.

Contract excerpts implemented here:
- Provider webhooks spell event types inconsistently (open/opened,
  reply/replied, ...). They are normalized onto EventType.
- Events are idempotent on external_id; a payload without an id gets a
  deterministic one built from type, email and timestamp.
- reply / bounce / unsubscribe close the lead with the matching terminal
  CLOSED_* routing status.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from .channel import ChannelStatus
from .lead import RoutingStatus
from .time import parse_utc_datetime, utc_now


class EventType(str, Enum):
    SENT = "sent"
    OPENED = "opened"
    CLICKED = "clicked"
    REPLIED = "replied"
    BOUNCED = "bounced"
    UNSUBSCRIBED = "unsubscribed"


_EVENT_ALIASES: Mapping[str, EventType] = {
    "sent": EventType.SENT,
    "email_sent": EventType.SENT,
    "open": EventType.OPENED,
    "opened": EventType.OPENED,
    "email_opened": EventType.OPENED,
    "click": EventType.CLICKED,
    "clicked": EventType.CLICKED,
    "link_clicked": EventType.CLICKED,
    "reply": EventType.REPLIED,
    "replied": EventType.REPLIED,
    "reply_received": EventType.REPLIED,
    "bounce": EventType.BOUNCED,
    "bounced": EventType.BOUNCED,
    "email_bounced": EventType.BOUNCED,
    "unsubscribe": EventType.UNSUBSCRIBED,
    "unsubscribed": EventType.UNSUBSCRIBED,
    "lead_unsubscribed": EventType.UNSUBSCRIBED,
}

_CLOSING: Mapping[EventType, RoutingStatus] = {
    EventType.REPLIED: RoutingStatus.CLOSED_REPLY,
    EventType.BOUNCED: RoutingStatus.CLOSED_BOUNCE,
    EventType.UNSUBSCRIBED: RoutingStatus.CLOSED_UNSUBSCRIBE,
}

_CHANNEL_STATUS: Mapping[EventType, ChannelStatus] = {
    EventType.SENT: ChannelStatus.CONTACTED,
    EventType.REPLIED: ChannelStatus.REPLIED,
    EventType.BOUNCED: ChannelStatus.BOUNCED,
    EventType.UNSUBSCRIBED: ChannelStatus.UNSUBSCRIBED,
}


class EnrollmentStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    BOUNCED = "bounced"


def normalize_event_type(value: Any) -> EventType:
    key = str(value or "").strip().lower().replace("-", "_")
    try:
        return _EVENT_ALIASES[key]
    except KeyError:
        raise ValueError(f"Unsupported outreach event type: {value!r}") from None


def closing_routing_status(event_type: EventType) -> Optional[RoutingStatus]:
    return _CLOSING.get(event_type)


def channel_status_for(event_type: EventType) -> Optional[ChannelStatus]:
    return _CHANNEL_STATUS.get(event_type)


def enrollment_status_after(event_type: EventType, current: EnrollmentStatus) -> EnrollmentStatus:
    if event_type in (EventType.REPLIED, EventType.UNSUBSCRIBED):
        return EnrollmentStatus.COMPLETED
    if event_type is EventType.BOUNCED:
        return EnrollmentStatus.BOUNCED
    return current


@dataclass(frozen=True, slots=True)
class OutreachEvent:
    event_type: EventType
    lead_email: str
    external_id: str
    occurred_at: datetime
    provider: str = "instantly"
    campaign_id: str = ""
    raw: Mapping[str, Any] = field(default_factory=dict)

    @staticmethod
    def from_webhook(payload: Mapping[str, Any], *, provider: str = "instantly") -> "OutreachEvent":
        """
        Build an event from a provider webhook body.

        Raises:
        - ValueError for an unsupported event type or a missing lead email
        """

        event_type = normalize_event_type(payload.get("event_type") or payload.get("type"))
        email = str(payload.get("lead_email") or payload.get("email") or "").strip().lower()
        if not email:
            raise ValueError("Outreach event has no lead email")

        timestamp = payload.get("timestamp")
        try:
            occurred_at = parse_utc_datetime(timestamp) if timestamp else utc_now()
        except (TypeError, ValueError):
            occurred_at = utc_now()

        external_id = str(payload.get("id") or "").strip()
        if not external_id:
            external_id = f"{event_type.value}_{email}_{timestamp or occurred_at.isoformat()}"

        return OutreachEvent(
            event_type=event_type,
            lead_email=email,
            external_id=external_id,
            occurred_at=occurred_at,
            provider=provider,
            campaign_id=str(payload.get("campaign_id") or ""),
            raw=dict(payload),
        )


@dataclass(frozen=True, slots=True)
class Enrollment:
    enrollment_id: str
    lead_id: str
    campaign_id: str
    provider_lead_id: str
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE
    current_step: int = 1
    simulated: bool = False
    last_event_type: Optional[EventType] = None
