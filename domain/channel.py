"""
Domain: Contact channels and contacts.

Contract excerpts implemented here:
- One Channel per (lead_id, type, value). Repeated discovery of the same
  contact (provider scrape, AI extraction) must resolve to the same row.
- A Contact is a named person discovered for a lead, unique on
  (lead_id, email).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List

from .lead import CleanLead


class ChannelType(str, Enum):
    EMAIL = "email"
    PHONE = "phone"


class ChannelStatus(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    REPLIED = "replied"
    BOUNCED = "bounced"
    UNSUBSCRIBED = "unsubscribed"


class ChannelSource(str, Enum):
    PROVIDER_SCRAPE = "google_maps_apify"
    AI_EXTRACTION = "ai_extraction"


DEFAULT_CONTACT_NAME = "Staff"
DEFAULT_CONTACT_ROLE = "Personnel"


@dataclass(frozen=True, slots=True)
class Channel:
    lead_id: str
    type: ChannelType
    value: str
    is_primary: bool = False
    status: ChannelStatus = ChannelStatus.NEW
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def identity(self) -> tuple[str, str, str]:
        return (self.lead_id, self.type.value, self.value)


@dataclass(frozen=True, slots=True)
class Contact:
    lead_id: str
    email: str
    name: str = DEFAULT_CONTACT_NAME
    role: str = DEFAULT_CONTACT_ROLE
    verified: bool = False
    status: str = "new"


def channels_for_clean_lead(lead_id: str, lead: CleanLead) -> List[Channel]:
    """Every email and phone of a freshly scraped lead, primary flagged."""

    channels: List[Channel] = []
    source = {"source": ChannelSource.PROVIDER_SCRAPE.value}

    emails = dict.fromkeys(e for e in (lead.email_primary, *lead.emails_all) if e)
    for email in emails:
        channels.append(
            Channel(
                lead_id=lead_id,
                type=ChannelType.EMAIL,
                value=email,
                is_primary=email == lead.email_primary,
                meta=dict(source),
            )
        )

    phones = dict.fromkeys(p for p in (lead.phone_primary, *lead.phones_all) if p)
    for phone in phones:
        is_primary = phone == lead.phone_primary
        channels.append(
            Channel(
                lead_id=lead_id,
                type=ChannelType.PHONE,
                value=phone,
                is_primary=is_primary,
                meta={
                    **source,
                    "phone_type": lead.phone_type.value if is_primary else None,
                    "whatsapp_likely": lead.whatsapp_likely if is_primary else False,
                },
            )
        )

    return channels


def ai_email_channel(lead_id: str, email: str, *, name: str, role: str) -> Channel:
    return Channel(
        lead_id=lead_id,
        type=ChannelType.EMAIL,
        value=email,
        is_primary=False,
        meta={"source": ChannelSource.AI_EXTRACTION.value, "role": role, "name": name},
    )


__all__ = [
    "Channel",
    "ChannelSource",
    "ChannelStatus",
    "ChannelType",
    "Contact",
    "DEFAULT_CONTACT_NAME",
    "DEFAULT_CONTACT_ROLE",
    "ai_email_channel",
    "channels_for_clean_lead",
]
