"""
Domain: Routing (next pipeline action for a scored lead).

Contract excerpts implemented here:
- route() is pure; a RouteDecision is never persisted on its own, only as the
  lead's routing_status.
- DROP always routes DISCARDED.
- TRASH routes DISCARDED once enrichment has run. Before enrichment a TRASH
  lead still goes through the channel checks, which send it to ENRICH.
- Any usable channel (email, WhatsApp, phone call) -> OUTREACH_READY,
  otherwise ENRICH.
- Strict policy: OUTREACH_READY is reserved for GOLD / SILVER leads.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .lead import CleanLead, PhoneType, RoutingStatus
from .scoring import ScoreResult, Tier


class Route(str, Enum):
    OUTREACH_READY = "OUTREACH_READY"
    ENRICH = "ENRICH"
    DISCARDED = "DISCARDED"

    @property
    def routing_status(self) -> RoutingStatus:
        return RoutingStatus(self.value)


@dataclass(frozen=True, slots=True)
class ChannelAvailability:
    email: bool
    whatsapp: bool
    phone_call: bool
    phone_type: PhoneType

    @property
    def any(self) -> bool:
        return self.email or self.whatsapp or self.phone_call

    def to_dict(self) -> dict[str, Any]:
        return {
            "email": self.email,
            "whatsapp": self.whatsapp,
            "phone_call": self.phone_call,
            "phone_type": self.phone_type.value,
        }


@dataclass(frozen=True, slots=True)
class RouteDecision:
    route: Route
    channel: ChannelAvailability

    def to_dict(self) -> dict[str, Any]:
        return {"route": self.route.value, "channel": self.channel.to_dict()}


@dataclass(frozen=True, slots=True)
class RoutingPolicy:
    strict: bool = False


OUTREACH_TIERS = frozenset({Tier.GOLD, Tier.SILVER})


def channels_for(lead: CleanLead) -> ChannelAvailability:
    return ChannelAvailability(
        email=lead.has_email,
        whatsapp=lead.whatsapp_likely,
        phone_call=lead.has_phone,
        phone_type=lead.phone_type,
    )


def route(
    score_result: ScoreResult,
    lead: CleanLead,
    *,
    enriched: bool = False,
    policy: Optional[RoutingPolicy] = None,
) -> RouteDecision:
    policy = policy or RoutingPolicy()
    channel = channels_for(lead)
    tier = score_result.tier

    if tier is Tier.DROP or (tier is Tier.TRASH and enriched):
        return RouteDecision(route=Route.DISCARDED, channel=channel)

    if channel.any and (not policy.strict or tier in OUTREACH_TIERS):
        return RouteDecision(route=Route.OUTREACH_READY, channel=channel)

    return RouteDecision(route=Route.ENRICH, channel=channel)


__all__ = [
    "ChannelAvailability",
    "OUTREACH_TIERS",
    "Route",
    "RouteDecision",
    "RoutingPolicy",
    "channels_for",
    "route",
]
