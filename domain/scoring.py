"""
Domain: Lead scoring and tiering.

Contract excerpts implemented here:
- Pure and deterministic: same CleanLead + EnrichmentSignals -> identical
  ScoreResult, including the exact order of reasons.
- Closed businesses short-circuit to score 0 / DROP.
- Points are awarded per channel and per social-proof signal, then clamped to
  [0, 100].
- The tier does not depend on the numeric score. It is derived from channel
  availability and verification state, first match wins:
    GOLD      qualifying email AND mobile phone
    SILVER    qualifying email
    WHATSAPP  mobile phone, no qualifying email
    COLDCALL  other phone, no qualifying email
    TRASH     nothing usable
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

from .lead import CleanLead, PhoneType
from .normalizer import is_social_media_url

MIN_SCORE = 0
MAX_SCORE = 100

CLOSED_REASON = "business closed"


class Tier(str, Enum):
    GOLD = "GOLD"
    SILVER = "SILVER"
    WHATSAPP = "WHATSAPP"
    COLDCALL = "COLDCALL"
    TRASH = "TRASH"
    DROP = "DROP"

    @property
    def is_discardable(self) -> bool:
        return self in (Tier.TRASH, Tier.DROP)


@dataclass(frozen=True, slots=True)
class ScoreReason:
    reason: str
    points: int

    def to_dict(self) -> dict[str, Any]:
        return {"reason": self.reason, "points": self.points}


@dataclass(frozen=True, slots=True)
class ScoreResult:
    score: int
    tier: Tier
    reasons: Tuple[ScoreReason, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "tier": self.tier.value,
            "reasons": [r.to_dict() for r in self.reasons],
        }


@dataclass(frozen=True, slots=True)
class EnrichmentSignals:
    """
    What enrichment has learned about a lead.

    email_verified:
      None  -> primary email not checked yet (ingestion time)
      True  -> verification result counted as verified
      False -> checked and not verified
    """

    email_verified: Optional[bool] = None
    ai_summary: str = ""
    ecommerce_signals: Tuple[str, ...] = ()


def _has_mobile(lead: CleanLead) -> bool:
    return lead.phone_type is PhoneType.MOBILE or lead.whatsapp_likely


def has_qualifying_email(lead: CleanLead, signals: EnrichmentSignals) -> bool:
    return lead.has_email and signals.email_verified is not False


def _assign_tier(lead: CleanLead, signals: EnrichmentSignals) -> Tier:
    email = has_qualifying_email(lead, signals)
    mobile = lead.has_phone and _has_mobile(lead)

    if email and mobile:
        return Tier.GOLD
    if email:
        return Tier.SILVER
    if mobile:
        return Tier.WHATSAPP
    if lead.has_phone:
        return Tier.COLDCALL
    return Tier.TRASH


def score(lead: CleanLead, signals: Optional[EnrichmentSignals] = None) -> ScoreResult:
    signals = signals or EnrichmentSignals()

    if lead.is_closed:
        return ScoreResult(score=0, tier=Tier.DROP, reasons=(ScoreReason(CLOSED_REASON, 0),))

    reasons: list[ScoreReason] = []

    # Email channel (max 35)
    if lead.has_email:
        if signals.email_verified:
            reasons.append(ScoreReason("verified email", 35))
        else:
            reasons.append(ScoreReason("unverified email", 15))

    # Website channel (max 10)
    if lead.website:
        if is_social_media_url(lead.website):
            reasons.append(ScoreReason("social media website", 3))
        else:
            reasons.append(ScoreReason("website", 10))

    # Phone / WhatsApp channel (max 15)
    if lead.has_phone:
        if _has_mobile(lead):
            reasons.append(ScoreReason("mobile phone / whatsapp", 15))
        elif lead.phone_type is PhoneType.LANDLINE:
            reasons.append(ScoreReason("landline phone", 5))
        else:
            reasons.append(ScoreReason("phone", 5))

    # Social proof (max 25)
    if lead.reviews_count >= 100:
        reasons.append(ScoreReason("reviews >= 100", 15))
    elif lead.reviews_count >= 50:
        reasons.append(ScoreReason("reviews >= 50", 10))
    elif lead.reviews_count >= 10:
        reasons.append(ScoreReason("reviews >= 10", 5))

    if lead.total_score >= 4.5:
        reasons.append(ScoreReason("rating >= 4.5", 10))
    elif lead.total_score >= 4.0:
        reasons.append(ScoreReason("rating >= 4.0", 5))

    # Business intelligence (max 15)
    if signals.ai_summary.strip():
        reasons.append(ScoreReason("ai business summary", 10))
    if lead.ecommerce.is_ecommerce or signals.ecommerce_signals:
        reasons.append(ScoreReason("ecommerce signal", 5))

    total = sum(r.points for r in reasons)
    total = max(MIN_SCORE, min(MAX_SCORE, total))

    return ScoreResult(score=total, tier=_assign_tier(lead, signals), reasons=tuple(reasons))


__all__ = [
    "CLOSED_REASON",
    "EnrichmentSignals",
    "ScoreReason",
    "ScoreResult",
    "Tier",
    "has_qualifying_email",
    "score",
]
