"""
Domain: Lead entity.

Contract excerpts implemented here:
- A CleanLead is the canonical normalized form of one provider business listing.
  It is created once per raw record and is immutable thereafter.
- emails_all / phones_all are deduplicated and normalized before the primary
  email / phone are selected.
- whatsapp_likely is derived from phone_type and the dialing code only.
- A LeadRecord is the persisted superset: identity + CleanLead + score/route +
  lifecycle fields. At most one LeadRecord exists per real-world business
  (matched through its dedupe keys).
- Leads are never deleted; they are soft-discarded via pipeline_stage.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Tuple


class PhoneType(str, Enum):
    MOBILE = "mobile"
    LANDLINE = "landline"
    UNKNOWN = "unknown"


class LeadStatus(str, Enum):
    NEW = "new"
    ENRICHING = "enriching"
    ENRICHED = "enriched"
    CLOSED = "closed"


class PipelineStage(str, Enum):
    NEW = "new"
    READY = "ready"
    DISCARDED = "discarded"
    CONTACTED = "contacted"
    INTERESTED = "interested"
    REJECTED = "rejected"


class RoutingStatus(str, Enum):
    OUTREACH_READY = "OUTREACH_READY"
    ENRICH = "ENRICH"
    DISCARDED = "DISCARDED"
    CLOSED_REPLY = "CLOSED_REPLY"
    CLOSED_BOUNCE = "CLOSED_BOUNCE"
    CLOSED_UNSUBSCRIBE = "CLOSED_UNSUBSCRIBE"

    @property
    def is_terminal(self) -> bool:
        """Terminal statuses are only left through an explicit re-enrichment."""

        return self in _TERMINAL_ROUTING_STATUSES


_TERMINAL_ROUTING_STATUSES = frozenset(
    {
        RoutingStatus.DISCARDED,
        RoutingStatus.CLOSED_REPLY,
        RoutingStatus.CLOSED_BOUNCE,
        RoutingStatus.CLOSED_UNSUBSCRIBE,
    }
)


@dataclass(frozen=True, slots=True)
class EcommerceSignal:
    is_ecommerce: bool = False
    matched_urls: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class DedupeKeys:
    """
    Fallback identifiers used to match incoming records to an existing Lead.

    primary   = place:<place_id>
    secondary = domcity:<domain>:<city>
    tertiary  = nameaddr:<name>:<address>
    """

    primary: str = ""
    secondary: str = ""
    tertiary: str = ""

    def ranked(self) -> list[tuple[str, str]]:
        """Non-empty keys as (rank, key) pairs, in matching priority order."""

        return [
            (rank, key)
            for rank, key in (
                ("primary", self.primary),
                ("secondary", self.secondary),
                ("tertiary", self.tertiary),
            )
            if key
        ]

    @property
    def best(self) -> str:
        """First non-empty key, or empty string when the record cannot be deduplicated."""

        ranked = self.ranked()
        return ranked[0][1] if ranked else ""


@dataclass(frozen=True, slots=True)
class EnrichmentFlags:
    """What the normalizer could not fill in, plus non-blocking warnings."""

    missing_email: bool = True
    missing_website: bool = True
    missing_domain: bool = True
    missing_contact_person: bool = True
    is_social_media: bool = False
    is_provider_domain: bool = False
    undeduplicable: bool = False
    warning: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class CleanLead:
    """Canonical normalized lead. Built by domain.normalizer.normalize()."""

    # core identity
    name: str = ""
    category: str = ""
    categories: Tuple[str, ...] = ()

    # contact
    website: str = ""
    domain: str = ""
    email_primary: str = ""
    emails_all: Tuple[str, ...] = ()
    phone_primary: str = ""
    phones_all: Tuple[str, ...] = ()
    phone_type: PhoneType = PhoneType.UNKNOWN
    whatsapp_likely: bool = False

    # location
    address: str = ""
    street: str = ""
    neighborhood: str = ""
    city: str = ""
    postal_code: str = ""
    state: str = ""
    country_code: str = ""

    # social proof
    total_score: float = 0.0
    reviews_count: int = 0
    images_count: int = 0

    # status
    permanently_closed: bool = False
    temporarily_closed: bool = False

    # signals
    ecommerce: EcommerceSignal = field(default_factory=EcommerceSignal)

    # traceability
    place_id: str = ""
    cid: str = ""
    scraped_at: str = ""
    source: str = "google_maps_apify"
    scraped_urls: Tuple[str, ...] = ()

    dedupe_keys: DedupeKeys = field(default_factory=DedupeKeys)

    @property
    def is_closed(self) -> bool:
        return self.permanently_closed or self.temporarily_closed

    @property
    def has_email(self) -> bool:
        return bool(self.email_primary)

    @property
    def has_phone(self) -> bool:
        return bool(self.phone_primary)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation (stored in the lead_clean column)."""

        data = asdict(self)
        data["phone_type"] = self.phone_type.value
        data["is_closed"] = self.is_closed
        for key in ("categories", "emails_all", "phones_all", "scraped_urls"):
            data[key] = list(data[key])
        data["ecommerce"]["matched_urls"] = list(self.ecommerce.matched_urls)
        return data

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "CleanLead":
        """Rebuild a CleanLead from its to_dict() form; unknown keys are ignored."""

        ecommerce = data.get("ecommerce") or {}
        keys = data.get("dedupe_keys") or {}
        try:
            phone_type = PhoneType(str(data.get("phone_type") or "unknown"))
        except ValueError:
            phone_type = PhoneType.UNKNOWN

        return CleanLead(
            name=str(data.get("name") or ""),
            category=str(data.get("category") or ""),
            categories=tuple(data.get("categories") or ()),
            website=str(data.get("website") or ""),
            domain=str(data.get("domain") or ""),
            email_primary=str(data.get("email_primary") or ""),
            emails_all=tuple(data.get("emails_all") or ()),
            phone_primary=str(data.get("phone_primary") or ""),
            phones_all=tuple(data.get("phones_all") or ()),
            phone_type=phone_type,
            whatsapp_likely=bool(data.get("whatsapp_likely")),
            address=str(data.get("address") or ""),
            street=str(data.get("street") or ""),
            neighborhood=str(data.get("neighborhood") or ""),
            city=str(data.get("city") or ""),
            postal_code=str(data.get("postal_code") or ""),
            state=str(data.get("state") or ""),
            country_code=str(data.get("country_code") or ""),
            total_score=float(data.get("total_score") or 0),
            reviews_count=int(data.get("reviews_count") or 0),
            images_count=int(data.get("images_count") or 0),
            permanently_closed=bool(data.get("permanently_closed")),
            temporarily_closed=bool(data.get("temporarily_closed")),
            ecommerce=EcommerceSignal(
                is_ecommerce=bool(ecommerce.get("is_ecommerce")),
                matched_urls=tuple(ecommerce.get("matched_urls") or ()),
            ),
            place_id=str(data.get("place_id") or ""),
            cid=str(data.get("cid") or ""),
            scraped_at=str(data.get("scraped_at") or ""),
            source=str(data.get("source") or "google_maps_apify"),
            scraped_urls=tuple(data.get("scraped_urls") or ()),
            dedupe_keys=DedupeKeys(
                primary=str(keys.get("primary") or ""),
                secondary=str(keys.get("secondary") or ""),
                tertiary=str(keys.get("tertiary") or ""),
            ),
        )


@dataclass(slots=True)
class LeadRecord:
    """
    Persisted lead as read back from the `leads` table.

    Mutable on purpose: the enrichment orchestrator accumulates enrichment
    artifacts on it before the final write.
    """

    lead_id: str
    clean: CleanLead
    status: LeadStatus = LeadStatus.NEW
    pipeline_stage: PipelineStage = PipelineStage.NEW
    routing_status: RoutingStatus = RoutingStatus.ENRICH
    lead_score: int = 0
    lead_tier: str = ""
    email: str = ""
    search_query: str = ""
    personalization_summary: str = ""
    icebreaker: str = ""
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def business_name(self) -> str:
        return self.clean.name


__all__ = [
    "CleanLead",
    "DedupeKeys",
    "EcommerceSignal",
    "EnrichmentFlags",
    "LeadRecord",
    "LeadStatus",
    "PhoneType",
    "PipelineStage",
    "RoutingStatus",
]
