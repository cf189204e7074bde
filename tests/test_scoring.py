"""
Tests for `domain/scoring.py`.

Covers contract rules:
- Score is the sum of awarded signal points, bounded to 0..100.
- Closed businesses always score 0 / DROP.
- Tier is a function of channel availability (GOLD > SILVER > WHATSAPP > COLDCALL > TRASH).
- An email checked and found unverified no longer qualifies for GOLD / SILVER.
- Adding a verified email never lowers the score or the tier.
- Verified email + mobile is GOLD whatever the social proof.
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from domain.lead import CleanLead, EcommerceSignal, PhoneType
from domain.normalizer import normalize
from domain.scoring import CLOSED_REASON, EnrichmentSignals, Tier, score

GOLD_RECORD = {
    "email": "owner@clinic.es",
    "phone": "612345678",
    "reviewsCount": 120,
    "totalScore": 4.8,
    "website": "https://clinic.es",
}


def test_gold_scenario_scores_85_after_verification() -> None:
    clean, _ = normalize(GOLD_RECORD)

    result = score(clean, EnrichmentSignals(email_verified=True))

    assert result.score == 85
    assert result.tier is Tier.GOLD
    assert [r.points for r in result.reasons] == [35, 10, 15, 15, 10]


def test_unchecked_email_scores_as_unverified_but_still_qualifies() -> None:
    clean, _ = normalize(GOLD_RECORD)

    result = score(clean)

    assert result.score == 65
    assert result.tier is Tier.GOLD


def test_closed_business_is_dropped() -> None:
    clean, _ = normalize({**GOLD_RECORD, "permanentlyClosed": True})

    result = score(clean, EnrichmentSignals(email_verified=True, ai_summary="great"))

    assert result.score == 0
    assert result.tier is Tier.DROP
    assert [(r.reason, r.points) for r in result.reasons] == [(CLOSED_REASON, 0)]


def test_empty_lead_is_trash() -> None:
    clean, _ = normalize({})

    result = score(clean)

    assert result.score == 0
    assert result.tier is Tier.TRASH
    assert result.reasons == ()


def test_landline_only_is_coldcall() -> None:
    clean, _ = normalize({"phone": "912345678"})

    result = score(clean)

    assert result.score == 5
    assert result.tier is Tier.COLDCALL


def test_unknown_phone_type_counts_as_callable() -> None:
    lead = CleanLead(phone_primary="+442079460958", phone_type=PhoneType.UNKNOWN)

    result = score(lead)

    assert result.score == 5
    assert result.tier is Tier.COLDCALL


def test_mobile_without_email_is_whatsapp_tier() -> None:
    clean, _ = normalize({"phone": "612345678"})

    result = score(clean)

    assert result.score == 15
    assert result.tier is Tier.WHATSAPP


@pytest.mark.parametrize(
    ("email_verified", "tier", "points"),
    [(None, Tier.SILVER, 15), (True, Tier.SILVER, 35), (False, Tier.TRASH, 15)],
)
def test_email_qualification_depends_on_verification(email_verified, tier: Tier, points: int) -> None:
    lead = CleanLead(email_primary="ana@clinic.es", emails_all=("ana@clinic.es",))

    result = score(lead, EnrichmentSignals(email_verified=email_verified))

    assert result.tier is tier
    assert result.score == points


def test_social_media_website_earns_reduced_points() -> None:
    lead = CleanLead(website="https://instagram.com/clinic")

    assert score(lead).score == 3


@pytest.mark.parametrize(
    ("reviews", "rating", "expected"),
    [(9, 3.9, 0), (10, 4.0, 10), (50, 4.4, 15), (100, 4.5, 25), (5000, 5.0, 25)],
)
def test_social_proof_thresholds(reviews: int, rating: float, expected: int) -> None:
    lead = CleanLead(reviews_count=reviews, total_score=rating)

    assert score(lead).score == expected


def test_ai_summary_and_ecommerce_signals() -> None:
    lead = CleanLead(ecommerce=EcommerceSignal(is_ecommerce=True))

    assert score(lead).score == 5
    assert score(lead, EnrichmentSignals(ai_summary="Centro de yoga")).score == 15
    assert score(CleanLead(), EnrichmentSignals(ecommerce_signals=("tienda online",))).score == 5


def test_score_never_exceeds_100() -> None:
    lead = CleanLead(
        email_primary="a@b.es",
        website="https://b.es",
        phone_primary="+34612345678",
        phone_type=PhoneType.MOBILE,
        whatsapp_likely=True,
        reviews_count=1000,
        total_score=5.0,
        ecommerce=EcommerceSignal(is_ecommerce=True),
    )

    result = score(lead, EnrichmentSignals(email_verified=True, ai_summary="x"))

    assert 0 <= result.score <= 100
    assert result.score == 100


def test_score_result_serializes_reasons() -> None:
    clean, _ = normalize({"phone": "912345678"})

    data = score(clean).to_dict()

    assert data == {"score": 5, "tier": "COLDCALL", "reasons": [{"reason": "landline phone", "points": 5}]}


TIER_ORDER = [Tier.TRASH, Tier.COLDCALL, Tier.WHATSAPP, Tier.SILVER, Tier.GOLD]

BASE_LEADS = [
    CleanLead(),
    CleanLead(phone_primary="+34912345678", phone_type=PhoneType.LANDLINE),
    CleanLead(phone_primary="+34612345678", phone_type=PhoneType.MOBILE, whatsapp_likely=True),
    CleanLead(website="https://clinic.es", reviews_count=120, total_score=4.8),
    CleanLead(website="https://instagram.com/clinic", ecommerce=EcommerceSignal(is_ecommerce=True)),
    CleanLead(email_primary="ana@clinic.es", emails_all=("ana@clinic.es",)),
]


@pytest.mark.parametrize("lead", BASE_LEADS)
@pytest.mark.parametrize("before", [None, False])
def test_adding_a_verified_email_never_lowers_score_or_tier(lead: CleanLead, before) -> None:
    baseline = score(lead, EnrichmentSignals(email_verified=before))
    with_email = replace(lead, email_primary="ana@clinic.es", emails_all=("ana@clinic.es",))

    result = score(with_email, EnrichmentSignals(email_verified=True))

    assert result.score >= baseline.score
    assert TIER_ORDER.index(result.tier) >= TIER_ORDER.index(baseline.tier)


@pytest.mark.parametrize(
    ("reviews", "rating", "website"),
    [(0, 0.0, ""), (0, 0.0, "https://clinic.es"), (3, 1.0, ""), (500, 5.0, "https://clinic.es")],
)
def test_verified_email_and_mobile_is_gold_regardless_of_social_proof(
    reviews: int, rating: float, website: str
) -> None:
    lead = CleanLead(
        email_primary="ana@clinic.es",
        emails_all=("ana@clinic.es",),
        phone_primary="+34612345678",
        phone_type=PhoneType.MOBILE,
        whatsapp_likely=True,
        reviews_count=reviews,
        total_score=rating,
        website=website,
    )

    assert score(lead, EnrichmentSignals(email_verified=True)).tier is Tier.GOLD
