"""
Enrichment orchestrator: the per-lead state machine new -> enriching -> enriched.

Step order (strictly sequential, one lead at a time per call):
1. status = enriching (committed before anything slow starts)
2. website health check (missing / social / provider domain), flags to meta
3. content acquisition (crawl, or a synthetic text block as fallback)
4. AI extraction of business intelligence and contacts
5. email verification of every known address
6. upsert of newly discovered channels and contacts
7. re-scoring with the verification state (primary email promotion)
8. final write (status = enriched, score, tier, route, meta)

Steps 2-7 are fault tolerant: an exception or timeout is logged with the lead
id and step name and the step contributes nothing. Only a failure of the final
write is fatal; the lead then stays visibly in `enriching` and FinalWriteError
is raised for the caller (the task queue records it as failed).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, List, Optional, Sequence, TypeVar

from domain.channel import DEFAULT_CONTACT_NAME, DEFAULT_CONTACT_ROLE, Contact, ai_email_channel
from domain.intelligence import BusinessIntelligence
from domain.lead import CleanLead, LeadRecord, LeadStatus, PipelineStage
from domain.normalizer import is_placeholder_email, is_provider_domain, is_social_media_url, normalize_email
from domain.routing import Route, RoutingPolicy, route
from domain.scoring import EnrichmentSignals, ScoreResult, score
from domain.time import utc_now
from providers.base import ContentFetcher, TextAnalyzer
from repositories.channel_repository import ChannelRepository
from repositories.lead_repository import LeadRepository, clean_lead_columns
from services.verification_service import EmailVerificationService, VerificationCheck

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FinalWriteError(RuntimeError):
    """The terminal lead update failed; the lead is left in `enriching`."""

    def __init__(self, lead_id: str, cause: Exception):
        self.lead_id = lead_id
        super().__init__(f"Final enrichment write failed for lead {lead_id}: {cause}")


class EnrichmentOutcome(str, Enum):
    ENRICHED = "enriched"
    SKIPPED = "skipped"


class WebsiteKind(str, Enum):
    MISSING = "missing"
    SOCIAL = "social"
    PROVIDER = "provider"
    REAL = "real"


@dataclass(frozen=True, slots=True)
class EnrichmentConfig:
    fetch_timeout_seconds: float = 20.0
    ai_timeout_seconds: float = 60.0
    max_pages: int = 4
    policy: RoutingPolicy = field(default_factory=RoutingPolicy)


@dataclass(frozen=True, slots=True)
class EnrichmentReport:
    lead_id: str
    outcome: EnrichmentOutcome
    score: Optional[ScoreResult] = None
    route: Optional[Route] = None
    email: str = ""
    verified_emails: tuple[str, ...] = ()
    failed_steps: tuple[str, ...] = ()


def classify_website(website: str) -> WebsiteKind:
    if not website:
        return WebsiteKind.MISSING
    if is_social_media_url(website):
        return WebsiteKind.SOCIAL
    if is_provider_domain(website):
        return WebsiteKind.PROVIDER
    return WebsiteKind.REAL


def fallback_text(lead: LeadRecord) -> str:
    """Context for the analyzer when no website text could be fetched."""

    clean = lead.clean
    category = lead.search_query or clean.category
    return (
        f"Business Name: {clean.name}\n"
        f"Category: {category}\n"
        f"Location: {clean.city}, {clean.address}"
    )


def pick_final_email(current: str, verified: Sequence[str]) -> str:
    """Keep the current primary if verified, else promote the first verified address."""

    if verified and (not current or current not in verified):
        return verified[0]
    return current


def email_verified_signal(email: str, checks: dict[str, VerificationCheck]) -> Optional[bool]:
    if not email:
        return None
    check = checks.get(email)
    if check is None or not check.checked:
        return None
    return check.is_verified


class EnrichmentOrchestrator:
    def __init__(
        self,
        *,
        leads: LeadRepository,
        channels: ChannelRepository,
        verification: EmailVerificationService,
        fetcher: ContentFetcher,
        analyzer: TextAnalyzer,
        config: Optional[EnrichmentConfig] = None,
    ) -> None:
        self._leads = leads
        self._channels = channels
        self._verification = verification
        self._fetcher = fetcher
        self._analyzer = analyzer
        self._config = config or EnrichmentConfig()

    async def _guarded(
        self,
        lead_id: str,
        step: str,
        call: Awaitable[T],
        *,
        default: T,
        failures: List[str],
        timeout: Optional[float] = None,
    ) -> T:
        try:
            if timeout is not None:
                return await asyncio.wait_for(call, timeout=timeout)
            return await call
        except asyncio.TimeoutError:
            logger.warning("Enrichment step %s timed out for lead %s after %.1fs", step, lead_id, timeout)
        except Exception as exc:
            logger.warning("Enrichment step %s failed for lead %s: %s", step, lead_id, exc, exc_info=True)
        failures.append(step)
        return default

    async def enrich(self, lead_id: str, *, force: bool = False) -> EnrichmentReport:
        """
        Run the full enrichment for one lead.

        Raises:
        - LookupError if the lead does not exist
        - RuntimeError if the lead cannot be loaded or marked `enriching`
        - FinalWriteError if the final write fails
        """

        lead = await self._leads.get_lead(lead_id)
        if lead is None:
            raise LookupError(f"Lead not found: {lead_id}")

        if lead.routing_status.is_terminal and not force:
            logger.info(
                "Skipping enrichment for lead %s: routing status %s is terminal",
                lead_id,
                lead.routing_status.value,
            )
            return EnrichmentReport(lead_id=lead_id, outcome=EnrichmentOutcome.SKIPPED)

        failures: List[str] = []
        logger.info("Starting enrichment for lead %s (%s)", lead_id, lead.business_name)

        # 1. Status transition
        await self._leads.set_status(lead_id, LeadStatus.ENRICHING)

        # 2. Website health check
        website_kind = classify_website(lead.clean.website)
        meta: dict[str, Any] = {
            **lead.meta,
            "missing_web": website_kind is WebsiteKind.MISSING,
            "is_social_web": website_kind is WebsiteKind.SOCIAL,
            "is_provider_domain": website_kind is WebsiteKind.PROVIDER,
        }
        if website_kind in (WebsiteKind.MISSING, WebsiteKind.SOCIAL):
            await self._guarded(
                lead_id, "website_check", self._leads.update_lead(lead_id, {"meta": meta}),
                default=None, failures=failures,
            )

        # 3. Content acquisition
        texts: List[str] = []
        if website_kind in (WebsiteKind.REAL, WebsiteKind.PROVIDER):
            texts = await self._guarded(
                lead_id,
                "content_fetch",
                self._fetcher.fetch_pages(lead.clean.website, self._config.max_pages),
                default=[],
                failures=failures,
                timeout=self._config.fetch_timeout_seconds,
            )
        if not texts:
            texts = [fallback_text(lead)]

        # 4. AI extraction
        intelligence = await self._guarded(
            lead_id,
            "ai_extraction",
            self._analyzer.summarize(lead.business_name, texts),
            default=BusinessIntelligence.empty(),
            failures=failures,
            timeout=self._config.ai_timeout_seconds,
        )

        # 5. Email verification
        existing_emails = await self._guarded(
            lead_id, "load_channels", self._channels.list_email_values(lead_id),
            default=[], failures=failures,
        )
        ai_contacts = [
            (contact, normalize_email(contact.email))
            for contact in intelligence.found_contacts
            if contact.email and not is_placeholder_email(contact.email)
        ]
        current_email = lead.email or lead.clean.email_primary
        candidates = dict.fromkeys(
            e for e in (*existing_emails, current_email, *(email for _, email in ai_contacts)) if e
        )

        checks: dict[str, VerificationCheck] = {}
        for email in candidates:
            check = await self._guarded(
                lead_id, f"verify_email:{email}", self._verification.verify(email),
                default=None, failures=failures,
            )
            if check is not None:
                checks[email] = check
        verified_emails = [e for e in candidates if e in checks and checks[e].is_verified]

        # 6. New channels and contacts
        known = set(existing_emails)
        new_channels = []
        contacts = []
        for contact, email in ai_contacts:
            if email not in known:
                known.add(email)
                new_channels.append(
                    ai_email_channel(lead_id, email, name=contact.name, role=contact.role)
                )
            contacts.append(
                Contact(
                    lead_id=lead_id,
                    email=email,
                    name=contact.name or DEFAULT_CONTACT_NAME,
                    role=contact.role or DEFAULT_CONTACT_ROLE,
                    verified=email in verified_emails,
                )
            )
        if new_channels:
            await self._guarded(
                lead_id, "save_channels", self._channels.add_channels(new_channels),
                default=None, failures=failures,
            )
        if contacts:
            await self._guarded(
                lead_id, "save_contacts", self._channels.upsert_contacts(contacts),
                default=None, failures=failures,
            )

        # 7. Re-scoring
        final_email = pick_final_email(current_email, verified_emails)
        if final_email != current_email:
            logger.info("Promoting %s to primary email for lead %s", final_email, lead_id)

        clean: CleanLead = replace(
            lead.clean,
            email_primary=final_email,
            emails_all=tuple(dict.fromkeys((*lead.clean.emails_all, *candidates))),
        )
        signals = EnrichmentSignals(
            email_verified=email_verified_signal(final_email, checks),
            ai_summary=intelligence.summary,
            ecommerce_signals=intelligence.ecommerce_signals,
        )
        score_result = score(clean, signals)
        decision = route(score_result, clean, enriched=True, policy=self._config.policy)

        # 8. Final write
        meta.update(
            {
                "contexto_personalizado": intelligence.context_line,
                "categoria": intelligence.category.value if intelligence.category else None,
                "observacion_followup": intelligence.followup_observation,
                "verified_emails": verified_emails,
                "ai_summary_deep": intelligence.summary,
                "ai_business_type": intelligence.business_type,
                "keywords": list(intelligence.keywords),
                "enrichment_failed_steps": failures,
                "enriched_at": utc_now().isoformat(),
            }
        )
        fields = {
            **clean_lead_columns(clean),
            "status": LeadStatus.ENRICHED.value,
            "pipeline_stage": (
                PipelineStage.DISCARDED.value
                if score_result.tier.is_discardable
                else PipelineStage.READY.value
            ),
            "routing_status": decision.route.routing_status.value,
            "personalization_summary": intelligence.summary or lead.personalization_summary,
            "icebreaker": intelligence.icebreaker or lead.icebreaker,
            "email": final_email,
            "lead_score": score_result.score,
            "lead_tier": score_result.tier.value,
            "score_detail": score_result.to_dict(),
            "meta": meta,
        }
        # identity columns are owned by ingestion
        for key in ("dedupe_key", "dedupe_key_primary", "dedupe_key_secondary", "dedupe_key_tertiary"):
            fields.pop(key, None)

        try:
            await self._leads.update_lead(lead_id, fields)
        except Exception as exc:
            logger.error(
                "Final enrichment write failed for lead %s; lead left in 'enriching': %s", lead_id, exc
            )
            raise FinalWriteError(lead_id, exc) from exc

        logger.info(
            "Enriched lead %s: tier=%s score=%d route=%s (failed steps: %s)",
            lead_id,
            score_result.tier.value,
            score_result.score,
            decision.route.value,
            ", ".join(failures) or "none",
        )
        return EnrichmentReport(
            lead_id=lead_id,
            outcome=EnrichmentOutcome.ENRICHED,
            score=score_result,
            route=decision.route,
            email=final_email,
            verified_emails=tuple(verified_emails),
            failed_steps=tuple(failures),
        )


__all__ = [
    "EnrichmentConfig",
    "EnrichmentOrchestrator",
    "EnrichmentOutcome",
    "EnrichmentReport",
    "FinalWriteError",
    "WebsiteKind",
    "classify_website",
    "fallback_text",
    "pick_final_email",
]
