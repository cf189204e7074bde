"""
Ingestion pipeline: raw provider records -> persisted, scored, routed leads.

Per record: normalize -> score -> route -> upsert lead (idempotent on dedupe
key) -> add channels -> link to the originating run -> enqueue enrichment
unless the lead is discarded.

Rules:
- A record matching an existing lead updates that lead; it never creates a
  second row.
- A lead that already left `new` (enriched, or in a terminal routing status)
  keeps its lifecycle fields on re-ingestion and is not re-enqueued; only the
  scraped data is refreshed.
- Enrichment is submitted to the EnrichmentQueue and never awaited here.
- A failure on one record is logged and counted; the batch continues.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional

from domain.channel import channels_for_clean_lead
from domain.lead import CleanLead, DedupeKeys, EnrichmentFlags, LeadRecord, LeadStatus, PipelineStage
from domain.normalizer import normalize
from domain.routing import Route, RouteDecision, RoutingPolicy, route
from domain.scoring import ScoreResult, score
from repositories.channel_repository import ChannelRepository
from repositories.lead_repository import LeadRepository, clean_lead_columns
from repositories.run_repository import RunRepository
from services.task_queue import EnrichmentQueue

logger = logging.getLogger(__name__)

_LIFECYCLE_COLUMNS = (
    "status",
    "pipeline_stage",
    "routing_status",
    "lead_score",
    "lead_tier",
    "score_detail",
    "email",
)

_DEDUPE_KEY_COLUMNS = (
    ("primary", "dedupe_key_primary"),
    ("secondary", "dedupe_key_secondary"),
    ("tertiary", "dedupe_key_tertiary"),
)


@dataclass(frozen=True, slots=True)
class Assessment:
    """Pure evaluation of one raw record (no I/O)."""

    clean: CleanLead
    flags: EnrichmentFlags
    score: ScoreResult
    decision: RouteDecision


@dataclass(frozen=True, slots=True)
class IngestedLead:
    lead_id: str
    created: bool
    tier: str
    route: Route
    enqueued: bool
    preserved: bool = False


@dataclass(slots=True)
class IngestionResult:
    accepted: int = 0
    created: int = 0
    updated: int = 0
    discarded: int = 0
    enqueued: int = 0
    preserved: int = 0
    failed: int = 0
    lead_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "accepted": self.accepted,
            "created": self.created,
            "updated": self.updated,
            "discarded": self.discarded,
            "enqueued": self.enqueued,
            "preserved": self.preserved,
            "failed": self.failed,
            "lead_ids": list(self.lead_ids),
        }


def assess(raw: Mapping[str, Any], policy: Optional[RoutingPolicy] = None) -> Assessment:
    clean, flags = normalize(raw)
    result = score(clean)
    return Assessment(clean=clean, flags=flags, score=result, decision=route(result, clean, policy=policy))


def _merge_dedupe_keys(stored: DedupeKeys, incoming: DedupeKeys) -> dict[str, str]:
    return {
        rank: getattr(stored, rank) or getattr(incoming, rank)
        for rank, _ in _DEDUPE_KEY_COLUMNS
    }


def _is_settled(existing: Optional[LeadRecord]) -> bool:
    return existing is not None and (
        existing.routing_status.is_terminal or existing.status is not LeadStatus.NEW
    )


class IngestionPipeline:
    def __init__(
        self,
        *,
        leads: LeadRepository,
        channels: ChannelRepository,
        runs: RunRepository,
        queue: Optional[EnrichmentQueue] = None,
        policy: Optional[RoutingPolicy] = None,
    ) -> None:
        self._leads = leads
        self._channels = channels
        self._runs = runs
        self._queue = queue
        self._policy = policy or RoutingPolicy()

    def _lead_fields(self, assessment: Assessment, search_query: str) -> dict[str, Any]:
        discarded = assessment.decision.route is Route.DISCARDED
        return {
            **clean_lead_columns(assessment.clean),
            "status": LeadStatus.NEW.value,
            "pipeline_stage": (PipelineStage.DISCARDED if discarded else PipelineStage.NEW).value,
            "routing_status": assessment.decision.route.routing_status.value,
            "lead_score": assessment.score.score,
            "lead_tier": assessment.score.tier.value,
            "score_detail": assessment.score.to_dict(),
            "enrichment_needed": assessment.flags.to_dict(),
            "search_query": search_query,
        }

    async def ingest_record(
        self,
        raw: Mapping[str, Any],
        *,
        run_id: Optional[str] = None,
        search_query: str = "",
    ) -> IngestedLead:
        """
        Ingest one raw record.

        Raises:
        - RuntimeError if the lead itself cannot be persisted
        """

        assessment = assess(raw, self._policy)
        clean = assessment.clean
        fields = self._lead_fields(assessment, search_query)

        existing = None
        if clean.dedupe_keys.best:
            existing = await self._leads.find_by_dedupe_keys(clean.dedupe_keys)
        else:
            logger.warning("Record for %r has no dedupe key; inserting without deduplication", clean.name)

        preserved = _is_settled(existing)
        if existing is None:
            lead = await self._leads.insert_lead(fields)
            lead_id = lead.lead_id
        else:
            lead_id = existing.lead_id
            # the unique key never moves; a stored key is never replaced by a different one
            fields.pop("dedupe_key", None)
            fields["lead_clean"]["dedupe_keys"] = _merge_dedupe_keys(
                existing.clean.dedupe_keys, clean.dedupe_keys
            )
            for rank, column in _DEDUPE_KEY_COLUMNS:
                stored = getattr(existing.clean.dedupe_keys, rank)
                if fields.get(column) is None or (stored and fields[column] != stored):
                    fields.pop(column, None)
            if preserved:
                for column in _LIFECYCLE_COLUMNS:
                    fields.pop(column, None)
                if not search_query:
                    fields.pop("search_query", None)
            await self._leads.update_lead(lead_id, fields)

        try:
            await self._channels.add_channels(channels_for_clean_lead(lead_id, clean))
        except RuntimeError as exc:
            logger.warning("Could not save channels for lead %s: %s", lead_id, exc)

        if run_id:
            try:
                await self._runs.link_lead(run_id, lead_id)
            except RuntimeError as exc:
                logger.warning("Could not link lead %s to run %s: %s", lead_id, run_id, exc)

        enqueued = False
        if not preserved and assessment.decision.route is not Route.DISCARDED and self._queue is not None:
            self._queue.submit(lead_id)
            enqueued = True

        return IngestedLead(
            lead_id=lead_id,
            created=existing is None,
            tier=assessment.score.tier.value,
            route=assessment.decision.route,
            enqueued=enqueued,
            preserved=preserved,
        )

    async def ingest_batch(
        self,
        records: Iterable[Mapping[str, Any]],
        *,
        run_id: Optional[str] = None,
        search_query: str = "",
    ) -> IngestionResult:
        result = IngestionResult()
        for raw in records:
            result.accepted += 1
            try:
                ingested = await self.ingest_record(raw, run_id=run_id, search_query=search_query)
            except Exception:
                logger.exception("Failed to ingest record %d (run %s)", result.accepted, run_id)
                result.failed += 1
                continue

            result.lead_ids.append(ingested.lead_id)
            if ingested.created:
                result.created += 1
            else:
                result.updated += 1
            if ingested.preserved:
                result.preserved += 1
            if ingested.route is Route.DISCARDED:
                result.discarded += 1
            if ingested.enqueued:
                result.enqueued += 1

        logger.info(
            "Ingested %d records (run %s): %d created, %d updated, %d discarded, %d enqueued, %d failed",
            result.accepted,
            run_id,
            result.created,
            result.updated,
            result.discarded,
            result.enqueued,
            result.failed,
        )
        return result


__all__ = ["Assessment", "IngestedLead", "IngestionPipeline", "IngestionResult", "assess"]
