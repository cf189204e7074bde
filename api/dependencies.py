"""
Service wiring for the API.

build_container() constructs every repository, provider and service from a
Settings object. The app stores the container on `app.state.container` and
routers reach it through the `get_container` dependency.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from fastapi import HTTPException, Request

from domain.routing import RoutingPolicy
from providers.apify import ApifyListingsProvider
from providers.crawler import WebsiteCrawler
from providers.instantly import InstantlyClient, SimulatedOutreachProvider
from providers.llm import OpenRouterAnalyzer
from providers.million_verifier import MillionVerifierClient
from repositories.channel_repository import ChannelRepository
from repositories.client import create_supabase_client
from repositories.lead_repository import LeadRepository
from repositories.outreach_repository import OutreachRepository
from repositories.run_repository import RunRepository
from repositories.verification_repository import VerificationRepository
from services.enrichment_service import EnrichmentConfig, EnrichmentOrchestrator
from services.ingestion_service import IngestionPipeline
from services.outreach_service import OutreachService
from services.search_service import SearchRunService
from services.task_queue import EnrichmentQueue
from services.verification_service import EmailVerificationService
from settings import OutreachMode, Settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ServiceContainer:
    settings: Settings
    leads: LeadRepository
    queue: EnrichmentQueue
    pipeline: IngestionPipeline
    orchestrator: EnrichmentOrchestrator
    outreach: OutreachService
    search: Optional[SearchRunService] = None
    closers: List[Callable[[], Awaitable[Any]]] = field(default_factory=list)

    async def aclose(self) -> None:
        await self.queue.close()
        for close in self.closers:
            try:
                await close()
            except Exception:
                logger.exception("Error while closing a provider client")


async def build_container(settings: Settings, *, client: Any = None) -> ServiceContainer:
    """Wire the application from settings. `client` overrides the Supabase client."""

    db = client if client is not None else await create_supabase_client(settings)

    leads = LeadRepository(db)
    channels = ChannelRepository(db)
    runs = RunRepository(db)

    crawler = WebsiteCrawler(timeout_seconds=settings.fetch_timeout_seconds)
    analyzer = OpenRouterAnalyzer(
        settings.openrouter_api_key, model=settings.llm_model, timeout_seconds=settings.ai_timeout_seconds
    )
    verifier = MillionVerifierClient(
        settings.million_verifier_api_key, timeout_seconds=settings.verify_timeout_seconds
    )
    closers: List[Callable[[], Awaitable[Any]]] = [crawler.aclose, verifier.aclose]

    policy = RoutingPolicy(strict=settings.strict_routing)
    orchestrator = EnrichmentOrchestrator(
        leads=leads,
        channels=channels,
        verification=EmailVerificationService(
            VerificationRepository(db), verifier, timeout_seconds=settings.verify_timeout_seconds
        ),
        fetcher=crawler,
        analyzer=analyzer,
        config=EnrichmentConfig(
            fetch_timeout_seconds=settings.fetch_timeout_seconds,
            ai_timeout_seconds=settings.ai_timeout_seconds,
            max_pages=settings.max_crawl_pages,
            policy=policy,
        ),
    )
    queue = EnrichmentQueue(orchestrator, concurrency=settings.enrichment_concurrency)
    pipeline = IngestionPipeline(leads=leads, channels=channels, runs=runs, queue=queue, policy=policy)

    if settings.instantly_mode is OutreachMode.LIVE:
        instantly = InstantlyClient(
            settings.instantly_api_key or "", workspace_id=settings.instantly_workspace_id
        )
        closers.append(instantly.aclose)
        provider: Any = instantly
    else:
        provider = SimulatedOutreachProvider()
    outreach = OutreachService(
        leads=leads, channels=channels, outreach=OutreachRepository(db), provider=provider
    )

    search = None
    if settings.apify_api_key:
        apify = ApifyListingsProvider(settings.apify_api_key, actor_id=settings.apify_actor_id)
        closers.append(apify.aclose)
        search = SearchRunService(
            listings=apify,
            runs=runs,
            pipeline=pipeline,
            queue=queue,
            backend_url=settings.backend_url,
            poll_interval_seconds=settings.poll_interval_seconds,
            max_poll_attempts=settings.max_poll_attempts,
        )
    else:
        logger.warning("APIFY_API_KEY not set; search endpoints are disabled")

    return ServiceContainer(
        settings=settings,
        leads=leads,
        queue=queue,
        pipeline=pipeline,
        orchestrator=orchestrator,
        outreach=outreach,
        search=search,
        closers=closers,
    )


def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return container


def get_search_service(request: Request) -> SearchRunService:
    search = get_container(request).search
    if search is None:
        raise HTTPException(status_code=503, detail="Listings provider is not configured")
    return search
