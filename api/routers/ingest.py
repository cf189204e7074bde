"""
Ingestion API Endpoints.

Endpoints for ingesting raw provider records and starting listings searches.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import ServiceContainer, get_container, get_search_service
from api.models import IngestRequest, IngestResponse, SearchRequest, SearchStartedResponse
from domain.run import SearchRequest as DomainSearchRequest
from providers.base import ProviderError
from services.search_service import SearchRunService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/ingest",
    response_model=IngestResponse,
    summary="Ingest Records",
    description="Normalize, score, route and persist a batch of raw provider records.",
)
async def ingest_records(request: IngestRequest, container: ServiceContainer = Depends(get_container)):
    """
    Ingest a batch of raw listings.

    **Process (per record):**
    1. Normalize the record into a clean lead
    2. Score and tier it
    3. Route it (outreach ready / enrich / discarded)
    4. Upsert the lead by dedupe key and save its channels
    5. Queue enrichment for non-discarded leads (not awaited)

    The response acknowledges the batch; enrichment results show up on the leads.
    """
    result = await container.pipeline.ingest_batch(
        request.records, run_id=request.run_id, search_query=request.search_query
    )
    return IngestResponse(
        message="Ingestion accepted",
        accepted=result.accepted,
        created=result.created,
        updated=result.updated,
        discarded=result.discarded,
        enqueued=result.enqueued,
        failed=result.failed,
        lead_ids=result.lead_ids,
    )


@router.post(
    "/search",
    response_model=SearchStartedResponse,
    status_code=202,
    summary="Start Search",
    description="Start a listings provider search; results arrive through the provider webhook.",
)
async def start_search(request: SearchRequest, search: SearchRunService = Depends(get_search_service)):
    try:
        domain_request = DomainSearchRequest(query=request.business_type, geo=request.city, limit=request.limit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        run, handle = await search.start_search(domain_request)
    except ProviderError as e:
        logger.error("Search could not be started: %s", e)
        raise HTTPException(status_code=502, detail=str(e))

    return SearchStartedResponse(
        message="Search started", run_id=run.run_id, provider_run_id=handle.provider_run_id
    )
