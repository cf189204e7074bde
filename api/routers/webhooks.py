"""
Provider Webhook Endpoints.

- Apify: run completion (dataset ready) -> ingest the dataset
- Instantly: outreach events -> lead / channel / enrollment transitions
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from api.dependencies import ServiceContainer, get_container, get_search_service
from api.models import WebhookAck
from providers.base import ProviderError
from services.search_service import SearchRunService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhooks/apify", response_model=WebhookAck, summary="Apify Run Completed")
async def apify_webhook(
    run_id: str = Query(..., description="Scrape run id embedded in the webhook URL"),
    payload: Dict[str, Any] = Body(...),
    search: SearchRunService = Depends(get_search_service),
):
    resource = payload.get("resource") or {}
    dataset_id = resource.get("defaultDatasetId") if isinstance(resource, dict) else None
    if not dataset_id:
        return WebhookAck(status="ignored", detail="no dataset in payload")

    try:
        result = await search.complete_from_webhook(run_id, str(dataset_id))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ProviderError as e:
        logger.error("Could not fetch dataset %s for run %s: %s", dataset_id, run_id, e)
        raise HTTPException(status_code=502, detail=str(e))

    return WebhookAck(status="ok", detail=f"{result.accepted} records accepted")


@router.post("/webhooks/instantly", response_model=WebhookAck, summary="Instantly Event")
async def instantly_webhook(
    payload: Dict[str, Any] = Body(...),
    container: ServiceContainer = Depends(get_container),
):
    # Unsupported events are acknowledged so the provider does not retry them.
    try:
        receipt = await container.outreach.handle_webhook(payload)
    except ValueError as e:
        logger.info("Ignoring outreach event: %s", e)
        return WebhookAck(status="ignored", detail=str(e))

    return WebhookAck(status="ok", detail=receipt.handling.value)
