"""
Enrichment API Endpoints.

Explicit (re-)enrichment trigger and task-queue observability.
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import ServiceContainer, get_container
from api.models import EnrichmentTaskListResponse, EnrichmentTaskResponse

router = APIRouter()


@router.post(
    "/leads/{lead_id}/enrich",
    response_model=EnrichmentTaskResponse,
    status_code=202,
    summary="Enrich Lead",
)
async def enrich_lead(
    lead_id: str,
    force: bool = Query(False, description="Re-enrich even if the lead is closed or discarded"),
    container: ServiceContainer = Depends(get_container),
):
    """
    Queue enrichment for one lead.

    Without `force`, leads in a terminal routing status (DISCARDED, CLOSED_*)
    are skipped by the orchestrator.
    """
    lead = await container.leads.get_lead(lead_id)
    if lead is None:
        raise HTTPException(status_code=404, detail=f"Lead not found: {lead_id}")

    task = container.queue.submit(lead_id, force=force)
    return EnrichmentTaskResponse(**task.to_dict())


@router.get("/enrichment/tasks", response_model=EnrichmentTaskListResponse, summary="List Enrichment Tasks")
async def list_tasks(container: ServiceContainer = Depends(get_container)):
    return EnrichmentTaskListResponse(
        tasks=[EnrichmentTaskResponse(**t) for t in container.queue.snapshot()],
        counts=container.queue.counts(),
    )


@router.get("/enrichment/tasks/{lead_id}", response_model=EnrichmentTaskResponse, summary="Get Enrichment Task")
async def get_task(lead_id: str, container: ServiceContainer = Depends(get_container)):
    task = container.queue.get(lead_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"No enrichment task for lead {lead_id}")
    return EnrichmentTaskResponse(**task.to_dict())
