"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Ingestion Models
# ============================================================================

class IngestRequest(BaseModel):
    """Batch of raw provider records to ingest."""
    records: List[Dict[str, Any]] = Field(..., description="Raw listings as returned by the provider")
    search_query: str = Field(default="", description="Search that produced the records")
    run_id: Optional[str] = Field(default=None, description="Scrape run to link the leads to")

    class Config:
        json_schema_extra = {
            "example": {
                "records": [
                    {
                        "title": "Clínica Sol",
                        "email": "owner@clinic.es",
                        "phone": "612345678",
                        "website": "https://clinic.es",
                        "city": "Madrid",
                        "reviewsCount": 120,
                        "totalScore": 4.8,
                    }
                ],
                "search_query": "fisioterapia",
            }
        }


class IngestResponse(BaseModel):
    """Acknowledgment of an accepted batch. Per-lead outcomes are observable on the leads."""
    message: str
    accepted: int
    created: int
    updated: int
    discarded: int
    enqueued: int
    failed: int
    lead_ids: List[str]


class SearchRequest(BaseModel):
    """Start a listings search for a business type in a city."""
    business_type: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    limit: int = Field(default=20, ge=1, le=500)

    class Config:
        json_schema_extra = {
            "example": {"business_type": "centro de yoga", "city": "Valencia", "limit": 50}
        }


class SearchStartedResponse(BaseModel):
    message: str
    run_id: str
    provider_run_id: str


# ============================================================================
# Enrichment Models
# ============================================================================

class EnrichmentTaskResponse(BaseModel):
    """State of one lead's enrichment task."""
    lead_id: str
    force: bool
    state: str  # queued | running | succeeded | skipped | failed
    error: Optional[str] = None
    submitted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class EnrichmentTaskListResponse(BaseModel):
    tasks: List[EnrichmentTaskResponse]
    counts: Dict[str, int]


# ============================================================================
# Outreach Models
# ============================================================================

class EnrollRequest(BaseModel):
    lead_id: str
    campaign_id: str
    variables: Dict[str, Any] = Field(default_factory=dict)


class EnrollmentResponse(BaseModel):
    enrollment_id: str
    lead_id: str
    campaign_id: str
    provider_lead_id: str
    status: str
    simulated: bool


class WebhookAck(BaseModel):
    status: str
    detail: Optional[str] = None
