"""
Outreach API Endpoints.

Campaign enrollment and sequence pause / resume.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import ServiceContainer, get_container
from api.models import EnrollmentResponse, EnrollRequest
from domain.outreach import Enrollment
from providers.base import ProviderError

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(enrollment: Enrollment) -> EnrollmentResponse:
    return EnrollmentResponse(
        enrollment_id=enrollment.enrollment_id,
        lead_id=enrollment.lead_id,
        campaign_id=enrollment.campaign_id,
        provider_lead_id=enrollment.provider_lead_id,
        status=enrollment.status.value,
        simulated=enrollment.simulated,
    )


@router.post("/outreach/enrollments", response_model=EnrollmentResponse, status_code=201, summary="Enroll Lead")
async def enroll_lead(request: EnrollRequest, container: ServiceContainer = Depends(get_container)):
    try:
        enrollment = await container.outreach.enroll(request.lead_id, request.campaign_id, request.variables)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProviderError as e:
        logger.error("Enrollment failed for lead %s: %s", request.lead_id, e)
        raise HTTPException(status_code=502, detail=str(e))
    return _to_response(enrollment)


@router.post("/outreach/enrollments/{enrollment_id}/pause", response_model=EnrollmentResponse, summary="Pause Enrollment")
async def pause_enrollment(enrollment_id: str, container: ServiceContainer = Depends(get_container)):
    try:
        enrollment = await container.outreach.pause(enrollment_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ProviderError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return _to_response(enrollment)


@router.post("/outreach/enrollments/{enrollment_id}/resume", response_model=EnrollmentResponse, summary="Resume Enrollment")
async def resume_enrollment(enrollment_id: str, container: ServiceContainer = Depends(get_container)):
    try:
        enrollment = await container.outreach.resume(enrollment_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ProviderError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return _to_response(enrollment)
