"""
Instantly (v2 API) outreach provider, plus a local simulation twin.

SIMULATION mode never calls the network: enrollment ids are fabricated
locally (SIM_lead_<hex>) and pause/resume are no-ops.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping, Optional

import httpx

from domain.outreach import Enrollment
from providers.base import ProviderError

logger = logging.getLogger(__name__)

INSTANTLY_BASE_URL = "https://api.instantly.ai/api/v2"
PROVIDER_NAME = "instantly"


class InstantlyClient:
    simulated = False

    def __init__(
        self,
        api_key: str,
        *,
        workspace_id: Optional[str] = None,
        timeout_seconds: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not api_key:
            raise ValueError("Instantly API key is required in LIVE mode")
        self._workspace_id = workspace_id
        self._client = client or httpx.AsyncClient(
            base_url=INSTANTLY_BASE_URL,
            timeout=timeout_seconds,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, body: Mapping[str, Any]) -> Any:
        try:
            response = await self._client.post(path, json=dict(body))
        except httpx.TimeoutException as exc:
            raise ProviderError(PROVIDER_NAME, f"timeout calling {path}") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(PROVIDER_NAME, f"transport error calling {path}: {exc}") from exc

        if response.status_code >= 400:
            raise ProviderError(
                PROVIDER_NAME,
                f"POST {path} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(PROVIDER_NAME, f"non-JSON response from {path}") from exc

    async def enroll(
        self,
        campaign_id: str,
        *,
        email: str,
        business_name: str,
        variables: Mapping[str, Any],
    ) -> str:
        body: dict[str, Any] = {
            "email": email,
            "first_name": business_name.split(" ")[0] if business_name else "",
            "company_name": business_name,
            "variables": dict(variables),
        }
        if self._workspace_id:
            body["workspace_id"] = self._workspace_id

        data = await self._post(f"/campaigns/{campaign_id}/leads", body)
        provider_id = data.get("id") if isinstance(data, dict) else None
        if not provider_id:
            raise ProviderError(PROVIDER_NAME, "enrollment response has no lead id")
        return str(provider_id)

    async def pause(self, enrollment: Enrollment) -> None:
        await self._post(f"/leads/{enrollment.provider_lead_id}/pause", {})

    async def resume(self, enrollment: Enrollment) -> None:
        await self._post(f"/leads/{enrollment.provider_lead_id}/resume", {})


class SimulatedOutreachProvider:
    simulated = True

    async def enroll(
        self,
        campaign_id: str,
        *,
        email: str,
        business_name: str,
        variables: Mapping[str, Any],
    ) -> str:
        provider_id = f"SIM_lead_{uuid.uuid4().hex[:12]}"
        logger.info("[simulation] enrolled %s in campaign %s as %s", email, campaign_id, provider_id)
        return provider_id

    async def pause(self, enrollment: Enrollment) -> None:
        logger.info("[simulation] paused enrollment %s", enrollment.enrollment_id)

    async def resume(self, enrollment: Enrollment) -> None:
        logger.info("[simulation] resumed enrollment %s", enrollment.enrollment_id)


__all__ = ["InstantlyClient", "SimulatedOutreachProvider"]
