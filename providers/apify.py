"""
Apify client for the Google Maps listings actor.

Runs are started asynchronously. Completion is either pushed to our webhook
(ACTOR.RUN.SUCCEEDED) or discovered by polling the run status.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, List, Mapping, Optional

import httpx

from domain.run import PollStatus, ProviderRunState, RunHandle, SearchRequest
from providers.base import ProviderError

logger = logging.getLogger(__name__)

APIFY_BASE_URL = "https://api.apify.com/v2"
PROVIDER_NAME = "apify"

_STATE_MAP: Mapping[str, ProviderRunState] = {
    "READY": ProviderRunState.QUEUED,
    "RUNNING": ProviderRunState.RUNNING,
    "SUCCEEDED": ProviderRunState.SUCCEEDED,
    "FAILED": ProviderRunState.FAILED,
    "ABORTING": ProviderRunState.FAILED,
    "ABORTED": ProviderRunState.FAILED,
    "TIMING-OUT": ProviderRunState.FAILED,
    "TIMED-OUT": ProviderRunState.FAILED,
}


def map_run_state(raw_status: str) -> ProviderRunState:
    """Unrecognized states are treated as failures so pollers stop."""

    state = _STATE_MAP.get((raw_status or "").upper())
    if state is None:
        logger.warning("Unrecognized Apify run status %r; treating as failed", raw_status)
        return ProviderRunState.FAILED
    return state


def build_actor_input(request: SearchRequest) -> dict[str, Any]:
    return {
        "language": "es",
        "locationQuery": f"{request.geo}, Spain",
        "maxCrawledPlacesPerSearch": request.limit,
        "searchStringsArray": [request.query],
        "skipClosedPlaces": False,
    }


def encode_webhooks(webhook_url: str) -> str:
    webhooks = [{"eventTypes": ["ACTOR.RUN.SUCCEEDED"], "requestUrl": webhook_url}]
    return base64.b64encode(json.dumps(webhooks).encode("utf-8")).decode("ascii")


class ApifyListingsProvider:
    def __init__(
        self,
        api_key: str,
        *,
        actor_id: str,
        timeout_seconds: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not api_key:
            raise ValueError("Apify API key is required")
        self._api_key = api_key
        self._actor_id = actor_id
        self._client = client or httpx.AsyncClient(base_url=APIFY_BASE_URL, timeout=timeout_seconds)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json_body: Any = None,
    ) -> Any:
        query = {"token": self._api_key, **(params or {})}
        try:
            response = await self._client.request(method, path, params=query, json=json_body)
        except httpx.TimeoutException as exc:
            raise ProviderError(PROVIDER_NAME, f"timeout calling {path}") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(PROVIDER_NAME, f"transport error calling {path}: {exc}") from exc

        if response.status_code >= 400:
            raise ProviderError(
                PROVIDER_NAME,
                f"{method} {path} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(PROVIDER_NAME, f"non-JSON response from {path}") from exc

    async def submit_search(
        self, request: SearchRequest, *, webhook_url: Optional[str] = None
    ) -> RunHandle:
        params = {"webhooks": encode_webhooks(webhook_url)} if webhook_url else None
        body = await self._request(
            "POST", f"/acts/{self._actor_id}/runs", params=params, json_body=build_actor_input(request)
        )
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict) or not data.get("id"):
            raise ProviderError(PROVIDER_NAME, "run response has no run id")

        logger.info("Started Apify run %s for %r in %r", data["id"], request.query, request.geo)
        return RunHandle(provider_run_id=str(data["id"]), results_handle=data.get("defaultDatasetId"))

    async def poll_status(self, handle: RunHandle) -> PollStatus:
        body = await self._request("GET", f"/actor-runs/{handle.provider_run_id}")
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise ProviderError(PROVIDER_NAME, "run status response has no data")

        raw_status = str(data.get("status") or "")
        return PollStatus(
            state=map_run_state(raw_status),
            results_handle=data.get("defaultDatasetId") or handle.results_handle,
            raw_status=raw_status,
        )

    async def fetch_results(self, results_handle: str) -> List[Mapping[str, Any]]:
        body = await self._request("GET", f"/datasets/{results_handle}/items", params={"clean": "true"})
        if not isinstance(body, list):
            raise ProviderError(PROVIDER_NAME, "dataset items response is not a list")
        return [item for item in body if isinstance(item, dict)]


__all__ = ["ApifyListingsProvider", "build_actor_input", "encode_webhooks", "map_run_state"]
