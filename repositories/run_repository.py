"""
Search run repository (persistence).

Tables:
- scrape_runs: one row per listings-provider search
- scrape_run_leads: (run_id, lead_id) links, unique on the pair
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from domain.run import RunStatus, ScrapeRun
from domain.time import utc_now

from repositories.client import execute

_RUNS_TABLE: str = "scrape_runs"
_RUN_LEADS_TABLE: str = "scrape_run_leads"


def _row_to_run(row: Mapping[str, Any]) -> ScrapeRun:
    try:
        status = RunStatus(row.get("status") or RunStatus.SCRAPING.value)
    except ValueError:
        status = RunStatus.SCRAPING
    return ScrapeRun(
        run_id=str(row["id"]),
        query=str(row.get("query") or ""),
        geo=str(row.get("geo") or ""),
        status=status,
        provider_run_id=str(row.get("provider_run_id") or ""),
        config=dict(row.get("config") or {}),
    )


class RunRepository:
    def __init__(self, client: Any) -> None:
        self._client = client

    async def create_run(self, query: str, geo: str, config: Mapping[str, Any]) -> ScrapeRun:
        rows = await execute(
            self._client.table(_RUNS_TABLE).insert(
                {
                    "query": query,
                    "geo": geo,
                    "config": dict(config),
                    "status": RunStatus.SCRAPING.value,
                    "created_at": utc_now().isoformat(),
                }
            ),
            "create scrape run",
        )
        if not rows:
            raise RuntimeError("Failed to create scrape run: no row returned")
        return _row_to_run(rows[0])

    async def get_run(self, run_id: str) -> Optional[ScrapeRun]:
        rows = await execute(
            self._client.table(_RUNS_TABLE).select("*").eq("id", str(run_id)).limit(1),
            "fetch scrape run",
        )
        return _row_to_run(rows[0]) if rows else None

    async def update_run(
        self,
        run_id: str,
        *,
        status: Optional[RunStatus] = None,
        provider_run_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        payload: dict[str, Any] = {"updated_at": utc_now().isoformat()}
        if status is not None:
            payload["status"] = status.value
        if provider_run_id is not None:
            payload["provider_run_id"] = provider_run_id
        if error is not None:
            payload["error"] = error
        await execute(
            self._client.table(_RUNS_TABLE).update(payload).eq("id", str(run_id)),
            "update scrape run",
        )

    async def link_lead(self, run_id: str, lead_id: str) -> None:
        await execute(
            self._client.table(_RUN_LEADS_TABLE).upsert(
                {"run_id": str(run_id), "lead_id": str(lead_id)},
                on_conflict="run_id,lead_id",
                ignore_duplicates=True,
            ),
            "link lead to scrape run",
        )


__all__ = ["RunRepository"]
