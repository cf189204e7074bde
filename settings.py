"""
Application configuration.

Every knob lives on one frozen Settings object that is built once at startup
(load_settings) and passed to the components that need it. Nothing else in the
codebase reads the process environment.

Environment variables (all optional unless the database is required):
- SUPABASE_URL, SUPABASE_KEY: Supabase project URL and server-side API key
- APIFY_API_KEY, APIFY_ACTOR_ID: listings provider token and Google Maps actor
- BACKEND_URL: public base URL used for provider completion webhooks
- OPENROUTER_API_KEY, LLM_MODEL: text-understanding provider
- MILLION_VERIFIER_API_KEY: email verification provider
- INSTANTLY_API_KEY, INSTANTLY_WORKSPACE_ID, INSTANTLY_MODE (SIMULATION | LIVE)
- FETCH_TIMEOUT_SECONDS, AI_TIMEOUT_SECONDS, VERIFY_TIMEOUT_SECONDS
- MAX_CRAWL_PAGES, ENRICHMENT_CONCURRENCY
- POLL_INTERVAL_SECONDS, MAX_POLL_ATTEMPTS
- STRICT_ROUTING (true/false), LOG_LEVEL
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_ENV_PATH = Path(__file__).parent / ".env"


class OutreachMode(str, Enum):
    SIMULATION = "SIMULATION"
    LIVE = "LIVE"


@dataclass(frozen=True, slots=True)
class Settings:
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    apify_api_key: Optional[str] = None
    apify_actor_id: str = "WnMxbsRLNbPeYL6ge"
    backend_url: str = "http://localhost:8000"

    openrouter_api_key: Optional[str] = None
    llm_model: str = "anthropic/claude-3-haiku"

    million_verifier_api_key: Optional[str] = None

    instantly_api_key: Optional[str] = None
    instantly_workspace_id: Optional[str] = None
    instantly_mode: OutreachMode = OutreachMode.SIMULATION

    fetch_timeout_seconds: float = 20.0
    ai_timeout_seconds: float = 60.0
    verify_timeout_seconds: float = 15.0
    max_crawl_pages: int = 4
    enrichment_concurrency: int = 4

    poll_interval_seconds: float = 10.0
    max_poll_attempts: int = 60

    strict_routing: bool = False
    log_level: str = "INFO"

    def require_database(self) -> tuple[str, str]:
        """
        Return (url, key) for Supabase.

        Raises:
        - RuntimeError if either credential is missing
        """

        if not self.supabase_url:
            raise RuntimeError(
                "Missing environment variable: SUPABASE_URL. "
                "Set SUPABASE_URL to your Supabase project URL."
            )
        if not self.supabase_key:
            raise RuntimeError(
                "Missing environment variable: SUPABASE_KEY. "
                "Set SUPABASE_KEY to your Supabase API key."
            )
        return self.supabase_url, self.supabase_key


def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_float(name: str, default: float) -> float:
    value = _env_str(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise RuntimeError(f"Invalid {name}: expected a number, got {value!r}") from None


def _env_int(name: str, default: int) -> int:
    value = _env_str(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise RuntimeError(f"Invalid {name}: expected an integer, got {value!r}") from None


def _env_bool(name: str, default: bool) -> bool:
    value = _env_str(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


def load_settings(env_path: Optional[Path] = None, *, require_database: bool = False) -> Settings:
    """
    Build Settings from a .env file (if present) and the process environment.

    Values already present in the environment win over the .env file.
    """

    load_dotenv(dotenv_path=env_path or DEFAULT_ENV_PATH)

    mode_value = (_env_str("INSTANTLY_MODE", OutreachMode.SIMULATION.value) or "").upper()
    try:
        mode = OutreachMode(mode_value)
    except ValueError:
        raise RuntimeError(f"Invalid INSTANTLY_MODE: {mode_value!r} (expected SIMULATION or LIVE)") from None

    defaults = Settings()
    settings = Settings(
        supabase_url=_env_str("SUPABASE_URL"),
        supabase_key=_env_str("SUPABASE_KEY"),
        apify_api_key=_env_str("APIFY_API_KEY"),
        apify_actor_id=_env_str("APIFY_ACTOR_ID", defaults.apify_actor_id) or defaults.apify_actor_id,
        backend_url=_env_str("BACKEND_URL", defaults.backend_url) or defaults.backend_url,
        openrouter_api_key=_env_str("OPENROUTER_API_KEY"),
        llm_model=_env_str("LLM_MODEL", defaults.llm_model) or defaults.llm_model,
        million_verifier_api_key=_env_str("MILLION_VERIFIER_API_KEY"),
        instantly_api_key=_env_str("INSTANTLY_API_KEY"),
        instantly_workspace_id=_env_str("INSTANTLY_WORKSPACE_ID"),
        instantly_mode=mode,
        fetch_timeout_seconds=_env_float("FETCH_TIMEOUT_SECONDS", defaults.fetch_timeout_seconds),
        ai_timeout_seconds=_env_float("AI_TIMEOUT_SECONDS", defaults.ai_timeout_seconds),
        verify_timeout_seconds=_env_float("VERIFY_TIMEOUT_SECONDS", defaults.verify_timeout_seconds),
        max_crawl_pages=_env_int("MAX_CRAWL_PAGES", defaults.max_crawl_pages),
        enrichment_concurrency=_env_int("ENRICHMENT_CONCURRENCY", defaults.enrichment_concurrency),
        poll_interval_seconds=_env_float("POLL_INTERVAL_SECONDS", defaults.poll_interval_seconds),
        max_poll_attempts=_env_int("MAX_POLL_ATTEMPTS", defaults.max_poll_attempts),
        strict_routing=_env_bool("STRICT_ROUTING", defaults.strict_routing),
        log_level=(_env_str("LOG_LEVEL", defaults.log_level) or defaults.log_level).upper(),
    )

    if require_database:
        settings.require_database()
    return settings


__all__ = ["OutreachMode", "Settings", "load_settings"]
