"""
Business-intelligence extraction through OpenRouter (OpenAI-compatible API).

The model is asked for a strict JSON object, but its reply is parsed
tolerantly by domain.intelligence.parse_intelligence: chatty or broken output
degrades to an empty BusinessIntelligence instead of raising.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from openai import AsyncOpenAI, OpenAIError

from domain.intelligence import BusinessIntelligence, parse_intelligence
from providers.base import ProviderError

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
PROVIDER_NAME = "openrouter"

MAX_PROMPT_TEXT_CHARS = 10000

SYSTEM_PROMPT = (
    "Eres un analista de negocios profesional. "
    "Tu salida debe ser ÚNICAMENTE JSON y todo el texto en ESPAÑOL."
)


def build_prompt(business_name: str, texts: Sequence[str]) -> str:
    combined = "\n\n".join(t for t in texts if t)[:MAX_PROMPT_TEXT_CHARS]
    return f"""Analiza el siguiente contenido del sitio web de la empresa "{business_name}".

Tareas:
1. BUSINESS INTELLIGENCE: resumen profesional de lo que hacen, su propuesta de valor y posicionamiento (3-5 frases).
2. Identifica 3-5 servicios principales o palabras clave.
3. Clasifica la CATEGORIA del negocio en una de estas opciones: "deporte", "bienestar", "salud".
4. Detecta si tienen tienda online o señales de ecommerce.
5. Identifica personas clave (dueños, gerentes, directores, equipo especializado) con su email si aparece.
6. Variables de personalización:
   - "contexto_1_linea": una frase que demuestre investigación real, no genérica.
   - "observacion_1linea": una observación específica para un follow-up.
   - "icebreaker": una frase de apertura amigable y natural en español.

Contenido:
{combined}

Formato de salida JSON (SOLO JSON):
{{
    "summary": "...",
    "business_type": "...",
    "categoria": "deporte|bienestar|salud",
    "keywords": ["..."],
    "ecommerce_signals": ["..."],
    "icebreaker": "...",
    "contexto_1_linea": "...",
    "observacion_1linea": "...",
    "found_contacts": [{{"name": "...", "role": "...", "email": "..."}}]
}}

IMPORTANTE: no inventes datos. Si no encuentras algo, déjalo vacío."""


class OpenRouterAnalyzer:
    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: str,
        timeout_seconds: float = 60.0,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self._model = model
        if client is not None:
            self._client: Optional[AsyncOpenAI] = client
        elif api_key:
            self._client = AsyncOpenAI(
                api_key=api_key, base_url=OPENROUTER_BASE_URL, timeout=timeout_seconds
            )
        else:
            self._client = None

    @property
    def configured(self) -> bool:
        return self._client is not None

    async def summarize(self, business_name: str, texts: Sequence[str]) -> BusinessIntelligence:
        if self._client is None:
            logger.info("OpenRouter API key not configured; skipping analysis for %r", business_name)
            return BusinessIntelligence.empty()

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(business_name, texts)},
                ],
                response_format={"type": "json_object"},
                temperature=0.2,
            )
        except OpenAIError as exc:
            raise ProviderError(PROVIDER_NAME, f"completion failed: {exc}") from exc

        if not response.choices:
            return BusinessIntelligence.empty()
        return parse_intelligence(response.choices[0].message.content or "")


__all__ = ["OpenRouterAnalyzer", "build_prompt"]
