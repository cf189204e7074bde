"""
Domain: Business intelligence extracted from website text by a language model.

Model output is untrusted: it may be wrapped in chatter, truncated, or use the
wrong types. parse_intelligence() never raises; whatever cannot be recovered
becomes an empty-but-valid BusinessIntelligence.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class BusinessCategory(str, Enum):
    DEPORTE = "deporte"
    BIENESTAR = "bienestar"
    SALUD = "salud"


@dataclass(frozen=True, slots=True)
class FoundContact:
    name: str = ""
    role: str = ""
    email: str = ""


@dataclass(frozen=True, slots=True)
class BusinessIntelligence:
    summary: str = ""
    business_type: str = ""
    category: Optional[BusinessCategory] = None
    keywords: Tuple[str, ...] = ()
    ecommerce_signals: Tuple[str, ...] = ()
    icebreaker: str = ""
    context_line: str = ""
    followup_observation: str = ""
    found_contacts: Tuple[FoundContact, ...] = ()

    @staticmethod
    def empty() -> "BusinessIntelligence":
        return BusinessIntelligence()

    @property
    def is_empty(self) -> bool:
        return self == BusinessIntelligence()


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _text_list(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return ()
    return tuple(s for s in (_text(v) for v in value) if s)


def _category(value: Any) -> Optional[BusinessCategory]:
    try:
        return BusinessCategory(_text(value).lower())
    except ValueError:
        return None


def _contacts(value: Any) -> Tuple[FoundContact, ...]:
    if not isinstance(value, list):
        return ()
    contacts = []
    for item in value:
        if not isinstance(item, Mapping):
            continue
        contact = FoundContact(
            name=_text(item.get("name")),
            role=_text(item.get("role")),
            email=_text(item.get("email")).lower(),
        )
        if contact.name or contact.email:
            contacts.append(contact)
    return tuple(contacts)


def extract_json_object(content: str) -> Optional[dict[str, Any]]:
    """Parse content as JSON, falling back to the outermost {...} block."""

    if not content:
        return None

    candidates = [content]
    match = _JSON_OBJECT_RE.search(content)
    if match and match.group(0) != content:
        candidates.append(match.group(0))

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data
    return None


def intelligence_from_mapping(data: Mapping[str, Any]) -> BusinessIntelligence:
    return BusinessIntelligence(
        summary=_text(data.get("summary")),
        business_type=_text(data.get("business_type")),
        category=_category(data.get("categoria") or data.get("category")),
        keywords=_text_list(data.get("keywords")),
        ecommerce_signals=_text_list(data.get("ecommerce_signals")),
        icebreaker=_text(data.get("icebreaker")),
        context_line=_text(data.get("contexto_1_linea")),
        followup_observation=_text(data.get("observacion_1linea")),
        found_contacts=_contacts(data.get("found_contacts")),
    )


def parse_intelligence(content: Any) -> BusinessIntelligence:
    if not isinstance(content, str):
        return BusinessIntelligence.empty()

    data = extract_json_object(content)
    if data is None:
        logger.warning("Unparsable model output (%d chars); using empty intelligence", len(content))
        return BusinessIntelligence.empty()
    return intelligence_from_mapping(data)
