"""
Website content crawler.

Fetches a business homepage plus a few same-host sub-pages, preferring
contact / about / team pages, and returns the visible text of each page.
Best effort: pages that fail to load are skipped; only a failure to load the
homepage is reported as a ProviderError.
"""

from __future__ import annotations

import logging
from typing import List, Optional
from urllib.parse import urldefrag, urljoin, urlsplit

import httpx
from bs4 import BeautifulSoup

from domain.normalizer import is_social_media_url
from providers.base import ProviderError

logger = logging.getLogger(__name__)

PROVIDER_NAME = "crawler"

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "es-ES,es;q=0.9,en;q=0.8",
}

# Lower index = crawled first.
KEYWORD_PRIORITY = (
    "contact",
    "contacto",
    "about",
    "sobre",
    "nosotros",
    "quienes-somos",
    "team",
    "equipo",
    "staff",
    "servicios",
    "services",
)

MAX_TEXT_CHARS = 8000

_SKIP_EXTENSIONS = (".pdf", ".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".zip", ".mp4")
_STRIP_TAGS = ("script", "style", "noscript", "svg", "iframe", "template")


def normalize_root_url(raw: str) -> Optional[str]:
    text = (raw or "").strip()
    if not text:
        return None
    if "://" not in text:
        text = "https://" + text
    try:
        parts = urlsplit(text)
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    if is_social_media_url(text):
        return None
    return f"{parts.scheme}://{parts.netloc}/"


def extract_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_STRIP_TAGS):
        tag.decompose()
    text = " ".join(soup.get_text(separator=" ").split())
    return text[:MAX_TEXT_CHARS]


def _link_priority(url: str) -> int:
    path = urlsplit(url).path.lower()
    for index, keyword in enumerate(KEYWORD_PRIORITY):
        if keyword in path:
            return index
    return len(KEYWORD_PRIORITY)


def candidate_links(html: str, base_url: str) -> List[str]:
    """Same-host links, deduplicated, sorted by keyword priority then page order."""

    host = urlsplit(base_url).netloc.lower()
    soup = BeautifulSoup(html, "html.parser")
    seen: dict[str, None] = {}

    for anchor in soup.find_all("a", href=True):
        href = str(anchor["href"]).strip()
        if not href or href.startswith(("mailto:", "tel:", "javascript:", "#")):
            continue
        url = urldefrag(urljoin(base_url, href))[0]
        try:
            parts = urlsplit(url)
        except ValueError:
            continue
        if parts.netloc.lower() != host or parts.scheme not in ("http", "https"):
            continue
        if parts.path.lower().endswith(_SKIP_EXTENSIONS):
            continue
        if url.rstrip("/") == base_url.rstrip("/"):
            continue
        seen.setdefault(url, None)

    links = list(seen)
    # sorted() is stable, so page order breaks ties
    return sorted(links, key=_link_priority)


class WebsiteCrawler:
    def __init__(
        self,
        *,
        timeout_seconds: float = 20.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            headers=DEFAULT_HEADERS, timeout=timeout_seconds, follow_redirects=True
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_html(self, url: str) -> str:
        try:
            response = await self._client.get(url)
        except httpx.TimeoutException as exc:
            raise ProviderError(PROVIDER_NAME, f"timeout fetching {url}") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(PROVIDER_NAME, f"transport error fetching {url}: {exc}") from exc

        if response.status_code >= 400:
            raise ProviderError(
                PROVIDER_NAME, f"{url} returned {response.status_code}", status_code=response.status_code
            )
        content_type = response.headers.get("content-type", "").lower()
        if content_type and "html" not in content_type:
            raise ProviderError(PROVIDER_NAME, f"{url} is not HTML ({content_type})")
        return response.text

    async def fetch_pages(self, url: str, max_pages: int) -> List[str]:
        root = normalize_root_url(url)
        if root is None:
            return []

        homepage = await self._get_html(url if "://" in url else root)
        texts = [extract_text(homepage)]

        for link in candidate_links(homepage, root):
            if len(texts) >= max_pages:
                break
            try:
                html = await self._get_html(link)
            except ProviderError as exc:
                logger.debug("Skipping sub-page %s: %s", link, exc)
                continue
            texts.append(extract_text(html))

        return [t for t in texts if t]


__all__ = ["WebsiteCrawler", "candidate_links", "extract_text", "normalize_root_url"]
