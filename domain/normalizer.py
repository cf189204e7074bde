"""
Domain: Normalizer.

Turns one raw provider listing (untyped mapping) into a CleanLead plus the
EnrichmentFlags describing what is missing.

Contract excerpts implemented here:
- Pure and deterministic: the same raw record always produces the same output.
- Never raises on malformed input; bad URLs / phone fragments degrade to "".
- The same logical field may arrive under several names depending on the
  provider version. Each logical field is read through an ordered list of
  candidate field names (FIELD_CANDIDATES), first non-empty value wins.
"""

from __future__ import annotations

import math
import re
from typing import Any, Iterable, List, Mapping, Sequence, Tuple
from urllib.parse import parse_qs, urlsplit

from .lead import CleanLead, DedupeKeys, EcommerceSignal, EnrichmentFlags, PhoneType

# Ordered candidate field names per logical field.
FIELD_CANDIDATES: Mapping[str, Sequence[str]] = {
    "name": ("title", "name", "businessName", "business_name"),
    "category": ("categoryName", "category", "businessType"),
    "categories": ("categories",),
    "website": ("website", "url", "websiteUrl", "site"),
    "domain": ("domain",),
    "address": ("address", "fullAddress", "formattedAddress"),
    "street": ("street",),
    "neighborhood": ("neighborhood",),
    "city": ("city", "locality"),
    "postal_code": ("postalCode", "postal_code", "zip"),
    "state": ("state", "region"),
    "country_code": ("countryCode", "country_code", "country"),
    "total_score": ("totalScore", "rating", "stars"),
    "reviews_count": ("reviewsCount", "reviews_count", "reviews"),
    "images_count": ("imagesCount",),
    "place_id": ("placeId", "place_id", "googlePlaceId"),
    "cid": ("cid",),
    "scraped_at": ("scrapedAt", "scraped_at"),
    "scraped_urls": ("scrapedUrls", "crawledUrls", "subPages"),
}

# Every field that may hold one or many email addresses, merged in this order.
EMAIL_FIELDS: Sequence[str] = (
    "email",
    "emails",
    "emailAddress",
    "verifiedEmails",
    "verified_emails",
    "contactEmails",
    "contact_emails",
)

# Singular phone first: it is the listing's own primary number.
PHONE_FIELDS: Sequence[str] = (
    "phone",
    "phoneUnformatted",
    "phones",
    "phoneNumbers",
    "contactPhones",
)

GENERIC_EMAIL_ALIASES = frozenset({"info", "contacto", "admin"})

SOCIAL_MEDIA_DOMAINS: Tuple[str, ...] = (
    "facebook.com",
    "instagram.com",
    "linkedin.com",
    "twitter.com",
    "x.com",
    "tiktok.com",
    "youtube.com",
    "pinterest.com",
    "wa.me",
)

# Website builders, free hosting and link shorteners: the host says nothing
# about the business itself.
PROVIDER_DOMAINS: Tuple[str, ...] = (
    "wixsite.com",
    "wix.com",
    "sites.google.com",
    "business.site",
    "negocio.site",
    "godaddysites.com",
    "jimdosite.com",
    "webnode.es",
    "wordpress.com",
    "blogspot.com",
    "square.site",
    "carrd.co",
    "linktr.ee",
    "bit.ly",
    "goo.gl",
    "tinyurl.com",
)

PLACEHOLDER_EMAIL_DOMAINS = frozenset(
    {"no-email.com", "example.com", "example.org", "domain.com", "email.com", "test.com"}
)

_ECOMMERCE_PATH_RE = re.compile(r"/(shop|tienda|store|carrito|checkout|producto|productos)\b")
_PHONE_STRIP_RE = re.compile(r"[^\d+]")
_MIN_PHONE_DIGITS = 7
_SPAIN_DIALING_CODE = "34"


def _to_str(value: Any) -> str:
    if value is None or isinstance(value, (dict, list, tuple, set)):
        return ""
    return str(value).strip()


def _uniq(values: Iterable[str]) -> Tuple[str, ...]:
    """Drop empties and duplicates while keeping first-seen order."""

    seen: dict[str, None] = {}
    for value in values:
        if value and value not in seen:
            seen[value] = None
    return tuple(seen)


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


def _first(raw: Mapping[str, Any], logical: str) -> Any:
    for name in FIELD_CANDIDATES[logical]:
        value = raw.get(name)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _first_str(raw: Mapping[str, Any], logical: str) -> str:
    return _to_str(_first(raw, logical))


def _to_float(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def _to_int(value: Any) -> int:
    return int(_to_float(value))


def _host_matches(host: str, domains: Iterable[str]) -> bool:
    return any(host == d or host.endswith("." + d) for d in domains)


# ---------------------------------------------------------------------------
# Email
# ---------------------------------------------------------------------------


def normalize_email(value: Any) -> str:
    """Lower-case and trim; anything without '@' is not an email."""

    email = _to_str(value).lower()
    if email.startswith("mailto:"):
        email = email[len("mailto:"):]
    return email if "@" in email else ""


def extract_emails(raw: Mapping[str, Any]) -> Tuple[str, ...]:
    candidates: List[str] = []
    for name in EMAIL_FIELDS:
        for value in _as_list(raw.get(name)):
            candidates.append(normalize_email(value))
    return _uniq(candidates)


def is_placeholder_email(email: str) -> bool:
    normalized = normalize_email(email)
    if not normalized:
        return True
    local, _, domain = normalized.partition("@")
    return not local or "." not in domain or domain in PLACEHOLDER_EMAIL_DOMAINS


def _email_domain(email: str) -> str:
    return email.rpartition("@")[2]


def pick_primary_email(emails: Sequence[str], domain: str) -> str:
    """
    Priority:
    1. email on the business's own website domain
    2. email that is not a generic alias (info@, contacto@, admin@)
    3. first remaining candidate
    """

    if not emails:
        return ""

    if domain:
        for email in emails:
            host = _email_domain(email)
            if host == domain or host.endswith("." + domain):
                return email

    for email in emails:
        if email.partition("@")[0] not in GENERIC_EMAIL_ALIASES:
            return email

    return emails[0]


# ---------------------------------------------------------------------------
# Phone
# ---------------------------------------------------------------------------


def normalize_phone(value: Any) -> str:
    """
    Normalize to a '+'-prefixed international number.

    - already '+'-prefixed: kept
    - exactly 9 digits: Spanish local number, '+34' prepended
    - 11 digits starting with 34: '+' prepended
    - otherwise digits are passed through with '+'
    Fragments shorter than _MIN_PHONE_DIGITS digits are invalid and return "".
    """

    cleaned = _PHONE_STRIP_RE.sub("", _to_str(value))
    if not cleaned:
        return ""

    digits = cleaned.replace("+", "")
    if len(digits) < _MIN_PHONE_DIGITS:
        return ""

    if cleaned.startswith("+"):
        return "+" + digits
    if len(digits) == 9:
        return f"+{_SPAIN_DIALING_CODE}{digits}"
    if len(digits) == 11 and digits.startswith(_SPAIN_DIALING_CODE):
        return "+" + digits
    return "+" + digits


def extract_phones(raw: Mapping[str, Any]) -> Tuple[str, ...]:
    candidates: List[str] = []
    for name in PHONE_FIELDS:
        for value in _as_list(raw.get(name)):
            candidates.append(normalize_phone(value))
    return _uniq(candidates)


def classify_phone(phone: str) -> PhoneType:
    """Spanish numbering plan: 6/7 mobile, 8/9 landline; other countries unknown."""

    digits = phone.lstrip("+")
    if len(digits) != 11 or not digits.startswith(_SPAIN_DIALING_CODE):
        return PhoneType.UNKNOWN
    national = digits[len(_SPAIN_DIALING_CODE):]
    if national[:1] in ("6", "7"):
        return PhoneType.MOBILE
    if national[:1] in ("8", "9"):
        return PhoneType.LANDLINE
    return PhoneType.UNKNOWN


def is_whatsapp_likely(phone_type: PhoneType, phone: str) -> bool:
    """WhatsApp is assumed only for Spanish mobile numbers."""

    return phone_type is PhoneType.MOBILE and phone.startswith("+" + _SPAIN_DIALING_CODE)


def pick_primary_phone(phones: Sequence[str]) -> str:
    for phone in phones:
        if classify_phone(phone) is PhoneType.MOBILE:
            return phone
    return phones[0] if phones else ""


# ---------------------------------------------------------------------------
# Website / domain
# ---------------------------------------------------------------------------


def _unwrap_redirect(url: str) -> str:
    """Search-engine redirect wrappers (google.*/url?q=...) carry the real URL in q=."""

    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    host = (parts.hostname or "").lower()
    if parts.path.rstrip("/") != "/url" or "google." not in host:
        return url
    params = parse_qs(parts.query)
    for key in ("q", "url"):
        target = params.get(key)
        if target and target[0].strip():
            return target[0].strip()
    return url


def website_host(url: str) -> str:
    """Lower-cased host without a leading 'www.'; "" when the URL is unusable."""

    text = _to_str(url)
    if not text:
        return ""
    text = _unwrap_redirect(text)
    if "://" not in text:
        text = "https://" + text
    try:
        host = (urlsplit(text).hostname or "").lower()
    except ValueError:
        return ""
    if host.startswith("www."):
        host = host[4:]
    return host if "." in host else ""


def extract_domain(url: str) -> str:
    return website_host(url)


def is_social_media_url(url: str) -> bool:
    host = website_host(url)
    return bool(host) and _host_matches(host, SOCIAL_MEDIA_DOMAINS)


def is_provider_domain(url: str) -> bool:
    host = website_host(url)
    return bool(host) and _host_matches(host, PROVIDER_DOMAINS)


def detect_ecommerce(urls: Iterable[str]) -> EcommerceSignal:
    matched: List[str] = []
    for url in urls:
        lowered = url.lower()
        try:
            path = urlsplit(lowered).path
        except ValueError:
            path = lowered
        if _ECOMMERCE_PATH_RE.search(path):
            matched.append(lowered)
    return EcommerceSignal(is_ecommerce=bool(matched), matched_urls=tuple(matched))


# ---------------------------------------------------------------------------
# Dedupe keys
# ---------------------------------------------------------------------------


def build_dedupe_keys(
    *, place_id: str, domain: str, city: str, name: str, address: str, shared_host: bool
) -> DedupeKeys:
    """shared_host: social/provider hosts are shared by many businesses and never key a lead."""

    return DedupeKeys(
        primary=f"place:{place_id}" if place_id else "",
        secondary=f"domcity:{domain}:{city.lower()}" if domain and city and not shared_host else "",
        tertiary=f"nameaddr:{name.lower()}:{address.lower()}" if name and address else "",
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def normalize(raw: Mapping[str, Any]) -> tuple[CleanLead, EnrichmentFlags]:
    """Normalize one raw provider record. Never raises for mapping input."""

    if not isinstance(raw, Mapping):
        raw = {}

    website = _first_str(raw, "website")
    domain = extract_domain(_first_str(raw, "domain")) or extract_domain(website)
    social = is_social_media_url(website)
    provider = is_provider_domain(website)

    emails_all = extract_emails(raw)
    email_primary = pick_primary_email(emails_all, "" if social or provider else domain)

    phones_all = extract_phones(raw)
    phone_primary = pick_primary_phone(phones_all)
    phone_type = classify_phone(phone_primary) if phone_primary else PhoneType.UNKNOWN

    name = _first_str(raw, "name")
    address = _first_str(raw, "address")
    city = _first_str(raw, "city")
    place_id = _first_str(raw, "place_id")
    scraped_urls = _uniq(_to_str(u) for u in _as_list(_first(raw, "scraped_urls")))

    keys = build_dedupe_keys(
        place_id=place_id,
        domain=domain,
        city=city,
        name=name,
        address=address,
        shared_host=social or provider,
    )

    permanently_closed = bool(raw.get("permanentlyClosed") or raw.get("permanently_closed"))
    temporarily_closed = bool(raw.get("temporarilyClosed") or raw.get("temporarily_closed"))

    clean = CleanLead(
        name=name,
        category=_first_str(raw, "category"),
        categories=_uniq(_to_str(c) for c in _as_list(_first(raw, "categories"))),
        website=website,
        domain=domain,
        email_primary=email_primary,
        emails_all=emails_all,
        phone_primary=phone_primary,
        phones_all=phones_all,
        phone_type=phone_type,
        whatsapp_likely=is_whatsapp_likely(phone_type, phone_primary),
        address=address,
        street=_first_str(raw, "street"),
        neighborhood=_first_str(raw, "neighborhood"),
        city=city,
        postal_code=_first_str(raw, "postal_code"),
        state=_first_str(raw, "state"),
        country_code=_first_str(raw, "country_code").upper(),
        total_score=_to_float(_first(raw, "total_score")),
        reviews_count=_to_int(_first(raw, "reviews_count")),
        images_count=_to_int(_first(raw, "images_count")),
        permanently_closed=permanently_closed,
        temporarily_closed=temporarily_closed,
        ecommerce=detect_ecommerce(scraped_urls),
        place_id=place_id,
        cid=_first_str(raw, "cid"),
        scraped_at=_first_str(raw, "scraped_at"),
        scraped_urls=scraped_urls,
        dedupe_keys=keys,
    )

    warnings: List[str] = []
    if social:
        warnings.append("website is a social media profile")
    if provider:
        warnings.append("website is hosted on a site builder or shortener")
    if not keys.best:
        warnings.append("record has no dedupe key")

    flags = EnrichmentFlags(
        missing_email=not email_primary,
        missing_website=not website,
        missing_domain=not domain,
        missing_contact_person=True,
        is_social_media=social,
        is_provider_domain=provider,
        undeduplicable=not keys.best,
        warning="; ".join(warnings) or None,
    )
    return clean, flags


__all__ = [
    "classify_phone",
    "detect_ecommerce",
    "extract_domain",
    "is_placeholder_email",
    "is_provider_domain",
    "is_social_media_url",
    "normalize",
    "normalize_email",
    "normalize_phone",
    "pick_primary_email",
    "pick_primary_phone",
]
