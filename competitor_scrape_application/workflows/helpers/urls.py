from __future__ import annotations

from typing import Optional
from urllib.parse import quote, urljoin, urlparse

from .regex_patterns import DATA_URI_RE, URL_SCHEME_RE

_ALLOWED_SCHEMES = {"http", "https"}

# Search path templates keyed by a marker found in the site's host.
SEARCH_PATH_TEMPLATES = (
    ("amazon", "/s?k={query}"),
    ("flipkart", "/search?q={query}"),
    ("ajio", "/s/search/?text={query}"),
    ("nykaa", "/search/result/?q={query}"),
)
GENERIC_SEARCH_PATH = "/search?q={query}"


def normalize_url(url: str) -> str:
    """Prepend https:// when no scheme is present and validate the result.

    Raises ValueError for empty input, non-http(s) schemes or a missing host.
    """

    candidate = (url or "").strip()
    if not candidate:
        raise ValueError("URL is required")
    if not URL_SCHEME_RE.match(candidate):
        candidate = f"https://{candidate}"
    parsed = urlparse(candidate)
    if parsed.scheme.lower() not in _ALLOWED_SCHEMES:
        raise ValueError(f"Unsupported URL scheme: {url}")
    if not parsed.hostname or " " in parsed.netloc:
        raise ValueError(f"Invalid URL: {url}")
    return candidate


def extract_domain(url: str) -> str:
    try:
        host = urlparse(normalize_url(url)).hostname or ""
    except ValueError:
        return (url or "").strip().lower()
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def absolutize_url(url: Optional[str], base_url: Optional[str]) -> str:
    """Resolve a relative URL against a page URL; data URIs and absolute URLs pass through."""

    if not url:
        return ""
    value = url.strip()
    if not value or DATA_URI_RE.match(value) or URL_SCHEME_RE.match(value):
        return value
    if not base_url:
        return value
    return urljoin(base_url, value)


def build_search_url(website: str, category: Optional[str] = None) -> str:
    """Return the product search URL for a storefront and category."""

    start_url = normalize_url(website).rstrip("/")
    if not category or not category.strip():
        return start_url
    query = quote(category.strip(), safe="!~*'()")
    host = urlparse(start_url).hostname or ""
    for marker, template in SEARCH_PATH_TEMPLATES:
        if marker in host:
            return f"{start_url}{template.format(query=query)}"
    return f"{start_url}{GENERIC_SEARCH_PATH.format(query=query)}"


def host_slug(url: str) -> str:
    """Hostname with dots replaced by dashes, used for per-site storage keys."""

    return extract_domain(url).replace(".", "-")
