from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from ...constants import MAX_RATING, PRICE_NOT_AVAILABLE
from .regex_patterns import (
    DIGITS_WITH_SEPARATORS_RE,
    NUMBER_TOKEN_RE,
    PRICE_VALUE_RE,
    WHITESPACE_RE,
)
from .urls import absolutize_url

# A coercer receives the raw candidate value and the page base URL and returns
# the cleaned value, or None when the candidate is unusable.
Coercer = Callable[[Any, str], Any]


@dataclass(frozen=True)
class FieldRule:
    """One target attribute and the ordered candidate paths that may supply it."""

    name: str
    candidates: Sequence[str]
    coerce: Optional[Coercer] = None
    default: Any = None
    default_factory: Optional[Callable[[], Any]] = None

    def fallback(self) -> Any:
        if self.default_factory is not None:
            return self.default_factory()
        return self.default


def get_path(item: Any, path: str) -> Any:
    """Walk a dotted path (``price.value``, ``images.0``) through dicts and lists."""

    node = item
    for part in path.split("."):
        if isinstance(node, dict):
            node = node.get(part)
        elif isinstance(node, list) and part.isdigit():
            index = int(part)
            node = node[index] if index < len(node) else None
        else:
            return None
        if node is None:
            return None
    return node


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def resolve_fields(item: Any, rules: Iterable[FieldRule], *, base_url: str = "") -> Dict[str, Any]:
    """Evaluate each rule against a raw item; first usable candidate wins.

    Never raises: a field with no usable candidate receives its default.
    """

    source = item if isinstance(item, dict) else {}
    resolved: Dict[str, Any] = {}
    for rule in rules:
        value: Any = None
        for candidate in rule.candidates:
            raw = get_path(source, candidate)
            if _is_empty(raw):
                continue
            try:
                coerced = rule.coerce(raw, base_url) if rule.coerce else raw
            except (TypeError, ValueError):
                coerced = None
            if not _is_empty(coerced):
                value = coerced
                break
        resolved[rule.name] = rule.fallback() if value is None else value
    return resolved


def coerce_text(value: Any, base_url: str = "") -> Optional[str]:
    if isinstance(value, bool) or isinstance(value, (dict, list)):
        return None
    text = WHITESPACE_RE.sub(" ", str(value)).strip()
    return text or None


def coerce_price(value: Any, base_url: str = "") -> Optional[str]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return None
        return f"{value}"
    return coerce_text(value)


def coerce_rating(value: Any, base_url: str = "") -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = NUMBER_TOKEN_RE.search(value)
        if not match:
            return None
        number = float(match.group(0))
        if value.strip().startswith("-"):
            number = -number
    else:
        return None
    if math.isnan(number):
        return None
    return min(max(number, 0.0), MAX_RATING)


def coerce_count(value: Any, base_url: str = "") -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return None
        return max(int(value), 0)
    if isinstance(value, str):
        match = DIGITS_WITH_SEPARATORS_RE.search(value)
        if not match:
            return None
        return int(match.group(0).replace(",", ""))
    return None


def coerce_url(value: Any, base_url: str = "") -> Optional[str]:
    if not isinstance(value, str):
        return None
    return absolutize_url(value, base_url) or None


def coerce_keyword_list(value: Any, base_url: str = "") -> Optional[List[str]]:
    if isinstance(value, str):
        parts: Iterable[Any] = value.split(",")
    elif isinstance(value, (list, tuple)):
        parts = value
    else:
        return None
    keywords = [text for text in (coerce_text(part) for part in parts) if text]
    return keywords or None


def coerce_string_list(value: Any, base_url: str = "") -> Optional[List[str]]:
    if not isinstance(value, (list, tuple)):
        return None
    cleaned: List[str] = []
    for entry in value:
        if isinstance(entry, dict):
            entry = entry.get("text") or entry.get("src") or entry.get("href")
        text = coerce_text(entry) if entry is not None else None
        if text:
            cleaned.append(text)
    return cleaned or None


def coerce_timestamp(value: Any, base_url: str = "") -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value) if value > 0 else None


def _now_ms() -> int:
    return int(time.time() * 1000)


PRODUCT_RULES: tuple[FieldRule, ...] = (
    FieldRule("name", ("name", "title", "productName", "product_name"), coerce_text, default=""),
    FieldRule(
        "price",
        ("price", "offerPrice", "price.value", "currentPrice", "salePrice"),
        coerce_price,
        default=PRICE_NOT_AVAILABLE,
    ),
    FieldRule("imageUrl", ("imageUrl", "image", "thumbnail", "img", "images.0"), coerce_url, default=""),
    FieldRule("rating", ("rating", "stars", "ratingText", "averageRating"), coerce_rating, default=0.0),
    FieldRule("reviews", ("reviews", "reviewCount", "reviewsCount", "ratingsCount"), coerce_count, default=0),
    FieldRule("url", ("url", "productUrl", "link", "href"), coerce_url, default=""),
)

WEBSITE_RULES: tuple[FieldRule, ...] = (
    FieldRule("url", ("url", "pageUrl", "request.url"), coerce_url, default=""),
    FieldRule("title", ("title", "metadata.title", "ogTitle"), coerce_text, default=""),
    FieldRule(
        "description",
        ("description", "metaDescription", "metadata.description"),
        coerce_text,
        default="",
    ),
    FieldRule("keywords", ("keywords", "metaKeywords", "metadata.keywords"), coerce_keyword_list, default_factory=list),
    FieldRule("headings", ("headings",), coerce_string_list, default_factory=list),
    FieldRule("content", ("content", "text", "markdown"), coerce_text, default=""),
    FieldRule("links", ("links",), coerce_string_list, default_factory=list),
    FieldRule("images", ("images",), coerce_string_list, default_factory=list),
    FieldRule("lastScraped", ("timestamp", "lastScraped"), coerce_timestamp, default_factory=_now_ms),
)


def normalize_product(item: Any, base_url: str = "") -> Dict[str, Any]:
    page_url = get_path(item, "pageUrl") if isinstance(item, dict) else None
    page_base = page_url if isinstance(page_url, str) and page_url.strip() else base_url
    return resolve_fields(item, PRODUCT_RULES, base_url=page_base or "")


def normalize_products(items: Iterable[Any], base_url: str = "") -> List[Dict[str, Any]]:
    """Normalize raw product cards, dropping entries with neither a name nor a price."""

    products: List[Dict[str, Any]] = []
    for item in items or []:
        if not isinstance(item, dict):
            continue
        product = normalize_product(item, base_url)
        if not product["name"] and product["price"] == PRICE_NOT_AVAILABLE:
            continue
        products.append(product)
    return products


def normalize_website(item: Any, url: str) -> Dict[str, Any]:
    website = resolve_fields(item, WEBSITE_RULES, base_url=url)
    website["url"] = url
    return website


def parse_price_value(price: Any) -> float:
    """Numeric value of a display price; 0.0 when nothing numeric is present."""

    if isinstance(price, bool):
        return 0.0
    if isinstance(price, (int, float)):
        return 0.0 if math.isnan(price) else float(price)
    if not isinstance(price, str) or price == PRICE_NOT_AVAILABLE:
        return 0.0
    match = PRICE_VALUE_RE.search(price)
    if not match:
        return 0.0
    try:
        return float(match.group(0).replace(",", ""))
    except ValueError:
        return 0.0
