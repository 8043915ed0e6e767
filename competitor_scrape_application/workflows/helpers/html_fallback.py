from __future__ import annotations

import html
from typing import Any, Dict, List

from .regex_patterns import (
    HTML_ATTR_RE,
    HTML_HEADING_RE,
    HTML_IMAGE_RE,
    HTML_ITEMSCOPE_RE,
    HTML_LD_JSON_RE,
    HTML_LINK_RE,
    HTML_META_TAG_RE,
    HTML_PARAGRAPH_RE,
    HTML_SCRIPT_BLOCK_RE,
    HTML_STYLE_BLOCK_RE,
    HTML_TAG_RE,
    HTML_TITLE_RE,
    WHITESPACE_RE,
)


def _attrs(tag: str) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for match in HTML_ATTR_RE.finditer(tag):
        value = match.group("dq") if match.group("dq") is not None else match.group("sq")
        values[match.group("name").lower()] = html.unescape(value or "")
    return values


def strip_tags(fragment: str) -> str:
    text = HTML_TAG_RE.sub(" ", fragment or "")
    return WHITESPACE_RE.sub(" ", html.unescape(text)).strip()


def _meta_index(document: str) -> Dict[str, str]:
    index: Dict[str, str] = {}
    for match in HTML_META_TAG_RE.finditer(document):
        attrs = _attrs(match.group(0))
        key = (attrs.get("name") or attrs.get("property") or "").lower()
        if key and key not in index:
            index[key] = attrs.get("content", "")
    return index


def parse_html_document(body: str, url: str) -> Dict[str, Any]:
    """Regex parse of a raw HTML page into the same shape the page scraper returns.

    Used when only the plain HTTP-request actor produced data. Never raises.
    """

    document = body or ""
    cleaned = HTML_STYLE_BLOCK_RE.sub(" ", HTML_SCRIPT_BLOCK_RE.sub(" ", document))
    meta = _meta_index(document)

    title_match = HTML_TITLE_RE.search(document)
    title = strip_tags(title_match.group("value")) if title_match else ""

    keywords = [part.strip() for part in meta.get("keywords", "").split(",") if part.strip()]

    headings: List[Dict[str, str]] = []
    for match in HTML_HEADING_RE.finditer(cleaned):
        text = strip_tags(match.group("value"))
        if text:
            headings.append({"tag": f"h{match.group('level')}", "text": text})

    links: List[str] = []
    for match in HTML_LINK_RE.finditer(cleaned):
        href = _attrs(match.group(0)).get("href", "").strip()
        if href and not href.startswith("#") and not href.lower().startswith("javascript:"):
            links.append(href)

    images: List[Dict[str, str]] = []
    for match in HTML_IMAGE_RE.finditer(cleaned):
        attrs = _attrs(match.group(0))
        src = attrs.get("src") or attrs.get("data-src") or ""
        if src:
            images.append({"src": src, "alt": attrs.get("alt", "")})

    paragraphs = [strip_tags(match.group("value")) for match in HTML_PARAGRAPH_RE.finditer(cleaned)]
    paragraphs = [text for text in paragraphs if text]

    schema_count = len(HTML_LD_JSON_RE.findall(document)) + (1 if HTML_ITEMSCOPE_RE.search(document) else 0)

    return {
        "url": url,
        "title": title,
        "description": meta.get("description", "").strip(),
        "keywords": keywords,
        "headings": headings,
        "content": "\n".join(paragraphs),
        "links": links,
        "images": images,
        "schemas": schema_count,
        "meta": {
            "hasViewport": "viewport" in meta,
            "canonical": "",
            "robots": meta.get("robots", ""),
            "ogTitle": meta.get("og:title", ""),
            "ogDescription": meta.get("og:description", ""),
            "twitterCard": meta.get("twitter:card", ""),
        },
        "security": {"isHttps": url.lower().startswith("https://")},
        "htmlLength": len(document),
    }
