from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from pydantic import ValidationError

from ..components.models import PerformanceScores, SEOAuditRecord, SEOIssue, SeoScores
from ..constants import FallbackKind, OnFailure, RecordStatus, Severity
from .dependencies import WorkflowDependencies, save_failure, save_record
from .exceptions import ExtractionError
from .helpers.html_fallback import parse_html_document
from .helpers.model_output import MODEL_FALLBACK_ERRORS, generate_json, log_model_fallback
from .helpers.urls import normalize_url
from .remote_job import Completed, resolve_outcome
from .scrapers.actors import CHEERIO_SCRAPER, HTTP_REQUEST, http_request_run_input, technical_seo_run_input

logger = logging.getLogger("competitor_scrape.workflows")

LONG_DESCRIPTION_CHARS = 160
LOW_WORD_COUNT_CHARS = 1000

# Lab metrics are not measured by a static scrape; these fixed values stand in for them.
SIMULATED_PERFORMANCE = {
    "averageLoadTime": 2.3,
    "firstContentfulPaint": 1.2,
    "largestContentfulPaint": 2.8,
    "cumulativeLayoutShift": 0.12,
}

DEFAULT_PERFORMANCE_SCORE = 75
DEFAULT_SEO_SCORES = {
    "score": 70,
    "metaTagsScore": 65,
    "contentScore": 70,
    "mobileScore": 75,
    "securityScore": 80,
}

MOCK_ISSUES: Tuple[Dict[str, str], ...] = (
    {
        "type": Severity.CRITICAL,
        "title": "Missing Meta Descriptions",
        "description": "3 pages are missing meta descriptions",
        "impact": "Reduces click-through rates from search results",
        "recommendation": "Add unique, descriptive meta descriptions to all pages",
    },
    {
        "type": Severity.CRITICAL,
        "title": "Slow Page Load Time",
        "description": "Average page load time is over 2 seconds",
        "impact": "Negatively affects user experience and search rankings",
        "recommendation": "Optimize images, minify CSS/JS, and consider a CDN",
    },
    {
        "type": Severity.WARNING,
        "title": "Missing Alt Text",
        "description": "6 images are missing alt text",
        "impact": "Reduces accessibility and image search visibility",
        "recommendation": "Add descriptive alt text to all images",
    },
    {
        "type": Severity.WARNING,
        "title": "Low Word Count",
        "description": "5 pages have less than 300 words",
        "impact": "May be considered thin content by search engines",
        "recommendation": "Expand content with valuable information related to the topic",
    },
    {
        "type": Severity.INFO,
        "title": "Missing Schema Markup",
        "description": "No structured data detected on the website",
        "impact": "Missing opportunity for rich results in search",
        "recommendation": "Implement schema markup relevant to your content type",
    },
    {
        "type": Severity.INFO,
        "title": "Few Internal Links",
        "description": "Some pages have very few internal links",
        "impact": "Reduces discoverability and link equity distribution",
        "recommendation": "Add more contextual internal links throughout your content",
    },
)


def heading_structure_issues(headings: Sequence[Any]) -> int:
    """Count heading problems: no H1, more than one H1, and each H3 before any H2."""

    tags = [str(heading.get("tag", "")).lower() for heading in headings if isinstance(heading, dict)]
    issues = 0
    h1_count = tags.count("h1")
    if h1_count == 0:
        issues += 1
    if h1_count > 1:
        issues += 1
    seen_h2 = False
    for tag in tags:
        if tag == "h2":
            seen_h2 = True
        elif tag == "h3" and not seen_h2:
            issues += 1
    return issues


def _image_entries(images: Any) -> List[Dict[str, str]]:
    entries: List[Dict[str, str]] = []
    for image in images if isinstance(images, list) else []:
        if isinstance(image, dict):
            entries.append({"src": str(image.get("src") or ""), "alt": str(image.get("alt") or "")})
        elif isinstance(image, str):
            entries.append({"src": image, "alt": ""})
    return entries


def process_technical_data(data: Dict[str, Any], url: str) -> Dict[str, Any]:
    """Turn one scraped page (page scraper or parsed raw HTML) into technical SEO counters."""

    title = str(data.get("title") or "")
    description = str(data.get("description") or "")
    content = str(data.get("content") or "")
    headings = data.get("headings") if isinstance(data.get("headings"), list) else []
    links = [link for link in data.get("links") or [] if isinstance(link, str)]
    images = _image_entries(data.get("images"))
    meta = data.get("meta") if isinstance(data.get("meta"), dict) else {}
    security = data.get("security") if isinstance(data.get("security"), dict) else {}
    schemas = data.get("schemas")
    has_schema = bool(len(schemas) if isinstance(schemas, list) else schemas)
    hostname = (urlparse(url).hostname or "").lower()

    internal = [link for link in links if (hostname and hostname in link.lower()) or link.startswith("/")]
    return {
        "url": url,
        "pages": 1,
        "performance": dict(SIMULATED_PERFORMANCE),
        "meta": {
            "missingTitles": 0 if title.strip() else 1,
            "duplicateTitles": 0,
            "missingDescriptions": 0 if description.strip() else 1,
            "longDescriptions": 1 if len(description) > LONG_DESCRIPTION_CHARS else 0,
            "hasSocialTags": bool(meta.get("ogTitle") or meta.get("twitterCard")),
        },
        "content": {
            "lowWordCount": 1 if len(content) < LOW_WORD_COUNT_CHARS else 0,
            "missingHeadings": 0 if headings else 1,
            "brokenHeadingStructure": heading_structure_issues(headings),
        },
        "links": {
            "internalLinks": len(internal),
            "externalLinks": len(links) - len(internal),
            "brokenLinks": 0,
        },
        "images": {
            "missingAltText": sum(1 for image in images if not image["alt"].strip()),
            "largeImages": 0,
        },
        "mobile": {
            "viewportNotSet": not meta.get("hasViewport"),
            "smallTapTargets": 0,
            "textTooSmall": 0,
        },
        "security": {
            "missingHttps": not security.get("isHttps", url.lower().startswith("https://")),
            "mixedContent": 0,
        },
        "structured": {"missingSchema": not has_schema},
    }


def mock_technical_data(url: str) -> Dict[str, Any]:
    return {
        "url": url,
        "pages": 10,
        "performance": dict(SIMULATED_PERFORMANCE),
        "meta": {"missingTitles": 1, "duplicateTitles": 0, "missingDescriptions": 3, "longDescriptions": 1},
        "content": {"lowWordCount": 5, "missingHeadings": 1, "brokenHeadingStructure": 1},
        "links": {"internalLinks": 45, "externalLinks": 12, "brokenLinks": 0},
        "images": {"missingAltText": 6, "largeImages": 2},
        "mobile": {"viewportNotSet": False, "smallTapTargets": 0, "textTooSmall": 0},
        "security": {"missingHttps": False, "mixedContent": 0},
        "structured": {"missingSchema": True},
    }


async def collect_technical_data(deps: WorkflowDependencies, url: str) -> Tuple[Dict[str, Any], Optional[FallbackKind]]:
    """Page scraper, then raw HTTP fetch parsed with regexes, then fixed mock data."""

    budget = deps.runtime.website_scrape
    outcome = await deps.scraper.run_actor(
        CHEERIO_SCRAPER,
        technical_seo_run_input(url),
        poll_interval=budget.poll_seconds,
        max_attempts=budget.max_attempts,
    )
    if isinstance(outcome, Completed) and outcome.payload and isinstance(outcome.payload[0], dict):
        return process_technical_data(outcome.payload[0], url), None
    logger.warning("seo.page_scrape_unavailable url=%s; trying HTTP request", url)

    budget = deps.runtime.http_fallback
    outcome = await deps.scraper.run_actor(
        HTTP_REQUEST,
        http_request_run_input(url),
        poll_interval=budget.poll_seconds,
        max_attempts=budget.max_attempts,
    )
    if isinstance(outcome, Completed) and outcome.payload and isinstance(outcome.payload[0], dict):
        body = outcome.payload[0].get("body")
        parsed = parse_html_document(body if isinstance(body, str) else "", url)
        return process_technical_data(parsed, url), None

    if isinstance(outcome, Completed):
        logger.warning("seo.no_data url=%s; using mock technical data", url)
        return mock_technical_data(url), FallbackKind.MOCK
    resolution = resolve_outcome(outcome, OnFailure.SUBSTITUTE_MOCK, mock=lambda: mock_technical_data(url))
    return resolution.payload, resolution.fallback


def build_audit_prompt(url: str, technical_data: Dict[str, Any]) -> str:
    return f"""Analyze technical SEO data for a website and identify issues and recommendations.

Website: {url}

Technical Data:
{json.dumps(technical_data, indent=2)}

Based on this data:
1. Calculate overall scores (0-100) for performance, meta tags, content, mobile and security
2. Identify critical issues, warnings and informational items
3. Provide a specific recommendation for each issue

Return ONLY a JSON object in this format:
{{
  "performance": {{"score": 85, "loadTime": 2.3, "firstContentfulPaint": 1.2, "largestContentfulPaint": 2.8, "cumulativeLayoutShift": 0.12}},
  "seo": {{"score": 78, "metaTagsScore": 85, "contentScore": 70, "mobileScore": 90, "securityScore": 95}},
  "issues": [
    {{"type": "critical", "title": "Missing Meta Descriptions", "description": "...", "impact": "...", "recommendation": "..."}}
  ]
}}"""


def default_performance(technical_data: Dict[str, Any]) -> PerformanceScores:
    performance = technical_data.get("performance") or SIMULATED_PERFORMANCE
    return PerformanceScores(
        score=DEFAULT_PERFORMANCE_SCORE,
        load_time=performance.get("averageLoadTime", 0.0),
        first_contentful_paint=performance.get("firstContentfulPaint", 0.0),
        largest_contentful_paint=performance.get("largestContentfulPaint", 0.0),
        cumulative_layout_shift=performance.get("cumulativeLayoutShift", 0.0),
    )


def mock_issues() -> List[SEOIssue]:
    return [SEOIssue.model_validate(issue) for issue in MOCK_ISSUES]


def _parse_issues(value: Any) -> List[SEOIssue]:
    if not isinstance(value, list):
        return mock_issues()
    issues: List[SEOIssue] = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        try:
            issues.append(SEOIssue.model_validate(entry))
        except ValidationError:
            logger.debug("seo.issue_skipped entry=%s", str(entry)[:200])
    return issues


def parse_audit(payload: Dict[str, Any], technical_data: Dict[str, Any]) -> Tuple[PerformanceScores, SeoScores, List[SEOIssue]]:
    try:
        performance = (
            PerformanceScores.model_validate(payload["performance"])
            if isinstance(payload.get("performance"), dict)
            else default_performance(technical_data)
        )
        seo = (
            SeoScores.model_validate(payload["seo"])
            if isinstance(payload.get("seo"), dict)
            else SeoScores.model_validate(DEFAULT_SEO_SCORES)
        )
    except ValidationError as exc:
        raise ExtractionError(f"Audit scores were malformed: {exc.error_count()} errors") from exc
    return performance, seo, _parse_issues(payload.get("issues"))


async def audit_technical_data(
    deps: WorkflowDependencies, url: str, technical_data: Dict[str, Any]
) -> Tuple[PerformanceScores, SeoScores, List[SEOIssue], Optional[FallbackKind]]:
    try:
        payload = await generate_json(deps.llm, build_audit_prompt(url, technical_data), expect=dict)
        performance, seo, issues = parse_audit(payload, technical_data)
        return performance, seo, issues, None
    except MODEL_FALLBACK_ERRORS as exc:
        log_model_fallback("seo_audit", exc)
        return (
            default_performance(technical_data),
            SeoScores.model_validate(DEFAULT_SEO_SCORES),
            mock_issues(),
            FallbackKind.MOCK,
        )


async def perform_seo_audit(
    deps: WorkflowDependencies,
    url: str,
    *,
    record_id: Optional[str] = None,
) -> SEOAuditRecord:
    """Collect technical SEO data for one page and store a scored audit."""

    target = normalize_url(url)
    fields: Dict[str, Any] = {"url": target}
    if record_id:
        fields["id"] = record_id
    record = SEOAuditRecord(status=RecordStatus.RUNNING, **fields)
    await save_record(deps.store, record)
    logger.info("seo.started id=%s url=%s", record.id, target)

    try:
        technical_data, data_fallback = await collect_technical_data(deps, target)
        performance, seo, issues, audit_fallback = await audit_technical_data(deps, target, technical_data)
    except Exception as exc:
        await save_failure(deps.store, record, exc)
        raise

    logger.info("seo.audited id=%s issues=%s", record.id, len(issues))
    completed = SEOAuditRecord(
        id=record.id,
        status=RecordStatus.COMPLETED,
        url=target,
        performance=performance,
        seo=seo,
        issues=issues,
        technical_data=technical_data,
        fallback=data_fallback or audit_fallback,
    )
    return await save_record(deps.store, completed)
