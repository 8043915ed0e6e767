from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..components.models import AnalysisRecord, SwotComparison, WebsiteData
from ..constants import FallbackKind, RecordStatus
from ..services import telemetry
from .dependencies import WorkflowDependencies, save_failure, save_record
from .exceptions import ExtractionError
from .helpers.html_fallback import parse_html_document
from .helpers.model_output import MODEL_FALLBACK_ERRORS, generate_json, log_model_fallback, string_list
from .helpers.normalize import normalize_website
from .helpers.urls import normalize_url
from .remote_job import Completed, JobOutcome
from .scrapers.actors import (
    ACTOR_LABELS,
    CHEERIO_SCRAPER,
    HTTP_REQUEST,
    http_request_run_input,
    website_run_input,
)

logger = logging.getLogger("competitor_scrape.workflows")

NO_CONTENT_EXTRACTED = "No content could be extracted"
UNSCRAPABLE_CONTENT = "This website could not be scraped. Please check the URL and try again."
SWOT_HEADINGS_LIMIT = 15


def _failure_reason(outcome: JobOutcome, actor: str) -> str:
    if isinstance(outcome, Completed):
        return f"{ACTOR_LABELS.get(actor, actor)} returned no data"
    return outcome.reason


async def scrape_website(deps: WorkflowDependencies, url: str) -> WebsiteData:
    """Scrape one page: page scraper, then raw HTTP fetch, then a placeholder.

    Never raises for remote failures; the placeholder carries the last error.
    """

    budget = deps.runtime.website_scrape
    outcome = await deps.scraper.run_actor(
        CHEERIO_SCRAPER,
        website_run_input([url]),
        poll_interval=budget.poll_seconds,
        max_attempts=budget.max_attempts,
    )
    if isinstance(outcome, Completed) and outcome.payload:
        return WebsiteData.model_validate(normalize_website(outcome.payload[0], url))

    logger.warning(
        "analysis.page_scrape_failed url=%s reason=%s; trying HTTP request",
        url,
        _failure_reason(outcome, CHEERIO_SCRAPER),
    )
    budget = deps.runtime.http_fallback
    outcome = await deps.scraper.run_actor(
        HTTP_REQUEST,
        http_request_run_input(url),
        poll_interval=budget.poll_seconds,
        max_attempts=budget.max_attempts,
    )
    if isinstance(outcome, Completed) and outcome.payload:
        item = outcome.payload[0]
        body = item.get("body") if isinstance(item, dict) else None
        website = normalize_website(parse_html_document(body if isinstance(body, str) else "", url), url)
        website["title"] = website["title"] or url
        website["content"] = website["content"] or NO_CONTENT_EXTRACTED
        return WebsiteData.model_validate(website)

    reason = _failure_reason(outcome, HTTP_REQUEST)
    logger.error("analysis.scrape_failed url=%s reason=%s", url, reason)
    telemetry.emit_event("workflow.fallback", level="warn", kind="placeholder", url=url, reason=reason)
    return WebsiteData(
        url=url,
        title=url,
        description=f"Could not scrape website: {reason}",
        content=UNSCRAPABLE_CONTENT,
        error=reason,
    )


def _site_summary(site: WebsiteData, sample_chars: int) -> Dict[str, Any]:
    return {
        "url": site.url,
        "title": site.title,
        "description": site.description,
        "keywords": site.keywords,
        "headings": site.headings[:SWOT_HEADINGS_LIMIT],
        "contentSample": site.content[:sample_chars],
        "imageCount": len(site.images),
        "linkCount": len(site.links),
    }


def build_swot_prompt(main: WebsiteData, competitors: Sequence[WebsiteData], sample_chars: int) -> str:
    competitor_blocks = "\n\n".join(
        f"COMPETITOR {index}:\n{json.dumps(_site_summary(site, sample_chars), indent=2)}"
        for index, site in enumerate(competitors, start=1)
    )
    return f"""I need a detailed SWOT analysis (Strengths, Weaknesses, Opportunities, Threats) comparing a main website against its competitors.
The data below was just scraped (main site scraped at {main.last_scraped}).

MAIN WEBSITE:
{json.dumps(_site_summary(main, sample_chars), indent=2)}

COMPETITORS:
{competitor_blocks or "None provided"}

Focus on content quality, SEO signals (titles, descriptions, keywords, headings), site structure and content gaps.

Return ONLY a JSON object in this format:
{{
  "strengths": ["strength1", "strength2"],
  "weaknesses": ["weakness1", "weakness2"],
  "opportunities": ["opportunity1", "opportunity2"],
  "threats": ["threat1", "threat2"]
}}"""


def fallback_swot(main: WebsiteData, competitors: Sequence[WebsiteData]) -> SwotComparison:
    """Rule-based SWOT derived from the main site's scraped metadata."""

    strengths: List[str] = []
    weaknesses: List[str] = []

    if len(main.title) > 5:
        strengths.append(f'Clear website title: "{main.title}"')
    if len(main.description) > 10:
        strengths.append("Descriptive meta description that explains the website purpose")
    if main.keywords:
        strengths.append(f"Defined keywords that can help with SEO: {', '.join(main.keywords)}")

    if len(main.description) < 10:
        weaknesses.append("Missing or very short meta description")
    if not main.keywords:
        weaknesses.append("No keywords defined for SEO")
    if len(main.content) < 1000:
        weaknesses.append("Limited content length which may affect SEO rankings")

    opportunities = [
        "Expand website content to improve search engine visibility",
        "Add more descriptive headings to improve content structure",
        "Optimize meta tags and descriptions for better SEO performance",
    ]

    threats: List[str] = []
    if competitors:
        threats.append(f"Competition from {len(competitors)} similar websites in the same space")
    threats.append("Rapidly changing SEO algorithms requiring constant optimization")
    threats.append("Potential for competitors to target the same keywords and audience")

    return SwotComparison(
        strengths=strengths,
        weaknesses=weaknesses,
        opportunities=opportunities,
        threats=threats,
    )


async def compare_websites(
    deps: WorkflowDependencies,
    main: WebsiteData,
    competitors: Sequence[WebsiteData],
) -> Tuple[SwotComparison, Optional[FallbackKind]]:
    prompt = build_swot_prompt(main, competitors, deps.runtime.llm_content_sample_chars)
    try:
        payload = await generate_json(deps.llm, prompt, expect=dict)
        comparison = SwotComparison(
            strengths=string_list(payload.get("strengths")),
            weaknesses=string_list(payload.get("weaknesses")),
            opportunities=string_list(payload.get("opportunities")),
            threats=string_list(payload.get("threats")),
        )
        if not any((comparison.strengths, comparison.weaknesses, comparison.opportunities, comparison.threats)):
            raise ExtractionError("SWOT response did not contain any entries")
        return comparison, None
    except MODEL_FALLBACK_ERRORS as exc:
        log_model_fallback("swot", exc)
        return fallback_swot(main, competitors), FallbackKind.HEURISTIC


async def analyze_websites(
    deps: WorkflowDependencies,
    main_url: str,
    competitor_urls: Sequence[str],
    *,
    record_id: Optional[str] = None,
) -> AnalysisRecord:
    """Scrape the main site and its competitors concurrently and store a SWOT comparison."""

    main = normalize_url(main_url)
    competitors = [normalize_url(url) for url in competitor_urls if url and url.strip()]

    fields: Dict[str, Any] = {"main_url": main, "competitor_urls": competitors}
    if record_id:
        fields["id"] = record_id
    record = AnalysisRecord(status=RecordStatus.RUNNING, **fields)
    await save_record(deps.store, record)
    logger.info("analysis.started id=%s main=%s competitors=%s", record.id, main, len(competitors))

    try:
        sites = await asyncio.gather(*(scrape_website(deps, url) for url in [main, *competitors]))
        main_site, competitor_sites = sites[0], list(sites[1:])
        comparison, fallback = await compare_websites(deps, main_site, competitor_sites)
    except Exception as exc:
        await save_failure(deps.store, record, exc)
        raise

    completed = AnalysisRecord(
        id=record.id,
        status=RecordStatus.COMPLETED,
        main_url=main,
        competitor_urls=competitors,
        main_website=main_site,
        competitors=competitor_sites,
        comparison=comparison,
        fallback=fallback,
    )
    return await save_record(deps.store, completed)
