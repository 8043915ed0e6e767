from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from ..components.models import AnalysisRecord, GeneratedContent, WebsiteData
from ..config import settings
from ..constants import FallbackKind, RecordStatus
from .dependencies import WorkflowDependencies, load_json, save_failure, save_record
from .exceptions import ExtractionError, RecordNotFoundError
from .helpers.model_output import MODEL_FALLBACK_ERRORS, generate_json, log_model_fallback, string_list
from .helpers.urls import extract_domain

logger = logging.getLogger("competitor_scrape.workflows")

MAIN_CONTENT_SAMPLE_CHARS = 3000
HEADINGS_LIMIT = 15
KEYWORDS_LIMIT = 10
META_TITLE_MAX = 60
META_DESCRIPTION_MAX = 160


def _iso(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).isoformat()


def _site_block(site: WebsiteData, sample_chars: int) -> str:
    return "\n".join(
        (
            f"URL: {site.url}",
            f"Title: {site.title}",
            f"Description: {site.description}",
            f"Keywords: {', '.join(site.keywords)}",
            f"Main Headings: {' | '.join(site.headings[:HEADINGS_LIMIT])}",
            f"Content Sample: {site.content[:sample_chars]}...",
            f"Number of Images: {len(site.images)}",
            f"Number of Links: {len(site.links)}",
        )
    )


def build_content_prompt(analysis: AnalysisRecord, competitor_sample_chars: int) -> str:
    main = analysis.main_website
    comparison = analysis.comparison
    assert main is not None and comparison is not None
    competitors = "\n\n".join(
        f"COMPETITOR {index}:\n{_site_block(site, competitor_sample_chars)}"
        for index, site in enumerate(analysis.competitors, start=1)
    )
    return f"""Generate SEO-optimized content for a website based EXCLUSIVELY on the data below, scraped at {_iso(main.last_scraped)}.
Do not use any prior knowledge about these websites or their industries.

MAIN WEBSITE:
{_site_block(main, MAIN_CONTENT_SAMPLE_CHARS)}

COMPETITORS:
{competitors or "None provided"}

SWOT ANALYSIS:
Strengths: {", ".join(comparison.strengths)}
Weaknesses: {", ".join(comparison.weaknesses)}
Opportunities: {", ".join(comparison.opportunities)}
Threats: {", ".join(comparison.threats)}

Generate:
1. An optimized meta title (50-60 characters) reflecting the actual content of the website
2. A compelling meta description (150-160 characters)
3. A list of 10 recommended keywords or phrases derived only from the data above
4. Page content (around 500 words) that addresses the weaknesses and uses the opportunities

Return ONLY a JSON object in this format:
{{
  "metaTitle": "Optimized title here",
  "metaDescription": "Compelling description here",
  "keywords": ["keyword1", "keyword2"],
  "pageContent": "Generated content here..."
}}"""


def _clip(text: str, limit: int) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def fallback_content(analysis: AnalysisRecord) -> Dict[str, Any]:
    """Content assembled from the analysis itself when the model cannot help."""

    main = analysis.main_website
    assert main is not None
    comparison = analysis.comparison
    site_name = main.title if main.title and main.title != main.url else extract_domain(main.url)

    keywords: List[str] = []
    for candidate in [*main.keywords, *(kw for site in analysis.competitors for kw in site.keywords), *main.headings]:
        value = candidate.strip().lower()
        if value and value not in keywords and len(value.split()) <= 5:
            keywords.append(value)
        if len(keywords) >= KEYWORDS_LIMIT:
            break

    description = main.description or main.content or f"Learn more about {site_name}."
    sections = [f"# {site_name}", main.description or f"Welcome to {site_name}."]
    if main.headings:
        sections.append("## What you will find here")
        sections.extend(f"- {heading}" for heading in main.headings[:5])
    if comparison and comparison.opportunities:
        sections.append("## What we are improving")
        sections.extend(f"- {opportunity}" for opportunity in comparison.opportunities)
    if main.content and main.error is None:
        sections.append(main.content[:MAIN_CONTENT_SAMPLE_CHARS // 3])

    return {
        "meta_title": _clip(site_name, META_TITLE_MAX),
        "meta_description": _clip(description, META_DESCRIPTION_MAX),
        "keywords": keywords,
        "page_content": "\n\n".join(sections),
    }


def _parse_generated(payload: Dict[str, Any]) -> Dict[str, Any]:
    meta_title = payload.get("metaTitle")
    meta_description = payload.get("metaDescription")
    keywords = payload.get("keywords")
    page_content = payload.get("pageContent")
    if not meta_title or not meta_description or not isinstance(keywords, list) or not page_content:
        raise ExtractionError("Generated content is incomplete")
    return {
        "meta_title": str(meta_title).strip(),
        "meta_description": str(meta_description).strip(),
        "keywords": string_list(keywords),
        "page_content": str(page_content).strip(),
    }


async def load_analysis(deps: WorkflowDependencies, analysis_id: str) -> AnalysisRecord:
    raw = await load_json(deps.store, AnalysisRecord.key_for(analysis_id))
    if raw is None:
        raise RecordNotFoundError("Analysis result not found")
    try:
        analysis = AnalysisRecord.model_validate(raw)
    except ValidationError as exc:
        raise RecordNotFoundError(f"Analysis result {analysis_id} is unreadable: {exc.error_count()} errors") from exc
    if analysis.status is not RecordStatus.COMPLETED:
        raise RecordNotFoundError(f"Analysis result {analysis_id} is not completed (status: {analysis.status})")
    return analysis


async def _generate(deps: WorkflowDependencies, analysis: AnalysisRecord) -> Tuple[Dict[str, Any], Optional[FallbackKind]]:
    prompt = build_content_prompt(analysis, deps.runtime.llm_content_sample_chars)
    try:
        payload = await generate_json(deps.llm, prompt, expect=dict, model_name=settings.gemini_content_model)
        return _parse_generated(payload), None
    except MODEL_FALLBACK_ERRORS as exc:
        log_model_fallback("content", exc)
        return fallback_content(analysis), FallbackKind.HEURISTIC


async def generate_content(deps: WorkflowDependencies, analysis_id: str) -> GeneratedContent:
    """Generate SEO copy for a completed analysis; stored under the analysis id."""

    analysis = await load_analysis(deps, analysis_id)
    placeholder = GeneratedContent(id=analysis.id, status=RecordStatus.RUNNING)
    await save_record(deps.store, placeholder)

    try:
        fields, fallback = await _generate(deps, analysis)
    except Exception as exc:
        await save_failure(deps.store, placeholder, exc)
        raise

    logger.info("content.generated analysis_id=%s fallback=%s", analysis.id, fallback)
    content = GeneratedContent(id=analysis.id, status=RecordStatus.COMPLETED, fallback=fallback, **fields)
    return await save_record(deps.store, content)
