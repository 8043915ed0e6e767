from __future__ import annotations

import json
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from ..components.models import (
    CompetitorChange,
    CompetitorTrackingRecord,
    TrackingSnapshot,
    WebsiteData,
    tracking_snapshot_key,
)
from ..constants import FallbackKind, OnFailure, RecordStatus
from .dependencies import WorkflowDependencies, load_json, save_failure, save_record
from .helpers.model_output import MODEL_FALLBACK_ERRORS, generate_json, log_model_fallback, string_list
from .helpers.normalize import normalize_website
from .helpers.urls import extract_domain, normalize_url
from .remote_job import Completed, Failed, JobOutcome, resolve_outcome
from .scrapers.actors import (
    ACTOR_LABELS,
    CHEERIO_SCRAPER,
    WEBSITE_CONTENT_CRAWLER,
    content_crawler_run_input,
    website_run_input,
)

logger = logging.getLogger("competitor_scrape.workflows")

SNAPSHOT_HEADINGS_LIMIT = 5
SNAPSHOT_CONTENT_CHARS = 500

FIRST_RUN_INSIGHTS = (
    "First time tracking these competitors, no changes to report yet.",
    "We'll detect changes on your next tracking check.",
    "Consider running a full analysis to get a baseline comparison.",
)
NO_INSIGHTS = (
    "Analysis completed, but no specific insights were generated.",
    "Consider running a more detailed analysis for better results.",
)
RETRY_HINT = "Try running the analysis again or check the competitor URLs."


def _strip_slash(url: str) -> str:
    return url.rstrip("/")


def _find_item(items: Sequence[Dict[str, Any]], url: str) -> Optional[Dict[str, Any]]:
    target = _strip_slash(url)
    for item in items:
        if _strip_slash(str(item.get("url") or "")) == target:
            return item
    domain = extract_domain(url)
    for item in items:
        item_url = str(item.get("url") or "")
        if item_url and (domain in item_url or domain in extract_domain(item_url)):
            return item
    return None


def map_items_to_competitors(items: Sequence[Any], competitor_urls: Sequence[str]) -> List[WebsiteData]:
    """One entry per competitor URL: exact URL match, then domain match, then a bare entry."""

    candidates = [item for item in items if isinstance(item, dict)]
    mapped: List[WebsiteData] = []
    for url in competitor_urls:
        item = _find_item(candidates, url)
        if item is None:
            mapped.append(WebsiteData(url=url, title=url, description=f"Website for {url}"))
            continue
        website = normalize_website(item, url)
        website["title"] = website["title"] or url
        mapped.append(WebsiteData.model_validate(website))
    return mapped


def placeholder_entries(competitor_urls: Sequence[str], reason: str) -> List[WebsiteData]:
    return [WebsiteData(url=url, title=url, error=reason) for url in competitor_urls]


async def _scrape(deps: WorkflowDependencies, actor: str, run_input: Dict[str, Any]) -> JobOutcome:
    budget = deps.runtime.tracking_scrape
    outcome = await deps.scraper.run_actor(
        actor,
        run_input,
        poll_interval=budget.poll_seconds,
        max_attempts=budget.max_attempts,
    )
    if isinstance(outcome, Completed) and not outcome.payload:
        return Failed(reason=f"No data returned from {ACTOR_LABELS.get(actor, actor)}", job=outcome.job)
    return outcome


async def scrape_competitors(
    deps: WorkflowDependencies, competitor_urls: Sequence[str]
) -> Tuple[List[WebsiteData], Optional[FallbackKind]]:
    """Page scraper, then the content crawler, then placeholder entries carrying the error."""

    if not competitor_urls:
        return [], None
    outcome = await _scrape(deps, CHEERIO_SCRAPER, website_run_input(competitor_urls))
    if isinstance(outcome, Completed):
        return map_items_to_competitors(outcome.payload, competitor_urls), None
    logger.warning("tracking.page_scrape_failed reason=%s; trying content crawler", outcome.reason)

    outcome = await _scrape(deps, WEBSITE_CONTENT_CRAWLER, content_crawler_run_input(competitor_urls))
    if isinstance(outcome, Completed):
        return map_items_to_competitors(outcome.payload, competitor_urls), None

    resolution = resolve_outcome(
        outcome,
        OnFailure.SUBSTITUTE_MOCK,
        mock=lambda: placeholder_entries(competitor_urls, outcome.reason),
    )
    return resolution.payload, resolution.fallback


async def load_previous_snapshot(deps: WorkflowDependencies, main_url: str) -> Optional[TrackingSnapshot]:
    raw = await load_json(deps.store, tracking_snapshot_key(main_url))
    if raw is None:
        return None
    try:
        return TrackingSnapshot.model_validate(raw)
    except ValidationError as exc:
        logger.warning("tracking.snapshot_invalid main=%s errors=%s", main_url, exc.error_count())
        return None


def _simplify(sites: Sequence[WebsiteData]) -> List[Dict[str, Any]]:
    return [
        {
            "url": site.url,
            "title": site.title,
            "description": site.description,
            "keywords": site.keywords,
            "headings": site.headings[:SNAPSHOT_HEADINGS_LIMIT],
            "contentSample": site.content[:SNAPSHOT_CONTENT_CHARS],
        }
        for site in sites
    ]


def _iso(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).isoformat()


def build_changes_prompt(
    main_url: str,
    competitor_urls: Sequence[str],
    previous: TrackingSnapshot,
    current: Sequence[WebsiteData],
) -> str:
    return f"""Analyze changes between previous and current versions of competitor websites.

Main Website: {main_url}
Competitors: {", ".join(competitor_urls)}

Previous Data (from {_iso(previous.timestamp)}):
{json.dumps(_simplify(previous.data), indent=2)}

Current Data (from {datetime.now(timezone.utc).isoformat()}):
{json.dumps(_simplify(current), indent=2)}

Identify significant changes such as:
- Content changes (new sections, removed content)
- Design changes (based on headings and structure)
- SEO changes (title, description, keywords)
- New features or offerings
Also provide strategic insights about what these changes mean for the main website.

Return ONLY a JSON object in this format:
{{
  "changes": [
    {{"url": "competitor.com", "type": "content", "description": "Added new section about AI-powered analysis", "impact": "medium", "date": "{date.today().isoformat()}"}}
  ],
  "insights": ["Competitor X is focusing more on AI features, consider highlighting your AI capabilities"]
}}"""


def _parse_changes(value: Any) -> List[CompetitorChange]:
    changes: List[CompetitorChange] = []
    for entry in value if isinstance(value, list) else []:
        if not isinstance(entry, dict):
            continue
        try:
            change = CompetitorChange.model_validate(entry)
        except ValidationError:
            logger.debug("tracking.change_skipped entry=%s", str(entry)[:200])
            continue
        if not change.date:
            change.date = date.today().isoformat()
        changes.append(change)
    return changes


async def detect_changes(
    deps: WorkflowDependencies,
    main_url: str,
    competitor_urls: Sequence[str],
    previous: TrackingSnapshot,
    current: Sequence[WebsiteData],
) -> Tuple[List[CompetitorChange], List[str], Optional[FallbackKind]]:
    try:
        payload = await generate_json(
            deps.llm, build_changes_prompt(main_url, competitor_urls, previous, current), expect=dict
        )
    except MODEL_FALLBACK_ERRORS as exc:
        log_model_fallback("competitor_changes", exc)
        message = getattr(exc, "message", str(exc))
        return [], [f"Error analyzing changes: {message}", RETRY_HINT], FallbackKind.HEURISTIC

    insights = string_list(payload.get("insights")) if isinstance(payload.get("insights"), list) else list(NO_INSIGHTS)
    return _parse_changes(payload.get("changes")), insights, None


async def track_competitor_changes(
    deps: WorkflowDependencies,
    main_url: str,
    competitor_urls: Sequence[str],
    *,
    record_id: Optional[str] = None,
) -> CompetitorTrackingRecord:
    """Scrape competitors, compare them with the previous snapshot and store the new one.

    With no previous snapshot this is a first run: completed, with no changes.
    """

    main = normalize_url(main_url)
    competitors = [normalize_url(url) for url in competitor_urls if url and url.strip()]
    fields: Dict[str, Any] = {"main_website": main, "competitors": competitors}
    if record_id:
        fields["id"] = record_id
    record = CompetitorTrackingRecord(status=RecordStatus.RUNNING, **fields)
    await save_record(deps.store, record)

    try:
        previous = await load_previous_snapshot(deps, main)
        logger.info("tracking.started id=%s main=%s previous=%s", record.id, main, previous is not None)
        current, scrape_fallback = await scrape_competitors(deps, competitors)

        if previous is None:
            changes: List[CompetitorChange] = []
            insights = list(FIRST_RUN_INSIGHTS)
            analysis_fallback: Optional[FallbackKind] = None
        else:
            changes, insights, analysis_fallback = await detect_changes(deps, main, competitors, previous, current)
    except Exception as exc:
        await save_failure(deps.store, record, exc)
        raise

    completed = CompetitorTrackingRecord(
        id=record.id,
        status=RecordStatus.COMPLETED,
        main_website=main,
        competitors=competitors,
        changes=changes,
        insights=insights,
        first_run=previous is None,
        fallback=scrape_fallback or analysis_fallback,
    )
    await save_record(deps.store, completed)

    snapshot = TrackingSnapshot(main_website=main, competitors=competitors, data=current)
    await deps.store.set(snapshot.key, snapshot.dump())
    logger.info("tracking.snapshot_saved key=%s sites=%s", snapshot.key, len(current))
    return completed
