from __future__ import annotations

import json

import pytest

from competitor_scrape_application.components.models import TrackingSnapshot, tracking_snapshot_key
from competitor_scrape_application.constants import FallbackKind
from competitor_scrape_application.testing.apify_mock import MockApifyScenario
from competitor_scrape_application.workflows.competitor_tracking import (
    FIRST_RUN_INSIGHTS,
    NO_INSIGHTS,
    RETRY_HINT,
    map_items_to_competitors,
    track_competitor_changes,
)
from competitor_scrape_application.workflows.scrapers.actors import CHEERIO_SCRAPER, WEBSITE_CONTENT_CRAWLER

COMPETITOR_PAGES = [
    {"url": "https://rival.com/", "title": "Rival", "headings": ["Pricing"], "content": "Plans from $9."},
    {"url": "https://www.other.io/home", "title": "Other", "content": "All-in-one suite."},
]


def test_items_map_by_url_then_domain_then_placeholder():
    mapped = map_items_to_competitors(
        COMPETITOR_PAGES + ["junk"],
        ["https://rival.com", "https://other.io", "https://missing.net"],
    )

    assert [site.title for site in mapped] == ["Rival", "Other", "https://missing.net"]
    assert mapped[1].url == "https://other.io"
    assert mapped[2].description == "Website for https://missing.net"


@pytest.mark.asyncio
async def test_first_run_completes_without_changes_and_saves_snapshot(deps, apify, store):
    apify.script(CHEERIO_SCRAPER, items=COMPETITOR_PAGES)

    record = await track_competitor_changes(deps, "example.com", ["rival.com", "other.io"])

    assert record.status == "completed"
    assert record.first_run is True
    assert record.changes == []
    assert record.insights == list(FIRST_RUN_INSIGHTS)
    snapshot = TrackingSnapshot.model_validate(await store.get("tracking-data-example-com"))
    assert snapshot.main_website == "https://example.com"
    assert [site.title for site in snapshot.data] == ["Rival", "Other"]


@pytest.mark.asyncio
async def test_second_run_asks_model_for_changes(make_deps, apify, store, make_llm):
    apify.script(CHEERIO_SCRAPER, items=COMPETITOR_PAGES)
    await track_competitor_changes(make_deps(None), "example.com", ["rival.com", "other.io"])

    answer = {
        "changes": [
            {"url": "rival.com", "type": "content", "description": "Added a pricing section", "impact": "high"},
            "not a change",
        ],
        "insights": ["Rival is competing on price"],
    }
    llm = make_llm([f"```json\n{json.dumps(answer)}\n```"])
    record = await track_competitor_changes(make_deps(llm), "example.com", ["rival.com", "other.io"])

    assert record.first_run is False
    assert record.fallback is None
    assert len(record.changes) == 1
    assert record.changes[0].description == "Added a pricing section"
    assert record.changes[0].date
    assert record.insights == ["Rival is competing on price"]
    assert "Previous Data" in llm.calls[0]["prompt"]


@pytest.mark.asyncio
async def test_missing_insights_get_default_text(make_deps, apify, store, make_llm):
    apify.script(CHEERIO_SCRAPER, items=COMPETITOR_PAGES)
    previous = TrackingSnapshot(main_website="https://example.com", competitors=["https://rival.com"])
    await store.set(tracking_snapshot_key("example.com"), previous.dump())
    llm = make_llm(['{"changes": []}'])

    record = await track_competitor_changes(make_deps(llm), "example.com", ["rival.com"])

    assert record.changes == []
    assert record.insights == list(NO_INSIGHTS)


@pytest.mark.asyncio
async def test_model_failure_reports_error_insight(deps, apify, store):
    apify.script(CHEERIO_SCRAPER, items=COMPETITOR_PAGES)
    previous = TrackingSnapshot(main_website="https://example.com")
    await store.set(previous.key, previous.dump())

    record = await track_competitor_changes(deps, "example.com", ["rival.com"])

    assert record.status == "completed"
    assert record.fallback == FallbackKind.HEURISTIC
    assert record.insights[0].startswith("Error analyzing changes: GEMINI_API_KEY")
    assert record.insights[1] == RETRY_HINT


@pytest.mark.asyncio
async def test_content_crawler_is_used_when_page_scraper_fails(deps, apify):
    apify.scenario(CHEERIO_SCRAPER, MockApifyScenario.RUN_FAILS)
    apify.script(WEBSITE_CONTENT_CRAWLER, items=[{"url": "https://rival.com", "metadata": {"title": "Rival Docs"}, "text": "Docs"}])

    record = await track_competitor_changes(deps, "example.com", ["rival.com"])

    assert record.fallback is None
    assert len(apify.runs_for(WEBSITE_CONTENT_CRAWLER)) == 1


@pytest.mark.asyncio
async def test_placeholders_when_every_scraper_fails(deps, apify, store):
    apify.scenario(CHEERIO_SCRAPER, MockApifyScenario.NEVER_FINISHES)
    apify.script(WEBSITE_CONTENT_CRAWLER, items=[])

    record = await track_competitor_changes(deps, "example.com", ["rival.com"])

    assert record.fallback == FallbackKind.MOCK
    snapshot = TrackingSnapshot.model_validate(await store.get(tracking_snapshot_key("example.com")))
    assert snapshot.data[0].error == "No data returned from Website Content Crawler"


@pytest.mark.asyncio
async def test_invalid_snapshot_is_treated_as_first_run(deps, apify, store):
    apify.script(CHEERIO_SCRAPER, items=COMPETITOR_PAGES)
    await store.set(tracking_snapshot_key("example.com"), {"data": "garbage"})

    record = await track_competitor_changes(deps, "example.com", ["rival.com"])

    assert record.first_run is True
