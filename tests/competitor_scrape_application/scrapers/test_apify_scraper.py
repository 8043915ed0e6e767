from __future__ import annotations

import json

import pytest

from competitor_scrape_application.testing.apify_mock import MockApifyScenario
from competitor_scrape_application.workflows.exceptions import (
    ConfigurationError,
    DatasetFetchError,
    SubmissionError,
    TransportError,
)
from competitor_scrape_application.workflows.remote_job import Completed, Failed, TimedOut
from competitor_scrape_application.workflows.scrapers import ApifyScraper, flatten_items
from competitor_scrape_application.workflows.scrapers.actors import (
    CHEERIO_SCRAPER,
    HTTP_REQUEST,
    product_run_input,
    website_run_input,
)


@pytest.mark.asyncio
async def test_start_run_posts_input_with_bearer_token(scraper, apify):
    apify.script(CHEERIO_SCRAPER)

    run_id = await scraper.start_run(CHEERIO_SCRAPER, {"startUrls": [{"url": "https://example.com"}]})

    request = apify.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/v2/acts/apify~cheerio-scraper/runs"
    assert request.headers["Authorization"] == "Bearer apify-test-token"
    assert json.loads(request.content) == {"startUrls": [{"url": "https://example.com"}]}
    assert apify.runs[run_id].actor == CHEERIO_SCRAPER


@pytest.mark.asyncio
async def test_start_run_refused_raises_submission_error(scraper, apify):
    apify.scenario(CHEERIO_SCRAPER, MockApifyScenario.START_FAILS)

    with pytest.raises(SubmissionError, match="Failed to start Cheerio Scraper: 500"):
        await scraper.start_run(CHEERIO_SCRAPER, {})


@pytest.mark.asyncio
async def test_missing_token_is_a_configuration_error(apify, no_sleep):
    scraper = ApifyScraper(None, transport=apify.transport(), sleep=no_sleep)

    with pytest.raises(ConfigurationError, match="APIFY_API_TOKEN"):
        await scraper.start_run(CHEERIO_SCRAPER, {})
    assert apify.requests == []


@pytest.mark.asyncio
async def test_status_endpoint_errors_read_as_unknown(scraper, apify):
    apify.scenario(HTTP_REQUEST, MockApifyScenario.STATUS_UNAVAILABLE, attempts=1)
    run_id = await scraper.start_run(HTTP_REQUEST, {"url": "https://example.com"})

    assert await scraper.get_run_status(run_id) is None
    assert await scraper.get_run_status(run_id) == "SUCCEEDED"


@pytest.mark.asyncio
async def test_fetch_dataset_flattens_nested_arrays(scraper, apify):
    apify.script(CHEERIO_SCRAPER, items=[[{"name": "A"}, {"name": "B"}], {"name": "C"}])
    run_id = await scraper.start_run(CHEERIO_SCRAPER, {})

    assert await scraper.fetch_dataset(run_id) == [{"name": "A"}, {"name": "B"}, {"name": "C"}]


@pytest.mark.asyncio
async def test_fetch_dataset_failure_raises(scraper, apify):
    apify.scenario(CHEERIO_SCRAPER, MockApifyScenario.DATASET_FAILS)
    run_id = await scraper.start_run(CHEERIO_SCRAPER, {})

    with pytest.raises(DatasetFetchError, match="Failed to fetch run results: 502"):
        await scraper.fetch_dataset(run_id)


def test_flatten_items_handles_odd_payloads():
    assert flatten_items({"name": "solo"}) == [{"name": "solo"}]
    assert flatten_items("nope") == []
    assert flatten_items([]) == []


@pytest.mark.asyncio
async def test_run_actor_polls_until_success(scraper, apify, no_sleep):
    apify.script(CHEERIO_SCRAPER, statuses=["READY", "RUNNING", "SUCCEEDED"], items=[{"title": "Example"}])

    outcome = await scraper.run_actor(
        CHEERIO_SCRAPER, website_run_input(["https://example.com"]), poll_interval=2, max_attempts=5
    )

    assert isinstance(outcome, Completed)
    assert outcome.payload == [{"title": "Example"}]
    assert outcome.job.attempts_made == 3
    assert no_sleep.delays == [2, 2, 2]


@pytest.mark.asyncio
async def test_run_actor_reports_remote_failure(scraper, apify):
    apify.scenario(CHEERIO_SCRAPER, MockApifyScenario.RUN_FAILS)

    outcome = await scraper.run_actor(CHEERIO_SCRAPER, {}, poll_interval=1, max_attempts=5)

    assert isinstance(outcome, Failed)
    assert outcome.reason == "Cheerio Scraper task failed with status: FAILED"


@pytest.mark.asyncio
async def test_run_actor_times_out(scraper, apify):
    apify.scenario(CHEERIO_SCRAPER, MockApifyScenario.NEVER_FINISHES)

    outcome = await scraper.run_actor(CHEERIO_SCRAPER, {}, poll_interval=1, max_attempts=4)

    assert isinstance(outcome, TimedOut)
    assert outcome.attempts == 4
    assert apify.runs_for(CHEERIO_SCRAPER)[0].polls == 4


@pytest.mark.asyncio
async def test_run_actor_retries_dropped_connections(scraper, apify):
    apify.script(CHEERIO_SCRAPER, items=[{"title": "ok"}], connect_errors=1)

    outcome = await scraper.run_actor(CHEERIO_SCRAPER, {}, poll_interval=1, max_attempts=3)

    assert isinstance(outcome, Completed)
    assert outcome.payload == [{"title": "ok"}]


@pytest.mark.asyncio
async def test_run_actor_surfaces_transport_failure_as_failed_outcome(scraper, apify):
    apify.script(CHEERIO_SCRAPER, connect_errors=5)

    outcome = await scraper.run_actor(CHEERIO_SCRAPER, {}, poll_interval=1, max_attempts=3)

    assert isinstance(outcome, Failed)
    assert isinstance(outcome.error, TransportError)


def test_run_inputs_carry_page_functions_and_limits():
    single = website_run_input(["https://example.com"])
    multiple = website_run_input(["https://a.example.com", "https://b.example.com"])
    products = product_run_input("https://shop.example.com/search?q=tea")

    assert single["startUrls"] == [{"url": "https://example.com"}]
    assert "maxRequestsPerCrawl" not in single
    assert multiple["maxRequestsPerCrawl"] == 4
    assert "pageFunction" in products
    assert products["maxPagesPerCrawl"] == 5
