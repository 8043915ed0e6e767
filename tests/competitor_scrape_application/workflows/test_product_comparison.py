from __future__ import annotations

from typing import List

import httpx
import pytest

from competitor_scrape_application.components.models import Product, ProductComparisonRecord
from competitor_scrape_application.config import settings
from competitor_scrape_application.services.storage import MemoryStore
from competitor_scrape_application.workflows.dependencies import WorkflowDependencies
from competitor_scrape_application.workflows.exceptions import PollTimeoutError, SubmissionError, TransportError
from competitor_scrape_application.workflows.product_comparison import (
    most_reviewed,
    price_ranges,
    run_product_comparison,
    top_rated,
)
from competitor_scrape_application.workflows.scrapers import ApifyScraper
from competitor_scrape_application.workflows.scrapers.actors import CHEERIO_SCRAPER

PRODUCT_TABLE = """| Product Name | Price | Image URL |
| --- | --- | --- |
| Widget | $20.00 | /img/widget.png |
| Gadget | $10.00 | https://cdn.example.com/gadget.png |
"""


def _without_ids(products: List[dict]) -> List[dict]:
    return [{key: value for key, value in product.items() if key != "id"} for product in products]


@pytest.mark.asyncio
async def test_scenario_a_single_widget_completes(deps, apify, store, no_sleep):
    apify.script(
        CHEERIO_SCRAPER,
        statuses=["RUNNING", "RUNNING", "SUCCEEDED"],
        items=[{"name": "Widget", "price": "$19.99"}],
    )

    record = await run_product_comparison(deps, "example.com")

    stored = await store.get(record.key)
    assert stored["status"] == "completed"
    assert stored["searchUrl"] == "https://example.com"
    assert len(stored["products"]) == 1
    product = stored["products"][0]
    assert product["name"] == "Widget"
    assert product["price"] == "$19.99"
    assert product["rating"] == 0
    assert product["reviews"] == 0
    assert product["id"].startswith("product-0-")
    assert stored["analysis"]["priceRanges"] == {"min": 19.99, "max": 19.99, "average": 19.99}
    assert stored["analysis"]["recommendations"]
    assert apify.runs_for(CHEERIO_SCRAPER)[0].polls == 3
    assert apify.runs_for(CHEERIO_SCRAPER)[0].run_input["startUrls"] == [{"url": "https://example.com"}]


@pytest.mark.asyncio
async def test_scenario_b_never_finishing_scrape_marks_record_failed(deps, apify, store, no_sleep):
    apify.script(CHEERIO_SCRAPER, statuses=["RUNNING"])

    with pytest.raises(PollTimeoutError) as exc_info:
        await run_product_comparison(deps, "example.com", record_id="scenario-b")

    assert exc_info.value.attempts == 5
    assert apify.runs_for(CHEERIO_SCRAPER)[0].polls == 5
    assert no_sleep.delays == [1.0] * 5
    stored = await store.get(ProductComparisonRecord.key_for("scenario-b"))
    assert stored["status"] == "failed"
    assert "did not complete" in stored["error"]
    assert stored["analysis"] is None


@pytest.mark.asyncio
async def test_scenario_c_prose_response_keeps_raw_products(make_deps, apify, store, make_llm):
    raw_items = [
        {"name": "Widget", "price": "$19.99", "ratingText": "4.5 out of 5 stars", "reviewCount": "1,204"},
        {"title": "Gadget", "price": 7, "image": "/img/gadget.png", "pageUrl": "https://example.com/search?q=x"},
    ]
    apify.script(CHEERIO_SCRAPER, items=raw_items)
    llm = make_llm(
        [
            "I looked through the data but could not identify a clean list of products.",
            "My recommendation is to diversify the catalogue.",
        ]
    )

    record = await run_product_comparison(make_deps(llm), "example.com")

    stored = await store.get(record.key)
    assert stored["status"] == "completed"
    assert stored["fallback"] == "raw"
    assert _without_ids(stored["products"]) == [
        {
            "name": "Widget",
            "price": "$19.99",
            "imageUrl": "",
            "rating": 4.5,
            "reviews": 1204,
            "url": "",
        },
        {
            "name": "Gadget",
            "price": "7",
            "imageUrl": "https://example.com/img/gadget.png",
            "rating": 0.0,
            "reviews": 0,
            "url": "",
        },
    ]
    assert llm.calls[0]["model_name"] == settings.gemini_extraction_model
    assert llm.calls[0]["temperature"] == 0.2
    assert llm.calls[0]["max_output_tokens"] == 8192


@pytest.mark.asyncio
async def test_record_stays_running_while_polling(apify, fast_runtime):
    store = MemoryStore()
    seen_statuses: List[str] = []

    async def observing_sleep(delay: float) -> None:
        stored = await store.get(ProductComparisonRecord.key_for("watch"))
        seen_statuses.append(stored["status"])

    scraper = ApifyScraper(
        "apify-test-token", base_url="https://api.apify.test", sleep=observing_sleep, transport=apify.transport()
    )
    deps = WorkflowDependencies(store=store, scraper=scraper, runtime=fast_runtime)
    apify.script(CHEERIO_SCRAPER, statuses=["RUNNING", "RUNNING", "RUNNING", "SUCCEEDED"], items=[{"name": "Lamp"}])

    await run_product_comparison(deps, "example.com", record_id="watch")

    assert seen_statuses == ["running"] * 4
    assert (await store.get(ProductComparisonRecord.key_for("watch")))["status"] == "completed"


@pytest.mark.asyncio
async def test_markdown_table_products_keep_scraped_ratings(make_deps, apify, store, make_llm):
    apify.script(
        CHEERIO_SCRAPER,
        items=[
            {"name": "Widget", "price": "$20", "rating": 4.8, "reviews": 310, "url": "/p/widget"},
            {"name": "Gadget", "price": "$10"},
        ],
    )
    llm = make_llm([PRODUCT_TABLE, '```json\n{"recommendations": ["Bundle widgets with gadgets"]}\n```'])

    record = await run_product_comparison(make_deps(llm), "https://shop.example.com", "home decor")

    assert record.search_url == "https://shop.example.com/search?q=home%20decor"
    assert record.fallback is None
    widget, gadget = record.products
    assert widget.image_url == "https://shop.example.com/img/widget.png"
    assert widget.rating == 4.8
    assert widget.reviews == 310
    assert widget.url == "https://shop.example.com/p/widget"
    assert gadget.image_url == "https://cdn.example.com/gadget.png"
    assert record.analysis.price_ranges.model_dump() == {"min": 10.0, "max": 20.0, "average": 15.0}
    assert [p.name for p in record.analysis.top_rated_products] == ["Widget"]
    assert record.analysis.recommendations == ["Bundle widgets with gadgets"]


@pytest.mark.asyncio
async def test_empty_scrape_completes_with_advice(deps, apify):
    apify.script(CHEERIO_SCRAPER, items=[])

    record = await run_product_comparison(deps, "example.com", "unicorns")

    assert record.products == []
    assert record.analysis.price_ranges.max == 0
    assert record.analysis.recommendations[0].startswith("No products were found")
    assert record.fallback == "heuristic"


@pytest.mark.asyncio
async def test_refused_submission_fails_the_record(deps, apify, store):
    apify.script(CHEERIO_SCRAPER, start_status_code=402)

    with pytest.raises(SubmissionError):
        await run_product_comparison(deps, "example.com", record_id="refused")

    stored = await store.get(ProductComparisonRecord.key_for("refused"))
    assert stored["status"] == "failed"
    assert stored["error"].startswith("Failed to start Cheerio Scraper: 402")


@pytest.mark.asyncio
async def test_undecodable_status_response_fails_the_record(store, fast_runtime, no_sleep):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(201, json={"data": {"id": "run-1"}}, request=request)
        return httpx.Response(200, headers={"content-encoding": "gzip"}, content=b"not gzip", request=request)

    scraper = ApifyScraper(
        "apify-test-token",
        base_url="https://api.apify.test",
        retries=1,
        backoff_seconds=0,
        sleep=no_sleep,
        transport=httpx.MockTransport(handler),
    )
    deps = WorkflowDependencies(store=store, scraper=scraper, runtime=fast_runtime)

    with pytest.raises(TransportError):
        await run_product_comparison(deps, "example.com", record_id="garbled")

    stored = await store.get(ProductComparisonRecord.key_for("garbled"))
    assert stored["status"] == "failed"
    assert stored["error"].startswith("GET https://api.apify.test/v2/actor-runs/run-1 failed")


@pytest.mark.asyncio
async def test_unexpected_errors_still_fail_the_record(store, fast_runtime):
    class BrokenScraper:
        async def run_actor(self, actor, run_input, *, poll_interval, max_attempts):
            raise RuntimeError("scraper crashed")

    deps = WorkflowDependencies(store=store, scraper=BrokenScraper(), runtime=fast_runtime)

    with pytest.raises(RuntimeError):
        await run_product_comparison(deps, "example.com", record_id="crashed")

    stored = await store.get(ProductComparisonRecord.key_for("crashed"))
    assert stored["status"] == "failed"
    assert stored["error"] == "scraper crashed"


@pytest.mark.asyncio
async def test_website_is_required(deps, store):
    with pytest.raises(ValueError, match="Website is required"):
        await run_product_comparison(deps, "  ")
    assert await store.keys() == []


def test_price_ranges_ignore_unpriced_products():
    products = [
        Product(name="A", price="$10.50"),
        Product(name="B", price="Price not available"),
        Product(name="C", price="$4.50"),
    ]

    assert price_ranges(products).model_dump() == {"min": 4.5, "max": 10.5, "average": 7.5}
    assert price_ranges([]).model_dump() == {"min": 0.0, "max": 0.0, "average": 0.0}


def test_top_lists_are_sorted_and_capped():
    products = [Product(name=f"P{i}", rating=i % 6, reviews=i * 10) for i in range(8)]

    assert [p.name for p in top_rated(products)] == ["P5", "P4", "P3", "P2", "P1"]
    assert [p.name for p in most_reviewed(products)] == ["P7", "P6", "P5", "P4", "P3"]
    assert all(p.rating > 0 for p in top_rated(products))
