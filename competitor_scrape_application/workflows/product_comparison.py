from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..components.models import PriceRanges, Product, ProductAnalysis, ProductComparisonRecord, now_ms
from ..config import settings
from ..constants import TOP_PRODUCTS_LIMIT, FallbackKind, OnFailure, RecordStatus
from ..services import telemetry
from .dependencies import WorkflowDependencies, save_failure, save_record
from .exceptions import ExtractionError
from .helpers.model_output import (
    MODEL_FALLBACK_ERRORS,
    generate_json,
    generate_text,
    log_model_fallback,
    string_list,
)
from .helpers.normalize import normalize_products, parse_price_value
from .helpers.text_extract import extract_markdown_table
from .helpers.urls import build_search_url
from .remote_job import resolve_outcome
from .scrapers.actors import CHEERIO_SCRAPER, product_run_input

logger = logging.getLogger("competitor_scrape.workflows")

TABLE_HEADER_LABEL = "Product Name"
TABLE_COLUMNS = ("name", "price", "imageUrl")
EXTRACTION_TEMPERATURE = 0.2
EXTRACTION_MAX_OUTPUT_TOKENS = 8192


def build_extraction_prompt(raw_products: Sequence[Dict[str, Any]]) -> str:
    return f"""I'm sending you raw scraped data from an e-commerce website.
This data contains product information but might be messy or unstructured.

Raw Data:
{json.dumps(list(raw_products), separators=(",", ":"))}

Extract and clean the product information into a markdown table with these columns:
- Product Name (clean, without duplications or price information)
- Price (with currency symbol)
- Image URL (exactly as it appears in the data)
Remove duplicate products from the table.

| Product Name | Price | Image URL |
| ------------ | ----- | --------- |
| Product 1    | $X.XX | http://... |
"""


def _merge_table_rows(rows: List[Dict[str, str]], raw_products: Sequence[Dict[str, Any]], base_url: str) -> List[Dict[str, Any]]:
    """Normalize table rows, carrying rating, reviews and url over from raw products with the same name."""

    by_name = {product["name"].strip().lower(): product for product in raw_products if product.get("name")}
    products = normalize_products(rows, base_url)
    for product in products:
        source = by_name.get(product["name"].strip().lower())
        if source is None:
            continue
        product["rating"] = source.get("rating", 0.0)
        product["reviews"] = source.get("reviews", 0)
        product["url"] = source.get("url", "")
        if not product["imageUrl"]:
            product["imageUrl"] = source.get("imageUrl", "")
    return products


async def extract_products(
    deps: WorkflowDependencies,
    raw_products: List[Dict[str, Any]],
    base_url: str,
) -> Tuple[List[Dict[str, Any]], Optional[FallbackKind]]:
    """Clean products with the model; the normalized raw products stand in when that yields nothing."""

    if not raw_products:
        return [], None
    try:
        text = await generate_text(
            deps.llm,
            build_extraction_prompt(raw_products),
            model_name=settings.gemini_extraction_model,
            temperature=EXTRACTION_TEMPERATURE,
            max_output_tokens=EXTRACTION_MAX_OUTPUT_TOKENS,
        )
        rows = extract_markdown_table(text, TABLE_HEADER_LABEL, TABLE_COLUMNS)
        products = _merge_table_rows(rows, raw_products, base_url)
        if not products:
            raise ExtractionError("No product rows found in model response")
        return products, None
    except MODEL_FALLBACK_ERRORS as exc:
        log_model_fallback("product_extraction", exc)
        telemetry.emit_event("workflow.fallback", level="warn", kind=str(FallbackKind.RAW), reason=str(exc))
        return raw_products, FallbackKind.RAW


def assign_product_ids(products: Sequence[Dict[str, Any]]) -> List[Product]:
    stamp = now_ms()
    return [
        Product.model_validate({**product, "id": f"product-{index}-{stamp}"})
        for index, product in enumerate(products)
    ]


def price_ranges(products: Sequence[Product]) -> PriceRanges:
    prices = [value for value in (parse_price_value(product.price) for product in products) if value > 0]
    if not prices:
        return PriceRanges()
    return PriceRanges(min=min(prices), max=max(prices), average=round(sum(prices) / len(prices), 2))


def top_rated(products: Sequence[Product], limit: int = TOP_PRODUCTS_LIMIT) -> List[Product]:
    rated = [product for product in products if product.rating > 0]
    return sorted(rated, key=lambda product: product.rating, reverse=True)[:limit]


def most_reviewed(products: Sequence[Product], limit: int = TOP_PRODUCTS_LIMIT) -> List[Product]:
    reviewed = [product for product in products if product.reviews > 0]
    return sorted(reviewed, key=lambda product: product.reviews, reverse=True)[:limit]


def fallback_recommendations(analysis: ProductAnalysis, product_count: int) -> List[str]:
    if product_count == 0:
        return ["No products were found for this search; try a broader category or another storefront."]
    ranges = analysis.price_ranges
    recommendations: List[str] = []
    if ranges.max > 0:
        recommendations.append(
            f"Price competitively within the observed range of {ranges.min:.2f} to {ranges.max:.2f} "
            f"(average {ranges.average:.2f})."
        )
    if analysis.top_rated_products:
        best = analysis.top_rated_products[0]
        recommendations.append(f'Study "{best.name}" ({best.rating:.1f}/5) for the features customers rate highest.')
    else:
        recommendations.append("Collect and display customer ratings; none of the compared products show ratings.")
    if analysis.most_reviewed_products:
        popular = analysis.most_reviewed_products[0]
        recommendations.append(f'"{popular.name}" has the most reviews ({popular.reviews}); review its listing for demand signals.')
    return recommendations


def build_recommendations_prompt(products: Sequence[Product]) -> str:
    summary = [
        {"name": product.name, "price": product.price, "rating": product.rating, "reviews": product.reviews}
        for product in products
    ]
    return f"""Analyze this product data and provide strategic recommendations.

Products:
{json.dumps(summary, indent=2)}

Provide 3-5 strategic recommendations for someone selling these products.

Return ONLY a JSON object in this format:
{{
  "recommendations": ["Recommendation 1", "Recommendation 2"]
}}"""


async def analyze_products(
    deps: WorkflowDependencies, products: Sequence[Product]
) -> Tuple[ProductAnalysis, Optional[FallbackKind]]:
    analysis = ProductAnalysis(
        price_ranges=price_ranges(products),
        top_rated_products=top_rated(products),
        most_reviewed_products=most_reviewed(products),
    )
    try:
        payload = await generate_json(deps.llm, build_recommendations_prompt(products), expect=dict)
        recommendations = string_list(payload.get("recommendations"))
        if not recommendations:
            raise ExtractionError("Recommendations response was empty")
        analysis.recommendations = recommendations
        return analysis, None
    except MODEL_FALLBACK_ERRORS as exc:
        log_model_fallback("product_recommendations", exc)
        analysis.recommendations = fallback_recommendations(analysis, len(products))
        return analysis, FallbackKind.HEURISTIC


async def run_product_comparison(
    deps: WorkflowDependencies,
    website: str,
    category: str = "",
    *,
    record_id: Optional[str] = None,
) -> ProductComparisonRecord:
    """Scrape a storefront search page and compare the products found.

    A scrape that fails or never completes marks the record failed and raises.
    """

    if not website or not website.strip():
        raise ValueError("Website is required")
    category = (category or "").strip()
    search_url = build_search_url(website, category)

    fields: Dict[str, Any] = {"website": website.strip(), "category": category, "search_url": search_url}
    if record_id:
        fields["id"] = record_id
    record = ProductComparisonRecord(status=RecordStatus.RUNNING, **fields)
    await save_record(deps.store, record)
    logger.info("products.started id=%s search_url=%s", record.id, search_url)

    try:
        budget = deps.runtime.product_scrape
        outcome = await deps.scraper.run_actor(
            CHEERIO_SCRAPER,
            product_run_input(search_url),
            poll_interval=budget.poll_seconds,
            max_attempts=budget.max_attempts,
        )
        raw_items = resolve_outcome(outcome, OnFailure.PROPAGATE).payload
        raw_products = normalize_products(raw_items, search_url)
        logger.info("products.scraped id=%s raw_items=%s products=%s", record.id, len(raw_items), len(raw_products))

        extracted, extraction_fallback = await extract_products(deps, raw_products, search_url)
        products = assign_product_ids(extracted)
        analysis, analysis_fallback = await analyze_products(deps, products)
    except Exception as exc:
        await save_failure(deps.store, record, exc)
        raise

    completed = ProductComparisonRecord(
        id=record.id,
        status=RecordStatus.COMPLETED,
        products=products,
        analysis=analysis,
        fallback=extraction_fallback or analysis_fallback,
        **{key: value for key, value in fields.items() if key != "id"},
    )
    return await save_record(deps.store, completed)
