from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Optional

from .config import settings
from .services import telemetry
from .services.storage import build_store
from .workflows.competitor_tracking import track_competitor_changes
from .workflows.content_generation import generate_content
from .workflows.dependencies import build_default_dependencies
from .workflows.exceptions import RecordNotFoundError, WorkflowError
from .workflows.keyword_gap import analyze_keyword_gap
from .workflows.listing import list_recent
from .workflows.product_comparison import run_product_comparison
from .workflows.seo_audit import perform_seo_audit
from .workflows.website_analysis import analyze_websites

logger = logging.getLogger("competitor_scrape.cli")


def configure_logging(level: Optional[str] = None) -> None:
    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    logging.basicConfig(
        level=(level or settings.log_level or "INFO").upper(),
        format=fmt,
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )
    # httpx logs every poll request at INFO; keep it quiet unless debugging.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="competitor-scrape",
        description="Scrape competitor websites with Apify and analyze them with Gemini",
    )
    parser.add_argument("--log-level", help="Override LOG_LEVEL for this run")
    commands = parser.add_subparsers(dest="command", required=True)

    analyze = commands.add_parser("analyze", help="SWOT comparison of a website against competitors")
    analyze.add_argument("main_url")
    analyze.add_argument("competitors", nargs="*")

    generate = commands.add_parser("generate", help="Generate SEO content from a stored analysis")
    generate.add_argument("analysis_id")

    products = commands.add_parser("compare-products", help="Scrape and compare products from a storefront search")
    products.add_argument("website")
    products.add_argument("--category", default="", help="Search term, e.g. 'running shoes'")

    seo = commands.add_parser("seo-audit", help="Technical SEO audit of one page")
    seo.add_argument("url")

    keywords = commands.add_parser("keyword-gap", help="Keywords competitors cover that the main site misses")
    keywords.add_argument("main_url")
    keywords.add_argument("competitors", nargs="+")

    track = commands.add_parser("track", help="Detect competitor changes since the previous run")
    track.add_argument("main_url")
    track.add_argument("competitors", nargs="+")

    show = commands.add_parser("show", help="Print one stored record")
    show.add_argument("key")

    listing = commands.add_parser("list", help="List stored records of one kind, newest first")
    listing.add_argument("prefix", help="analysis, product-comparison, seo-audit, keyword-gap, ...")
    listing.add_argument("--limit", type=int, default=20)

    return parser.parse_args(argv)


async def run_command(args: argparse.Namespace) -> Any:
    if args.command == "show":
        value = await build_store().get(args.key)
        if value is None:
            raise RecordNotFoundError(f"No record stored under {args.key!r}")
        return value
    if args.command == "list":
        records = await list_recent(build_store(), args.prefix, limit=args.limit)
        return [record.dump() for record in records]

    deps = build_default_dependencies()
    if args.command == "analyze":
        record = await analyze_websites(deps, args.main_url, args.competitors)
    elif args.command == "generate":
        record = await generate_content(deps, args.analysis_id)
    elif args.command == "compare-products":
        record = await run_product_comparison(deps, args.website, args.category)
    elif args.command == "seo-audit":
        record = await perform_seo_audit(deps, args.url)
    elif args.command == "keyword-gap":
        record = await analyze_keyword_gap(deps, args.main_url, args.competitors)
    elif args.command == "track":
        record = await track_competitor_changes(deps, args.main_url, args.competitors)
    else:
        raise ValueError(f"Unknown command: {args.command}")
    return record.dump()


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    configure_logging(args.log_level)
    try:
        result = asyncio.run(run_command(args))
    except WorkflowError as exc:
        logger.error("cli.failed command=%s error=%s", args.command, exc.message)
        print(json.dumps({"status": "failed", "error": exc.message}), file=sys.stderr)
        return 1
    except ValueError as exc:
        print(json.dumps({"status": "failed", "error": str(exc)}), file=sys.stderr)
        return 2
    finally:
        telemetry.force_flush_posthog_logs()

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
