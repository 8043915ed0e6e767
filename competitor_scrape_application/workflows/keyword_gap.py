from __future__ import annotations

import json
import logging
import re
import zlib
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from ..components.models import KeywordData, KeywordGapRecord
from ..constants import (
    KEYWORD_STOPWORDS,
    MAX_KEYWORDS,
    MOCK_KEYWORD_COUNT,
    MOCK_KEYWORDS,
    SEED_KEYWORDS,
    OnFailure,
    Opportunity,
    RecordStatus,
)
from .dependencies import WorkflowDependencies, save_failure, save_record
from .exceptions import ExtractionError
from .helpers.model_output import MODEL_FALLBACK_ERRORS, generate_json, log_model_fallback
from .helpers.normalize import normalize_website
from .helpers.urls import extract_domain, normalize_url
from .remote_job import Completed, Failed, resolve_outcome
from .scrapers.actors import CHEERIO_SCRAPER, website_run_input

logger = logging.getLogger("competitor_scrape.workflows")

SPECIAL_CHARACTERS_RE = re.compile(r"[^\w\s-]")
TOP_RANK = 10
MOCK_COMPETITOR_SLOTS = 3
_OPPORTUNITY_VALUES = frozenset(item.value for item in Opportunity)

Page = Dict[str, Any]


def _stable_int(*parts: str) -> int:
    return zlib.crc32("|".join(parts).encode("utf-8"))


def classify_opportunity(main_rank: Optional[int], competitor_ranks: Sequence[Optional[int]]) -> Opportunity:
    competitor_in_top = any(rank is not None and rank <= TOP_RANK for rank in competitor_ranks)
    if main_rank is None and competitor_in_top:
        return Opportunity.HIGH
    if main_rank is not None and main_rank > TOP_RANK and competitor_in_top:
        return Opportunity.MEDIUM
    return Opportunity.LOW


def split_pages_by_site(
    items: Iterable[Any], main_url: str, competitor_urls: Sequence[str]
) -> Tuple[List[Page], List[List[Page]]]:
    """Group scraped pages by domain into the main site's pages and one list per competitor."""

    main_domain = extract_domain(main_url)
    competitor_domains = [extract_domain(url) for url in competitor_urls]
    main_pages: List[Page] = []
    competitor_pages: List[List[Page]] = [[] for _ in competitor_domains]
    for item in items:
        if not isinstance(item, dict) or not isinstance(item.get("url"), str):
            continue
        page = normalize_website(item, item["url"])
        domain = extract_domain(page["url"])
        if domain == main_domain:
            main_pages.append(page)
        for index, competitor_domain in enumerate(competitor_domains):
            if domain == competitor_domain:
                competitor_pages[index].append(page)
    return main_pages, competitor_pages


def _adjacent_phrases(words: Sequence[str]) -> Iterable[str]:
    for first, second in zip(words, words[1:]):
        if len(first) > 3 and len(second) > 3:
            phrase = f"{first} {second}"
            if 7 < len(phrase) < 30:
                yield phrase


def _three_word_phrases(words: Sequence[str]) -> Iterable[str]:
    for first, second, third in zip(words, words[1:], words[2:]):
        if len(first) > 3 and len(second) > 2 and len(third) > 3:
            phrase = f"{first} {second} {third}"
            if 10 < len(phrase) < 40:
                yield phrase


def keyword_candidates(page_groups: Sequence[Sequence[Page]]) -> List[str]:
    """Seed keywords, then meta keywords, short headings and 2-/3-word phrases, in first-seen order."""

    candidates: Dict[str, None] = dict.fromkeys(SEED_KEYWORDS)

    for pages in page_groups:
        for page in pages:
            for keyword in page["keywords"]:
                if len(keyword) > 3:
                    candidates.setdefault(keyword.lower())

    for pages in page_groups:
        for page in pages:
            for heading in page["headings"]:
                if len(heading) <= 3:
                    continue
                if len(heading.split(" ")) <= 5:
                    candidates.setdefault(heading.lower())
                for phrase in _adjacent_phrases(heading.lower().split()):
                    candidates.setdefault(phrase)

    for pages in page_groups:
        for page in pages:
            words = page["content"].lower().split()
            for phrase in _adjacent_phrases(words):
                candidates.setdefault(phrase)
            for phrase in _three_word_phrases(words):
                candidates.setdefault(phrase)

    return list(candidates)


def filter_keywords(candidates: Iterable[str], limit: int = MAX_KEYWORDS) -> List[str]:
    kept: List[str] = []
    for keyword in candidates:
        if len(keyword) < 5 or len(keyword) > 50:
            continue
        if SPECIAL_CHARACTERS_RE.search(keyword):
            continue
        if keyword in KEYWORD_STOPWORDS:
            continue
        kept.append(keyword)
        if len(kept) >= limit:
            break
    return kept


def _pages_mention(pages: Sequence[Page], keyword: str) -> bool:
    needle = keyword.lower()
    return any(
        needle in page["content"].lower() or needle in page["title"].lower() or needle in page["description"].lower()
        for page in pages
    )


def _simulated_rank(keyword: str, site: str, base: int) -> int:
    return max(1, min(20, base + _stable_int(keyword, site) % 10 - 5))


def score_keyword(
    keyword: str,
    main_pages: Sequence[Page],
    competitor_pages: Sequence[Sequence[Page]],
    competitor_urls: Sequence[str],
) -> KeywordData:
    """Rank, difficulty and volume derived from where the keyword appears.

    No search-engine data is available, so values are simulated but stable for
    a given keyword and site.
    """

    main_rank = _simulated_rank(keyword, "main", 10) if _pages_mention(main_pages, keyword) else None
    competitor_ranks: List[Optional[int]] = [
        _simulated_rank(keyword, url, 8) if _pages_mention(pages, keyword) else None
        for url, pages in zip(competitor_urls, competitor_pages)
    ]
    ranking = sum(1 for rank in competitor_ranks if rank is not None)
    difficulty = min(95, max(20, 30 + ranking * 15 + _stable_int(keyword, "difficulty") % 10 - 5))
    search_volume = max(100, 500 + _stable_int(keyword, "volume") % 2000)
    return KeywordData(
        keyword=keyword,
        main_rank=main_rank,
        competitor_ranks=competitor_ranks,
        difficulty=difficulty,
        search_volume=search_volume,
        opportunity=classify_opportunity(main_rank, competitor_ranks),
    )


def extract_keyword_data(items: Iterable[Any], main_url: str, competitor_urls: Sequence[str]) -> List[KeywordData]:
    main_pages, competitor_pages = split_pages_by_site(items, main_url, competitor_urls)
    logger.info(
        "keywords.pages main=%s competitors=%s",
        len(main_pages),
        sum(len(pages) for pages in competitor_pages),
    )
    keywords = filter_keywords(keyword_candidates([main_pages, *competitor_pages]))
    return [score_keyword(keyword, main_pages, competitor_pages, competitor_urls) for keyword in keywords]


def mock_keyword_data(competitor_count: int, count: int = MOCK_KEYWORD_COUNT) -> List[KeywordData]:
    slots = competitor_count or MOCK_COMPETITOR_SLOTS
    data: List[KeywordData] = []
    for index in range(count):
        keyword = MOCK_KEYWORDS[index % len(MOCK_KEYWORDS)]
        seed = _stable_int(keyword, str(index))
        main_rank = None if seed % 5 == 0 else seed % 20 + 1
        competitor_ranks: List[Optional[int]] = []
        for slot in range(slots):
            slot_seed = _stable_int(keyword, str(index), str(slot))
            competitor_ranks.append(None if slot_seed % 10 < 3 else slot_seed % 20 + 1)
        data.append(
            KeywordData(
                keyword=keyword,
                main_rank=main_rank,
                competitor_ranks=competitor_ranks,
                difficulty=seed % 60 + 20,
                search_volume=seed % 5000 + 500,
                opportunity=classify_opportunity(main_rank, competitor_ranks),
            )
        )
    return data


def build_rerate_prompt(main_url: str, competitor_urls: Sequence[str], keywords: Sequence[KeywordData]) -> str:
    summary = [
        {
            "keyword": keyword.keyword,
            "mainRank": keyword.main_rank if keyword.main_rank is not None else "Not ranking",
            "competitorRanks": [rank if rank is not None else "Not ranking" for rank in keyword.competitor_ranks],
            "difficulty": keyword.difficulty,
            "searchVolume": keyword.search_volume,
        }
        for keyword in keywords
    ]
    return f"""Analyze keyword opportunities for a website compared to its competitors.

Main Website: {main_url}
Competitors: {", ".join(competitor_urls)}

Keyword data:
{json.dumps(summary, indent=2)}

For each keyword set the opportunity level (high, medium or low):
- HIGH: main website is not ranking but competitors rank in the top 10
- MEDIUM: main website ranks outside the top 10 while competitors are in the top 10
- LOW: main website already ranks well or no competitor ranks well
Higher search volume and lower difficulty increase the opportunity value.

Return ONLY a JSON array with the exact same keywords:
[
  {{"keyword": "example keyword", "mainRank": 15, "competitorRanks": [3, 7, null], "difficulty": 65, "searchVolume": 2400, "opportunity": "medium"}}
]"""


def _rerated_entry(entry: Any) -> Optional[KeywordData]:
    if not isinstance(entry, dict) or not entry.get("keyword"):
        return None
    main_rank = entry.get("mainRank")
    difficulty = entry.get("difficulty")
    volume = entry.get("searchVolume")
    opportunity = entry.get("opportunity")
    ranks = entry.get("competitorRanks")
    try:
        return KeywordData(
            keyword=str(entry["keyword"]),
            main_rank=main_rank if isinstance(main_rank, int) and not isinstance(main_rank, bool) else None,
            competitor_ranks=[rank if isinstance(rank, int) else None for rank in ranks] if isinstance(ranks, list) else [],
            difficulty=difficulty if isinstance(difficulty, (int, float)) else 50,
            search_volume=volume if isinstance(volume, (int, float)) else 1000,
            opportunity=opportunity if isinstance(opportunity, str) and opportunity in _OPPORTUNITY_VALUES else Opportunity.MEDIUM,
        )
    except ValidationError:
        return None


async def rerate_keywords(
    deps: WorkflowDependencies,
    main_url: str,
    competitor_urls: Sequence[str],
    keywords: List[KeywordData],
) -> List[KeywordData]:
    """Let the model revise opportunity levels; the computed data is kept on any failure."""

    if not keywords:
        return keywords
    try:
        payload = await generate_json(deps.llm, build_rerate_prompt(main_url, competitor_urls, keywords), expect=list)
        rerated = [entry for entry in (_rerated_entry(item) for item in payload) if entry is not None]
        if not rerated:
            raise ExtractionError("Keyword response contained no usable entries")
        return rerated
    except MODEL_FALLBACK_ERRORS as exc:
        log_model_fallback("keyword_rerate", exc)
        return keywords


async def analyze_keyword_gap(
    deps: WorkflowDependencies,
    main_url: str,
    competitor_urls: Sequence[str],
    *,
    record_id: Optional[str] = None,
) -> KeywordGapRecord:
    """Find keywords competitors cover that the main site does not."""

    main = normalize_url(main_url)
    competitors = [normalize_url(url) for url in competitor_urls if url and url.strip()]
    fields: Dict[str, Any] = {"main_website": main, "competitors": competitors}
    if record_id:
        fields["id"] = record_id
    record = KeywordGapRecord(status=RecordStatus.RUNNING, **fields)
    await save_record(deps.store, record)
    logger.info("keywords.started id=%s main=%s competitors=%s", record.id, main, len(competitors))

    try:
        budget = deps.runtime.keyword_scrape
        outcome = await deps.scraper.run_actor(
            CHEERIO_SCRAPER,
            website_run_input([main, *competitors]),
            poll_interval=budget.poll_seconds,
            max_attempts=budget.max_attempts,
        )
        if isinstance(outcome, Completed) and not outcome.payload:
            outcome = Failed(reason="No data returned from Cheerio Scraper", job=outcome.job)
        resolution = resolve_outcome(
            outcome,
            OnFailure.SUBSTITUTE_MOCK,
            mock=lambda: mock_keyword_data(len(competitors)),
        )
        if resolution.fallback is None:
            keywords = extract_keyword_data(resolution.payload, main, competitors)
        else:
            keywords = resolution.payload
        keywords = await rerate_keywords(deps, main, competitors, keywords)
    except Exception as exc:
        await save_failure(deps.store, record, exc)
        raise

    completed = KeywordGapRecord(
        id=record.id,
        status=RecordStatus.COMPLETED,
        main_website=main,
        competitors=competitors,
        keywords=keywords,
        fallback=resolution.fallback,
    )
    return await save_record(deps.store, completed)
