from __future__ import annotations

from enum import StrEnum


class RunStatus(StrEnum):
    """Remote run states collapsed to the five the poll loop cares about."""

    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED-OUT"
    ABORTED = "ABORTED"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


class RecordStatus(StrEnum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class OnFailure(StrEnum):
    """What a caller does when a remote run does not succeed."""

    PROPAGATE = "propagate"
    SUBSTITUTE_MOCK = "substitute_mock"
    SUBSTITUTE_RAW = "substitute_raw"


class FallbackKind(StrEnum):
    MOCK = "mock"
    RAW = "raw"
    HEURISTIC = "heuristic"


class Opportunity(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Severity(StrEnum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


RECORD_STATUS_BY_RUN_STATUS: dict[RunStatus, RecordStatus] = {
    RunStatus.RUNNING: RecordStatus.RUNNING,
    RunStatus.SUCCEEDED: RecordStatus.COMPLETED,
    RunStatus.FAILED: RecordStatus.FAILED,
    RunStatus.TIMED_OUT: RecordStatus.FAILED,
    RunStatus.ABORTED: RecordStatus.FAILED,
}

# Key prefixes in the key-value store.
ANALYSIS_PREFIX = "analysis:"
PRODUCT_COMPARISON_PREFIX = "product-comparison:"
SEO_AUDIT_PREFIX = "seo-audit:"
KEYWORD_GAP_PREFIX = "keyword-gap:"
COMPETITOR_TRACKING_PREFIX = "competitor-tracking:"
GENERATED_CONTENT_PREFIX = "generated-content:"
TRACKING_SNAPSHOT_PREFIX = "tracking-data-"

PRICE_NOT_AVAILABLE = "Price not available"
MAX_RATING = 5.0
TOP_PRODUCTS_LIMIT = 5
MAX_KEYWORDS = 30

SEED_KEYWORDS = (
    "website analysis",
    "seo tool",
    "competitor analysis",
    "content optimization",
    "keyword research",
    "website comparison",
)

# Used when the keyword scrape produced nothing.
MOCK_KEYWORDS = (
    "website analysis tool",
    "competitor website analysis",
    "seo content generator",
    "website comparison tool",
    "free website analyzer",
    "website seo checker",
    "content optimization tool",
    "keyword gap analysis",
    "technical seo audit",
    "backlink analyzer",
    "website performance checker",
    "seo competitor analysis",
    "website content analyzer",
    "meta description generator",
    "website ranking tool",
)
MOCK_KEYWORD_COUNT = 15

KEYWORD_STOPWORDS = frozenset(
    {
        "the",
        "and",
        "for",
        "you",
        "your",
        "with",
        "that",
        "this",
        "are",
        "from",
        "our",
        "have",
        "will",
        "can",
        "not",
        "but",
        "all",
        "more",
        "about",
        "home",
        "page",
        "click",
        "here",
        "menu",
        "login",
        "sign",
        "cookie",
        "cookies",
        "privacy",
        "policy",
        "terms",
        "contact",
    }
)
