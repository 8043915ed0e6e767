from __future__ import annotations

import time
import uuid
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ...constants import (
    ANALYSIS_PREFIX,
    COMPETITOR_TRACKING_PREFIX,
    GENERATED_CONTENT_PREFIX,
    KEYWORD_GAP_PREFIX,
    PRICE_NOT_AVAILABLE,
    PRODUCT_COMPARISON_PREFIX,
    SEO_AUDIT_PREFIX,
    TRACKING_SNAPSHOT_PREFIX,
    FallbackKind,
    Opportunity,
    RecordStatus,
    Severity,
)
from ...workflows.helpers.urls import host_slug


def now_ms() -> int:
    return int(time.time() * 1000)


def new_record_id() -> str:
    return str(uuid.uuid4())


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def dump(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ResultRecord(_Model):
    """Persisted, externally visible outcome of one use-case run.

    A ``completed`` record carries every field named in ``payload_fields``; a
    ``failed`` record carries an ``error``; a ``running`` record is the
    placeholder written before the work finishes.
    """

    key_prefix: ClassVar[str] = ""
    payload_fields: ClassVar[Tuple[str, ...]] = ()

    id: str = Field(default_factory=new_record_id)
    timestamp: int = Field(default_factory=now_ms)
    status: RecordStatus = RecordStatus.COMPLETED
    error: Optional[str] = None
    fallback: Optional[FallbackKind] = None

    @property
    def key(self) -> str:
        return f"{self.key_prefix}{self.id}"

    @classmethod
    def key_for(cls, record_id: str) -> str:
        return f"{cls.key_prefix}{record_id}"

    @model_validator(mode="after")
    def _check_status_payload(self) -> "ResultRecord":
        if self.status is RecordStatus.COMPLETED:
            missing = [name for name in self.payload_fields if getattr(self, name) is None]
            if missing:
                raise ValueError(f"completed record is missing payload: {', '.join(missing)}")
        elif self.status is RecordStatus.FAILED and not self.error:
            raise ValueError("failed record requires an error message")
        return self


class WebsiteData(_Model):
    url: str
    title: str = ""
    description: str = ""
    keywords: List[str] = Field(default_factory=list)
    headings: List[str] = Field(default_factory=list)
    content: str = ""
    links: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    last_scraped: int = Field(default_factory=now_ms, alias="lastScraped")
    error: Optional[str] = None


class SwotComparison(_Model):
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    opportunities: List[str] = Field(default_factory=list)
    threats: List[str] = Field(default_factory=list)


class AnalysisRecord(ResultRecord):
    key_prefix: ClassVar[str] = ANALYSIS_PREFIX
    payload_fields: ClassVar[Tuple[str, ...]] = ("main_website", "comparison")

    main_url: str = Field(default="", alias="mainUrl")
    competitor_urls: List[str] = Field(default_factory=list, alias="competitorUrls")
    main_website: Optional[WebsiteData] = Field(default=None, alias="mainWebsite")
    competitors: List[WebsiteData] = Field(default_factory=list)
    comparison: Optional[SwotComparison] = None


class Product(_Model):
    id: Optional[str] = None
    name: str = ""
    price: str = PRICE_NOT_AVAILABLE
    image_url: str = Field(default="", alias="imageUrl")
    rating: float = 0.0
    reviews: int = 0
    url: str = ""


class PriceRanges(_Model):
    min: float = 0.0
    max: float = 0.0
    average: float = 0.0


class ProductAnalysis(_Model):
    price_ranges: PriceRanges = Field(default_factory=PriceRanges, alias="priceRanges")
    top_rated_products: List[Product] = Field(default_factory=list, alias="topRatedProducts")
    most_reviewed_products: List[Product] = Field(default_factory=list, alias="mostReviewedProducts")
    recommendations: List[str] = Field(default_factory=list)


class ProductComparisonRecord(ResultRecord):
    key_prefix: ClassVar[str] = PRODUCT_COMPARISON_PREFIX
    payload_fields: ClassVar[Tuple[str, ...]] = ("analysis",)

    website: str
    category: str = ""
    search_url: str = Field(default="", alias="searchUrl")
    products: List[Product] = Field(default_factory=list)
    analysis: Optional[ProductAnalysis] = None


class SEOIssue(_Model):
    type: Severity = Severity.INFO
    title: str
    description: str = ""
    impact: str = ""
    recommendation: str = ""


class PerformanceScores(_Model):
    score: float = 0
    load_time: float = Field(default=0.0, alias="loadTime")
    first_contentful_paint: float = Field(default=0.0, alias="firstContentfulPaint")
    largest_contentful_paint: float = Field(default=0.0, alias="largestContentfulPaint")
    cumulative_layout_shift: float = Field(default=0.0, alias="cumulativeLayoutShift")


class SeoScores(_Model):
    score: float = 0
    meta_tags_score: float = Field(default=0, alias="metaTagsScore")
    content_score: float = Field(default=0, alias="contentScore")
    mobile_score: float = Field(default=0, alias="mobileScore")
    security_score: float = Field(default=0, alias="securityScore")


class SEOAuditRecord(ResultRecord):
    key_prefix: ClassVar[str] = SEO_AUDIT_PREFIX
    payload_fields: ClassVar[Tuple[str, ...]] = ("performance", "seo")

    url: str
    performance: Optional[PerformanceScores] = None
    seo: Optional[SeoScores] = None
    issues: List[SEOIssue] = Field(default_factory=list)
    technical_data: Optional[Dict[str, Any]] = Field(default=None, alias="technicalData")


class KeywordData(_Model):
    keyword: str
    main_rank: Optional[int] = Field(default=None, alias="mainRank")
    competitor_ranks: List[Optional[int]] = Field(default_factory=list, alias="competitorRanks")
    difficulty: int = 50
    search_volume: int = Field(default=1000, alias="searchVolume")
    opportunity: Opportunity = Opportunity.MEDIUM


class KeywordGapRecord(ResultRecord):
    key_prefix: ClassVar[str] = KEYWORD_GAP_PREFIX
    payload_fields: ClassVar[Tuple[str, ...]] = ("keywords",)

    main_website: str = Field(alias="mainWebsite")
    competitors: List[str] = Field(default_factory=list)
    keywords: Optional[List[KeywordData]] = None


class CompetitorChange(_Model):
    url: str = ""
    type: str = "content"
    description: str = ""
    impact: str = "medium"
    date: str = ""


class CompetitorTrackingRecord(ResultRecord):
    key_prefix: ClassVar[str] = COMPETITOR_TRACKING_PREFIX
    payload_fields: ClassVar[Tuple[str, ...]] = ("changes",)

    main_website: str = Field(alias="mainWebsite")
    competitors: List[str] = Field(default_factory=list)
    changes: Optional[List[CompetitorChange]] = None
    insights: List[str] = Field(default_factory=list)
    first_run: bool = Field(default=False, alias="firstRun")


class TrackingSnapshot(_Model):
    """Latest scraped state of a main site's competitors, kept for change detection."""

    timestamp: int = Field(default_factory=now_ms)
    main_website: str = Field(alias="mainWebsite")
    competitors: List[str] = Field(default_factory=list)
    data: List[WebsiteData] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return tracking_snapshot_key(self.main_website)


def tracking_snapshot_key(main_url: str) -> str:
    return f"{TRACKING_SNAPSHOT_PREFIX}{host_slug(main_url)}"


class GeneratedContent(ResultRecord):
    """SEO copy generated from an analysis; ``id`` is the analysis id."""

    key_prefix: ClassVar[str] = GENERATED_CONTENT_PREFIX
    payload_fields: ClassVar[Tuple[str, ...]] = ("page_content",)

    meta_title: str = Field(default="", alias="metaTitle")
    meta_description: str = Field(default="", alias="metaDescription")
    keywords: List[str] = Field(default_factory=list)
    page_content: Optional[str] = Field(default=None, alias="pageContent")
