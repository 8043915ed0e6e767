from .records import (
    AnalysisRecord,
    CompetitorChange,
    CompetitorTrackingRecord,
    GeneratedContent,
    KeywordData,
    KeywordGapRecord,
    PerformanceScores,
    PriceRanges,
    Product,
    ProductAnalysis,
    ProductComparisonRecord,
    ResultRecord,
    SEOAuditRecord,
    SEOIssue,
    SeoScores,
    SwotComparison,
    TrackingSnapshot,
    WebsiteData,
    new_record_id,
    now_ms,
    tracking_snapshot_key,
)

__all__ = [
    "AnalysisRecord",
    "CompetitorChange",
    "CompetitorTrackingRecord",
    "GeneratedContent",
    "KeywordData",
    "KeywordGapRecord",
    "PerformanceScores",
    "PriceRanges",
    "Product",
    "ProductAnalysis",
    "ProductComparisonRecord",
    "ResultRecord",
    "SEOAuditRecord",
    "SEOIssue",
    "SeoScores",
    "SwotComparison",
    "TrackingSnapshot",
    "WebsiteData",
    "new_record_id",
    "now_ms",
    "tracking_snapshot_key",
]
