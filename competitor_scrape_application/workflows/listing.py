from __future__ import annotations

from typing import Dict, List, Optional, Type

from ..components.models import (
    AnalysisRecord,
    CompetitorTrackingRecord,
    GeneratedContent,
    KeywordGapRecord,
    ProductComparisonRecord,
    ResultRecord,
    SEOAuditRecord,
)
from ..services.storage import KeyValueStore, load_records

RECORD_TYPES: Dict[str, Type[ResultRecord]] = {
    record_type.key_prefix: record_type
    for record_type in (
        AnalysisRecord,
        ProductComparisonRecord,
        SEOAuditRecord,
        KeywordGapRecord,
        CompetitorTrackingRecord,
        GeneratedContent,
    )
}


def record_type_for(prefix: str) -> Type[ResultRecord]:
    """Record model stored under ``prefix``; accepts the prefix with or without its trailing colon."""

    key = prefix if prefix.endswith(":") else f"{prefix}:"
    try:
        return RECORD_TYPES[key]
    except KeyError:
        known = ", ".join(sorted(name.rstrip(":") for name in RECORD_TYPES))
        raise ValueError(f"Unknown record prefix {prefix!r}; expected one of: {known}") from None


async def list_recent(store: KeyValueStore, prefix: str, *, limit: Optional[int] = None) -> List[ResultRecord]:
    """Stored records of one kind, newest first."""

    record_type = record_type_for(prefix)
    return await load_records(store, record_type.key_prefix, record_type, limit=limit)
