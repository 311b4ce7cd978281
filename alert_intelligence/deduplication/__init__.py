from alert_intelligence.deduplication.alert_deduplicator import (
    AlertDeduplicator,
    DeduplicationAction,
    DeduplicationDecision,
    extract_keywords,
    jaccard_similarity,
    normalize_title,
)

__all__ = [
    "AlertDeduplicator",
    "DeduplicationAction",
    "DeduplicationDecision",
    "extract_keywords",
    "jaccard_similarity",
    "normalize_title",
]
