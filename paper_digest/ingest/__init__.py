"""Alert-message ingestion: source classification and article extraction."""

from .classifier import KnownSource, SourceKind, UNKNOWN, Unknown, classify_source, display_name
from .extractor import ArticleExtractor, extract_articles, strategy_for

__all__ = [
    "ArticleExtractor",
    "KnownSource",
    "SourceKind",
    "UNKNOWN",
    "Unknown",
    "classify_source",
    "display_name",
    "extract_articles",
    "strategy_for",
]
