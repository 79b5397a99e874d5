"""Processing stages: batching, scoring, deduplication and validation."""

from .batching import batch_articles
from .dedupe import DuplicateGroup, PaperDeduplicator, deduplicate_papers
from .scoring import RelevanceScorer, calculate_keyword_bonus, source_multiplier
from .validation import PaperValidator, build_source_text, match_title, validate_papers

__all__ = [
    "DuplicateGroup",
    "PaperDeduplicator",
    "PaperValidator",
    "RelevanceScorer",
    "batch_articles",
    "build_source_text",
    "calculate_keyword_bonus",
    "deduplicate_papers",
    "match_title",
    "source_multiplier",
    "validate_papers",
]
