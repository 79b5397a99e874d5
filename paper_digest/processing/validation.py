"""
Traceability check of scored papers against the original message text.

A paper survives only if its title can be found in the alert messages it
supposedly came from. Matching is tried from strict to loose:

1. exact containment after text normalization
2. containment after stripping every non-alphanumeric character
3. at least 70% of significant title words present and clustered
4. the first four significant words present as a phrase

Anything else is treated as fabricated and removed.
"""

from collections.abc import Iterable

import structlog

from ..logging import get_logger
from ..records import (
    MatchStrength,
    RawMessage,
    ScoredPaper,
    ValidationReport,
    ValidationResult,
    ValidationVerdict,
)
from .text_utils import normalize_text, significant_words, ultra_normalize

logger = get_logger(__name__)

MIN_TITLE_LENGTH = 10
WORD_MATCH_RATIO = 0.7
MAX_WORD_SPREAD = 500
PREFIX_WORDS = 4

VERDICT_THRESHOLDS = (
    (95.0, ValidationVerdict.EXCELLENT),
    (85.0, ValidationVerdict.GOOD),
    (70.0, ValidationVerdict.WARNING),
)


def build_source_text(messages: Iterable[RawMessage]) -> str:
    """Concatenate the subject and body of every message."""
    return "\n\n".join(f"{message.subject}\n{message.body}" for message in messages)


def verdict_for(rate: float) -> ValidationVerdict:
    for threshold, verdict in VERDICT_THRESHOLDS:
        if rate >= threshold:
            return verdict
    return ValidationVerdict.CRITICAL


class SourceText:
    """Normalized views of the session's source text, computed once."""

    def __init__(self, raw: str):
        self.normalized = normalize_text(raw)
        self.ultra = ultra_normalize(self.normalized)


def match_title(title: str, source: SourceText) -> tuple[MatchStrength, str]:
    """Return the strongest match strength for ``title`` plus evidence."""
    if not title or len(title) < MIN_TITLE_LENGTH:
        return MatchStrength.NONE, "Title too short or invalid"

    normalized_title = normalize_text(title)
    if normalized_title and normalized_title in source.normalized:
        return MatchStrength.EXACT, ""

    ultra_title = ultra_normalize(normalized_title)
    if ultra_title and ultra_title in source.ultra:
        return MatchStrength.NORMALIZED, ""

    words = significant_words(title)

    if len(words) >= 3:
        matched = [word for word in words if word in source.ultra]
        if len(matched) / len(words) >= WORD_MATCH_RATIO:
            positions = [source.ultra.find(word) for word in matched]
            if len(positions) >= 2 and max(positions) - min(positions) < MAX_WORD_SPREAD:
                return (
                    MatchStrength.PARTIAL,
                    f"Matched {len(matched)}/{len(words)} words: {', '.join(matched[:5])}",
                )

    if len(words) >= PREFIX_WORDS:
        prefix = ' '.join(words[:PREFIX_WORDS])
        if prefix in source.ultra:
            return MatchStrength.PARTIAL, f'Matched first {PREFIX_WORDS} significant words: "{prefix}"'

    return MatchStrength.NONE, f"Significant words: {', '.join(words[:5])}"


class PaperValidator:
    """Validates scored papers against the raw messages of one session."""

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None):
        self.logger = logger if logger is not None else get_logger(__name__)

    def validate(self, papers: list[ScoredPaper], source_text: str) -> ValidationReport:
        source = SourceText(source_text)
        results = []
        for paper in papers:
            strength, evidence = match_title(paper.title, source)
            results.append(ValidationResult(paper=paper, match_strength=strength, evidence=evidence))

        validated = sum(1 for result in results if result.found)
        rate = (validated / len(results) * 100) if results else 100.0
        report = ValidationReport(results=results, validation_rate=rate, verdict=verdict_for(rate))

        self.logger.info(
            "validation_complete",
            total=report.total,
            validated=report.validated,
            removed=report.removed,
            validation_rate=round(rate, 1),
            verdict=report.verdict.value,
            match_types=report.counts_by_strength(),
        )
        return report

    def refine(self, report: ValidationReport) -> tuple[list[ScoredPaper], list[ScoredPaper]]:
        """Split a report into kept papers (best score first) and removed papers."""
        kept = [result.paper for result in report.results if result.found]
        removed = []
        for result in report.results:
            if not result.found:
                removed.append(result.paper)
                self.logger.warning(
                    "paper_removed_not_in_source",
                    title=result.paper.title[:80],
                    source=result.paper.source_name,
                    reason=result.evidence,
                )
        kept.sort(key=lambda paper: paper.relevance_score, reverse=True)
        return kept, removed


def validate_papers(papers: list[ScoredPaper], messages: list[RawMessage]) -> ValidationReport:
    """Validate papers against the messages they were extracted from."""
    return PaperValidator().validate(papers, build_source_text(messages))
