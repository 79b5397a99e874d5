"""
Title-based deduplication of scored papers.

Papers are grouped by normalized title; the highest-scoring entry of each
group survives (ties keep the first one seen) and output order follows the
first appearance of each title.
"""

from dataclasses import dataclass, field

import structlog

from ..logging import get_logger
from ..records import ScoredPaper
from .text_utils import normalize_title

logger = get_logger(__name__)

MIN_TITLE_LENGTH = 10


@dataclass
class DuplicateGroup:
    """Group of papers sharing one normalized title."""
    key: str
    canonical_paper: ScoredPaper
    duplicates: list[ScoredPaper] = field(default_factory=list)


@dataclass
class DeduplicationResult:
    papers: list[ScoredPaper]
    groups: list[DuplicateGroup]
    dropped_short: int = 0

    @property
    def removed(self) -> int:
        return sum(len(group.duplicates) for group in self.groups)


class PaperDeduplicator:
    """Keeps one paper per normalized title."""

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None):
        self.logger = logger if logger is not None else get_logger(__name__)

    def deduplicate(self, papers: list[ScoredPaper]) -> DeduplicationResult:
        best: dict[str, ScoredPaper] = {}
        members: dict[str, list[ScoredPaper]] = {}
        dropped_short = 0

        for paper in papers:
            key = normalize_title(paper.title)
            if len(key) < MIN_TITLE_LENGTH:
                dropped_short += 1
                continue

            members.setdefault(key, []).append(paper)
            current = best.get(key)
            if current is None or paper.relevance_score > current.relevance_score:
                best[key] = paper

        groups = []
        for key, group in members.items():
            if len(group) > 1:
                canonical = best[key]
                groups.append(DuplicateGroup(
                    key=key,
                    canonical_paper=canonical,
                    duplicates=[p for p in group if p is not canonical],
                ))

        result = DeduplicationResult(
            papers=list(best.values()),
            groups=groups,
            dropped_short=dropped_short,
        )
        self.logger.info(
            "deduplication_complete",
            input_count=len(papers),
            output_count=len(result.papers),
            duplicate_groups=len(groups),
            dropped_short=dropped_short,
        )
        return result


def deduplicate_papers(papers: list[ScoredPaper]) -> list[ScoredPaper]:
    """Deduplicate papers by normalized title, keeping the best score."""
    return PaperDeduplicator().deduplicate(papers).papers
