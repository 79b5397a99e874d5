"""Record types shared across the digest pipeline."""

import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class RawMessage:
    """Alert message as handed over by the ingestion collaborator."""
    id: str
    sender: str
    subject: str
    body: str
    received_at: datetime | None = None
    body_format: str = "html"  # 'html' or 'text'

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RawMessage":
        """Build a message from a synced-mail JSON record."""
        body = data.get("body") or data.get("bodyContent") or ""
        received = data.get("received_at") or data.get("date")
        received_at = None
        if isinstance(received, datetime):
            received_at = received
        elif isinstance(received, str) and received:
            from .utils import parse_date_string
            received_at = parse_date_string(received)

        body_format = data.get("body_format") or (
            "html" if re.search(r"<[a-zA-Z][^>]*>", body) else "text"
        )
        return cls(
            id=str(data.get("id", "")),
            sender=data.get("from") or data.get("sender") or "",
            subject=data.get("subject") or "",
            body=body,
            received_at=received_at,
            body_format=body_format,
        )


def estimate_tokens(text: str) -> int:
    """Rough token estimate: ~4 characters per token."""
    return math.ceil(len(text) / 4)


@dataclass
class ExtractedArticle:
    """Candidate article pulled out of one alert message."""
    title: str
    source_name: str
    origin_fragment: str
    authors: str | None = None
    abstract: str | None = None
    doi: str | None = None
    message_id: str = ""
    subject: str = ""
    estimated_tokens: int = 0
    is_fallback: bool = False

    def __post_init__(self) -> None:
        if not self.estimated_tokens:
            from .processing.text_utils import detag
            self.estimated_tokens = estimate_tokens(
                detag(self.origin_fragment + self.subject)
            )


@dataclass
class ScoredPaper:
    """Accepted article after scoring; the unit persisted downstream."""
    id: str
    title: str
    source_name: str
    relevance_score: int
    authors: list[str] = field(default_factory=list)
    snippet: str = ""
    link: str = ""
    publication_date: str = ""
    matched_keywords: list[str] = field(default_factory=list)
    matched_penalties: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "authors": list(self.authors),
            "snippet": self.snippet,
            "link": self.link,
            "source": self.source_name,
            "date": self.publication_date,
            "relevanceScore": self.relevance_score,
            "matchedKeywords": list(self.matched_keywords),
            "matchedPenalties": list(self.matched_penalties),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScoredPaper":
        authors = data.get("authors") or []
        if isinstance(authors, str):
            authors = [a.strip() for a in authors.split(",") if a.strip()]
        return cls(
            id=str(data.get("id", "")),
            title=data.get("title", ""),
            source_name=data.get("source") or data.get("source_name") or "Unknown Source",
            relevance_score=int(data.get("relevanceScore", data.get("relevance_score", 0)) or 0),
            authors=list(authors),
            snippet=data.get("snippet", "") or "",
            link=data.get("link", "") or "",
            publication_date=data.get("date") or data.get("publication_date") or "",
            matched_keywords=list(data.get("matchedKeywords", data.get("matched_keywords", [])) or []),
            matched_penalties=list(data.get("matchedPenalties", data.get("matched_penalties", [])) or []),
        )


class MatchStrength(Enum):
    """How strongly a title was confirmed in the source text."""
    EXACT = "exact"
    NORMALIZED = "normalized"
    PARTIAL = "partial"
    NONE = "none"


class ValidationVerdict(Enum):
    """Interpretation of the aggregate validation rate."""
    EXCELLENT = "excellent"  # >= 95%
    GOOD = "good"            # >= 85%
    WARNING = "warning"      # >= 70%
    CRITICAL = "critical"    # < 70%, run is unreliable


@dataclass
class ValidationResult:
    """Per-paper validation outcome."""
    paper: ScoredPaper
    match_strength: MatchStrength
    evidence: str = ""

    @property
    def found(self) -> bool:
        return self.match_strength is not MatchStrength.NONE


@dataclass
class ValidationReport:
    """Aggregate of all validation results for one session."""
    results: list[ValidationResult]
    validation_rate: float
    verdict: ValidationVerdict

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def validated(self) -> int:
        return sum(1 for r in self.results if r.found)

    @property
    def removed(self) -> int:
        return self.total - self.validated

    def counts_by_strength(self) -> dict[str, int]:
        counts = {strength.value: 0 for strength in MatchStrength}
        for result in self.results:
            counts[result.match_strength.value] += 1
        return counts


@dataclass
class OracleJudgment:
    """One article judgment as returned by the scoring oracle (untrusted)."""
    title: str
    base_score: float
    authors: str | None = None
    source: str | None = None


@dataclass
class ScoredBatch:
    """Parsed oracle response for one batch."""
    judgments: list[OracleJudgment] = field(default_factory=list)


@dataclass
class DigestSummary:
    """Digest-level summary attached to the persisted record."""
    overview: str
    key_trends: list[str] = field(default_factory=list)
    top_recommendations: list[str] = field(default_factory=list)
    categorized_papers: list[dict[str, Any]] = field(default_factory=list)
    academic_report: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "overview": self.overview,
            "keyTrends": self.key_trends,
            "topRecommendations": self.top_recommendations,
            "categorizedPapers": self.categorized_papers,
            "academicReport": self.academic_report,
        }


@dataclass
class PipelineResult:
    """Final ranked, validated papers plus summary and validation metadata."""
    papers: list[ScoredPaper]
    summary: DigestSummary
    validation: ValidationReport
    removed_papers: list[ScoredPaper] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Record handed to the persistence collaborator."""
        return {
            "papers": [p.to_dict() for p in self.papers],
            "summary": self.summary.to_dict(),
            "validation": validation_metadata(self.validation, self.papers, self.removed_papers),
        }


def validation_metadata(
    report: ValidationReport,
    kept: list[ScoredPaper],
    removed: list[ScoredPaper],
) -> dict[str, Any]:
    """Validation block of the persisted analysis record."""
    return {
        "originalCount": report.total,
        "refinedCount": len(kept),
        "removedCount": len(removed),
        "validationRate": report.validation_rate,
        "verdict": report.verdict.value,
        "matchTypes": report.counts_by_strength(),
        "removedPapers": [
            {"title": p.title, "authors": p.authors, "source": p.source_name}
            for p in removed
        ],
    }
