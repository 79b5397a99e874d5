"""
Digest summary and literature review generation.

The summary is assembled deterministically from the validated papers; the
literature review is an optional LLM pass over the same papers. Review
failures never fail the run: a plain listing is used instead.
"""

from collections import Counter
from datetime import date

import structlog

from .errors import OracleError
from .logging import get_logger, log_error
from .models.llm_client import LLMClient
from .records import DigestSummary, ScoredPaper

logger = get_logger(__name__)

TOP_KEYWORDS = 10
TREND_COUNT = 5
RECOMMENDATION_COUNT = 5
REVIEW_SNIPPET_LENGTH = 150
REVIEW_AUTHORS = 3


def top_keywords(papers: list[ScoredPaper], limit: int = TOP_KEYWORDS) -> list[str]:
    """Matched keywords ordered by how many papers matched them."""
    counts: Counter[str] = Counter()
    for paper in papers:
        for keyword in paper.matched_keywords:
            normalized = keyword.lower().strip()
            if normalized:
                counts[normalized] += 1
    # Counter.most_common keeps first-seen order among ties
    return [keyword for keyword, _ in counts.most_common(limit)]


def categorize_by_keyword(papers: list[ScoredPaper]) -> list[dict[str, object]]:
    categories: dict[str, list[str]] = {}
    for paper in papers:
        for keyword in paper.matched_keywords:
            categories.setdefault(keyword, []).append(paper.id)
    return [{"keyword": keyword, "paperIds": ids} for keyword, ids in categories.items()]


def build_summary(
    papers: list[ScoredPaper],
    removed: list[ScoredPaper] | None = None,
    keywords: list[str] | None = None,
    review: str = "",
    today: date | None = None,
) -> DigestSummary:
    """Digest-level summary for a ranked list of validated papers.

    Args:
        papers: Validated papers, best score first
        removed: Papers the validator discarded
        keywords: Interest keywords of the run, used when no paper matched any
        review: Literature review text, if one was generated
        today: Date stamped into the overview
    """
    today = today or date.today()
    trends = top_keywords(papers) or [k.lower().strip() for k in (keywords or []) if k.strip()]

    overview = (
        f"Digest generated from {len(papers)} validated papers on {today.isoformat()}."
    )
    if removed:
        overview += f" {len(removed)} papers were removed as untraceable to the source messages."
    if trends:
        overview += f" Top keywords: {', '.join(trends[:TREND_COUNT])}."

    return DigestSummary(
        overview=overview,
        key_trends=[f"Research on {keyword}" for keyword in trends[:TREND_COUNT]],
        top_recommendations=[paper.title for paper in papers[:RECOMMENDATION_COUNT]],
        categorized_papers=categorize_by_keyword(papers),
        academic_report=review,
    )


def format_references(papers: list[ScoredPaper]) -> str:
    lines = ["## References", ""]
    for i, paper in enumerate(papers, 1):
        authors = ", ".join(paper.authors) if paper.authors else "Unknown"
        date_part = f", {paper.publication_date}" if paper.publication_date else ""
        lines.append(f'[{i}] {authors}. "{paper.title}". {paper.source_name or "Unknown Source"}{date_part}.')
        lines.append("")
    return "\n".join(lines)


def _build_review_prompt(papers: list[ScoredPaper], keywords: list[str]) -> str:
    entries = []
    for i, paper in enumerate(papers, 1):
        authors = ", ".join(paper.authors[:REVIEW_AUTHORS])
        if len(paper.authors) > REVIEW_AUTHORS:
            authors += " et al."
        entries.append(f"[{i}] {paper.title} | {authors} | {paper.snippet[:REVIEW_SNIPPET_LENGTH]}")

    return f"""You are an academic researcher. Write a literature review based on these {len(papers)} papers.

Keywords: {', '.join(keywords)}

Requirements:
- Structure: Title, Introduction, 3-5 Thematic Sections, Conclusion
- Cite papers using [1], [2], etc.
- No References section needed

Papers:
{chr(10).join(entries)}

Write the review now:"""


def fallback_review(papers: list[ScoredPaper], keywords: list[str]) -> str:
    """Plain listing used when the review model is unavailable."""
    lines = ["# Literature Review", ""]
    if keywords:
        lines.extend([f"Keywords: {', '.join(keywords)}", ""])
    lines.append(f"{len(papers)} papers were selected for this digest:")
    lines.append("")
    lines.extend(f"[{i}] {paper.title}" for i, paper in enumerate(papers, 1))
    return "\n".join(lines)


async def generate_literature_review(
    papers: list[ScoredPaper],
    keywords: list[str],
    llm_client: LLMClient,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> str:
    """Review text followed by the reference list."""
    log = logger if logger is not None else get_logger(__name__)
    if not papers:
        return ""

    try:
        response = await llm_client.chat(_build_review_prompt(papers, keywords), temperature=0.3)
        review = response.content.strip()
    except OracleError as e:
        log.warning(**log_error(e, "literature_review", papers=len(papers)))
        review = fallback_review(papers, keywords)

    return f"{review}\n\n---\n\n{format_references(papers)}"
