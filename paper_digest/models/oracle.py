"""
Scoring oracle boundary.

The oracle assigns a semantic base score to each article of a batch. Its
output is untrusted: titles may carry leaked reasoning, fields may be
concatenated into the title, and whole entries may be invented. Everything
returned here is matched back to the batch before it is used.
"""

import math
import re
from collections.abc import Collection, Sequence
from typing import Any, Protocol

import orjson

from ..errors import MalformedOracleOutput
from ..logging import get_logger
from ..records import ExtractedArticle, OracleJudgment, ScoredBatch
from ..processing.text_utils import normalize_title
from .llm_client import LLMClient

logger = get_logger(__name__)

MIN_CLEANED_TITLE = 10
PREFIX_MATCH_LENGTH = 50

# Reasoning fragments the model sometimes appends to a title
COT_PATTERNS = [
    re.compile(r'Reference to arterial/vascular.*', re.IGNORECASE),
    re.compile(r'Score is moderate.*', re.IGNORECASE),
    re.compile(r'Score:?\s*\d+.*', re.IGNORECASE),
    re.compile(r'\(Weak connection\).*', re.IGNORECASE),
    re.compile(r'\(Tangentially related\).*', re.IGNORECASE),
    re.compile(r'\(Related terms\).*', re.IGNORECASE),
    re.compile(r'Wait,\s+.*', re.IGNORECASE),
    re.compile(r"Let's use.*", re.IGNORECASE),
    re.compile(r"Let's score.*", re.IGNORECASE),
    re.compile(r'Actually,\s+.*', re.IGNORECASE),
    re.compile(r'Adjusting to.*', re.IGNORECASE),
    re.compile(r'\bRelevant as\b.*', re.IGNORECASE),
    re.compile(r'\bAdjusted score\b.*', re.IGNORECASE),
    re.compile(r'\bFinal selection\b.*', re.IGNORECASE),
]

FIELD_MARKERS = ('"authors":', '"source":', '"relevanceScore":')
TITLE_BEFORE_FIELD = [
    re.compile(r'^(.*?)"\s*,\s*"authors":'),
    re.compile(r'^(.*?)"\s*,\s*"source":'),
    re.compile(r'^(.*?)"\s*,\s*"relevanceScore":'),
]
AUTHORS_FIELD = re.compile(r'"authors":\s*"([^"]+)"')
SOURCE_FIELD = re.compile(r'"source":\s*"([^"]+)"')
SCORE_FIELD = re.compile(r'"relevanceScore":\s*(\d+)')

PROMPT_TEMPLATE = """You are an academic paper relevance scorer. Score these pre-extracted papers.

**CRITICAL RULES:**
1. Output ONLY valid JSON - NO explanations, NO reasoning, NO chain-of-thought
2. Copy TITLE, AUTHORS, and SOURCE fields EXACTLY as provided - do not modify them
3. Only the relevanceScore field should be your judgment (0-100)

**SCORING GUIDE:**
- 80-100: Directly addresses keywords
- 60-79: Related terms/concepts
- 40-59: Tangentially related
- 20-39: Weak connection
- 0-19: Not relevant

**OUTPUT FORMAT:**
{{"papers": [{{"title": "...", "authors": "...", "source": "...", "relevanceScore": 0}}]}}

**Keywords to evaluate against:** {keywords}

**EXTRACTED ARTICLES:**
{articles}"""


class ScoringOracle(Protocol):
    """Anything that can assign base scores to a batch of articles."""

    async def score(self, batch: Sequence[ExtractedArticle], keywords: Sequence[str]) -> ScoredBatch:
        ...


def format_article_block(index: int, article: ExtractedArticle) -> str:
    block = f"[{index}] TITLE: {article.title}\n"
    block += f"SOURCE: {article.source_name}\n"
    if article.authors:
        block += f"AUTHORS: {article.authors}\n"
    if article.abstract:
        block += f"ABSTRACT: {article.abstract}\n"
    return block


def build_prompt(batch: Sequence[ExtractedArticle], keywords: Sequence[str]) -> str:
    """Scoring prompt listing every article of the batch."""
    articles = "\n".join(format_article_block(i, article) for i, article in enumerate(batch, 1))
    return PROMPT_TEMPLATE.format(keywords=", ".join(keywords), articles=articles)


def clean_title(title: str) -> str:
    """Strip leaked chain-of-thought text from an oracle title.

    A pattern is only applied when what remains is still a plausible title.
    """
    for pattern in COT_PATTERNS:
        if pattern.search(title):
            cleaned = pattern.sub('', title).strip()
            if MIN_CLEANED_TITLE < len(cleaned) < len(title):
                logger.warning(
                    "oracle_title_cleaned",
                    original=title[:60],
                    cleaned=cleaned[:60],
                )
                title = cleaned
    return title


def recover_malformed(entry: dict[str, Any]) -> dict[str, Any]:
    """Split fields the oracle concatenated into the title string."""
    title = entry.get('title')
    if not isinstance(title, str) or not any(marker in title for marker in FIELD_MARKERS):
        return entry

    logger.warning("oracle_entry_malformed", title=title[:100])

    actual_title = title
    for pattern in TITLE_BEFORE_FIELD:
        match = pattern.search(title)
        if match:
            actual_title = match.group(1).strip()
            break

    recovered = dict(entry)
    recovered['title'] = actual_title

    authors = AUTHORS_FIELD.search(title)
    if authors:
        recovered['authors'] = authors.group(1)
    source = SOURCE_FIELD.search(title)
    if source:
        recovered['source'] = source.group(1)
    score = SCORE_FIELD.search(title)
    if score:
        recovered['relevanceScore'] = int(score.group(1))

    return recovered


def _base_score(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, int | float):
        score = float(value)
    elif isinstance(value, str):
        try:
            score = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    # "NaN" and "inf" parse as floats but are not scores
    return score if math.isfinite(score) else 0.0


def parse_oracle_response(content: str) -> ScoredBatch:
    """Parse the oracle's JSON reply into judgments.

    Raises:
        MalformedOracleOutput: reply is not JSON or has no ``papers`` array
    """
    text = content.strip()
    # Tolerate a fenced code block around the JSON
    fenced = re.match(r'^```(?:json)?\s*(.*?)\s*```$', text, re.DOTALL)
    if fenced:
        text = fenced.group(1)

    try:
        parsed = orjson.loads(text)
    except orjson.JSONDecodeError as e:
        raise MalformedOracleOutput(f"invalid JSON: {e}", content) from e

    if not isinstance(parsed, dict) or not isinstance(parsed.get('papers'), list):
        raise MalformedOracleOutput("missing papers array", content)

    judgments = []
    for entry in parsed['papers']:
        if not isinstance(entry, dict):
            continue
        entry = recover_malformed(entry)
        title = entry.get('title')
        if not isinstance(title, str) or not title.strip():
            logger.warning("oracle_entry_without_title")
            continue
        authors = entry.get('authors')
        source = entry.get('source')
        judgments.append(OracleJudgment(
            title=clean_title(title.strip()),
            base_score=_base_score(entry.get('relevanceScore')),
            authors=authors if isinstance(authors, str) else None,
            source=source if isinstance(source, str) else None,
        ))

    return ScoredBatch(judgments=judgments)


def _first_match(batch: Sequence[ExtractedArticle], predicate, used: Collection[int]) -> int | None:
    fallback = None
    for index, article in enumerate(batch):
        if predicate(article):
            if index not in used:
                return index
            if fallback is None:
                fallback = index
    return fallback


def find_match(
    title: str,
    batch: Sequence[ExtractedArticle],
    used: Collection[int] = (),
) -> int | None:
    """Index of the batch article an oracle title refers to.

    Tried in order: exact (case-insensitive), punctuation-free, containment
    either way, then equal 50-character prefixes. Within each step articles
    whose index is not in ``used`` are preferred. Containment needs at least
    ``MIN_CLEANED_TITLE`` characters on the contained side.
    """
    lower = title.lower().strip()
    normalized = normalize_title(title)

    def contains(article: ExtractedArticle) -> bool:
        article_lower = article.title.lower().strip()
        article_norm = normalize_title(article.title)
        for needle, haystack in (
            (lower, article_lower),
            (article_lower, lower),
            (normalized, article_norm),
            (article_norm, normalized),
        ):
            if len(needle) >= MIN_CLEANED_TITLE and needle in haystack:
                return True
        return False

    steps = (
        lambda article: article.title.lower().strip() == lower,
        lambda article: normalize_title(article.title) == normalized,
        contains,
        lambda article: article.title.lower().strip()[:PREFIX_MATCH_LENGTH] == lower[:PREFIX_MATCH_LENGTH],
    )
    for predicate in steps:
        index = _first_match(batch, predicate, used)
        if index is not None:
            return index
    return None


def match_article(title: str, batch: Sequence[ExtractedArticle]) -> ExtractedArticle | None:
    """Find the batch article an oracle title refers to."""
    index = find_match(title, batch)
    return batch[index] if index is not None else None


def resolve_judgments(
    scored: ScoredBatch,
    batch: Sequence[ExtractedArticle],
) -> tuple[list[tuple[OracleJudgment, ExtractedArticle]], int]:
    """Pair judgments with their batch articles.

    A judgment whose title agrees with the article at the same position is
    paired with it directly, so same-titled articles from different messages
    each keep their own judgment.

    Returns the pairs plus the number of judgments dropped as hallucinated.
    """
    pairs = []
    dropped = 0
    used: set[int] = set()
    for position, judgment in enumerate(scored.judgments):
        if (
            position < len(batch)
            and position not in used
            and normalize_title(batch[position].title) == normalize_title(judgment.title)
        ):
            index = position
        else:
            index = find_match(judgment.title, batch, used)
        if index is None:
            dropped += 1
            logger.warning("oracle_hallucinated_title", title=judgment.title[:80])
            continue
        used.add(index)
        pairs.append((judgment, batch[index]))
    return pairs, dropped


class LLMScoringOracle:
    """Oracle backed by the ``scorer`` LLM route."""

    def __init__(self, llm_client: LLMClient):
        self.llm_client = llm_client

    async def score(self, batch: Sequence[ExtractedArticle], keywords: Sequence[str]) -> ScoredBatch:
        if not batch:
            return ScoredBatch()

        prompt = build_prompt(batch, keywords)
        logger.info(
            "oracle_request",
            articles=len(batch),
            estimated_tokens=sum(article.estimated_tokens for article in batch),
        )
        response = await self.llm_client.chat(prompt, json_mode=True)
        scored = parse_oracle_response(response.content)
        logger.info("oracle_response", model=response.model, judgments=len(scored.judgments))
        return scored


class MockScoringOracle:
    """Deterministic offline oracle: scores by keyword hits in title and abstract."""

    NO_HIT_SCORE = 15.0
    HIT_BASE = 30.0
    PER_HIT = 25.0

    async def score(self, batch: Sequence[ExtractedArticle], keywords: Sequence[str]) -> ScoredBatch:
        judgments = []
        for article in batch:
            text = f"{article.title} {article.abstract or ''}".lower()
            hits = sum(1 for keyword in keywords if keyword.strip() and keyword.strip().lower() in text)
            base = min(100.0, self.HIT_BASE + self.PER_HIT * hits) if hits else self.NO_HIT_SCORE
            judgments.append(OracleJudgment(
                title=article.title,
                base_score=base,
                authors=article.authors,
                source=article.source_name,
            ))
        return ScoredBatch(judgments=judgments)


def create_oracle(mock: bool = False, llm_client: LLMClient | None = None) -> ScoringOracle:
    """Factory for the configured oracle."""
    if mock:
        return MockScoringOracle()
    if llm_client is None:
        from .llm_client import create_llm_client
        llm_client = create_llm_client("scorer")
    return LLMScoringOracle(llm_client)
