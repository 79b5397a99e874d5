"""
Deterministic relevance scoring for extracted papers.

The oracle's base score is adjusted in three steps:
- keyword bonuses and penalty-keyword deductions on title and snippet
- an optional flat deduction when no interest keyword matched
- a venue-prestige multiplier looked up from the source name

Everything here is pure: no I/O, no randomness, identical inputs give
identical outputs.
"""

import math
import re
from dataclasses import dataclass, field

TITLE_EXACT_BONUS = 20
TITLE_PARTIAL_BONUS = 10
SNIPPET_EXACT_BONUS = 10
SNIPPET_PARTIAL_BONUS = 5
TITLE_PENALTY = -25
SNIPPET_PENALTY = -15
NO_MATCH_PENALTY = -20
PAIR_DISTANCE = 50

UNKNOWN_SOURCE = 'Unknown Source'

SOURCE_MULTIPLIERS: dict[str, float] = {
    # Flagship journals
    'Nature': 1.5,
    'Cell': 1.5,
    'Science': 1.5,

    # Top-tier journals and flagship sister titles
    'The Lancet': 1.3,
    'NEJM': 1.3,
    'Nature Communications': 1.3,
    'Nature Medicine': 1.3,
    'Nature Genetics': 1.3,
    'Immunity': 1.3,
    'Neuron': 1.3,
    'Developmental Cell': 1.3,
    'Molecular Cell': 1.3,
    'Cancer Cell': 1.3,
    'Circulation': 1.3,
    'Circulation Research': 1.3,

    'Communications Biology': 1.0,
    'Advanced Science': 1.0,

    # Cell Press subsidiaries, specialty and AHA subsidiary journals
    'Cell Press': 1.2,
    'Cell Systems': 1.2,
    'Cell Reports': 1.2,
    'Cell Reports Methods': 1.2,
    'Cell Stem Cell': 1.2,
    'Cell Metabolism': 1.2,
    'Cell Genomics': 1.2,
    'Cell Chemical Biology': 1.2,
    'Cell Host & Microbe': 1.2,
    'Structure': 1.2,
    'iScience': 1.2,
    'STAR Protocols': 1.2,
    'PNAS': 1.2,
    'JAMA': 1.2,
    'Hypertension': 1.2,
    'Stroke': 1.2,
    'Arteriosclerosis, Thrombosis, and Vascular Biology': 1.2,
    'AHA Journals': 1.2,

    # Publishers
    'Elsevier': 1.1,
    'Springer': 1.1,

    'Scientific Reports': 0.75,
    'Google Scholar': 0.7,

    # Preprints
    'bioRxiv': 0.6,
    'medRxiv': 0.6,
    'bioRxiv/medRxiv': 0.6,

    # Low-impact open access
    'Frontiers': 0.5,
    'MDPI': 0.5,
    'Hindawi': 0.45,
    'iCell': 0.4,

    UNKNOWN_SOURCE: 0.2,
}

# Fuzzy fallback, evaluated top to bottom on the lowercased source name.
# Each rule is (kind, needles, multiplier) with kind one of
# 'equals', 'startswith', 'contains'.
FUZZY_RULES: tuple[tuple[str, tuple[str, ...], float], ...] = (
    ('equals', ('nature', 'cell', 'science'), 1.5),
    ('contains', ('lancet', 'nejm', 'new england journal of medicine'), 1.3),
    ('startswith', ('nature ',), 1.3),
    ('contains', ('nature communications', 'nature medicine', 'nature genetics'), 1.3),
    ('contains', ('communications biology', 'advanced science'), 1.0),
    ('contains', ('immunity', 'neuron', 'developmental cell', 'molecular cell', 'cancer cell'), 1.3),
    ('contains', (
        'cell stem cell', 'cell reports', 'cell metabolism', 'cell systems',
        'cell genomics', 'cell chemical biology', 'cell host', 'iscience',
        'star protocols', 'structure',
    ), 1.2),
    ('startswith', ('science ',), 1.3),
    ('contains', ('science translational', 'science immunology', 'science signaling'), 1.3),
    ('contains', ('pnas', 'jama'), 1.2),
    ('equals', ('circulation', 'circulation research'), 1.3),
    ('contains', ('circulation research',), 1.3),
    ('contains', ('hypertension', 'stroke', 'arteriosclerosis', 'atvb'), 1.2),
    ('contains', ('circulation',), 1.3),
    ('contains', ('aha', 'heart'), 1.2),
    ('contains', ('biorxiv', 'medrxiv', 'arxiv'), 0.6),
    ('contains', ('google', 'scholar'), 0.7),
    ('contains', ('frontiers', 'mdpi'), 0.5),
    ('contains', ('hindawi',), 0.45),
    ('contains', ('icell',), 0.4),
    ('contains', ('scientific reports',), 0.75),
    ('contains', ('conference', 'proceedings', 'symposium'), 0.8),
)

DEFAULT_MULTIPLIER = 0.2

PREPRINT_MARKERS = ('biorxiv', 'medrxiv', 'arxiv')


@dataclass
class KeywordBonus:
    """Keyword adjustment for one title/snippet pair."""
    bonus: int = 0
    matched_keywords: list[str] = field(default_factory=list)
    matched_penalties: list[str] = field(default_factory=list)


@dataclass
class ScoreBreakdown:
    """Complete scoring breakdown for a paper."""
    final_score: int
    base_score: float
    keyword_bonus: int
    no_match_penalty: int
    raw_score: float
    multiplier: float
    matched_keywords: list[str]
    matched_penalties: list[str]


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives, like ``Math.round``."""
    return math.floor(value + 0.5)


def clamp(value: float, low: float = 0, high: float = 100) -> float:
    return max(low, min(high, value))


def source_multiplier(source: str) -> float:
    """Prestige multiplier for a venue name.

    Exact table entries win; otherwise the fuzzy rules are tried in order so
    that specific names ("Circulation Research") are resolved before the
    family names they contain ("Circulation").
    """
    if not source:
        return SOURCE_MULTIPLIERS[UNKNOWN_SOURCE]
    if source in SOURCE_MULTIPLIERS:
        return SOURCE_MULTIPLIERS[source]

    lowered = source.lower()
    for kind, needles, multiplier in FUZZY_RULES:
        if kind == 'equals' and lowered in needles:
            return multiplier
        if kind == 'startswith' and lowered.startswith(needles):
            return multiplier
        if kind == 'contains' and any(needle in lowered for needle in needles):
            return multiplier
    return DEFAULT_MULTIPLIER


def is_preprint_source(source: str) -> bool:
    lowered = (source or '').lower()
    return any(marker in lowered for marker in PREPRINT_MARKERS)


def _keyword_tokens(keyword: str) -> list[str]:
    return [word for word in re.split(r'[\s\-]+', keyword) if len(word) > 3]


def _words_near(text: str, first: str, second: str) -> bool:
    first_at = text.find(first)
    second_at = text.find(second)
    if first_at == -1 or second_at == -1:
        return False
    return abs(first_at - second_at) <= PAIR_DISTANCE


def _partial_match(text: str, tokens: list[str]) -> bool:
    """Token-level match: the single token, or a nearby pair of tokens."""
    if len(tokens) <= 1:
        return len(tokens) == 1 and tokens[0] in text

    if sum(1 for token in tokens if token in text) < 2:
        return False
    return any(
        _words_near(text, tokens[i], tokens[j])
        for i in range(len(tokens))
        for j in range(i + 1, len(tokens))
    )


def calculate_keyword_bonus(
    title: str,
    snippet: str,
    keywords: list[str],
    penalty_keywords: list[str] | None = None,
) -> KeywordBonus:
    """Deterministic keyword bonus for a paper.

    Bonus structure per interest keyword:
    - exact phrase in title: +20, else token match in title: +10
    - exact phrase in snippet: +10, else token match in snippet: +5

    Penalty keywords deduct 25 (title) and 15 (snippet) independently.
    """
    result = KeywordBonus()
    title_lower = (title or '').lower()
    snippet_lower = (snippet or '').lower()

    for keyword in keywords:
        keyword_lower = keyword.strip().lower()
        if not keyword_lower:
            continue
        tokens = _keyword_tokens(keyword_lower)
        matched = False

        if keyword_lower in title_lower:
            result.bonus += TITLE_EXACT_BONUS
            matched = True
        elif _partial_match(title_lower, tokens):
            result.bonus += TITLE_PARTIAL_BONUS
            matched = True

        if keyword_lower in snippet_lower:
            result.bonus += SNIPPET_EXACT_BONUS
            matched = True
        elif _partial_match(snippet_lower, tokens):
            result.bonus += SNIPPET_PARTIAL_BONUS
            matched = True

        if matched:
            result.matched_keywords.append(keyword)

    for penalty in penalty_keywords or []:
        penalty_lower = penalty.strip().lower()
        if not penalty_lower:
            continue
        hit = False
        if penalty_lower in title_lower:
            result.bonus += TITLE_PENALTY
            hit = True
        if penalty_lower in snippet_lower:
            result.bonus += SNIPPET_PENALTY
            hit = True
        if hit and penalty not in result.matched_penalties:
            result.matched_penalties.append(penalty)

    return result


class RelevanceScorer:
    """Combines the oracle base score with keyword and venue adjustments."""

    def __init__(
        self,
        keywords: list[str],
        penalty_keywords: list[str] | None = None,
        apply_no_match_penalty: bool = False,
    ):
        self.keywords = list(keywords)
        self.penalty_keywords = list(penalty_keywords or [])
        self.apply_no_match_penalty = apply_no_match_penalty

    def score(self, base_score: float, title: str, snippet: str, source: str) -> ScoreBreakdown:
        """Final score: clamp(base + bonus [+ no-match]) then multiplier, rounded and capped."""
        base = float(base_score or 0)
        base = clamp(base) if math.isfinite(base) else 0.0
        keyword_bonus = calculate_keyword_bonus(title, snippet, self.keywords, self.penalty_keywords)

        no_match_penalty = 0
        if (
            self.apply_no_match_penalty
            and not keyword_bonus.matched_keywords
            and not is_preprint_source(source)
        ):
            no_match_penalty = NO_MATCH_PENALTY

        raw_score = clamp(base + keyword_bonus.bonus + no_match_penalty)
        multiplier = source_multiplier(source)
        final_score = min(100, round_half_up(raw_score * multiplier))

        return ScoreBreakdown(
            final_score=int(clamp(final_score)),
            base_score=base,
            keyword_bonus=keyword_bonus.bonus,
            no_match_penalty=no_match_penalty,
            raw_score=raw_score,
            multiplier=multiplier,
            matched_keywords=keyword_bonus.matched_keywords,
            matched_penalties=keyword_bonus.matched_penalties,
        )
