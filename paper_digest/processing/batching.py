"""
Token-budgeted batching of extracted articles for the scoring oracle.

Articles from the same message stay in one batch whenever the whole group
fits; groups larger than a batch are split greedily. No article is dropped
or duplicated, and no empty batch is emitted.
"""

from dataclasses import dataclass

from ..logging import get_logger
from ..records import ExtractedArticle

logger = get_logger(__name__)

DEFAULT_MAX_TOKENS = 8000
DEFAULT_MAX_ITEMS = 50


@dataclass
class BatchLimits:
    max_tokens: int = DEFAULT_MAX_TOKENS
    max_items: int = DEFAULT_MAX_ITEMS

    def __post_init__(self) -> None:
        if self.max_tokens < 1 or self.max_items < 1:
            raise ValueError("Batch limits must be at least 1")


def _tokens(articles: list[ExtractedArticle]) -> int:
    return sum(article.estimated_tokens for article in articles)


def group_by_message(articles: list[ExtractedArticle]) -> list[list[ExtractedArticle]]:
    """Group articles by source message, in order of first appearance."""
    groups: dict[str, list[ExtractedArticle]] = {}
    for article in articles:
        groups.setdefault(article.message_id, []).append(article)
    return list(groups.values())


def split_group(group: list[ExtractedArticle], limits: BatchLimits) -> list[list[ExtractedArticle]]:
    """Greedily split one message's articles into batches within ``limits``.

    An article that alone exceeds the token budget still gets its own batch.
    """
    batches: list[list[ExtractedArticle]] = []
    current: list[ExtractedArticle] = []
    current_tokens = 0

    for article in group:
        if current_tokens + article.estimated_tokens <= limits.max_tokens and len(current) < limits.max_items:
            current.append(article)
            current_tokens += article.estimated_tokens
        else:
            if current:
                batches.append(current)
            current = [article]
            current_tokens = article.estimated_tokens

    if current:
        batches.append(current)
    return batches


def batch_articles(
    articles: list[ExtractedArticle],
    max_tokens: int = DEFAULT_MAX_TOKENS,
    max_items: int = DEFAULT_MAX_ITEMS,
) -> list[list[ExtractedArticle]]:
    """Partition articles into ordered batches respecting both caps."""
    limits = BatchLimits(max_tokens=max_tokens, max_items=max_items)
    batches: list[list[ExtractedArticle]] = []
    current: list[ExtractedArticle] = []
    current_tokens = 0

    for group in group_by_message(articles):
        group_tokens = _tokens(group)
        oversized = group_tokens > limits.max_tokens or len(group) > limits.max_items

        if current_tokens + group_tokens <= limits.max_tokens and len(current) + len(group) <= limits.max_items:
            current.extend(group)
            current_tokens += group_tokens
            continue

        if current:
            batches.append(current)

        if oversized:
            pieces = split_group(group, limits)
            batches.extend(pieces[:-1])
            current = pieces[-1]
        else:
            current = list(group)
        current_tokens = _tokens(current)

    if current:
        batches.append(current)

    logger.debug(
        "articles_batched",
        articles=len(articles),
        batches=len(batches),
        max_tokens=limits.max_tokens,
        max_items=limits.max_items,
    )
    return batches
