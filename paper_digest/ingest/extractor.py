"""Article extraction: strategy dispatch and whole-message fallback."""

from dataclasses import replace

import structlog

from ..errors import ExtractionFailure
from ..logging import PipelineMetrics, get_logger, log_error
from ..records import ExtractedArticle, RawMessage
from .classifier import KnownSource, Source, SourceKind, classify_source
from .strategies import (
    Strategy,
    extract_aha,
    extract_cell_press,
    extract_nature,
    extract_nature_default,
    extract_preprint,
    extract_scholar,
)

logger = get_logger(__name__)

STRATEGIES: dict[SourceKind, Strategy] = {
    SourceKind.SCHOLAR: extract_scholar,
    SourceKind.CELL_PRESS: extract_cell_press,
    SourceKind.NATURE: extract_nature,
    SourceKind.PREPRINT: extract_preprint,
    SourceKind.AHA: extract_aha,
}

# Order used when the sender is not recognised.
UNKNOWN_SOURCE_ORDER = (
    SourceKind.SCHOLAR,
    SourceKind.NATURE,
    SourceKind.CELL_PRESS,
    SourceKind.PREPRINT,
    SourceKind.AHA,
)

# Unrecognised senders have no subject convention to take a sub-brand from.
UNKNOWN_SOURCE_OVERRIDES: dict[SourceKind, Strategy] = {
    SourceKind.NATURE: extract_nature_default,
}

FALLBACK_SOURCE_NAME = 'Unknown'


def strategy_for(source: Source) -> list[Strategy]:
    """Strategies to run for a classified source; every strategy when unknown."""
    if isinstance(source, KnownSource):
        return [STRATEGIES[source.kind]]
    return [UNKNOWN_SOURCE_OVERRIDES.get(kind, STRATEGIES[kind]) for kind in UNKNOWN_SOURCE_ORDER]


def fallback_article(message: RawMessage) -> ExtractedArticle:
    """Whole-message article used when no strategy recognised anything."""
    return ExtractedArticle(
        title=message.subject,
        source_name=FALLBACK_SOURCE_NAME,
        origin_fragment=message.body,
        message_id=message.id,
        subject=message.subject,
        is_fallback=True,
    )


class ArticleExtractor:
    """Turns raw alert messages into article candidates."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger | None = None,
        metrics: PipelineMetrics | None = None,
    ):
        self.logger = logger if logger is not None else get_logger(__name__)
        self.metrics = metrics or PipelineMetrics()

    def _run_strategy(self, strategy: Strategy, message: RawMessage) -> list[ExtractedArticle]:
        try:
            return strategy(message.body, message.subject)
        except Exception as e:
            failure = ExtractionFailure(message.id, strategy.__name__, e)
            self.metrics.increment("strategy_failures")
            self.logger.warning(**log_error(failure, context="extraction", message_id=message.id))
            return []

    def extract(self, message: RawMessage, source: Source | None = None) -> list[ExtractedArticle]:
        """Extract articles from one message, never returning an empty list."""
        if source is None:
            source = classify_source(message.sender, message.subject)

        articles: list[ExtractedArticle] = []
        for strategy in strategy_for(source):
            articles.extend(self._run_strategy(strategy, message))

        self.metrics.increment("messages")
        if not articles:
            self.logger.warning(
                "no_articles_found_using_whole_message",
                message_id=message.id,
                sender=message.sender[:50],
            )
            self.metrics.increment("fallbacks")
            self.metrics.increment("extracted")
            return [fallback_article(message)]

        self.metrics.increment("extracted", len(articles))
        self.logger.info(
            "articles_extracted",
            message_id=message.id,
            source=getattr(getattr(source, "kind", None), "value", "unknown"),
            count=len(articles),
        )
        # Re-estimate tokens now that the subject is known.
        return [
            replace(article, message_id=message.id, subject=message.subject, estimated_tokens=0)
            for article in articles
        ]

    def extract_all(self, messages: list[RawMessage]) -> list[ExtractedArticle]:
        articles: list[ExtractedArticle] = []
        for message in messages:
            articles.extend(self.extract(message))
        return articles


def extract_articles(message: RawMessage) -> list[ExtractedArticle]:
    """Extract articles from a single message with default logging."""
    return ArticleExtractor().extract(message)
