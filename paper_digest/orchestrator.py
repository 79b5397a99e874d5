import asyncio
import re
import sys
from collections.abc import Awaitable, Callable, Sequence
from datetime import date
from pathlib import Path
from typing import Any

import click
import orjson
import structlog

from .config import PipelineConfig, Settings, get_settings, validate_config
from .errors import DigestError, MalformedOracleOutput, NothingExtractedError, OracleError
from .ingest.extractor import ArticleExtractor
from .logging import PerformanceLogger, PipelineMetrics, get_logger, log_error, log_processing_stage, setup_logging
from .models.llm_client import LLMClient, create_llm_client
from .models.oracle import ScoringOracle, create_oracle, resolve_judgments
from .processing.batching import batch_articles
from .processing.dedupe import PaperDeduplicator
from .processing.scoring import RelevanceScorer
from .processing.validation import PaperValidator, build_source_text
from .records import (
    ExtractedArticle,
    OracleJudgment,
    PipelineResult,
    RawMessage,
    ScoredPaper,
    ValidationVerdict,
    validation_metadata,
)
from .render import DigestRenderer
from .summarize import build_summary, generate_literature_review, top_keywords
from .ui import init_ui
from .utils import generate_content_hash

logger = get_logger(__name__)

MAX_AUTHORS = 3
AUTHOR_SPLIT_RE = re.compile(r',\s*')

Sleep = Callable[[float], Awaitable[Any]]


def paper_id(article: ExtractedArticle) -> str:
    """Stable id derived from the originating message and title."""
    return "paper-" + generate_content_hash(f"{article.message_id}|{article.title}")[:12]


def _split_authors(authors: str | None) -> list[str]:
    if not authors:
        return []
    return [a for a in AUTHOR_SPLIT_RE.split(authors.strip()) if a][:MAX_AUTHORS]


def _publication_date(message: RawMessage | None, today: date) -> str:
    if message is not None and message.received_at is not None:
        return message.received_at.date().isoformat()
    return today.isoformat()


def build_paper(
    judgment: OracleJudgment,
    article: ExtractedArticle,
    scorer: RelevanceScorer,
    publication_date: str,
) -> ScoredPaper:
    """Scored paper for a matched judgment; the article's own fields win."""
    source = article.source_name or judgment.source or "Unknown"
    snippet = article.abstract or ""
    breakdown = scorer.score(judgment.base_score, article.title, snippet, source)
    return ScoredPaper(
        id=paper_id(article),
        title=article.title,
        source_name=source,
        relevance_score=breakdown.final_score,
        authors=_split_authors(article.authors) or _split_authors(judgment.authors),
        snippet=snippet,
        link=f"https://doi.org/{article.doi}" if article.doi else "",
        publication_date=publication_date,
        matched_keywords=breakdown.matched_keywords,
        matched_penalties=breakdown.matched_penalties,
    )


async def score_batches(
    batches: list[list[ExtractedArticle]],
    oracle: ScoringOracle,
    keywords: Sequence[str],
    config: PipelineConfig,
    metrics: PipelineMetrics,
    logger: structlog.stdlib.BoundLogger,
    sleep: Sleep = asyncio.sleep,
) -> list[tuple[OracleJudgment, ExtractedArticle]]:
    """Send batches to the oracle in windows of ``oracle_concurrency``.

    A batch that fails (oracle error or malformed reply) contributes nothing;
    the remaining batches still run.
    """
    matched: list[tuple[OracleJudgment, ExtractedArticle]] = []
    window = config.oracle_concurrency

    for start in range(0, len(batches), window):
        if start and config.batch_cooldown_seconds:
            await sleep(config.batch_cooldown_seconds)

        group = batches[start:start + window]
        results = await asyncio.gather(
            *(oracle.score(batch, keywords) for batch in group),
            return_exceptions=True,
        )

        for index, (batch, result) in enumerate(zip(group, results), start + 1):
            metrics.increment("batches")
            if isinstance(result, (OracleError, MalformedOracleOutput)):
                metrics.increment("failed_batches")
                extra: dict[str, Any] = {"batch": index, "articles": len(batch)}
                if isinstance(result, MalformedOracleOutput):
                    extra["payload"] = result.payload
                else:
                    extra["kind"] = result.kind
                logger.error(**log_error(result, context="oracle_batch", **extra))
                continue
            if isinstance(result, BaseException):
                raise result

            pairs, dropped = resolve_judgments(result, batch)
            metrics.increment("oracle_dropped", dropped)
            matched.extend(pairs)
            logger.info(
                "batch_scored",
                batch=index,
                total_batches=len(batches),
                articles=len(batch),
                judgments=len(result.judgments),
                matched=len(pairs),
                hallucinated=dropped,
            )

    return matched


async def run_pipeline(
    messages: list[RawMessage],
    config: PipelineConfig,
    oracle: ScoringOracle,
    metrics: PipelineMetrics | None = None,
    logger: structlog.stdlib.BoundLogger | None = None,
    review_client: LLMClient | None = None,
    sleep: Sleep = asyncio.sleep,
    today: date | None = None,
) -> PipelineResult:
    """Run extraction, scoring, deduplication and validation over a message set.

    Args:
        messages: Alert messages of one run
        config: Keywords, thresholds and batch limits
        oracle: Base-score provider
        metrics: Counter object to fill, a fresh one when omitted
        logger: Logger for every stage, the module logger when omitted
        review_client: LLM client for the literature review; skipped when None
        sleep: Awaitable used for the cooldown between batch windows
        today: Date used when a message carries no receive date

    Raises:
        NothingExtractedError: no paper could be scored from any batch
    """
    metrics = metrics if metrics is not None else PipelineMetrics()
    log = logger if logger is not None else get_logger(__name__)
    today = today or date.today()

    with PerformanceLogger("paper_digest_pipeline", log):
        # Stage 1: extraction
        extractor = ArticleExtractor(logger=log, metrics=metrics)
        articles = extractor.extract_all(messages)
        log.info(**log_processing_stage("extraction", len(messages), len(articles), fallbacks=metrics.fallbacks))

        # Stage 2: batching and oracle scoring
        batches = batch_articles(
            articles,
            max_tokens=config.max_tokens_per_batch,
            max_items=config.max_items_per_batch,
        )
        log.info(**log_processing_stage("batching", len(articles), len(batches)))
        matched = await score_batches(batches, oracle, config.keywords, config, metrics, log, sleep)

        # Stage 3: deterministic scoring and threshold
        scorer = RelevanceScorer(
            config.keywords,
            config.penalty_keywords,
            apply_no_match_penalty=config.apply_no_match_penalty,
        )
        messages_by_id = {message.id: message for message in messages}
        scored = [
            build_paper(
                judgment,
                article,
                scorer,
                _publication_date(messages_by_id.get(article.message_id), today),
            )
            for judgment, article in matched
        ]
        metrics.increment("scored", len(scored))
        if not scored:
            raise NothingExtractedError(
                f"No papers could be scored from {len(messages)} messages ({len(batches)} batches)"
            )

        kept = [paper for paper in scored if paper.relevance_score >= config.min_score]
        metrics.increment("below_min_score", len(scored) - len(kept))
        log.info(**log_processing_stage("scoring", len(scored), len(kept), min_score=config.min_score))

        # Stage 4: deduplication
        deduplicated = PaperDeduplicator(logger=log).deduplicate(kept)
        metrics.increment("deduplicated", len(kept) - len(deduplicated.papers))

        # Stage 5: validation against the source messages
        validator = PaperValidator(logger=log)
        report = validator.validate(deduplicated.papers, build_source_text(messages))
        papers, removed = validator.refine(report)
        metrics.increment("validated", len(papers))
        metrics.increment("removed", len(removed))
        log.info(**log_processing_stage(
            "validation",
            report.total,
            len(papers),
            validation_rate=round(report.validation_rate, 1),
            verdict=report.verdict.value,
        ))

        review = ""
        if review_client is not None and papers:
            review_keywords = top_keywords(papers) or config.keywords
            review = await generate_literature_review(papers, review_keywords, review_client, logger=log)

        summary = build_summary(papers, removed, config.keywords, review=review, today=today)

    log.info("pipeline_metrics", **metrics.as_dict())
    return PipelineResult(papers=papers, summary=summary, validation=report, removed_papers=removed)


def load_messages(path: Path) -> list[RawMessage]:
    """Read messages from a JSON array or an ``{"emails": [...]}`` document."""
    data = orjson.loads(Path(path).read_bytes())
    if isinstance(data, dict):
        data = data.get("emails") or data.get("messages") or []
    if not isinstance(data, list):
        raise click.BadParameter(f"{path} does not contain a list of messages")
    return [RawMessage.from_dict(item) for item in data if isinstance(item, dict)]


def load_keywords_file(path: Path) -> tuple[list[str], list[str]]:
    """Keywords from a JSON array or ``{"keywords": [...], "penaltyKeywords": [...]}``."""
    data = orjson.loads(Path(path).read_bytes())
    if isinstance(data, list):
        return [str(k) for k in data], []
    if isinstance(data, dict):
        penalties = data.get("penaltyKeywords", data.get("penalty_keywords", []))
        return [str(k) for k in data.get("keywords", [])], [str(k) for k in penalties]
    raise click.BadParameter(f"{path} does not contain a keyword list")


def _configure_cli_logging(log_level: str, verbose: bool, settings: Settings) -> None:
    actual_log_level = "INFO" if verbose else log_level
    setup_logging(log_level=actual_log_level, json_logging=settings.json_logging)
    if not verbose:
        import logging
        # Quiet HTTP client chatter unless verbose
        logging.getLogger("httpx").setLevel(logging.ERROR)
        logging.getLogger("httpcore").setLevel(logging.ERROR)


@click.group()
def cli():
    """Paper Digest - rank and validate papers from academic alert messages."""


@cli.command()
@click.argument("messages_json", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--keywords", "-k", multiple=True, help="Interest keyword (repeatable)")
@click.option("--penalty", "-p", multiple=True, help="Penalty keyword (repeatable)")
@click.option(
    "--keywords-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON keyword list or {keywords, penaltyKeywords} document",
)
@click.option("--min-score", type=click.IntRange(0, 100), help="Discard papers scoring below this")
@click.option("--review", is_flag=True, help="Generate a literature review with the summarizer route")
@click.option("--mock", is_flag=True, help="Use the deterministic mock oracle")
@click.option(
    "--output",
    "-o",
    type=click.File("wb"),
    default="-",
    help="Analysis JSON output (default: stdout)",
)
@click.option("--markdown", type=click.Path(dir_okay=False, path_type=Path), help="Also write a Markdown paper list")
@click.option("--log-level", default="ERROR", help="Log level")
@click.option("--verbose", is_flag=True, help="Show detailed progress information")
def run(
    messages_json,
    keywords,
    penalty,
    keywords_file,
    min_score,
    review,
    mock,
    output,
    markdown,
    log_level,
    verbose,
):
    """Extract, score, deduplicate and validate papers from MESSAGES_JSON."""
    settings = get_settings()
    if mock:
        settings.mock = True
    _configure_cli_logging(log_level, verbose, settings)
    ui = init_ui(verbose=verbose)

    if not validate_config(settings):
        ui.error("Configuration validation failed: set OPENAI_API_KEY or GOOGLE_AI_API_KEY, or use --mock")
        sys.exit(1)

    keyword_list = list(keywords)
    penalty_list = list(penalty)
    if keywords_file:
        file_keywords, file_penalties = load_keywords_file(keywords_file)
        keyword_list.extend(file_keywords)
        penalty_list.extend(file_penalties)

    config = PipelineConfig.from_settings(
        settings,
        keywords=keyword_list or None,
        penalty_keywords=penalty_list or None,
        min_score=min_score,
    )
    metrics = PipelineMetrics()

    try:
        with ui.stage("Loading messages"):
            messages = load_messages(messages_json)
        ui.info(f"{len(messages)} messages, keywords: {', '.join(config.keywords)}")

        oracle = create_oracle(mock=settings.mock)
        review_client = create_llm_client("summarizer", mock=settings.mock) if review else None

        with ui.stage("Scoring papers"):
            result = asyncio.run(run_pipeline(
                messages,
                config,
                oracle,
                metrics=metrics,
                review_client=review_client,
            ))
    except NothingExtractedError as e:
        ui.error(str(e))
        sys.exit(1)
    except DigestError as e:
        logger.error(**log_error(e, context="cli_run"))
        ui.error(str(e))
        sys.exit(1)

    output.write(orjson.dumps(result.to_dict(), option=orjson.OPT_INDENT_2))
    output.write(b"\n")

    if markdown:
        renderer = DigestRenderer()
        renderer.save(renderer.render_paper_list(result.papers), markdown)
        ui.success(f"Paper list written to {markdown}")
        if result.summary.academic_report:
            review_path = markdown.with_name(f"{markdown.stem}_review.md")
            renderer.save(renderer.render_review(result), review_path)
            ui.success(f"Literature review written to {review_path}")

    ui.show_validation(result.validation)
    ui.show_final_summary(result, metrics.as_dict(), output.name)

    if result.validation.verdict is ValidationVerdict.CRITICAL:
        ui.error("Validation rate is critical; results are unreliable")
        sys.exit(1)
    if result.validation.verdict is ValidationVerdict.WARNING:
        ui.warning("Validation rate is below 85%; review the removed papers")


@cli.command()
@click.argument("messages_json", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("analysis_json", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--output", "-o", type=click.File("wb"), help="Write the refined analysis here")
@click.option("--log-level", default="ERROR", help="Log level")
@click.option("--verbose", is_flag=True, help="List removed papers")
def validate(messages_json, analysis_json, output, log_level, verbose):
    """Re-validate a saved ANALYSIS_JSON against the MESSAGES_JSON it came from."""
    _configure_cli_logging(log_level, verbose, get_settings())
    ui = init_ui(verbose=verbose)

    messages = load_messages(messages_json)
    analysis = orjson.loads(analysis_json.read_bytes())
    papers = [ScoredPaper.from_dict(p) for p in analysis.get("papers", []) if isinstance(p, dict)]

    validator = PaperValidator()
    report = validator.validate(papers, build_source_text(messages))
    kept, removed = validator.refine(report)
    ui.show_validation(report)

    if output:
        refined = dict(analysis)
        refined["papers"] = [p.to_dict() for p in kept]
        refined["validation"] = validation_metadata(report, kept, removed)
        output.write(orjson.dumps(refined, option=orjson.OPT_INDENT_2))
        output.write(b"\n")
        ui.success(f"Refined analysis written with {len(kept)} papers")

    if removed:
        ui.warning(f"{len(removed)} papers could not be traced to the source messages")
    if report.verdict is ValidationVerdict.CRITICAL:
        sys.exit(1)


if __name__ == "__main__":
    cli()
