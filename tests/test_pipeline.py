"""End-to-end tests for the digest pipeline."""

from dataclasses import replace
from datetime import UTC, date, datetime

import pytest

from paper_digest.errors import MalformedOracleOutput, NothingExtractedError, OracleNetworkError
from paper_digest.logging import PipelineMetrics
from paper_digest.models.llm_client import MockLLMClient
from paper_digest.models.oracle import MockScoringOracle
from paper_digest.orchestrator import paper_id, run_pipeline
from paper_digest.records import ValidationVerdict

from conftest import DUPLICATE_ANEURYSM, DUPLICATE_ATLAS, FakeOracle

TODAY = date(2025, 3, 10)


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.mark.asyncio
async def test_pipeline_end_to_end(sample_messages, fake_oracle, pipeline_config):
    metrics = PipelineMetrics()
    result = await run_pipeline(sample_messages, pipeline_config, fake_oracle, metrics=metrics, today=TODAY)

    scores = [p.relevance_score for p in result.papers]
    assert scores == [100, 100, 65, 65, 65, 60, 36, 30, 30, 10]
    assert scores == sorted(scores, reverse=True)

    by_title = {p.title: p for p in result.papers}
    assert len(by_title) == 10
    assert by_title[DUPLICATE_ANEURYSM].source_name == "Circulation Research"
    assert by_title[DUPLICATE_ANEURYSM].authors == ["J Smith", "K Lee", "M Chen"]
    assert by_title[DUPLICATE_ATLAS].source_name == "Nature Communications"
    assert by_title[DUPLICATE_ATLAS].relevance_score == 65
    assert by_title["Mechanical stress sensing in fibrillin deficient fibroblasts"].relevance_score == 10

    assert all(p.publication_date == "2025-03-10" for p in result.papers)
    assert metrics.messages == 3
    assert metrics.extracted == 12
    assert metrics.batches == 1
    assert metrics.scored == 12
    assert metrics.deduplicated == 2
    assert metrics.validated == 10
    assert metrics.removed == 0
    assert result.validation.verdict is ValidationVerdict.EXCELLENT


@pytest.mark.asyncio
async def test_min_score_filter(sample_messages, fake_oracle, pipeline_config):
    pipeline_config.min_score = 50
    metrics = PipelineMetrics()
    result = await run_pipeline(sample_messages, pipeline_config, fake_oracle, metrics=metrics, today=TODAY)

    assert [p.relevance_score for p in result.papers] == [100, 100, 65, 65, 65, 60]
    assert metrics.below_min_score == 5


@pytest.mark.asyncio
async def test_preprint_link_and_date_from_message(preprint_message, fake_oracle, pipeline_config):
    message = replace(preprint_message, received_at=datetime(2025, 3, 4, 9, 30, tzinfo=UTC))
    result = await run_pipeline([message], pipeline_config, fake_oracle, today=TODAY)

    paper = next(p for p in result.papers if p.title == DUPLICATE_ANEURYSM)
    assert paper.link == "https://doi.org/10.1101/2025.03.01.640001"
    assert paper.publication_date == "2025-03-04"
    assert paper.matched_keywords == ["organoid"]


@pytest.mark.asyncio
async def test_paper_ids_are_stable(sample_messages, pipeline_config):
    first = await run_pipeline(sample_messages, pipeline_config, FakeOracle(), today=TODAY)
    second = await run_pipeline(sample_messages, pipeline_config, FakeOracle(), today=TODAY)

    assert [p.id for p in first.papers] == [p.id for p in second.papers]
    assert all(p.id.startswith("paper-") and len(p.id) == 18 for p in first.papers)


@pytest.mark.asyncio
async def test_invented_titles_never_reach_output(sample_messages, pipeline_config):
    invented = "Quantum entanglement in superconducting qubits"
    oracle = FakeOracle(invented=[invented])
    metrics = PipelineMetrics()
    result = await run_pipeline(sample_messages, pipeline_config, oracle, metrics=metrics, today=TODAY)

    assert invented not in {p.title for p in result.papers}
    assert metrics.oracle_dropped == 1
    assert len(result.papers) == 10


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [
    OracleNetworkError("connection reset"),
    MalformedOracleOutput("missing papers array", "Sure, here you go"),
])
async def test_failed_batch_is_skipped(sample_messages, pipeline_config, error):
    pipeline_config.max_items_per_batch = 4
    oracle = FakeOracle(fail_on=[2], error=error)
    metrics = PipelineMetrics()
    result = await run_pipeline(sample_messages, pipeline_config, oracle, metrics=metrics, today=TODAY)

    assert len(oracle.calls) == 3
    assert metrics.batches == 3
    assert metrics.failed_batches == 1
    assert metrics.scored == 8
    assert "Nature Communications" not in {p.source_name for p in result.papers}
    assert len(result.papers) == 7


@pytest.mark.asyncio
async def test_all_batches_failing_raises(sample_messages, pipeline_config):
    oracle = FakeOracle(fail_on=[1], error=OracleNetworkError("offline"))
    metrics = PipelineMetrics()

    with pytest.raises(NothingExtractedError):
        await run_pipeline(sample_messages, pipeline_config, oracle, metrics=metrics, today=TODAY)
    assert metrics.failed_batches == 1


@pytest.mark.asyncio
async def test_unexpected_oracle_exception_propagates(sample_messages, pipeline_config):
    oracle = FakeOracle(fail_on=[1], error=RuntimeError("bug in oracle"))

    with pytest.raises(RuntimeError):
        await run_pipeline(sample_messages, pipeline_config, oracle, today=TODAY)


@pytest.mark.asyncio
async def test_cooldown_between_windows(sample_messages, pipeline_config):
    pipeline_config.max_items_per_batch = 4
    pipeline_config.oracle_concurrency = 1
    pipeline_config.batch_cooldown_seconds = 1.5
    sleep = RecordingSleep()

    await run_pipeline(sample_messages, pipeline_config, FakeOracle(), sleep=sleep, today=TODAY)

    assert sleep.delays == [1.5, 1.5]


@pytest.mark.asyncio
async def test_no_cooldown_within_a_window(sample_messages, pipeline_config):
    pipeline_config.max_items_per_batch = 4
    pipeline_config.batch_cooldown_seconds = 1.5
    sleep = RecordingSleep()

    await run_pipeline(sample_messages, pipeline_config, FakeOracle(), sleep=sleep, today=TODAY)

    assert sleep.delays == []


@pytest.mark.asyncio
async def test_result_record_shape(sample_messages, fake_oracle, pipeline_config):
    result = await run_pipeline(sample_messages, pipeline_config, fake_oracle, today=TODAY)
    record = result.to_dict()

    assert set(record) == {"papers", "summary", "validation"}
    first = record["papers"][0]
    assert set(first) == {
        "id", "title", "authors", "snippet", "link", "source", "date",
        "relevanceScore", "matchedKeywords", "matchedPenalties",
    }
    validation = record["validation"]
    assert validation["originalCount"] == 10
    assert validation["refinedCount"] == 10
    assert validation["removedCount"] == 0
    assert validation["validationRate"] == 100.0
    assert validation["verdict"] == "excellent"
    assert validation["matchTypes"]["exact"] == 10
    assert record["summary"]["overview"].startswith("Digest generated from 10 validated papers on 2025-03-10.")
    assert record["summary"]["academicReport"] == ""


@pytest.mark.asyncio
async def test_review_generated_with_client(sample_messages, pipeline_config):
    result = await run_pipeline(
        sample_messages,
        pipeline_config,
        MockScoringOracle(),
        review_client=MockLLMClient("summarizer"),
        today=TODAY,
    )

    report = result.summary.academic_report
    assert report.startswith("Mock response to:")
    assert "## References" in report
    assert f'"{result.papers[0].title}"' in report


@pytest.mark.asyncio
async def test_fallback_article_flows_through(pipeline_config):
    from paper_digest.records import RawMessage

    message = RawMessage(
        id="msg-fwd",
        sender="colleague@example.org",
        subject="Organoid resources for the aortic disease project",
        body="<p>See attached notes.</p>",
    )
    result = await run_pipeline([message], pipeline_config, FakeOracle(), today=TODAY)

    assert [p.title for p in result.papers] == [message.subject]
    assert result.papers[0].source_name == "Unknown"


def test_paper_id_depends_on_message_and_title(scholar_message):
    from paper_digest.ingest.extractor import ArticleExtractor

    article = ArticleExtractor().extract(scholar_message)[0]
    moved = replace(article, message_id="other-message")

    assert paper_id(article) == paper_id(replace(article))
    assert paper_id(article) != paper_id(moved)
