"""Tests for the command line interface."""

import orjson
import pytest
from click.testing import CliRunner

from paper_digest.orchestrator import cli, load_keywords_file, load_messages

from conftest import DUPLICATE_ANEURYSM, DUPLICATE_ATLAS


@pytest.fixture
def messages_file(temp_dir, sample_messages):
    path = temp_dir / "messages.json"
    path.write_bytes(orjson.dumps({"emails": [
        {"id": m.id, "from": m.sender, "subject": m.subject, "body": m.body, "date": "Mon, 10 Mar 2025 08:00:00 GMT"}
        for m in sample_messages
    ]}))
    return path


def test_load_messages(messages_file):
    messages = load_messages(messages_file)

    assert [m.id for m in messages] == ["msg-scholar", "msg-nature", "msg-biorxiv"]
    assert messages[0].body_format == "html"
    assert messages[0].received_at.date().isoformat() == "2025-03-10"


def test_load_keywords_file(temp_dir):
    path = temp_dir / "keywords.json"
    path.write_bytes(orjson.dumps({"keywords": ["organoid"], "penaltyKeywords": ["zebrafish"]}))
    assert load_keywords_file(path) == (["organoid"], ["zebrafish"])

    path.write_bytes(orjson.dumps(["aorta", "marfan"]))
    assert load_keywords_file(path) == (["aorta", "marfan"], [])


def test_run_mock(messages_file, temp_dir):
    output = temp_dir / "analysis.json"
    markdown = temp_dir / "digest.md"
    result = CliRunner().invoke(cli, [
        "run", str(messages_file),
        "--mock",
        "-k", "organoid",
        "-k", "Aortic Disease",
        "-o", str(output),
        "--markdown", str(markdown),
    ])

    assert result.exit_code == 0, result.output
    record = orjson.loads(output.read_bytes())
    titles = [p["title"] for p in record["papers"]]
    assert titles.count(DUPLICATE_ANEURYSM) == 1
    assert titles.count(DUPLICATE_ATLAS) <= 1
    assert record["validation"]["verdict"] == "excellent"
    assert all(p["date"] == "2025-03-10" for p in record["papers"])
    assert markdown.read_text(encoding="utf-8").startswith("# Paper Digest")


def test_run_with_review(messages_file, temp_dir):
    output = temp_dir / "analysis.json"
    markdown = temp_dir / "digest.md"
    result = CliRunner().invoke(cli, [
        "run", str(messages_file), "--mock", "--review", "-o", str(output), "--markdown", str(markdown),
    ])

    assert result.exit_code == 0, result.output
    record = orjson.loads(output.read_bytes())
    assert "## References" in record["summary"]["academicReport"]
    assert (temp_dir / "digest_review.md").exists()


def test_run_rejects_bad_min_score(messages_file):
    result = CliRunner().invoke(cli, ["run", str(messages_file), "--mock", "--min-score", "150"])
    assert result.exit_code == 2


def test_validate_removes_untraceable_papers(messages_file, temp_dir):
    analysis = temp_dir / "analysis.json"
    analysis.write_bytes(orjson.dumps({"papers": [
        {"id": "paper-a", "title": DUPLICATE_ANEURYSM, "source": "Circulation Research", "relevanceScore": 100},
        {"id": "paper-b", "title": DUPLICATE_ATLAS, "source": "Nature Communications", "relevanceScore": 65},
        {"id": "paper-c", "title": "Quantum entanglement in superconducting qubits", "source": "Nature", "relevanceScore": 99},
    ]}))
    refined = temp_dir / "refined.json"

    result = CliRunner().invoke(cli, ["validate", str(messages_file), str(analysis), "-o", str(refined)])

    # 2 of 3 traced is below the 70% threshold
    assert result.exit_code == 1
    assert "1 papers could not be traced" in result.output
    record = orjson.loads(refined.read_bytes())
    assert [p["id"] for p in record["papers"]] == ["paper-a", "paper-b"]
    assert record["validation"]["removedCount"] == 1
    assert record["validation"]["verdict"] == "critical"
    assert record["validation"]["removedPapers"][0]["title"].startswith("Quantum")
