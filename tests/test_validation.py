"""Tests for source-text validation of scored papers."""

import pytest

from paper_digest.processing.validation import (
    PaperValidator,
    SourceText,
    build_source_text,
    match_title,
    validate_papers,
    verdict_for,
)
from paper_digest.records import MatchStrength, RawMessage, ScoredPaper, ValidationVerdict

SOURCE = """
<html><body>
<h3><a class="gse_alrt_title">Emergent Abilities of Large Language Models</a></h3>
<p>Aortic organoids - a new model for connective tissue disorders</p>
<p>M&uuml;ller cells &amp; retinal degeneration in the ageing eye</p>
<p>In this study smooth muscle plasticity was shown to affect thoracic aneurysm growth in patients.</p>
</body></html>
"""


@pytest.fixture
def source():
    return SourceText(SOURCE)


def make_paper(title: str, score: int = 50) -> ScoredPaper:
    return ScoredPaper(id=f"paper-{score}", title=title, source_name="Nature", relevance_score=score)


def test_exact_match(source):
    strength, _ = match_title("Emergent Abilities of Large Language Models", source)
    assert strength is MatchStrength.EXACT


def test_entities_and_diacritics_match_exactly(source):
    strength, _ = match_title("Müller cells & retinal degeneration", source)
    assert strength is MatchStrength.EXACT


def test_normalized_match(source):
    strength, _ = match_title("Aortic organoids: a new model", source)
    assert strength is MatchStrength.NORMALIZED


def test_partial_word_match(source):
    strength, evidence = match_title("Smooth muscle plasticity drives thoracic aneurysm growth", source)

    assert strength is MatchStrength.PARTIAL
    assert evidence.startswith("Matched 6/7 words")


def test_first_significant_words_match():
    source = SourceText("New this week: cardiac fibroblast activation states in a mouse model.")
    title = (
        "Cardiac fibroblast activation states define remodelling outcomes"
        " after myocardial infarction injury"
    )
    strength, evidence = match_title(title, source)

    assert strength is MatchStrength.PARTIAL
    assert evidence == 'Matched first 4 significant words: "cardiac fibroblast activation states"'


def test_no_match(source):
    strength, evidence = match_title("Quantum entanglement in superconducting qubits", source)

    assert strength is MatchStrength.NONE
    assert "quantum" in evidence


def test_short_title_never_matches(source):
    strength, evidence = match_title("Models", source)

    assert strength is MatchStrength.NONE
    assert evidence == "Title too short or invalid"


@pytest.mark.parametrize("rate, verdict", [
    (100.0, ValidationVerdict.EXCELLENT),
    (95.0, ValidationVerdict.EXCELLENT),
    (94.9, ValidationVerdict.GOOD),
    (85.0, ValidationVerdict.GOOD),
    (70.0, ValidationVerdict.WARNING),
    (69.9, ValidationVerdict.CRITICAL),
])
def test_verdict_thresholds(rate, verdict):
    assert verdict_for(rate) is verdict


def test_validate_and_refine():
    validator = PaperValidator()
    papers = [
        make_paper("Emergent Abilities of Large Language Models", 40),
        make_paper("Quantum entanglement in superconducting qubits", 90),
        make_paper("Aortic organoids: a new model", 70),
    ]
    report = validator.validate(papers, SOURCE)

    assert report.total == 3
    assert report.validated == 2
    assert report.removed == 1
    assert report.validation_rate == pytest.approx(66.67, abs=0.01)
    assert report.verdict is ValidationVerdict.CRITICAL
    assert report.counts_by_strength() == {"exact": 1, "normalized": 1, "partial": 0, "none": 1}

    kept, removed = validator.refine(report)
    assert [p.relevance_score for p in kept] == [70, 40]
    assert [p.title for p in removed] == ["Quantum entanglement in superconducting qubits"]


def test_empty_session_is_fully_validated():
    report = PaperValidator().validate([], SOURCE)

    assert report.validation_rate == 100.0
    assert report.verdict is ValidationVerdict.EXCELLENT


def test_source_text_includes_subjects():
    messages = [
        RawMessage(id="1", sender="a@nature.com", subject="Cardiac fibrosis resolved by macrophages", body="<p/>"),
        RawMessage(id="2", sender="b@nature.com", subject="Other", body="<p>Body text</p>"),
    ]
    assert "Cardiac fibrosis" in build_source_text(messages)

    report = validate_papers([make_paper("Cardiac fibrosis resolved by macrophages")], messages)
    assert report.results[0].match_strength is MatchStrength.EXACT
