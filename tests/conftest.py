"""Pytest configuration and fixtures."""

import os
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Generator

import pytest

# Set test environment
os.environ["MOCK"] = "true"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["JSON_LOGGING"] = "false"

from paper_digest.config import PipelineConfig  # noqa: E402
from paper_digest.records import ExtractedArticle, OracleJudgment, RawMessage, ScoredBatch  # noqa: E402


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


# ── HTML builders ─────────────────────────────────────────────────────────

def scholar_entry(title: str, citation: str, snippet: str) -> str:
    return (
        '<h3 style="font-weight:normal;margin:0;font-size:17px">'
        f'<a class="gse_alrt_title" href="https://scholar.google.com/scholar_url?url=x">{title}</a></h3>\n'
        f'<div style="color:#006621;line-height:18px">{citation}</div>\n'
        f'<div class="gse_alrt_sni" style="line-height:17px">{snippet}</div>\n'
    )


def scholar_body(entries: list[tuple[str, str, str]]) -> str:
    return "<html><body>\n" + "".join(scholar_entry(*e) for e in entries) + "</body></html>"


def nature_entry(title: str, authors: str, abstract: str, slug: str) -> str:
    return (
        '<table><tr><td>\n'
        f'<span style="font-size: 18px"><a href="https://www.nature.com/articles/{slug}">{title}</a></span><br>\n'
        f'<span style="font-size: 14px; font-weight: bold">{authors}</span><br>\n'
        f'<span style="font-size: 16px">{abstract}</span>\n'
        '</td></tr></table>\n'
    )


def nature_body(entries: list[tuple[str, str, str, str]]) -> str:
    return (
        "<html><body>\n<h2>Nature Communications</h2>\n"
        "<h3>Articles</h3>\n"
        + "".join(nature_entry(*e) for e in entries)
        + "<h3>About this alert</h3>\n<p>You are receiving this because you signed up.</p>\n"
        "</body></html>"
    )


def preprint_entry(title: str, authors: str, doi_suffix: str) -> str:
    return (
        '<div class="article">'
        f'<a href="https://www.biorxiv.org/content/10.1101/{doi_suffix}v1">{title}</a><br>'
        f'{authors}</div>\n'
    )


def preprint_body(entries: list[tuple[str, str, str]]) -> str:
    return "<html><body>\n" + "".join(preprint_entry(*e) for e in entries) + "</body></html>"


# ── Fake oracle ───────────────────────────────────────────────────────────

class FakeOracle:
    """Deterministic oracle for pipeline tests.

    Scores come from ``scores`` keyed by title (default ``default``); extra
    titles are appended to every reply to simulate invented papers.
    """

    def __init__(
        self,
        scores: dict[str, float] | None = None,
        default: float = 50.0,
        invented: Sequence[str] = (),
        fail_on: Sequence[int] = (),
        error: Exception | None = None,
    ):
        self.scores = scores or {}
        self.default = default
        self.invented = list(invented)
        self.fail_on = set(fail_on)
        self.error = error
        self.calls: list[list[ExtractedArticle]] = []

    async def score(self, batch: Sequence[ExtractedArticle], keywords: Sequence[str]) -> ScoredBatch:
        self.calls.append(list(batch))
        if len(self.calls) in self.fail_on:
            raise self.error
        judgments = [
            OracleJudgment(
                title=article.title,
                base_score=self.scores.get(article.title, self.default),
                authors=article.authors,
                source=article.source_name,
            )
            for article in batch
        ]
        judgments.extend(OracleJudgment(title=t, base_score=90.0) for t in self.invented)
        return ScoredBatch(judgments=judgments)


@pytest.fixture
def fake_oracle():
    return FakeOracle()


@pytest.fixture
def pipeline_config():
    return PipelineConfig(
        keywords=["organoid", "Aortic Disease", "single-cell proteomics"],
        min_score=10,
        batch_cooldown_seconds=0.0,
    )


# ── Sample messages ───────────────────────────────────────────────────────

DUPLICATE_ANEURYSM = "Organoid models of thoracic aortic aneurysm formation"
DUPLICATE_ATLAS = "A spatial atlas of the human heart across development"

SCHOLAR_ENTRIES = [
    (
        DUPLICATE_ANEURYSM,
        "J Smith, K Lee, M Chen - Circulation Research, 2025",
        "We derive vascular smooth muscle organoids from patient cells.",
    ),
    (
        DUPLICATE_ATLAS,
        "A Garcia, B Novak - Hypertension, 2025",
        "Spatial transcriptomics reveals regional cell states.",
    ),
    (
        "Deep learning prediction of dissection risk in Marfan syndrome",
        "R Patel, S Okafor - European Heart Journal, 2025",
        "A model trained on imaging data stratifies patients.",
    ),
    (
        "Mechanical stress sensing in fibrillin deficient fibroblasts",
        "T Nguyen, L Rossi - Matrix Biology, 2024",
        "Fibroblasts lacking fibrillin respond abnormally to stretch.",
    ),
]

NATURE_ENTRIES = [
    (
        "Single-cell proteomics of aortic organoids reveals smooth muscle plasticity",
        "Y. Tanaka, P. Müller, C. Dubois",
        "Mass spectrometry at single-cell resolution maps the proteome of aortic organoids over time.",
        "s41467-025-00001",
    ),
    (
        DUPLICATE_ATLAS,
        "A. Garcia, B. Novak",
        "We profile more than one million nuclei to build a spatial reference of the developing heart.",
        "s41467-025-00002",
    ),
    (
        "Virtual cell models trained on perturbation screens",
        "H. Kim, D. Osei",
        "Foundation models trained on perturbation data predict transcriptional responses in silico.",
        "s41467-025-00003",
    ),
    (
        "Endothelial shear response governed by a mechanosensitive channel",
        "F. Ibrahim, G. Larsen",
        "A mechanosensitive ion channel couples shear stress to endothelial gene expression programs.",
        "s41467-025-00004",
    ),
]

PREPRINT_ENTRIES = [
    (DUPLICATE_ANEURYSM, "Smith J, Lee K, Chen M", "2025.03.01.640001"),
    ("Lineage tracing of neural crest derived aortic cells", "Brown E, Silva F", "2025.03.02.640002"),
    ("Proteomic signatures of bicuspid aortic valve disease", "Haddad N, Ortiz P", "2025.03.03.640003"),
    ("Clonal hematopoiesis and vascular inflammation in mice", "Wu Q, Andersen S", "2025.03.04.640004"),
]


@pytest.fixture
def scholar_message() -> RawMessage:
    return RawMessage(
        id="msg-scholar",
        sender="Google Scholar Alerts <scholaralerts-noreply@google.com>",
        subject="aortic organoid - new results",
        body=scholar_body(SCHOLAR_ENTRIES),
    )


@pytest.fixture
def nature_message() -> RawMessage:
    return RawMessage(
        id="msg-nature",
        sender="Nature Communications <alerts@nature.com>",
        subject="Nature Communications: latest research",
        body=nature_body(NATURE_ENTRIES),
    )


@pytest.fixture
def preprint_message() -> RawMessage:
    return RawMessage(
        id="msg-biorxiv",
        sender="openRxiv <openrxiv-mailer@alerts.highwire.org>",
        subject="bioRxiv alert: Cell Biology",
        body=preprint_body(PREPRINT_ENTRIES),
    )


@pytest.fixture
def sample_messages(scholar_message, nature_message, preprint_message) -> list[RawMessage]:
    return [scholar_message, nature_message, preprint_message]
