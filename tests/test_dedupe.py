"""Tests for title deduplication."""

from paper_digest.processing.dedupe import PaperDeduplicator, deduplicate_papers
from paper_digest.records import ScoredPaper


def make_paper(paper_id: str, title: str, score: int, source: str = "Nature") -> ScoredPaper:
    return ScoredPaper(id=paper_id, title=title, source_name=source, relevance_score=score)


def test_keeps_highest_score_regardless_of_order():
    low = make_paper("a", "Aortic organoids reveal smooth muscle plasticity", 40, "bioRxiv")
    high = make_paper("b", "Aortic  Organoids: Reveal Smooth Muscle Plasticity!", 70, "Nature")

    for papers in ([low, high], [high, low]):
        result = deduplicate_papers(papers)
        assert len(result) == 1
        assert result[0].id == "b"


def test_ties_keep_first_seen():
    first = make_paper("first", "Spatial atlas of the developing heart", 50)
    second = make_paper("second", "Spatial atlas of the developing heart", 50)

    assert [p.id for p in deduplicate_papers([first, second])] == ["first"]


def test_order_follows_first_appearance():
    papers = [
        make_paper("1", "Lineage tracing of neural crest cells", 30),
        make_paper("2", "Clonal hematopoiesis and vascular inflammation", 60),
        make_paper("3", "Lineage tracing of neural crest cells", 90),
    ]

    assert [p.id for p in deduplicate_papers(papers)] == ["3", "2"]


def test_short_titles_dropped():
    result = PaperDeduplicator().deduplicate([
        make_paper("1", "Brief!", 80),
        make_paper("2", "Tiny title", 20),
    ])

    assert [p.id for p in result.papers] == ["2"]
    assert result.dropped_short == 1


def test_groups_record_duplicates():
    papers = [
        make_paper("1", "Single-cell proteomics of aortic organoids", 55),
        make_paper("2", "Single cell proteomics of aortic organoids", 65),
        make_paper("3", "Virtual cell models trained on perturbation screens", 40),
    ]
    result = PaperDeduplicator().deduplicate(papers)

    # Hyphen is removed, so "singlecell" and "single cell" stay distinct
    assert len(result.papers) == 3
    assert result.removed == 0

    papers.append(make_paper("4", "Virtual Cell Models Trained on Perturbation Screens.", 45))
    result = PaperDeduplicator().deduplicate(papers)
    assert len(result.groups) == 1
    assert result.groups[0].canonical_paper.id == "4"
    assert [p.id for p in result.groups[0].duplicates] == ["3"]
    assert result.removed == 1


def test_idempotent():
    papers = [
        make_paper("1", "Organoid models of thoracic aortic aneurysm formation", 100),
        make_paper("2", "Organoid models of thoracic aortic aneurysm formation", 42),
        make_paper("3", "Mechanical stress sensing in fibroblasts", 10),
    ]
    once = deduplicate_papers(papers)

    assert deduplicate_papers(once) == once


def test_hyphenated_and_spaced_titles_are_distinct():
    papers = [
        make_paper("a", "Aortic organoids reveal smooth muscle plasticity", 40),
        make_paper("b", "Aortic organoids reveal smooth-muscle plasticity", 70),
    ]

    assert [p.id for p in deduplicate_papers(papers)] == ["a", "b"]
