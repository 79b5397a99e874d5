"""Tests for sender classification."""

import pytest

from paper_digest.ingest.classifier import (
    UNKNOWN,
    KnownSource,
    SourceKind,
    Unknown,
    classify_source,
    display_name,
    resolve_nature_journal,
)


@pytest.mark.parametrize("sender, kind", [
    ("Google Scholar Alerts <scholaralerts-noreply@google.com>", SourceKind.SCHOLAR),
    ("openRxiv <openrxiv-mailer@alerts.highwire.org>", SourceKind.PREPRINT),
    ("Cell Press <cellpress@notification.elsevier.com>", SourceKind.CELL_PRESS),
    ("ealert@nature.com", SourceKind.NATURE),
    ("AHA Journals <ahajournals@ealerts.heart.org>", SourceKind.AHA),
    ("medRxiv digest <digest@medrxiv.org>", SourceKind.PREPRINT),
])
def test_known_senders(sender, kind):
    assert classify_source(sender) == KnownSource(kind)


def test_unknown_sender():
    source = classify_source("newsletter@example.org", "Weekly digest")
    assert isinstance(source, Unknown)
    assert source == UNKNOWN
    assert display_name(source) == "Unknown Source"


def test_display_names():
    assert display_name(KnownSource(SourceKind.SCHOLAR)) == "Google Scholar"
    assert display_name(KnownSource(SourceKind.PREPRINT)) == "bioRxiv/medRxiv"


def test_nature_journal_from_fixed_list():
    assert resolve_nature_journal("Nature Medicine: new research alert") == "Nature Medicine"
    assert resolve_nature_journal("Latest from Communications Biology") == "Communications Biology"


def test_nature_journal_from_subject_pattern():
    assert resolve_nature_journal("Nature Cardiovascular Research - issue 4") == "Nature Cardiovascular Research"


def test_nature_journal_default():
    assert resolve_nature_journal("") == "Nature"
    assert resolve_nature_journal("Your weekly alert") == "Nature"
