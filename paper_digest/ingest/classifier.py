"""Sender-based classification of alert messages."""

import re
from dataclasses import dataclass
from enum import Enum


class SourceKind(Enum):
    """Publisher families with a dedicated extraction strategy."""
    SCHOLAR = "scholar"
    CELL_PRESS = "cell_press"
    NATURE = "nature"
    PREPRINT = "preprint"
    AHA = "aha"


@dataclass(frozen=True)
class KnownSource:
    kind: SourceKind


@dataclass(frozen=True)
class Unknown:
    """Sender matched no known publisher."""


UNKNOWN = Unknown()

Source = KnownSource | Unknown

# Checked in order; first matching sender substring wins.
SENDER_PATTERNS: tuple[tuple[tuple[str, ...], SourceKind], ...] = (
    (("scholar", "google"), SourceKind.SCHOLAR),
    (("cellpress", "cell.com", "elsevier"), SourceKind.CELL_PRESS),
    (("nature",), SourceKind.NATURE),
    (("biorxiv", "medrxiv", "highwire"), SourceKind.PREPRINT),
    (("ahajournals", "heart.org"), SourceKind.AHA),
)

# Exact sender addresses seen in practice, for reference and quick lookup.
KNOWN_SENDERS: dict[str, SourceKind] = {
    "scholaralerts-noreply@google.com": SourceKind.SCHOLAR,
    "openrxiv-mailer@alerts.highwire.org": SourceKind.PREPRINT,
    "cellpress@notification.elsevier.com": SourceKind.CELL_PRESS,
    "ealert@nature.com": SourceKind.NATURE,
    "alerts@nature.com": SourceKind.NATURE,
    "ahajournals@ealerts.heart.org": SourceKind.AHA,
}

DISPLAY_NAMES: dict[SourceKind, str] = {
    SourceKind.SCHOLAR: "Google Scholar",
    SourceKind.CELL_PRESS: "Cell Press",
    SourceKind.NATURE: "Nature",
    SourceKind.PREPRINT: "bioRxiv/medRxiv",
    SourceKind.AHA: "AHA Journals",
}

UNKNOWN_SOURCE_NAME = "Unknown Source"

NATURE_JOURNALS = (
    'Nature Medicine', 'Nature Aging', 'Nature Communications',
    'Nature Genetics', 'Nature Methods', 'Nature Neuroscience',
    'Nature Cell Biology', 'Nature Immunology', 'Nature Biotechnology',
    'Nature Chemical Biology', 'Nature Structural & Molecular Biology',
    'Nature Reviews', 'Nature Climate Change', 'Nature Energy',
    'Nature Materials', 'Nature Nanotechnology', 'Nature Physics',
    'Nature Photonics', 'Nature Plants', 'Nature Protocols',
    'Communications Biology',
)

NATURE_SUBJECT_RE = re.compile(r'^(Nature\s+[A-Z][a-z]+(?:\s+[A-Z][a-z]+)?)')


def _extract_address(sender: str) -> str:
    match = re.search(r'<([^>]+)>', sender)
    return (match.group(1) if match else sender).strip().lower()


def classify_source(sender: str, subject: str = "") -> Source:
    """Classify a message by its sender address.

    The subject is accepted for symmetry with the extractor but does not
    influence the publisher family; it only selects sub-brands later.
    """
    address = _extract_address(sender)
    if address in KNOWN_SENDERS:
        return KnownSource(KNOWN_SENDERS[address])

    sender_lower = sender.lower()
    for needles, kind in SENDER_PATTERNS:
        if any(needle in sender_lower for needle in needles):
            return KnownSource(kind)
    return UNKNOWN


def display_name(source: Source) -> str:
    if isinstance(source, KnownSource):
        return DISPLAY_NAMES[source.kind]
    return UNKNOWN_SOURCE_NAME


def resolve_nature_journal(subject: str) -> str:
    """Sub-brand journal name for a Nature portfolio message."""
    subject_lower = subject.lower()
    for journal in NATURE_JOURNALS:
        if journal.lower() in subject_lower:
            return journal

    if subject:
        match = NATURE_SUBJECT_RE.match(subject)
        if match:
            return match.group(1)
    return 'Nature'
