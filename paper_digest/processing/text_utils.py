"""Text normalization helpers shared by extraction, scoring and validation."""

import html
import re
from unicodedata import combining, normalize

TAG_RE = re.compile(r'<[^>]+>')
WHITESPACE_RE = re.compile(r'\s+')

STOP_WORDS = frozenset({
    'a', 'an', 'the', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for',
    'of', 'with', 'by', 'from', 'as', 'is', 'was', 'are', 'were', 'be',
    'been', 'being', 'have', 'has', 'had', 'do', 'does', 'did', 'will',
    'would', 'could', 'should', 'may', 'might', 'must', 'can', 'into',
    'through', 'during', 'before', 'after', 'above', 'below', 'between',
    'under', 'again', 'further', 'then', 'once', 'here', 'there', 'when',
    'where', 'why', 'how', 'all', 'each', 'every', 'both', 'few', 'more',
    'most', 'other', 'some', 'such', 'no', 'nor', 'not', 'only', 'own',
    'same', 'so', 'than', 'too', 'very', 'just', 'also', 'now', 'its',
    'their', 'this', 'that', 'these', 'those', 'using', 'based', 'via',
})

_QUOTES_RE = re.compile(r'[“”‘’«»]')
_DASHES_RE = re.compile(r'[‐‑‒–—―]')


def collapse_whitespace(text: str) -> str:
    return WHITESPACE_RE.sub(' ', text).strip()


def html_to_plain_text(html_text: str) -> str:
    """Convert an HTML body to line-oriented plain text.

    Line breaks, paragraphs and block ends become newlines so that
    line-based heuristics can walk the result.
    """
    text = re.sub(r'<br\s*/?>', '\n', html_text, flags=re.IGNORECASE)
    text = re.sub(r'</p>', '\n\n', text, flags=re.IGNORECASE)
    text = re.sub(r'</div>', '\n', text, flags=re.IGNORECASE)
    text = TAG_RE.sub('', text)
    return text.replace('&nbsp;', ' ').replace('&amp;', '&')


def normalize_title(title: str) -> str:
    """Key used to compare titles: lowercase, no punctuation, single spaces."""
    if not title:
        return ""
    title = re.sub(r'[^\w\s]', '', title.lower())
    return collapse_whitespace(title)


def normalize_text(text: str) -> str:
    """Normalize text for source-text comparison.

    Lowercases, decodes entities (named, decimal and hex), strips
    diacritics, unifies quotes and dashes, replaces tags with spaces and
    collapses whitespace.
    """
    if not text:
        return ""
    text = html.unescape(text.lower())
    text = normalize('NFKD', text)
    text = ''.join(ch for ch in text if not combining(ch))
    text = _QUOTES_RE.sub('"', text)
    text = _DASHES_RE.sub('-', text)
    text = text.replace('…', '...')
    text = TAG_RE.sub(' ', text)
    return collapse_whitespace(text)


def ultra_normalize(normalized: str) -> str:
    """Drop everything but ASCII letters, digits and spaces from normalized text."""
    return collapse_whitespace(re.sub(r'[^a-z0-9\s]', '', normalized))


def significant_words(title: str) -> list[str]:
    """Title tokens longer than 3 chars that are not stop words, in order."""
    return [
        word for word in ultra_normalize(normalize_text(title)).split()
        if len(word) > 3 and word not in STOP_WORDS
    ]


def detag(text: str) -> str:
    """Tags replaced by spaces and whitespace runs collapsed; used for size estimates."""
    return WHITESPACE_RE.sub(' ', TAG_RE.sub(' ', text or ""))
