"""Per-publisher article extraction strategies.

Each strategy takes a message body and subject and returns the articles it
recognises, deduplicated by a truncated lowercase title key. Strategies are
pure: they never fetch anything and never mutate their input.
"""

import re
from collections.abc import Callable, Iterable
from urllib.parse import unquote

from selectolax.parser import HTMLParser, Node

from ..logging import get_logger
from ..processing.text_utils import collapse_whitespace, html_to_plain_text
from ..records import ExtractedArticle
from .classifier import resolve_nature_journal

logger = get_logger(__name__)

Strategy = Callable[[str, str], list[ExtractedArticle]]


# ── Shared helpers ─────────────────────────────────────────────────────────

def _text(node: Node | None) -> str:
    if node is None:
        return ""
    return (node.text() or "").strip()


def _attr(node: Node | None, name: str) -> str:
    if node is None:
        return ""
    return node.attributes.get(name) or ""


def _has_style(style: str, prop: str, value: str) -> bool:
    return re.search(rf'{re.escape(prop)}\s*:\s*{re.escape(value)}', style) is not None


def _closest(node: Node | None, tags: Iterable[str], include_self: bool = False) -> Node | None:
    """Nearest ancestor (optionally the node itself) whose tag is in ``tags``."""
    wanted = set(tags)
    current = node if include_self else (node.parent if node is not None else None)
    while current is not None:
        if current.tag in wanted:
            return current
        current = current.parent
    return None


def _next_element(node: Node) -> Node | None:
    """Next sibling element, skipping text and comment nodes."""
    sibling = node.next
    while sibling is not None and sibling.tag.startswith(('-', '_')):
        sibling = sibling.next
    return sibling


def _html(node: Node | None) -> str:
    if node is None:
        return ""
    return node.html or ""


def dedupe_by_title(
    articles: list[ExtractedArticle],
    key_length: int | None = None,
) -> list[ExtractedArticle]:
    """Keep the first article per lowercase title prefix."""
    unique: list[ExtractedArticle] = []
    seen: set[str] = set()
    for article in articles:
        title = article.title.lower()
        key = (title[:key_length] if key_length else title).strip()
        if key not in seen:
            seen.add(key)
            unique.append(article)
    return unique


# ── Google Scholar ─────────────────────────────────────────────────────────

SCHOLAR_FALLBACK_VENUE = 'Google Scholar'
SCHOLAR_CITATION_COLOR = '#006621'
_CITATION_RE = re.compile(r'^(.+?)\s+[-–—]\s+(.+)$')
_VENUE_YEAR_RE = re.compile(r'^(.+?),?\s*(19|20)\d{2}$')
_TRAILING_YEAR_RE = re.compile(r'[,\s]+(19|20)\d{2}$')
_PUNCTUATION_ONLY_RE = re.compile(r'^[\d\s\-.,;:]+$')


def parse_scholar_citation(citation: str) -> tuple[str, str]:
    """Split a Scholar citation line into ``(authors, venue)``.

    Format is ``Authors - Venue, Year``. Venues that are too short, made of
    digits and punctuation only, or truncated with an ellipsis are replaced
    by the generic Scholar label.
    """
    normalized = citation.replace('\xa0', ' ')
    match = _CITATION_RE.match(normalized)
    if not match:
        return "", SCHOLAR_FALLBACK_VENUE

    authors = match.group(1).strip()
    after_dash = match.group(2).strip()

    year_match = _VENUE_YEAR_RE.match(after_dash)
    if year_match:
        venue = year_match.group(1).rstrip(',').strip()
    else:
        venue = _TRAILING_YEAR_RE.sub('', after_dash).strip()

    if (
        len(venue) <= 3
        or _PUNCTUATION_ONLY_RE.match(venue)
        or '...' in venue
        or '…' in venue
    ):
        venue = SCHOLAR_FALLBACK_VENUE
    return authors, venue


def extract_scholar(body: str, subject: str = "") -> list[ExtractedArticle]:
    """Scholar digests: ``<h3><a class="gse_alrt_title">`` followed by citation and snippet siblings."""
    tree = HTMLParser(body)
    articles: list[ExtractedArticle] = []

    for heading in tree.css('h3'):
        link = heading.css_first('a.gse_alrt_title, a[class*="gse_alrt"]')
        if link is None:
            continue

        title = _text(link)
        if len(title) < 10:
            continue

        citation = ""
        snippet = ""
        sibling = _next_element(heading)
        visited = 0
        while sibling is not None and sibling.tag != 'h3' and visited < 3:
            text = _text(sibling)
            style = _attr(sibling, 'style')
            css_class = _attr(sibling, 'class')

            if _has_style(style, 'color', SCHOLAR_CITATION_COLOR):
                citation = text
            elif 'sni' in css_class:
                snippet = text
            elif len(text) > 20 and not citation:
                citation = text
            elif len(text) > 20 and citation and not snippet:
                snippet = text

            sibling = _next_element(sibling)
            visited += 1

        authors, venue = ("", SCHOLAR_FALLBACK_VENUE)
        if citation:
            authors, venue = parse_scholar_citation(citation)

        articles.append(ExtractedArticle(
            title=title,
            authors=authors or None,
            abstract=snippet or None,
            source_name=venue,
            origin_fragment=f"<h3>{title}</h3>\n<div>{citation}</div>\n<div>{snippet}</div>",
        ))

    return dedupe_by_title(articles)


# ── Cell Press ─────────────────────────────────────────────────────────────

# Most specific first; plain "Cell" must stay last.
CELL_JOURNALS = (
    'Cell Reports Medicine',
    'Cell Reports Physical Science',
    'Cell Reports Methods',
    'Cell Stem Cell',
    'Cell Reports',
    'Cell Metabolism',
    'Cell Systems',
    'Cell Chemical Biology',
    'Cell Host & Microbe',
    'Developmental Cell',
    'Molecular Cell',
    'Cancer Cell',
    'Cell Genomics',
    'Immunity',
    'Neuron',
    'Structure',
    'iScience',
    'Cell',
)

CELL_URL_SLUGS = {
    'cell-stem-cell': 'Cell Stem Cell',
    'cell-reports': 'Cell Reports',
    'cell-metabolism': 'Cell Metabolism',
    'cell-systems': 'Cell Systems',
    'cell-chemical-biology': 'Cell Chemical Biology',
    'cell-host-microbe': 'Cell Host & Microbe',
    'developmental-cell': 'Developmental Cell',
    'molecular-cell': 'Molecular Cell',
    'cancer-cell': 'Cancer Cell',
    'cell-genomics': 'Cell Genomics',
    'cell-reports-medicine': 'Cell Reports Medicine',
    'cell-reports-physical-science': 'Cell Reports Physical Science',
    'cell-reports-methods': 'Cell Reports Methods',
    'immunity': 'Immunity',
    'neuron': 'Neuron',
    'structure': 'Structure',
    'iscience': 'iScience',
    'cell': 'Cell',
}

CELL_DEFAULT_JOURNAL = 'Cell Press'
CELL_SKIP_HREF = (
    'unsubscribe', 'facebook', 'twitter', 'youtube', 'issue?pii',
    '/home', '/pb-assets/', '/archive', 'newarticles',
)
CELL_SKIP_TITLE = ('online now', 'table of contents', 'archive')

_CELL_PII_RE = re.compile(r'S(\d{4}-\d{4})\((\d{2})\)(\d{5}-?\d?)')
_CELL_CONTEXT_DOI_RE = re.compile(r'doi[:\s]*([0-9.]+/S[^\s<>"]+)', re.IGNORECASE)
_CELL_SLUG_RE = re.compile(r'cell\.com/([^/]+)/')


def _looks_like_authors(text: str, min_length: int = 5) -> bool:
    return min_length < len(text) < 500 and ('et al' in text or text.count(',') >= 2)


def cell_journal_from_subject(subject: str) -> str:
    subject_lower = subject.lower()
    for journal in CELL_JOURNALS:
        if journal.lower() in subject_lower:
            return journal
    return CELL_DEFAULT_JOURNAL


def cell_doi(decoded_href: str, context_html: str) -> str | None:
    """DOI from the PII embedded in a Cell URL, else from the surrounding markup."""
    pii = _CELL_PII_RE.search(decoded_href)
    if pii:
        return f"10.1016/j.cell.20{pii.group(2)}.{pii.group(3)}"
    context_match = _CELL_CONTEXT_DOI_RE.search(context_html)
    return context_match.group(1) if context_match else None


def _cell_authors(link: Node, container: Node | None) -> str:
    row = _closest(link, {'tr'})
    if row is not None:
        next_row = _next_element(row)
        if next_row is not None and next_row.tag == 'tr':
            italic = next_row.css_first('i')
            if italic is not None:
                text = _text(italic)
                if _looks_like_authors(text):
                    return text

    authors = ""
    if container is not None:
        for italic in container.css('i'):
            text = _text(italic)
            if _looks_like_authors(text, min_length=10):
                authors = text
    return authors


def extract_cell_press(body: str, subject: str = "") -> list[ExtractedArticle]:
    """Cell Press digests: article anchors pointing at cell.com, possibly via the Elsevier redirector."""
    tree = HTMLParser(body)
    articles: list[ExtractedArticle] = []
    default_journal = cell_journal_from_subject(subject)

    for link in tree.css('a'):
        href = _attr(link, 'href')
        decoded_href = unquote(href)
        if 'cell.com' not in href and 'cell.com' not in decoded_href:
            continue

        if any(marker in decoded_href for marker in CELL_SKIP_HREF):
            continue
        if 'fulltext' not in decoded_href and '/article/' not in decoded_href:
            continue

        title = collapse_whitespace(link.text() or "")
        if len(title) < 20 or len(title) > 300:
            continue
        if any(label in title.lower() for label in CELL_SKIP_TITLE):
            continue

        container = _closest(link, {'td', 'div'})
        context_html = _html(container)

        journal = default_journal
        if journal == CELL_DEFAULT_JOURNAL:
            slug = _CELL_SLUG_RE.search(decoded_href)
            if slug and slug.group(1) in CELL_URL_SLUGS:
                journal = CELL_URL_SLUGS[slug.group(1)]

        articles.append(ExtractedArticle(
            title=title,
            authors=_cell_authors(link, container) or None,
            doi=cell_doi(decoded_href, context_html),
            source_name=journal,
            origin_fragment=context_html or _html(link),
        ))

    return dedupe_by_title(articles)


# ── Nature portfolio ───────────────────────────────────────────────────────

NATURE_DEFAULT_JOURNAL = 'Nature'
NATURE_RESEARCH_SECTIONS = ('news &amp; views', 'news & views', 'reviews', 'articles')
NATURE_SKIP_TEXT = ('unsubscribe', '©', 'preferences', 'Sign up')
_NEXT_HEADING_RE = re.compile(r'<h[23][^>]*>', re.IGNORECASE)


def _is_nature_href(href: str) -> bool:
    return 'springernature.com' in href or 'nature.com' in href


def narrow_to_research_sections(html: str) -> str:
    """Concatenate the research subsections of a Nature digest.

    Each section runs from its ``h2``/``h3`` heading up to the next one.
    Returns an empty string when no research heading is present.
    """
    research = []
    for section in NATURE_RESEARCH_SECTIONS:
        pattern = re.compile(
            rf'<h[23][^>]*>\s*{re.escape(section)}[^<]*</h[23]>', re.IGNORECASE
        )
        match = pattern.search(html)
        if not match:
            continue
        end = _NEXT_HEADING_RE.search(html, match.end())
        research.append(html[match.start():end.start() if end else len(html)])
        logger.debug("nature_section_found", section=section)
    return ''.join(research)


def extract_nature(body: str, subject: str = "", journal: str | None = None) -> list[ExtractedArticle]:
    """Nature digests: 18px title spans inside the research subsections.

    The sub-brand comes from the subject unless ``journal`` is given.
    """
    if journal is None:
        journal = resolve_nature_journal(subject)
    research_html = narrow_to_research_sections(body)
    if not research_html:
        logger.warning("nature_research_sections_missing", journal=journal, body_length=len(body))
        research_html = body

    research = HTMLParser(research_html)
    articles: list[ExtractedArticle] = []

    for span in research.css('span'):
        if not _has_style(_attr(span, 'style'), 'font-size', '18px'):
            continue
        link = span.css_first('a')
        if link is None:
            continue

        href = _attr(link, 'href')
        title = _text(link)
        if len(title) < 20 or len(title) > 500:
            continue
        if not _is_nature_href(href):
            continue

        cell = _closest(span, {'td'})
        abstract = ""
        authors = ""
        if cell is not None:
            for candidate in cell.css('span'):
                style = _attr(candidate, 'style')
                if _has_style(style, 'font-size', '16px'):
                    text = _text(candidate)
                    if 50 < len(text) < 1000:
                        abstract = text
                if _has_style(style, 'font-size', '14px') and _has_style(style, 'font-weight', 'bold'):
                    authors = _text(candidate)

        articles.append(ExtractedArticle(
            title=title,
            authors=authors or None,
            abstract=abstract or None,
            source_name=journal,
            origin_fragment=_html(cell) or _html(span),
        ))

    if not articles:
        for cell in HTMLParser(body).css('td'):
            text = _text(cell)
            if len(text) < 100 or len(text) > 2000:
                continue
            link = cell.css_first('a[href*="springernature"], a[href*="nature.com"]')
            if link is None:
                continue
            link_text = _text(link)
            if len(link_text) < 20:
                continue
            if any(marker in text for marker in NATURE_SKIP_TEXT):
                continue
            articles.append(ExtractedArticle(
                title=link_text,
                source_name=journal,
                origin_fragment=_html(cell),
            ))

    return dedupe_by_title(articles, key_length=80)


def extract_nature_default(body: str, subject: str = "") -> list[ExtractedArticle]:
    """Nature strategy for unrecognised senders; every article is credited to Nature."""
    return extract_nature(body, subject, journal=NATURE_DEFAULT_JOURNAL)


# ── bioRxiv / medRxiv ──────────────────────────────────────────────────────

_PREPRINT_HREF_DOI_RE = re.compile(r'10\.\d+/[\d.]+')
_PLAIN_DOI_RE = re.compile(r'doi[:\s]+\s*(10\.\d+/[^\s\[\]<>]+)', re.IGNORECASE)
_SECTION_HEADER_RE = re.compile(r'^[A-Z][a-z]+(\s+[A-Z][a-z]+)*$')
_AUTHOR_START_RE = re.compile(r'^[A-Z][a-z]+ [A-Z][a-z]+,')
PREPRINT_LOOKBACK = 600
PREPRINT_SECTION_HEADERS = {'Bioinformatics', 'Genomics', 'Systems Biology'}


def _is_preprint_boilerplate(line: str) -> bool:
    lowered = line.lower()
    if any(marker in lowered for marker in ('biorxiv posted', 'medrxiv posted', 'biorxiv ', 'medrxiv ')):
        return True
    if '[Abstract]' in line or '[PDF]' in line or '[Full Text]' in line:
        return True
    if line in PREPRINT_SECTION_HEADERS:
        return True
    return bool(_SECTION_HEADER_RE.match(line)) and len(line) < 30


def _is_author_line(line: str) -> bool:
    commas = line.count(',')
    return (
        (' and ' in line and commas >= 1)
        or commas >= 3
        or bool(_AUTHOR_START_RE.match(line))
    )


def find_title_before_doi(preceding: str) -> tuple[str, str]:
    """Walk lines backwards from a DOI and return ``(title, authors)``."""
    lines = [line for line in re.split(r'[\r\n]+', preceding) if line.strip()]
    title = ""
    authors = ""
    for raw_line in reversed(lines):
        line = raw_line.strip()
        if _is_preprint_boilerplate(line):
            continue
        if not authors and _is_author_line(line):
            authors = line
            continue
        if 25 < len(line) < 400:
            title = line
            break
    return title, authors


def _preprint_plain_text(body: str) -> list[ExtractedArticle]:
    plain_text = html_to_plain_text(body).strip()
    matches = list(_PLAIN_DOI_RE.finditer(plain_text))
    if not matches:
        logger.debug("preprint_no_doi_found", text_length=len(plain_text))
        return []

    journal = 'medRxiv' if 'medrxiv' in plain_text.lower() else 'bioRxiv'
    articles = []
    for match in matches:
        preceding = plain_text[max(0, match.start() - PREPRINT_LOOKBACK):match.start()]
        title, authors = find_title_before_doi(preceding)
        if not title:
            continue
        doi = match.group(1)
        articles.append(ExtractedArticle(
            title=title,
            authors=authors or None,
            doi=doi,
            source_name=journal,
            origin_fragment=f"{title}\n{authors}\ndoi:{doi}",
        ))
    return articles


def extract_preprint(body: str, subject: str = "") -> list[ExtractedArticle]:
    """bioRxiv/medRxiv digests: server links first, DOI-anchored plain text otherwise."""
    tree = HTMLParser(body)
    articles: list[ExtractedArticle] = []

    for link in tree.css('a[href*="biorxiv.org"], a[href*="medrxiv.org"]'):
        href = _attr(link, 'href')
        title = _text(link)
        if len(title) < 20 or 'unsubscribe' in title.lower():
            continue

        doi_match = _PREPRINT_HREF_DOI_RE.search(href)
        container = _closest(link, {'tr', 'div'})
        context_html = _html(container) or _html(link.parent)

        articles.append(ExtractedArticle(
            title=title,
            doi=doi_match.group(0) if doi_match else None,
            source_name='medRxiv' if 'medrxiv' in href else 'bioRxiv',
            origin_fragment=context_html,
        ))

    if not articles:
        articles = _preprint_plain_text(body)

    return dedupe_by_title(articles, key_length=60)


# ── AHA Journals ───────────────────────────────────────────────────────────

AHA_DEFAULT_JOURNAL = 'AHA Journals'
AHA_SKIP_TITLE = ('view in browser', 'unsubscribe', 'privacy policy')
AHA_AUTHOR_SELECTOR = '.loa, [class*="author"], [class*="contrib"]'
_AHA_DOI_RE = re.compile(r'doi/(?:full/|abs/)?([0-9.]+/[^\s?&]+)', re.IGNORECASE)

# Longer names first so "Circulation Research" never resolves to "Circulation".
AHA_JOURNAL_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (('circulation research',), 'Circulation Research'),
    (('circulation: heart failure', 'circ heart fail'), 'Circulation: Heart Failure'),
    (('circulation: genomic', 'circ genom'), 'Circulation: Genomic and Precision Medicine'),
    (('circulation',), 'Circulation'),
    (('hypertension',), 'Hypertension'),
    (('stroke',), 'Stroke'),
    (('arteriosclerosis', 'atvb'), 'Arteriosclerosis, Thrombosis, and Vascular Biology'),
    (('jaha', 'journal of the american heart'), 'JAHA'),
    (('circ cardiovasc',), 'Circulation: Cardiovascular'),
)


def detect_aha_journal(subject: str, context: str) -> str:
    text = f"{subject} {context}".lower()
    for needles, journal in AHA_JOURNAL_RULES:
        if any(needle in text for needle in needles):
            return journal
    return AHA_DEFAULT_JOURNAL


def _aha_doi(href: str) -> str | None:
    match = _AHA_DOI_RE.search(href)
    return match.group(1) if match else None


def _aha_authors(context: Node | None) -> str:
    """Author list near a title, climbing up to two nested-table levels."""
    if context is None:
        return ""
    found = context.css_first(AHA_AUTHOR_SELECTOR)

    if found is None:
        table = _closest(context, {'table'}, include_self=True)
        parent_table = _closest(table.parent, {'table'}, include_self=True) if table is not None and table.parent is not None else None
        if parent_table is not None:
            found = parent_table.css_first(AHA_AUTHOR_SELECTOR)

            if found is None:
                grand_table = (
                    _closest(parent_table.parent, {'table'}, include_self=True)
                    if parent_table.parent is not None else None
                )
                if grand_table is not None:
                    found = grand_table.css_first(AHA_AUTHOR_SELECTOR)

    return collapse_whitespace(found.text() or "") if found is not None else ""


def extract_aha(body: str, subject: str = "") -> list[ExtractedArticle]:
    """AHA digests: bold/large styled anchors, styled title spans, then a table-cell pass."""
    tree = HTMLParser(body)
    articles: list[ExtractedArticle] = []

    styled_links = tree.css(
        'a[style*="font-weight:bold"], a[style*="font-weight: bold"], '
        'a[style*="font-size:18px"], a[style*="font-size: 18px"]'
    )
    for link in styled_links:
        title = collapse_whitespace(link.text() or "")
        if len(title) < 15:
            continue
        if any(label in title.lower() for label in AHA_SKIP_TITLE):
            continue

        context = _closest(link, {'td', 'div', 'tr'})
        context_html = _html(context)
        articles.append(ExtractedArticle(
            title=title,
            doi=_aha_doi(_attr(link, 'href')),
            source_name=detect_aha_journal(subject, context_html),
            origin_fragment=context_html or _html(link),
        ))

    for span in tree.css('span[style*="font-weight"], span[class*="title"]'):
        style = _attr(span, 'style')
        css_class = _attr(span, 'class')
        if 'font-weight' not in style and 'title' not in css_class:
            continue

        title = collapse_whitespace(span.text() or "")
        if len(title) < 15:
            continue
        if 'view in browser' in title.lower() or 'unsubscribe' in title.lower():
            continue

        enclosing = _closest(span, {'a'})
        if enclosing is not None:
            href = _attr(enclosing, 'href')
        else:
            nearby = span.parent.css_first('a') if span.parent is not None else None
            href = _attr(nearby, 'href')

        context = _closest(span, {'td', 'div', 'table', 'tr'})
        context_html = _html(context)
        articles.append(ExtractedArticle(
            title=title,
            authors=_aha_authors(context) or None,
            doi=_aha_doi(href),
            source_name=detect_aha_journal(subject, context_html),
            origin_fragment=context_html or _html(span),
        ))

    if not articles:
        logger.debug("aha_table_fallback")
        for cell in tree.css('td'):
            text = _text(cell)
            if len(text) < 30 or len(text) > 500:
                continue
            link = cell.css_first('a[href*="ahajournals.org"], a[href*="doi.org"]')
            if link is None:
                continue
            title = _text(link)
            if len(title) < 15:
                continue
            context_html = _html(cell)
            articles.append(ExtractedArticle(
                title=title,
                doi=_aha_doi(_attr(link, 'href')),
                source_name=detect_aha_journal(subject, context_html),
                origin_fragment=context_html,
            ))

    return dedupe_by_title(articles, key_length=50)
