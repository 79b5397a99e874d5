"""
Markdown rendering of digest results.

Renders the ranked paper list and the literature review document from
Jinja2 templates shipped with the package.
"""

from datetime import datetime
from pathlib import Path

from jinja2 import Environment, FileSystemLoader

from .logging import get_logger
from .records import PipelineResult, ScoredPaper

logger = get_logger(__name__)

TEMPLATE_DIR = Path(__file__).parent / 'templates'


class DigestRenderer:
    """Markdown renderer for paper digests."""

    def __init__(self, template_dir: Path | None = None):
        self.template_dir = Path(template_dir or TEMPLATE_DIR)
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self._register_filters()

    def _register_filters(self) -> None:
        def join_authors(authors, empty='Unknown'):
            return ', '.join(authors) if authors else empty

        def format_date(date_obj, format_str='%Y-%m-%d %H:%M'):
            return date_obj.strftime(format_str)

        self.jinja_env.filters['join_authors'] = join_authors
        self.jinja_env.filters['format_date'] = format_date

    def render_paper_list(
        self,
        papers: list[ScoredPaper],
        generated_at: datetime | None = None,
    ) -> str:
        """Numbered Markdown list: title, authors, source, score and keywords."""
        template = self.jinja_env.get_template('paper_list.md.j2')
        return template.render(
            papers=papers,
            generated_at=generated_at or datetime.now(),
        )

    def render_review(self, result: PipelineResult) -> str:
        template = self.jinja_env.get_template('review.md.j2')
        return template.render(summary=result.summary, validation=result.validation)

    def save(self, content: str, output_path: Path) -> Path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(content, encoding='utf-8')
        logger.info("markdown_saved", path=str(output_path))
        return output_path
