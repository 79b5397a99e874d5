"""Terminal output for the paper digest CLI."""

import time
from contextlib import contextmanager

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .records import PipelineResult, ValidationReport, ValidationVerdict

VERDICT_STYLES = {
    ValidationVerdict.EXCELLENT: "bold bright_green",
    ValidationVerdict.GOOD: "bold green",
    ValidationVerdict.WARNING: "bold yellow",
    ValidationVerdict.CRITICAL: "bold bright_red",
}


class DigestUI:
    """Rich console output; writes to stderr so stdout stays machine-readable."""

    def __init__(self, verbose: bool = False, console: Console | None = None):
        self.verbose = verbose
        self.start_time = time.time()
        self.console = console or Console(stderr=True)

    def info(self, message: str):
        self.console.print(Text.assemble(("▸ ", "bold bright_cyan"), (message, "bright_cyan")))

    def success(self, message: str):
        self.console.print(Text.assemble(("✓ ", "bold bright_green"), (message, "bright_green")))

    def warning(self, message: str):
        self.console.print(Text.assemble(("⚠ ", "bold yellow"), (message, "yellow")))

    def error(self, message: str):
        self.console.print(Text.assemble(("✗ ", "bold bright_red"), (message, "bright_red")))

    def verbose_log(self, message: str):
        if self.verbose:
            self.console.print(Text(f"   ◦ {message}", style="dim"))

    @contextmanager
    def stage(self, name: str):
        """Spinner while a pipeline stage runs, with its duration afterwards."""
        stage_start = time.time()
        with self.console.status(f"[bold bright_cyan]{name}..."):
            try:
                yield
            except Exception as e:
                self.error(f"{name} failed: {e}")
                raise
        self.console.print(f"   [dim]{name} completed in {time.time() - stage_start:.1f}s[/dim]")

    def show_validation(self, report: ValidationReport):
        """Table of match strengths plus the removed titles."""
        table = Table(show_header=True, header_style="bold cyan", box=box.SIMPLE)
        table.add_column("Match", style="dim")
        table.add_column("Papers", justify="right")
        for strength, count in report.counts_by_strength().items():
            table.add_row(strength, str(count))
        self.console.print(table)

        verdict_text = Text()
        verdict_text.append(f"Validation rate: {report.validation_rate:.1f}% ", style="bold")
        verdict_text.append(report.verdict.value.upper(), style=VERDICT_STYLES[report.verdict])
        self.console.print(verdict_text)

        removed = [r for r in report.results if not r.found]
        if removed and self.verbose:
            for result in removed:
                self.verbose_log(f"removed: {result.paper.title[:80]} ({result.evidence})")

    def show_final_summary(self, result: PipelineResult, metrics: dict[str, int], output_file: str):
        summary_table = Table(show_header=False, box=box.SIMPLE, padding=(0, 2))
        summary_table.add_column("Metric", style="dim blue")
        summary_table.add_column("Value", style="bold bright_blue")

        summary_table.add_row("Messages", str(metrics.get("messages", 0)))
        summary_table.add_row("Articles extracted", str(metrics.get("extracted", 0)))
        summary_table.add_row("Batches (failed)", f"{metrics.get('batches', 0)} ({metrics.get('failed_batches', 0)})")
        summary_table.add_row("Scored", str(metrics.get("scored", 0)))
        summary_table.add_row("Final papers", str(len(result.papers)))
        summary_table.add_row("Output", output_file)
        summary_table.add_row("Total time", f"{time.time() - self.start_time:.1f}s")

        self.console.print(Panel(
            summary_table,
            title="[bold cyan]Paper digest ready[/bold cyan]",
            box=box.ROUNDED,
            border_style="bright_blue",
        ))


def init_ui(verbose: bool = False) -> DigestUI:
    """Initialize UI for the session."""
    return DigestUI(verbose=verbose)
