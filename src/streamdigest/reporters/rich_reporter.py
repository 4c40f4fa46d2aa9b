from __future__ import annotations

from collections.abc import Sequence

from rich import box
from rich.console import Console
from rich.rule import Rule
from rich.table import Table

from streamdigest.contracts import Reporter
from streamdigest.models import DigestSummary


class RichReporter(Reporter):
    """Render digest summaries using Rich tables."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()

    def render(self, summaries: Sequence[DigestSummary]) -> None:
        self._console.print()
        self._console.print("Quantile Summary", style="bold underline")
        self._console.print(Rule(style="dim"))
        if not summaries:
            self._console.print("No digests to report.", style="yellow")
            return
        self._console.print(self._build_overview(summaries))
        self._console.print()
        self._console.print(self._build_quantiles(summaries))

    @staticmethod
    def _build_overview(summaries: Sequence[DigestSummary]) -> Table:
        table = Table(box=box.SIMPLE_HEAD)
        table.add_column("Source", style="bold cyan")
        table.add_column("count", justify="right")
        table.add_column("centroids", justify="right")
        table.add_column("compression", justify="right")
        for summary in summaries:
            table.add_row(
                summary.source,
                f"{summary.count:,}",
                f"{summary.centroid_count:,}",
                f"{summary.compression:g}",
            )
        return table

    @staticmethod
    def _build_quantiles(summaries: Sequence[DigestSummary]) -> Table:
        labels: list[str] = []
        for summary in summaries:
            for label in summary.quantiles:
                if label not in labels:
                    labels.append(label)

        table = Table(box=box.SIMPLE_HEAD)
        table.add_column("Source", style="bold cyan")
        for label in labels:
            table.add_column(label, justify="right")
        for summary in summaries:
            cells = [
                f"{summary.quantiles[label]:.6g}" if label in summary.quantiles else "-"
                for label in labels
            ]
            table.add_row(summary.source, *cells)
        return table
