"""Bar-chart snapshot of accumulated application usage."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping

from matplotlib.figure import Figure

from .errors import RenderFailure

logger = logging.getLogger(__name__)

_UNTITLED = "(untitled)"
_BAR_COLOR = "#c2185b"


class BarChartRenderer:
    """Draws one bar per application and overwrites a fixed PNG file."""

    def __init__(self, output_path: Path, *, max_bars: int = 20) -> None:
        self.output_path = Path(output_path)
        self.max_bars = max_bars

    def render(self, totals: Mapping[str, int]) -> Path:
        try:
            figure = self._build_figure(totals)
            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            figure.savefig(self.output_path, format="png", dpi=100)
        except (OSError, ValueError, RuntimeError) as exc:
            raise RenderFailure(f"Failed to write usage graph {self.output_path}: {exc}") from exc
        logger.info("Usage graph written to %s", self.output_path)
        return self.output_path

    def _build_figure(self, totals: Mapping[str, int]) -> Figure:
        figure = Figure(figsize=(8, 6), layout="tight")
        ax = figure.add_subplot()
        ax.set_title("Application Usage Over Time")

        items = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
        if len(items) > self.max_bars:
            head, tail = items[: self.max_bars - 1], items[self.max_bars - 1 :]
            items = head + [("Other", sum(seconds for _, seconds in tail))]

        if not items:
            ax.text(0.5, 0.5, "No activity recorded yet", ha="center", va="center")
            ax.set_axis_off()
            return figure

        labels = [name or _UNTITLED for name, _ in items]
        minutes = [seconds / 60.0 for _, seconds in items]
        positions = range(len(items))
        ax.bar(positions, minutes, color=_BAR_COLOR)
        ax.set_xticks(list(positions))
        ax.set_xticklabels(labels, rotation=45, ha="right", fontsize=9)
        ax.set_ylabel("Minutes")
        ax.grid(axis="y", linestyle=":", alpha=0.4)
        return figure
