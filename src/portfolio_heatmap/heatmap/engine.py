from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Iterable

from portfolio_heatmap.config import CANVAS_HEIGHT, CANVAS_WIDTH, CELL_PADDING, MIN_CELL_SIZE
from portfolio_heatmap.heatmap.aggregate import aggregate, portfolio_snapshot
from portfolio_heatmap.heatmap.colors import color_for, scale_markers
from portfolio_heatmap.heatmap.models import (
    RGBA,
    AggregatedHolding,
    Holding,
    PortfolioSnapshot,
    PortfolioTotals,
    ScaleMarker,
    Timeframe,
    TreemapNode,
)
from portfolio_heatmap.heatmap.treemap import layout, validate_canvas

logger = logging.getLogger(__name__)

EMPTY_MESSAGE = "No holdings to display. Add a position to this portfolio to build the heatmap."
EMPTY_CASH_HIDDEN_MESSAGE = "Only cash is held. Show cash to include it in the heatmap."


@dataclass(frozen=True)
class Heatmap:
    timeframe: Timeframe
    holdings: tuple[AggregatedHolding, ...]
    nodes: tuple[TreemapNode, ...]
    colors: tuple[RGBA, ...]
    legend: tuple[ScaleMarker, ...]
    snapshot: PortfolioSnapshot
    width: int
    height: int

    def cells(self):
        """(holding, node, color) triples in display order."""
        return zip(self.holdings, self.nodes, self.colors)


@dataclass(frozen=True)
class EmptyPortfolio:
    timeframe: Timeframe
    message: str = EMPTY_MESSAGE


def build_heatmap(
    holdings: Iterable[Holding],
    timeframe: Timeframe | str,
    include_cash: bool = True,
    width: int = CANVAS_WIDTH,
    height: int = CANVAS_HEIGHT,
    padding: int = CELL_PADDING,
    min_cell_size: int = MIN_CELL_SIZE,
    totals: PortfolioTotals | None = None,
) -> Heatmap | EmptyPortfolio:
    """Aggregate, lay out and color one portfolio for one timeframe."""
    timeframe = Timeframe.parse(timeframe)
    validate_canvas(width, height, padding, min_cell_size)

    holdings = list(holdings)
    aggregated = aggregate(holdings, timeframe, include_cash=include_cash)
    if not aggregated:
        hidden_cash = not include_cash and any(h.is_cash and h.is_valid for h in holdings)
        return EmptyPortfolio(timeframe, EMPTY_CASH_HIDDEN_MESSAGE if hidden_cash else EMPTY_MESSAGE)

    nodes = layout(
        [(h.ticker, h.allocation) for h in aggregated],
        width, height, padding=padding, min_cell_size=min_cell_size,
    )
    return Heatmap(
        timeframe=timeframe,
        holdings=tuple(aggregated),
        nodes=tuple(nodes),
        colors=tuple(color_for(h.percent_change, timeframe) for h in aggregated),
        legend=tuple(scale_markers(timeframe)),
        snapshot=portfolio_snapshot(aggregated, timeframe, totals),
        width=width,
        height=height,
    )


class HeatmapSession:
    """Holds the latest heatmap for one viewer.

    Each recomputation takes a token from ``begin()``. Only the most recent
    token may commit, so a slow result for a previous portfolio or timeframe
    never replaces a newer one.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._generation = 0
        self._current: Heatmap | EmptyPortfolio | None = None

    @property
    def current(self) -> Heatmap | EmptyPortfolio | None:
        with self._lock:
            return self._current

    def begin(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def commit(self, token: int, result: Heatmap | EmptyPortfolio) -> bool:
        with self._lock:
            if token != self._generation:
                logger.info("Discarding superseded heatmap (token %d, latest %d)", token, self._generation)
                return False
            self._current = result
            return True

    def run(self, compute: Callable[[], Heatmap | EmptyPortfolio]) -> Heatmap | EmptyPortfolio | None:
        """Compute and commit in one step; returns None if superseded.

        An exception from ``compute`` propagates and leaves ``current`` as it was.
        """
        token = self.begin()
        result = compute()
        if self.commit(token, result):
            return result
        return None
