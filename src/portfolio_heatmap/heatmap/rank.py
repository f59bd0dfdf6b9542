from __future__ import annotations

import logging
import math
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Sequence

from portfolio_heatmap.config import CHART_CACHE_SIZE
from portfolio_heatmap.heatmap.models import AggregatedHolding

logger = logging.getLogger(__name__)


def _rank_key(h) -> tuple[float, str]:
    pct = h.percent_change
    if pct is None or math.isnan(pct):
        pct = 0.0
    return (-pct, h.ticker.upper())


def ranked(holdings: Sequence) -> list:
    """Holdings ordered best to worst; equal moves are ordered by ticker."""
    return sorted(holdings, key=_rank_key)


def rank_of(holding, all_holdings: Sequence) -> int:
    """1-based performance rank of ``holding`` among ``all_holdings``.

    The holding itself is matched first, so separate lots of one ticker each
    get their own rank; otherwise the first lot with the same ticker is used.
    """
    order = ranked(all_holdings)
    for pos, h in enumerate(order, start=1):
        if h is holding:
            return pos
    ticker = holding.ticker.upper()
    for pos, h in enumerate(order, start=1):
        if h.ticker.upper() == ticker:
            return pos
    raise ValueError(f"{holding.ticker} is not in the portfolio")


class ChartCache:
    """Per-session LRU of intraday series keyed by ticker.

    Entries are never refreshed; a stale series is acceptable for a tooltip.
    """

    def __init__(self, loader: Callable[[str], Sequence[float]], maxsize: int = CHART_CACHE_SIZE) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self._loader = loader
        self._maxsize = maxsize
        self._entries: OrderedDict[str, tuple[float, ...]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, ticker: str) -> bool:
        return ticker.upper() in self._entries

    def get(self, ticker: str) -> tuple[float, ...] | None:
        key = ticker.upper()
        if key in self._entries:
            self._entries.move_to_end(key)
            return self._entries[key]
        try:
            series = tuple(self._loader(key))
        except Exception:
            logger.warning("Failed to load chart series for %s", key, exc_info=True)
            return None
        self._entries[key] = series
        if len(self._entries) > self._maxsize:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted chart series for %s", evicted)
        return series

    def clear(self) -> None:
        self._entries.clear()


@dataclass(frozen=True)
class Tooltip:
    ticker: str
    company_name: str
    allocation_pct: float
    current_value: float
    rank: str
    current_price: float
    chart: tuple[float, ...] | None = None


def tooltip_for(
    holding: AggregatedHolding,
    all_holdings: Sequence[AggregatedHolding],
    chart_cache: ChartCache | None = None,
) -> Tooltip:
    chart = None
    if chart_cache is not None and not holding.is_cash:
        chart = chart_cache.get(holding.ticker)
    return Tooltip(
        ticker=holding.ticker,
        company_name=holding.company_name or "N/A",
        allocation_pct=holding.allocation * 100,
        current_value=holding.current_value,
        rank=f"{rank_of(holding, all_holdings)} of {len(all_holdings)}",
        current_price=holding.current_price,
        chart=chart,
    )
