from __future__ import annotations

import logging
import math
from typing import Iterable

from portfolio_heatmap.heatmap.models import (
    AggregatedHolding,
    Holding,
    PortfolioSnapshot,
    PortfolioTotals,
    Timeframe,
)

logger = logging.getLogger(__name__)


def _change(percent_change: float | None) -> float:
    """Percent change with missing or NaN read as flat."""
    if percent_change is None or math.isnan(percent_change):
        return 0.0
    return float(percent_change)


def current_value(holding: Holding) -> float:
    """Market value of a holding. Cash shares are already dollars."""
    if holding.is_cash:
        return float(holding.shares)
    return holding.shares * holding.price


def dollar_change(
    timeframe: Timeframe,
    value: float,
    price: float,
    percent_change: float,
) -> float:
    """Dollar move for the timeframe.

    For "total" this is lifetime profit scaled to present value. Every other
    timeframe reports a per-share-equivalent move off the current price, so
    the two are in different units.
    """
    if timeframe is Timeframe.TOTAL:
        return value * percent_change / 100
    return price * percent_change / 100


def aggregate(
    holdings: Iterable[Holding],
    timeframe: Timeframe | str,
    include_cash: bool = True,
) -> list[AggregatedHolding]:
    """Compute value, allocation and dollar change for each valid holding.

    Returns an empty list when nothing is left to aggregate. Output is sorted
    by allocation (largest first); ties fall back to ticker, then input order.
    """
    timeframe = Timeframe.parse(timeframe)

    rows: list[tuple[Holding, float]] = []
    for h in holdings:
        if not h.is_valid:
            logger.debug("Skipping invalid holding %r", h.ticker)
            continue
        if h.is_cash and not include_cash:
            continue
        rows.append((h, current_value(h)))

    total = sum(v for _, v in rows)
    if not rows or total <= 0:
        return []

    out: list[tuple[int, AggregatedHolding]] = []
    for idx, (h, value) in enumerate(rows):
        price = h.price
        pct = 0.0 if h.is_cash else _change(h.percent_change)
        change = 0.0 if h.is_cash else dollar_change(timeframe, value, price, pct)
        out.append((idx, AggregatedHolding(
            ticker=h.ticker,
            shares=h.shares,
            purchase_price=h.purchase_price,
            current_price=price,
            percent_change=pct,
            current_value=value,
            allocation=value / total,
            dollar_change=change,
            id=h.id,
            company_name=h.company_name,
        )))

    out.sort(key=lambda pair: (-pair[1].allocation, pair[1].ticker.upper(), pair[0]))
    return [agg for _, agg in out]


def total_value(aggregated: Iterable[AggregatedHolding]) -> float:
    return sum(h.current_value for h in aggregated)


def portfolio_snapshot(
    aggregated: list[AggregatedHolding],
    timeframe: Timeframe | str,
    totals: PortfolioTotals | None = None,
) -> PortfolioSnapshot:
    """Portfolio-level view for one timeframe.

    Value is summed from the displayed holdings (so it honours the cash
    toggle); returns come from the service's own totals, which include
    realized gains on closed positions.
    """
    return PortfolioSnapshot(
        timeframe=Timeframe.parse(timeframe),
        total_portfolio_value=total_value(aggregated),
        total_percentage_return=totals.total_percentage_return if totals else None,
        total_dollar_return=totals.total_dollar_return if totals else None,
    )
