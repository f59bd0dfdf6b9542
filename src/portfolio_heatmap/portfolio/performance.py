from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, timedelta
from typing import Callable, Iterable

import pandas as pd
from dateutil.relativedelta import relativedelta

from portfolio_heatmap.heatmap.models import ClosedPosition, Holding, PortfolioTotals, Timeframe

logger = logging.getLogger(__name__)

PERIODS: dict[Timeframe, relativedelta] = {
    Timeframe.ONE_DAY: relativedelta(days=1),
    Timeframe.ONE_WEEK: relativedelta(weeks=1),
    Timeframe.ONE_MONTH: relativedelta(months=1),
    Timeframe.THREE_MONTHS: relativedelta(months=3),
    Timeframe.SIX_MONTHS: relativedelta(months=6),
    Timeframe.ONE_YEAR: relativedelta(years=1),
}

# Weekends and holidays have no close; step back this many days looking for one
LOOKBACK_DAYS = 3


def timeframe_start(timeframe: Timeframe | str, today: date | None = None) -> date | None:
    """Reference date for a timeframe. None for "total" (use purchase price)."""
    timeframe = Timeframe.parse(timeframe)
    today = today or date.today()
    if timeframe is Timeframe.TOTAL:
        return None
    if timeframe is Timeframe.YTD:
        return date(today.year, 1, 1)
    return today - PERIODS[timeframe]


def _daily_closes(closes: pd.Series) -> pd.Series:
    idx = pd.DatetimeIndex(pd.to_datetime(closes.index))
    if idx.tz is not None:
        idx = idx.tz_localize(None)
    return pd.Series(closes.to_numpy(), index=idx.normalize()).dropna()


def start_price(closes: pd.Series, start: date) -> float | None:
    """Close on ``start``, or on one of the few days before it."""
    if closes is None or closes.empty:
        return None
    daily = _daily_closes(closes)
    for days_back in range(LOOKBACK_DAYS + 1):
        ts = pd.Timestamp(start - timedelta(days=days_back))
        if ts in daily.index:
            value = daily.loc[ts]
            if isinstance(value, pd.Series):
                value = value.iloc[-1]
            return float(value)
    return None


def timeframe_percent_change(
    closes: pd.Series | None,
    timeframe: Timeframe | str,
    current_price: float,
    purchase_price: float,
    today: date | None = None,
) -> float:
    """Percent move from the timeframe's start close to ``current_price``.

    Falls back to the purchase price when there's no close near the start date.
    """
    timeframe = Timeframe.parse(timeframe)
    start = timeframe_start(timeframe, today)
    base = None
    if start is not None and closes is not None:
        base = start_price(closes, start)
        if base is None:
            logger.warning(
                "No close within %d days of %s for %s, using purchase price",
                LOOKBACK_DAYS, start, timeframe.value,
            )
    if base is None:
        base = purchase_price
    if not base:
        return 0.0
    return (current_price - base) / base * 100


def portfolio_totals(
    open_positions: Iterable[Holding],
    closed_positions: Iterable[ClosedPosition] = (),
) -> PortfolioTotals:
    """Value and lifetime return including realized gains on closed positions."""
    value = 0.0
    cost = 0.0
    for h in open_positions:
        if not h.is_valid:
            continue
        basis = h.purchase_price if h.purchase_price is not None else h.price
        if h.is_cash:
            value += h.shares
            cost += h.shares
        else:
            value += h.shares * h.price
            cost += h.shares * basis
    for c in closed_positions:
        value += c.realized_gain
        cost += c.shares * c.purchase_price

    dollar_return = value - cost
    pct_return = dollar_return / cost * 100 if cost else 0.0
    return PortfolioTotals(
        total_portfolio_value=value,
        total_percentage_return=pct_return,
        total_dollar_return=dollar_return,
    )


def with_timeframe_changes(
    holdings: Iterable[Holding],
    timeframe: Timeframe | str,
    load_closes: Callable[[str, date], pd.Series],
    today: date | None = None,
) -> list[Holding]:
    """Holdings with ``percent_change`` computed here from daily closes.

    Used when the portfolio service sends no per-holding changes. Closes are
    loaded once per ticker; a failed load falls back to the purchase price.
    """
    timeframe = Timeframe.parse(timeframe)
    start = timeframe_start(timeframe, today)
    closes_by_ticker: dict[str, pd.Series | None] = {}

    out = []
    for h in holdings:
        if h.is_cash or not h.is_valid:
            out.append(replace(h, percent_change=0.0) if h.is_cash else h)
            continue
        key = h.ticker.upper()
        if start is not None and key not in closes_by_ticker:
            try:
                closes_by_ticker[key] = load_closes(key, start - timedelta(days=LOOKBACK_DAYS))
            except Exception:
                logger.warning("Failed to load closes for %s", key, exc_info=True)
                closes_by_ticker[key] = None
        pct = timeframe_percent_change(
            closes_by_ticker.get(key),
            timeframe,
            h.price,
            h.purchase_price if h.purchase_price is not None else h.price,
            today,
        )
        out.append(replace(h, percent_change=pct))
    return out
