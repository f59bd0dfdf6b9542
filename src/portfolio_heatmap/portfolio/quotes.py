from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from typing import Iterable

import pandas as pd
import yfinance as yf

from portfolio_heatmap.heatmap.models import is_cash

logger = logging.getLogger(__name__)

MAX_WORKERS = 8


class QuoteFetchError(RuntimeError):
    def __init__(self, failed: dict[str, BaseException]) -> None:
        self.failed = failed
        super().__init__(f"Failed to fetch quotes for {', '.join(sorted(failed))}")


def _fetch_one(symbol: str) -> float | None:
    info = yf.Ticker(symbol).fast_info
    price = info.get("lastPrice") or info.get("last_price")
    if price and price > 0:
        return float(price)
    return None


def fetch_quotes(tickers: Iterable[str], max_workers: int = MAX_WORKERS) -> dict[str, float]:
    """Current price per ticker, fetched in parallel from yfinance.

    Cash is never requested. Tickers yfinance has no price for are left out
    so callers fall back to cost basis. Any ticker whose lookup raised makes
    the whole batch fail with QuoteFetchError once every fetch has finished.
    """
    symbols = sorted({t.strip().upper() for t in tickers if t and t.strip() and not is_cash(t)})
    if not symbols:
        return {}

    prices: dict[str, float] = {}
    failed: dict[str, BaseException] = {}
    with ThreadPoolExecutor(max_workers=min(max_workers, len(symbols))) as pool:
        futures = {sym: pool.submit(_fetch_one, sym) for sym in symbols}
        for sym, future in futures.items():
            try:
                price = future.result()
            except Exception as e:
                logger.warning("Failed to fetch live price for %s", sym)
                failed[sym] = e
                continue
            if price is None:
                logger.debug("No price for %s", sym)
                continue
            prices[sym] = price

    if failed:
        raise QuoteFetchError(failed)
    logger.info("Fetched %d/%d quotes", len(prices), len(symbols))
    return prices


def _flatten(df: pd.DataFrame) -> pd.DataFrame:
    # yfinance 1.1+ always returns MultiIndex columns (Price, Ticker)
    if isinstance(df.columns, pd.MultiIndex):
        df.columns = df.columns.get_level_values(0)
        df = df.loc[:, ~df.columns.duplicated()]
    return df


def fetch_intraday_series(symbol: str, interval: str = "5m") -> list[float]:
    """Today's intraday closes for a tooltip sparkline."""
    try:
        df = yf.download(symbol, period="1d", interval=interval, progress=False, auto_adjust=False)
    except Exception as e:
        raise QuoteFetchError({symbol: e}) from e

    if df.empty:
        return []

    df = _flatten(df)
    if "Close" not in df.columns:
        logger.warning("No Close column for %s after download", symbol)
        return []
    return [float(v) for v in df["Close"].dropna()]


def fetch_daily_closes(symbol: str, start: date, end: date | None = None) -> pd.Series:
    """Daily closes for ``symbol`` from ``start`` through ``end`` (default today)."""
    end = end or date.today()
    try:
        df = yf.download(
            symbol,
            start=start.isoformat(),
            end=(end + timedelta(days=1)).isoformat(),
            progress=False,
            auto_adjust=False,
        )
    except Exception as e:
        raise QuoteFetchError({symbol: e}) from e

    if df.empty:
        return pd.Series(dtype=float)
    df = _flatten(df)
    if "Close" not in df.columns:
        logger.warning("No Close column for %s after download", symbol)
        return pd.Series(dtype=float)
    return df["Close"].dropna()
