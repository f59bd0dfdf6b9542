from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Mapping, NamedTuple

from portfolio_heatmap.config import CASH_PRICE, CASH_TICKERS


class Timeframe(enum.Enum):
    ONE_DAY = "1d"
    ONE_WEEK = "1w"
    ONE_MONTH = "1m"
    THREE_MONTHS = "3m"
    SIX_MONTHS = "6m"
    YTD = "ytd"
    ONE_YEAR = "1y"
    TOTAL = "total"

    @classmethod
    def parse(cls, value: Timeframe | str) -> Timeframe:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown timeframe: {value!r}") from None


def is_cash(ticker: str | None) -> bool:
    return bool(ticker) and ticker.strip().upper() in CASH_TICKERS


@dataclass(frozen=True)
class Holding:
    ticker: str
    shares: float
    purchase_price: float | None
    current_price: float | None
    percent_change: float = 0.0
    id: int | None = None
    company_name: str | None = None

    @property
    def is_cash(self) -> bool:
        return is_cash(self.ticker)

    @property
    def price(self) -> float | None:
        """Live quote, falling back to cost basis. Cash is always 1.0."""
        if self.is_cash:
            return CASH_PRICE
        if self.current_price is not None:
            return self.current_price
        return self.purchase_price

    @property
    def is_valid(self) -> bool:
        if not self.ticker or not self.ticker.strip():
            return False
        if self.shares is None or not self.shares > 0:
            return False
        return self.price is not None and self.price > 0


@dataclass(frozen=True)
class AggregatedHolding:
    ticker: str
    shares: float
    purchase_price: float | None
    current_price: float
    percent_change: float
    current_value: float
    allocation: float
    dollar_change: float
    id: int | None = None
    company_name: str | None = None

    @property
    def is_cash(self) -> bool:
        return is_cash(self.ticker)


@dataclass(frozen=True)
class ClosedPosition:
    ticker: str
    shares: float
    purchase_price: float
    selling_price: float
    id: int | None = None

    @property
    def realized_gain(self) -> float:
        return (self.selling_price - self.purchase_price) * self.shares


@dataclass(frozen=True)
class PortfolioTotals:
    """Whole-portfolio figures as reported by the portfolio service."""
    total_portfolio_value: float
    total_percentage_return: float
    total_dollar_return: float


@dataclass(frozen=True)
class PortfolioSnapshot:
    timeframe: Timeframe
    total_portfolio_value: float
    total_percentage_return: float | None
    total_dollar_return: float | None


@dataclass(frozen=True)
class TreemapNode:
    key: str
    x0: int
    y0: int
    x1: int
    y1: int

    @property
    def width(self) -> int:
        return self.x1 - self.x0

    @property
    def height(self) -> int:
        return self.y1 - self.y0

    @property
    def area(self) -> int:
        return self.width * self.height


class RGBA(NamedTuple):
    r: int
    g: int
    b: int
    a: float

    def css(self) -> str:
        return f"rgba({self.r},{self.g},{self.b},{self.a:.2f})"


class ScaleMarker(NamedTuple):
    value: float
    color: RGBA
    label: str


# -- Raw holding inputs ---------------------------------------------------------
#
# The portfolio service returns each open position either as a full object or,
# when the same object was already serialized earlier in the payload, as its
# bare id. Both are resolved by the normalizer before anything else sees them.

@dataclass(frozen=True)
class HoldingRef:
    id: int


@dataclass(frozen=True)
class RawHolding:
    payload: Mapping[str, Any]


HoldingInput = HoldingRef | RawHolding
