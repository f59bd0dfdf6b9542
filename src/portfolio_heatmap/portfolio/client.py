from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from portfolio_heatmap.heatmap.models import ClosedPosition, PortfolioTotals, Timeframe
from portfolio_heatmap.heatmap.normalizer import stock_fields

logger = logging.getLogger(__name__)


class PortfolioFetchError(RuntimeError):
    pass


@dataclass(frozen=True)
class PortfolioResponse:
    portfolio_id: int
    timeframe: Timeframe
    open_positions: tuple[Any, ...]
    percent_changes: dict[int, float]
    totals: PortfolioTotals | None
    closed_positions: tuple[ClosedPosition, ...] = ()


def _parse_changes(raw: Any) -> dict[int, float]:
    changes: dict[int, float] = {}
    if not isinstance(raw, dict):
        return changes
    for key, value in raw.items():
        try:
            hid = int(key)
            pct = float(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed percent change %r=%r", key, value)
            continue
        if math.isfinite(pct):
            changes[hid] = pct
    return changes


_TOTAL_KEYS = ("totalPortfolioValue", "totalPercentageReturn", "totalDollarReturn")


def _parse_totals(data: dict) -> PortfolioTotals | None:
    """Service totals, or None when the response carries none of them."""
    if all(data.get(key) is None for key in _TOTAL_KEYS):
        return None
    try:
        return PortfolioTotals(
            total_portfolio_value=float(data["totalPortfolioValue"]),
            total_percentage_return=float(data["totalPercentageReturn"]),
            total_dollar_return=float(data["totalDollarReturn"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise PortfolioFetchError(f"Portfolio totals missing or malformed: {e}") from e


def _parse_closed(raw: Any) -> tuple[ClosedPosition, ...]:
    if not isinstance(raw, list):
        return ()
    closed = []
    for item in raw:
        if not isinstance(item, dict):
            logger.warning("Ignoring closed position reference %r", item)
            continue
        ticker, _ = stock_fields(item)
        if ticker is None:
            logger.warning("Ignoring closed position %s: missing stock metadata", item.get("id"))
            continue
        try:
            position = ClosedPosition(
                ticker=ticker,
                shares=float(item["shares"]),
                purchase_price=float(item["purchasePrice"]),
                selling_price=float(item["sellingPrice"]),
                id=item.get("id"),
            )
        except (KeyError, TypeError, ValueError):
            logger.warning("Ignoring malformed closed position %s", item.get("id"))
            continue
        closed.append(position)
    return tuple(closed)


class PortfolioApiClient:
    """Read-only client for the portfolio service's holdings endpoints."""

    def __init__(self, base_url: str, token: str | None = None, timeout: float = 30) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout

    def _get(self, path: str, params: dict[str, str] | None = None) -> Any:
        url = f"{self._base_url}/{path.lstrip('/')}"
        if params:
            url = f"{url}?{urlencode(params)}"
        headers = {"User-Agent": "portfolio-heatmap/0.1", "Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        req = Request(url, headers=headers)
        try:
            with urlopen(req, timeout=self._timeout) as resp:
                body = resp.read()
        except HTTPError as e:
            raise PortfolioFetchError(f"GET {path} failed with HTTP {e.code}") from e
        except (URLError, OSError) as e:
            raise PortfolioFetchError(f"GET {path} failed: {e}") from e

        try:
            return json.loads(body)
        except ValueError as e:
            raise PortfolioFetchError(f"GET {path} returned invalid JSON") from e

    def get_portfolio(self, portfolio_id: int, timeframe: Timeframe | str) -> PortfolioResponse:
        timeframe = Timeframe.parse(timeframe)
        data = self._get(f"portfolios/{portfolio_id}", {"timeframe": timeframe.value})
        if not isinstance(data, dict):
            raise PortfolioFetchError(f"Portfolio {portfolio_id} response is not an object")

        positions = data.get("openPositions") or []
        if not isinstance(positions, list):
            raise PortfolioFetchError(f"Portfolio {portfolio_id} openPositions is not a list")

        response = PortfolioResponse(
            portfolio_id=portfolio_id,
            timeframe=timeframe,
            open_positions=tuple(positions),
            percent_changes=_parse_changes(data.get("timeframePercentageChanges")),
            totals=_parse_totals(data),
            closed_positions=_parse_closed(data.get("closedPositions")),
        )
        logger.info(
            "Portfolio %s (%s): %d open, %d closed positions",
            portfolio_id, timeframe.value, len(positions), len(response.closed_positions),
        )
        return response

    def get_holding(self, holding_id: int) -> dict:
        data = self._get(f"portfolios/holdings/{holding_id}")
        if not isinstance(data, dict):
            raise PortfolioFetchError(f"Holding {holding_id} response is not an object")
        return data
