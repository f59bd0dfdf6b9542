from __future__ import annotations

import logging
import math
from typing import Any, Callable, Iterable, Mapping

from portfolio_heatmap.config import CASH_PRICE
from portfolio_heatmap.heatmap.models import (
    Holding,
    HoldingInput,
    HoldingRef,
    RawHolding,
    is_cash,
)

logger = logging.getLogger(__name__)

FetchHolding = Callable[[int], Mapping[str, Any]]


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def _to_id(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def as_holding_input(item: Any) -> HoldingInput:
    """Classify one entry of a holdings list as a reference or a full record."""
    if isinstance(item, (HoldingRef, RawHolding)):
        return item
    if isinstance(item, Mapping):
        return RawHolding(item)
    if isinstance(item, int) and not isinstance(item, bool):
        return HoldingRef(item)
    if isinstance(item, str) and item.strip().isdigit():
        return HoldingRef(int(item))
    raise TypeError(f"Unrecognised holding entry: {item!r}")


def _lookup_change(percent_changes: Mapping[Any, float] | None, holding_id: int | None) -> float:
    if not percent_changes or holding_id is None:
        return 0.0
    value = percent_changes.get(holding_id)
    if value is None:
        value = percent_changes.get(str(holding_id))
    return _to_float(value) or 0.0


def _lookup_price(prices: Mapping[str, float], ticker: str) -> float | None:
    price = prices.get(ticker)
    if price is None:
        price = prices.get(ticker.upper())
    price = _to_float(price)
    if price is None or price <= 0:
        return None
    return price


def stock_fields(payload: Mapping[str, Any]) -> tuple[str | None, str | None]:
    """(ticker, company name) from a record.

    The service serializes a stock in full the first time it appears in a
    response and as its bare ticker after that, so ``stock`` may be a string.
    """
    stock = payload.get("stock")
    if isinstance(stock, Mapping):
        ticker = stock.get("ticker")
        company_name = stock.get("companyName") or stock.get("company_name")
    elif isinstance(stock, str):
        ticker, company_name = stock, None
    else:
        ticker = payload.get("ticker")
        company_name = payload.get("companyName") or payload.get("company_name")
    if not isinstance(ticker, str) or not ticker.strip():
        return None, company_name
    return ticker.strip(), company_name


def company_names(items: Iterable[Any]) -> dict[str, str]:
    """Company name per upper-cased ticker, from the first full stock seen."""
    names: dict[str, str] = {}
    for item in items:
        if not isinstance(item, Mapping):
            continue
        ticker, name = stock_fields(item)
        if ticker and name:
            names.setdefault(ticker.upper(), name)
    return names


def _from_payload(
    payload: Mapping[str, Any],
    prices: Mapping[str, float],
    percent_changes: Mapping[Any, float] | None,
    names: Mapping[str, str] | None = None,
) -> Holding | None:
    ticker, company_name = stock_fields(payload)

    holding_id = _to_id(payload.get("id"))
    if ticker is None:
        logger.warning("Dropping holding %s: missing stock metadata", holding_id)
        return None
    if company_name is None and names:
        company_name = names.get(ticker.upper())

    shares = _to_float(payload.get("shares"))
    if shares is None or shares <= 0:
        logger.warning("Dropping holding %s (%s): missing or non-positive shares", holding_id, ticker)
        return None

    purchase_price = _to_float(payload.get("purchasePrice", payload.get("purchase_price")))

    if is_cash(ticker):
        return Holding(
            ticker=ticker,
            shares=shares,
            purchase_price=purchase_price,
            current_price=CASH_PRICE,
            percent_change=0.0,
            id=holding_id,
            company_name=company_name,
        )

    current_price = _lookup_price(prices, ticker)
    if current_price is None:
        if purchase_price is None or purchase_price <= 0:
            logger.warning("Dropping holding %s (%s): no quote and no purchase price", holding_id, ticker)
            return None
        logger.debug("No quote for %s, using purchase price %.2f", ticker, purchase_price)
        current_price = purchase_price

    return Holding(
        ticker=ticker,
        shares=shares,
        purchase_price=purchase_price,
        current_price=current_price,
        percent_change=_lookup_change(percent_changes, holding_id),
        id=holding_id,
        company_name=company_name,
    )


def normalize_holding(
    item: Any,
    prices: Mapping[str, float],
    percent_changes: Mapping[Any, float] | None = None,
    fetch_holding: FetchHolding | None = None,
    names: Mapping[str, str] | None = None,
) -> Holding | None:
    """Resolve one raw entry into a complete Holding, or None if it can't be.

    Bare ids are fetched through ``fetch_holding``. ``names`` supplies company
    names for records whose stock arrived as a bare ticker. Failures are
    logged and reported as None so one bad entry never sinks the batch.
    """
    entry = as_holding_input(item)
    if isinstance(entry, HoldingRef):
        payload = _fetch_payload(entry, fetch_holding)
        if payload is None:
            return None
        return _from_payload(payload, prices, percent_changes, names)
    return _from_payload(entry.payload, prices, percent_changes, names)


def _fetch_payload(ref: HoldingRef, fetch_holding: FetchHolding | None) -> Mapping[str, Any] | None:
    if fetch_holding is None:
        logger.warning("Dropping holding %s: reference with no fetcher", ref.id)
        return None
    try:
        payload = fetch_holding(ref.id)
    except Exception:
        logger.warning("Failed to fetch holding %s", ref.id, exc_info=True)
        return None
    if not isinstance(payload, Mapping):
        logger.warning("Dropping holding %s: fetch returned %s", ref.id, type(payload).__name__)
        return None
    if payload.get("id") is None:
        payload = {**payload, "id": ref.id}
    return payload


def resolve_references(items: Iterable[Any], fetch_holding: FetchHolding | None) -> list[Mapping[str, Any]]:
    """Replace bare ids with their fetched records so tickers are known up front.

    Entries that can't be classified or fetched are logged and dropped. A
    stock given as a bare ticker is expanded to an object, with the company
    name of the first full record for that ticker.
    """
    resolved: list[Mapping[str, Any]] = []
    for item in items:
        try:
            entry = as_holding_input(item)
        except TypeError:
            logger.warning("Skipping unrecognised holding entry %r", item)
            continue
        if isinstance(entry, RawHolding):
            resolved.append(entry.payload)
            continue
        payload = _fetch_payload(entry, fetch_holding)
        if payload is not None:
            resolved.append(payload)

    names = company_names(resolved)
    for i, record in enumerate(resolved):
        stock = record.get("stock")
        if isinstance(stock, str):
            expanded = {"ticker": stock}
            if stock.strip().upper() in names:
                expanded["companyName"] = names[stock.strip().upper()]
            resolved[i] = {**record, "stock": expanded}
    return resolved


def normalize_holdings(
    items: Iterable[Any],
    prices: Mapping[str, float],
    percent_changes: Mapping[Any, float] | None = None,
    fetch_holding: FetchHolding | None = None,
) -> list[Holding]:
    """Normalize a batch, keeping only valid holdings in input order."""
    items = list(items)
    names = company_names(items)
    holdings: list[Holding] = []
    dropped = 0
    for item in items:
        try:
            holding = normalize_holding(item, prices, percent_changes, fetch_holding, names)
        except TypeError:
            logger.warning("Skipping unrecognised holding entry %r", item)
            holding = None
        if holding is None or not holding.is_valid:
            dropped += 1
            continue
        holdings.append(holding)
    if dropped:
        logger.info("Normalized %d holdings (%d dropped)", len(holdings), dropped)
    return holdings


def tickers_to_quote(items: Iterable[Any]) -> list[str]:
    """Tickers of the full records in a raw holdings list, cash excluded."""
    tickers = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        ticker, _ = stock_fields(item)
        if ticker and not is_cash(ticker):
            tickers.append(ticker.upper())
    return sorted(set(tickers))
