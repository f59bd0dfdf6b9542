from unittest.mock import MagicMock

import pytest

from portfolio_heatmap.heatmap.models import HoldingRef, RawHolding
from portfolio_heatmap.heatmap.normalizer import (
    as_holding_input,
    normalize_holding,
    normalize_holdings,
    resolve_references,
    tickers_to_quote,
)


def _payload(hid, ticker, shares, purchase_price, company=None):
    stock = {"ticker": ticker}
    if company:
        stock["companyName"] = company
    return {"id": hid, "stock": stock, "shares": shares, "purchasePrice": purchase_price}


def test_full_payload_uses_quote():
    h = normalize_holding(_payload(1, "AAPL", 10, 120.0, "Apple Inc."), {"AAPL": 150.0}, {1: 2.5})
    assert h.ticker == "AAPL"
    assert h.shares == 10.0
    assert h.purchase_price == 120.0
    assert h.current_price == 150.0
    assert h.percent_change == 2.5
    assert h.company_name == "Apple Inc."
    assert h.id == 1


def test_missing_quote_falls_back_to_purchase_price():
    h = normalize_holding(_payload(1, "IBM", 2, 125.0), {})
    assert h.current_price == 125.0


def test_lowercase_ticker_matches_uppercase_quote():
    h = normalize_holding(_payload(1, "msft", 1, 300.0), {"MSFT": 410.0})
    assert h.current_price == 410.0


def test_cash_skips_quote_lookup():
    prices = MagicMock()
    h = normalize_holding(_payload(7, "Cash", 500, None), prices, {7: 3.0})
    assert h.current_price == 1.0
    assert h.percent_change == 0.0
    prices.get.assert_not_called()


def test_flat_ticker_payload():
    h = normalize_holding({"ticker": "KO", "shares": "15", "purchase_price": "55.5"}, {"KO": 60.0})
    assert h.ticker == "KO"
    assert h.shares == 15.0
    assert h.purchase_price == 55.5
    assert h.id is None


@pytest.mark.parametrize("payload", [
    {"id": 1, "shares": 10, "purchasePrice": 100.0},
    {"id": 1, "stock": {}, "shares": 10, "purchasePrice": 100.0},
    {"id": 1, "stock": {"ticker": "AAPL"}, "purchasePrice": 100.0},
    {"id": 1, "stock": {"ticker": "AAPL"}, "shares": 0, "purchasePrice": 100.0},
    {"id": 1, "stock": {"ticker": "AAPL"}, "shares": "lots", "purchasePrice": 100.0},
    {"id": 1, "stock": {"ticker": "AAPL"}, "shares": 10, "purchasePrice": None},
])
def test_incomplete_payload_dropped(payload):
    assert normalize_holding(payload, {}) is None


def test_reference_is_fetched():
    fetch = MagicMock(return_value={"stock": {"ticker": "NVDA"}, "shares": 3, "purchasePrice": 400.0})
    h = normalize_holding(42, {"NVDA": 900.0}, {"42": 4.2}, fetch_holding=fetch)
    fetch.assert_called_once_with(42)
    assert h.id == 42
    assert h.current_price == 900.0
    assert h.percent_change == 4.2


def test_reference_fetch_failure_dropped():
    fetch = MagicMock(side_effect=RuntimeError("503"))
    assert normalize_holding(42, {}, fetch_holding=fetch) is None


def test_reference_without_fetcher_dropped():
    assert normalize_holding(HoldingRef(42), {}) is None


def test_as_holding_input():
    assert as_holding_input(12) == HoldingRef(12)
    assert as_holding_input(" 12 ") == HoldingRef(12)
    assert isinstance(as_holding_input({"ticker": "A"}), RawHolding)
    with pytest.raises(TypeError):
        as_holding_input(1.5)
    with pytest.raises(TypeError):
        as_holding_input(True)


def test_normalize_batch_keeps_valid_in_order():
    items = [
        _payload(1, "AAPL", 10, 120.0),
        _payload(2, "BAD", 0, 10.0),
        3,
        None,
        _payload(4, "Cash", 250, None),
    ]
    fetch = MagicMock(side_effect=RuntimeError("gone"))
    holdings = normalize_holdings(items, {"AAPL": 150.0}, {1: 1.0}, fetch_holding=fetch)
    assert [h.ticker for h in holdings] == ["AAPL", "Cash"]


def test_resolve_references():
    fetch = MagicMock(return_value={"stock": {"ticker": "VTI"}, "shares": 1, "purchasePrice": 200.0})
    records = resolve_references([_payload(1, "AAPL", 10, 120.0), 9, "junk"], fetch)
    assert [r["id"] for r in records] == [1, 9]
    assert records[1]["stock"]["ticker"] == "VTI"


def test_tickers_to_quote():
    records = [
        _payload(1, "aapl", 1, 1.0),
        _payload(2, "AAPL", 1, 1.0),
        _payload(3, "CASH", 1, None),
        {"ticker": "MSFT", "shares": 1},
        17,
    ]
    assert tickers_to_quote(records) == ["AAPL", "MSFT"]


def test_repeat_lots_with_bare_ticker_stock():
    items = [
        _payload(1, "AAPL", 10, 120.0, "Apple Inc."),
        {"id": 2, "stock": "AAPL", "shares": 10, "purchasePrice": 140.0},
        {"id": 3, "stock": {"ticker": "Cash"}, "shares": 1000},
    ]
    holdings = normalize_holdings(items, {"AAPL": 150.0}, {1: 1.0, 2: 1.0})

    assert [h.id for h in holdings] == [1, 2, 3]
    second = holdings[1]
    assert second.ticker == "AAPL"
    assert second.purchase_price == 140.0
    assert second.current_price == 150.0
    assert second.company_name == "Apple Inc."


def test_resolve_references_expands_bare_ticker_stock():
    fetch = MagicMock(return_value={"stock": "MSFT", "shares": 2, "purchasePrice": 300.0})
    records = resolve_references([_payload(1, "MSFT", 1, 280.0, "Microsoft"), 5], fetch)

    assert records[1]["id"] == 5
    assert records[1]["stock"] == {"ticker": "MSFT", "companyName": "Microsoft"}


def test_tickers_to_quote_reads_bare_ticker_stock():
    records = [{"id": 2, "stock": "nvda", "shares": 1, "purchasePrice": 1.0}]
    assert tickers_to_quote(records) == ["NVDA"]
