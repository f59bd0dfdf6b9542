from datetime import date
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest

from portfolio_heatmap.portfolio.quotes import (
    QuoteFetchError,
    fetch_daily_closes,
    fetch_intraday_series,
    fetch_quotes,
)


def _ticker_with(prices: dict):
    def _make(symbol):
        value = prices[symbol]
        if isinstance(value, Exception):
            raise value
        ticker = MagicMock()
        ticker.fast_info = {"lastPrice": value}
        return ticker
    return _make


@patch("portfolio_heatmap.portfolio.quotes.yf")
def test_fetch_quotes(mock_yf):
    mock_yf.Ticker.side_effect = _ticker_with({"AAPL": 150.0, "MSFT": 410.5})
    prices = fetch_quotes(["aapl", "MSFT", "AAPL", "Cash"])

    assert prices == {"AAPL": 150.0, "MSFT": 410.5}
    assert sorted(c.args[0] for c in mock_yf.Ticker.call_args_list) == ["AAPL", "MSFT"]


@patch("portfolio_heatmap.portfolio.quotes.yf")
def test_missing_price_is_omitted(mock_yf):
    mock_yf.Ticker.side_effect = _ticker_with({"AAPL": 150.0, "DELISTED": None})
    assert fetch_quotes(["AAPL", "DELISTED"]) == {"AAPL": 150.0}


@patch("portfolio_heatmap.portfolio.quotes.yf")
def test_failed_lookup_fails_batch(mock_yf):
    mock_yf.Ticker.side_effect = _ticker_with({"AAPL": 150.0, "MSFT": ConnectionError("reset")})
    with pytest.raises(QuoteFetchError) as exc:
        fetch_quotes(["AAPL", "MSFT"])
    assert list(exc.value.failed) == ["MSFT"]


@patch("portfolio_heatmap.portfolio.quotes.yf")
def test_cash_only_makes_no_requests(mock_yf):
    assert fetch_quotes(["CASH", "", "cash"]) == {}
    mock_yf.Ticker.assert_not_called()


@patch("portfolio_heatmap.portfolio.quotes.yf")
def test_intraday_series_flattens_columns(mock_yf):
    idx = pd.date_range("2024-03-15 09:30", periods=3, freq="5min")
    cols = pd.MultiIndex.from_tuples([("Close", "AAPL"), ("Volume", "AAPL")], names=["Price", "Ticker"])
    mock_yf.download.return_value = pd.DataFrame(
        [[150.0, 100], [151.0, 200], [float("nan"), 300]], index=idx, columns=cols,
    )

    assert fetch_intraday_series("AAPL") == [150.0, 151.0]


@patch("portfolio_heatmap.portfolio.quotes.yf")
def test_intraday_series_empty(mock_yf):
    mock_yf.download.return_value = pd.DataFrame()
    assert fetch_intraday_series("AAPL") == []


@patch("portfolio_heatmap.portfolio.quotes.yf")
def test_intraday_series_error(mock_yf):
    mock_yf.download.side_effect = RuntimeError("rate limited")
    with pytest.raises(QuoteFetchError):
        fetch_intraday_series("AAPL")


@patch("portfolio_heatmap.portfolio.quotes.yf")
def test_daily_closes(mock_yf):
    idx = pd.bdate_range("2024-03-11", periods=3)
    cols = pd.MultiIndex.from_tuples([("Close", "AAPL"), ("Open", "AAPL")], names=["Price", "Ticker"])
    mock_yf.download.return_value = pd.DataFrame(
        [[170.0, 169.0], [171.0, 170.0], [172.5, 171.0]], index=idx, columns=cols,
    )

    closes = fetch_daily_closes("AAPL", date(2024, 3, 11), date(2024, 3, 13))

    assert list(closes) == [170.0, 171.0, 172.5]
    kwargs = mock_yf.download.call_args.kwargs
    assert kwargs["start"] == "2024-03-11"
    assert kwargs["end"] == "2024-03-14"


@patch("portfolio_heatmap.portfolio.quotes.yf")
def test_daily_closes_empty(mock_yf):
    mock_yf.download.return_value = pd.DataFrame()
    assert fetch_daily_closes("AAPL", date(2024, 3, 11)).empty
