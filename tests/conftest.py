import pytest

from portfolio_heatmap.heatmap.models import Holding


@pytest.fixture
def aapl_and_cash():
    """10 AAPL at $150 plus $500 cash -> $2000 portfolio."""
    return [
        Holding(
            ticker="AAPL", shares=10.0, purchase_price=120.0, current_price=150.0,
            percent_change=2.0, id=1, company_name="Apple Inc.",
        ),
        Holding(ticker="Cash", shares=500.0, purchase_price=None, current_price=1.0, id=2),
    ]


@pytest.fixture
def sample_holdings():
    return [
        Holding(ticker="MSFT", shares=4.0, purchase_price=300.0, current_price=400.0, percent_change=1.5, id=10),
        Holding(ticker="VTI", shares=20.0, purchase_price=200.0, current_price=250.0, percent_change=-0.8, id=11),
        Holding(ticker="NVDA", shares=3.0, purchase_price=400.0, current_price=900.0, percent_change=4.2, id=12),
        Holding(ticker="KO", shares=15.0, purchase_price=55.0, current_price=60.0, percent_change=0.0, id=13),
        Holding(ticker="CASH", shares=1200.0, purchase_price=None, current_price=1.0, id=14),
    ]
