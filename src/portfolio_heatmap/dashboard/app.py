from __future__ import annotations

import html
import logging

import altair as alt
import pandas as pd
import streamlit as st

from portfolio_heatmap.config import DEFAULT_TIMEFRAME, TIMEFRAME_LABELS, Settings
from portfolio_heatmap.heatmap.engine import EmptyPortfolio, Heatmap, HeatmapSession, build_heatmap
from portfolio_heatmap.heatmap.normalizer import normalize_holdings, resolve_references, tickers_to_quote
from portfolio_heatmap.heatmap.rank import ChartCache, tooltip_for
from portfolio_heatmap.portfolio.client import PortfolioApiClient, PortfolioFetchError
from portfolio_heatmap.portfolio.performance import portfolio_totals, with_timeframe_changes
from portfolio_heatmap.portfolio.quotes import (
    QuoteFetchError,
    fetch_daily_closes,
    fetch_intraday_series,
    fetch_quotes,
)

logger = logging.getLogger(__name__)

_settings = Settings()


def _session_state():
    if "heatmap_session" not in st.session_state:
        st.session_state["heatmap_session"] = HeatmapSession()
    if "chart_cache" not in st.session_state:
        st.session_state["chart_cache"] = ChartCache(fetch_intraday_series, maxsize=_settings.chart_cache_size)
    return st.session_state["heatmap_session"], st.session_state["chart_cache"]


def _compute(client: PortfolioApiClient, portfolio_id: int, timeframe: str, include_cash: bool):
    response = client.get_portfolio(portfolio_id, timeframe)
    records = resolve_references(response.open_positions, client.get_holding)
    prices = fetch_quotes(tickers_to_quote(records))
    holdings = normalize_holdings(records, prices, response.percent_changes)
    if not response.percent_changes:
        # Service sent no per-holding changes; derive them from daily closes
        holdings = with_timeframe_changes(holdings, timeframe, fetch_daily_closes)
    totals = response.totals or portfolio_totals(holdings, response.closed_positions)
    return build_heatmap(
        holdings,
        timeframe,
        include_cash=include_cash,
        width=_settings.canvas_width,
        height=_settings.canvas_height,
        padding=_settings.padding,
        min_cell_size=_settings.min_cell_size,
        totals=totals,
    )


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def _fmt_pct(v: float | None) -> str:
    if v is None:
        return "\u2014"
    sign = "+" if v >= 0 else ""
    return f"{sign}{v:.2f}%"


def _fmt_dollars(v: float | None, signed: bool = False) -> str:
    if v is None:
        return "\u2014"
    return f"${v:+,.2f}" if signed else f"${v:,.2f}"


def _holding_label(holdings, index: int) -> str:
    """Ticker, plus lot number when the ticker is held in several lots."""
    ticker = holdings[index].ticker
    lots = [i for i, h in enumerate(holdings) if h.ticker.upper() == ticker.upper()]
    if len(lots) == 1:
        return ticker
    return f"{ticker} (lot {lots.index(index) + 1} of {len(lots)})"


def _cell_tip(heatmap: Heatmap, holding) -> str:
    tip = tooltip_for(holding, heatmap.holdings)
    return (
        f"{tip.ticker} ({tip.company_name})\n"
        f"Allocation: {tip.allocation_pct:.2f}%\n"
        f"Value: {_fmt_dollars(tip.current_value)}\n"
        f"Price: {_fmt_dollars(tip.current_price)}\n"
        f"Rank: {tip.rank}"
    )


# ---------------------------------------------------------------------------
# HTML rendering
# ---------------------------------------------------------------------------

def _render_treemap(heatmap: Heatmap) -> str:
    w, h = heatmap.width, heatmap.height
    cells = ""
    for holding, node, color in heatmap.cells():
        style = (
            f"left:{node.x0 / w:.4%};top:{node.y0 / h:.4%};"
            f"width:{node.width / w:.4%};height:{node.height / h:.4%};"
            f"background:{color.css()}"
        )
        label = ""
        if node.width >= 48 and node.height >= 32:
            change = "" if holding.is_cash else f"<br>{_fmt_pct(holding.percent_change)}"
            label = f"<span>{html.escape(holding.ticker)}{change}</span>"
        cells += (
            f'<div class="hm-cell" style="{style}" '
            f'title="{html.escape(_cell_tip(heatmap, holding))}">{label}</div>'
        )
    return f'<div class="hm-canvas" style="aspect-ratio:{w} / {h}">{cells}</div>'


def _legend_chart(heatmap: Heatmap) -> alt.Chart:
    df = pd.DataFrame([
        {"order": i, "label": m.label, "color": m.color.css()}
        for i, m in enumerate(heatmap.legend)
    ])
    return (
        alt.Chart(df).mark_rect().encode(
            x=alt.X("label:N", sort=alt.SortField("order"), title=None, axis=alt.Axis(labelAngle=0)),
            color=alt.Color("color:N", scale=None, legend=None),
        ).properties(height=40)
    )


def _inspect_section(heatmap: Heatmap, chart_cache: ChartCache) -> None:
    choices = [i for i, h in enumerate(heatmap.holdings) if not h.is_cash]
    if not choices:
        return
    selected = st.selectbox(
        "Inspect holding",
        choices,
        format_func=lambda i: _holding_label(heatmap.holdings, i),
    )
    holding = heatmap.holdings[selected]
    tip = tooltip_for(holding, heatmap.holdings, chart_cache)

    c1, c2, c3, c4 = st.columns(4)
    c1.metric(tip.ticker, _fmt_dollars(tip.current_price), _fmt_pct(holding.percent_change))
    c2.metric("Allocation", f"{tip.allocation_pct:.2f}%")
    c3.metric("Value", _fmt_dollars(tip.current_value))
    c4.metric("Rank", tip.rank)
    st.caption(tip.company_name)

    if tip.chart:
        series = pd.DataFrame({"step": range(len(tip.chart)), "price": tip.chart})
        chart = alt.Chart(series).mark_line().encode(
            x=alt.X("step:Q", title=None, axis=None),
            y=alt.Y("price:Q", title=None, scale=alt.Scale(zero=False)),
        ).properties(height=160)
        st.altair_chart(chart, use_container_width=True)


_CSS = """
<style>
.hm-canvas {
    position: relative;
    width: 100%;
    background: #1e1e1e;
    font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", system-ui, sans-serif;
}
.hm-cell {
    position: absolute;
    box-sizing: border-box;
    display: flex;
    align-items: center;
    justify-content: center;
    overflow: hidden;
    cursor: help;
}
.hm-cell span {
    color: #e0e0e0;
    font-weight: 600;
    font-size: .8rem;
    text-align: center;
    font-variant-numeric: tabular-nums;
}
</style>
"""


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main():
    st.set_page_config(
        page_title="Portfolio Heatmap",
        page_icon=":material/grid_view:",
        layout="wide",
    )
    st.markdown(_CSS, unsafe_allow_html=True)

    session, chart_cache = _session_state()
    client = PortfolioApiClient(_settings.api_url, token=_settings.api_token)

    col_id, col_tf, col_cash = st.columns([1, 4, 1])
    portfolio_id = col_id.number_input("Portfolio", min_value=1, step=1, value=1)
    timeframe = col_tf.pills(
        "Timeframe",
        list(TIMEFRAME_LABELS),
        format_func=lambda v: TIMEFRAME_LABELS[v],
        default=DEFAULT_TIMEFRAME,
    ) or DEFAULT_TIMEFRAME
    include_cash = col_cash.toggle("Show cash", value=True)

    try:
        with st.spinner("Loading portfolio..."):
            result = session.run(lambda: _compute(client, int(portfolio_id), timeframe, include_cash))
    except (PortfolioFetchError, QuoteFetchError) as e:
        logger.warning("Heatmap refresh failed: %s", e)
        st.error(f"Could not load portfolio: {e}")
        result = session.current
    if result is None:
        return

    if isinstance(result, EmptyPortfolio):
        st.info(result.message)
        return

    snap = result.snapshot
    m1, m2, m3 = st.columns(3)
    m1.metric("Portfolio Value", _fmt_dollars(snap.total_portfolio_value))
    m2.metric("Total Return", _fmt_pct(snap.total_percentage_return))
    m3.metric("Total Return ($)", _fmt_dollars(snap.total_dollar_return, signed=True))

    st.markdown(_render_treemap(result), unsafe_allow_html=True)
    st.altair_chart(_legend_chart(result), use_container_width=True)

    _inspect_section(result, chart_cache)


if __name__ == "__main__":
    main()
