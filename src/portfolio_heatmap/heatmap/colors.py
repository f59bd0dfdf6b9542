from __future__ import annotations

import math

from portfolio_heatmap.config import (
    BASE_COLOR,
    LEGEND_STEPS,
    NEGATIVE_COLOR,
    OPACITY_RANGE,
    POSITIVE_COLOR,
    TIMEFRAME_RANGES,
)
from portfolio_heatmap.heatmap.models import RGBA, ScaleMarker, Timeframe


def max_range(timeframe: Timeframe | str) -> float:
    return TIMEFRAME_RANGES[Timeframe.parse(timeframe).value]


def intensity(percent_change: float, timeframe: Timeframe | str) -> float:
    """How far a move sits toward the timeframe's full range, in [0, 1]."""
    if percent_change is None or math.isnan(percent_change):
        return 0.0
    limit = max_range(timeframe)
    return min(abs(percent_change), limit) / limit


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def color_for(percent_change: float, timeframe: Timeframe | str) -> RGBA:
    """Cell color for a move over ``timeframe``.

    Zero is the neutral base color; gains blend toward green and losses toward
    red, with opacity rising on the same factor.
    """
    factor = intensity(percent_change, timeframe)
    low, high = OPACITY_RANGE
    if factor == 0.0:
        return RGBA(*BASE_COLOR, low)
    target = POSITIVE_COLOR if percent_change > 0 else NEGATIVE_COLOR
    r, g, b = (int(round(_lerp(base, tgt, factor))) for base, tgt in zip(BASE_COLOR, target))
    return RGBA(r, g, b, round(_lerp(low, high, factor), 4))


def _fmt_marker(value: float) -> str:
    if value == 0:
        return "0%"
    text = f"{abs(value):.0f}" if float(value).is_integer() else f"{abs(value):.1f}"
    sign = "+" if value > 0 else "-"
    return f"{sign}{text}%"


def scale_markers(timeframe: Timeframe | str) -> list[ScaleMarker]:
    """Evenly spaced legend stops over [-range, +range] for ``timeframe``."""
    limit = max_range(timeframe)
    step = 2 * limit / (LEGEND_STEPS - 1)
    markers = []
    for i in range(LEGEND_STEPS):
        value = -limit + i * step
        if abs(value) < 1e-9:
            value = 0.0
        markers.append(ScaleMarker(value, color_for(value, timeframe), _fmt_marker(value)))
    return markers
