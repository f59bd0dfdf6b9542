import pytest

from portfolio_heatmap.config import BASE_COLOR, NEGATIVE_COLOR, OPACITY_RANGE, POSITIVE_COLOR
from portfolio_heatmap.heatmap.colors import color_for, intensity, max_range, scale_markers
from portfolio_heatmap.heatmap.models import RGBA, Timeframe


@pytest.mark.parametrize("tf", list(Timeframe))
def test_zero_is_base_color(tf):
    assert color_for(0, tf) == RGBA(*BASE_COLOR, OPACITY_RANGE[0])


@pytest.mark.parametrize("pct", [1.0, 2.7, 12.0, 80.0])
@pytest.mark.parametrize("tf", list(Timeframe))
def test_sign_changes_hue_not_opacity(pct, tf):
    up = color_for(pct, tf)
    down = color_for(-pct, tf)
    assert up.a == down.a
    assert up[:3] != down[:3]


def test_full_range_hits_target_colors():
    assert color_for(3.0, "1d")[:3] == POSITIVE_COLOR
    assert color_for(-60.0, "total")[:3] == NEGATIVE_COLOR
    assert color_for(3.0, "1d").a == pytest.approx(OPACITY_RANGE[1])


def test_clamped_beyond_range():
    assert color_for(25.0, "1d") == color_for(3.0, "1d")
    assert color_for(-25.0, "1d") == color_for(-3.0, "1d")


def test_intensity_is_timeframe_relative():
    # 3% is the whole 1D range but a tenth of the 1Y range
    assert intensity(3.0, "1d") == 1.0
    assert intensity(3.0, "1y") == pytest.approx(0.1)
    assert color_for(3.0, "1d").a > color_for(3.0, "1y").a


def test_nan_is_neutral():
    assert color_for(float("nan"), "1w") == color_for(0, "1w")


def test_max_range_table():
    assert max_range("1d") == 3
    assert max_range(Timeframe.SIX_MONTHS) == 24
    assert max_range("TOTAL") == 60


def test_unknown_timeframe():
    with pytest.raises(ValueError):
        color_for(1.0, "2y")


def test_scale_markers_1d():
    markers = scale_markers("1d")
    assert [m.value for m in markers] == [-3.0, -2.0, -1.0, 0.0, 1.0, 2.0, 3.0]
    assert [m.label for m in markers] == ["-3%", "-2%", "-1%", "0%", "+1%", "+2%", "+3%"]
    for m in markers:
        assert m.color == color_for(m.value, "1d")


@pytest.mark.parametrize("tf", list(Timeframe))
def test_scale_markers_symmetric(tf):
    markers = scale_markers(tf)
    assert len(markers) == 7
    assert markers[0].value == -max_range(tf)
    assert markers[-1].value == pytest.approx(max_range(tf))
    assert markers[3].value == 0
    assert markers[3].color == RGBA(*BASE_COLOR, OPACITY_RANGE[0])


def test_scale_marker_labels_total():
    assert [m.label for m in scale_markers("total")] == ["-60%", "-40%", "-20%", "0%", "+20%", "+40%", "+60%"]


def test_css():
    assert RGBA(34, 120, 60, 0.8).css() == "rgba(34,120,60,0.80)"
