from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

_DEFAULT_API_URL = "http://localhost:8080"


# -- Timeframes ----------------------------------------------------------------

# Percentage points at which a move renders at full intensity. A 3% move is
# extreme on a 1-day view but unremarkable on a 1-year view.
TIMEFRAME_RANGES: dict[str, float] = {
    "1d": 3.0,
    "1w": 6.0,
    "1m": 9.0,
    "3m": 15.0,
    "6m": 24.0,
    "ytd": 30.0,
    "1y": 30.0,
    "total": 60.0,
}

TIMEFRAME_LABELS: dict[str, str] = {
    "1d": "1D",
    "1w": "1W",
    "1m": "1M",
    "3m": "3M",
    "6m": "6M",
    "ytd": "YTD",
    "1y": "1Y",
    "total": "Total",
}

DEFAULT_TIMEFRAME = "1d"


# -- Heatmap colors --------------------------------------------------------------

BASE_COLOR: tuple[int, int, int] = (64, 64, 64)
POSITIVE_COLOR: tuple[int, int, int] = (34, 120, 60)
NEGATIVE_COLOR: tuple[int, int, int] = (180, 55, 55)

# Opacity at a flat move and at a move of the full timeframe range
OPACITY_RANGE: tuple[float, float] = (0.25, 0.80)

LEGEND_STEPS = 7


# -- Canvas --------------------------------------------------------------------

CANVAS_WIDTH = 1200
CANVAS_HEIGHT = 700
CELL_PADDING = 2
MIN_CELL_SIZE = 12


# -- Holdings ------------------------------------------------------------------

# Uninvested dollars. `shares` on these holdings is a dollar amount.
CASH_TICKERS: frozenset[str] = frozenset({"CASH"})
CASH_PRICE = 1.0

CHART_CACHE_SIZE = 64


def _load_env_file() -> dict[str, str]:
    """Read key=value pairs from .env at project root."""
    env_path = _PROJECT_ROOT / ".env"
    if not env_path.exists():
        return {}
    result = {}
    for line in env_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        result[key.strip()] = value.strip()
    return result


def _env(name: str, default: str | None = None) -> str | None:
    """Return a setting from the environment, then .env, then the default."""
    value = os.environ.get(name)
    if value:
        return value
    return _load_env_file().get(name, default)


def get_api_token() -> str | None:
    """Return the portfolio API bearer token from environment or .env file."""
    return _env("HEATMAP_API_TOKEN")


@dataclass(frozen=True)
class Settings:
    api_url: str = field(default_factory=lambda: _env("HEATMAP_API_URL", _DEFAULT_API_URL))
    api_token: str | None = field(default_factory=get_api_token)
    canvas_width: int = field(default_factory=lambda: int(_env("HEATMAP_CANVAS_WIDTH", str(CANVAS_WIDTH))))
    canvas_height: int = field(default_factory=lambda: int(_env("HEATMAP_CANVAS_HEIGHT", str(CANVAS_HEIGHT))))
    padding: int = CELL_PADDING
    min_cell_size: int = MIN_CELL_SIZE
    chart_cache_size: int = CHART_CACHE_SIZE
