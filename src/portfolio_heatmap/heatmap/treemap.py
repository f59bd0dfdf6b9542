from __future__ import annotations

import math
from typing import Sequence

import squarify

from portfolio_heatmap.heatmap.models import TreemapNode

# Relative weight given to zero-weight items so the squarify pass can place
# them; the min cell size then makes them visible.
_ZERO_WEIGHT_FRACTION = 1e-9


class InvalidCanvasError(ValueError):
    pass


def validate_canvas(width: int, height: int, padding: int = 0, min_cell_size: int = 1) -> None:
    if width <= 0 or height <= 0:
        raise InvalidCanvasError(f"Canvas must have positive size, got {width}x{height}")
    if padding < 0:
        raise InvalidCanvasError(f"Padding must be non-negative, got {padding}")
    if min_cell_size < 1:
        raise InvalidCanvasError(f"Minimum cell size must be at least 1px, got {min_cell_size}")


def _round(v: float) -> int:
    return int(math.floor(v + 0.5))


def _layout_weights(weights: Sequence[float]) -> list[float]:
    for w in weights:
        if w is None or not w >= 0 or math.isinf(w):
            raise ValueError(f"Treemap weights must be finite and non-negative, got {w!r}")
    total = sum(weights)
    if total == 0:
        return [1.0] * len(weights)
    floor = total * _ZERO_WEIGHT_FRACTION
    return [w if w > 0 else floor for w in weights]


def _inset(lo: int, hi: int, extent: int, padding: int) -> tuple[int, int]:
    """Take the gap out of interior edges; canvas edges stay flush."""
    if lo > 0:
        lo += padding // 2
    if hi < extent:
        hi -= padding - padding // 2
    return lo, hi


def _enforce_min(lo: int, hi: int, extent: int, min_size: int) -> tuple[int, int]:
    if hi - lo >= min_size:
        return lo, hi
    hi = lo + min_size
    if hi > extent:
        hi = extent
        lo = max(0, extent - min_size)
    return lo, hi


def layout(
    items: Sequence[tuple[str, float]],
    width: int,
    height: int,
    padding: int = 0,
    min_cell_size: int = 1,
) -> list[TreemapNode]:
    """Squarified treemap over a ``width`` x ``height`` canvas.

    ``items`` is a sequence of ``(key, weight)``; weights need not sum to 1.
    The result is index-aligned with ``items``. Cells are rounded to whole
    pixels edge by edge, so neighbours share boundaries exactly before the
    padding gap is removed. Cells thinner than ``min_cell_size`` are grown to
    it and may then overlap their neighbours.
    """
    validate_canvas(width, height, padding, min_cell_size)
    if not items:
        return []

    weights = _layout_weights([float(w) for _, w in items])

    # squarify expects sizes largest first; keep input positions to map back
    order = sorted(range(len(items)), key=lambda i: (-weights[i], i))
    sizes = squarify.normalize_sizes([weights[i] for i in order], width, height)
    rects = squarify.squarify(sizes, 0, 0, width, height)

    nodes: list[TreemapNode | None] = [None] * len(items)
    for idx, rect in zip(order, rects):
        x0 = min(max(_round(rect["x"]), 0), width)
        y0 = min(max(_round(rect["y"]), 0), height)
        x1 = min(max(_round(rect["x"] + rect["dx"]), 0), width)
        y1 = min(max(_round(rect["y"] + rect["dy"]), 0), height)

        x0, x1 = _inset(x0, x1, width, padding)
        y0, y1 = _inset(y0, y1, height, padding)
        x0, x1 = _enforce_min(x0, x1, width, min_cell_size)
        y0, y1 = _enforce_min(y0, y1, height, min_cell_size)

        nodes[idx] = TreemapNode(key=items[idx][0], x0=x0, y0=y0, x1=x1, y1=y1)
    return nodes
