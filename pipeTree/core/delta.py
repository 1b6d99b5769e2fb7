"""Offset lag between an upstream node and the node following it."""
from __future__ import annotations

import math
from typing import Any, Optional

from .model import PipeNode


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return None


def difference(parent: Optional[PipeNode], child: Optional[PipeNode]) -> float:
    """Return ``parent - child`` in PIPE_OFFSET units, or NaN when either side lacks offsets.

    A parent with per-pipe ``offsets`` is compared offset-to-offset; a parent that
    only reports a scalar ``offset`` (the cloud root) is compared against the
    child's PIPE_OFFSET.
    """

    if parent is None or child is None:
        return math.nan
    child_offset = _number(child.pipe_offset) if child.offsets is not None else None
    if child_offset is None:
        return math.nan
    if parent.offsets is not None:
        parent_offset = _number(parent.pipe_offset)
    else:
        parent_offset = _number(parent.offset)
    if parent_offset is None:
        return math.nan
    return parent_offset - child_offset


def format_delta(value: float) -> str:
    if value is None or math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "-Infinity" if value < 0 else "Infinity"
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"
