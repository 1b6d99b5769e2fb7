"""Hover tooltip content for rendered nodes."""
from __future__ import annotations

from typing import Any, List, Optional, Tuple

from ..core.delta import format_delta
from ..core.graph_builder import GraphNode

TooltipRow = Tuple[str, str]


def _text(value: Any) -> str:
    if value is None:
        return "n/a"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, int):
        return f"{value:,}"
    return str(value)


def tooltip_rows(graph_node: GraphNode) -> List[TooltipRow]:
    """Return (title, value) rows describing a node; depends only on node data."""

    node = graph_node.node
    rows: List[TooltipRow] = [("URL", node.local_url or "N/A")]
    if node.status:
        rows.append(("Status", node.status))
    if node.last_seen:
        rows.append(("Last Seen", node.last_seen))

    if node.offsets is not None:
        if node.pipe_offset is not None:
            rows.append(("PIPE_OFFSET", _text(node.pipe_offset)))
        behind = node.offsets.get("behindRoot")
        if behind is not None:
            rows.append(("Behind Root", _text(behind)))
        elif graph_node.type != "root":
            rows.append(("Behind Root", format_delta(graph_node.behind_root)))
    elif node.offset is not None:
        rows.append(("Offset", _text(node.offset)))

    if node.pipe:
        if node.pipe.pipe_state:
            rows.append(("Pipe State", node.pipe.pipe_state))
        if node.pipe.ip:
            rows.append(("IP", node.pipe.ip))
    if node.group:
        rows.append(("Group", node.group))
    if node.provider:
        rows.append(("Offset Sent", _text(node.provider.last_offset_sent)))
        rows.append(("Offset Acked", _text(node.provider.last_acked_offset)))
    return rows


def tooltip_text(graph_node: GraphNode, *, width: Optional[int] = None) -> str:
    rows = tooltip_rows(graph_node)
    pad = width if width is not None else max(len(title) for title, _ in rows)
    return "\n".join(f"{title + ':':<{pad + 1}} {value}" for title, value in rows)
