"""Graph data export utilities."""
from __future__ import annotations

import csv
import json
import math
from pathlib import Path
from typing import Any, Dict

from ..core.delta import format_delta
from ..core.graph_builder import GraphModel


def _finite_or_none(value: float) -> float | None:
    # JSON has no NaN or Infinity
    return value if value is not None and math.isfinite(value) else None


def _json_safe(value: Any) -> Any:
    if isinstance(value, float):
        return _finite_or_none(value)
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_json_safe(item) for item in value]
    return value


def graph_to_dict(model: GraphModel) -> Dict[str, Any]:
    nodes = [
        {
            "id": node.id,
            "label": node.label,
            "type": node.type,
            "class": node.css_class,
            "parent": node.parent,
            "behindRoot": _finite_or_none(node.behind_root),
            "data": node.node.to_dict(),
        }
        for node in model.nodes.values()
    ]
    edges = [
        {
            "source": edge.source,
            "target": edge.target,
            "kind": edge.kind.value,
            "delta": _finite_or_none(edge.delta),
            "label": edge.label,
            "style": edge.style.value,
        }
        for edge in model.edges
    ]
    clusters = [
        {"id": cluster.id, "label": cluster.label, "members": list(cluster.members)}
        for cluster in model.clusters.values()
    ]
    return {
        "root": model.root_id,
        "settings": {
            "view_mode": model.options.view_mode.value,
            "label": model.options.label_field.value,
            "clusters": model.options.cluster_groups,
        },
        "summary": {"nodes": len(nodes), "edges": len(edges), "clusters": len(clusters)},
        "nodes": nodes,
        "edges": edges,
        "clusters": clusters,
    }


def export_edges_to_csv(model: GraphModel, filename: str = "pipe_tree.csv", *, directory: Path | None = None) -> Path:
    directory = directory or Path.cwd()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    with path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.writer(fh)
        writer.writerow(["source", "target", "kind", "delta", "style"])
        for edge in model.edges:
            writer.writerow([edge.source, edge.target, edge.kind.value, format_delta(edge.delta), edge.style.value])
    return path


def export_graph_json(
    model: GraphModel,
    filename: str = "pipe_tree.json",
    *,
    directory: Path | None = None,
    indent: int = 2,
) -> Path:
    directory = directory or Path.cwd()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    payload = _json_safe(graph_to_dict(model))
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=indent, allow_nan=False), encoding="utf-8")
    return path
