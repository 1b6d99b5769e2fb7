"""Layered layout for follower graphs.

Coordinates are in screen space: ``x`` grows to the right and ``y`` grows
downward, the way SVG and image canvases address pixels. Renderers drawing
into a y-up space must flip the vertical axis.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

import networkx as nx

from ..config.layout import LayoutStyle, get_layout_style
from ..core.graph_builder import GraphEdge, GraphModel

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

NODE_HEIGHT = 30.0
NODE_MIN_WIDTH = 60.0
NODE_PADDING_X = 10.0
CHAR_WIDTH = 7.0
CLUSTER_PADDING = 10.0
CLUSTER_LABEL_SPACE = 16.0


@dataclass(frozen=True)
class NodeBox:
    id: str
    x: float
    y: float
    width: float
    height: float

    @property
    def x0(self) -> float:
        return self.x - self.width / 2

    @property
    def x1(self) -> float:
        return self.x + self.width / 2

    @property
    def y0(self) -> float:
        return self.y - self.height / 2

    @property
    def y1(self) -> float:
        return self.y + self.height / 2


@dataclass(frozen=True)
class EdgePath:
    edge: GraphEdge
    points: Tuple[Point, ...]

    @property
    def label_position(self) -> Point:
        if len(self.points) % 2 == 1:
            return self.points[len(self.points) // 2]
        left = self.points[len(self.points) // 2 - 1]
        right = self.points[len(self.points) // 2]
        return (left[0] + right[0]) / 2, (left[1] + right[1]) / 2


@dataclass(frozen=True)
class ClusterBox:
    id: str
    label: str
    x0: float
    y0: float
    x1: float
    y1: float

    @property
    def width(self) -> float:
        return self.x1 - self.x0

    @property
    def height(self) -> float:
        return self.y1 - self.y0

    @property
    def label_position(self) -> Point:
        return (self.x0 + self.x1) / 2, self.y1 - CLUSTER_LABEL_SPACE / 2


@dataclass(frozen=True)
class Bounds:
    x0: float = 0.0
    y0: float = 0.0
    x1: float = 0.0
    y1: float = 0.0

    @property
    def width(self) -> float:
        return self.x1 - self.x0

    @property
    def height(self) -> float:
        return self.y1 - self.y0


@dataclass
class Layout:
    style: LayoutStyle
    nodes: Dict[str, NodeBox] = field(default_factory=dict)
    edges: List[EdgePath] = field(default_factory=list)
    clusters: Dict[str, ClusterBox] = field(default_factory=dict)
    bounds: Bounds = field(default_factory=Bounds)
    ranks: Dict[str, int] = field(default_factory=dict)


def node_size(label: str) -> Tuple[float, float]:
    width = max(NODE_MIN_WIDTH, CHAR_WIDTH * len(label) + 2 * NODE_PADDING_X)
    return width, NODE_HEIGHT


def _acyclic_copy(graph: nx.DiGraph) -> nx.DiGraph:
    dag = nx.DiGraph()
    dag.add_nodes_from(graph.nodes)
    dag.add_edges_from((u, v) for u, v in graph.edges if u != v)
    while not nx.is_directed_acyclic_graph(dag):
        cycle = nx.find_cycle(dag)
        u, v = cycle[-1][0], cycle[-1][1]
        logger.debug("Breaking follow cycle at %s -> %s for layout", u, v)
        dag.remove_edge(u, v)
    return dag


def assign_ranks(graph: nx.DiGraph, root_id: Optional[str] = None) -> Dict[str, int]:
    """Rank every node by the longest path reaching it from a source node."""

    dag = _acyclic_copy(graph)
    ranks: Dict[str, int] = {}
    for node in nx.topological_sort(dag):
        predecessors = list(dag.predecessors(node))
        ranks[node] = max((ranks[p] + 1 for p in predecessors), default=0)
    if root_id is not None and root_id in ranks:
        ranks[root_id] = 0
    return ranks


@dataclass
class _Band:
    """A strip of the cross axis shared by one cluster on every rank."""

    cluster: Optional[str]
    rows: Dict[int, List[str]] = field(default_factory=lambda: defaultdict(list))
    lead: float = 0.0
    trail: float = 0.0
    start: float = 0.0
    width: float = 0.0


def _make_bands(model: GraphModel, ranks: Dict[str, int], horizontal: bool) -> List[_Band]:
    """Split nodes into one band per cluster plus a shared band for the root and ungrouped followers.

    Cluster boxes grow a padding on both sides of their band (and the label
    strip when the cross axis is vertical), so the band records that margin.
    """

    free = _Band(cluster=None)
    by_cluster: Dict[str, _Band] = {}
    for node_id, node in model.nodes.items():
        if node_id not in ranks:
            continue
        cluster = node.parent if node.parent in model.clusters else None
        if cluster is None:
            band = free
        else:
            band = by_cluster.get(cluster)
            if band is None:
                trail = CLUSTER_PADDING + (CLUSTER_LABEL_SPACE if horizontal else 0.0)
                band = by_cluster[cluster] = _Band(cluster=cluster, lead=CLUSTER_PADDING, trail=trail)
        band.rows[ranks[node_id]].append(node_id)

    clustered = sorted(by_cluster.values(), key=lambda band: min(band.rows))
    middle = len(clustered) // 2
    return clustered[:middle] + [free] + clustered[middle:]


def _order_row(row: List[str], graph: nx.DiGraph, position: Dict[str, float], root_id: Optional[str]) -> List[str]:
    def key(node: str) -> Tuple[int, float, str]:
        placed = [position[p] for p in graph.predecessors(node) if p in position]
        barycenter = sum(placed) / len(placed) if placed else float("inf")
        return (0 if node == root_id else 1, barycenter, node)

    return sorted(row, key=key)


def compute_layout(model: GraphModel, style: Optional[LayoutStyle] = None) -> Layout:
    """Assign screen coordinates to every node, edge and cluster of ``model``.

    Ranks run along the layout direction. Across it, every cluster owns a band
    that is the same on every rank, so a cluster box only ever encloses its
    own members.
    """

    style = style or get_layout_style(None)
    graph = model.to_networkx()
    layout = Layout(style=style)
    if graph.number_of_nodes() == 0:
        return layout

    ranks = assign_ranks(graph, model.root_id)
    sizes = {node_id: node_size(node.label) for node_id, node in model.nodes.items()}
    horizontal = style.horizontal

    def extent(node: str) -> float:
        return sizes[node][1] if horizontal else sizes[node][0]

    def row_extent(row: Iterable[str]) -> float:
        row = list(row)
        return sum(extent(n) for n in row) + style.node_sep * max(len(row) - 1, 0)

    # rank axis runs along y for TB/BT and along x for LR/RL
    levels = sorted(set(ranks.values()))
    rank_offsets: Dict[int, float] = {}
    cursor = 0.0
    for rank in levels:
        depth = max(sizes[n][0] if horizontal else sizes[n][1] for n, r in ranks.items() if r == rank)
        rank_offsets[rank] = cursor + depth / 2
        cursor += depth + style.rank_sep

    bands = _make_bands(model, ranks, horizontal)
    band_gap = max(style.node_sep, CLUSTER_PADDING)
    cross = 0.0
    for index, band in enumerate(bands):
        if index:
            cross += band_gap
        cross += band.lead
        band.start = cross
        band.width = max((row_extent(row) for row in band.rows.values()), default=0.0)
        cross += band.width + band.trail

    raw: Dict[str, Point] = {}
    position: Dict[str, float] = {}
    for rank in levels:
        for band in bands:
            row = band.rows.get(rank)
            if not row:
                continue
            ordered = _order_row(row, graph, position, model.root_id)
            offset = band.start + (band.width - row_extent(ordered)) / 2
            for node in ordered:
                center = offset + extent(node) / 2
                position[node] = center
                along = rank_offsets[rank]
                raw[node] = (along, center) if horizontal else (center, along)
                offset += extent(node) + style.node_sep

    oriented: Dict[str, Point] = {}
    for node, (x, y) in raw.items():
        if style.direction == "BT":
            y = -y
        elif style.direction == "RL":
            x = -x
        oriented[node] = (x, y)

    min_x = min(oriented[n][0] - sizes[n][0] / 2 for n in oriented)
    min_y = min(oriented[n][1] - sizes[n][1] / 2 for n in oriented)
    pad = CLUSTER_PADDING if model.clusters else 0.0
    for node, (x, y) in oriented.items():
        width, height = sizes[node]
        layout.nodes[node] = NodeBox(node, x - min_x + pad, y - min_y + pad, width, height)
    layout.ranks = dict(ranks)

    for cluster_id, cluster in model.clusters.items():
        boxes = [layout.nodes[m] for m in cluster.members if m in layout.nodes]
        if not boxes:
            continue
        layout.clusters[cluster_id] = ClusterBox(
            id=cluster_id,
            label=cluster.label,
            x0=min(b.x0 for b in boxes) - CLUSTER_PADDING,
            y0=min(b.y0 for b in boxes) - CLUSTER_PADDING,
            x1=max(b.x1 for b in boxes) + CLUSTER_PADDING,
            y1=max(b.y1 for b in boxes) + CLUSTER_PADDING + CLUSTER_LABEL_SPACE,
        )

    layout.edges = _route_edges(model.edges, layout.nodes, style)
    layout.bounds = _bounds(layout)
    logger.debug(
        "Layout '%s': %s ranks, bounds %.0fx%.0f",
        style.name,
        len(levels),
        layout.bounds.width,
        layout.bounds.height,
    )
    return layout


def _port(box: NodeBox, toward: Point, style: LayoutStyle, spread: float) -> Point:
    """Point on the side of ``box`` facing ``toward``, shifted ``spread`` along that side."""

    if style.horizontal:
        x = box.x1 if toward[0] >= box.x else box.x0
        return x, box.y + spread
    y = box.y1 if toward[1] >= box.y else box.y0
    return box.x + spread, y


def _spreads(edges: Iterable[GraphEdge], key: str, nodes: Dict[str, NodeBox], style: LayoutStyle) -> Dict[Tuple[str, str, str], float]:
    grouped: Dict[str, List[GraphEdge]] = defaultdict(list)
    for edge in edges:
        grouped[getattr(edge, key)].append(edge)
    other = "target" if key == "source" else "source"
    axis = 1 if style.horizontal else 0
    result: Dict[Tuple[str, str, str], float] = {}
    for anchor, group in grouped.items():
        group.sort(key=lambda e: (nodes[getattr(e, other)].x, nodes[getattr(e, other)].y)[axis])
        count = len(group)
        extent = nodes[anchor].height if style.horizontal else nodes[anchor].width
        step = min(style.edge_sep, extent / max(count, 1))
        for index, edge in enumerate(group):
            result[edge.key] = (index - (count - 1) / 2) * step
    return result


def _route_edges(edges: List[GraphEdge], nodes: Dict[str, NodeBox], style: LayoutStyle) -> List[EdgePath]:
    routable = [e for e in edges if e.source in nodes and e.target in nodes]
    out_spread = _spreads(routable, "source", nodes, style)
    in_spread = _spreads(routable, "target", nodes, style)
    paths: List[EdgePath] = []
    for edge in routable:
        source = nodes[edge.source]
        target = nodes[edge.target]
        start = _port(source, (target.x, target.y), style, out_spread.get(edge.key, 0.0))
        end = _port(target, (source.x, source.y), style, in_spread.get(edge.key, 0.0))
        if style.horizontal:
            mid_x = (start[0] + end[0]) / 2
            points = (start, (mid_x, start[1]), (mid_x, end[1]), end)
        else:
            mid_y = (start[1] + end[1]) / 2
            points = (start, (start[0], mid_y), (end[0], mid_y), end)
        paths.append(EdgePath(edge=edge, points=points))
    return paths


def _bounds(layout: Layout) -> Bounds:
    xs: List[float] = []
    ys: List[float] = []
    for box in layout.nodes.values():
        xs.extend((box.x0, box.x1))
        ys.extend((box.y0, box.y1))
    for cluster in layout.clusters.values():
        xs.extend((cluster.x0, cluster.x1))
        ys.extend((cluster.y0, cluster.y1))
    if not xs:
        return Bounds()
    return Bounds(min(0.0, min(xs)), min(0.0, min(ys)), max(xs), max(ys))
