"""Turn a pipe topology into a typed, optionally clustered follower graph."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

import networkx as nx

from .delta import difference, format_delta
from .labels import LabelField, resolve_label
from .model import PipeNode, Topology
from .urls import canonical_url

logger = logging.getLogger(__name__)


class ViewMode(Enum):
    FOLLOWING = "following"
    REQUESTED = "requested"
    BOTH = "both"

    @property
    def shows_following(self) -> bool:
        return self in (ViewMode.FOLLOWING, ViewMode.BOTH)

    @property
    def shows_requested(self) -> bool:
        return self in (ViewMode.REQUESTED, ViewMode.BOTH)

    @property
    def title(self) -> str:
        return {
            ViewMode.FOLLOWING: "Following",
            ViewMode.REQUESTED: "Requested",
            ViewMode.BOTH: "Following vs Requested",
        }[self]

    @classmethod
    def parse(cls, value: "str | ViewMode") -> "ViewMode":
        if isinstance(value, ViewMode):
            return value
        candidate = (value or "").strip().lower()
        for member in cls:
            if candidate == member.value:
                return member
        raise ValueError(f"Unsupported view mode '{value}'; expected following, requested or both")


class EdgeKind(Enum):
    FOLLOWING = "following"
    REQUESTED = "requested"


class EdgeStyle(Enum):
    FOLLOWING = "following"
    MATCH = "match"
    MISMATCH = "mismatch"
    REQUESTED = "requested"


@dataclass(frozen=True)
class BuildOptions:
    view_mode: ViewMode = ViewMode.FOLLOWING
    label_field: LabelField = LabelField.PIPE_HOST
    cluster_groups: bool = True


@dataclass(frozen=True)
class GraphNode:
    id: str
    label: str
    node: PipeNode
    css_class: str
    parent: Optional[str] = None
    behind_root: float = math.nan

    @property
    def type(self) -> str:
        return self.node.type


@dataclass(frozen=True)
class GraphEdge:
    source: str
    target: str
    kind: EdgeKind
    delta: float
    style: EdgeStyle

    @property
    def label(self) -> str:
        text = f"Δ {format_delta(self.delta)}"
        if self.kind is EdgeKind.REQUESTED:
            text += " (req)"
        return text

    @property
    def key(self) -> Tuple[str, str, str]:
        return self.source, self.target, self.kind.value


@dataclass(frozen=True)
class Cluster:
    id: str
    label: str
    members: Tuple[str, ...] = ()


@dataclass
class GraphModel:
    root_id: str
    options: BuildOptions
    nodes: Dict[str, GraphNode] = field(default_factory=dict)
    edges: List[GraphEdge] = field(default_factory=list)
    clusters: Dict[str, Cluster] = field(default_factory=dict)

    def edges_between(self, source: str, target: str) -> List[GraphEdge]:
        return [edge for edge in self.edges if edge.source == source and edge.target == target]

    def to_networkx(self) -> nx.DiGraph:
        """Export the model as a ``networkx.DiGraph``.

        Parallel following/requested edges between the same pair collapse into a
        single networkx edge whose ``edges`` attribute lists every GraphEdge.
        """

        graph = nx.DiGraph(root=self.root_id, view_mode=self.options.view_mode.value)
        for node_id, node in self.nodes.items():
            graph.add_node(
                node_id,
                label=node.label,
                type=node.type,
                css_class=node.css_class,
                cluster=node.parent,
            )
        for edge in self.edges:
            if graph.has_edge(edge.source, edge.target):
                graph.edges[edge.source, edge.target]["edges"].append(edge)
            else:
                graph.add_edge(edge.source, edge.target, edges=[edge])
        graph.graph["clusters"] = {cluster_id: list(cluster.members) for cluster_id, cluster in self.clusters.items()}
        return graph


def node_css_class(node: PipeNode) -> str:
    classes = f"node-{node.type}"
    if node.pipe and node.pipe.pipe_state:
        classes += f" pipe-{node.pipe.pipe_state.lower().replace('_', '-')}"
    return classes


class _Resolver:
    """Map relationship URLs onto node ids, ignoring http/https differences."""

    def __init__(self, topology: Topology):
        self.root_id = topology.root.local_url
        self._index: Dict[str, str] = {canonical_url(self.root_id): self.root_id}
        for follower in topology.followers:
            self._index.setdefault(canonical_url(follower.local_url), follower.local_url)

    def resolve(self, url: Optional[str]) -> Optional[str]:
        if not url:
            return None
        return self._index.get(canonical_url(url))


def build_graph(topology: Topology, options: Optional[BuildOptions] = None) -> GraphModel:
    options = options or BuildOptions()
    view_mode = options.view_mode
    root = topology.root
    resolver = _Resolver(topology)
    model = GraphModel(root_id=root.local_url, options=options)

    model.nodes[root.local_url] = GraphNode(
        id=root.local_url,
        label=resolve_label(root, options.label_field),
        node=root,
        css_class=node_css_class(root),
    )

    if options.cluster_groups:
        for group in topology.groups:
            members = tuple(f.local_url for f in topology.followers if f.group == group)
            model.clusters[group] = Cluster(id=group, label=group, members=members)

    by_id: Dict[str, PipeNode] = {root.local_url: root}
    for follower in topology.followers:
        by_id[follower.local_url] = follower
        model.nodes[follower.local_url] = GraphNode(
            id=follower.local_url,
            label=resolve_label(follower, options.label_field),
            node=follower,
            css_class=node_css_class(follower),
            parent=follower.group if options.cluster_groups else None,
            behind_root=difference(root, follower),
        )

    for follower in topology.followers:
        following_id: Optional[str] = None
        requested_id = resolver.resolve(follower.requested_target)
        fell_back = False

        if follower.following_target:
            following_id = resolver.resolve(follower.following_target)
            if following_id is None:
                fell_back = True
                logger.debug(
                    "Follower '%s' follows unknown endpoint '%s'; attaching it to the root",
                    follower.local_url,
                    follower.following_target,
                )
                following_id = root.local_url

        # the root fallback never matches a requested target
        following_matches = not fell_back and following_id is not None and following_id == requested_id

        if view_mode.shows_following and following_id is not None and following_id != follower.local_url:
            if view_mode is ViewMode.BOTH:
                style = EdgeStyle.MATCH if following_matches else EdgeStyle.MISMATCH
            else:
                style = EdgeStyle.FOLLOWING
            model.edges.append(
                GraphEdge(
                    source=following_id,
                    target=follower.local_url,
                    kind=EdgeKind.FOLLOWING,
                    delta=difference(by_id[following_id], follower),
                    style=style,
                )
            )

        if not view_mode.shows_requested or not follower.requested_target:
            continue
        if requested_id is None:
            logger.debug(
                "Dropping requested edge for '%s': unknown endpoint '%s'",
                follower.local_url,
                follower.requested_target,
            )
            continue
        if requested_id == follower.local_url:
            continue
        if following_matches and view_mode is not ViewMode.REQUESTED:
            continue
        model.edges.append(
            GraphEdge(
                source=requested_id,
                target=follower.local_url,
                kind=EdgeKind.REQUESTED,
                delta=difference(by_id[requested_id], follower),
                style=EdgeStyle.REQUESTED,
            )
        )

    logger.debug(
        "Built graph: nodes=%s edges=%s clusters=%s mode=%s",
        len(model.nodes),
        len(model.edges),
        len(model.clusters),
        view_mode.value,
    )
    return model
