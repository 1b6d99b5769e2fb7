"""
Tests for graph construction from follower topologies.
"""

import math

import pytest

from pipeTree.core.graph_builder import (
    BuildOptions,
    EdgeKind,
    EdgeStyle,
    ViewMode,
    build_graph,
    node_css_class,
)
from pipeTree.core.labels import LabelField
from pipeTree.core.model import Topology

ROOT = "https://api.abc.com/pipes/v1"
A1 = "http://10.0.0.1/pipe"
A2 = "http://10.0.0.2/pipe"
A3 = "http://10.0.0.3/pipe"
B1 = "http://10.0.1.1/pipe"


def build(topology, mode="following", label=LabelField.PIPE_HOST, clusters=True):
    return build_graph(topology, BuildOptions(ViewMode.parse(mode), label, clusters))


class TestEndToEnd:
    def test_cloud_follower_in_both_mode(self, cloud_topology):
        model = build(cloud_topology, "both")

        assert len(model.edges) == 1
        edge = model.edges[0]
        assert (edge.source, edge.target) == ("https://cloud/v1", "https://n1")
        assert edge.delta == 10
        assert edge.style is EdgeStyle.MATCH
        assert edge.label == "Δ 10"


class TestNodes:
    def test_one_node_per_root_and_follower(self, store_topology):
        model = build(store_topology)

        assert set(model.nodes) == {ROOT, A1, A2, A3, B1}
        assert model.root_id == ROOT
        assert model.nodes[ROOT].parent is None

    def test_scheme_mismatch_resolves_to_root(self):
        topology = Topology.from_dict(
            {
                "root": {"localUrl": "https://x/a", "offset": 5},
                "followers": [{"localUrl": "https://f1", "following": ["http://x/a"], "offsets": {"PIPE_OFFSET": 4}}],
            }
        )

        model = build(topology)

        assert set(model.nodes) == {"https://x/a", "https://f1"}
        assert [(e.source, e.target) for e in model.edges] == [("https://x/a", "https://f1")]
        assert model.edges[0].delta == 1

    def test_scheme_mismatch_resolves_to_follower(self, make_follower):
        topology = Topology.from_dict(
            {
                "root": {"localUrl": ROOT},
                "followers": [
                    make_follower("https://10.0.0.1/pipe"),
                    make_follower(A2, following="http://10.0.0.1/pipe"),
                ],
            }
        )

        model = build(topology)

        assert [(e.source, e.target) for e in model.edges] == [("https://10.0.0.1/pipe", A2)]

    def test_clusters_from_groups(self, store_topology):
        model = build(store_topology)

        assert set(model.clusters) == {"store-1", "store-2"}
        assert model.clusters["store-1"].members == (A1, A2, A3)
        assert model.nodes[A1].parent == "store-1"
        assert model.nodes[B1].parent == "store-2"

    def test_clusters_can_be_disabled(self, store_topology):
        model = build(store_topology, clusters=False)

        assert model.clusters == {}
        assert all(node.parent is None for node in model.nodes.values())

    def test_labels_follow_selected_field(self, store_topology):
        by_host = build(store_topology, label=LabelField.PIPE_HOST)
        by_group = build(store_topology, label=LabelField.GROUP)
        by_ip = build(store_topology, label=LabelField.PIPE_IP)

        assert by_host.nodes[A1].label == "pos-a1"
        assert by_group.nodes[A1].label == "store-1"
        assert by_ip.nodes[A1].label == "10.0.0.1"
        # no ip on A2: falls back to its display name
        assert by_ip.nodes[A2].label == "pos-a2"
        assert by_host.nodes[ROOT].label == "v1"

    def test_behind_root_is_computed(self, store_topology):
        model = build(store_topology)

        assert model.nodes[A3].behind_root == 100
        assert math.isnan(model.nodes[ROOT].behind_root)

    def test_css_classes(self, store_topology):
        model = build(store_topology)

        assert model.nodes[ROOT].css_class == "node-root"
        assert model.nodes[A3].css_class == "node-follower pipe-out-of-sync"
        assert node_css_class(store_topology.followers[1]) == "node-follower pipe-up-to-date"


class TestFollowingEdges:
    def test_following_mode_edges(self, store_topology):
        model = build(store_topology, "following")
        pairs = {(e.source, e.target) for e in model.edges}

        assert pairs == {(ROOT, A1), (A1, A2), (ROOT, A3), (ROOT, B1)}
        assert all(e.kind is EdgeKind.FOLLOWING for e in model.edges)
        assert all(e.style is EdgeStyle.FOLLOWING for e in model.edges)

    def test_unknown_following_target_falls_back_to_root(self, store_topology):
        model = build(store_topology, "following")

        edge = model.edges_between(ROOT, B1)
        assert len(edge) == 1
        assert edge[0].delta == 5

    def test_follower_without_following_gets_no_edge(self, make_follower):
        topology = Topology.from_dict({"root": {"localUrl": ROOT}, "followers": [make_follower(A1)]})

        assert build(topology, "following").edges == []

    def test_chain_delta_uses_upstream_pipe_offset(self, store_topology):
        model = build(store_topology, "following")

        assert model.edges_between(A1, A2)[0].delta == 10


class TestRequestedEdges:
    def test_requested_mode_never_suppresses(self, store_topology):
        model = build(store_topology, "requested")
        pairs = {(e.source, e.target) for e in model.edges}

        assert pairs == {(ROOT, A1), (A1, A2), (A1, A3), (ROOT, B1)}
        assert all(e.kind is EdgeKind.REQUESTED for e in model.edges)
        assert all(e.style is EdgeStyle.REQUESTED for e in model.edges)
        assert model.edges_between(A1, A2)[0].label == "Δ 10 (req)"

    def test_requested_mode_keeps_edge_matching_following(self, cloud_topology):
        model = build(cloud_topology, "requested")

        assert len(model.edges) == 1
        assert model.edges[0].kind is EdgeKind.REQUESTED

    def test_unknown_requested_target_is_dropped(self, make_follower):
        topology = Topology.from_dict(
            {"root": {"localUrl": ROOT}, "followers": [make_follower(A1, requested="http://nowhere/pipe")]}
        )

        assert build(topology, "requested").edges == []


class TestBothMode:
    def test_matching_relationship_yields_single_match_edge(self, store_topology):
        model = build(store_topology, "both")

        edges = model.edges_between(A1, A2)
        assert len(edges) == 1
        assert edges[0].kind is EdgeKind.FOLLOWING
        assert edges[0].style is EdgeStyle.MATCH

    def test_scheme_variants_count_as_match(self, store_topology):
        model = build(store_topology, "both")

        edges = model.edges_between(ROOT, A1)
        assert [e.style for e in edges] == [EdgeStyle.MATCH]

    def test_mismatch_draws_both_relationships(self, store_topology):
        model = build(store_topology, "both")

        following = model.edges_between(ROOT, A3)
        requested = model.edges_between(A1, A3)
        assert [e.style for e in following] == [EdgeStyle.MISMATCH]
        assert [e.style for e in requested] == [EdgeStyle.REQUESTED]

    def test_root_fallback_is_a_mismatch(self, store_topology):
        model = build(store_topology, "both")

        edges = model.edges_between(ROOT, B1)
        assert [(e.kind, e.style) for e in edges] == [
            (EdgeKind.FOLLOWING, EdgeStyle.MISMATCH),
            (EdgeKind.REQUESTED, EdgeStyle.REQUESTED),
        ]

    def test_unknown_relay_with_root_request_is_not_healthy(self):
        topology = Topology.from_dict(
            {
                "root": {"localUrl": "https://cloud/v1", "offset": 100},
                "followers": [
                    {
                        "localUrl": "https://n1",
                        "offsets": {"PIPE_OFFSET": 90},
                        "following": ["https://relay/x"],
                        "requestedToFollow": ["https://cloud/v1"],
                    }
                ],
            }
        )

        model = build(topology, "both")

        assert [(e.source, e.target, e.kind.value, e.style.value) for e in model.edges] == [
            ("https://cloud/v1", "https://n1", "following", "mismatch"),
            ("https://cloud/v1", "https://n1", "requested", "requested"),
        ]

    @pytest.mark.parametrize("mode", ["following", "requested", "both"])
    def test_root_never_has_incoming_edges(self, store_topology, mode):
        model = build(store_topology, mode)

        assert all(edge.target != ROOT for edge in model.edges)


class TestNetworkxExport:
    def test_to_networkx_carries_attributes(self, store_topology):
        graph = build(store_topology, "both").to_networkx()

        assert graph.graph["root"] == ROOT
        assert graph.nodes[A1]["cluster"] == "store-1"
        assert graph.nodes[A1]["label"] == "pos-a1"
        assert graph.has_edge(A1, A3)
        assert graph.edges[A1, A3]["edges"][0].kind is EdgeKind.REQUESTED
        assert graph.graph["clusters"]["store-2"] == [B1]
