"""
Tests for layout presets and the layered layout engine.
"""

import json
from dataclasses import replace

import networkx as nx
import pytest

from pipeTree.config.files import ConfigFileError
from pipeTree.config.layout import (
    DEFAULT_STYLE_NAME,
    DEFAULT_STYLES,
    find_layout_config,
    get_layout_style,
    load_layout_styles,
)
from pipeTree.core.graph_builder import BuildOptions, ViewMode, build_graph
from pipeTree.data.source import load_demo_topology
from pipeTree.render.layout import assign_ranks, compute_layout

ROOT = "https://api.abc.com/pipes/v1"
A1 = "http://10.0.0.1/pipe"
A2 = "http://10.0.0.2/pipe"
A3 = "http://10.0.0.3/pipe"
B1 = "http://10.0.1.1/pipe"


class TestPresets:
    def test_four_named_presets(self):
        assert set(DEFAULT_STYLES) == {"Standard", "Standard LR", "Packed", "Packed LR"}
        assert DEFAULT_STYLE_NAME == "Packed LR"

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("Standard", ("TB", 50.0, 50.0, 10.0)),
            ("Standard LR", ("LR", 50.0, 50.0, 10.0)),
            ("Packed", ("TB", 10.0, 10.0, 5.0)),
            ("Packed LR", ("LR", 10.0, 10.0, 5.0)),
        ],
    )
    def test_preset_values(self, name, expected):
        assert get_layout_style(name).as_tuple() == expected

    def test_unknown_style_is_rejected(self):
        with pytest.raises(ValueError):
            get_layout_style("Sideways")

    def test_load_overrides_from_json(self, tmp_path):
        path = tmp_path / "layout.json"
        path.write_text(
            json.dumps({"Standard": {"rankdir": "bt", "ranksep": 80}, "Packed": {"rankdir": "diagonal"}, "Other": {}}),
            encoding="utf-8",
        )

        styles = load_layout_styles(path)

        assert styles["Standard"].as_tuple() == ("BT", 80.0, 50.0, 10.0)
        assert styles["Packed"].direction == "TB"
        assert "Other" not in styles

    def test_missing_file_returns_defaults(self, tmp_path):
        assert load_layout_styles(tmp_path / "nope.yaml") == DEFAULT_STYLES

    def test_working_directory_file_is_found(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        (tmp_path / "pipetree-layout.json").write_text(json.dumps({"Packed LR": {"rankdir": "RL"}}), encoding="utf-8")

        assert find_layout_config().name == "pipetree-layout.json"
        assert load_layout_styles()["Packed LR"].direction == "RL"

    def test_no_candidates_keeps_builtin_presets(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))

        assert find_layout_config() is None
        assert load_layout_styles() == DEFAULT_STYLES

    def test_malformed_file_is_reported(self, tmp_path):
        path = tmp_path / "layout.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(ConfigFileError):
            load_layout_styles(path)


class TestRanks:
    def test_longest_path_ranks(self, store_topology):
        model = build_graph(store_topology, BuildOptions(ViewMode.FOLLOWING))

        ranks = assign_ranks(model.to_networkx(), model.root_id)

        assert ranks[ROOT] == 0
        assert ranks[A1] == 1
        assert ranks[A2] == 2
        assert ranks[A3] == 1

    def test_cycles_do_not_break_ranking(self):
        graph = nx.DiGraph([("root", "a"), ("a", "b"), ("b", "a")])

        ranks = assign_ranks(graph, "root")

        assert ranks["root"] == 0
        assert set(ranks) == {"root", "a", "b"}


class TestComputeLayout:
    @pytest.fixture
    def model(self, store_topology):
        return build_graph(store_topology, BuildOptions(ViewMode.BOTH))

    def test_every_node_and_edge_is_placed(self, model):
        layout = compute_layout(model, get_layout_style("Standard"))

        assert set(layout.nodes) == set(model.nodes)
        assert len(layout.edges) == len(model.edges)
        assert layout.bounds.width > 0 and layout.bounds.height > 0

    def test_top_to_bottom_puts_root_above_followers(self, model):
        layout = compute_layout(model, get_layout_style("Standard"))

        assert layout.nodes[ROOT].y < layout.nodes[A1].y < layout.nodes[A2].y

    def test_bottom_to_top_override_flips_the_tree(self, model):
        style = replace(get_layout_style("Standard"), direction="BT")

        layout = compute_layout(model, style)

        assert layout.nodes[ROOT].y > layout.nodes[A1].y > layout.nodes[A2].y

    def test_left_to_right_puts_root_on_the_left(self, model):
        layout = compute_layout(model, get_layout_style("Packed LR"))

        assert layout.nodes[ROOT].x < layout.nodes[A1].x < layout.nodes[A2].x

    def test_packed_is_smaller_than_standard(self, model):
        standard = compute_layout(model, get_layout_style("Standard"))
        packed = compute_layout(model, get_layout_style("Packed"))

        assert packed.bounds.width < standard.bounds.width
        assert packed.bounds.height < standard.bounds.height

    def test_clusters_enclose_members(self, model):
        layout = compute_layout(model, get_layout_style("Standard"))

        for cluster_id, cluster in model.clusters.items():
            box = layout.clusters[cluster_id]
            for member in cluster.members:
                node = layout.nodes[member]
                assert box.x0 < node.x0 and node.x1 < box.x1
                assert box.y0 < node.y0 and node.y1 < box.y1
            # label sits in the bottom strip, below every member
            assert box.label_position[1] > max(layout.nodes[m].y1 for m in cluster.members)

    def test_everything_inside_bounds(self, model):
        layout = compute_layout(model, get_layout_style("Standard LR"))

        for box in layout.nodes.values():
            assert layout.bounds.x0 <= box.x0 and box.x1 <= layout.bounds.x1
            assert layout.bounds.y0 <= box.y0 and box.y1 <= layout.bounds.y1

    def test_edges_run_between_their_nodes(self, model):
        layout = compute_layout(model, get_layout_style("Packed LR"))

        for path in layout.edges:
            source = layout.nodes[path.edge.source]
            target = layout.nodes[path.edge.target]
            start, end = path.points[0], path.points[-1]
            assert start[0] == pytest.approx(source.x1)
            assert end[0] == pytest.approx(target.x0)

    def test_default_style_is_packed_lr(self, model):
        assert compute_layout(model).style.name == "Packed LR"


def _overlaps(a, b):
    return a.x0 < b.x1 and b.x0 < a.x1 and a.y0 < b.y1 and b.y0 < a.y1


def _containment_violations(model, layout):
    violations = []
    for cluster_id, cluster in model.clusters.items():
        box = layout.clusters[cluster_id]
        for node_id, node_box in layout.nodes.items():
            if node_id not in cluster.members and _overlaps(box, node_box):
                violations.append((cluster_id, node_id))
        for other_id, other_box in layout.clusters.items():
            if other_id != cluster_id and _overlaps(box, other_box):
                violations.append((cluster_id, other_id))
    return violations


class TestClusterContainment:
    @pytest.mark.parametrize("style_name", sorted(DEFAULT_STYLES))
    @pytest.mark.parametrize("mode", [ViewMode.FOLLOWING, ViewMode.BOTH])
    def test_store_clusters_hold_only_their_members(self, store_topology, style_name, mode):
        model = build_graph(store_topology, BuildOptions(mode))

        layout = compute_layout(model, get_layout_style(style_name))

        assert _containment_violations(model, layout) == []

    @pytest.mark.parametrize("style_name", sorted(DEFAULT_STYLES))
    def test_demo_clusters_hold_only_their_members(self, style_name):
        model = build_graph(load_demo_topology(), BuildOptions(ViewMode.BOTH))

        layout = compute_layout(model, get_layout_style(style_name))

        assert len(layout.clusters) >= 2
        assert _containment_violations(model, layout) == []

    def test_root_sits_outside_every_cluster(self, store_topology):
        model = build_graph(store_topology, BuildOptions(ViewMode.BOTH))

        layout = compute_layout(model, get_layout_style("Standard"))

        root = layout.nodes[ROOT]
        assert not any(_overlaps(box, root) for box in layout.clusters.values())

    def test_members_share_one_band_across_ranks(self, store_topology):
        model = build_graph(store_topology, BuildOptions(ViewMode.FOLLOWING))

        layout = compute_layout(model, get_layout_style("Standard"))

        store_1 = layout.clusters["store-1"]
        # A2 sits one rank below A1 and A3 but inside the same cluster column
        assert layout.ranks[A2] > layout.ranks[A1]
        assert store_1.x0 < layout.nodes[A2].x0 and layout.nodes[A2].x1 < store_1.x1
        assert not _overlaps(store_1, layout.nodes[B1])
