"""Shared fixtures for the pipeTree test-suite."""

import matplotlib

matplotlib.use("Agg")

import pytest

from pipeTree.config.layout import DEFAULT_STYLES, set_layout_styles
from pipeTree.core.model import Topology


def follower(url, *, following=None, requested=None, pipe_offset=None, group=None, host=None, state=None, **extra):
    node = {"localUrl": url, "status": extra.pop("status", "UP")}
    if following is not None:
        node["following"] = [following]
    if requested is not None:
        node["requestedToFollow"] = [requested]
    if pipe_offset is not None:
        node["offsets"] = {"PIPE_OFFSET": pipe_offset}
    if group is not None:
        node["group"] = group
    if host is not None or state is not None:
        node["pipe"] = {"host": host, "ip": extra.pop("ip", None), "pipeState": state}
    node.update(extra)
    return node


@pytest.fixture(autouse=True)
def reset_layout_styles():
    set_layout_styles(DEFAULT_STYLES)
    yield
    set_layout_styles(DEFAULT_STYLES)


@pytest.fixture
def cloud_payload():
    """The single-follower example: cloud at offset 100, n1 at PIPE_OFFSET 90."""
    return {
        "root": {"localUrl": "https://cloud/v1", "offset": 100},
        "followers": [
            {
                "localUrl": "https://n1",
                "offsets": {"PIPE_OFFSET": 90},
                "following": ["https://cloud/v1"],
                "requestedToFollow": ["https://cloud/v1"],
            }
        ],
    }


@pytest.fixture
def store_payload():
    """Two stores: a chained follower, a mismatched follower and one following an unknown relay."""
    root = "https://api.abc.com/pipes/v1"
    a1 = "http://10.0.0.1/pipe"
    a2 = "http://10.0.0.2/pipe"
    a3 = "http://10.0.0.3/pipe"
    b1 = "http://10.0.1.1/pipe"
    return {
        "root": {"localUrl": root, "status": "UP", "offset": 1000, "lastSeen": "2024/05/14@10:00:00"},
        "followers": [
            follower(a1, following="http://api.abc.com/pipes/v1", requested=root, pipe_offset=990,
                     group="store-1", host="pos-a1", state="UP_TO_DATE", ip="10.0.0.1"),
            follower(a2, following=a1, requested=a1, pipe_offset=980, group="store-1", host="pos-a2",
                     state="UP_TO_DATE"),
            follower(a3, following=root, requested=a1, pipe_offset=900, group="store-1", host="pos-a3",
                     state="OUT_OF_SYNC"),
            follower(b1, following="http://relay.example/pipe", requested=root, pipe_offset=995,
                     group="store-2", host="pos-b1", state="DOWN"),
        ],
    }


@pytest.fixture
def cloud_topology(cloud_payload):
    return Topology.from_dict(cloud_payload)


@pytest.fixture
def store_topology(store_payload):
    return Topology.from_dict(store_payload)


@pytest.fixture
def make_follower():
    return follower
