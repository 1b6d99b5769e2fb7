"""Topology data model parsed from the pipe registry payload."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Optional

from .urls import last_segment

logger = logging.getLogger(__name__)

NodeType = Literal["root", "follower"]

PIPE_OFFSET = "PIPE_OFFSET"
ROOT_FALLBACK_NAME = "Cloud API"

_KNOWN_KEYS = {
    "localUrl",
    "status",
    "offset",
    "offsets",
    "pipe",
    "group",
    "lastSeen",
    "provider",
    "following",
    "requestedToFollow",
}


class TopologyError(ValueError):
    """Raised when a topology payload cannot be interpreted."""


@dataclass(frozen=True)
class PipeInfo:
    host: Optional[str] = None
    ip: Optional[str] = None
    pipe_state: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: object) -> Optional["PipeInfo"]:
        if not isinstance(raw, Mapping):
            return None
        return cls(
            host=_optional_str(raw.get("host")),
            ip=_optional_str(raw.get("ip")),
            pipe_state=_optional_str(raw.get("pipeState")),
        )


@dataclass(frozen=True)
class ProviderInfo:
    last_offset_sent: Any = None
    last_acked_offset: Any = None

    @classmethod
    def from_dict(cls, raw: object) -> Optional["ProviderInfo"]:
        if not isinstance(raw, Mapping):
            return None
        return cls(
            last_offset_sent=raw.get("lastOffsetSent"),
            last_acked_offset=raw.get("lastAckedOffset"),
        )


@dataclass(frozen=True)
class PipeNode:
    """A single pipe endpoint, either the cloud root or a follower."""

    local_url: str
    type: NodeType = "follower"
    status: Optional[str] = None
    offset: Any = None
    offsets: Optional[Dict[str, Any]] = None
    pipe: Optional[PipeInfo] = None
    group: Optional[str] = None
    last_seen: Optional[str] = None
    provider: Optional[ProviderInfo] = None
    following: List[str] = field(default_factory=list)
    requested_to_follow: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return self.local_url

    @property
    def pipe_offset(self) -> Any:
        if not self.offsets:
            return None
        return self.offsets.get(PIPE_OFFSET)

    @property
    def following_target(self) -> Optional[str]:
        return self.following[0] if self.following else None

    @property
    def requested_target(self) -> Optional[str]:
        return self.requested_to_follow[0] if self.requested_to_follow else None

    @property
    def display_name(self) -> str:
        if self.type == "root":
            return last_segment(self.local_url) or ROOT_FALLBACK_NAME
        if self.pipe and self.pipe.host:
            return self.pipe.host
        return last_segment(self.local_url) or self.local_url

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], *, node_type: NodeType = "follower") -> "PipeNode":
        local_url = _optional_str(raw.get("localUrl"))
        if not local_url:
            raise TopologyError("Node payload is missing 'localUrl'")
        offsets = raw.get("offsets")
        return cls(
            local_url=local_url,
            type=node_type,
            status=_optional_str(raw.get("status")),
            offset=raw.get("offset"),
            offsets=dict(offsets) if isinstance(offsets, Mapping) else None,
            pipe=PipeInfo.from_dict(raw.get("pipe")),
            group=_optional_str(raw.get("group")),
            last_seen=_optional_str(raw.get("lastSeen")),
            provider=ProviderInfo.from_dict(raw.get("provider")),
            following=_url_list(raw.get("following")),
            requested_to_follow=_url_list(raw.get("requestedToFollow")),
            extra={key: value for key, value in raw.items() if key not in _KNOWN_KEYS},
        )

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "localUrl": self.local_url,
            "type": self.type,
            "status": self.status,
            "group": self.group,
            "lastSeen": self.last_seen,
            "following": list(self.following),
            "requestedToFollow": list(self.requested_to_follow),
        }
        if self.offsets is not None:
            payload["offsets"] = dict(self.offsets)
        else:
            payload["offset"] = self.offset
        if self.pipe:
            payload["pipe"] = {"host": self.pipe.host, "ip": self.pipe.ip, "pipeState": self.pipe.pipe_state}
        if self.provider:
            payload["provider"] = {
                "lastOffsetSent": self.provider.last_offset_sent,
                "lastAckedOffset": self.provider.last_acked_offset,
            }
        payload.update(self.extra)
        return payload


@dataclass(frozen=True)
class Topology:
    root: PipeNode
    followers: List[PipeNode] = field(default_factory=list)

    @property
    def groups(self) -> List[str]:
        seen: List[str] = []
        for follower in self.followers:
            if follower.group and follower.group not in seen:
                seen.append(follower.group)
        return seen

    @classmethod
    def from_dict(cls, raw: object) -> "Topology":
        if not isinstance(raw, Mapping):
            raise TopologyError("Topology payload must be a JSON object")
        root_raw = raw.get("root")
        if not isinstance(root_raw, Mapping):
            raise TopologyError("Topology payload is missing a 'root' object")
        root = PipeNode.from_dict(root_raw, node_type="root")

        followers_raw = raw.get("followers") or []
        if not isinstance(followers_raw, list):
            raise TopologyError("'followers' must be a list")

        followers: List[PipeNode] = []
        seen = {root.local_url}
        for index, entry in enumerate(followers_raw):
            if not isinstance(entry, Mapping):
                logger.warning("Skipping follower #%s: expected an object, got %s", index, type(entry).__name__)
                continue
            try:
                follower = PipeNode.from_dict(entry)
            except TopologyError as exc:
                logger.warning("Skipping follower #%s: %s", index, exc)
                continue
            if follower.local_url in seen:
                logger.warning("Skipping duplicate node '%s'", follower.local_url)
                continue
            seen.add(follower.local_url)
            followers.append(follower)
        return cls(root=root, followers=followers)

    def to_dict(self) -> Dict[str, object]:
        return {
            "root": self.root.to_dict(),
            "followers": [follower.to_dict() for follower in self.followers],
        }


def _optional_str(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _url_list(value: object) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]
