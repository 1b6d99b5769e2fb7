"""Topology sources: the pipe registry over HTTP, local JSON files and the bundled demo."""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

import requests

from ..core.model import Topology, TopologyError
from ..core.urls import rewrite_hosts

logger = logging.getLogger(__name__)

DEMO_TOPOLOGY_PATH = Path(__file__).resolve().with_name("demo_topology.json")


class FetchError(RuntimeError):
    """Raised when a topology cannot be retrieved or decoded."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TopologySource(ABC):
    def __init__(self, *, host_aliases: Optional[Mapping[str, str]] = None):
        self.host_aliases = dict(host_aliases or {})

    @abstractmethod
    def fetch_payload(self) -> Any:
        """Return the decoded JSON payload or raise :class:`FetchError`."""

    @property
    @abstractmethod
    def description(self) -> str:
        ...

    def fetch(self) -> Topology:
        payload = self.fetch_payload()
        return parse_topology(payload, host_aliases=self.host_aliases)


def parse_topology(payload: Any, *, host_aliases: Optional[Mapping[str, str]] = None) -> Topology:
    try:
        return Topology.from_dict(rewrite_hosts(payload, host_aliases or {}))
    except TopologyError as exc:
        raise FetchError(f"Malformed topology payload: {exc}") from exc


class HttpTopologySource(TopologySource):
    """Fetch the topology from the pipe registry."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        headers: Optional[Mapping[str, str]] = None,
        groups: Optional[Iterable[str]] = None,
        host_aliases: Optional[Mapping[str, str]] = None,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(host_aliases=host_aliases)
        self.url = url
        self.timeout = timeout
        self.headers: Dict[str, str] = dict(headers or {})
        self.groups = [group for group in (groups or []) if group]
        self.session = session

    @property
    def description(self) -> str:
        return self.url

    def fetch_payload(self) -> Any:
        params = [("groups", group) for group in self.groups] or None
        getter = self.session.get if self.session is not None else requests.get
        try:
            response = getter(self.url, params=params, headers=self.headers, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise FetchError(f"Topology request to {self.url} failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise FetchError(
                f"Topology request to {self.url} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise FetchError(f"Topology response from {self.url} is not valid JSON: {exc}") from exc


class FileTopologySource(TopologySource):
    """Read the topology from a JSON file on disk."""

    def __init__(self, path: Path, *, host_aliases: Optional[Mapping[str, str]] = None):
        super().__init__(host_aliases=host_aliases)
        self.path = Path(path).expanduser()

    @property
    def description(self) -> str:
        return str(self.path)

    def fetch_payload(self) -> Any:
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise FetchError(f"Cannot read topology file {self.path}: {exc}") from exc
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise FetchError(f"Topology file {self.path} is not valid JSON: {exc}") from exc


class DemoTopologySource(FileTopologySource):
    def __init__(self, *, host_aliases: Optional[Mapping[str, str]] = None):
        super().__init__(DEMO_TOPOLOGY_PATH, host_aliases=host_aliases)

    @property
    def description(self) -> str:
        return "bundled demo topology"


def load_demo_topology() -> Topology:
    return DemoTopologySource().fetch()
