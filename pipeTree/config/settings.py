"""Configuration helpers for runtime settings."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

from ..core.urls import parse_host_aliases

DEFAULT_TIMEOUT = 10.0
DEFAULT_REFRESH_INTERVAL = 60.0


@dataclass(frozen=True)
class RuntimeSettings:
    """Environment-driven configuration for the topology viewer."""

    source_url: Optional[str] = None
    source_file: Optional[Path] = None
    timeout: float = DEFAULT_TIMEOUT
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    auth_token: Optional[str] = None
    host_aliases: Dict[str, str] = field(default_factory=dict)
    layout_config: Optional[Path] = None

    @property
    def headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers


def load_runtime_settings(env_file: Optional[Path] = None) -> RuntimeSettings:
    """Load settings from ``PIPETREE_*`` environment variables.

    Supplying an ``env_file`` loads variables from that ``.env`` file first;
    otherwise the default ``.env`` lookup of python-dotenv applies. Values
    already present in the environment are not overridden.
    """

    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    source_file = os.getenv("PIPETREE_SOURCE_FILE")
    layout_config = os.getenv("PIPETREE_LAYOUT_CONFIG")
    return RuntimeSettings(
        source_url=os.getenv("PIPETREE_SOURCE_URL") or None,
        source_file=Path(source_file).expanduser() if source_file else None,
        timeout=_positive_float(os.getenv("PIPETREE_TIMEOUT"), DEFAULT_TIMEOUT),
        refresh_interval=_positive_float(os.getenv("PIPETREE_REFRESH_INTERVAL"), DEFAULT_REFRESH_INTERVAL),
        auth_token=os.getenv("PIPETREE_AUTH_TOKEN") or None,
        host_aliases=parse_host_aliases(os.getenv("PIPETREE_HOST_ALIASES")),
        layout_config=Path(layout_config).expanduser() if layout_config else None,
    )


def _positive_float(value: Optional[str], default: float) -> float:
    try:
        parsed = float(value) if value is not None else default
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default
