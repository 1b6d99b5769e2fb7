"""Layout style presets and their configuration loader."""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Optional, Tuple

from .files import read_mapping_file

logger = logging.getLogger(__name__)

DIRECTIONS = ("TB", "BT", "LR", "RL")


@dataclass(frozen=True)
class LayoutStyle:
    """Spacing and orientation for one named layout preset.

    ``direction`` follows the usual rankdir convention: ``TB`` puts the root at
    the top, ``LR`` puts it on the left.
    """

    name: str
    direction: str = "TB"
    rank_sep: float = 50.0
    node_sep: float = 50.0
    edge_sep: float = 10.0

    @property
    def horizontal(self) -> bool:
        return self.direction in ("LR", "RL")

    def as_tuple(self) -> Tuple[str, float, float, float]:
        return self.direction, self.rank_sep, self.node_sep, self.edge_sep


DEFAULT_STYLE_NAME = "Packed LR"

DEFAULT_STYLES: Dict[str, LayoutStyle] = {
    "Standard": LayoutStyle("Standard", "TB", 50.0, 50.0, 10.0),
    "Standard LR": LayoutStyle("Standard LR", "LR", 50.0, 50.0, 10.0),
    "Packed": LayoutStyle("Packed", "TB", 10.0, 10.0, 5.0),
    "Packed LR": LayoutStyle("Packed LR", "LR", 10.0, 10.0, 5.0),
}

_CURRENT_STYLES: Dict[str, LayoutStyle] = dict(DEFAULT_STYLES)


def get_layout_styles() -> Dict[str, LayoutStyle]:
    """Return the active presets keyed by name."""

    return dict(_CURRENT_STYLES)


def set_layout_styles(styles: Dict[str, LayoutStyle]) -> None:
    """Replace the active presets."""

    global _CURRENT_STYLES
    _CURRENT_STYLES = dict(styles)


def get_layout_style(name: Optional[str]) -> LayoutStyle:
    key = name or DEFAULT_STYLE_NAME
    try:
        return _CURRENT_STYLES[key]
    except KeyError:
        allowed = ", ".join(_CURRENT_STYLES)
        raise ValueError(f"Unknown layout style '{name}'; expected one of: {allowed}") from None


LAYOUT_CONFIG_CANDIDATES: Tuple[Path, ...] = (
    Path("pipetree-layout.yaml"),
    Path("pipetree-layout.yml"),
    Path("pipetree-layout.json"),
    Path("~/.config/pipetree/layout.yaml"),
)


def find_layout_config(path: Optional[Path] = None) -> Optional[Path]:
    """Return the preset override file to use, or ``None`` to keep the built-in presets.

    An explicit ``path`` is the only candidate when given; otherwise the
    working directory is searched for ``pipetree-layout.{yaml,yml,json}``
    before the per-user ``~/.config/pipetree/layout.yaml``.
    """

    candidates = (Path(path),) if path else LAYOUT_CONFIG_CANDIDATES
    for candidate in candidates:
        resolved = candidate.expanduser()
        if resolved.is_file():
            return resolved.absolute()
    if path:
        logger.warning("Layout preset file %s not found; keeping the built-in presets", path)
    return None


def load_layout_styles(path: Optional[Path] = None) -> Dict[str, LayoutStyle]:
    """Load preset overrides from YAML or JSON.

    Only the four named presets can be tuned; each entry may set ``rankdir``
    (or ``direction``), ``ranksep``, ``nodesep`` and ``edgesep``.
    """

    config_path = find_layout_config(path)
    if config_path is None:
        return dict(DEFAULT_STYLES)
    styles = _parse_layout_styles(read_mapping_file(config_path, purpose="layout preset file"))
    logger.info("Loaded layout presets from %s", config_path)
    return styles


def _parse_layout_styles(raw: Dict[str, object]) -> Dict[str, LayoutStyle]:
    styles = dict(DEFAULT_STYLES)
    for name, entry in raw.items():
        base = styles.get(name)
        if base is None or not isinstance(entry, dict):
            logger.warning("Ignoring layout preset '%s'; expected one of: %s", name, ", ".join(DEFAULT_STYLES))
            continue
        direction = entry.get("rankdir", entry.get("direction", base.direction))
        if not isinstance(direction, str) or direction.upper() not in DIRECTIONS:
            logger.warning("Preset '%s' has unsupported rankdir %r; keeping %s", name, direction, base.direction)
            direction = base.direction
        styles[name] = replace(
            base,
            direction=direction.upper(),
            rank_sep=_coerce_number(entry.get("ranksep"), base.rank_sep),
            node_sep=_coerce_number(entry.get("nodesep"), base.node_sep),
            edge_sep=_coerce_number(entry.get("edgesep"), base.edge_sep),
        )
    return styles


def _coerce_number(value: object, default: float) -> float:
    try:
        parsed = float(value) if value is not None else default
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= 0 else default
