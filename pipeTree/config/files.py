"""Reading the YAML/JSON mapping files behind ``--config`` and the layout presets."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

import yaml

YAML_SUFFIXES = (".yaml", ".yml")


class ConfigFileError(ValueError):
    """Raised when a pipeTree config file cannot be read or is not a mapping."""


def read_mapping_file(path: Path, *, purpose: str) -> Dict[str, Any]:
    """Decode ``path`` as YAML or JSON (by suffix) and return its top-level mapping.

    ``purpose`` names the file in error messages, e.g. ``"viewer config"``.
    An empty file yields an empty mapping.
    """

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigFileError(f"Cannot read {purpose} {path}: {exc}") from exc
    if not text.strip():
        return {}

    try:
        if path.suffix.lower() in YAML_SUFFIXES:
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigFileError(f"{purpose.capitalize()} {path} is not valid YAML/JSON: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigFileError(
            f"{purpose.capitalize()} {path} must map option names to values, got {type(data).__name__}"
        )
    return data
