"""Node label fields selectable from the controls surface."""
from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, Optional

from .model import PipeNode

LabelAccessor = Callable[[PipeNode], Optional[str]]


class LabelField(Enum):
    PIPE_HOST = "pipe.host"
    NAME = "name"
    PIPE_IP = "pipe.ip"
    GROUP = "group"
    LOCAL_URL = "id"

    @property
    def title(self) -> str:
        return _TITLES[self]

    @classmethod
    def parse(cls, value: "str | LabelField") -> "LabelField":
        """Resolve a dot-path (``pipe.host``) or member name (``PIPE_HOST``) to a field."""

        if isinstance(value, LabelField):
            return value
        candidate = (value or "").strip()
        for member in cls:
            if candidate == member.value or candidate.upper() == member.name:
                return member
        allowed = ", ".join(member.value for member in cls)
        raise ValueError(f"Unsupported label property '{value}'; expected one of: {allowed}")


_TITLES: Dict[LabelField, str] = {
    LabelField.PIPE_HOST: "Pipe Host",
    LabelField.NAME: "Name",
    LabelField.PIPE_IP: "Pipe IP",
    LabelField.GROUP: "Location ID (Group)",
    LabelField.LOCAL_URL: "Local URL",
}

_ACCESSORS: Dict[LabelField, LabelAccessor] = {
    LabelField.PIPE_HOST: lambda node: node.pipe.host if node.pipe else None,
    LabelField.NAME: lambda node: node.display_name,
    LabelField.PIPE_IP: lambda node: node.pipe.ip if node.pipe else None,
    LabelField.GROUP: lambda node: node.group,
    LabelField.LOCAL_URL: lambda node: node.local_url,
}


def resolve_label(node: PipeNode, label_field: LabelField) -> str:
    """Return the label for ``node``; falls back to the display name when the field is empty."""

    accessor = _ACCESSORS.get(label_field)
    value: Optional[str] = None
    if accessor is not None:
        try:
            value = accessor(node)
        except (AttributeError, TypeError, KeyError):
            value = None
    if value is None or str(value).strip() == "":
        return node.display_name
    return str(value)
