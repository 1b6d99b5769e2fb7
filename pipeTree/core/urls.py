"""URL helpers used to match follower targets against known nodes."""
from __future__ import annotations

import re
from typing import Any, Mapping, Optional

_SCHEME_PATTERN = re.compile(r"^https?://", re.IGNORECASE)


def canonical_url(url: Optional[str]) -> str:
    """Return ``url`` with its scheme forced to ``https`` and surrounding whitespace removed."""

    if not url:
        return ""
    candidate = url.strip()
    if _SCHEME_PATTERN.match(candidate):
        candidate = _SCHEME_PATTERN.sub("https://", candidate, count=1)
    return candidate.rstrip("/")


def same_endpoint(left: Optional[str], right: Optional[str]) -> bool:
    if not left or not right:
        return False
    return canonical_url(left) == canonical_url(right)


def last_segment(url: Optional[str]) -> str:
    if not url:
        return ""
    trimmed = _SCHEME_PATTERN.sub("", url.strip()).rstrip("/")
    if "/" not in trimmed:
        return ""
    return trimmed.rsplit("/", 1)[-1]


def parse_host_aliases(raw: Optional[str]) -> dict[str, str]:
    """Parse ``old=new,old2=new2`` into a mapping, ignoring malformed entries."""

    aliases: dict[str, str] = {}
    if not raw:
        return aliases
    for chunk in raw.split(","):
        if "=" not in chunk:
            continue
        old, new = chunk.split("=", 1)
        old, new = old.strip(), new.strip()
        if old and new:
            aliases[old] = new
    return aliases


def rewrite_hosts(payload: Any, aliases: Mapping[str, str]) -> Any:
    """Recursively replace aliased hosts inside every string of a decoded JSON payload."""

    if not aliases:
        return payload
    if isinstance(payload, str):
        for old, new in aliases.items():
            payload = payload.replace(old, new)
        return payload
    if isinstance(payload, list):
        return [rewrite_hosts(item, aliases) for item in payload]
    if isinstance(payload, dict):
        return {key: rewrite_hosts(value, aliases) for key, value in payload.items()}
    return payload
