"""Shared JSON helpers.

One compact encoding is used everywhere a payload is measured or sent, so the
size the chunker budgets for is the size that goes over the wire.
"""

import json
from typing import Any


def compact_dumps(value: Any) -> str:
    """Serialize without insignificant whitespace, keeping non-ASCII text as-is."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def compact_bytes(value: Any) -> bytes:
    """UTF-8 bytes of the compact encoding."""
    return compact_dumps(value).encode("utf-8")


def serialized_size(value: Any) -> int:
    """Byte length of the compact encoding."""
    return len(compact_bytes(value))


def parse_json_or_none(raw: str | bytes | dict | list | None) -> dict | list | None:
    """Parse a JSON string or return structured value as-is, None on failure.

    Accepts dicts and lists as-is without re-parsing.
    Returns None for: None, empty input, invalid JSON, scalar JSON.
    """
    if raw is None:
        return None
    if isinstance(raw, (dict, list)):
        return raw
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except (ValueError, TypeError):
        return None
    if isinstance(parsed, (dict, list)):
        return parsed
    return None


def json_list(raw: str | None) -> list[Any]:
    """Parse a JSON array column. Empty list for None, invalid or non-list JSON."""
    parsed = parse_json_or_none(raw)
    return parsed if isinstance(parsed, list) else []
