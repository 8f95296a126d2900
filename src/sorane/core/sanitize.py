"""
Make arbitrary host-application values safe for JSON buffering.

Producers receive user-supplied ``properties``, ``context`` and ``extra``
mappings that may hold callables, model instances, datetimes or anything
else. ``sanitize_for_serialization`` walks the structure and replaces what
cannot be encoded, so an append never fails on ``json.dumps`` and the
batch it lands in stays valid strict JSON.

Tags:
    serialization, sanitization, sorane
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from datetime import date, datetime
from enum import Enum
from typing import Any

TRUNCATION_SUFFIX = "... (truncated)"

_MAX_DEPTH = 10


def sanitize_for_serialization(value: Any, _depth: int = 0) -> Any:
    """Recursively convert ``value`` into JSON-encodable primitives.

    - mappings and sequences are walked (keys become strings)
    - NaN and infinite floats become ``None``
    - callables become ``"[Callable]"``
    - enums, datetimes and dates become their value / ISO string
    - objects exposing ``model_dump()``, ``to_dict()`` or ``__dict__`` are converted
    - anything else becomes ``"[Object: ClassName]"``
    """
    if _depth > _MAX_DEPTH:
        return "[Max depth exceeded]"

    if isinstance(value, float) and not math.isfinite(value):
        return None
    if value is None or isinstance(value, bool | int | float | str):
        return value
    if isinstance(value, Enum):
        return sanitize_for_serialization(value.value, _depth + 1)
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(k): sanitize_for_serialization(v, _depth + 1) for k, v in value.items()}
    if isinstance(value, list | tuple | set | frozenset):
        return [sanitize_for_serialization(v, _depth + 1) for v in value]
    if callable(value):
        return "[Callable]"

    for converter in ("model_dump", "to_dict"):
        method = getattr(value, converter, None)
        if callable(method):
            try:
                return sanitize_for_serialization(method(), _depth + 1)
            except Exception:  # noqa: BLE001
                break

    if hasattr(value, "__dict__") and not isinstance(value, type):
        public = {k: v for k, v in vars(value).items() if not k.startswith("_")}
        if public:
            return sanitize_for_serialization(public, _depth + 1)

    return f"[Object: {type(value).__name__}]"


def truncate(text: str, limit: int, suffix: str = TRUNCATION_SUFFIX) -> str:
    """Cut ``text`` to ``limit`` characters, appending ``suffix`` when cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + suffix


def json_size(value: Any) -> int:
    """Length of the JSON encoding of ``value`` (0 if it cannot be encoded)."""
    try:
        return len(json.dumps(value, default=str))
    except (TypeError, ValueError):
        return 0


def filter_fields(data: Mapping[str, Any], allowed: frozenset[str] | set[str]) -> dict[str, Any]:
    """Keep only allow-listed keys."""
    return {k: v for k, v in data.items() if k in allowed}


def is_strict_json(value: Any) -> bool:
    """True if ``value`` encodes as standard JSON (no NaN, no Infinity)."""
    try:
        json.dumps(value, allow_nan=False)
    except (TypeError, ValueError):
        return False
    return True
