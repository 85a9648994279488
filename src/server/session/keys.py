from __future__ import annotations

import re
from typing import Any, Optional
from uuid import uuid4

_UUID_V4_RE = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}",
    re.IGNORECASE,
)
_UUID_ANY_RE = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
    re.IGNORECASE,
)


def is_valid_session_key(value: Any, version: Optional[int] = 4) -> bool:
    """Return True if ``value`` is a canonical UUID string.

    ``version=4`` only accepts random (v4) UUIDs; ``version=None`` accepts any
    hyphenated UUID-shaped string.
    """
    if not isinstance(value, str):
        return False
    if version is None:
        return _UUID_ANY_RE.fullmatch(value) is not None
    if version != 4:
        raise ValueError(f"Unsupported UUID version: {version}")
    return _UUID_V4_RE.fullmatch(value) is not None


def new_session_key() -> str:
    return str(uuid4())
