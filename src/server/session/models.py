from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class SessionRecord:
    key: str
    payload: str
    updated_at: datetime
