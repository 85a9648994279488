from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class SessionView(BaseModel):
    key: Optional[str] = None
    data: Any = Field(default_factory=dict)


class SessionDataUpdate(BaseModel):
    data: Any = Field(description="Replacement session data; an empty object clears the session.")


class SessionLoadRequest(BaseModel):
    key: str = Field(description="Session key obtained outside of the cookie.")


class CleanupResponse(BaseModel):
    deleted: int


class DeleteResponse(BaseModel):
    success: bool
