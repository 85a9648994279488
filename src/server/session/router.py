from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from .dependencies import get_session, get_session_manager
from .manager import SessionContext, SessionManager
from .schemas import (
    CleanupResponse,
    DeleteResponse,
    SessionDataUpdate,
    SessionLoadRequest,
    SessionView,
)

router = APIRouter(prefix="/api/session", tags=["session"])


@router.get("", response_model=SessionView)
async def read_session(session: SessionContext = Depends(get_session)) -> SessionView:
    return _to_view(session)


@router.put("", response_model=SessionView)
async def replace_session_data(
    payload: SessionDataUpdate,
    session: SessionContext = Depends(get_session),
) -> SessionView:
    session.data = payload.data
    return _to_view(session)


@router.delete("", response_model=DeleteResponse)
async def destroy_session(session: SessionContext = Depends(get_session)) -> DeleteResponse:
    await session.destroy()
    return DeleteResponse(success=True)


@router.post("/load", response_model=SessionView)
async def load_session(
    payload: SessionLoadRequest,
    request: Request,
    manager: SessionManager = Depends(get_session_manager),
) -> SessionView:
    found = await manager.load_session(payload.key, request)
    if not found:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return _to_view(get_session(request))


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_sessions(manager: SessionManager = Depends(get_session_manager)) -> CleanupResponse:
    deleted = await manager.delete_old_sessions()
    return CleanupResponse(deleted=deleted)


def _to_view(session: SessionContext) -> SessionView:
    return SessionView(key=session.key, data=session.data)
