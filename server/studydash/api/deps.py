from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import async_sessionmaker

from studydash.models.base import get_session_factory
from studydash.schemas.notification import NotificationEvent
from studydash.services.errors import StoreError
from studydash.services.workspace import Workspace, get_workspace
from studydash.ws.handler import emit_to_room


def get_access_token(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None


async def get_current_workspace(
    access_token: Optional[str] = Depends(get_access_token),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> Workspace:
    return await get_workspace(session_factory, access_token, emit=emit_to_room)


async def require_signed_in(workspace: Workspace = Depends(get_current_workspace)) -> Workspace:
    try:
        session = await workspace.store.get_session()
    except StoreError as e:
        raise HTTPException(status_code=503, detail=f"Database connection not available: {e}")
    if session is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return workspace


def pending_notifications(workspace: Workspace) -> list[NotificationEvent]:
    return [NotificationEvent(**n.to_dict()) for n in workspace.notifier.drain()]
