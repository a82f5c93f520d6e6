import logging

import socketio
from pydantic import ValidationError

from studydash.models.base import async_session_factory
from studydash.schemas.slide import SlideFilters
from studydash.services.workspace import get_workspace, room_for

logger = logging.getLogger(__name__)

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*",
    logger=False,
    engineio_logger=False,
)

# Store active connections: sid -> access token
active_clients: dict[str, str] = {}


async def emit_to_room(event: str, data: dict, room: str) -> None:
    await sio.emit(event, data, room=room)


async def _workspace_for(sid: str):
    access_token = active_clients.get(sid)
    if not access_token:
        return None
    workspace = await get_workspace(async_session_factory, access_token, emit=emit_to_room)
    if workspace.store.access_token is None:
        logger.info(f"Client {sid}: session for its token is no longer valid")
        return None
    return workspace


@sio.event
async def connect(sid, environ, auth):
    access_token = None
    if auth and isinstance(auth, dict):
        access_token = auth.get("token")

    if access_token:
        active_clients[sid] = access_token
        await sio.enter_room(sid, room_for(access_token))
        logger.info(f"Client {sid} joined {room_for(access_token)}")
    else:
        logger.info(f"Client {sid} connected without an access token")


@sio.event
async def disconnect(sid):
    if active_clients.pop(sid, None):
        logger.info(f"Client {sid} disconnected")


@sio.event
async def refresh_library(sid, data):
    workspace = await _workspace_for(sid)
    if workspace is None:
        return
    try:
        filters = SlideFilters(**(data or {}))
    except ValidationError as e:
        logger.warning(f"Client {sid}: invalid filters {data}: {e}")
        return
    await workspace.library.fetch_list(filters)
    await workspace.library.settled()
    snapshot = workspace.library.snapshot()
    await sio.emit("library_state", snapshot.model_dump(mode="json"), to=sid)


@sio.event
async def run_diagnostics(sid, data=None):
    workspace = await _workspace_for(sid)
    if workspace is None:
        return
    report = await workspace.diagnostics.run()
    await sio.emit("diagnostics", report.model_dump(mode="json"), to=sid)
