"""Per-user page state.

Each signed-in access token gets one workspace holding its store client and page
controllers, so retries and the displayed collection outlive single requests.
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from studydash.services.content_library import ContentLibrary
from studydash.services.diagnostics import Diagnostics
from studydash.services.errors import StoreError
from studydash.services.notifier import Emit, Notifier
from studydash.services.quiz_catalog import QuizCatalog
from studydash.services.slide_upload import SlideUploader
from studydash.services.storage_service import BlobStore
from studydash.services.store_client import StoreClient

logger = logging.getLogger(__name__)


@dataclass
class Workspace:
    store: StoreClient
    notifier: Notifier
    library: ContentLibrary
    uploader: SlideUploader
    quizzes: QuizCatalog
    diagnostics: Diagnostics
    expires_at: Optional[datetime] = None


# room -> Workspace
workspaces: dict[str, Workspace] = {}


def room_for(access_token: str) -> str:
    return f"workspace_{hashlib.sha256(access_token.encode()).hexdigest()[:16]}"


def build_workspace(
    session_factory: Optional[async_sessionmaker],
    access_token: Optional[str] = None,
    storage: Optional[BlobStore] = None,
    emit: Optional[Emit] = None,
) -> Workspace:
    store = StoreClient(session_factory, storage=storage, access_token=access_token)
    notifier = Notifier(room=room_for(access_token) if access_token else None, emit=emit)
    diagnostics = Diagnostics(store, notifier)
    library = ContentLibrary(store, notifier, diagnostics=diagnostics)
    uploader = SlideUploader(store, notifier, on_complete=library.handle_upload_complete)
    quizzes = QuizCatalog(store, notifier)
    return Workspace(
        store=store,
        notifier=notifier,
        library=library,
        uploader=uploader,
        quizzes=quizzes,
        diagnostics=diagnostics,
    )


def _evict_expired() -> None:
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    expired = [room for room, w in workspaces.items() if w.expires_at and w.expires_at <= now]
    for room in expired:
        del workspaces[room]
        logger.info(f"Evicted expired workspace {room}")


async def get_workspace(
    session_factory: Optional[async_sessionmaker],
    access_token: Optional[str],
    emit: Optional[Emit] = None,
) -> Workspace:
    """Return the cached workspace for a signed-in *access_token*.

    Only tokens that resolve to a live session are cached. Anonymous callers
    and unknown or expired tokens get a fresh, uncached anonymous workspace.
    If the session cannot be checked, the workspace is returned uncached so
    its controllers report the store failure.
    """
    _evict_expired()
    if not access_token:
        return build_workspace(session_factory)

    room = room_for(access_token)
    workspace = workspaces.get(room)
    candidate = workspace or build_workspace(session_factory, access_token, emit=emit)
    try:
        session = await candidate.store.get_session()
    except StoreError as e:
        logger.warning(f"Could not verify session for {room}: {e}")
        return candidate

    if session is None:
        if workspaces.pop(room, None) is not None:
            logger.info(f"Dropped workspace {room}: session no longer valid")
        return build_workspace(session_factory)

    candidate.expires_at = session.expires_at
    if workspace is None:
        workspaces[room] = candidate
        logger.info(f"Created workspace {room}")
    return candidate


def drop_workspace(access_token: str) -> None:
    if workspaces.pop(room_for(access_token), None) is not None:
        logger.info(f"Dropped workspace {room_for(access_token)}")
