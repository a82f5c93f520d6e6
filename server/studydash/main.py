import logging
import os

import socketio
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

from studydash.config import settings
from studydash.api import auth, content, dashboard, quizzes
from studydash.ws.handler import sio

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

# Suppress noisy third-party loggers
logging.getLogger("aiosqlite").setLevel(logging.WARNING)
logging.getLogger("engineio").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Auto-create tables on startup (SQLite, no migration step needed)
    from studydash.models.base import init_db
    await init_db()
    logger.info("Database tables created / verified")

    os.makedirs(settings.storage_dir, exist_ok=True)
    yield


app = FastAPI(
    title="StudyDash API",
    description="Study dashboard backend: course slides, quizzes and content diagnostics",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount REST routes
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(content.router, prefix="/api/content", tags=["content"])
app.include_router(quizzes.router, prefix="/api/quizzes", tags=["quizzes"])
app.include_router(dashboard.router, prefix="/api/dashboard", tags=["dashboard"])


@app.get("/api/health")
async def health():
    return {"status": "ok", "version": "0.1.0"}


# ---------------------------------------------------------------------------
# Static file serving for uploaded slide files
# ---------------------------------------------------------------------------
MIME_MAP = {
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
}


@app.get("/api/files/{file_path:path}")
async def serve_file(file_path: str):
    """Serve files from the local storage directory."""
    full_path = os.path.join(settings.storage_dir, file_path)
    # Prevent directory traversal
    full_path = os.path.realpath(full_path)
    storage_real = os.path.realpath(settings.storage_dir)
    if not full_path.startswith(storage_real + os.sep):
        raise HTTPException(status_code=403, detail="Access denied")
    if not os.path.isfile(full_path):
        raise HTTPException(status_code=404, detail="File not found")

    ext = os.path.splitext(full_path)[1].lower()
    media_type = MIME_MAP.get(ext, "application/octet-stream")
    return FileResponse(full_path, media_type=media_type)


# Mount Socket.IO as ASGI sub-app
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
