"""
Pytest configuration and fixtures.
"""
import os
import tempfile

# Point the default settings at a throwaway location before studydash is imported
_TEST_ROOT = tempfile.mkdtemp(prefix="studydash-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_ROOT}/studydash.db")
os.environ.setdefault("STORAGE_DIR", os.path.join(_TEST_ROOT, "data"))

import pytest
import pytest_asyncio
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from studydash.models.base import Base
from studydash.services.content_library import ContentLibrary
from studydash.services.notifier import Notifier
from studydash.services.storage_service import BlobStore
from studydash.services.store_client import StoreClient
from studydash.services.workspace import workspaces


@pytest.fixture
def session_factory(tmp_path):
    """Async session factory bound to a fresh SQLite file."""
    db_path = tmp_path / "test.db"
    sync_engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()

    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def storage(tmp_path):
    return BlobStore(base_dir=str(tmp_path / "blobs"), bucket="content", public_base="")


@pytest.fixture
def store(session_factory, storage):
    """Store client without a signed-in session."""
    return StoreClient(session_factory, storage=storage, delete_policy="owner")


@pytest_asyncio.fixture
async def signed_in_store(store):
    await store.sign_in("student@example.com")
    return store


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def library(signed_in_store, notifier):
    return ContentLibrary(signed_in_store, notifier, retry_delay=0)


@pytest.fixture(autouse=True)
def clear_workspaces():
    workspaces.clear()
    yield
    workspaces.clear()


async def add_slide(store, title="Lecture 1", course_id="BIO101", file_type="application/pdf", **extra):
    """Insert a slide record through the store client (requires a session)."""
    values = {
        "title": title,
        "course_id": course_id,
        "file_type": file_type,
        "file_path": extra.pop("file_path", f"slides/{title.lower().replace(' ', '-')}.pdf"),
        "file_url": extra.pop("file_url", "/api/files/content/slides/example.pdf"),
        "file_size": extra.pop("file_size", 1024),
    }
    values.update(extra)
    return await store.from_("slides").insert(values)


def titles(notifier):
    return [n.title for n in notifier.recent(100)]
