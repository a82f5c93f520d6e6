"""
Tests for optimistic slide deletion and its reconciliation paths.
"""
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from sqlalchemy import select

from studydash.models.slide import Slide
from studydash.schemas.slide import DeleteState
from studydash.services.errors import QueryError, StorageError, StoreConnectionError

from conftest import add_slide, titles


async def slide_ids_in_db(store):
    async with store.transaction() as db:
        return set((await db.execute(select(Slide.id))).scalars().all())


@pytest_asyncio.fixture
async def stored_slide(library):
    await library.store.storage.upload("slides/genetics.pdf", b"%PDF-1.4", "application/pdf")
    record = await add_slide(library.store, title="Genetics", file_path="slides/genetics.pdf")
    await add_slide(library.store, title="Limits", course_id="MATH200")
    await library.fetch_list()
    return record


class TestDeleteSlide:
    @pytest.mark.asyncio
    async def test_deletes_record_and_file(self, library, notifier, stored_slide):
        outcome = await library.delete_slide(stored_slide["id"], stored_slide["file_path"])
        await library.settled()

        assert outcome.state is DeleteState.DONE
        assert outcome.file_removed
        assert stored_slide["id"] not in await slide_ids_in_db(library.store)
        assert not await library.store.storage.exists("slides/genetics.pdf")
        assert [s.title for s in library.slides] == ["Limits"]

        deleted = [n for n in notifier.recent(100) if n.title == "Slide deleted"]
        assert deleted[0].description == "The slide and file have been successfully deleted."
        assert titles(notifier).index("Deleting slide...") < titles(notifier).index("Slide deleted")

    @pytest.mark.asyncio
    async def test_optimistic_removal_happens_first(self, library, notifier, stored_slide):
        seen = {}

        async def check_ping():
            seen.setdefault("ids", [s.id for s in library.slides])
            return 0

        with patch.object(library.store, "ping", AsyncMock(side_effect=check_ping)):
            await library.delete_slide(stored_slide["id"], stored_slide["file_path"])

        assert stored_slide["id"] not in seen["ids"]

    @pytest.mark.asyncio
    async def test_blob_failure_still_deletes_record(self, library, notifier, stored_slide):
        remove = AsyncMock(side_effect=StorageError("boom"))

        with patch.object(library.store.storage, "remove", remove):
            outcome = await library.delete_slide(stored_slide["id"], stored_slide["file_path"])
            await library.settled()

        assert remove.await_count == 3
        assert outcome.state is DeleteState.DONE
        assert not outcome.file_removed
        assert stored_slide["id"] not in await slide_ids_in_db(library.store)
        assert stored_slide["id"] not in [s.id for s in library.slides]

        deleted = [n for n in notifier.recent(100) if n.title == "Slide deleted"]
        assert "issue removing the file" in deleted[0].description

    @pytest.mark.asyncio
    async def test_without_file_path_skips_blob(self, library, stored_slide):
        remove = AsyncMock()

        with patch.object(library.store.storage, "remove", remove):
            outcome = await library.delete_slide(stored_slide["id"])

        remove.assert_not_awaited()
        assert outcome.state is DeleteState.DONE

    @pytest.mark.asyncio
    async def test_policy_refusal_falls_back_to_privileged_delete(self, library, notifier):
        record = await add_slide(library.store, title="Shared", owner_id="someone-else")
        await library.fetch_list()

        outcome = await library.delete_slide(record["id"])

        assert outcome.state is DeleteState.DONE
        assert record["id"] not in await slide_ids_in_db(library.store)
        assert "Error deleting slide" not in titles(notifier)

    @pytest.mark.asyncio
    async def test_irrecoverable_record_failure_restores_list(self, library, notifier, stored_slide):
        before = {s.id for s in library.slides}
        library.store.delete_policy = "deny"
        rpc = AsyncMock(side_effect=QueryError("function delete_slide(slide_id) does not exist"))

        with patch.object(library.store, "rpc", rpc):
            outcome = await library.delete_slide(stored_slide["id"])
            await library.settled()

        rpc.assert_awaited_once_with("delete_slide", {"slide_id": stored_slide["id"]})
        assert outcome.state is DeleteState.ROLLED_BACK
        assert "does not exist" in outcome.error
        assert {s.id for s in library.slides} == before
        assert stored_slide["id"] in await slide_ids_in_db(library.store)
        assert "Error deleting slide" in titles(notifier)
        assert "Diagnostics Results" in titles(notifier)

    @pytest.mark.asyncio
    async def test_connection_guard_failure_rolls_back(self, library, notifier, stored_slide):
        real_ping = library.store.ping
        calls = 0

        async def down_once():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise StoreConnectionError("NetworkError: content store connection failed")
            return await real_ping()

        remove = AsyncMock()
        with patch.object(library.store, "ping", AsyncMock(side_effect=down_once)), \
                patch.object(library.store.storage, "remove", remove):
            outcome = await library.delete_slide(stored_slide["id"], stored_slide["file_path"])
            await library.settled()

        remove.assert_not_awaited()
        assert outcome.state is DeleteState.ROLLED_BACK
        assert stored_slide["id"] in {s.id for s in library.slides}
        assert "Connection Error" in titles(notifier)
        assert "Diagnostics Results" in titles(notifier)

    @pytest.mark.asyncio
    async def test_unexpected_error_notifies_and_rolls_back(self, library, notifier, stored_slide):
        before = {s.id for s in library.slides}

        with patch.object(library.store.storage, "remove", AsyncMock(side_effect=RuntimeError("disk on fire"))):
            outcome = await library.delete_slide(stored_slide["id"], stored_slide["file_path"])
            await library.settled()

        assert outcome.state is DeleteState.ROLLED_BACK
        assert outcome.error == "disk on fire"
        assert {s.id for s in library.slides} == before
        assert stored_slide["id"] in await slide_ids_in_db(library.store)

        failure = [n for n in notifier.recent(100) if n.title == "Error"][0]
        assert failure.description == "Failed to delete slide: disk on fire"
        assert failure.variant == "destructive"
        assert "Diagnostics Results" in titles(notifier)

    @pytest.mark.asyncio
    async def test_unexpected_fetch_failure_uses_connection_text(self, library, notifier, stored_slide):
        with patch.object(library.store.storage, "remove", AsyncMock(side_effect=RuntimeError("Failed to fetch"))):
            outcome = await library.delete_slide(stored_slide["id"], stored_slide["file_path"])
            await library.settled()

        assert outcome.state is DeleteState.ROLLED_BACK
        failure = [n for n in notifier.recent(100) if n.title == "Error"][0]
        assert failure.description.startswith("Connection error.")
