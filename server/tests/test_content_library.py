"""
Tests for loading the slide list: preconditions, retries and stale responses.
"""
import asyncio
from unittest.mock import AsyncMock, Mock, patch

import pytest

from studydash.schemas.slide import SlideFilters, SortOrder
from studydash.services.content_library import ContentLibrary
from studydash.services.errors import QueryError, StoreConnectionError
from studydash.services.store_client import StoreClient

from conftest import add_slide, titles


class TestFetchList:
    @pytest.mark.asyncio
    async def test_loads_slides_and_courses(self, library):
        await add_slide(library.store, title="Genetics", course_id="BIO101")
        await add_slide(library.store, title="Limits", course_id="MATH200")
        await add_slide(library.store, title="Enzymes", course_id="BIO101")

        await library.fetch_list(SlideFilters(sort=SortOrder.A_Z))

        assert [s.title for s in library.slides] == ["Enzymes", "Genetics", "Limits"]
        assert sorted(library.courses) == ["BIO101", "MATH200"]
        assert library.is_loaded
        assert not library.is_loading
        assert library.error is None

    @pytest.mark.asyncio
    async def test_courses_loaded_only_once(self, library):
        await add_slide(library.store, title="Genetics", course_id="BIO101")
        await library.fetch_list()
        await add_slide(library.store, title="Limits", course_id="MATH200")

        await library.fetch_list()

        assert library.courses == ["BIO101"]
        assert len(library.slides) == 2

    @pytest.mark.asyncio
    async def test_recent_is_first_six(self, library):
        for i in range(8):
            await add_slide(library.store, title=f"Lecture {i}")

        await library.fetch_list(SlideFilters(sort=SortOrder.A_Z))

        assert [s.title for s in library.recent] == [f"Lecture {i}" for i in range(6)]

    @pytest.mark.asyncio
    async def test_slide_kind_and_upload_date(self, library):
        await add_slide(library.store, title="Diagram", file_type="image/png")

        await library.fetch_list()

        slide = library.slides[0]
        assert slide.kind == "image"
        assert slide.uploaded_on == slide.created_at.date().isoformat()

    @pytest.mark.asyncio
    async def test_unauthenticated(self, store, notifier):
        library = ContentLibrary(store, notifier, retry_delay=0)

        await library.fetch_list()
        await library.settled()

        assert library.slides == []
        assert library.error.kind == "unauthenticated"
        assert library.error.message == "You need to be logged in to view slides."
        assert "Error loading slides" in titles(notifier)
        assert "Connection issue" not in titles(notifier)

    @pytest.mark.asyncio
    async def test_unconfigured_store(self, storage, notifier):
        library = ContentLibrary(StoreClient(None, storage=storage), notifier, retry_delay=0)

        await library.fetch_list()
        await library.settled()

        assert library.error.kind == "connection_unavailable"
        assert "Database connection not available" in library.error.message
        # diagnostics still finish without raising
        assert "Diagnostics Results" in titles(notifier)


class TestRetry:
    @pytest.mark.asyncio
    async def test_two_network_failures_then_success(self, library, notifier):
        await add_slide(library.store, title="Genetics")
        ping = AsyncMock(side_effect=[
            StoreConnectionError("NetworkError: content store connection failed"),
            StoreConnectionError("NetworkError: content store connection failed"),
            0,
        ])

        with patch.object(library.store, "ping", ping):
            await library.fetch_list()
            await library.settled()

        assert ping.await_count == 3
        retries = [n for n in notifier.recent(100) if n.title == "Connection issue"]
        assert [n.description for n in retries] == [
            "Retrying in 0 seconds... (1/2)",
            "Retrying in 0 seconds... (2/2)",
        ]
        assert [s.title for s in library.slides] == ["Genetics"]
        assert library.error is None
        assert "Error loading slides" not in titles(notifier)

    @pytest.mark.asyncio
    async def test_retry_delay_grows_linearly(self, signed_in_store, notifier):
        library = ContentLibrary(signed_in_store, notifier, retry_delay=0.01)
        ping = AsyncMock(side_effect=[StoreConnectionError("NetworkError: down")] * 2 + [0])

        with patch.object(signed_in_store, "ping", ping):
            await library.fetch_list()
            await library.settled()

        retries = [n.description for n in notifier.recent(100) if n.title == "Connection issue"]
        assert retries == [
            "Retrying in 0.01 seconds... (1/2)",
            "Retrying in 0.02 seconds... (2/2)",
        ]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, library, notifier):
        ping = AsyncMock(side_effect=StoreConnectionError("NetworkError: down"))

        with patch.object(library.store, "ping", ping):
            await library.fetch_list()
            await library.settled()

        assert titles(notifier).count("Connection issue") == 2
        assert library.slides == []
        assert library.error.kind == "transient_network"
        assert library.error.message.startswith("Network connection error")
        assert "Error loading slides" in titles(notifier)
        assert "Diagnostics Results" in titles(notifier)

    @pytest.mark.asyncio
    async def test_query_failure_is_not_retried(self, library, notifier):
        query = Mock()
        query.execute = AsyncMock(side_effect=QueryError("column slides.titel does not exist"))

        with patch("studydash.services.content_library.build_slide_query", return_value=query):
            await library.fetch_list()
            await library.settled()

        assert "Connection issue" not in titles(notifier)
        assert library.error.kind == "unknown"
        assert library.error.message == (
            "Failed to load slides: Database query failed: column slides.titel does not exist"
        )

    @pytest.mark.asyncio
    async def test_new_request_cancels_pending_retry(self, signed_in_store, notifier):
        library = ContentLibrary(signed_in_store, notifier, retry_delay=10)
        ping = AsyncMock(side_effect=[StoreConnectionError("NetworkError: down"), 0])

        with patch.object(signed_in_store, "ping", ping):
            await library.fetch_list()
            pending = library._retry_task
            assert pending is not None and not pending.done()

            await library.fetch_list(SlideFilters(search="x"))
            await library.settled()

        assert pending.cancelled()
        assert ping.await_count == 2
        assert library.error is None


class TestStaleResponses:
    @pytest.mark.asyncio
    async def test_late_response_is_discarded(self, library):
        await add_slide(library.store, title="Alpha")
        await add_slide(library.store, title="Beta")

        real_ping = library.store.ping
        reached = asyncio.Event()
        gate = asyncio.Event()
        calls = 0

        async def slow_first_ping():
            nonlocal calls
            calls += 1
            if calls == 1:
                reached.set()
                await gate.wait()
            return await real_ping()

        with patch.object(library.store, "ping", AsyncMock(side_effect=slow_first_ping)):
            first = asyncio.create_task(library.fetch_list(SlideFilters(search="Alpha")))
            await reached.wait()

            await library.fetch_list(SlideFilters(search="Beta"))
            gate.set()
            await first

        assert library.generation == 2
        assert [s.title for s in library.slides] == ["Beta"]
        assert library.filters.search == "Beta"
        assert not library.is_loading

    @pytest.mark.asyncio
    async def test_late_failure_is_ignored(self, library, notifier):
        await add_slide(library.store, title="Beta")

        real_ping = library.store.ping
        reached = asyncio.Event()
        gate = asyncio.Event()
        calls = 0

        async def failing_first_ping():
            nonlocal calls
            calls += 1
            if calls == 1:
                reached.set()
                await gate.wait()
                raise StoreConnectionError("NetworkError: down")
            return await real_ping()

        with patch.object(library.store, "ping", AsyncMock(side_effect=failing_first_ping)):
            first = asyncio.create_task(library.fetch_list())
            await reached.wait()

            await library.fetch_list()
            gate.set()
            await first
            await library.settled()

        assert [s.title for s in library.slides] == ["Beta"]
        assert library.error is None
        assert "Connection issue" not in titles(notifier)


class TestUploadComplete:
    @pytest.mark.asyncio
    async def test_refreshes_with_current_filters(self, library):
        await library.fetch_list(SlideFilters(course="BIO101"))
        await add_slide(library.store, title="Genetics", course_id="BIO101")
        await add_slide(library.store, title="Limits", course_id="MATH200")

        await library.handle_upload_complete({"id": "new"})

        assert [s.title for s in library.slides] == ["Genetics"]
        assert library.generation == 2
