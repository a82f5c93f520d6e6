"""Content library page controller.

Holds the displayed slide collection for one user, loads it from the store
according to the current filters (retrying transient network failures), and
deletes slides optimistically, reconciling with the store on every exit path.
"""

import asyncio
import logging
from typing import Optional

from studydash.config import Settings, settings as default_settings
from studydash.schemas.notification import NotificationEvent
from studydash.schemas.slide import (
    DeleteOutcome,
    DeleteState,
    FileTypeFilter,
    LibraryError,
    LibrarySnapshot,
    SlideFilters,
    SlideResponse,
    SortOrder,
)
from studydash.services.diagnostics import Diagnostics
from studydash.services.errors import (
    ErrorKind,
    StoreError,
    describe_fetch_failure,
    is_permission_error,
    is_transient_network,
)
from studydash.services.notifier import Notifier
from studydash.services.store_client import StoreClient, TableQuery

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    SortOrder.NEWEST: ("created_at", False),
    SortOrder.OLDEST: ("created_at", True),
    SortOrder.A_Z: ("title", True),
    SortOrder.Z_A: ("title", False),
}


def escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_slide_query(query: TableQuery, filters: SlideFilters) -> TableQuery:
    """Apply *filters* to *query*: title search, course, file type, then order."""
    if filters.search:
        query = query.ilike("title", f"%{escape_like(filters.search)}%")

    if filters.course:
        query = query.eq("course_id", filters.course)

    if filters.file_type is FileTypeFilter.IMAGE:
        query = query.ilike("file_type", "image/%")
    elif filters.file_type is FileTypeFilter.PDF:
        query = query.eq("file_type", "application/pdf")
    elif filters.file_type is FileTypeFilter.OTHER:
        query = (
            query.not_("file_type", "ilike", "image/%")
            .not_("file_type", "eq", "application/pdf")
        )

    column, ascending = SORT_COLUMNS[filters.sort]
    return query.order(column, ascending=ascending)


class ContentLibrary:
    def __init__(
        self,
        store: StoreClient,
        notifier: Notifier,
        diagnostics: Optional[Diagnostics] = None,
        settings: Optional[Settings] = None,
        retry_delay: Optional[float] = None,
    ):
        self.store = store
        self.notifier = notifier
        self.settings = settings or default_settings
        self.diagnostics = diagnostics or Diagnostics(store, notifier, self.settings)
        self.retry_delay = self.settings.retry_delay_secs if retry_delay is None else retry_delay
        self.max_retries = self.settings.list_fetch_max_retries
        self.blob_delete_attempts = self.settings.blob_delete_max_attempts

        self.filters = SlideFilters()
        self.slides: list[SlideResponse] = []
        self.courses: list[str] = []
        self.is_loading = False
        self.is_loaded = False
        self.error: Optional[LibraryError] = None

        # Bumped by every fetch_list call; results of older requests are dropped
        self._generation = 0
        self._retry_task: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def recent(self) -> list[SlideResponse]:
        return self.slides[: self.settings.recent_limit]

    def snapshot(self) -> LibrarySnapshot:
        return LibrarySnapshot(
            slides=self.slides,
            recent=self.recent,
            courses=self.courses,
            filters=self.filters,
            is_loading=self.is_loading,
            error=self.error,
            notifications=[
                NotificationEvent(**n.to_dict()) for n in self.notifier.drain()
            ],
        )

    async def settled(self) -> None:
        """Wait for scheduled retries and background diagnostics to finish."""
        while True:
            pending = [
                task
                for task in (self._retry_task, *self._background)
                if task is not None and not task.done()
            ]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------
    async def fetch_list(
        self,
        filters: Optional[SlideFilters] = None,
        retry_count: int = 0,
    ) -> None:
        """Load the slides matching *filters* (default: the current filters).

        Starts a new request generation: a pending retry of an older request
        is cancelled and late results of older requests are discarded.
        """
        if filters is not None:
            self.filters = filters
        self._generation += 1
        self._cancel_retry()
        await self._fetch(self.filters, retry_count, self._generation)

    async def _fetch(self, filters: SlideFilters, retry_count: int, generation: int) -> None:
        logger.info(
            f"Fetching slides with filters={filters.model_dump(mode='json')} "
            f"generation={generation} retry={retry_count}"
        )
        self.is_loading = True
        self.error = None
        try:
            if not self.store.is_configured:
                await self._fail(
                    generation,
                    ErrorKind.CONNECTION_UNAVAILABLE,
                    "Database connection not available. Please try refreshing the page.",
                )
                return

            session = await self.store.get_session()
            if session is None:
                await self._fail(
                    generation,
                    ErrorKind.UNAUTHENTICATED,
                    "You need to be logged in to view slides.",
                )
                return

            try:
                await self.store.ping()
            except StoreError as e:
                raise StoreError(f"Connection test failed: {e}") from e

            query = build_slide_query(self.store.from_("slides"), filters)
            try:
                rows = await query.execute()
            except StoreError as e:
                raise StoreError(f"Database query failed: {e}") from e

            if generation != self._generation:
                logger.info(
                    f"Discarding stale slide list (generation {generation}, "
                    f"current {self._generation})"
                )
                return

            self.slides = [SlideResponse.model_validate(row) for row in rows]
            logger.info(f"Fetched {len(self.slides)} slides from the store")

            if not self.is_loaded:
                await self._load_courses()
        except StoreError as e:
            await self._handle_fetch_error(filters, retry_count, generation, str(e))
        finally:
            if generation == self._generation:
                self.is_loading = False

    async def _load_courses(self) -> None:
        """Populate the course filter once; failures never affect the list."""
        try:
            rows = await self.store.from_("slides").select("course_id").execute()
        except StoreError as e:
            logger.error(f"Error fetching course IDs: {e}")
            return
        self.courses = list(dict.fromkeys(row["course_id"] for row in rows))
        self.is_loaded = True

    async def _handle_fetch_error(
        self,
        filters: SlideFilters,
        retry_count: int,
        generation: int,
        message: str,
    ) -> None:
        if generation != self._generation:
            logger.info(f"Ignoring failure of stale slide request {generation}: {message}")
            return

        self.slides = []
        logger.error(f"Error fetching slides: {message}")

        if is_transient_network(message) and retry_count < self.max_retries:
            next_count = retry_count + 1
            delay = self.retry_delay * next_count
            logger.info(
                f"Will retry fetching slides in {delay:g}s "
                f"(attempt {next_count} of {self.max_retries})"
            )
            await self.notifier.notify(
                "Connection issue",
                f"Retrying in {delay:g} seconds... ({next_count}/{self.max_retries})",
            )
            self._retry_task = asyncio.create_task(
                self._retry_later(filters, next_count, generation, delay)
            )
            return

        kind, text = describe_fetch_failure(message)
        self.error = LibraryError(kind=kind.value, message=text)
        await self.notifier.notify("Error loading slides", message, variant="destructive")
        self._spawn_diagnostics()

    async def _retry_later(
        self,
        filters: SlideFilters,
        retry_count: int,
        generation: int,
        delay: float,
    ) -> None:
        await asyncio.sleep(delay)
        if generation != self._generation:
            return
        await self._fetch(filters, retry_count, generation)

    async def _fail(self, generation: int, kind: ErrorKind, message: str) -> None:
        """Terminal precondition failure: no retry."""
        if generation != self._generation:
            return
        logger.error(f"Cannot fetch slides ({kind.value}): {message}")
        self.error = LibraryError(kind=kind.value, message=message)
        await self.notifier.notify("Error loading slides", message, variant="destructive")
        self._spawn_diagnostics()

    def _cancel_retry(self) -> None:
        task = self._retry_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._retry_task = None

    def _spawn_diagnostics(self) -> None:
        task = asyncio.create_task(self.diagnostics.run())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def handle_upload_complete(self, slide: dict) -> None:
        logger.info(f"Upload of slide {slide.get('id')} complete, refreshing list")
        await self.fetch_list()

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------
    async def delete_slide(self, slide_id: str, file_path: str = "") -> DeleteOutcome:
        """Delete a slide and its file.

        idle -> optimistically_removed -> blob_deleting -> record_deleting
        -> done | rolled_back. Every path that does not end in a confirmed
        deletion refetches the list.
        """
        outcome = DeleteOutcome(slide_id=slide_id)

        self.slides = [s for s in self.slides if s.id != slide_id]
        outcome.state = DeleteState.OPTIMISTICALLY_REMOVED
        await self.notifier.notify("Deleting slide...", "Removing the slide and associated file")

        try:
            try:
                await self.store.ping()
            except StoreError as e:
                logger.error(f"Store unreachable before deleting slide {slide_id}: {e}")
                await self.notifier.notify(
                    "Connection Error",
                    "Could not connect to database. Please try again later.",
                    variant="destructive",
                )
                return await self._roll_back(outcome, str(e))

            if file_path:
                outcome.state = DeleteState.BLOB_DELETING
                outcome.file_removed = await self._remove_blob(file_path)

            outcome.state = DeleteState.RECORD_DELETING
            try:
                await self._delete_record(slide_id)
            except StoreError as e:
                logger.error(f"Error deleting slide {slide_id} from the store: {e}")
                await self.notifier.notify("Error deleting slide", str(e), variant="destructive")
                return await self._roll_back(outcome, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error during deletion of slide {slide_id}")
            message = str(e) or type(e).__name__
            await self.notifier.notify(
                "Error",
                "Connection error. Please check your internet connection and try again."
                if "Failed to fetch" in message
                else f"Failed to delete slide: {message}",
                variant="destructive",
            )
            return await self._roll_back(outcome, message)

        await self.fetch_list()
        outcome.state = DeleteState.DONE
        await self.notifier.notify(
            "Slide deleted",
            "The slide and file have been successfully deleted."
            if outcome.file_removed
            else "The slide has been deleted but there may have been an issue removing the file.",
        )
        return outcome

    async def _remove_blob(self, file_path: str) -> bool:
        """Remove the slide's file, retrying with linear backoff. Never raises."""
        last_error: Optional[StoreError] = None
        for attempt in range(1, self.blob_delete_attempts + 1):
            try:
                logger.info(f"Deleting file {file_path} (attempt {attempt})")
                await self.store.storage.remove([file_path])
                return True
            except StoreError as e:
                last_error = e
                logger.warning(f"File deletion attempt {attempt} failed for {file_path}: {e}")
                if attempt < self.blob_delete_attempts:
                    await asyncio.sleep(self.retry_delay * attempt)

        logger.error(
            f"Could not delete {file_path} after {self.blob_delete_attempts} attempts: "
            f"{last_error}. Continuing with record deletion."
        )
        return False

    async def _delete_record(self, slide_id: str) -> None:
        try:
            await self.store.from_("slides").eq("id", slide_id).delete()
        except StoreError as e:
            if not is_permission_error(str(e)):
                raise
            logger.warning(f"Permission error deleting slide {slide_id}, using privileged delete: {e}")
            await self.store.rpc("delete_slide", {"slide_id": slide_id})

    async def _roll_back(self, outcome: DeleteOutcome, message: str) -> DeleteOutcome:
        outcome.state = DeleteState.ROLLED_BACK
        outcome.error = message
        await self.fetch_list()
        self._spawn_diagnostics()
        return outcome
