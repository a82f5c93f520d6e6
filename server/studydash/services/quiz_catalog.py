import logging
from typing import Optional

from studydash.schemas.quiz import QuizResponse
from studydash.services.errors import NotAuthenticatedError, StoreError
from studydash.services.notifier import Notifier
from studydash.services.store_client import StoreClient

logger = logging.getLogger(__name__)


class QuizCatalog:
    """Read-only quiz list page."""

    def __init__(self, store: StoreClient, notifier: Notifier):
        self.store = store
        self.notifier = notifier
        self.quizzes: list[QuizResponse] = []
        self.is_loading = False
        self.error: Optional[str] = None

    async def fetch_quizzes(self) -> list[QuizResponse]:
        self.is_loading = True
        self.error = None
        try:
            await self.store.require_session()
            rows = await (
                self.store.from_("quizzes").select().order("created_at", ascending=False).execute()
            )
            self.quizzes = [QuizResponse.model_validate(row) for row in rows]
            logger.info(f"Fetched {len(self.quizzes)} quizzes")
        except NotAuthenticatedError:
            raise
        except StoreError as e:
            logger.error(f"Error fetching quizzes: {e}")
            self.error = str(e) or "Failed to load quizzes"
            await self.notifier.notify(
                "Error",
                "Failed to load quizzes. Please try again.",
                variant="destructive",
            )
        finally:
            self.is_loading = False
        return self.quizzes

    async def refresh(self) -> list[QuizResponse]:
        await self.notifier.notify("Refreshing", "Fetching the latest quizzes...")
        return await self.fetch_quizzes()
