import logging
import random
import string
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from studydash.config import Settings, settings as default_settings
from studydash.services.errors import StoreError, UploadValidationError
from studydash.services.notifier import Notifier
from studydash.services.store_client import StoreClient

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


@dataclass
class UploadCandidate:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class UploadForm:
    file: Optional[UploadCandidate] = None
    title: str = ""
    description: str = ""
    course_id: str = ""

    def clear(self) -> None:
        self.file = None
        self.title = ""
        self.description = ""
        self.course_id = ""


def storage_path_for(filename: str) -> str:
    """``slides/<epoch ms>-<random base36>.<ext>``; ext is whatever follows the last dot."""
    ext = filename.split(".")[-1]
    suffix = "".join(random.choices(_BASE36, k=13))
    return f"slides/{int(time.time() * 1000)}-{suffix}.{ext}"


class SlideUploader:
    """Validates, stores and records one uploaded slide file."""

    def __init__(
        self,
        store: StoreClient,
        notifier: Notifier,
        on_complete: Optional[Callable[[dict], Awaitable[None]]] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.notifier = notifier
        self.on_complete = on_complete
        self.settings = settings or default_settings

    async def _reject(self, title: str, description: str) -> None:
        await self.notifier.notify(title, description, variant="destructive")
        raise UploadValidationError(title, description)

    async def validate_file(self, file: UploadCandidate) -> None:
        if file.content_type not in self.settings.allowed_upload_types:
            await self._reject(
                "Invalid file type",
                "Please upload a PDF or image file (JPEG, PNG, GIF).",
            )
        if file.size > self.settings.max_upload_bytes:
            limit_mb = self.settings.max_upload_bytes // (1024 * 1024)
            await self._reject(
                "File too large",
                f"Please upload a file smaller than {limit_mb}MB.",
            )

    async def validate(self, form: UploadForm) -> None:
        if form.file is None:
            await self._reject("No file selected", "Please select a file to upload.")
        await self.validate_file(form.file)
        if not form.title.strip():
            await self._reject("Title required", "Please enter a title for your slide.")
        if not form.course_id.strip():
            await self._reject("Course ID required", "Please enter a course ID for your slide.")

    async def upload(self, form: UploadForm) -> dict:
        """Upload the form's file and insert its metadata record.

        Validation failures raise UploadValidationError before any store call.
        A metadata insert failure leaves the uploaded blob in place.
        """
        await self.validate(form)
        file = form.file
        file_path = storage_path_for(file.filename)

        try:
            await self.store.storage.upload(file_path, file.data, file.content_type)
        except StoreError as e:
            logger.error(f"Upload of {file.filename} failed: {e}")
            await self.notifier.notify("Upload failed", str(e), variant="destructive")
            raise

        public_url = self.store.storage.get_public_url(file_path)

        try:
            record = await self.store.from_("slides").insert({
                "title": form.title,
                "description": form.description or None,
                "course_id": form.course_id,
                "file_path": file_path,
                "file_url": public_url,
                "file_type": file.content_type,
                "file_size": file.size,
            })
        except StoreError as e:
            logger.warning(f"Metadata insert failed, blob {file_path} left orphaned: {e}")
            await self.notifier.notify("Upload failed", str(e), variant="destructive")
            raise

        logger.info(f"Uploaded slide {record['id']} ({file.content_type}, {file.size} bytes) to {file_path}")
        await self.notifier.notify("Upload successful", "Your slide has been uploaded successfully.")
        form.clear()

        if self.on_complete:
            await self.on_complete(record)
        return record
