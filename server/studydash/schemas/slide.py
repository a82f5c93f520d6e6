import enum
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, computed_field

from studydash.schemas.notification import NotificationEvent


class FileTypeFilter(str, enum.Enum):
    ALL = "all"
    IMAGE = "image"
    PDF = "pdf"
    OTHER = "other"


class SortOrder(str, enum.Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    A_Z = "a-z"
    Z_A = "z-a"


class SlideFilters(BaseModel):
    search: str = ""
    course: Optional[str] = None
    file_type: FileTypeFilter = FileTypeFilter.ALL
    sort: SortOrder = SortOrder.NEWEST


def classify_file_type(file_type: str) -> str:
    if file_type.startswith("image/"):
        return "image"
    if file_type == "application/pdf":
        return "pdf"
    return "other"


class SlideResponse(BaseModel):
    id: str = Field(min_length=1)
    title: str
    description: Optional[str] = None
    course_id: str
    file_url: str
    file_path: Optional[str] = None
    file_type: str = Field(min_length=1)
    file_size: Optional[int] = None
    created_at: datetime

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def kind(self) -> str:
        return classify_file_type(self.file_type)

    @computed_field
    @property
    def uploaded_on(self) -> str:
        return self.created_at.date().isoformat()


class LibraryError(BaseModel):
    kind: str
    message: str


class LibrarySnapshot(BaseModel):
    slides: list[SlideResponse]
    recent: list[SlideResponse]
    courses: list[str]
    filters: SlideFilters
    is_loading: bool
    error: Optional[LibraryError] = None
    notifications: list[NotificationEvent] = []


class DeleteState(str, enum.Enum):
    IDLE = "idle"
    OPTIMISTICALLY_REMOVED = "optimistically_removed"
    BLOB_DELETING = "blob_deleting"
    RECORD_DELETING = "record_deleting"
    DONE = "done"
    ROLLED_BACK = "rolled_back"


class DeleteOutcome(BaseModel):
    slide_id: str
    state: DeleteState = DeleteState.IDLE
    file_removed: bool = False
    error: Optional[str] = None
    notifications: list[NotificationEvent] = []
