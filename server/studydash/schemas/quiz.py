from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from studydash.schemas.notification import NotificationEvent


class QuizResponse(BaseModel):
    id: str
    title: str
    description: str
    time_limit: int
    question_count: int
    created_at: datetime

    model_config = {"from_attributes": True}


class QuizListResponse(BaseModel):
    quizzes: list[QuizResponse]
    error: Optional[str] = None
    notifications: list[NotificationEvent] = []
