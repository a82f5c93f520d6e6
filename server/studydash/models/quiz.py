from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from studydash.models.base import Base, TimestampMixin, UUIDMixin


class Quiz(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "quizzes"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    time_limit: Mapped[int] = mapped_column(Integer, nullable=False)  # minutes
    question_count: Mapped[int] = mapped_column(Integer, nullable=False)
