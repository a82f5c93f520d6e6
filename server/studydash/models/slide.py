from typing import Optional

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from studydash.models.base import Base, TimestampMixin, UUIDMixin


class Slide(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "slides"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    course_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    file_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    file_path: Mapped[str] = mapped_column(String(512), nullable=False)
    file_type: Mapped[str] = mapped_column(String(100), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    owner_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
