from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from studydash.models.base import Base, TimestampMixin, UUIDMixin


class AuthSession(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "auth_sessions"

    token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False)
