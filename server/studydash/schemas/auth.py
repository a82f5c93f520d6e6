from datetime import datetime

from pydantic import BaseModel, Field


class SignInRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")


class SessionResponse(BaseModel):
    user_id: str
    email: str
    access_token: str
    expires_at: datetime
