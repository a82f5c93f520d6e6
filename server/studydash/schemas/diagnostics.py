from typing import Optional

from pydantic import BaseModel


class EnvironmentCheck(BaseModel):
    has_store_url: bool
    has_anon_key: bool
    url_preview: str


class ReadCheck(BaseModel):
    ok: bool
    has_data: bool = False
    error: Optional[str] = None


class DiagnosticsReport(BaseModel):
    completed: bool = False
    has_session: bool = False
    session_error: Optional[str] = None
    connected: bool = False
    authenticated: bool = False
    environment: Optional[EnvironmentCheck] = None
    read_check: Optional[ReadCheck] = None
    policy_status: str = "Unknown"
    hints: list[str] = []

    @property
    def policy_ok(self) -> bool:
        return "Success" in self.policy_status

    @property
    def healthy(self) -> bool:
        return self.connected and self.authenticated and self.policy_ok
