from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database (SQLite by default, no install required)
    database_url: str = "sqlite+aiosqlite:///./studydash.db"

    # Local blob storage
    storage_dir: str = "./data"
    storage_bucket: str = "content"

    # Public endpoint and key of the content store. Only inspected by
    # diagnostics; the public URL also prefixes blob links when set.
    store_url: str = ""
    store_anon_key: str = ""

    # App
    cors_origins: list[str] = ["http://localhost:3000"]
    debug: bool = False

    # Uploads
    max_upload_bytes: int = 10 * 1024 * 1024
    allowed_upload_types: list[str] = [
        "application/pdf",
        "image/jpeg",
        "image/png",
        "image/gif",
    ]

    # Retry budgets (linear backoff: retry_delay_secs * attempt)
    list_fetch_max_retries: int = 2
    blob_delete_max_attempts: int = 3
    retry_delay_secs: float = 1.0

    # Row delete policy for slides: "owner", "any" or "deny"
    delete_policy: str = "owner"

    # Sign-in sessions
    session_ttl_hours: int = 24

    # Size of the "recently added" tab
    recent_limit: int = 6

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
