from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from slotbook.slots import DEFAULT_DURATION_MINUTES

ENV_PATH = Path(__file__).resolve().parent.parent / ".env"


class Settings(BaseSettings):
    environment: str = "development"
    log_level: str = "INFO"

    # tenant used when a request carries no X-Organization-Id header
    default_organization_id: str = "default"

    pending_hold_minutes: int = 15
    default_duration_minutes: int = DEFAULT_DURATION_MINUTES

    app_base_url: str = "http://localhost:8000"

    # Google Calendar OAuth
    google_client_id: str | None = None
    google_client_secret: str | None = None
    google_redirect_uri: str | None = None  # applicant flow
    google_interviewer_redirect_uri: str | None = None

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def google_configured(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)


@lru_cache
def get_settings() -> Settings:
    return Settings()
