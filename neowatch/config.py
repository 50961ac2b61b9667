"""Runtime settings, read once when the application is created."""

import json

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # NASA NeoWs (DEMO_KEY works for low traffic)
    nasa_api_key: str = "DEMO_KEY"
    nasa_api_url: str = "https://api.nasa.gov/neo/rest/v1"

    # Cache
    cache_ttl_seconds: int = 900

    # Upstream timeouts
    upstream_timeout_seconds: float = Field(
        default=10.0,
        validation_alias=AliasChoices("UPSTREAM_TIMEOUT_SECONDS", "NASA_TIMEOUT"),
    )
    timeline_day_timeout_seconds: float = 15.0

    # Scheduler
    enable_scheduler: bool = True
    warm_interval_minutes: int = 60

    # Server
    log_level: str = "INFO"
    allowed_origins: list[str] = ["http://localhost:5173"]

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def parse_allowed_origins(cls, value):
        """Accept ALLOWED_ORIGINS as a JSON list or a comma separated string."""
        if isinstance(value, str):
            raw = value.strip()
            if raw.startswith("["):
                return json.loads(raw)
            return [item.strip() for item in raw.split(",") if item.strip()]
        return value
