"""
Configuration and settings for the LoveNest API.
"""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Annotated, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api", validation_alias="API_PREFIX")

    # Datastore selection: in-memory (dev/tests), flat JSON file, or SQL.
    datastore_backend: Literal["memory", "json", "sql"] = Field(
        default="memory", validation_alias="LOVENEST_DATASTORE"
    )
    data_file: str = Field(
        default="data/db.json", validation_alias="LOVENEST_DATA_FILE"
    )
    database_url: Optional[str] = Field(
        default=None, validation_alias="DATABASE_URL"
    )

    # Collections readable by anyone; items are still created by a signed-in user.
    public_collections: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["quotes"],
        validation_alias="LOVENEST_PUBLIC_COLLECTIONS",
    )

    session_ttl_seconds: int = Field(
        default=7 * 24 * 3600, ge=60, validation_alias="LOVENEST_SESSION_TTL_SECONDS"
    )

    cors_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:5173"],
        validation_alias="LOVENEST_CORS_ORIGINS",
    )

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    @field_validator("public_collections", "cors_origins", mode="before")
    @classmethod
    def _split_list(cls, value):
        # Accepts a JSON array or a comma-separated string from the environment.
        if not isinstance(value, str):
            return value
        value = value.strip()
        if value.startswith("["):
            return json.loads(value)
        return [part.strip() for part in value.split(",") if part.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
