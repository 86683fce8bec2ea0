"""
Configuration settings for the read-phenomena harness.

Uses Pydantic Settings to load environment variables (or a ``.env`` file) for
the database URL, the per-session credentials, the directive pacing and
logging.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database; the user in the URL is the admin account used for DDL and resets
    database_url: str = Field("mysql://root@localhost:3306/read_phenomena_test", alias="DATABASE_URL")

    # Sessions
    session_a_user: str = Field("shinsro", alias="SESSION_A_USER")
    session_a_password: str = Field("", alias="SESSION_A_PASSWORD")
    session_b_user: str = Field("karina", alias="SESSION_B_USER")
    session_b_password: str = Field("", alias="SESSION_B_PASSWORD")

    # Pacing
    directive_delay: float = Field(1.0, alias="DIRECTIVE_DELAY", ge=0)
    receive_timeout: Optional[float] = Field(None, alias="RECEIVE_TIMEOUT", gt=0)
    connect_attempts: int = Field(3, alias="CONNECT_ATTEMPTS", ge=1)

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
