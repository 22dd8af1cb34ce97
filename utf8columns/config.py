from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime switches for utf8columns, read from the environment."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    # Off by default: the write path trusts producers, corruption surfaces on read
    validate_on_write: bool = Field(default=False, alias="UTF8COLUMNS_VALIDATE_ON_WRITE")

    # Attach a charset-normalizer guess to InvalidEncodingError
    diagnose: bool = Field(default=True, alias="UTF8COLUMNS_DIAGNOSE")


@lru_cache()
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings"]
