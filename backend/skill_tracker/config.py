import os
from functools import lru_cache
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: Optional[str] = Field(None, alias="SKILL_TRACKER_DATABASE_URL")
    database_pool_size: int = Field(10, alias="SKILL_TRACKER_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="SKILL_TRACKER_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="SKILL_TRACKER_DATABASE_ECHO")
    user_id: str = Field("local-user", alias="SKILL_TRACKER_USER_ID")
    page_size: int = Field(20, ge=1, alias="SKILL_TRACKER_PAGE_SIZE")
    remote_timeout: float = Field(15.0, ge=0, alias="SKILL_TRACKER_REMOTE_TIMEOUT")
    cache_default_ttl: float = Field(300.0, ge=0, alias="SKILL_TRACKER_CACHE_DEFAULT_TTL")
    cache_paginated_ttl: float = Field(120.0, ge=0, alias="SKILL_TRACKER_CACHE_PAGINATED_TTL")
    cache_detail_ttl: float = Field(300.0, ge=0, alias="SKILL_TRACKER_CACHE_DETAIL_TTL")
    cache_minimal_ttl: float = Field(180.0, ge=0, alias="SKILL_TRACKER_CACHE_MINIMAL_TTL")
    cache_progress_ttl: float = Field(120.0, ge=0, alias="SKILL_TRACKER_CACHE_PROGRESS_TTL")
    cache_entries_ttl: float = Field(120.0, ge=0, alias="SKILL_TRACKER_CACHE_ENTRIES_TTL")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc
