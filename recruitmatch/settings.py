"""
Application Settings
Loads configuration from environment variables (and .env files)
"""
from __future__ import annotations

import os
from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings

DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class Settings(BaseSettings):
    """Application configuration, passed explicitly into the ranker."""

    # ===== APPLICATION =====
    app_name: str = "RecruitMatch"
    log_level: str = Field("INFO", validation_alias=AliasChoices("rm_log_level", "log_level"))
    log_format: str = Field(DEFAULT_LOG_FORMAT, validation_alias=AliasChoices("rm_log_format", "log_format"))

    # ===== GEMINI =====
    gemini_api_key: Optional[str] = None
    gemini_api_base: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_match_model: str = "gemini-2.0-flash-exp"
    gemini_parse_model: str = "gemini-2.5-flash"

    # ===== MATCHING =====
    match_temperature: float = 0.3
    match_max_output_tokens: int = 4000
    batch_size: int = Field(50, ge=1)
    resume_snippet_chars: int = Field(1000, ge=1)
    profile_fetch_limit: int = Field(100, ge=1)
    # wave_width=1 with a delay is the sequential policy; raise the width for waves.
    wave_width: int = Field(1, ge=1)
    inter_wave_delay_seconds: float = Field(5.0, ge=0)
    backfill_missing_candidates: bool = True
    match_timeout_seconds: float = Field(60.0, gt=0)

    # ===== RETRY =====
    max_attempts: int = Field(3, ge=1)
    rate_limit_default_delay_seconds: float = Field(60.0, ge=0)
    backoff_base_seconds: float = Field(2.0, ge=1)

    # ===== RESUME PARSING =====
    parse_temperature: float = 0.1
    parse_max_output_tokens: int = 4096
    parse_timeout_seconds: float = 30.0

    # ===== DATABASE - POSTGRESQL =====
    database_url: Optional[str] = None

    # ===== API =====
    api_bind_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: List[str] = ["*"]

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings singleton for the API and CLI; tests build their own.

    ``RM_ENV_PATH`` names an extra .env file that overrides the local one.
    """
    env_path = os.environ.get("RM_ENV_PATH")
    if env_path:
        return Settings(_env_file=(".env", env_path))
    return Settings()
