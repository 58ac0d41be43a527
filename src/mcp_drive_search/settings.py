"""Application settings (env/.env)."""

from __future__ import annotations

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the MCP server, the Drive API client and the search engine."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    drive_root_folder_id: str | None = Field(default=None, alias="GOOGLE_DRIVE_FOLDER_ID")
    drive_access_token: str | None = Field(default=None, alias="DRIVE_ACCESS_TOKEN")
    drive_api_base_url: AnyHttpUrl = Field(
        default="https://www.googleapis.com/drive/v3",
        alias="DRIVE_API_BASE_URL",
    )

    mcp_api_key: str = Field(alias="MCP_API_KEY", min_length=1)
    mcp_host: str = Field(default="127.0.0.1", alias="MCP_HOST")
    mcp_port: int = Field(default=5005, alias="MCP_PORT", ge=1, le=65535)

    http_timeout_seconds: float = Field(
        default=15.0,
        alias="HTTP_TIMEOUT_SECONDS",
        gt=0,
    )

    # Remote call discipline.
    max_in_flight: int = Field(default=8, alias="DRIVE_MAX_IN_FLIGHT", ge=1)
    max_retries: int = Field(default=5, alias="DRIVE_MAX_RETRIES", ge=0)
    backoff_base_seconds: float = Field(default=1.0, alias="DRIVE_BACKOFF_BASE_SECONDS", ge=0)
    backoff_max_seconds: float = Field(default=60.0, alias="DRIVE_BACKOFF_MAX_SECONDS", ge=0)
    reauth_attempts: int = Field(default=1, alias="DRIVE_REAUTH_ATTEMPTS", ge=0)
    page_size: int = Field(default=1000, alias="DRIVE_PAGE_SIZE", ge=1, le=1000)

    # Search engine bounds.
    index_max_depth: int = Field(default=6, alias="INDEX_MAX_DEPTH", ge=0)
    index_batch_size: int = Field(default=15, alias="INDEX_BATCH_SIZE", ge=1)
    search_concurrency: int = Field(default=10, alias="SEARCH_CONCURRENCY", ge=1)
    naive_max_depth: int = Field(default=8, alias="NAIVE_MAX_DEPTH", ge=0)
    naive_batch_size: int = Field(default=3, alias="NAIVE_BATCH_SIZE", ge=1)
    global_empty_fallback: bool = Field(default=False, alias="GLOBAL_EMPTY_FALLBACK")
    global_candidate_limit: int = Field(default=1000, alias="GLOBAL_CANDIDATE_LIMIT", ge=1)

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")
