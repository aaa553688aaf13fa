"""Configuration settings for the corpus agent.

Settings are read from the environment (and an optional ``.env`` file) once at
import time and shared through the ``settings`` singleton.
"""

from typing import List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Agent settings.

    Attributes:
        CORPUS_SERVER_URL: Base URL of the indexing service. Userinfo, when present,
            is used as HTTP basic auth credentials.
        CORPUS_AUTH_TOKEN: Optional bearer token sent with every request.
        CORPUS_HTTP_TIMEOUT: Per-request timeout in seconds.
        CORPUS_RATE_LIMIT_MAX_RETRIES: How many times a 429 response is retried.
        CORPUS_RATE_LIMIT_DEFAULT_WAIT: Wait (seconds) when no rate limit header is usable.
        CORPUS_TASK_POLL_INTERVAL: Interval (seconds) between two task status polls.
        WATCH_CONCURRENCY: Maximum number of concurrent index operations per filesystem.
        WATCH_DEBOUNCE_DELAY: Delay (seconds) used to coalesce successive writes.
        WATCH_FILESYSTEMS: DSNs watched when none are given on the command line.
        WATCH_DEBUG_FILESYSTEM: Trace every filesystem call at debug level.
        THREAD_POOL_SIZE: Size of the shared pool running blocking backend calls.
        LOG_LEVEL: Root log level.
        LOG_FORMAT: ``rich`` for console output, ``json`` for one JSON object per line.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=True)

    CORPUS_SERVER_URL: str = "http://localhost:3002"
    CORPUS_AUTH_TOKEN: Optional[str] = None
    CORPUS_HTTP_TIMEOUT: float = 300.0
    CORPUS_RATE_LIMIT_MAX_RETRIES: int = Field(10, ge=0)
    CORPUS_RATE_LIMIT_DEFAULT_WAIT: float = Field(1.0, ge=0)
    CORPUS_TASK_POLL_INTERVAL: float = Field(2.0, gt=0)

    WATCH_CONCURRENCY: int = Field(5, ge=1)
    WATCH_DEBOUNCE_DELAY: float = Field(60.0, ge=0)
    WATCH_FILESYSTEMS: List[str] = Field(default_factory=list)
    WATCH_DEBUG_FILESYSTEM: bool = False

    THREAD_POOL_SIZE: int = Field(32, ge=1)

    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Literal["rich", "json"] = "rich"

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        """Upper-case the log level so ``debug`` and ``DEBUG`` are equivalent."""
        return value.upper()


settings = Settings()
