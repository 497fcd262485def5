"""
MODULE OVERVIEW:
This module provides service-wide configuration using Pydantic Settings.

WHAT IS HAPPENING HERE:
Every timing and sizing knob of the notification engine lives here: page size,
retention TTL, long-poll timeout and tick cadence, worker slot capacity, and the
Redis connection parameters. The settings object is frozen once loaded and is handed
to each engine component at construction, so nothing reads a mutable global at
request time.
"""
from typing import Literal
from urllib.parse import quote

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PORT: int = 9001
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Store
    STORE_BACKEND: Literal["redis", "memory"] = "redis"
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: str = ""
    REDIS_DB: int = Field(0, ge=0)
    REDIS_POOL_SIZE: int = Field(50, gt=0)
    REDIS_SOCKET_TIMEOUT_S: float = Field(3.0, gt=0)

    # Queue sizing / retention
    MAX_EVENTS_PER_POLL: int = Field(50, gt=0)
    DEFAULT_TTL_SECONDS: int = Field(300, gt=0)

    # Poll hints returned to clients
    SHORT_POLL_INTERVAL_MS: int = Field(5000, gt=0)
    LONG_POLL_INTERVAL_MS: int = Field(30000, gt=0)

    # Long Polling
    LONG_POLL_TIMEOUT_MS: int = Field(25000, gt=0)
    LONG_POLL_TICK_S: float = Field(1.0, gt=0)

    # Publishing
    WORKER_POOL_SIZE: int = Field(100, gt=0)

    # Short budgets, independent of the long-poll timeout
    HEALTH_CHECK_TIMEOUT_S: float = Field(2.0, gt=0)
    SHUTDOWN_TIMEOUT_S: float = Field(10.0, gt=0)

    CORS_ALLOWED_ORIGINS: str = "*"

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'
        extra = 'ignore'
        frozen = True

    @property
    def redis_url(self) -> str:
        auth = f":{quote(self.REDIS_PASSWORD, safe='')}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    @property
    def long_poll_timeout_s(self) -> float:
        return self.LONG_POLL_TIMEOUT_MS / 1000.0

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ALLOWED_ORIGINS.split(",") if origin.strip()]


settings = Settings()
