from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    firebase_webhook_secret: str
    listen_host: str = "0.0.0.0"
    listen_port: int = 3000

    rate_limit_max_requests: int = Field(default=60, ge=1)
    rate_limit_window_seconds: int = Field(default=60, ge=1)
    rate_limit_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"

    # User directory service; an in-memory directory is used when unset
    downstream_url: str | None = None
    downstream_timeout_seconds: float = Field(default=5, gt=0)

    max_body_bytes: int = Field(default=1_048_576, ge=0)  # 1 MiB
    trust_forwarded_for: bool = False
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
