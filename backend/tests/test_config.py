import pytest
from limits.aio.storage import MemoryStorage, RedisStorage
from pydantic import ValidationError

from firebase_webhooks.core.config import Settings
from firebase_webhooks.main import build_directory, build_rate_limiter
from firebase_webhooks.services.directory import (
    HttpUserDirectory,
    InMemoryUserDirectory,
)


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("FIREBASE_WEBHOOK_SECRET", "s3cret")
    monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "5")
    monkeypatch.setenv("RATE_LIMIT_WINDOW_SECONDS", "30")
    monkeypatch.setenv("DOWNSTREAM_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("TRUST_FORWARDED_FOR", "true")
    monkeypatch.setenv("LISTEN_PORT", "8080")

    settings = Settings()

    assert settings.firebase_webhook_secret == "s3cret"
    assert settings.rate_limit_max_requests == 5
    assert settings.rate_limit_window_seconds == 30
    assert settings.downstream_timeout_seconds == 2.5
    assert settings.trust_forwarded_for is True
    assert settings.listen_port == 8080
    assert settings.rate_limit_backend == "memory"


def test_secret_is_required(monkeypatch):
    monkeypatch.delenv("FIREBASE_WEBHOOK_SECRET", raising=False)
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


@pytest.mark.parametrize(
    "field, value",
    [
        ("rate_limit_max_requests", 0),
        ("rate_limit_window_seconds", 0),
        ("downstream_timeout_seconds", -1),
        ("rate_limit_backend", "memcached"),
    ],
)
def test_invalid_settings(field, value):
    with pytest.raises(ValidationError):
        Settings(firebase_webhook_secret="s", **{field: value})


def test_memory_rate_limiter_by_default(settings):
    limiter = build_rate_limiter(settings)
    assert isinstance(limiter.storage, MemoryStorage)
    assert limiter.max_requests == settings.rate_limit_max_requests
    assert limiter.window_seconds == settings.rate_limit_window_seconds


async def test_redis_rate_limiter(settings):
    settings.rate_limit_backend = "redis"
    limiter = build_rate_limiter(settings)
    assert isinstance(limiter.storage, RedisStorage)
    await limiter.close()


async def test_directory_selection(settings):
    assert isinstance(build_directory(settings), InMemoryUserDirectory)

    settings.downstream_url = "http://users.internal"
    directory = build_directory(settings)
    assert isinstance(directory, HttpUserDirectory)
    await directory.aclose()
