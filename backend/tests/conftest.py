import json
import logging
import os
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

# Set test environment variables
os.environ.update(
    {
        "FIREBASE_WEBHOOK_SECRET": "test-webhook-secret-12345",
        "RATE_LIMIT_BACKEND": "memory",
        "LOG_LEVEL": "DEBUG",
    }
)
os.environ.pop("DOWNSTREAM_URL", None)

# Import app modules after setting environment variables
from firebase_webhooks.core.config import Settings
from firebase_webhooks.main import create_app
from firebase_webhooks.services.directory import InMemoryUserDirectory
from firebase_webhooks.services.signature import SIGNATURE_HEADER, sign

logger = logging.getLogger(__name__)

SECRET = "test-webhook-secret-12345"


class FlakyDirectory(InMemoryUserDirectory):
    """Directory whose calls fail on demand."""

    def __init__(self):
        super().__init__()
        self.error: Exception | None = None
        self.result = True

    async def create_user(self, user):
        await super().create_user(user)
        if self.error:
            raise self.error
        return self.result

    async def update_user(self, user):
        await super().update_user(user)
        if self.error:
            raise self.error
        return self.result

    async def delete_user(self, uid):
        await super().delete_user(uid)
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def settings() -> Settings:
    return Settings(
        firebase_webhook_secret=SECRET,
        rate_limit_max_requests=100,
        rate_limit_window_seconds=60,
        downstream_timeout_seconds=1,
    )


@pytest.fixture
def directory() -> FlakyDirectory:
    return FlakyDirectory()


@pytest.fixture
def app(settings, directory):
    return create_app(settings=settings, directory=directory)


@pytest.fixture
def client(app) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        logger.info("Test client created")
        yield test_client
    logger.info("Test client closed")


def signed_headers(body: bytes, secret: str = SECRET) -> dict[str, str]:
    return {"Content-Type": "application/json", SIGNATURE_HEADER: sign(body, secret)}


@pytest.fixture
def post_event(client):
    """POST a JSON payload with a valid signature over the exact bytes sent."""

    def _post(endpoint: str, payload, secret: str = SECRET, headers=None):
        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
        return client.post(
            f"/webhooks/firebase/{endpoint}",
            content=body,
            headers=headers or signed_headers(body, secret),
        )

    return _post
