import threading

import httpx
import pytest
from fastapi.testclient import TestClient

from firebase_webhooks.main import create_app
from firebase_webhooks.smoke import BURST_SIZE, check_rate_limit, run_smoke

SECRET = "test-webhook-secret-12345"


def by_name(results):
    return {r.name: r for r in results}


def test_smoke_passes_against_receiver(client, directory):
    results = by_name(run_smoke(client, SECRET))

    assert all(r.passed for r in results.values())
    assert results["Health check"].status_code == 200
    assert results["User Creation"].status_code == 200
    assert results["Invalid signature"].status_code == 401
    assert "not triggered" in results["Rate limiting"].detail
    # creation, update, deletion, then the burst of five creations
    assert len(directory.calls) == 8


def test_smoke_sees_rate_limit(settings, directory):
    settings.rate_limit_max_requests = 5
    with TestClient(create_app(settings=settings, directory=directory)) as client:
        results = by_name(run_smoke(client, SECRET))

    assert results["Rate limiting"].passed
    assert results["Rate limiting"].status_code == 429
    assert results["Rate limiting"].detail == ""


def test_smoke_tolerates_unavailable_downstream(client, directory):
    directory.error = RuntimeError("database connection failed")

    results = by_name(run_smoke(client, SECRET))

    for name in ("User Creation", "User Update", "User Deletion"):
        assert results[name].status_code == 503
        assert results[name].passed
        assert results[name].detail == "downstream unavailable"


def test_smoke_fails_with_wrong_secret(client):
    results = by_name(run_smoke(client, "not-the-secret"))

    assert not results["User Creation"].passed
    assert results["User Creation"].status_code == 401
    assert not results["Rate limiting"].passed
    assert results["Health check"].passed


@pytest.mark.parametrize("name", ["Invalid signature", "Health check"])
def test_smoke_checks_do_not_need_the_secret(client, name):
    assert by_name(run_smoke(client, "whatever"))[name].passed


def test_rate_limit_burst_is_sent_in_parallel():
    # Every request waits until the whole burst has arrived
    arrived = threading.Barrier(BURST_SIZE, timeout=5)

    def handler(request: httpx.Request) -> httpx.Response:
        arrived.wait()
        return httpx.Response(429)

    transport = httpx.MockTransport(handler)
    with httpx.Client(transport=transport, base_url="http://receiver") as client:
        result = check_rate_limit(client, SECRET)

    assert result.passed
    assert result.status_code == 429
