"""
Smoke checks against a running webhook receiver.

Sends the same sequence an operator would try by hand: health, one event of
each kind, a forged signature and a short parallel burst to see the rate limiter.
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import UTC, datetime

import httpx

from firebase_webhooks.schemas.events import WEBHOOK_PREFIX
from firebase_webhooks.services.signature import SIGNATURE_HEADER, sign

logger = logging.getLogger(__name__)

BURST_SIZE = 5


@dataclass
class SmokeResult:
    name: str
    status_code: int | None
    passed: bool
    detail: str = ""


def sample_events() -> list[tuple[str, str, dict]]:
    now = datetime.now(UTC).isoformat()
    return [
        (
            "User Creation",
            "user-created",
            {
                "data": {
                    "uid": "test-user-123",
                    "email": "test@example.com",
                    "displayName": "Test User",
                    "phoneNumber": "+1234567890",
                    "photoURL": "https://example.com/photo.jpg",
                    "metadata": {"creationTime": now, "lastSignInTime": now},
                }
            },
        ),
        (
            "User Update",
            "user-updated",
            {
                "data": {
                    "uid": "test-user-123",
                    "email": "updated@example.com",
                    "displayName": "Updated User",
                    "phoneNumber": "+1987654321",
                    "photoURL": "https://example.com/new-photo.jpg",
                }
            },
        ),
        ("User Deletion", "user-deleted", {"data": {"uid": "test-user-123"}}),
    ]


def post_signed(
    client: httpx.Client, endpoint: str, body: bytes, signature: str
) -> httpx.Response:
    return client.post(
        f"{WEBHOOK_PREFIX}/{endpoint}",
        content=body,
        headers={"Content-Type": "application/json", SIGNATURE_HEADER: signature},
    )


def check_health(client: httpx.Client) -> SmokeResult:
    r = client.get(f"{WEBHOOK_PREFIX}/health")
    return SmokeResult("Health check", r.status_code, r.status_code == 200)


def check_event(
    client: httpx.Client, secret: str, name: str, endpoint: str, payload: dict
) -> SmokeResult:
    body = json.dumps(payload).encode()
    r = post_signed(client, endpoint, body, sign(body, secret))
    if r.status_code == 503:
        # Receiver logic worked, the user directory behind it did not
        return SmokeResult(name, r.status_code, True, "downstream unavailable")
    return SmokeResult(name, r.status_code, 200 <= r.status_code < 300)


def check_invalid_signature(client: httpx.Client) -> SmokeResult:
    body = json.dumps(
        {"data": {"uid": "test-invalid", "email": "invalid@example.com"}}
    ).encode()
    r = post_signed(client, "user-created", body, "sha256=invalid-signature")
    return SmokeResult("Invalid signature", r.status_code, r.status_code == 401)


def check_rate_limit(client: httpx.Client, secret: str) -> SmokeResult:
    body = json.dumps(
        {"data": {"uid": "rate-limit-test", "email": "ratelimit@example.com"}}
    ).encode()
    signature = sign(body, secret)

    def send(_: int) -> int:
        return post_signed(client, "user-created", body, signature).status_code

    # All requests of the burst are in flight together
    with ThreadPoolExecutor(max_workers=BURST_SIZE) as pool:
        codes = list(pool.map(send, range(BURST_SIZE)))

    unexpected = [code for code in codes if code not in (200, 429, 503)]
    if unexpected:
        return SmokeResult("Rate limiting", unexpected[0], False, "unexpected status")
    if 429 in codes:
        return SmokeResult("Rate limiting", 429, True)
    return SmokeResult(
        "Rate limiting",
        codes[-1],
        True,
        f"not triggered by {BURST_SIZE} requests (may be normal)",
    )


def run_smoke(client: httpx.Client, secret: str) -> list[SmokeResult]:
    results = [check_health(client)]
    for name, endpoint, payload in sample_events():
        results.append(check_event(client, secret, name, endpoint, payload))
    results.append(check_invalid_signature(client))
    results.append(check_rate_limit(client, secret))

    for result in results:
        mark = "PASS" if result.passed else "FAIL"
        note = f" ({result.detail})" if result.detail else ""
        logger.info(f"{mark} {result.name}: {result.status_code}{note}")
    return results
