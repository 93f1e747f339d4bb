#!/usr/bin/env python3

import logging
import os
import sys

import httpx

from firebase_webhooks.smoke import run_smoke


if __name__ == "__main__":
    if len(sys.argv) > 3:
        print("Usage: smoke_webhooks.py [base_url] [secret]")
        sys.exit(1)

    base_url = (
        sys.argv[1]
        if len(sys.argv) > 1
        else os.getenv("WEBHOOK_BASE_URL", "http://localhost:3000")
    )
    secret = sys.argv[2] if len(sys.argv) > 2 else os.getenv("FIREBASE_WEBHOOK_SECRET")
    if not secret:
        print(
            "Error: no secret given and FIREBASE_WEBHOOK_SECRET unset",
            file=sys.stderr,
        )
        sys.exit(1)

    logging.basicConfig(level=logging.INFO, format="%(message)s")
    try:
        with httpx.Client(base_url=base_url, timeout=10) as client:
            results = run_smoke(client, secret)
    except httpx.HTTPError as e:
        print(f"Error: could not reach {base_url}: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(0 if all(r.passed for r in results) else 1)
