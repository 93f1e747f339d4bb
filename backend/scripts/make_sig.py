#!/usr/bin/env python3

import json
import sys

from firebase_webhooks.services.signature import sign


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print("Usage: make_sig.py <secret> <payload>")
        sys.exit(1)

    secret = sys.argv[1]
    payload = sys.argv[2]

    # Validate payload is valid JSON
    try:
        json.loads(payload)
    except json.JSONDecodeError:
        print("Error: Payload must be valid JSON", file=sys.stderr)
        sys.exit(1)

    # Sign the argument exactly as given; the receiver hashes the raw body
    print(sign(payload.encode("utf-8"), secret))
