"""
Fire N concurrent POST /validate calls with the same token against a running
Access Service and report how many were authorized. A healthy single-use
deployment reports exactly one success.

Usage: python scripts/concurrency_check.py <token> [concurrency] [session_id]
       VALIDATE_URL overrides the endpoint (default http://localhost:5004/validate)
"""

import os
import sys
from collections import Counter
from concurrent.futures import ThreadPoolExecutor

import requests

VALIDATE_URL = os.environ.get("VALIDATE_URL", "http://localhost:5004/validate")


def attempt(token, session_id):
    try:
        resp = requests.post(
            VALIDATE_URL,
            json={"token": token, "sessionId": session_id, "type": "entry"},
            timeout=10,
        )
        body = resp.json()
    except (requests.RequestException, ValueError) as e:
        return {"authorized": False, "reason": f"transport: {e}"}
    return body


def main(argv):
    if len(argv) < 2:
        print(__doc__)
        return 1
    token = argv[1]
    concurrency = int(argv[2]) if len(argv) > 2 else 20
    session_id = argv[3] if len(argv) > 3 else "sala-101"

    with ThreadPoolExecutor(max_workers=concurrency) as pool:
        results = list(pool.map(lambda _: attempt(token, session_id), range(concurrency)))

    successes = sum(1 for r in results if r.get("authorized") is True)
    reasons = Counter(r.get("reason") for r in results if r.get("authorized") is not True)
    print(f"Successes: {successes}  Failures: {len(results) - successes}")
    for reason, count in reasons.most_common():
        print(f"  {reason}: {count}")
    return 0 if successes <= 1 else 2


if __name__ == "__main__":
    sys.exit(main(sys.argv))
