#!/usr/bin/env python3
"""
Complete booking lifecycle flow script.

DO NOT ADD BUSINESS LOGIC HERE.
This script only orchestrates API calls.
All rules live in the backend.

Usage:
    python scripts/seed_workers.py
    python scripts/flow_assign_and_complete.py --customer-id <UUID> --service-id <UUID>

Flow:
    1. Create booking (customer)
    2. List candidate workers
    3. Assign best candidate (admin)
    4. Accept (worker)
    5. Start (worker)
    6. Complete (worker)
    7. Show worker wallet and customer coins
"""

import argparse
import json
import sys
from datetime import UTC, datetime, timedelta

import httpx

BASE_URL = "http://localhost:8000"


def api_request(method: str, endpoint: str, data: dict | None = None) -> dict:
    """Make API request."""
    url = f"{BASE_URL}{endpoint}"

    if method == "GET":
        response = httpx.get(url, timeout=10.0, follow_redirects=True)
    elif method == "POST":
        response = httpx.post(url, json=data or {}, timeout=10.0, follow_redirects=True)
    else:
        raise ValueError(f"Unknown method: {method}")

    return {"status": response.status_code, "data": response.json() if response.text else {}}


def print_step(step: int, title: str):
    """Print step header."""
    print(f"\n{'='*60}")
    print(f"STEP {step}: {title}")
    print("="*60)


def print_result(result: dict, fields: list[str] | None = None):
    """Print result, optionally filtering fields."""
    if result["status"] >= 400:
        print(f"ERROR ({result['status']}): {json.dumps(result['data'], indent=2)}")
        return False

    print(f"Status: {result['status']}")
    data = result["data"]
    if fields and isinstance(data, dict):
        data = {k: data.get(k) for k in fields if k in data}
    print(json.dumps(data, indent=2))
    return True


def transition(booking_id: str, action: str, role: str, actor_id: str | None, payload: dict | None = None) -> dict:
    return api_request("POST", f"/api/v1/bookings/{booking_id}/transition", {
        "action": action,
        "actorRole": role,
        "actorId": actor_id,
        "payload": payload or {},
    })


def main():
    parser = argparse.ArgumentParser(description="Booking lifecycle flow")
    parser.add_argument("--customer-id", required=True, help="Customer UUID")
    parser.add_argument("--service-id", required=True, help="Service UUID")
    parser.add_argument("--price", type=int, default=50000, help="Price in paise")
    args = parser.parse_args()

    # Step 1: Create booking
    print_step(1, "Create booking")
    scheduled_at = (datetime.now(UTC) + timedelta(days=1)).isoformat()
    booking_result = api_request("POST", "/api/v1/bookings", {
        "customerId": args.customer_id,
        "serviceId": args.service_id,
        "price": args.price,
        "scheduledAt": scheduled_at,
    })
    if not print_result(booking_result, ["id", "bookingNumber", "status", "version"]):
        sys.exit(1)
    booking_id = booking_result["data"]["id"]

    # Step 2: Candidates
    print_step(2, "List candidate workers")
    candidates_result = api_request("GET", f"/api/v1/bookings/{booking_id}/candidates")
    if not print_result(candidates_result):
        sys.exit(1)
    if not candidates_result["data"]:
        print("ERROR: No eligible workers - run scripts/seed_workers.py with this service ID")
        sys.exit(1)
    worker_id = candidates_result["data"][0]["workerId"]

    # Steps 3-6: Lifecycle
    steps = [
        ("assign", "admin", None, {"workerId": worker_id}),
        ("accept", "worker", worker_id, None),
        ("start", "worker", worker_id, None),
        ("complete", "worker", worker_id, None),
    ]
    for number, (action, role, actor_id, payload) in enumerate(steps, start=3):
        print_step(number, f"{action} ({role})")
        if not print_result(transition(booking_id, action, role, actor_id, payload), ["status", "version", "workerId"]):
            sys.exit(1)

    # Step 7: Balances
    print_step(7, "Balances")
    print_result(api_request("GET", f"/api/v1/wallets/{worker_id}"), ["owner_id", "balance"])
    print_result(api_request("GET", f"/api/v1/coins/{args.customer_id}"), ["owner_id", "balance"])

    print("\n" + "="*60)
    print("FULL FLOW COMPLETE")
    print("="*60)


if __name__ == "__main__":
    main()
