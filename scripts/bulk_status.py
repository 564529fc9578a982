#!/usr/bin/env python3
"""
Apply a batch of appointment status changes through the admin API.

Usage:
    python scripts/bulk_status.py operations.json
    python scripts/bulk_status.py --set <appointment_id>=confirmed --set <id>=cancelled

The JSON file holds a list of {"appointment_id", "status", "cancel_reason"?}
objects. The batch is atomic: if any operation is rejected, nothing changes.

Environment Variables:
    ADMIN_ACCESS_TOKEN: Bearer token of an admin account
    API_URL: Base API URL (default: http://localhost:8000)
"""

import argparse
import json
import os
import sys

import dotenv
import requests

dotenv.load_dotenv()


def submit_batch(operations: list[dict]) -> dict:
    """Post the batch to the bulk-status endpoint."""
    token = os.getenv("ADMIN_ACCESS_TOKEN")
    if not token:
        print("Error: ADMIN_ACCESS_TOKEN environment variable not set", file=sys.stderr)
        sys.exit(1)

    api_url = os.getenv("API_URL", "http://localhost:8000")
    url = f"{api_url}/api/v1/admin/appointments/bulk-status"

    headers = {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
    }

    try:
        response = requests.post(url, json={"operations": operations}, headers=headers, timeout=30)
        response.raise_for_status()
        return response.json()
    except requests.exceptions.HTTPError as e:
        print(f"HTTP Error: {e}", file=sys.stderr)
        print(f"Response: {e.response.text}", file=sys.stderr)
        sys.exit(1)
    except requests.exceptions.RequestException as e:
        print(f"Request Error: {e}", file=sys.stderr)
        sys.exit(1)


def parse_assignment(value: str) -> dict:
    """Turn ``<id>=<status>`` into an operation."""
    appointment_id, sep, status = value.partition("=")
    if not sep or not appointment_id or not status:
        raise argparse.ArgumentTypeError(f"expected <appointment_id>=<status>, got {value!r}")
    return {"appointment_id": appointment_id, "status": status}


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Apply appointment status changes in one transaction",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("file", nargs="?", help="JSON file with a list of operations")
    parser.add_argument(
        "--set",
        dest="assignments",
        action="append",
        type=parse_assignment,
        default=[],
        metavar="ID=STATUS",
        help="Single operation; may be repeated",
    )
    parser.add_argument("--reason", help="cancel_reason applied to cancellations")

    args = parser.parse_args()

    operations: list[dict] = []
    if args.file:
        try:
            with open(args.file, encoding="utf-8") as fh:
                operations.extend(json.load(fh))
        except (OSError, json.JSONDecodeError) as e:
            print(f"Error: cannot read {args.file}: {e}", file=sys.stderr)
            sys.exit(1)
    operations.extend(args.assignments)

    if not operations:
        parser.error("no operations given")

    if args.reason:
        for op in operations:
            if op.get("status") == "cancelled":
                op.setdefault("cancel_reason", args.reason)

    result = submit_batch(operations)

    print(f"✓ {result['processed']} appointment(s) updated")
    for item in result["results"]:
        print(f"   {item['appointment_id']}: {item['from_status']} -> {item['to_status']}")


if __name__ == "__main__":
    main()
