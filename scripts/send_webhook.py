"""Post a hand-written provider webhook to a running orchestrator.

Useful for exercising status polling without a real provider callback, and
for checking out-of-order or duplicate deliveries by hand.
"""

import argparse
import json
from pathlib import Path

import httpx


def send(base_url: str, payload: dict, token: str | None = None, timeout: float = 5.0) -> httpx.Response:
    """Deliver one webhook body and return the orchestrator response."""

    headers = {"x-webhook-token": token} if token else {}
    with httpx.Client(timeout=timeout) as client:
        return client.post(f"{base_url.rstrip('/')}/webhook", json=payload, headers=headers)


def main() -> None:
    """Parse CLI args, send one webhook, then print the stored status."""

    parser = argparse.ArgumentParser(description="Send a provider-style webhook to the orchestrator.")
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--account-id", default=None)
    parser.add_argument("--status", default="paid")
    parser.add_argument("--data", default="{}", help="Inline JSON for the `data` field")
    parser.add_argument("--file", dest="json_file", default=None, help="Path to a full webhook JSON body")
    parser.add_argument("--token", default=None, help="Value for X-Webhook-Token")
    args = parser.parse_args()

    if args.json_file:
        payload = json.loads(Path(args.json_file).read_text())
    else:
        if not args.account_id:
            raise SystemExit("Provide --account-id or --file")
        payload = {"accountId": args.account_id, "status": args.status, "data": json.loads(args.data)}

    resp = send(args.base_url, payload, token=args.token)
    print(f"webhook status_code={resp.status_code} body={resp.text}")
    account_id = payload.get("accountId")
    if resp.is_success and account_id:
        status = httpx.get(f"{args.base_url.rstrip('/')}/payment-status/{account_id}", timeout=5.0)
        print(f"payment-status status_code={status.status_code} body={status.text}")


if __name__ == "__main__":
    main()
