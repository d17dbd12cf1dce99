"""Fetch a payment's transaction history, reconciling it against the gateway."""

import argparse
import json

import httpx


def main() -> None:
    """CLI entrypoint for on-demand reconciliation of one payment."""

    parser = argparse.ArgumentParser(description="Reconcile one payment through the payments service.")
    parser.add_argument("payment_id")
    parser.add_argument("--tenant-id", required=True)
    parser.add_argument("--account-id", default="")
    parser.add_argument("--payments-url", default="http://localhost:8000")
    args = parser.parse_args()

    resp = httpx.get(
        f"{args.payments_url}/payments/{args.payment_id}/transactions",
        params={"account_id": args.account_id},
        headers={"X-Tenant-Id": args.tenant_id},
        timeout=30.0,
    )
    resp.raise_for_status()
    transactions = resp.json()
    for transaction in transactions:
        print(
            f"{transaction['transaction_type']:<10} {transaction['transaction_id']:<38} "
            f"{transaction['status']:<10} {transaction.get('gateway_id') or '-'}"
        )
    print(json.dumps(transactions, indent=2))


if __name__ == "__main__":
    main()
