from __future__ import annotations

import argparse

from app.payouts.repository import PostgresPayoutStore
from services.reconcile import run_reconcile


def main() -> None:
    parser = argparse.ArgumentParser(description="Run payout reconciliation once.")
    parser.add_argument("--stale-minutes", type=int, default=None)
    args = parser.parse_args()

    result = run_reconcile(PostgresPayoutStore(), stale_minutes=args.stale_minutes)
    summary = result["summary"]

    print("reconcile_run_at:", result["run_at"])
    print(
        "counts:",
        f"stale_processing={summary['stale_processing']}",
        f"completed_unsettled={summary['completed_unsettled']}",
        f"ledger_mismatch={summary['ledger_mismatch']}",
        f"payouts_checked={summary['payouts_checked']}",
    )
    for item in result["items"]:
        print(item["category"], item["payout_id"])


if __name__ == "__main__":
    main()
