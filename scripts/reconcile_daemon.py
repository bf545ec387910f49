# scripts/reconcile_daemon.py
from __future__ import annotations

import logging
import time

from app.payouts.repository import PostgresPayoutStore
from services.reconcile import run_reconcile
from settings import settings


logger = logging.getLogger("payouts.reconcile")


def run_once(store) -> dict:
    result = run_reconcile(store)
    summary = result["summary"]
    logger.info(
        "reconcile run %s | stale_processing=%s completed_unsettled=%s ledger_mismatch=%s",
        result["run_at"],
        summary["stale_processing"],
        summary["completed_unsettled"],
        summary["ledger_mismatch"],
    )
    for item in result["items"]:
        logger.warning("needs attention: %s payout=%s", item["category"], item["payout_id"])
    return result


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    interval = settings.RECONCILE_INTERVAL_SECONDS
    store = PostgresPayoutStore()
    logger.info("reconcile daemon starting; interval=%ss stale_after=%sm", interval, settings.RECONCILE_STALE_MINUTES)

    while True:
        try:
            run_once(store)
        except KeyboardInterrupt:
            logger.info("reconcile daemon exiting")
            raise
        except Exception:
            logger.exception("reconcile run failed")
            raise
        time.sleep(interval)


if __name__ == "__main__":
    main()
