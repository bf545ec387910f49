# app/workers/payout_worker.py
from __future__ import annotations

import logging
import time
from typing import Optional

from app.payouts.service import PayoutService, build_default_service
from app.providers.validate import validate_settlement_startup
from settings import settings

logger = logging.getLogger("payouts.worker")


def process_once(service: PayoutService) -> dict[str, int]:
    """One tick: generate due payouts, then settle whatever is executable."""
    result = service.tick()
    logger.info("tick done generated=%s processed=%s", result["generated"], result["processed"])
    return result


def run_forever(
    service: Optional[PayoutService] = None,
    *,
    poll_seconds: Optional[int] = None,
    max_ticks: Optional[int] = None,
) -> int:
    service = service or build_default_service()
    poll = poll_seconds if poll_seconds is not None else settings.WORKER_POLL_SECONDS

    validate_settlement_startup(service.executor.providers)
    logger.info("payout worker started; poll=%ss", poll)

    ticks = 0
    while max_ticks is None or ticks < max_ticks:
        try:
            process_once(service)
        except KeyboardInterrupt:
            logger.info("payout worker exiting")
            raise
        ticks += 1
        if max_ticks is None or ticks < max_ticks:
            time.sleep(poll)
    return ticks


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    run_forever()
