# app/ledger/balance.py
from __future__ import annotations

import logging
from typing import Optional

from app.payments.model import Payment
from app.payouts.model import Payout, PayoutClaim
from app.payouts.store import PayoutStore
from app.schedules.manager import ScheduleManager
from app.schedules.model import Schedule

logger = logging.getLogger("payouts.ledger")


class BalanceLedger:
    """
    Unsettled balance per schedule.

    Increments are single atomic store operations so concurrent payment events
    never lose an update. The only reset lives inside PayoutStore.claim_payout.
    """

    def __init__(self, store: PayoutStore, schedules: ScheduleManager):
        self.store = store
        self.schedules = schedules

    def on_payment_succeeded(self, payment: Payment) -> Optional[Schedule]:
        if payment.status != "succeeded" or not payment.processor_id:
            logger.info("ignoring payment %s status=%s", payment.id, payment.status)
            return None

        schedule = self.schedules.get_or_create(
            payment.business_id, payment.processor_id, payment.processor_type
        )
        self.store.increment_balance(schedule.id, payment.net_amount_cents)
        return schedule

    def reset_on_payout_generation(self, claim: PayoutClaim) -> Payout:
        """
        Commit a payout claim. The balance goes to zero in the same transaction
        that claims the payments, or not at all (ClaimConflict propagates).
        """
        return self.store.claim_payout(claim)
