# app/payouts/generator.py
from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional

from app.fees.calculator import allocate, period_days, subscription_fee, volume_discount
from app.ledger.balance import BalanceLedger
from app.payments.model import Payment
from app.payouts.model import PENDING, Payout, PayoutClaim, PayoutItem
from app.payouts.store import ClaimConflict, PayoutStore
from app.schedules.calendar import compute_next_payout_date, days_since_last_payout
from app.schedules.model import Schedule
from services import metrics
from services.ledger_invariants import LedgerInvariantError, assert_payout_balanced

logger = logging.getLogger("payouts.generator")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_eligible(schedule: Schedule, now: datetime) -> bool:
    if schedule.current_balance_cents >= schedule.min_payout_threshold_cents:
        return True
    # Low-volume sellers are never held past max_hold_period_days.
    return days_since_last_payout(schedule, now) >= schedule.max_hold_period_days


def build_items(
    payments: list[Payment],
    subscription_fee_cents: int,
    volume_discount_cents: int,
) -> tuple[PayoutItem, ...]:
    weights = [p.amount_cents for p in payments]
    fee_shares = allocate(subscription_fee_cents, weights)
    discount_shares = allocate(volume_discount_cents, weights)
    return tuple(
        PayoutItem(
            payment_id=p.id,
            amount_cents=p.amount_cents,
            processor_fee_cents=p.processor_fee_cents,
            net_contribution_cents=p.amount_cents - p.processor_fee_cents - fee + disc,
        )
        for p, fee, disc in zip(payments, fee_shares, discount_shares)
    )


class PayoutGenerator:
    def __init__(
        self,
        store: PayoutStore,
        ledger: BalanceLedger,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.ledger = ledger
        self.clock = clock

    def generate_scheduled_payouts(self) -> int:
        now = self.clock()
        due = self.store.list_due_schedules(now.date())
        logger.info("found %s schedules due for payout", len(due))

        generated = 0
        for schedule in due:
            try:
                payout = self.generate_for_schedule(schedule, now)
            except ClaimConflict as exc:
                metrics.increment_payout_skipped("claim_conflict")
                logger.info("schedule %s skipped: %s", schedule.id, exc)
                continue
            except LedgerInvariantError:
                raise
            except Exception:
                logger.exception("failed to generate payout for schedule %s", schedule.id)
                continue

            if payout is not None:
                generated += 1

        logger.info("generated %s payouts", generated)
        return generated

    def generate_for_schedule(self, schedule: Schedule, now: datetime) -> Optional[Payout]:
        if not is_eligible(schedule, now):
            metrics.increment_payout_skipped("below_threshold")
            logger.info(
                "skipping %s: balance below threshold (%s < %s), hold period %s/%s days",
                schedule.id,
                schedule.current_balance_cents,
                schedule.min_payout_threshold_cents,
                days_since_last_payout(schedule, now),
                schedule.max_hold_period_days,
            )
            return None

        payments = self.store.list_unsettled_payments(
            schedule.business_id,
            schedule.processor_id,
            after=schedule.last_payout_at,
            until=now,
        )
        if not payments:
            metrics.increment_payout_skipped("no_payments")
            logger.info("no payments to pay out for schedule %s", schedule.id)
            return None

        claim = self.build_claim(schedule, payments, now)
        if claim.payout.net_amount_cents < 0:
            # Payments stay unsettled and roll into the next period with the fee.
            metrics.increment_payout_skipped("negative_net")
            logger.warning(
                "skipping %s: fees exceed earnings (net=%s)",
                schedule.id,
                claim.payout.net_amount_cents,
            )
            return None
        assert_payout_balanced(claim.payout)

        payout = self.ledger.reset_on_payout_generation(claim)
        metrics.increment_payout_generated(schedule.processor_type)
        logger.info(
            "generated payout %s for schedule %s net=%s payments=%s",
            payout.id,
            schedule.id,
            payout.net_amount_cents,
            payout.payment_count,
        )
        return payout

    def build_claim(self, schedule: Schedule, payments: list[Payment], now: datetime) -> PayoutClaim:
        if schedule.last_payout_at is not None:
            period_start = schedule.last_payout_at
        else:
            period_start = min([schedule.created_at] + [p.created_at for p in payments])
        period_end = now

        gross = sum(p.amount_cents for p in payments)
        processor_fee = sum(p.processor_fee_cents for p in payments)

        tier = self.store.get_subscription_tier(schedule.business_id)
        sub_fee = subscription_fee(tier, period_days(period_start, period_end))
        discount = volume_discount(schedule, gross, now)

        net = gross - processor_fee - sub_fee + discount.discount_cents

        payout = Payout(
            id=uuid.uuid4(),
            schedule_id=schedule.id,
            business_id=schedule.business_id,
            processor_id=schedule.processor_id,
            processor_type=schedule.processor_type,
            frequency=schedule.frequency,
            period_start=period_start,
            period_end=period_end,
            gross_amount_cents=gross,
            processor_fee_cents=processor_fee,
            subscription_fee_cents=sub_fee,
            volume_discount_cents=discount.discount_cents,
            net_amount_cents=net,
            status=PENDING,
            items=build_items(payments, sub_fee, discount.discount_cents),
            created_at=now,
        )

        paid_schedule = replace(schedule, last_payout_at=now)
        return PayoutClaim(
            payout=payout,
            expected_last_payout_at=schedule.last_payout_at,
            last_payout_at=now,
            next_payout_date=compute_next_payout_date(paid_schedule, now),
            gmv_month=discount.gmv_month,
            current_month_gmv_cents=discount.current_month_gmv_cents,
            volume_discount_eligible=discount.eligible,
        )
