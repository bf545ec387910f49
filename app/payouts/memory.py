# app/payouts/memory.py
from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timezone
from threading import Lock
from typing import Callable, Optional
from uuid import UUID

from app.payments.model import Payment
from app.payouts.model import COMPLETED, PENDING, PROCESSING, Payout, PayoutClaim
from app.payouts.store import ClaimConflict
from app.schedules.model import Schedule


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryPayoutStore:
    """
    Test/dev store.

    One lock guards every mutation, so each method is atomic the same way a
    single Postgres transaction is in PostgresPayoutStore.
    """

    def __init__(self, *, clock: Callable[[], datetime] = _utcnow):
        self._lock = Lock()
        self._clock = clock
        self.schedules: dict[UUID, Schedule] = {}
        self.payments: dict[UUID, Payment] = {}
        self.payouts: dict[UUID, Payout] = {}
        self.subscription_tiers: dict[UUID, str] = {}

    # ---------------- seeding ----------------

    def add_payment(self, payment: Payment) -> Payment:
        with self._lock:
            self.payments[payment.id] = payment
        return payment

    def set_subscription_tier(self, business_id: UUID, tier: str) -> None:
        self.subscription_tiers[business_id] = tier

    # ---------------- schedules ----------------

    def get_schedule(self, business_id: UUID, processor_id: UUID) -> Optional[Schedule]:
        with self._lock:
            for s in self.schedules.values():
                if s.business_id == business_id and s.processor_id == processor_id:
                    return s
        return None

    def get_schedule_by_id(self, schedule_id: UUID) -> Optional[Schedule]:
        return self.schedules.get(schedule_id)

    def create_schedule(self, schedule: Schedule) -> Schedule:
        with self._lock:
            for s in self.schedules.values():
                if s.business_id == schedule.business_id and s.processor_id == schedule.processor_id:
                    return s
            self.schedules[schedule.id] = schedule
            return schedule

    def save_schedule_config(
        self, schedule: Schedule, *, next_payout_date: Optional[date] = None
    ) -> Schedule:
        with self._lock:
            current = self.schedules[schedule.id]
            # Balance, GMV and payout dates are owned by the ledger and the claim;
            # next_payout_date moves only when the caller recomputed it.
            saved = replace(
                schedule,
                current_balance_cents=current.current_balance_cents,
                last_payout_at=current.last_payout_at,
                gmv_month=current.gmv_month,
                current_month_gmv_cents=current.current_month_gmv_cents,
                volume_discount_eligible=current.volume_discount_eligible,
                next_payout_date=next_payout_date or current.next_payout_date,
                updated_at=self._clock(),
            )
            self.schedules[schedule.id] = saved
            return saved

    def increment_balance(self, schedule_id: UUID, amount_cents: int) -> None:
        with self._lock:
            s = self.schedules[schedule_id]
            self.schedules[schedule_id] = replace(
                s, current_balance_cents=s.current_balance_cents + int(amount_cents)
            )

    def list_due_schedules(self, as_of: date) -> list[Schedule]:
        with self._lock:
            due = [
                s
                for s in self.schedules.values()
                if s.is_active
                and not s.is_manually_held
                and s.next_payout_date is not None
                and s.next_payout_date <= as_of
            ]
        return sorted(due, key=lambda s: s.next_payout_date)

    # ---------------- payments ----------------

    def get_payment(self, payment_id: UUID) -> Optional[Payment]:
        return self.payments.get(payment_id)

    def list_unsettled_payments(
        self,
        business_id: UUID,
        processor_id: UUID,
        *,
        after: Optional[datetime],
        until: datetime,
    ) -> list[Payment]:
        with self._lock:
            rows = [
                p
                for p in self.payments.values()
                if p.business_id == business_id
                and p.processor_id == processor_id
                and p.status == "succeeded"
                and p.settlement_details is None
                and (after is None or p.created_at > after)
                and p.created_at <= until
            ]
        return sorted(rows, key=lambda p: p.created_at)

    def get_subscription_tier(self, business_id: UUID) -> str:
        return self.subscription_tiers.get(business_id, "free")

    # ---------------- payouts ----------------

    def claim_payout(self, claim: PayoutClaim) -> Payout:
        payout = claim.payout
        with self._lock:
            schedule = self.schedules.get(payout.schedule_id)
            if schedule is None:
                raise ClaimConflict(f"schedule {payout.schedule_id} vanished")
            if schedule.last_payout_at != claim.expected_last_payout_at:
                raise ClaimConflict(f"schedule {schedule.id} was paid out concurrently")
            for payment_id in payout.payment_ids:
                p = self.payments.get(payment_id)
                if p is None or p.settlement_details is not None:
                    raise ClaimConflict(f"payment {payment_id} already claimed")

            # All checks passed; nothing above mutated state.
            for payment_id in payout.payment_ids:
                self.payments[payment_id] = replace(
                    self.payments[payment_id],
                    settlement_details={"payout_id": str(payout.id), "status": "pending"},
                )
            stored = replace(payout, updated_at=self._clock())
            self.payouts[payout.id] = stored
            self.schedules[schedule.id] = replace(
                schedule,
                current_balance_cents=0,
                last_payout_at=claim.last_payout_at,
                next_payout_date=claim.next_payout_date,
                gmv_month=claim.gmv_month,
                current_month_gmv_cents=claim.current_month_gmv_cents,
                volume_discount_eligible=claim.volume_discount_eligible,
                updated_at=self._clock(),
            )
            return stored

    def claim_executable_payouts(self, now: datetime, *, limit: int) -> list[Payout]:
        with self._lock:
            picked = sorted(
                (
                    p
                    for p in self.payouts.values()
                    if p.status == PENDING and (p.next_retry_date is None or p.next_retry_date <= now)
                ),
                key=lambda p: p.created_at,
            )[:limit]
            claimed = []
            for p in picked:
                moved = replace(p, status=PROCESSING, updated_at=self._clock())
                self.payouts[p.id] = moved
                claimed.append(moved)
            return claimed

    def update_payout_status(
        self,
        payout_id: UUID,
        *,
        from_status: str,
        new_status: str,
        retry_count: Optional[int] = None,
        next_retry_date: Optional[datetime] = None,
        last_error: Optional[str] = None,
        failed_at: Optional[datetime] = None,
    ) -> bool:
        with self._lock:
            p = self.payouts.get(payout_id)
            if p is None or p.status != from_status:
                return False
            self.payouts[payout_id] = replace(
                p,
                status=new_status,
                retry_count=p.retry_count if retry_count is None else retry_count,
                next_retry_date=next_retry_date,
                last_error=last_error,
                failed_at=failed_at or p.failed_at,
                updated_at=self._clock(),
            )
            return True

    def complete_payout(
        self,
        payout_id: UUID,
        *,
        external_reference: str,
        completed_at: datetime,
    ) -> bool:
        with self._lock:
            p = self.payouts.get(payout_id)
            if p is None or p.status != PROCESSING:
                return False
            self.payouts[payout_id] = replace(
                p,
                status=COMPLETED,
                external_reference=external_reference,
                completed_at=completed_at,
                next_retry_date=None,
                last_error=None,
                updated_at=self._clock(),
            )
            for payment_id in p.payment_ids:
                self.payments[payment_id] = replace(
                    self.payments[payment_id],
                    settlement_details={
                        "payout_id": str(payout_id),
                        "status": "settled",
                        "settled_at": completed_at.isoformat(),
                    },
                )
            return True

    def get_payout(self, payout_id: UUID) -> Optional[Payout]:
        return self.payouts.get(payout_id)

    def list_payouts(
        self,
        business_id: UUID,
        *,
        processor_id: Optional[UUID] = None,
        status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Payout], int]:
        with self._lock:
            rows = [
                p
                for p in self.payouts.values()
                if p.business_id == business_id
                and (processor_id is None or p.processor_id == processor_id)
                and (status is None or p.status == status)
                and (start is None or p.created_at >= start)
                and (end is None or p.created_at <= end)
            ]
        rows.sort(key=lambda p: p.created_at, reverse=True)
        return rows[offset : offset + limit], len(rows)

    def list_stale_processing(self, older_than: datetime) -> list[Payout]:
        with self._lock:
            return [
                p
                for p in self.payouts.values()
                if p.status == PROCESSING and (p.updated_at is None or p.updated_at <= older_than)
            ]

    def list_unsettled_completed(self) -> list[tuple[Payout, list[UUID]]]:
        out: list[tuple[Payout, list[UUID]]] = []
        with self._lock:
            for p in self.payouts.values():
                if p.status != COMPLETED:
                    continue
                missing = [
                    pid
                    for pid in p.payment_ids
                    if (self.payments.get(pid) is None)
                    or (self.payments[pid].settlement_details or {}).get("status") != "settled"
                ]
                if missing:
                    out.append((p, missing))
        return out
