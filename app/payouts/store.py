# app/payouts/store.py
from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Protocol
from uuid import UUID

from app.payments.model import Payment
from app.payouts.model import Payout, PayoutClaim
from app.schedules.model import Schedule


class ClaimConflict(Exception):
    """Another generator run claimed this schedule or one of its payments first."""


class PayoutStore(Protocol):
    # --- schedules ---
    def get_schedule(self, business_id: UUID, processor_id: UUID) -> Optional[Schedule]: ...
    def get_schedule_by_id(self, schedule_id: UUID) -> Optional[Schedule]: ...
    def create_schedule(self, schedule: Schedule) -> Schedule: ...
    def save_schedule_config(
        self, schedule: Schedule, *, next_payout_date: Optional[date] = None
    ) -> Schedule: ...
    def increment_balance(self, schedule_id: UUID, amount_cents: int) -> None: ...
    def list_due_schedules(self, as_of: date) -> list[Schedule]: ...

    # --- payments (external rows; settlement pointer only) ---
    def get_payment(self, payment_id: UUID) -> Optional[Payment]: ...
    def list_unsettled_payments(
        self,
        business_id: UUID,
        processor_id: UUID,
        *,
        after: Optional[datetime],
        until: datetime,
    ) -> list[Payment]: ...
    def get_subscription_tier(self, business_id: UUID) -> str: ...

    # --- payouts ---
    def claim_payout(self, claim: PayoutClaim) -> Payout: ...
    def claim_executable_payouts(self, now: datetime, *, limit: int) -> list[Payout]: ...
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
    ) -> bool: ...
    def complete_payout(
        self,
        payout_id: UUID,
        *,
        external_reference: str,
        completed_at: datetime,
    ) -> bool: ...
    def get_payout(self, payout_id: UUID) -> Optional[Payout]: ...
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
    ) -> tuple[list[Payout], int]: ...
    def list_stale_processing(self, older_than: datetime) -> list[Payout]: ...
    def list_unsettled_completed(self) -> list[tuple[Payout, list[UUID]]]: ...
