from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
from uuid import UUID
from datetime import date, datetime


PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"


@dataclass(frozen=True)
class PayoutItem:
    payment_id: UUID
    amount_cents: int
    processor_fee_cents: int
    net_contribution_cents: int


@dataclass(frozen=True)
class Payout:
    id: UUID
    schedule_id: UUID
    business_id: UUID
    processor_id: UUID
    processor_type: str
    frequency: str
    period_start: datetime
    period_end: datetime
    gross_amount_cents: int
    processor_fee_cents: int
    subscription_fee_cents: int
    volume_discount_cents: int
    net_amount_cents: int
    status: str
    items: tuple[PayoutItem, ...]
    created_at: datetime
    retry_count: int = 0
    next_retry_date: Optional[datetime] = None
    external_reference: Optional[str] = None
    last_error: Optional[str] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def payment_ids(self) -> list[UUID]:
        return [item.payment_id for item in self.items]

    @property
    def payment_count(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class PayoutClaim:
    """
    Everything the generator commits in one transaction.

    expected_last_payout_at is the optimistic guard: the claim only applies if
    the schedule has not been paid out since the generator read it.
    """

    payout: Payout
    expected_last_payout_at: Optional[datetime]
    last_payout_at: datetime
    next_payout_date: date
    gmv_month: str
    current_month_gmv_cents: int
    volume_discount_eligible: bool
