# schemas.py
from __future__ import annotations

from dataclasses import asdict
from datetime import date, datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.payouts.model import Payout
from app.schedules.model import Schedule

PayoutStatus = Literal["pending", "processing", "completed", "failed"]


# -------- PAYOUTS --------
class PayoutItemOut(BaseModel):
    payment_id: UUID
    amount_cents: int
    processor_fee_cents: int
    net_contribution_cents: int


class PayoutOut(BaseModel):
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
    status: PayoutStatus
    retry_count: int
    next_retry_date: Optional[datetime] = None
    external_reference: Optional[str] = None
    last_error: Optional[str] = None
    payment_count: int
    items: List[PayoutItemOut]
    created_at: datetime
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    @classmethod
    def from_payout(cls, payout: Payout) -> "PayoutOut":
        data = asdict(payout)
        data["payment_count"] = payout.payment_count
        return cls(**data)


class PayoutListResponse(BaseModel):
    business_id: UUID
    total: int
    payouts: List[PayoutOut]


class ResolvePayoutRequest(BaseModel):
    succeeded: bool
    reference: Optional[str] = Field(default=None, max_length=200)


# -------- SCHEDULES --------
class ScheduleOut(BaseModel):
    id: UUID
    business_id: UUID
    processor_id: UUID
    processor_type: str
    is_active: bool
    frequency: str
    weekly_day_of_week: int
    monthly_day_of_month: int
    min_payout_threshold_cents: int
    max_hold_period_days: int
    is_manually_held: bool
    hold_reason: Optional[str] = None
    hold_started_at: Optional[datetime] = None
    current_balance_cents: int
    last_payout_at: Optional[datetime] = None
    next_payout_date: Optional[date] = None
    current_month_gmv_cents: int
    volume_discount_eligible: bool
    notifications_enabled: bool
    notification_email: Optional[str] = None

    @classmethod
    def from_schedule(cls, schedule: Schedule) -> "ScheduleOut":
        return cls(**{k: v for k, v in asdict(schedule).items() if k in cls.model_fields})


class ScheduleUpdateRequest(BaseModel):
    is_active: Optional[bool] = None
    frequency: Optional[Literal["daily", "weekly", "monthly"]] = None
    weekly_day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    monthly_day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    min_payout_threshold_cents: Optional[int] = Field(default=None, ge=0)
    max_hold_period_days: Optional[int] = Field(default=None, ge=0)
    notifications_enabled: Optional[bool] = None
    notification_email: Optional[str] = Field(default=None, max_length=255)


class HoldRequest(BaseModel):
    hold: bool
    reason: Optional[str] = Field(default=None, max_length=500)
