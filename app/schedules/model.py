from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime
from typing import Literal, Optional
from uuid import UUID

Frequency = Literal["daily", "weekly", "monthly"]
FREQUENCIES = ("daily", "weekly", "monthly")


@dataclass(frozen=True)
class Schedule:
    id: UUID
    business_id: UUID
    processor_id: UUID
    processor_type: str
    created_at: datetime
    is_active: bool = True
    frequency: Frequency = "weekly"
    weekly_day_of_week: int = 1  # 0=Sunday .. 6=Saturday
    monthly_day_of_month: int = 1
    min_payout_threshold_cents: int = 50000
    max_hold_period_days: int = 7
    is_manually_held: bool = False
    hold_reason: Optional[str] = None
    hold_started_at: Optional[datetime] = None
    current_balance_cents: int = 0
    last_payout_at: Optional[datetime] = None
    next_payout_date: Optional[date] = None
    gmv_month: Optional[str] = None  # "YYYY-MM"
    current_month_gmv_cents: int = 0
    volume_discount_eligible: bool = False
    notifications_enabled: bool = True
    notification_email: Optional[str] = None
    updated_at: Optional[datetime] = None
