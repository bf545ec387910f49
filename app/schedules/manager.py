# app/schedules/manager.py
from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import UUID

from app.payouts.store import PayoutStore
from app.schedules.calendar import clamp_month_day, compute_next_payout_date
from app.schedules.model import FREQUENCIES, Schedule
from settings import settings

logger = logging.getLogger("payouts.schedules")

UPDATABLE_FIELDS = {
    "is_active",
    "frequency",
    "weekly_day_of_week",
    "monthly_day_of_month",
    "min_payout_threshold_cents",
    "max_hold_period_days",
    "notifications_enabled",
    "notification_email",
}
DATE_FIELDS = {"frequency", "weekly_day_of_week", "monthly_day_of_month"}


class ScheduleNotFound(Exception):
    pass


class InvalidScheduleConfig(ValueError):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _validate(updates: dict[str, Any]) -> dict[str, Any]:
    unknown = set(updates) - UPDATABLE_FIELDS
    if unknown:
        raise InvalidScheduleConfig(f"Unknown schedule fields: {', '.join(sorted(unknown))}")

    clean = dict(updates)
    if "frequency" in clean and clean["frequency"] not in FREQUENCIES:
        raise InvalidScheduleConfig(f"Invalid frequency: {clean['frequency']!r}")
    if "weekly_day_of_week" in clean and not 0 <= int(clean["weekly_day_of_week"]) <= 6:
        raise InvalidScheduleConfig("weekly_day_of_week must be between 0 (Sunday) and 6 (Saturday)")
    if "monthly_day_of_month" in clean:
        clean["monthly_day_of_month"] = clamp_month_day(clean["monthly_day_of_month"])
    for key in ("min_payout_threshold_cents", "max_hold_period_days"):
        if key in clean and int(clean[key]) < 0:
            raise InvalidScheduleConfig(f"{key} must be >= 0")
    return clean


class ScheduleManager:
    def __init__(self, store: PayoutStore, *, clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self.clock = clock

    def get(self, schedule_id: UUID) -> Schedule:
        schedule = self.store.get_schedule_by_id(schedule_id)
        if schedule is None:
            logger.error("payout schedule not found schedule_id=%s", schedule_id)
            raise ScheduleNotFound(f"Payout schedule not found: {schedule_id}")
        return schedule

    def get_or_create(self, business_id: UUID, processor_id: UUID, processor_type: str) -> Schedule:
        existing = self.store.get_schedule(business_id, processor_id)
        if existing is not None:
            return existing

        now = self.clock()
        draft = Schedule(
            id=uuid.uuid4(),
            business_id=business_id,
            processor_id=processor_id,
            processor_type=(processor_type or "").strip().upper(),
            created_at=now,
            frequency=settings.PAYOUT_DEFAULT_FREQUENCY,
            weekly_day_of_week=settings.PAYOUT_DEFAULT_WEEKLY_DAY,
            monthly_day_of_month=settings.PAYOUT_DEFAULT_MONTHLY_DAY,
            min_payout_threshold_cents=settings.PAYOUT_DEFAULT_THRESHOLD_CENTS,
            max_hold_period_days=settings.PAYOUT_DEFAULT_MAX_HOLD_DAYS,
            updated_at=now,
        )
        draft = replace(draft, next_payout_date=compute_next_payout_date(draft, now))
        schedule = self.store.create_schedule(draft)
        if schedule.id == draft.id:
            logger.info(
                "created payout schedule id=%s business=%s processor=%s next=%s",
                schedule.id,
                business_id,
                processor_id,
                schedule.next_payout_date,
            )
        return schedule

    def update_config(self, schedule_id: UUID, updates: dict[str, Any]) -> Schedule:
        schedule = self.get(schedule_id)
        clean = _validate(updates)

        updated = replace(schedule, **clean)
        next_date = None
        if any(k in DATE_FIELDS and getattr(schedule, k) != v for k, v in clean.items()):
            next_date = compute_next_payout_date(updated, self.clock())
        return self.store.save_schedule_config(updated, next_payout_date=next_date)

    def set_hold(self, schedule_id: UUID, hold: bool, reason: Optional[str] = None) -> Schedule:
        schedule = self.get(schedule_id)
        updated = replace(
            schedule,
            is_manually_held=hold,
            hold_reason=reason if hold else None,
            hold_started_at=(schedule.hold_started_at or self.clock()) if hold else None,
        )
        logger.info("payout schedule %s hold=%s reason=%s", schedule_id, hold, reason)
        return self.store.save_schedule_config(updated)
