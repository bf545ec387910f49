# app/schedules/calendar.py
"""
Pure payout-date arithmetic. Every function takes `now` explicitly.

Day-of-week values follow the schedule table: 0=Sunday .. 6=Saturday.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta

from app.schedules.model import Schedule

MAX_MONTHLY_DAY = 28
SATURDAY = 6
SUNDAY = 0


def day_of_week(d: date) -> int:
    # isoweekday: Monday=1 .. Sunday=7
    return d.isoweekday() % 7


def clamp_month_day(day: int | None) -> int:
    return max(1, min(int(day or 1), MAX_MONTHLY_DAY))


def _next_business_day(today: date) -> date:
    d = today + timedelta(days=1)
    while day_of_week(d) in (SATURDAY, SUNDAY):
        d += timedelta(days=1)
    return d


def _next_weekday(today: date, target: int) -> date:
    days_until = (target - day_of_week(today) + 7) % 7 or 7
    return today + timedelta(days=days_until)


def _next_month_day(today: date, configured_day: int | None) -> date:
    year, month = today.year, today.month + 1
    if month > 12:
        year, month = year + 1, 1
    return date(year, month, clamp_month_day(configured_day))


def compute_next_payout_date(schedule: Schedule, now: datetime) -> date:
    today = now.date()

    if schedule.frequency == "daily":
        return _next_business_day(today)

    if schedule.frequency == "weekly":
        target = schedule.weekly_day_of_week
        if target is None:
            target = 1
        return _next_weekday(today, int(target))

    if schedule.frequency == "monthly":
        return _next_month_day(today, schedule.monthly_day_of_month)

    raise ValueError(f"Unknown payout frequency: {schedule.frequency!r}")


def days_since_last_payout(schedule: Schedule, now: datetime) -> int:
    last = schedule.last_payout_at or schedule.created_at
    return max(0, (now - last).days)


def is_due(schedule: Schedule, now: datetime) -> bool:
    return schedule.next_payout_date is not None and schedule.next_payout_date <= now.date()


def month_key(now: datetime) -> str:
    return now.strftime("%Y-%m")
