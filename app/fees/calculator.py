# app/fees/calculator.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

from app.schedules.calendar import month_key
from app.schedules.model import Schedule
from settings import settings

# Monthly subscription fee per tier, minor units
MONTHLY_SUBSCRIPTION_FEES: dict[str, int] = {
    "free": 0,
    "pro": 19900,
    "business": 49900,
}

PRORATION_BASE_DAYS = 30


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def period_days(start: datetime, end: datetime) -> int:
    """Calendar days between the two instants; any non-empty period counts at least one day."""
    if end <= start:
        return 0
    return max(1, (end.date() - start.date()).days)


def subscription_fee(tier: str | None, days: int) -> int:
    monthly_fee = MONTHLY_SUBSCRIPTION_FEES.get((tier or "free").strip().lower(), 0)
    if monthly_fee == 0 or days <= 0:
        return 0
    return round_half_up(Decimal(monthly_fee) * Decimal(days) / Decimal(PRORATION_BASE_DAYS))


@dataclass(frozen=True)
class VolumeDiscount:
    discount_cents: int
    gmv_month: str
    current_month_gmv_cents: int
    eligible: bool


def volume_discount(schedule: Schedule, period_gross: int, now: datetime) -> VolumeDiscount:
    """
    Add this payout's gross to the calendar-month GMV bucket and price the discount.

    The threshold is checked against the bucket *after* this payout is added, so
    the payout that crosses it already earns the discount; earlier payouts in the
    month are never revisited. Returns the new bucket state for the claim to persist.
    """
    month = month_key(now)
    if schedule.gmv_month != month:
        gmv, eligible = 0, False
    else:
        gmv, eligible = schedule.current_month_gmv_cents, schedule.volume_discount_eligible

    gmv += int(period_gross)
    if gmv >= settings.VOLUME_DISCOUNT_THRESHOLD_CENTS:
        eligible = True

    discount = 0
    if eligible:
        discount = round_half_up(Decimal(period_gross) * Decimal(settings.VOLUME_DISCOUNT_BPS) / Decimal(10000))

    return VolumeDiscount(
        discount_cents=discount,
        gmv_month=month,
        current_month_gmv_cents=gmv,
        eligible=eligible,
    )


def allocate(total: int, weights: Sequence[int]) -> list[int]:
    """
    Split `total` across `weights` proportionally, in whole minor units.

    Largest-remainder method: floor every share, then hand the leftover units to
    the largest fractional remainders (earliest index wins ties). The result
    always sums to `total` exactly.
    """
    if not weights:
        return []
    weight_sum = sum(weights)
    if weight_sum <= 0:
        shares = [0] * len(weights)
        shares[0] = total
        return shares

    sign = -1 if total < 0 else 1
    magnitude = abs(total)
    shares = []
    remainders = []
    for idx, w in enumerate(weights):
        q, r = divmod(magnitude * w, weight_sum)
        shares.append(q)
        remainders.append((-r, idx))

    leftover = magnitude - sum(shares)
    for _, idx in sorted(remainders)[:leftover]:
        shares[idx] += 1
    return [sign * s for s in shares]
