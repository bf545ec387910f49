from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from app.fees.calculator import (
    allocate,
    period_days,
    subscription_fee,
    volume_discount,
)
from app.schedules.model import Schedule


NOW = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


def _schedule(**kw) -> Schedule:
    return Schedule(
        id=uuid.uuid4(),
        business_id=uuid.uuid4(),
        processor_id=uuid.uuid4(),
        processor_type="MOCK",
        created_at=NOW - timedelta(days=30),
        **kw,
    )


def test_pro_tier_one_day_is_663():
    # 19900 * 1 / 30 = 663.33
    assert subscription_fee("pro", 1) == 663


def test_subscription_fee_rounds_half_up():
    # 49900 * 3 / 30 = 4990 exactly; 19900 * 3 / 30 = 1990
    assert subscription_fee("business", 3) == 4990
    # 19900 * 2 / 30 = 1326.67
    assert subscription_fee("pro", 2) == 1327


@pytest.mark.parametrize("tier", ["free", None, "unknown-tier"])
def test_free_or_unknown_tier_costs_nothing(tier):
    assert subscription_fee(tier, 30) == 0


def test_tier_lookup_is_case_insensitive():
    assert subscription_fee(" PRO ", 30) == 19900


def test_period_days_counts_calendar_days():
    assert period_days(NOW - timedelta(days=1), NOW) == 1
    assert period_days(NOW - timedelta(days=7), NOW) == 7
    assert period_days(NOW - timedelta(hours=2), NOW) == 1
    assert period_days(NOW, NOW) == 0


def test_period_days_ignores_tick_jitter():
    # a daily tick that fires a little late is still one day
    assert period_days(NOW - timedelta(days=1, seconds=30), NOW) == 1
    assert period_days(NOW - timedelta(days=1), NOW + timedelta(minutes=5)) == 1
    assert subscription_fee("pro", period_days(NOW - timedelta(days=1, seconds=30), NOW)) == 663


def test_fee_example_net():
    gross, processor_fee = 100000, 2000
    sub = subscription_fee("pro", period_days(NOW - timedelta(days=1), NOW))
    discount = volume_discount(_schedule(), gross, NOW).discount_cents
    assert gross - processor_fee - sub + discount == 97337


def test_discount_starts_with_the_payout_that_crosses_the_threshold():
    before = _schedule(gmv_month="2026-10", current_month_gmv_cents=9_999_999)
    result = volume_discount(before, 100_000, NOW)

    assert result.discount_cents == 500
    assert result.eligible is True
    assert result.current_month_gmv_cents == 10_099_999
    assert result.gmv_month == "2026-10"


def test_no_discount_below_threshold():
    result = volume_discount(_schedule(gmv_month="2026-10", current_month_gmv_cents=1_000), 100_000, NOW)
    assert result.discount_cents == 0
    assert result.eligible is False
    assert result.current_month_gmv_cents == 101_000


def test_discount_applies_to_every_payout_once_eligible():
    s = _schedule(gmv_month="2026-10", current_month_gmv_cents=12_000_000, volume_discount_eligible=True)
    assert volume_discount(s, 201, NOW).discount_cents == 1  # 1.005 -> 1


def test_month_rollover_resets_gmv_and_eligibility():
    s = _schedule(gmv_month="2026-09", current_month_gmv_cents=20_000_000, volume_discount_eligible=True)
    result = volume_discount(s, 100, NOW)
    assert result.discount_cents == 0
    assert result.eligible is False
    assert result.gmv_month == "2026-10"
    assert result.current_month_gmv_cents == 100


def test_allocate_sums_to_total():
    shares = allocate(663, [100000, 50000, 1])
    assert sum(shares) == 663
    assert shares[0] > shares[1] > shares[2]


def test_allocate_gives_leftover_to_largest_remainders():
    assert allocate(10, [1, 1, 1]) == [4, 3, 3]
    assert allocate(2, [1, 1, 1]) == [1, 1, 0]


def test_allocate_edge_cases():
    assert allocate(0, [5, 5]) == [0, 0]
    assert allocate(7, []) == []
    assert allocate(7, [0, 0]) == [7, 0]
    assert allocate(-5, [1, 1]) == [-3, -2]
