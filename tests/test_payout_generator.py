from __future__ import annotations

import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import date, timedelta

import pytest

from app.payouts.generator import PayoutGenerator, is_eligible
from app.payouts.model import PENDING, PayoutItem
from app.payouts.store import ClaimConflict
from app.schedules.model import Schedule
from services import metrics
from services.ledger_invariants import LedgerInvariantError
from tests.conftest import BUSINESS_ID, T0, make_payment, seed_schedule


def test_generates_payout_when_threshold_met(service, store):
    s = seed_schedule(
        store,
        created_at=T0 - timedelta(days=3),
        current_balance_cents=60000,
        min_payout_threshold_cents=50000,
    )
    p = make_payment(store, amount=61000, fee=1000, created_at=T0 - timedelta(days=2))

    assert service.generate_scheduled_payouts() == 1

    payout = next(iter(store.payouts.values()))
    assert payout.status == PENDING
    assert payout.schedule_id == s.id
    assert payout.gross_amount_cents == 61000
    assert payout.processor_fee_cents == 1000
    assert payout.net_amount_cents == 60000
    assert payout.payment_ids == [p.id]
    assert payout.period_start == s.created_at
    assert payout.period_end == T0
    assert store.payments[p.id].settlement_details == {"payout_id": str(payout.id), "status": "pending"}
    assert metrics.get_counter("payouts_generated_total", {"processor": "MOCK"}) == 1


def test_max_hold_period_bypasses_threshold(service, store):
    # balance 30000 < threshold 50000, but 8 days since the schedule started
    s = seed_schedule(
        store,
        created_at=T0 - timedelta(days=8),
        current_balance_cents=30000,
        min_payout_threshold_cents=50000,
        max_hold_period_days=7,
    )
    make_payment(store, amount=30000, created_at=T0 - timedelta(days=8) + timedelta(hours=1))

    assert service.generate_scheduled_payouts() == 1

    after = store.schedules[s.id]
    assert after.current_balance_cents == 0
    assert after.last_payout_at == T0
    assert after.next_payout_date == date(2026, 10, 26)


def test_below_threshold_within_hold_period_is_skipped(service, store):
    s = seed_schedule(
        store,
        created_at=T0 - timedelta(days=5),
        current_balance_cents=30000,
        min_payout_threshold_cents=50000,
        max_hold_period_days=7,
    )
    p = make_payment(store, amount=30000, created_at=T0 - timedelta(days=4))

    assert service.generate_scheduled_payouts() == 0

    after = store.schedules[s.id]
    assert after.current_balance_cents == 30000
    assert after.last_payout_at is None
    assert store.payments[p.id].settlement_details is None
    assert store.payouts == {}
    assert metrics.get_counter("payouts_skipped_total", {"reason": "below_threshold"}) == 1


def test_is_eligible_boundaries():
    base = Schedule(
        id=uuid.uuid4(),
        business_id=BUSINESS_ID,
        processor_id=uuid.uuid4(),
        processor_type="MOCK",
        created_at=T0 - timedelta(days=7),
        min_payout_threshold_cents=500,
        max_hold_period_days=7,
    )
    assert is_eligible(replace(base, current_balance_cents=500), T0 - timedelta(days=1))
    assert not is_eligible(replace(base, current_balance_cents=499), T0 - timedelta(days=1))
    assert is_eligible(replace(base, current_balance_cents=0), T0)


def test_balance_reset_only_for_generated_schedules(service, store):
    other_business = uuid.uuid4()
    paid = seed_schedule(store, created_at=T0 - timedelta(days=1), current_balance_cents=70000)
    held = seed_schedule(
        store,
        business_id=other_business,
        created_at=T0 - timedelta(days=1),
        current_balance_cents=100,
    )
    make_payment(store, amount=70000, created_at=T0 - timedelta(hours=3))
    make_payment(store, amount=100, created_at=T0 - timedelta(hours=3), business_id=other_business)

    assert service.generate_scheduled_payouts() == 1

    assert store.schedules[paid.id].current_balance_cents == 0
    assert store.schedules[held.id].current_balance_cents == 100


def test_fee_breakdown_for_pro_tier(service, store):
    store.set_subscription_tier(BUSINESS_ID, "pro")
    seed_schedule(
        store,
        created_at=T0 - timedelta(days=20),
        last_payout_at=T0 - timedelta(days=1),
        current_balance_cents=98000,
    )
    make_payment(store, amount=100000, fee=2000, created_at=T0 - timedelta(hours=2))

    assert service.generate_scheduled_payouts() == 1

    payout = next(iter(store.payouts.values()))
    assert payout.gross_amount_cents == 100000
    assert payout.processor_fee_cents == 2000
    assert payout.subscription_fee_cents == 663
    assert payout.volume_discount_cents == 0
    assert payout.net_amount_cents == 97337
    assert payout.period_start == T0 - timedelta(days=1)


def test_items_add_up_to_net(service, store):
    store.set_subscription_tier(BUSINESS_ID, "business")
    seed_schedule(store, created_at=T0 - timedelta(days=3), min_payout_threshold_cents=0)
    for amount, fee in ((3333, 97), (3333, 97), (3334, 98), (7, 1)):
        make_payment(store, amount=amount, fee=fee, created_at=T0 - timedelta(days=1))

    assert service.generate_scheduled_payouts() == 1

    payout = next(iter(store.payouts.values()))
    assert payout.payment_count == 4
    assert sum(i.net_contribution_cents for i in payout.items) == payout.net_amount_cents
    assert sum(i.amount_cents for i in payout.items) == payout.gross_amount_cents
    assert payout.net_amount_cents == (
        payout.gross_amount_cents
        - payout.processor_fee_cents
        - payout.subscription_fee_cents
        + payout.volume_discount_cents
    )


def test_volume_discount_applies_from_the_crossing_payout(service, store, clock):
    s = seed_schedule(
        store,
        frequency="daily",
        created_at=T0 - timedelta(days=1),
        min_payout_threshold_cents=0,
    )
    make_payment(store, amount=9_999_999, created_at=T0 - timedelta(hours=1))
    assert service.generate_scheduled_payouts() == 1
    first = next(iter(store.payouts.values()))
    assert first.volume_discount_cents == 0
    assert store.schedules[s.id].current_month_gmv_cents == 9_999_999

    clock.advance(days=1)
    make_payment(store, amount=100_000, created_at=clock() - timedelta(hours=1))
    assert service.generate_scheduled_payouts() == 1

    second = next(p for p in store.payouts.values() if p.id != first.id)
    assert second.volume_discount_cents == 500
    assert second.net_amount_cents == 100_500
    assert store.payouts[first.id].volume_discount_cents == 0
    assert store.schedules[s.id].volume_discount_eligible is True


def test_eligible_without_payments_generates_nothing(service, store):
    s = seed_schedule(store, created_at=T0 - timedelta(days=10), current_balance_cents=0)

    assert service.generate_scheduled_payouts() == 0
    assert store.schedules[s.id].next_payout_date == s.next_payout_date
    assert metrics.get_counter("payouts_skipped_total", {"reason": "no_payments"}) == 1


def test_second_run_does_not_pay_out_twice(service, store):
    seed_schedule(store, created_at=T0 - timedelta(days=1), min_payout_threshold_cents=0)
    make_payment(store, amount=5000, created_at=T0 - timedelta(hours=1))

    assert service.generate_scheduled_payouts() == 1
    assert service.generate_scheduled_payouts() == 0
    assert len(store.payouts) == 1


def test_concurrent_generators_claim_once(store, service, clock):
    s = seed_schedule(store, created_at=T0 - timedelta(days=1), min_payout_threshold_cents=0)
    payments = [make_payment(store, amount=1000, created_at=T0 - timedelta(hours=1)) for _ in range(5)]
    snapshot = store.schedules[s.id]

    generators = [PayoutGenerator(store, service.ledger, clock=clock) for _ in range(2)]
    barrier = threading.Barrier(2)

    def run(gen):
        barrier.wait()
        try:
            return gen.generate_for_schedule(snapshot, T0)
        except ClaimConflict as exc:
            return exc

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(run, generators))

    winners = [r for r in results if not isinstance(r, ClaimConflict)]
    losers = [r for r in results if isinstance(r, ClaimConflict)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert len(store.payouts) == 1
    for p in payments:
        assert store.payments[p.id].settlement_details["payout_id"] == str(winners[0].id)


def test_failed_claim_leaves_balance_and_payments_untouched(service, store):
    s = seed_schedule(
        store,
        created_at=T0 - timedelta(days=1),
        min_payout_threshold_cents=0,
        current_balance_cents=3000,
    )
    a = make_payment(store, amount=1000, created_at=T0 - timedelta(hours=2))
    b = make_payment(store, amount=2000, created_at=T0 - timedelta(hours=1))

    claim = service.generator.build_claim(store.schedules[s.id], [a, b], T0)
    # Someone else grabbed payment b in the meantime
    store.payments[b.id] = replace(b, settlement_details={"payout_id": "other", "status": "pending"})

    with pytest.raises(ClaimConflict):
        store.claim_payout(claim)

    assert store.schedules[s.id].current_balance_cents == 3000
    assert store.schedules[s.id].last_payout_at is None
    assert store.payments[a.id].settlement_details is None
    assert store.payouts == {}


def test_ledger_mismatch_aborts_generation(service, store, monkeypatch):
    s = seed_schedule(
        store,
        created_at=T0 - timedelta(days=1),
        min_payout_threshold_cents=0,
        current_balance_cents=1000,
    )
    make_payment(store, amount=1000, created_at=T0 - timedelta(hours=1))

    def bad_items(payments, sub_fee, discount):
        return tuple(
            PayoutItem(p.id, p.amount_cents, p.processor_fee_cents, p.net_amount_cents + 1) for p in payments
        )

    monkeypatch.setattr("app.payouts.generator.build_items", bad_items)

    with pytest.raises(LedgerInvariantError):
        service.generate_scheduled_payouts()

    assert store.payouts == {}
    assert store.schedules[s.id].current_balance_cents == 1000


def test_one_broken_schedule_does_not_stop_the_run(service, store, monkeypatch):
    other_business = uuid.uuid4()
    seed_schedule(store, created_at=T0 - timedelta(days=1), min_payout_threshold_cents=0)
    seed_schedule(store, business_id=other_business, created_at=T0 - timedelta(days=1), min_payout_threshold_cents=0)
    make_payment(store, amount=1000, created_at=T0 - timedelta(hours=1))
    make_payment(store, amount=1000, created_at=T0 - timedelta(hours=1), business_id=other_business)

    real_tier = store.get_subscription_tier

    def flaky_tier(business_id):
        if business_id == other_business:
            raise RuntimeError("subscriptions table unavailable")
        return real_tier(business_id)

    monkeypatch.setattr(store, "get_subscription_tier", flaky_tier)

    assert service.generate_scheduled_payouts() == 1
    assert [p.business_id for p in store.payouts.values()] == [BUSINESS_ID]


def test_late_daily_tick_is_charged_one_day(service, store):
    store.set_subscription_tier(BUSINESS_ID, "pro")
    seed_schedule(
        store,
        created_at=T0 - timedelta(days=20),
        frequency="daily",
        last_payout_at=T0 - timedelta(days=1, seconds=30),
        current_balance_cents=98000,
    )
    make_payment(store, amount=100000, fee=2000, created_at=T0 - timedelta(hours=2))

    assert service.generate_scheduled_payouts() == 1

    payout = next(iter(store.payouts.values()))
    assert payout.subscription_fee_cents == 663
    assert payout.net_amount_cents == 97337


def test_fees_above_earnings_generate_nothing(service, store):
    store.set_subscription_tier(BUSINESS_ID, "pro")
    s = seed_schedule(
        store,
        created_at=T0 - timedelta(days=20),
        last_payout_at=T0 - timedelta(days=8),
        current_balance_cents=100,
        min_payout_threshold_cents=50000,
        max_hold_period_days=7,
    )
    p = make_payment(store, amount=100, created_at=T0 - timedelta(days=2))

    assert service.generate_scheduled_payouts() == 0

    assert store.payouts == {}
    assert store.payments[p.id].settlement_details is None
    assert store.schedules[s.id] == s
    assert metrics.get_counter("payouts_skipped_total", {"reason": "negative_net"}) == 1
