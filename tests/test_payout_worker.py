from __future__ import annotations

from datetime import timedelta

import pytest

from app.payouts.model import COMPLETED
from app.workers import payout_worker
from settings import settings
from tests.conftest import T0, make_payment, seed_schedule


def test_process_once_runs_a_full_tick(service, store):
    seed_schedule(store, created_at=T0 - timedelta(days=1), min_payout_threshold_cents=0)
    make_payment(store, amount=1500, created_at=T0 - timedelta(hours=1))

    result = payout_worker.process_once(service)

    assert result == {"generated": 1, "processed": 1}
    assert [p.status for p in store.payouts.values()] == [COMPLETED]


def test_run_forever_stops_after_max_ticks(service, monkeypatch):
    sleeps = []
    monkeypatch.setattr(payout_worker.time, "sleep", lambda s: sleeps.append(s))

    ticks = payout_worker.run_forever(service, poll_seconds=5, max_ticks=3)

    assert ticks == 3
    # no sleep after the last tick
    assert sleeps == [5, 5]


def test_run_forever_validates_providers_first(service, provider, monkeypatch):
    monkeypatch.setattr(settings, "SETTLEMENT_STRICT_STARTUP_VALIDATION", True)
    provider.credentials_ok = False

    called = []
    monkeypatch.setattr(payout_worker, "process_once", lambda svc: called.append(svc))

    with pytest.raises(RuntimeError):
        payout_worker.run_forever(service, poll_seconds=0, max_ticks=1)
    assert called == []
