# tests/conftest.py

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from app.payments.model import Payment
from app.payouts.memory import InMemoryPayoutStore
from app.payouts.service import PayoutService
from app.providers.factory import ProviderRegistry
from app.providers.mock import MockSettlementProvider
from app.schedules.model import Schedule
from services import metrics


# 2026-10-19 is a Monday
T0 = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)

BUSINESS_ID = uuid.UUID("00000000-0000-0000-0000-00000000b001")
PROCESSOR_ID = uuid.UUID("00000000-0000-0000-0000-00000000c001")


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple[uuid.UUID, int]] = []

    def send_payout_notice(self, business_id, amount_cents):
        if self.fail:
            raise ConnectionError("smtp down")
        self.sent.append((business_id, amount_cents))


# ---------------------------
# Engine fixtures
# ---------------------------

@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset_counters()
    yield
    metrics.reset_counters()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(T0)


@pytest.fixture()
def store(clock: FakeClock) -> InMemoryPayoutStore:
    return InMemoryPayoutStore(clock=clock)


@pytest.fixture()
def provider() -> MockSettlementProvider:
    return MockSettlementProvider()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def service(store, provider, notifier, clock) -> PayoutService:
    return PayoutService(
        store,
        ProviderRegistry({"MOCK": provider}),
        notifier=notifier,
        clock=clock,
        max_retry_count=3,
        retry_delay=timedelta(days=1),
        unknown_policy="reconcile",
    )


def make_payment(
    store: InMemoryPayoutStore,
    *,
    amount: int,
    fee: int = 0,
    created_at: datetime,
    business_id: uuid.UUID = BUSINESS_ID,
    processor_id: uuid.UUID = PROCESSOR_ID,
    processor_type: str = "MOCK",
    status: str = "succeeded",
) -> Payment:
    return store.add_payment(
        Payment(
            id=uuid.uuid4(),
            business_id=business_id,
            processor_id=processor_id,
            processor_type=processor_type,
            status=status,
            amount_cents=amount,
            processor_fee_cents=fee,
            net_amount_cents=amount - fee,
            created_at=created_at,
        )
    )


def seed_schedule(
    store: InMemoryPayoutStore,
    *,
    created_at: datetime,
    business_id: uuid.UUID = BUSINESS_ID,
    processor_id: uuid.UUID = PROCESSOR_ID,
    processor_type: str = "MOCK",
    **fields,
) -> Schedule:
    """Insert a schedule with explicit state, bypassing lazy creation."""
    fields.setdefault("next_payout_date", created_at.date())
    return store.create_schedule(
        Schedule(
            id=uuid.uuid4(),
            business_id=business_id,
            processor_id=processor_id,
            processor_type=processor_type,
            created_at=created_at,
            **fields,
        )
    )


def due_payout(service: PayoutService, store: InMemoryPayoutStore, *, amount: int, fee: int = 0,
               created_at: Optional[datetime] = None, **schedule_fields):
    """Seed a schedule that is due now with one payment and generate its payout."""
    now = service.clock()
    schedule_fields.setdefault("min_payout_threshold_cents", 0)
    seed_schedule(store, created_at=now - timedelta(days=1), **schedule_fields)
    make_payment(store, amount=amount, fee=fee, created_at=created_at or now - timedelta(hours=1))
    assert service.generate_scheduled_payouts() == 1
    return next(iter(store.payouts.values()))


# ---------------------------
# API client
# ---------------------------

@pytest.fixture()
def client(service: PayoutService):
    from main import app
    from deps.payouts import get_payout_service

    app.dependency_overrides[get_payout_service] = lambda: service
    # Needed so tests can assert 500s instead of pytest re-raising server exceptions
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
