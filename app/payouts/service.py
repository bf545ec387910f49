# app/payouts/service.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import UUID

from app.ledger.balance import BalanceLedger
from app.notifications.service import NotificationService
from app.payments.model import Payment
from app.payouts.executor import PayoutExecutor
from app.payouts.generator import PayoutGenerator
from app.payouts.model import Payout
from app.payouts.store import PayoutStore
from app.providers.factory import ProviderRegistry, registry_from_mapping
from app.schedules.manager import ScheduleManager
from app.schedules.model import Schedule
from settings import enabled_providers


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PayoutService:
    """
    The payout engine with its collaborators injected.

    Owns no global state: tests build it over InMemoryPayoutStore, the worker
    and the API over PostgresPayoutStore.
    """

    def __init__(
        self,
        store: PayoutStore,
        providers: ProviderRegistry,
        *,
        notifier: Optional[NotificationService] = None,
        clock: Callable[[], datetime] = _utcnow,
        **executor_options: Any,
    ):
        self.store = store
        self.clock = clock
        self.schedules = ScheduleManager(store, clock=clock)
        self.ledger = BalanceLedger(store, self.schedules)
        self.generator = PayoutGenerator(store, self.ledger, clock=clock)
        self.executor = PayoutExecutor(store, providers, notifier=notifier, clock=clock, **executor_options)

    # inbound event
    def on_payment_succeeded(self, payment: Payment) -> Optional[Schedule]:
        return self.ledger.on_payment_succeeded(payment)

    # periodic tick
    def tick(self) -> dict[str, int]:
        generated = self.generator.generate_scheduled_payouts()
        processed = self.executor.process_pending_payouts()
        return {"generated": generated, "processed": processed}

    def generate_scheduled_payouts(self) -> int:
        return self.generator.generate_scheduled_payouts()

    def process_pending_payouts(self) -> int:
        return self.executor.process_pending_payouts()

    # reads
    def get_payout(self, payout_id: UUID) -> Optional[Payout]:
        return self.store.get_payout(payout_id)

    def get_payout_history(
        self,
        business_id: UUID,
        *,
        processor_id: Optional[UUID] = None,
        status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Payout], int]:
        return self.store.list_payouts(
            business_id,
            processor_id=processor_id,
            status=status,
            start=start,
            end=end,
            limit=limit,
            offset=offset,
        )


def build_default_service() -> PayoutService:
    from app.payouts.repository import PostgresPayoutStore

    return PayoutService(PostgresPayoutStore(), registry_from_mapping(enabled_providers()))
