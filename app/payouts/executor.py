# app/payouts/executor.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from uuid import UUID

from app.notifications.service import LoggingNotificationService, NotificationService, notify_best_effort
from app.payouts.model import COMPLETED, FAILED, PENDING, PROCESSING, Payout
from app.payouts.state_machine import (
    InvalidTransition,
    assert_completed_invariant,
    assert_transition,
    can_retry,
)
from app.payouts.store import PayoutStore
from app.providers.base import Destination, SettlementResult, SettlementTimeout
from app.providers.factory import ProviderNotConfigured, ProviderRegistry
from services import metrics
from settings import settings

logger = logging.getLogger("payouts.executor")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PayoutExecutor:
    """
    Drives payouts through pending -> processing -> completed / failed.

    Failed attempts are never retried inline: they go back to pending with a
    next_retry_date and the next tick picks them up.
    """

    def __init__(
        self,
        store: PayoutStore,
        providers: ProviderRegistry,
        *,
        notifier: Optional[NotificationService] = None,
        clock: Callable[[], datetime] = _utcnow,
        max_retry_count: Optional[int] = None,
        retry_delay: Optional[timedelta] = None,
        unknown_policy: Optional[str] = None,
    ):
        self.store = store
        self.providers = providers
        self.notifier = notifier or LoggingNotificationService()
        self.clock = clock
        self.max_retry_count = max_retry_count if max_retry_count is not None else settings.PAYOUT_MAX_RETRY_COUNT
        self.retry_delay = retry_delay if retry_delay is not None else timedelta(days=settings.PAYOUT_RETRY_DELAY_DAYS)
        self.unknown_policy = unknown_policy or settings.SETTLEMENT_UNKNOWN_POLICY

    # ---------------- tick entry point ----------------

    def process_pending_payouts(self, *, batch_size: Optional[int] = None) -> int:
        now = self.clock()
        claimed = self.store.claim_executable_payouts(now, limit=batch_size or settings.WORKER_BATCH_SIZE)
        logger.info("found %s pending payouts to process", len(claimed))

        processed = 0
        for payout in claimed:
            try:
                self._settle(payout)
            except Exception:
                # Left in processing; the reconcile report lists it as stale.
                logger.exception("failed to settle payout %s", payout.id)
                continue
            processed += 1

        logger.info("processed %s payouts", processed)
        return processed

    def process(self, payout: Payout) -> Optional[Payout]:
        """Process a single pending payout. Returns None if another worker owns it."""
        assert_transition(payout.status, PROCESSING)
        if not self.store.update_payout_status(
            payout.id,
            from_status=PENDING,
            new_status=PROCESSING,
            retry_count=payout.retry_count,
            next_retry_date=payout.next_retry_date,
            last_error=payout.last_error,
        ):
            logger.info("payout %s already taken by another worker", payout.id)
            return None
        return self._settle(self.store.get_payout(payout.id))

    # ---------------- settlement ----------------

    def _settle(self, payout: Payout) -> Payout:
        try:
            provider = self.providers.get(payout.processor_type)
        except ProviderNotConfigured as exc:
            return self._fail_configuration(payout, str(exc))

        destination = Destination(business_id=payout.business_id, processor_id=payout.processor_id)
        try:
            result = provider.transfer(payout.id, payout.net_amount_cents, destination)
        except SettlementTimeout as exc:
            result = SettlementResult(status="UNKNOWN", error=f"Settlement timeout: {exc}")
        except Exception as exc:
            result = SettlementResult(status="FAILURE", error=f"{type(exc).__name__}: {exc}")

        metrics.increment_settlement_attempt(payout.processor_type, result.status.lower())

        if result.ok:
            return self._complete(payout, result.reference or str(payout.id))

        if result.unknown and self.unknown_policy == "reconcile":
            return self._hold_for_reconciliation(payout, result.error or "Settlement outcome unknown")

        return self._handle_failure(payout, result.error or "Settlement failed")

    def _complete(self, payout: Payout, reference: str) -> Payout:
        assert_transition(PROCESSING, COMPLETED)
        assert_completed_invariant(COMPLETED, reference)

        now = self.clock()
        if not self.store.complete_payout(payout.id, external_reference=reference, completed_at=now):
            raise InvalidTransition(f"Payout {payout.id} left processing during settlement")

        metrics.add_payout_completed_amount(payout.processor_type, payout.net_amount_cents)
        logger.info("payout %s completed reference=%s net=%s", payout.id, reference, payout.net_amount_cents)

        schedule = self.store.get_schedule_by_id(payout.schedule_id)
        if schedule is None or schedule.notifications_enabled:
            notify_best_effort(self.notifier, payout.business_id, payout.net_amount_cents)

        return self.store.get_payout(payout.id)

    def _handle_failure(self, payout: Payout, reason: str) -> Payout:
        assert_transition(PROCESSING, FAILED)
        now = self.clock()
        retry_count = payout.retry_count + 1

        if can_retry(retry_count, self.max_retry_count):
            assert_transition(FAILED, PENDING)
            next_retry = now + self.retry_delay
            self.store.update_payout_status(
                payout.id,
                from_status=PROCESSING,
                new_status=PENDING,
                retry_count=retry_count,
                next_retry_date=next_retry,
                last_error=reason,
                failed_at=now,
            )
            logger.warning(
                "payout %s failed, retry %s/%s scheduled for %s: %s",
                payout.id,
                retry_count,
                self.max_retry_count,
                next_retry.isoformat(),
                reason,
            )
        else:
            self.store.update_payout_status(
                payout.id,
                from_status=PROCESSING,
                new_status=FAILED,
                retry_count=retry_count,
                next_retry_date=None,
                last_error=reason,
                failed_at=now,
            )
            logger.error(
                "payout %s failed after %s attempts, manual reconciliation required: %s",
                payout.id,
                retry_count,
                reason,
            )
        return self.store.get_payout(payout.id)

    def _hold_for_reconciliation(self, payout: Payout, reason: str) -> Payout:
        # Stays in processing; retry_count untouched. Only resolve_unknown() moves it.
        assert_transition(PROCESSING, PROCESSING)
        self.store.update_payout_status(
            payout.id,
            from_status=PROCESSING,
            new_status=PROCESSING,
            retry_count=payout.retry_count,
            next_retry_date=None,
            last_error=reason,
        )
        logger.error("payout %s settlement outcome unknown, awaiting reconciliation: %s", payout.id, reason)
        return self.store.get_payout(payout.id)

    def _fail_configuration(self, payout: Payout, reason: str) -> Payout:
        logger.error("payout %s cannot be settled (configuration): %s", payout.id, reason)
        self.store.update_payout_status(
            payout.id,
            from_status=PROCESSING,
            new_status=FAILED,
            retry_count=payout.retry_count,
            next_retry_date=None,
            last_error=reason,
            failed_at=self.clock(),
        )
        return self.store.get_payout(payout.id)

    # ---------------- operator actions ----------------

    def resolve_unknown(self, payout_id: UUID, *, succeeded: bool, reference: Optional[str] = None) -> Payout:
        payout = self._require(payout_id)
        if payout.status != PROCESSING:
            raise InvalidTransition(f"Payout {payout_id} is {payout.status}, not processing")
        if succeeded:
            return self._complete(payout, reference or str(payout.id))
        return self._handle_failure(payout, payout.last_error or "Settlement not executed by provider")

    def requeue_failed(self, payout_id: UUID) -> Payout:
        payout = self._require(payout_id)
        assert_transition(payout.status, PENDING)
        if payout.status != FAILED or not self.store.update_payout_status(
            payout_id,
            from_status=FAILED,
            new_status=PENDING,
            retry_count=payout.retry_count,
            next_retry_date=self.clock(),
            last_error=payout.last_error,
        ):
            raise InvalidTransition(f"Payout {payout_id} could not be requeued from {payout.status}")
        logger.info("payout %s manually requeued", payout_id)
        return self.store.get_payout(payout_id)

    def _require(self, payout_id: UUID) -> Payout:
        payout = self.store.get_payout(payout_id)
        if payout is None:
            raise LookupError(f"Payout not found: {payout_id}")
        return payout
