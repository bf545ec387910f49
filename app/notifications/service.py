# app/notifications/service.py
from __future__ import annotations

import logging
from typing import Protocol
from uuid import UUID

logger = logging.getLogger("payouts.notifications")


class NotificationService(Protocol):
    def send_payout_notice(self, business_id: UUID, amount_cents: int) -> None: ...


class LoggingNotificationService:
    """Default notifier: the real email/WhatsApp senders live outside this service."""

    def send_payout_notice(self, business_id: UUID, amount_cents: int) -> None:
        logger.info("payout notice business=%s amount_cents=%s", business_id, amount_cents)


def notify_best_effort(notifier: NotificationService, business_id: UUID, amount_cents: int) -> bool:
    try:
        notifier.send_payout_notice(business_id, amount_cents)
    except Exception as exc:
        logger.warning("payout notice failed business=%s err=%s", business_id, exc)
        return False
    return True
