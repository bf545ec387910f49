from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from app.payouts.store import PayoutStore
from services.ledger_invariants import check_payout_balance
from settings import settings


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def run_reconcile(
    store: PayoutStore,
    *,
    stale_minutes: Optional[int] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Report payouts that need an operator.

    - stale_processing: stuck in processing (unknown settlement outcome or a
      worker that died mid-transfer); resolve with PayoutExecutor.resolve_unknown.
    - completed_unsettled: completed payouts whose payments are not marked settled.
    - ledger_mismatch: payouts whose items do not add up to net.
    """
    run_at = now or _utcnow()
    minutes = settings.RECONCILE_STALE_MINUTES if stale_minutes is None else stale_minutes
    stale_after = run_at - timedelta(minutes=minutes)

    items: list[dict[str, Any]] = []
    summary = {
        "stale_processing": 0,
        "completed_unsettled": 0,
        "ledger_mismatch": 0,
        "payouts_checked": 0,
    }

    stale = store.list_stale_processing(stale_after)
    for payout in stale:
        summary["stale_processing"] += 1
        items.append(
            {
                "category": "stale_processing",
                "payout_id": str(payout.id),
                "business_id": str(payout.business_id),
                "processor_type": payout.processor_type,
                "net_amount_cents": payout.net_amount_cents,
                "last_error": payout.last_error,
            }
        )

    unsettled = store.list_unsettled_completed()
    for payout, payment_ids in unsettled:
        summary["completed_unsettled"] += 1
        items.append(
            {
                "category": "completed_unsettled",
                "payout_id": str(payout.id),
                "payment_ids": [str(i) for i in payment_ids],
            }
        )

    checked = {p.id: p for p in stale}
    checked.update({p.id: p for p, _ in unsettled})
    summary["payouts_checked"] = len(checked)
    for payout in checked.values():
        result = check_payout_balance(payout)
        if not result["ok"]:
            summary["ledger_mismatch"] += 1
            items.append(
                {
                    "category": "ledger_mismatch",
                    "payout_id": str(payout.id),
                    "net_amount_cents": result["net_amount_cents"],
                    "items_net_cents": result["items_net_cents"],
                    "diff_cents": result["diff_cents"],
                }
            )

    return {"run_at": run_at.isoformat(), "summary": summary, "items": items}
