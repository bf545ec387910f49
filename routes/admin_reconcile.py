from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from app.payouts.service import PayoutService
from deps.payouts import get_payout_service
from services.reconcile import run_reconcile


router = APIRouter(prefix="/v1/admin/reconcile", tags=["admin-reconcile"])


@router.post("/run")
def run_reconcile_report(
    stale_minutes: Optional[int] = None,
    service: PayoutService = Depends(get_payout_service),
):
    if stale_minutes is not None:
        stale_minutes = max(0, stale_minutes)
    return run_reconcile(service.store, stale_minutes=stale_minutes, now=service.clock())
