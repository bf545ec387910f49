# routes/payouts.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from app.payouts.service import PayoutService
from app.payouts.state_machine import InvalidTransition
from app.schedules.manager import InvalidScheduleConfig, ScheduleNotFound
from deps.payouts import get_payout_service
from schemas import (
    HoldRequest,
    PayoutListResponse,
    PayoutOut,
    PayoutStatus,
    ResolvePayoutRequest,
    ScheduleOut,
    ScheduleUpdateRequest,
)

logger = logging.getLogger("payouts.api")
router = APIRouter(prefix="/v1", tags=["payouts"])


# ---------------- payouts ----------------

@router.get("/businesses/{business_id}/payouts", response_model=PayoutListResponse)
def list_payouts(
    business_id: UUID,
    processor_id: Optional[UUID] = None,
    status: Optional[PayoutStatus] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    service: PayoutService = Depends(get_payout_service),
):
    payouts, total = service.get_payout_history(
        business_id,
        processor_id=processor_id,
        status=status,
        start=start_date,
        end=end_date,
        limit=limit,
        offset=offset,
    )
    return PayoutListResponse(
        business_id=business_id,
        total=total,
        payouts=[PayoutOut.from_payout(p) for p in payouts],
    )


@router.get("/payouts/{payout_id}", response_model=PayoutOut)
def get_payout(payout_id: UUID, service: PayoutService = Depends(get_payout_service)):
    payout = service.get_payout(payout_id)
    if payout is None:
        raise HTTPException(status_code=404, detail="PAYOUT_NOT_FOUND")
    return PayoutOut.from_payout(payout)


@router.post("/payouts/{payout_id}/retry", response_model=PayoutOut)
def retry_payout(payout_id: UUID, service: PayoutService = Depends(get_payout_service)):
    try:
        payout = service.executor.requeue_failed(payout_id)
    except LookupError:
        raise HTTPException(status_code=404, detail="PAYOUT_NOT_FOUND")
    except InvalidTransition:
        raise HTTPException(status_code=409, detail="ONLY_FAILED_PAYOUTS_CAN_BE_RETRIED")
    return PayoutOut.from_payout(payout)


@router.post("/payouts/{payout_id}/resolve", response_model=PayoutOut)
def resolve_payout(
    payout_id: UUID,
    body: ResolvePayoutRequest,
    service: PayoutService = Depends(get_payout_service),
):
    try:
        payout = service.executor.resolve_unknown(payout_id, succeeded=body.succeeded, reference=body.reference)
    except LookupError:
        raise HTTPException(status_code=404, detail="PAYOUT_NOT_FOUND")
    except InvalidTransition:
        raise HTTPException(status_code=409, detail="PAYOUT_NOT_PROCESSING")
    logger.info("payout %s resolved manually succeeded=%s", payout_id, body.succeeded)
    return PayoutOut.from_payout(payout)


# ---------------- schedules ----------------

@router.get("/schedules/{schedule_id}", response_model=ScheduleOut)
def get_schedule(schedule_id: UUID, service: PayoutService = Depends(get_payout_service)):
    try:
        return ScheduleOut.from_schedule(service.schedules.get(schedule_id))
    except ScheduleNotFound:
        raise HTTPException(status_code=404, detail="SCHEDULE_NOT_FOUND")


@router.patch("/schedules/{schedule_id}", response_model=ScheduleOut)
def update_schedule(
    schedule_id: UUID,
    body: ScheduleUpdateRequest,
    service: PayoutService = Depends(get_payout_service),
):
    try:
        schedule = service.schedules.update_config(schedule_id, body.model_dump(exclude_none=True))
    except ScheduleNotFound:
        raise HTTPException(status_code=404, detail="SCHEDULE_NOT_FOUND")
    except InvalidScheduleConfig as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return ScheduleOut.from_schedule(schedule)


@router.post("/schedules/{schedule_id}/hold", response_model=ScheduleOut)
def toggle_hold(
    schedule_id: UUID,
    body: HoldRequest,
    service: PayoutService = Depends(get_payout_service),
):
    try:
        schedule = service.schedules.set_hold(schedule_id, body.hold, body.reason)
    except ScheduleNotFound:
        raise HTTPException(status_code=404, detail="SCHEDULE_NOT_FOUND")
    return ScheduleOut.from_schedule(schedule)
