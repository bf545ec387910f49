# deps/payouts.py
from __future__ import annotations

from app.payouts.service import PayoutService, build_default_service

_service: PayoutService | None = None


def get_payout_service() -> PayoutService:
    """
    FastAPI dependency. Built once per process over Postgres;
    tests swap it via app.dependency_overrides.
    """
    global _service
    if _service is None:
        _service = build_default_service()
    return _service
