from __future__ import annotations

import os

from fastapi import APIRouter
from fastapi.responses import Response

from db import get_conn
from services.metrics import render_prometheus
from settings import enabled_providers, settings

router = APIRouter(tags=["ops"])

MIGRATION_REVISION = "0001_payout_engine_schema"


def _check_db() -> tuple[bool, str | None]:
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT version_num FROM alembic_version LIMIT 1;")
                row = cur.fetchone()
        if not row or row[0] != MIGRATION_REVISION:
            return False, f"migration revision {row[0] if row else None!r}"
        return True, None
    except Exception as exc:
        return False, f"{type(exc).__name__}: {exc}"


@router.get("/health")
def health():
    return {
        "ok": True,
        "env": (os.getenv("ENVIRONMENT") or os.getenv("ENV") or "").strip(),
        "version": os.getenv("APP_VERSION", "1.0.0"),
        "settlement_providers": sorted(enabled_providers()),
        "unknown_outcome_policy": settings.SETTLEMENT_UNKNOWN_POLICY,
    }


@router.get("/readyz")
def readyz():
    db_ok, db_error = _check_db()
    return {
        "ready": db_ok,
        "db_ok": db_ok,
        "db_error": db_error,
        "migration_revision": MIGRATION_REVISION,
    }


@router.get("/metrics")
def metrics():
    body = render_prometheus()
    return Response(content=body, media_type="text/plain; version=0.0.4")
