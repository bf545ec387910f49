#main.py
import logging

from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import JSONResponse
from middleware import RequestContextMiddleware
from routes.payouts import router as payouts_router
from routes.admin_reconcile import router as admin_reconcile_router
from routes.health import router as health_router

from services.ledger_invariants import LedgerInvariantError

logger = logging.getLogger("payouts.api")

app = FastAPI(title="Payout Engine API", version="1.0.0")
app.add_middleware(RequestContextMiddleware)

# -----------------------------
# ROUTERS
# -----------------------------

app.include_router(payouts_router)
app.include_router(admin_reconcile_router)
app.include_router(health_router)


@app.exception_handler(LedgerInvariantError)
async def ledger_invariant_handler(request: Request, exc: LedgerInvariantError):
    logger.critical("ledger invariant violated on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )
