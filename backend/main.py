"""
FastAPI application for the PropPicks wager ledger
Past bets, grading, and per-model performance stats
"""

from fastapi import FastAPI, Depends, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import logging
import os

from backend.auth import verify_user_key, verify_admin_user
from backend.core.ledger_types import normalize_mode, normalize_mode_filter, normalize_outcome
from backend.errors import ConflictError, LedgerError, NotFoundError, StorageError, ValidationError
from backend.services.demo import is_demo_enabled, seed_demo_account
from backend.services.ledger import Ledger, get_ledger, list_limit_from_env
from backend.schemas import (
    DemoSeedRequest,
    DemoSeedResponse,
    PastBetCreate,
    PastBetList,
    PastBetOut,
    PastBetResult,
    PastBetWriteResponse,
    StatList,
    StatOut,
)

# Logging setup
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

APP_VERSION = "1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting PropPicks ledger API (store=%s)", os.getenv("LEDGER_STORE", "sql"))
    yield
    logger.info("Shutting down PropPicks ledger API")


app = FastAPI(
    title="PropPicks Ledger",
    description="Past bets, grading, and per-model performance stats",
    version=APP_VERSION,
    lifespan=lifespan,
)

# CORS: comma-separated origins, credentials allowed for the auth cookie
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in os.getenv("CORS_ORIGIN", "http://localhost:4200").split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


# ============================================================================
# ERROR MAPPING
# ============================================================================

_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (ValidationError, 400),
    (ConflictError, 409),
    (StorageError, 503),
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    """Map ledger errors onto HTTP status codes; storage faults are retryable"""
    status_code = 500
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code = code
            break

    if status_code >= 500:
        logger.error("Ledger error on %s: %s", request.url.path, exc)
    headers = {"Retry-After": "1"} if isinstance(exc, StorageError) else None
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "type": type(exc).__name__},
        headers=headers,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all exception handler"""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__}
    )


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Health check"""
    return {
        "app": "PropPicks Ledger",
        "version": APP_VERSION,
        "status": "operational",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/health")
def health_check(ledger: Ledger = Depends(get_ledger)):
    """Health check endpoint"""
    health = {"status": "healthy", "store": ledger.store.kind, "database": "connected"}

    if ledger.store.kind == "memory":
        health["status"] = "degraded"
        health["database"] = "not configured"
    elif not ledger.store.ping():
        health["status"] = "degraded"
        health["database"] = "unreachable"

    return health


# ============================================================================
# AUTHENTICATED ENDPOINTS - PAST BETS
# ============================================================================

@app.get("/api/past-bets", response_model=PastBetList, response_model_exclude_none=True)
def list_past_bets(
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    user: str = Depends(verify_user_key),
    ledger: Ledger = Depends(get_ledger),
):
    """The caller's retained bets, newest first."""
    cap = list_limit_from_env()
    bets = ledger.list_bets(user, min(limit or cap, cap))
    return PastBetList(bets=[PastBetOut.from_record(b) for b in bets])


@app.post("/api/past-bets", response_model=PastBetWriteResponse, response_model_exclude_none=True)
def create_past_bet(
    payload: PastBetCreate,
    user: str = Depends(verify_user_key),
    ledger: Ledger = Depends(get_ledger),
):
    """Log a placed bet (ungraded).  Older bets beyond the retention window are dropped."""
    bet = ledger.place_bet(
        user_key=user,
        mode=normalize_mode(payload.type),
        sport=payload.sport,
        model=payload.model,
        event=payload.event,
        odds=payload.odds,
        stake=payload.stake,
        placed_at=payload.placed_at(),
    )
    return PastBetWriteResponse(bet=PastBetOut.from_record(bet))


@app.post("/api/past-bets/result", response_model=PastBetWriteResponse, response_model_exclude_none=True)
def set_past_bet_result(
    payload: PastBetResult,
    user: str = Depends(verify_user_key),
    ledger: Ledger = Depends(get_ledger),
):
    """
    Grade, re-grade, or clear a bet and fold the change into the caller's
    lifetime stats.  Unknown outcome tokens clear the grade.
    """
    bet = ledger.grade_bet(user, payload.id, normalize_outcome(payload.outcome))
    return PastBetWriteResponse(bet=PastBetOut.from_record(bet))


# ============================================================================
# AUTHENTICATED ENDPOINTS - MODEL STATS
# ============================================================================

@app.get("/api/model-stats", response_model=StatList)
def get_model_stats(
    mode: Optional[str] = Query(default=None, description="Single | SGP | SGP+ | ALL"),
    user: str = Depends(verify_user_key),
    ledger: Ledger = Depends(get_ledger),
):
    """Lifetime per-model stats.  ALL (or anything unrecognised) returns the rollup rows."""
    rows = ledger.get_stats(user, normalize_mode_filter(mode))
    return StatList(stats=[StatOut.from_row(r) for r in rows])


# ============================================================================
# ADMIN ENDPOINTS
# ============================================================================

@app.post("/admin/demo/seed", response_model=DemoSeedResponse)
def seed_demo(
    payload: DemoSeedRequest,
    user: str = Depends(verify_admin_user),
    ledger: Ledger = Depends(get_ledger),
):
    """Copy the demo source account's history into a demo user and rebuild its stats."""
    if not is_demo_enabled():
        raise HTTPException(status_code=404, detail="Demo mode disabled")
    summary = seed_demo_account(ledger.store, payload.user.strip(), limit=payload.limit)
    logger.info("Demo seed requested by %s: %s", user, summary)
    return DemoSeedResponse(**summary)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
