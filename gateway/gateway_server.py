# gateway/gateway_server.py
# Gateway server for the autonomy engine

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict

import sqlalchemy as sa
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import dependencies
from routers.ai_ops_router import router as ai_ops_router
from routers.approvals_router import router as approvals_router
from routers.autonomy_router import router as autonomy_router
from services.autonomy.errors import (
    AutonomyError,
    ExecutionFailure,
    InvalidStateTransitionError,
    NotAuthorizedError,
    NotFoundError,
    PolicyBlockedError,
    ValidationError,
)
from system_version import RELEASE_CHANNEL, SYSTEM_NAME, VERSION

# ================================================================
# Logging
# ================================================================
logger = logging.getLogger("gateway")
logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO").upper())

# ================================================================
# Error -> HTTP mapping (most specific first)
# ================================================================
_STATUS_CODES = (
    (ValidationError, 422),
    (PolicyBlockedError, 403),
    (NotAuthorizedError, 403),
    (NotFoundError, 404),
    (InvalidStateTransitionError, 409),
    (ExecutionFailure, 502),
)


def _status_for(exc: AutonomyError) -> int:
    for cls, code in _STATUS_CODES:
        if isinstance(exc, cls):
            return code
    return 500


# ================================================================
# Lifespan: wire services, run the expiration sweeper
# ================================================================
@asynccontextmanager
async def lifespan(_: FastAPI):
    dependencies.init_services()
    config = dependencies.get_config()
    cron = dependencies.get_cron_service()

    if config.sweeper_enabled:
        cron.start(config.sweep_interval_seconds)
    else:
        logger.info("approval sweeper disabled (APPROVAL_SWEEPER_ENABLED=false)")

    try:
        yield
    finally:
        cron.stop()


# ================================================================
# FastAPI app
# ================================================================
app = FastAPI(title=SYSTEM_NAME, version=VERSION, lifespan=lifespan)

# CORS (wide; identity comes from the upstream proxy headers)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AutonomyError)
async def autonomy_error_handler(request: Request, exc: AutonomyError) -> JSONResponse:
    status = _status_for(exc)
    if status == 500:
        logger.exception("unhandled autonomy error path=%s", request.url.path)
    else:
        logger.info(
            "request rejected path=%s status=%s error=%s",
            request.url.path,
            status,
            type(exc).__name__,
        )
    return JSONResponse(status_code=status, content={"ok": False, **exc.to_dict()})


app.include_router(autonomy_router)
app.include_router(approvals_router)
app.include_router(ai_ops_router, prefix="/api")


# ================================================================
# Health
# ================================================================
@app.get("/health")
async def health() -> Dict[str, Any]:
    return {
        "status": "ok",
        "system": SYSTEM_NAME,
        "version": VERSION,
        "release_channel": RELEASE_CHANNEL,
    }


@app.get("/ready")
def ready() -> JSONResponse:
    engine = dependencies.get_engine()
    if engine is None:
        return JSONResponse(status_code=503, content={"ready": False, "reason": "services_not_initialized"})

    try:
        with engine.connect() as conn:
            conn.execute(sa.text("SELECT 1"))
    except sa.exc.SQLAlchemyError as e:
        logger.warning("readiness probe failed: %s", e)
        return JSONResponse(status_code=503, content={"ready": False, "reason": "database_unavailable"})

    return JSONResponse(
        status_code=200,
        content={"ready": True, "dialect": engine.dialect.name},
    )
