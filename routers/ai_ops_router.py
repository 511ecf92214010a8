# routers/ai_ops_router.py
from __future__ import annotations

import logging
import os
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from dependencies import SWEEP_JOB_NAME, get_cron_service
from services.cron_service import CronService

logger = logging.getLogger(__name__)

# ------------------------------------------------------------
# CANONICAL WRITE GUARD (runtime read)
# ------------------------------------------------------------


def _env_true(name: str, default: str = "false") -> bool:
    return (os.getenv(name, default) or "").strip().lower() == "true"


def _guard_write() -> None:
    if _env_true("OPS_SAFE_MODE", "false"):
        raise HTTPException(
            status_code=403, detail="OPS_SAFE_MODE enabled (writes blocked)"
        )


# gateway_server.py does include_router(ai_ops_router, prefix="/api")
# therefore prefix here must be "/ops" (NOT "/api/ops")
router = APIRouter(prefix="/ops", tags=["Ops"])


# ============================================================
# EXPIRATION SWEEP
# ============================================================
@router.post("/sweep/run")
def sweep_run(cron: CronService = Depends(get_cron_service)) -> Dict[str, Any]:
    _guard_write()
    result = cron.run()
    if result.get("cron_status") == "rejected":
        # a sweep is already in flight; it covers this request too
        return {"ok": True, "result": result, "expired": 0, "read_only": False}

    job = (result.get("results") or {}).get(SWEEP_JOB_NAME) or {}
    if job.get("status") == "error":
        raise HTTPException(status_code=500, detail=f"sweep failed: {job.get('error')}")

    expired = int(job.get("output") or 0)
    logger.info("manual sweep run expired=%s", expired)
    return {"ok": True, "result": result, "expired": expired, "read_only": False}


@router.get("/sweep/status")
def sweep_status(cron: CronService = Depends(get_cron_service)) -> Dict[str, Any]:
    return {"ok": True, "status": cron.status(), "read_only": True}
