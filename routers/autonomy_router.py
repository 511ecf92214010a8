# routers/autonomy_router.py

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query

from dependencies import get_coordinator, require_user_id
from services.autonomy.autonomy_coordinator import AutonomyCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/autonomy", tags=["Autonomy"])


# ============================================================
# SETTINGS
# ============================================================
@router.get("/settings")
def get_settings(
    user_id: str = Depends(require_user_id),
    coordinator: AutonomyCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    settings = coordinator.get_settings(user_id)
    return {"ok": True, "settings": settings.model_dump(mode="json")}


@router.patch("/settings")
def update_settings(
    partial: Dict[str, Any] = Body(...),
    user_id: str = Depends(require_user_id),
    coordinator: AutonomyCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    settings = coordinator.update_settings(user_id, partial)
    logger.info("autonomy settings updated via api user_id=%s fields=%s", user_id, sorted(partial))
    return {"ok": True, "settings": settings.model_dump(mode="json")}


@router.get("/settings/history")
def settings_history(
    limit: int = Query(50, ge=1, le=500),
    user_id: str = Depends(require_user_id),
    coordinator: AutonomyCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    changes = coordinator.get_settings_history(user_id, limit=limit)
    return {
        "ok": True,
        "history": [c.model_dump(mode="json") for c in changes],
        "read_only": True,
    }


# ============================================================
# OVERRIDE SCHEDULE
# ============================================================
@router.get("/schedule")
def get_schedule(
    user_id: str = Depends(require_user_id),
    coordinator: AutonomyCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    return {"ok": True, "schedule": coordinator.get_schedule(user_id).model_dump(mode="json")}


@router.put("/schedule")
def set_schedule(
    schedule: Dict[str, Any] = Body(...),
    user_id: str = Depends(require_user_id),
    coordinator: AutonomyCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    saved = coordinator.set_schedule(user_id, schedule)
    return {"ok": True, "schedule": saved.model_dump(mode="json")}


# ============================================================
# PROPOSALS
# ============================================================
@router.post("/actions")
def propose_action(
    proposal: Dict[str, Any] = Body(...),
    ttl_seconds: Optional[int] = Query(None, gt=0),
    user_id: str = Depends(require_user_id),
    coordinator: AutonomyCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    # the caller always proposes on their own behalf
    payload = {**proposal, "user_id": user_id}
    outcome = coordinator.propose_action(payload, ttl_seconds=ttl_seconds)
    return {"ok": True, **outcome.model_dump(mode="json")}


# ============================================================
# ADVISORY + AUDIT (READ ONLY)
# ============================================================
@router.get("/recommendations")
def recommendations(
    user_id: str = Depends(require_user_id),
    coordinator: AutonomyCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    recs = coordinator.get_recommendations(user_id)
    return {
        "ok": True,
        "recommendations": [r.model_dump(mode="json") for r in recs],
        "read_only": True,
    }


@router.get("/history")
def action_history(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(require_user_id),
    coordinator: AutonomyCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    records = coordinator.get_action_history(user_id, limit=limit, offset=offset)
    return {
        "ok": True,
        "history": [r.model_dump(mode="json") for r in records],
        "limit": limit,
        "offset": offset,
        "read_only": True,
    }
