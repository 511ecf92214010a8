# routers/approvals_router.py

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict

from dependencies import get_coordinator, optional_user_name, require_user_id
from services.autonomy.autonomy_coordinator import AutonomyCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/approvals", tags=["Approvals"])


class RespondRequest(BaseModel):
    response: str
    reasoning: Optional[str] = None
    modifications: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="forbid")


# ============================================================
# READ (LAZY EXPIRATION APPLIES)
# ============================================================
@router.get("/pending")
def list_pending(
    user_id: str = Depends(require_user_id),
    coordinator: AutonomyCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    pending = coordinator.list_pending_approvals(user_id)
    return {
        "ok": True,
        "approvals": [r.model_dump(mode="json") for r in pending],
        "count": len(pending),
    }


@router.get("/stats")
def approval_stats(
    user_id: str = Depends(require_user_id),
    coordinator: AutonomyCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    stats = coordinator.get_approval_stats(user_id)
    return {"ok": True, "stats": stats.model_dump(mode="json"), "read_only": True}


@router.get("/{request_id}")
def get_approval(
    request_id: str,
    user_id: str = Depends(require_user_id),
    coordinator: AutonomyCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    request = coordinator.get_approval(request_id, user_id=user_id)
    return {"ok": True, "approval": request.model_dump(mode="json")}


# ============================================================
# WRITE
# ============================================================
@router.post("/{request_id}/respond")
def respond(
    request_id: str,
    body: RespondRequest,
    user_id: str = Depends(require_user_id),
    user_name: Optional[str] = Depends(optional_user_name),
    coordinator: AutonomyCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    request = coordinator.respond_to_approval(
        request_id,
        user_id,
        body.response,
        reasoning=body.reasoning,
        modifications=body.modifications,
        user_name=user_name,
    )
    return {"ok": True, "approval": request.model_dump(mode="json")}


@router.post("/{request_id}/execute")
def execute(
    request_id: str,
    user_id: str = Depends(require_user_id),
    coordinator: AutonomyCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    result = coordinator.execute_approved_action(request_id, user_id=user_id)
    logger.info("approved action executed via api request_id=%s", request_id)
    return {"ok": True, "result": result.model_dump(mode="json")}
