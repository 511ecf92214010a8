# services/approval_flow.py

"""
approval_flow.py
----------------
Resolution rules for multi-party approval requests.

Canon:
- any single reject vetoes the whole request
- approved only when every required responder (owner + affected users) approved
- modify never resolves anything; it only attaches proposed changes
- nothing here persists or mutates; callers own the state transition
"""

from __future__ import annotations

from datetime import datetime
from typing import List

from models.approval_request import (
    ApprovalRequest,
    ApprovalResponse,
    ApprovalStatus,
    ResponseType,
)


def upsert_response(
    responses: List[ApprovalResponse], response: ApprovalResponse
) -> List[ApprovalResponse]:
    """
    One entry per user: resubmission replaces the prior entry in place,
    so the list keeps the order of first submission.
    """
    out = list(responses)
    for i, existing in enumerate(out):
        if existing.user_id == response.user_id:
            out[i] = response
            return out
    out.append(response)
    return out


def resolve_status(
    required_responders: List[str], responses: List[ApprovalResponse]
) -> ApprovalStatus:
    latest = {r.user_id: r.response for r in responses}

    # 1) veto
    if any(v == ResponseType.REJECT for v in latest.values()):
        return ApprovalStatus.REJECTED

    # 2) unanimous approval of required responders
    if required_responders and all(
        latest.get(uid) == ResponseType.APPROVE for uid in required_responders
    ):
        return ApprovalStatus.APPROVED

    # 3) partial approval / modify => still waiting
    return ApprovalStatus.PENDING


def is_expired(request: ApprovalRequest, now: datetime) -> bool:
    return request.status == ApprovalStatus.PENDING and now > request.expires_at


def can_respond(request: ApprovalRequest, user_id: str) -> bool:
    return user_id in request.required_responders
