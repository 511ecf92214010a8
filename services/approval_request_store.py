# services/approval_request_store.py

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Optional

import sqlalchemy as sa
from sqlalchemy.engine import Engine, Row

from models.approval_request import ApprovalRequest, ApprovalStatus
from models.autonomy_tables import approval_participants, approval_requests
from services.database_service import as_utc

logger = logging.getLogger(__name__)


def _row_values(request: ApprovalRequest) -> dict:
    return {
        "user_id": request.user_id,
        "action_id": request.action_id,
        "action_type": request.action_type,
        "capability": request.capability,
        "status": request.status.value,
        "body": request.model_dump(mode="json"),
        "created_at": as_utc(request.created_at),
        "expires_at": as_utc(request.expires_at),
        "updated_at": as_utc(request.updated_at),
        "resolved_at": as_utc(request.resolved_at),
        "version": request.version,
    }


def _from_row(row: Row) -> ApprovalRequest:
    body = dict(row.body or {})
    # indexed columns are authoritative over the embedded copy
    body.update(
        {
            "id": row.id,
            "status": row.status,
            "version": row.version,
            "expires_at": as_utc(row.expires_at),
        }
    )
    return ApprovalRequest.model_validate(body)


class ApprovalRequestStore:
    """
    Persistence for ApprovalRequest.

    - request + participants written in one transaction
    - updates are compare-and-swap on `version` (single writer per request,
      also across processes)
    - rows are never deleted here (audit); retention is an ops concern
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    # ============================================================
    # CREATE
    # ============================================================
    def insert(self, request: ApprovalRequest) -> None:
        participants = [{"request_id": request.id, "user_id": request.user_id, "role": "owner"}]
        for uid in request.affected_user_ids:
            if uid != request.user_id:
                participants.append({"request_id": request.id, "user_id": uid, "role": "affected"})

        with self._engine.begin() as conn:
            conn.execute(sa.insert(approval_requests).values(id=request.id, **_row_values(request)))
            conn.execute(sa.insert(approval_participants), participants)

    # ============================================================
    # UPDATE (CAS)
    # ============================================================
    def compare_and_swap(self, request: ApprovalRequest, *, expected_version: int) -> bool:
        """
        Writes `request` only if the stored version still equals expected_version.
        `request.version` must already be the bumped version.
        """
        with self._engine.begin() as conn:
            result = conn.execute(
                sa.update(approval_requests)
                .where(
                    approval_requests.c.id == request.id,
                    approval_requests.c.version == expected_version,
                )
                .values(**_row_values(request))
            )
        return result.rowcount == 1

    # ============================================================
    # READ
    # ============================================================
    def get(self, request_id: str) -> Optional[ApprovalRequest]:
        with self._engine.connect() as conn:
            row = conn.execute(
                sa.select(approval_requests).where(approval_requests.c.id == request_id)
            ).first()
        return _from_row(row) if row is not None else None

    def list_for_participant(
        self, user_id: str, *, statuses: Optional[Iterable[ApprovalStatus]] = None
    ) -> List[ApprovalRequest]:
        """Requests the user owns or was asked to weigh in on, newest first."""
        q = (
            sa.select(approval_requests)
            .join(
                approval_participants,
                approval_participants.c.request_id == approval_requests.c.id,
            )
            .where(approval_participants.c.user_id == user_id)
        )
        if statuses is not None:
            q = q.where(approval_requests.c.status.in_([s.value for s in statuses]))
        q = q.order_by(approval_requests.c.created_at.desc())

        with self._engine.connect() as conn:
            return [_from_row(r) for r in conn.execute(q).all()]

    def list_by_owner(
        self,
        user_id: str,
        *,
        statuses: Optional[Iterable[ApprovalStatus]] = None,
        capability: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[ApprovalRequest]:
        q = sa.select(approval_requests).where(approval_requests.c.user_id == user_id)
        if statuses is not None:
            q = q.where(approval_requests.c.status.in_([s.value for s in statuses]))
        if capability is not None:
            q = q.where(approval_requests.c.capability == capability)
        q = q.order_by(approval_requests.c.created_at.desc())
        if limit is not None:
            q = q.limit(int(limit))

        with self._engine.connect() as conn:
            return [_from_row(r) for r in conn.execute(q).all()]

    def due_for_expiry(self, now: datetime, *, user_id: Optional[str] = None) -> List[str]:
        q = sa.select(approval_requests.c.id).where(
            approval_requests.c.status == ApprovalStatus.PENDING.value,
            approval_requests.c.expires_at < as_utc(now),
        )
        if user_id is not None:
            q = q.where(
                approval_requests.c.id.in_(
                    sa.select(approval_participants.c.request_id).where(
                        approval_participants.c.user_id == user_id
                    )
                )
            )
        with self._engine.connect() as conn:
            return [r.id for r in conn.execute(q.order_by(approval_requests.c.expires_at)).all()]
