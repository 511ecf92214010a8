# services/decision_outcome_registry.py

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

import sqlalchemy as sa
from sqlalchemy.engine import Engine, Row
from sqlalchemy.exc import IntegrityError

from models.action_proposal import ActionProposal
from models.autonomy_decision import AutonomyDecision
from models.autonomy_tables import action_decision_log
from models.decision_record import DecisionOutcome, DecisionRecord
from services.autonomy.errors import NotFoundError, ValidationError
from services.database_service import as_utc, utc_now

logger = logging.getLogger(__name__)


def _from_row(row: Row) -> DecisionRecord:
    return DecisionRecord(
        action_id=row.action_id,
        user_id=row.user_id,
        action_type=row.action_type,
        capability=row.capability,
        risk_level=row.risk_level,
        confidence=float(row.confidence),
        autonomy_level=int(row.autonomy_level),
        outcome=DecisionOutcome(row.outcome),
        request_id=row.request_id,
        reason=row.reason,
        created_at=as_utc(row.created_at),
    )


class DecisionOutcomeRegistry:
    """
    Central log of proposals vs what the engine did with them.

    - one row per action_id; the insert is the claim, so a proposal is
      acted on at most once even under concurrent submissions
    - the outcome of an approval-gated action is updated when it executes
    - rows are append-only otherwise; this is the audit trail behind
      GET /api/autonomy/history
    """

    def __init__(
        self,
        engine: Engine,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._engine = engine
        self._clock = clock

    # ----------------------------
    # CREATE (from propose_action)
    # ----------------------------
    def record(
        self,
        proposal: ActionProposal,
        decision: AutonomyDecision,
        outcome: DecisionOutcome,
        *,
        request_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> DecisionRecord:
        rec = DecisionRecord(
            action_id=proposal.action_id,
            user_id=proposal.user_id,
            action_type=proposal.action_type,
            capability=decision.capability,
            risk_level=proposal.risk_level.value,
            confidence=proposal.confidence,
            autonomy_level=decision.autonomy_level,
            outcome=outcome,
            request_id=request_id,
            reason=reason,
            created_at=self._clock(),
        )

        try:
            with self._engine.begin() as conn:
                conn.execute(
                    sa.insert(action_decision_log).values(
                        **rec.model_dump(exclude={"outcome"}),
                        outcome=rec.outcome.value,
                    )
                )
        except IntegrityError:
            raise ValidationError(f"action already proposed: {proposal.action_id}")

        logger.info(
            "decision logged action_id=%s user_id=%s outcome=%s",
            rec.action_id,
            rec.user_id,
            rec.outcome.value,
        )
        return rec

    def exists(self, action_id: str) -> bool:
        t = action_decision_log
        with self._engine.connect() as conn:
            found = conn.execute(
                sa.select(t.c.action_id).where(t.c.action_id == action_id)
            ).first()
        return found is not None

    # ----------------------------
    # UPDATE (claimed proposal resolved, approved action executed)
    # ----------------------------
    def set_outcome(
        self,
        action_id: str,
        outcome: DecisionOutcome,
        *,
        reason: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> DecisionRecord:
        t = action_decision_log
        values = {"outcome": outcome.value, "reason": reason}
        if request_id is not None:
            values["request_id"] = request_id
        with self._engine.begin() as conn:
            res = conn.execute(
                sa.update(t).where(t.c.action_id == action_id).values(**values)
            )
            if res.rowcount == 0:
                raise NotFoundError(f"no decision logged for action: {action_id}")
            row = conn.execute(sa.select(t).where(t.c.action_id == action_id)).one()
        return _from_row(row)

    # ----------------------------
    # READ
    # ----------------------------
    def list_for_user(
        self, user_id: str, *, limit: int = 50, offset: int = 0
    ) -> List[DecisionRecord]:
        t = action_decision_log
        with self._engine.connect() as conn:
            rows = conn.execute(
                sa.select(t)
                .where(t.c.user_id == user_id)
                .order_by(t.c.created_at.desc(), t.c.action_id.desc())
                .limit(max(1, int(limit)))
                .offset(max(0, int(offset)))
            ).all()
        return [_from_row(r) for r in rows]
