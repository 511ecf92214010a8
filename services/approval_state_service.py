# services/approval_state_service.py

from __future__ import annotations

import logging
import zlib
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from models.action_proposal import ActionProposal
from models.approval_request import (
    ApprovalRequest,
    ApprovalResponse,
    ApprovalStats,
    ApprovalStatus,
    ExecutionResult,
    ResponseType,
)
from models.autonomy_decision import AutonomyDecision
from services.action_execution_service import ActionExecutionService
from services.approval_flow import can_respond, is_expired, resolve_status, upsert_response
from services.approval_request_store import ApprovalRequestStore
from services.autonomy.errors import (
    ExecutionFailure,
    InvalidStateTransitionError,
    NotAuthorizedError,
    NotFoundError,
    ValidationError,
)
from services.autonomy.policy_config import AutonomyPolicyConfig, get_policy_config
from services.database_service import utc_now
from services.observability.telemetry_emitter import TelemetryEmitter

logger = logging.getLogger(__name__)


class _StripedLocks:
    """
    Fixed pool of locks; a request id always maps to the same lock, so all
    transitions on one request are serialized without an unbounded lock map.
    """

    def __init__(self, stripes: int = 64) -> None:
        self._locks = [Lock() for _ in range(stripes)]

    def for_key(self, key: str) -> Lock:
        return self._locks[zlib.crc32(key.encode("utf-8")) % len(self._locks)]


class ApprovalStateService:
    """
    CANONICAL APPROVAL WORKFLOW

    - lifecycle: pending -> approved -> executed
                 pending -> rejected | expired
    - transitions are monotonic; nothing ever returns to pending
    - expiration is applied lazily on every read/respond and by the sweep
    - every transition on one request is serialized (striped lock + version CAS)
    - the executor never runs under a stripe lock; one execution per request at a time
    - reads are snapshots, no lock unless a lazy expiration must be written
    - there is no cancel: a request ends by reject, expiry or execution
    """

    def __init__(
        self,
        store: ApprovalRequestStore,
        *,
        execution: Optional[ActionExecutionService] = None,
        config: Optional[AutonomyPolicyConfig] = None,
        telemetry: Optional[TelemetryEmitter] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.execution = execution or ActionExecutionService(clock=clock)
        self.config = config or get_policy_config()
        self.telemetry = telemetry or TelemetryEmitter()
        self._clock = clock
        self._locks = _StripedLocks()
        self._inflight: Set[str] = set()
        self._inflight_lock = Lock()

    # ============================================================
    # CREATE
    # ============================================================
    def create(
        self,
        proposal: ActionProposal,
        decision: AutonomyDecision,
        *,
        ttl_seconds: Optional[int] = None,
    ) -> ApprovalRequest:
        if not decision.requires_approval:
            raise ValidationError("approval requests are only created when approval is required")
        if decision.action_id != proposal.action_id:
            raise ValidationError("decision does not belong to this proposal")

        ttl = self.config.approval_ttl_seconds if ttl_seconds is None else int(ttl_seconds)
        if ttl <= 0:
            raise ValidationError("ttl_seconds must be positive")

        now = self._clock()
        request = ApprovalRequest(
            id=str(uuid4()),
            user_id=proposal.user_id,
            action_id=proposal.action_id,
            action_type=proposal.action_type,
            capability=decision.capability,
            parameters=dict(proposal.parameters),
            affected_user_ids=list(proposal.affected_user_ids),
            reasoning=proposal.reasoning,
            risk_assessment=decision.risk_assessment,
            decision=decision,
            status=ApprovalStatus.PENDING,
            responses=[],
            created_at=now,
            expires_at=now + timedelta(seconds=ttl),
            updated_at=now,
            version=0,
        )

        self.store.insert(request)

        logger.info(
            "approval requested id=%s user_id=%s action_type=%s responders=%s expires_at=%s",
            request.id,
            request.user_id,
            request.action_type,
            len(request.required_responders),
            request.expires_at.isoformat(),
        )
        self.telemetry.emit_approval_event(
            "approval_requested",
            request,
            details={"reason": decision.approval_reason},
        )
        return request

    # ============================================================
    # READ (LAZY EXPIRATION GUARD)
    # ============================================================
    def get(self, request_id: str) -> ApprovalRequest:
        request = self._require(request_id)
        if is_expired(request, self._clock()):
            with self._locks.for_key(request.id):
                request, _ = self._expire_locked(self._require(request_id), self._clock())
        return request

    def list_pending(self, user_id: str) -> List[ApprovalRequest]:
        """Pending requests the user owns or must answer, newest first."""
        uid = _require_user_id(user_id)
        self._expire_due(user_id=uid)

        now = self._clock()
        return [
            r
            for r in self.store.list_for_participant(uid, statuses=[ApprovalStatus.PENDING])
            if not is_expired(r, now)
        ]

    def history(
        self,
        user_id: str,
        *,
        statuses: Optional[List[ApprovalStatus]] = None,
        capability: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[ApprovalRequest]:
        uid = _require_user_id(user_id)
        self._expire_due(user_id=uid)
        return self.store.list_by_owner(
            uid, statuses=statuses, capability=capability, limit=limit
        )

    def stats(self, user_id: str) -> ApprovalStats:
        requests = self.history(user_id)

        counts: Dict[str, int] = {s.value: 0 for s in ApprovalStatus}
        response_times: List[float] = []
        for r in requests:
            counts[r.status.value] += 1
            if r.resolved_at is not None and r.status != ApprovalStatus.EXPIRED:
                response_times.append((r.resolved_at - r.created_at).total_seconds())

        return ApprovalStats(
            total=len(requests),
            average_response_seconds=(
                sum(response_times) / len(response_times) if response_times else 0.0
            ),
            **counts,
        )

    # ============================================================
    # RESPOND
    # ============================================================
    def respond(
        self,
        request_id: str,
        user_id: str,
        response: Union[ResponseType, str],
        *,
        reasoning: Optional[str] = None,
        modifications: Optional[Dict[str, Any]] = None,
        user_name: Optional[str] = None,
    ) -> ApprovalRequest:
        uid = _require_user_id(user_id)
        try:
            kind = ResponseType(response)
        except ValueError:
            raise ValidationError(
                f"response must be one of: {', '.join(r.value for r in ResponseType)}"
            )

        with self._locks.for_key(request_id):
            now = self._clock()
            request, _ = self._expire_locked(self._require(request_id), now)

            if request.status != ApprovalStatus.PENDING:
                raise InvalidStateTransitionError(
                    f"approval request is {request.status.value}; responses are closed",
                    request=request,
                )
            if not can_respond(request, uid):
                raise NotAuthorizedError(
                    f"user {uid} is not a required responder for request {request.id}"
                )

            try:
                entry = ApprovalResponse(
                    user_id=uid,
                    user_name=(user_name or "").strip() or uid,
                    response=kind,
                    reasoning=reasoning,
                    modifications=modifications,
                    timestamp=now,
                )
            except PydanticValidationError as e:
                raise ValidationError.from_pydantic("invalid approval response", e)

            responses = upsert_response(request.responses, entry)
            status = resolve_status(request.required_responders, responses)

            updated = request.model_copy(
                update={
                    "responses": responses,
                    "status": status,
                    "updated_at": now,
                    "resolved_at": now if status != ApprovalStatus.PENDING else None,
                    "version": request.version + 1,
                }
            )
            self._save(updated, expected_version=request.version)

        logger.info(
            "approval response id=%s user_id=%s response=%s status=%s",
            updated.id,
            uid,
            kind.value,
            updated.status.value,
        )
        self.telemetry.emit_approval_event(
            "approval_responded",
            updated,
            details={"responder": uid, "response": kind.value},
        )
        if updated.status != ApprovalStatus.PENDING:
            self.telemetry.emit_approval_event("approval_resolved", updated)
        return updated

    # ============================================================
    # EXECUTE (ONLY FROM APPROVED, NO AUTOMATIC RETRY)
    # ============================================================
    def execute(self, request_id: str, *, user_id: Optional[str] = None) -> ExecutionResult:
        with self._locks.for_key(request_id):
            request = self._require(request_id)

            if user_id is not None and user_id != request.user_id:
                raise NotAuthorizedError("only the owner may execute an approved action")
            if request.status != ApprovalStatus.APPROVED:
                raise InvalidStateTransitionError(
                    f"approval request is {request.status.value}; only approved requests can be executed",
                    request=request,
                )
            with self._inflight_lock:
                if request.id in self._inflight:
                    raise InvalidStateTransitionError(
                        "approved action is already executing", request=request
                    )
                self._inflight.add(request.id)

        # the executor runs outside the stripe lock; the in-flight mark keeps it single
        try:
            result = self.execution.execute(
                action_id=request.action_id,
                user_id=request.user_id,
                action_type=request.action_type,
                capability=request.capability,
                parameters=request.parameters,
                request_id=request.id,
            )

            with self._locks.for_key(request.id):
                current = self._require(request.id)
                now = self._clock()
                if result.ok:
                    updated = current.model_copy(
                        update={
                            "status": ApprovalStatus.EXECUTED,
                            "executed_at": result.executed_at,
                            "execution_error": None,
                            "updated_at": now,
                            "version": current.version + 1,
                        }
                    )
                else:
                    # stays approved; a human decides whether to retry
                    updated = current.model_copy(
                        update={
                            "execution_error": result.error,
                            "updated_at": now,
                            "version": current.version + 1,
                        }
                    )
                self._save(updated, expected_version=current.version)
        finally:
            with self._inflight_lock:
                self._inflight.discard(request.id)

        if not result.ok:
            logger.warning("approved action failed id=%s error=%s", updated.id, result.error)
            self.telemetry.emit_approval_event(
                "action_execution_failed", updated, details={"error": result.error}
            )
            raise ExecutionFailure(
                "action execution failed; request remains approved",
                request=updated,
                result=result,
            )

        logger.info("approved action executed id=%s action_id=%s", updated.id, updated.action_id)
        self.telemetry.emit_approval_event("action_executed", updated)
        return result

    # ============================================================
    # EXPIRATION SWEEP (IDEMPOTENT)
    # ============================================================
    def sweep_expired(self) -> int:
        expired = self._expire_due()
        if expired:
            logger.info("expiration sweep expired=%s", expired)
        return expired

    # ============================================================
    # INTERNAL
    # ============================================================
    def _require(self, request_id: str) -> ApprovalRequest:
        rid = (request_id or "").strip() if isinstance(request_id, str) else ""
        request = self.store.get(rid) if rid else None
        if request is None:
            raise NotFoundError(f"approval request not found: {request_id}")
        return request

    def _expire_due(self, *, user_id: Optional[str] = None) -> int:
        count = 0
        for rid in self.store.due_for_expiry(self._clock(), user_id=user_id):
            with self._locks.for_key(rid):
                request = self.store.get(rid)
                if request is None:
                    continue
                _, changed = self._expire_locked(request, self._clock())
                count += int(changed)
        return count

    def _expire_locked(
        self, request: ApprovalRequest, now: datetime
    ) -> Tuple[ApprovalRequest, bool]:
        """Caller holds the request lock. Returns (current state, transitioned)."""
        if not is_expired(request, now):
            return request, False

        expired = request.model_copy(
            update={
                "status": ApprovalStatus.EXPIRED,
                "updated_at": now,
                "resolved_at": now,
                "version": request.version + 1,
            }
        )
        if not self.store.compare_and_swap(expired, expected_version=request.version):
            # another process moved it first; its state wins
            fresh = self.store.get(request.id)
            return (fresh if fresh is not None else request), False

        logger.info("approval expired id=%s user_id=%s", expired.id, expired.user_id)
        self.telemetry.emit_approval_event("approval_expired", expired)
        return expired, True

    def _save(self, updated: ApprovalRequest, *, expected_version: int) -> None:
        if not self.store.compare_and_swap(updated, expected_version=expected_version):
            fresh = self.store.get(updated.id)
            raise InvalidStateTransitionError(
                "approval request was modified concurrently",
                request=fresh,
            )


def _require_user_id(user_id: str) -> str:
    uid = (user_id or "").strip() if isinstance(user_id, str) else ""
    if not uid:
        raise ValidationError("user_id is required")
    return uid
