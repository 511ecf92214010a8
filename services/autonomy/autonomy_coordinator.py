# services/autonomy/autonomy_coordinator.py

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from models.action_proposal import ActionProposal
from models.approval_request import (
    ApprovalRequest,
    ApprovalStats,
    ExecutionResult,
    ResponseType,
)
from models.autonomy_settings import AutonomySettings, SettingsChange, SettingsUpdate
from models.decision_record import DecisionOutcome, DecisionRecord, ProposalOutcome
from models.override_schedule import OverrideSchedule
from models.recommendation import AutonomyRecommendation
from services.action_execution_service import ActionExecutionService
from services.approval_flow import can_respond
from services.approval_state_service import ApprovalStateService
from services.autonomy.errors import (
    ExecutionFailure,
    NotAuthorizedError,
    PolicyBlockedError,
    ValidationError,
)
from services.autonomy.policy_config import AutonomyPolicyConfig, get_policy_config
from services.autonomy.policy_layer import AutonomyPolicy
from services.autonomy.recommendation_analyzer import (
    DECIDED_STATUSES,
    AutonomyRecommendationAnalyzer,
)
from services.autonomy.threshold_evaluator import evaluate
from services.autonomy_settings_store import AutonomySettingsStore
from services.database_service import utc_now
from services.decision_outcome_registry import DecisionOutcomeRegistry
from services.observability.telemetry_emitter import TelemetryEmitter
from services.override_schedule_service import (
    OverrideScheduleProvider,
    OverrideScheduleService,
)

logger = logging.getLogger(__name__)


class AutonomyCoordinator:
    """
    Single entry point of the autonomy engine.

    propose_action:
    - evaluate thresholds + override windows against the owner's settings
    - decide (pure policy layer)
    - can_execute       -> run now, log executed / execution_failed
    - requires_approval -> open an approval request, log approval_requested
    - blocked           -> log blocked, raise PolicyBlockedError

    Everything else is delegation to the store / workflow / analyzer.
    """

    def __init__(
        self,
        *,
        settings_store: AutonomySettingsStore,
        approvals: ApprovalStateService,
        decisions: DecisionOutcomeRegistry,
        schedules: Optional[OverrideScheduleProvider] = None,
        execution: Optional[ActionExecutionService] = None,
        config: Optional[AutonomyPolicyConfig] = None,
        telemetry: Optional[TelemetryEmitter] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config or get_policy_config()
        self.settings_store = settings_store
        self.approvals = approvals
        self.decisions = decisions
        self.schedules = schedules or OverrideScheduleService()
        self.execution = execution or approvals.execution
        self.telemetry = telemetry or approvals.telemetry
        self.policy = AutonomyPolicy(self.config)
        self.analyzer = AutonomyRecommendationAnalyzer(self.config)
        self._clock = clock

    # ============================================================
    # SETTINGS
    # ============================================================
    def get_settings(self, user_id: str) -> AutonomySettings:
        return self.settings_store.get(user_id)

    def update_settings(
        self,
        user_id: str,
        partial: Union[SettingsUpdate, Mapping[str, Any]],
        *,
        allow_new_capabilities: bool = False,
    ) -> AutonomySettings:
        return self.settings_store.update(
            user_id, partial, allow_new_capabilities=allow_new_capabilities
        )

    def get_settings_history(self, user_id: str, *, limit: int = 50) -> List[SettingsChange]:
        return self.settings_store.history(user_id, limit=limit)

    def get_schedule(self, user_id: str) -> OverrideSchedule:
        return self.schedules.get_schedule(user_id)

    def set_schedule(
        self, user_id: str, schedule: Union[OverrideSchedule, Mapping[str, Any]]
    ) -> OverrideSchedule:
        return self.schedules.set_schedule(user_id, schedule)

    # ============================================================
    # PROPOSE
    # ============================================================
    def propose_action(
        self,
        proposal: Union[ActionProposal, Mapping[str, Any]],
        *,
        ttl_seconds: Optional[int] = None,
    ) -> ProposalOutcome:
        p = _parse_proposal(proposal)

        settings = self.settings_store.get(p.user_id)
        verdict = evaluate(
            p, settings, self._clock(), self.schedules.get_schedule(p.user_id)
        )
        decision = self.policy.decide(p, settings, verdict)

        # -------------------------------
        # BLOCKED
        # -------------------------------
        if decision.is_blocked:
            self.decisions.record(
                p, decision, DecisionOutcome.BLOCKED, reason=decision.blocked_reason
            )
            self.telemetry.emit_decision(
                user_id=p.user_id, decision=decision, outcome=DecisionOutcome.BLOCKED.value
            )
            logger.info(
                "action blocked action_id=%s user_id=%s windows=%s",
                p.action_id,
                p.user_id,
                ",".join(decision.blocked_windows),
            )
            raise PolicyBlockedError(
                decision.blocked_reason or "blocked by override window",
                decision=decision,
            )

        # claim the action_id before any side effect; a duplicate fails here
        self.decisions.record(p, decision, DecisionOutcome.PENDING)

        # -------------------------------
        # APPROVAL REQUIRED
        # -------------------------------
        if decision.requires_approval:
            request = self.approvals.create(p, decision, ttl_seconds=ttl_seconds)
            self.decisions.set_outcome(
                p.action_id,
                DecisionOutcome.APPROVAL_REQUESTED,
                reason=decision.approval_reason,
                request_id=request.id,
            )
            self.telemetry.emit_decision(
                user_id=p.user_id,
                decision=decision,
                outcome=DecisionOutcome.APPROVAL_REQUESTED.value,
            )
            return ProposalOutcome(
                decision=decision,
                outcome=DecisionOutcome.APPROVAL_REQUESTED,
                approval_request=request,
            )

        # -------------------------------
        # UNATTENDED EXECUTION
        # -------------------------------
        result = self.execution.execute(
            action_id=p.action_id,
            user_id=p.user_id,
            action_type=p.action_type,
            capability=decision.capability,
            parameters=p.parameters,
        )
        outcome = DecisionOutcome.EXECUTED if result.ok else DecisionOutcome.EXECUTION_FAILED
        self.decisions.set_outcome(p.action_id, outcome, reason=result.error)
        self.telemetry.emit_decision(user_id=p.user_id, decision=decision, outcome=outcome.value)
        logger.info(
            "action decided action_id=%s user_id=%s outcome=%s",
            p.action_id,
            p.user_id,
            outcome.value,
        )
        return ProposalOutcome(decision=decision, outcome=outcome, execution=result)

    # ============================================================
    # APPROVALS
    # ============================================================
    def list_pending_approvals(self, user_id: str) -> List[ApprovalRequest]:
        return self.approvals.list_pending(user_id)

    def get_approval(self, request_id: str, *, user_id: Optional[str] = None) -> ApprovalRequest:
        """With a user given, only the owner or an affected participant may read it."""
        request = self.approvals.get(request_id)
        if user_id is not None and not can_respond(request, user_id):
            raise NotAuthorizedError(f"user {user_id} is not a participant of request {request.id}")
        return request

    def respond_to_approval(
        self,
        request_id: str,
        user_id: str,
        response: Union[ResponseType, str],
        *,
        reasoning: Optional[str] = None,
        modifications: Optional[Dict[str, Any]] = None,
        user_name: Optional[str] = None,
    ) -> ApprovalRequest:
        return self.approvals.respond(
            request_id,
            user_id,
            response,
            reasoning=reasoning,
            modifications=modifications,
            user_name=user_name,
        )

    def execute_approved_action(
        self, request_id: str, *, user_id: Optional[str] = None
    ) -> ExecutionResult:
        try:
            result = self.approvals.execute(request_id, user_id=user_id)
        except ExecutionFailure as e:
            if e.request is not None:
                self._set_outcome(
                    e.request.action_id, DecisionOutcome.EXECUTION_FAILED, e.request.execution_error
                )
            raise

        self._set_outcome(result.action_id, DecisionOutcome.EXECUTED, None)
        return result

    def get_approval_stats(self, user_id: str) -> ApprovalStats:
        return self.approvals.stats(user_id)

    def sweep_expired(self) -> int:
        return self.approvals.sweep_expired()

    # ============================================================
    # RECOMMENDATIONS + HISTORY
    # ============================================================
    def get_recommendations(self, user_id: str) -> List[AutonomyRecommendation]:
        settings = self.settings_store.get(user_id)

        requests: List[ApprovalRequest] = []
        for capability in sorted(settings.capabilities):
            requests.extend(
                self.approvals.history(
                    user_id,
                    statuses=list(DECIDED_STATUSES),
                    capability=capability,
                    limit=self.config.recommendation_window,
                )
            )
        requests.sort(key=lambda r: r.created_at, reverse=True)
        return self.analyzer.analyze(settings, requests)

    def get_action_history(
        self, user_id: str, *, limit: int = 50, offset: int = 0
    ) -> List[DecisionRecord]:
        uid = (user_id or "").strip() if isinstance(user_id, str) else ""
        if not uid:
            raise ValidationError("user_id is required")
        return self.decisions.list_for_user(uid, limit=limit, offset=offset)

    # ============================================================
    # INTERNAL
    # ============================================================
    def _set_outcome(
        self, action_id: str, outcome: DecisionOutcome, reason: Optional[str]
    ) -> None:
        if not self.decisions.exists(action_id):
            # requests opened outside propose_action have no log row
            return
        self.decisions.set_outcome(action_id, outcome, reason=reason)


def _parse_proposal(proposal: Union[ActionProposal, Mapping[str, Any]]) -> ActionProposal:
    if isinstance(proposal, ActionProposal):
        return proposal
    if not isinstance(proposal, Mapping):
        raise ValidationError("action proposal must be an object")
    try:
        return ActionProposal.model_validate(dict(proposal))
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic("invalid action proposal", e)
