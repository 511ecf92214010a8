"""
ACTION EXECUTION SERVICE (KANONSKI EXECUTION ADAPTER)

- invokes the external Action Executor once a decision or an approved
  request authorizes it
- does no governance/approval of its own
- never retries: re-running a side-effecting action must be a human decision
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Protocol

from models.approval_request import ExecutionResult
from services.database_service import utc_now

logger = logging.getLogger(__name__)


class ActionExecutor(Protocol):
    """
    External collaborator that performs the actual side effect.
    Returns an output dict on success, raises on failure.
    """

    def execute(
        self,
        *,
        action_id: str,
        user_id: str,
        action_type: str,
        capability: str,
        parameters: Dict[str, Any],
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]: ...


class LoggingActionExecutor:
    """
    Default executor for deployments without a real one wired in:
    acknowledges the action and logs it, no side effects.
    """

    def execute(
        self,
        *,
        action_id: str,
        user_id: str,
        action_type: str,
        capability: str,
        parameters: Dict[str, Any],
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        logger.info(
            "action dispatched action_id=%s user_id=%s action_type=%s capability=%s request_id=%s",
            action_id,
            user_id,
            action_type,
            capability,
            request_id,
        )
        return {"dispatched": True, "parameter_keys": sorted(parameters.keys())}


class ActionExecutionService:
    def __init__(
        self,
        executor: Optional[ActionExecutor] = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.executor: ActionExecutor = executor or LoggingActionExecutor()
        self._clock = clock

    # ============================================================
    # EXECUTE (SINGLE ATTEMPT)
    # ============================================================
    def execute(
        self,
        *,
        action_id: str,
        user_id: str,
        action_type: str,
        capability: str,
        parameters: Dict[str, Any],
        request_id: Optional[str] = None,
    ) -> ExecutionResult:
        try:
            output = self.executor.execute(
                action_id=action_id,
                user_id=user_id,
                action_type=action_type,
                capability=capability,
                parameters=dict(parameters or {}),
                request_id=request_id,
            )
        except Exception as e:  # noqa: BLE001
            logger.warning(
                "action execution failed action_id=%s request_id=%s error=%s",
                action_id,
                request_id,
                str(e),
            )
            return ExecutionResult(
                ok=False,
                action_id=action_id,
                request_id=request_id,
                error=str(e) or type(e).__name__,
                executed_at=self._clock(),
            )

        return ExecutionResult(
            ok=True,
            action_id=action_id,
            request_id=request_id,
            output=output if isinstance(output, dict) else {"result": output},
            executed_at=self._clock(),
        )
