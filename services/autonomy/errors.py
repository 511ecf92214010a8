# services/autonomy/errors.py

from __future__ import annotations

from typing import Any, Dict, List, Optional


class AutonomyError(RuntimeError):
    """Base for every error raised by the autonomy engine."""

    def to_dict(self) -> Dict[str, Any]:
        return {"error": type(self).__name__, "detail": str(self)}


class ValidationError(AutonomyError):
    """
    Malformed input rejected at the boundary.
    Nothing is ever partially applied when this is raised.
    """

    def __init__(self, message: str, *, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors: List[Dict[str, Any]] = list(errors or [])

    @classmethod
    def from_pydantic(cls, message: str, exc: Any) -> "ValidationError":
        return cls(
            message,
            errors=[
                {"loc": list(err.get("loc", ())), "msg": err.get("msg")}
                for err in exc.errors()
            ],
        )

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        if self.errors:
            d["errors"] = self.errors
        return d


class PolicyBlockedError(AutonomyError):
    """Override-window hard block. Definitive refusal, never retried."""

    def __init__(self, message: str, *, decision: Any = None):
        super().__init__(message)
        self.decision = decision

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        if self.decision is not None:
            d["decision"] = self.decision.model_dump(mode="json")
        return d


class NotFoundError(AutonomyError):
    pass


class NotAuthorizedError(AutonomyError):
    pass


class _WorkflowError(AutonomyError):
    """Workflow errors always carry the authoritative request state."""

    def __init__(self, message: str, *, request: Any = None):
        super().__init__(message)
        self.request = request

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        if self.request is not None:
            d["request"] = self.request.model_dump(mode="json")
        return d


class InvalidStateTransitionError(_WorkflowError):
    pass


class ExecutionFailure(_WorkflowError):
    def __init__(self, message: str, *, request: Any = None, result: Any = None):
        super().__init__(message, request=request)
        self.result = result

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        if self.result is not None:
            d["result"] = self.result.model_dump(mode="json")
        return d
