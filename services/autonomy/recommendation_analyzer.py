# services/autonomy/recommendation_analyzer.py

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from models.approval_request import ApprovalRequest, ApprovalStatus, ResponseType
from models.autonomy_settings import MAX_LEVEL, MIN_LEVEL, AutonomySettings
from models.recommendation import AutonomyRecommendation, RecommendationType
from services.autonomy.policy_config import AutonomyPolicyConfig, get_policy_config

DECIDED_STATUSES = (
    ApprovalStatus.APPROVED,
    ApprovalStatus.EXECUTED,
    ApprovalStatus.REJECTED,
    ApprovalStatus.EXPIRED,
)


def _accepted_as_is(request: ApprovalRequest) -> bool:
    if request.status not in (ApprovalStatus.APPROVED, ApprovalStatus.EXECUTED):
        return False
    return not any(r.response == ResponseType.MODIFY for r in request.responses)


class AutonomyRecommendationAnalyzer:
    """
    Mines decided approval requests per capability and proposes level changes.

    Advisory only: nothing here writes settings. The owner accepts or ignores.
    """

    def __init__(self, config: Optional[AutonomyPolicyConfig] = None) -> None:
        self.config = config or get_policy_config()

    def analyze(
        self,
        settings: AutonomySettings,
        requests: Iterable[ApprovalRequest],
    ) -> List[AutonomyRecommendation]:
        """
        `requests` must be newest first; only the most recent window per
        capability is considered. Pending requests are ignored.
        """
        window = self.config.recommendation_window

        by_capability: Dict[str, List[ApprovalRequest]] = {}
        for r in requests:
            if r.status not in DECIDED_STATUSES:
                continue
            bucket = by_capability.setdefault(r.capability, [])
            if len(bucket) < window:
                bucket.append(r)

        out: List[AutonomyRecommendation] = []
        for capability in sorted(by_capability):
            if capability not in settings.capabilities:
                continue
            rec = self._analyze_capability(
                capability, settings.level_for(capability), by_capability[capability]
            )
            if rec is not None:
                out.append(rec)
        return out

    def _analyze_capability(
        self, capability: str, current: int, sample: List[ApprovalRequest]
    ) -> Optional[AutonomyRecommendation]:
        n = len(sample)
        if n < self.config.recommendation_min_sample:
            return None

        acceptance = sum(1 for r in sample if _accepted_as_is(r)) / n
        rejection = sum(1 for r in sample if r.status == ApprovalStatus.REJECTED) / n

        if rejection >= self.config.reject_watermark and current > MIN_LEVEL:
            return AutonomyRecommendation(
                type=RecommendationType.DECREASE_AUTONOMY,
                capability=capability,
                reason=(
                    f"{rejection:.0%} of the last {n} {capability} requests were rejected"
                ),
                current_level=current,
                suggested_level=max(MIN_LEVEL, current - self.config.step_down),
                sample_size=n,
                acceptance_rate=round(acceptance, 4),
                rejection_rate=round(rejection, 4),
            )

        if acceptance >= self.config.accept_watermark and current < MAX_LEVEL:
            return AutonomyRecommendation(
                type=RecommendationType.INCREASE_AUTONOMY,
                capability=capability,
                reason=(
                    f"{acceptance:.0%} of the last {n} {capability} requests were "
                    "approved without changes"
                ),
                current_level=current,
                suggested_level=min(MAX_LEVEL, current + self.config.step_up),
                sample_size=n,
                acceptance_rate=round(acceptance, 4),
                rejection_rate=round(rejection, 4),
            )

        return None
