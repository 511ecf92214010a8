# services/override_schedule_service.py

from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Dict, Mapping, Optional, Protocol, Union

from pydantic import ValidationError as PydanticValidationError

from models.override_schedule import OverrideSchedule
from services.autonomy.errors import ValidationError

logger = logging.getLogger(__name__)


class OverrideScheduleProvider(Protocol):
    """Supplies a user's work/family/sleep window boundaries."""

    def get_schedule(self, user_id: str) -> OverrideSchedule: ...

    def set_schedule(
        self, user_id: str, schedule: Union[OverrideSchedule, Mapping[str, Any]]
    ) -> OverrideSchedule: ...


class OverrideScheduleService:
    """
    Default provider: per-user schedules held in process memory.

    Profile/calendar integrations replace this with their own provider;
    users without a declared schedule get the default windows.
    """

    def __init__(self, default: Optional[OverrideSchedule] = None) -> None:
        self._default = default or OverrideSchedule()
        self._schedules: Dict[str, OverrideSchedule] = {}
        self._lock = Lock()

    def get_schedule(self, user_id: str) -> OverrideSchedule:
        with self._lock:
            return self._schedules.get(user_id, self._default)

    def set_schedule(
        self, user_id: str, schedule: Union[OverrideSchedule, Mapping[str, Any]]
    ) -> OverrideSchedule:
        if not isinstance(schedule, OverrideSchedule):
            if not isinstance(schedule, Mapping):
                raise ValidationError("override schedule must be an object")
            try:
                schedule = OverrideSchedule.model_validate(dict(schedule))
            except PydanticValidationError as e:
                raise ValidationError.from_pydantic("invalid override schedule", e)

        with self._lock:
            self._schedules[user_id] = schedule
        logger.info("override schedule updated user_id=%s timezone=%s", user_id, schedule.timezone)
        return schedule
