# services/autonomy_settings_store.py

from __future__ import annotations

import logging
import math
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

import sqlalchemy as sa
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from models.autonomy_settings import (
    DEFAULT_CAPABILITY_LEVELS,
    AutonomySettings,
    SettingsChange,
    SettingsUpdate,
    clamp_level,
)
from models.autonomy_tables import autonomy_settings, autonomy_settings_history
from services.autonomy.errors import ValidationError
from services.database_service import as_utc, utc_now

logger = logging.getLogger(__name__)

_SCALAR_FIELDS = (
    "work_hours_override",
    "family_time_override",
    "sleep_hours_override",
    "financial_threshold",
    "time_commitment_threshold",
    "people_affected_threshold",
)

_THRESHOLD_FIELDS = (
    "financial_threshold",
    "time_commitment_threshold",
    "people_affected_threshold",
)


# ============================================================
# MERGE (PURE, VALIDATES ONCE AT THE BOUNDARY)
# ============================================================
def parse_update(partial: Union[SettingsUpdate, Mapping[str, Any]]) -> SettingsUpdate:
    if isinstance(partial, SettingsUpdate):
        return partial
    if not isinstance(partial, Mapping):
        raise ValidationError("settings update must be an object")
    try:
        return SettingsUpdate.model_validate(dict(partial))
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic("invalid settings update", e)


def merge_settings(
    current: AutonomySettings,
    update: SettingsUpdate,
    *,
    now: datetime,
    allow_new_capabilities: bool = False,
) -> Tuple[AutonomySettings, Dict[str, Dict[str, Any]]]:
    """
    Returns (new settings, field -> {"from", "to"} changes).
    Raises ValidationError without touching anything when any field is bad.
    """
    errors: List[Dict[str, Any]] = []
    capabilities = dict(current.capabilities)

    for key, raw in (update.capabilities or {}).items():
        if not isinstance(key, str) or not key.strip():
            errors.append({"loc": ["capabilities"], "msg": "capability key must be a non-empty string"})
            continue
        if key not in capabilities and not allow_new_capabilities:
            errors.append({"loc": ["capabilities", key], "msg": "unknown capability"})
            continue
        if isinstance(raw, bool) or not isinstance(raw, int):
            errors.append({"loc": ["capabilities", key], "msg": "level must be an integer"})
            continue
        capabilities[key] = clamp_level(raw)

    scalars: Dict[str, Any] = {}
    for name in _SCALAR_FIELDS:
        value = getattr(update, name)
        if value is None:
            continue
        if name in _THRESHOLD_FIELDS:
            if isinstance(value, float) and not math.isfinite(value):
                errors.append({"loc": [name], "msg": "threshold must be finite"})
                continue
            if value < 0:
                errors.append({"loc": [name], "msg": "threshold must be >= 0"})
                continue
        scalars[name] = value

    if errors:
        raise ValidationError("invalid settings update", errors=errors)

    new = current.model_copy(
        update={"capabilities": capabilities, "updated_at": now, **scalars}
    )

    changes: Dict[str, Dict[str, Any]] = {}
    for key, level in capabilities.items():
        old = current.capabilities.get(key)
        if old != level:
            changes[f"capabilities.{key}"] = {"from": old, "to": level}
    for name, value in scalars.items():
        old = getattr(current, name)
        if old != value:
            changes[name] = {"from": old, "to": value}

    return new, changes


# ============================================================
# POLICY STORE
# ============================================================
class AutonomySettingsStore:
    """
    CANONICAL POLICY STORE

    - one AutonomySettings row per user
    - first-time users read system defaults (nothing is written on read)
    - every update is one transaction replacing the whole row + a history entry
    - read-mostly: cached per user, invalidated on update
    - a read that raced an update never fills the cache (per-user generation)
    """

    def __init__(
        self,
        engine: Engine,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._engine = engine
        self._clock = clock
        self._cache: Dict[str, AutonomySettings] = {}
        self._generations: Dict[str, int] = {}
        self._epoch = 0
        self._cache_lock = Lock()
        self._write_lock = Lock()

    # ============================================================
    # READ
    # ============================================================
    def get(self, user_id: str) -> AutonomySettings:
        uid = _require_user_id(user_id)

        with self._cache_lock:
            cached = self._cache.get(uid)
            seen = (self._epoch, self._generations.get(uid, 0))
        if cached is not None:
            return cached

        with self._engine.connect() as conn:
            settings = self._load(conn, uid)

        with self._cache_lock:
            # an update invalidated while we were loading; our row may be stale
            if seen == (self._epoch, self._generations.get(uid, 0)):
                self._cache[uid] = settings
        return settings

    def history(self, user_id: str, *, limit: int = 50) -> List[SettingsChange]:
        uid = _require_user_id(user_id)
        t = autonomy_settings_history
        with self._engine.connect() as conn:
            rows = conn.execute(
                sa.select(t.c.user_id, t.c.changed_at, t.c.changes)
                .where(t.c.user_id == uid)
                .order_by(t.c.changed_at.desc(), t.c.id.desc())
                .limit(max(1, int(limit)))
            ).all()
        return [
            SettingsChange(
                user_id=r.user_id,
                changed_at=as_utc(r.changed_at),
                changes=r.changes or {},
            )
            for r in rows
        ]

    # ============================================================
    # WRITE
    # ============================================================
    def update(
        self,
        user_id: str,
        partial: Union[SettingsUpdate, Mapping[str, Any]],
        *,
        allow_new_capabilities: bool = False,
    ) -> AutonomySettings:
        uid = _require_user_id(user_id)
        upd = parse_update(partial)

        with self._write_lock:
            try:
                new, changes = self._apply(uid, upd, allow_new_capabilities)
            except IntegrityError:
                # another process inserted this user's first row; merge onto it
                logger.info("settings row created concurrently user_id=%s; retrying", uid)
                new, changes = self._apply(uid, upd, allow_new_capabilities)

            self.invalidate(uid)

        if changes:
            logger.info(
                "autonomy settings updated user_id=%s fields=%s",
                uid,
                ",".join(sorted(changes.keys())),
            )
        return new

    def invalidate(self, user_id: Optional[str] = None) -> None:
        with self._cache_lock:
            if user_id is None:
                self._epoch += 1
                self._cache.clear()
            else:
                self._generations[user_id] = self._generations.get(user_id, 0) + 1
                self._cache.pop(user_id, None)

    # ============================================================
    # INTERNAL
    # ============================================================
    def _apply(
        self, uid: str, upd: SettingsUpdate, allow_new_capabilities: bool
    ) -> Tuple[AutonomySettings, Dict[str, Dict[str, Any]]]:
        with self._engine.begin() as conn:
            current = self._load(conn, uid)
            now = self._clock()
            new, changes = merge_settings(
                current,
                upd,
                now=now,
                allow_new_capabilities=allow_new_capabilities,
            )
            self._write(conn, new, exists=current.updated_at is not None)
            if changes:
                conn.execute(
                    sa.insert(autonomy_settings_history).values(
                        user_id=uid, changed_at=now, changes=changes
                    )
                )
        return new, changes

    def _load(self, conn: Connection, user_id: str) -> AutonomySettings:
        row = conn.execute(
            sa.select(autonomy_settings).where(autonomy_settings.c.user_id == user_id)
        ).first()
        if row is None:
            return AutonomySettings.defaults_for(user_id)

        capabilities = dict(DEFAULT_CAPABILITY_LEVELS)
        capabilities.update(
            {str(k): clamp_level(v) for k, v in (row.capabilities or {}).items()}
        )
        return AutonomySettings(
            user_id=row.user_id,
            capabilities=capabilities,
            work_hours_override=bool(row.work_hours_override),
            family_time_override=bool(row.family_time_override),
            sleep_hours_override=bool(row.sleep_hours_override),
            financial_threshold=float(row.financial_threshold),
            time_commitment_threshold=int(row.time_commitment_threshold),
            people_affected_threshold=int(row.people_affected_threshold),
            updated_at=as_utc(row.updated_at),
        )

    @staticmethod
    def _write(conn: Connection, settings: AutonomySettings, *, exists: bool) -> None:
        values = {
            "capabilities": dict(settings.capabilities),
            "work_hours_override": settings.work_hours_override,
            "family_time_override": settings.family_time_override,
            "sleep_hours_override": settings.sleep_hours_override,
            "financial_threshold": float(settings.financial_threshold),
            "time_commitment_threshold": int(settings.time_commitment_threshold),
            "people_affected_threshold": int(settings.people_affected_threshold),
            "updated_at": settings.updated_at,
        }
        if exists:
            conn.execute(
                sa.update(autonomy_settings)
                .where(autonomy_settings.c.user_id == settings.user_id)
                .values(**values)
            )
        else:
            conn.execute(
                sa.insert(autonomy_settings).values(user_id=settings.user_id, **values)
            )


def _require_user_id(user_id: str) -> str:
    uid = (user_id or "").strip() if isinstance(user_id, str) else ""
    if not uid:
        raise ValidationError("user_id is required")
    return uid
