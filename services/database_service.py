# services/database_service.py

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from models.autonomy_tables import metadata

logger = logging.getLogger(__name__)

_BASE_PATH = Path(".data")
_DEFAULT_SQLITE_URL = f"sqlite+pysqlite:///{_BASE_PATH / 'autonomy.db'}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo on the way back; stored values are always UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def db_url() -> str:
    url = (os.getenv("DATABASE_URL") or "").strip()
    if not url:
        return _DEFAULT_SQLITE_URL

    # Force psycopg3 driver, because bare postgres/postgresql URLs may resolve to psycopg2 dialect.
    if url.startswith("postgres://"):
        url = "postgresql+psycopg://" + url[len("postgres://") :]
    elif url.startswith("postgresql://") and not url.startswith("postgresql+psycopg://"):
        url = "postgresql+psycopg://" + url[len("postgresql://") :]

    return url


def create_db_engine(url: Optional[str] = None) -> Engine:
    url = url or db_url()

    if url.startswith("sqlite"):
        if ":memory:" in url or url.rstrip("/").endswith("sqlite+pysqlite:"):
            # One shared connection, otherwise every checkout sees an empty DB.
            return sa.create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                future=True,
            )
        _BASE_PATH.mkdir(parents=True, exist_ok=True)
        return sa.create_engine(
            url, connect_args={"check_same_thread": False}, future=True
        )

    return sa.create_engine(url, pool_pre_ping=True, future=True)


def init_schema(engine: Engine) -> None:
    """
    Create missing tables. Production PostgreSQL schemas are owned by Alembic;
    this keeps local SQLite runs and tests self-contained.
    """
    metadata.create_all(engine)
    logger.info("autonomy schema ready (dialect=%s)", engine.dialect.name)
