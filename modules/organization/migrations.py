# modules/organization/migrations.py
from __future__ import annotations

import logging
from typing import Set

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

from database.connection import engine as default_engine

logger = logging.getLogger(__name__)


def _get_columns(engine: Engine, table: str) -> Set[str]:
    insp = inspect(engine)
    if not insp.has_table(table):
        return set()
    return {c["name"] for c in insp.get_columns(table)}


def migrate_rooms_columns(engine: Engine = default_engine) -> None:
    """
    Bring a `rooms` table created by an older build up to date:
    - is_active (rooms predating deactivation are active)
    - lock_version (per-room write serialization counter)
    """
    cols = _get_columns(engine, "rooms")
    if not cols:
        return

    with engine.begin() as conn:
        if "is_active" not in cols:
            conn.execute(text("ALTER TABLE rooms ADD COLUMN is_active BOOLEAN DEFAULT 1"))
            conn.execute(text("UPDATE rooms SET is_active = 1 WHERE is_active IS NULL"))
            logger.info("Added rooms.is_active")
        if "lock_version" not in cols:
            conn.execute(text("ALTER TABLE rooms ADD COLUMN lock_version INTEGER DEFAULT 0"))
            conn.execute(text("UPDATE rooms SET lock_version = 0 WHERE lock_version IS NULL"))
            logger.info("Added rooms.lock_version")


def run_startup_migrations(engine: Engine = default_engine) -> None:
    migrate_rooms_columns(engine)
