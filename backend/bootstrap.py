"""One-time schema bootstrap guarded by a marker row in ``system_config``."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from database import Base, SessionLocal, engine
from migrations import (
    ensure_feedback_unique_index,
    ensure_ranking_lock_row,
    ensure_student_admission_column,
    reconcile_feedback_counters,
)
from models import SystemConfig

logger = logging.getLogger(__name__)

MIGRATION_MARKER_KEY = "migration:event_backend_bootstrap:v1"


def _marker(db: Session) -> Optional[SystemConfig]:
    return db.query(SystemConfig).filter(SystemConfig.key == MIGRATION_MARKER_KEY).first()


def has_bootstrap_marker() -> bool:
    with SessionLocal() as db:
        return _marker(db) is not None


def set_bootstrap_marker() -> None:
    stamp = datetime.now(timezone.utc).isoformat()
    with SessionLocal() as db:
        row = _marker(db)
        if row is None:
            db.add(SystemConfig(key=MIGRATION_MARKER_KEY, value=stamp))
        else:
            row.value = stamp
        db.commit()


def clear_bootstrap_marker() -> bool:
    with SessionLocal() as db:
        row = _marker(db)
        if row is None:
            return False
        db.delete(row)
        db.commit()
    return True


def run_bootstrap_migrations() -> None:
    # New tables first; the ensure_* steps only patch tables that predate them.
    Base.metadata.create_all(bind=engine)
    ensure_student_admission_column(engine)
    ensure_feedback_unique_index(engine)
    reconcile_feedback_counters(engine)
    with SessionLocal() as db:
        ensure_ranking_lock_row(db)
    logger.info("Schema migrations applied.")
