import logging

from sqlalchemy import inspect, text
from sqlalchemy.orm import Session

from models import RANKING_LOCK_KEY, SystemConfig

logger = logging.getLogger(__name__)


def _table_exists(conn, table_name: str) -> bool:
    return inspect(conn).has_table(table_name)


def _column_exists(conn, table_name: str, column_name: str) -> bool:
    if not _table_exists(conn, table_name):
        return False
    return any(column["name"] == column_name for column in inspect(conn).get_columns(table_name))


def ensure_student_admission_column(engine):
    """Replace the legacy ``is_inside_event`` flag with the admission state column."""
    with engine.begin() as conn:
        if not _table_exists(conn, "students"):
            return
        if not _column_exists(conn, "students", "admission_state"):
            if conn.dialect.name == "postgresql":
                conn.execute(
                    text(
                        """
                        DO $$ BEGIN
                            CREATE TYPE admissionstate AS ENUM ('OUTSIDE', 'INSIDE');
                        EXCEPTION WHEN duplicate_object THEN NULL;
                        END $$;
                        """
                    )
                )
                conn.execute(
                    text("ALTER TABLE students ADD COLUMN admission_state admissionstate NOT NULL DEFAULT 'OUTSIDE'")
                )
            else:
                conn.execute(
                    text("ALTER TABLE students ADD COLUMN admission_state VARCHAR(7) NOT NULL DEFAULT 'OUTSIDE'")
                )
            logger.info("Added students.admission_state column")

        if _column_exists(conn, "students", "is_inside_event"):
            conn.execute(
                text(
                    """
                    UPDATE students
                    SET admission_state = 'INSIDE'
                    WHERE is_inside_event = :inside
                    """
                ),
                {"inside": True},
            )
            conn.execute(text("ALTER TABLE students DROP COLUMN is_inside_event"))
            logger.info("Migrated students.is_inside_event into admission_state")


def ensure_feedback_unique_index(engine):
    with engine.begin() as conn:
        if not _table_exists(conn, "feedbacks"):
            return
        # Keep the earliest feedback per (student, stall) before the index can be built.
        removed = conn.execute(
            text(
                """
                DELETE FROM feedbacks
                WHERE id NOT IN (
                    SELECT MIN(id) FROM feedbacks GROUP BY student_id, stall_id
                )
                """
            )
        ).rowcount
        if removed:
            logger.warning("Removed %s duplicate feedback rows", removed)
        conn.execute(
            text(
                """
                CREATE UNIQUE INDEX IF NOT EXISTS uq_feedbacks_student_stall
                ON feedbacks (student_id, stall_id)
                """
            )
        )


def reconcile_feedback_counters(engine):
    """Rebuild the denormalized student and stall counters from the feedback rows."""
    with engine.begin() as conn:
        if not (_table_exists(conn, "feedbacks") and _table_exists(conn, "students") and _table_exists(conn, "stalls")):
            return
        conn.execute(
            text(
                """
                UPDATE students
                SET feedback_count = (
                    SELECT COUNT(*) FROM feedbacks WHERE feedbacks.student_id = students.id
                )
                """
            )
        )
        conn.execute(
            text(
                """
                UPDATE stalls
                SET total_feedback_count = (
                    SELECT COUNT(*) FROM feedbacks WHERE feedbacks.stall_id = stalls.id
                )
                """
            )
        )


def ensure_ranking_lock_row(db: Session):
    row = db.query(SystemConfig).filter(SystemConfig.key == RANKING_LOCK_KEY).first()
    if not row:
        db.add(SystemConfig(key=RANKING_LOCK_KEY, value="stall_rankings"))
        db.commit()
