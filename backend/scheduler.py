import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from database import SessionLocal
from engine_errors import EngineError
from ranking_engine import recompute_rankings

logger = logging.getLogger(__name__)

RANKING_JOB_ID = "stall_ranking_recompute"

scheduler: Optional[BackgroundScheduler] = None


def run_scheduled_recompute() -> None:
    db = SessionLocal()
    try:
        result = recompute_rankings(db)
        logger.info("Scheduled ranking recompute finished: stalls=%s changed=%s", result.total_stalls, result.changed)
    except EngineError as exc:
        logger.error("Scheduled ranking recompute failed: %s", exc.message)
    finally:
        db.close()


def start_scheduler(interval_minutes: int) -> bool:
    """Start the periodic ranking job. Returns False when disabled.

    A fresh scheduler is built on every start; a shut down
    ``BackgroundScheduler`` cannot be started again.
    """
    global scheduler
    if interval_minutes <= 0:
        logger.info("Ranking scheduler disabled (RANKING_REFRESH_MINUTES=0)")
        return False
    if scheduler is not None and scheduler.running:
        logger.info("Ranking scheduler already running")
        return True
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        run_scheduled_recompute,
        trigger=IntervalTrigger(minutes=interval_minutes),
        id=RANKING_JOB_ID,
        name="Recompute stall rankings",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("Ranking scheduler started: every %s minutes", interval_minutes)
    return True


def stop_scheduler() -> None:
    global scheduler
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Ranking scheduler stopped")
    scheduler = None
