"""Stall scoring and leaderboard recomputation.

score = avg_rating * 0.7 + min(visits / 20, 5) * 0.3, rounded half away from
zero to two decimals. Stalls without any feedback or visit are not ranked.

Stalls are scored in ascending id order and sorted with Python's stable sort
on score only, so among equal scores the lower stall id gets the lower rank
number. Ranks are dense: 1..N without gaps.

A recomputation replaces the whole ``stall_rankings`` table inside one
transaction, serialized by a row lock on the ``ranking:lock`` config row.
Readers therefore see either the previous or the new ranking set. When the
freshly computed set equals the stored one no ranking row is written, so
repeated runs leave the table (including ``computed_at``) untouched. Every run,
changed or not, stamps the ``ranking:last_computed_at`` config row.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import transaction
from engine_errors import StorageUnavailable
from models import RANKING_LAST_RUN_KEY, RANKING_LOCK_KEY, Feedback, Stall, StallRanking, StallVisit, SystemConfig
from schemas import RankingRunResponse
from stall_queries import get_leaderboard
from time_utils import now_tz

logger = logging.getLogger(__name__)

RATING_WEIGHT = Decimal("0.7")
VISIT_WEIGHT = Decimal("0.3")
VISITS_PER_POINT = Decimal(20)
MAX_VISIT_POINTS = Decimal(5)
SCORE_QUANTUM = Decimal("0.01")


@dataclass(frozen=True)
class StallScore:
    stall_id: int
    score: float
    avg_rating: float
    total_feedback: int
    total_visits: int


@dataclass(frozen=True)
class RankedStall:
    stall_id: int
    rank: int
    score: float
    avg_rating: float
    total_feedback: int
    total_visits: int


def round_half_away_from_zero(value: Decimal, quantum: Decimal = SCORE_QUANTUM) -> Decimal:
    # Decimal's ROUND_HALF_UP rounds ties away from zero.
    return value.quantize(quantum, rounding=ROUND_HALF_UP)


def compute_stall_score(stall_id: int, rating_sum: int, rating_count: int, visit_count: int) -> StallScore:
    avg_rating = Decimal(rating_sum) / Decimal(rating_count) if rating_count else Decimal(0)
    normalized_visits = min(Decimal(visit_count) / VISITS_PER_POINT, MAX_VISIT_POINTS)
    score = avg_rating * RATING_WEIGHT + normalized_visits * VISIT_WEIGHT
    return StallScore(
        stall_id=stall_id,
        score=float(round_half_away_from_zero(score)),
        avg_rating=float(round_half_away_from_zero(avg_rating)),
        total_feedback=int(rating_count),
        total_visits=int(visit_count),
    )


def rank_stall_scores(scores: Sequence[StallScore]) -> List[RankedStall]:
    ordered = sorted(scores, key=lambda item: item.score, reverse=True)
    return [
        RankedStall(
            stall_id=item.stall_id,
            rank=position,
            score=item.score,
            avg_rating=item.avg_rating,
            total_feedback=item.total_feedback,
            total_visits=item.total_visits,
        )
        for position, item in enumerate(ordered, start=1)
    ]


def load_stall_scores(db: Session) -> List[StallScore]:
    feedback_stats: Dict[int, Tuple[int, int]] = {
        stall_id: (int(rating_sum or 0), int(rating_count or 0))
        for stall_id, rating_sum, rating_count in (
            db.query(Feedback.stall_id, func.sum(Feedback.rating), func.count(Feedback.id))
            .group_by(Feedback.stall_id)
            .all()
        )
    }
    visit_counts: Dict[int, int] = {
        stall_id: int(visit_count or 0)
        for stall_id, visit_count in (
            db.query(StallVisit.stall_id, func.count(StallVisit.id))
            .group_by(StallVisit.stall_id)
            .all()
        )
    }

    scores: List[StallScore] = []
    for (stall_id,) in db.query(Stall.id).order_by(Stall.id.asc()).all():
        if stall_id not in feedback_stats and stall_id not in visit_counts:
            continue
        rating_sum, rating_count = feedback_stats.get(stall_id, (0, 0))
        scores.append(compute_stall_score(stall_id, rating_sum, rating_count, visit_counts.get(stall_id, 0)))
    return scores


def _acquire_ranking_lock(db: Session) -> SystemConfig:
    lock_row = (
        db.query(SystemConfig)
        .filter(SystemConfig.key == RANKING_LOCK_KEY)
        .with_for_update()
        .first()
    )
    if lock_row is None:
        lock_row = SystemConfig(key=RANKING_LOCK_KEY, value="stall_rankings")
        db.add(lock_row)
        try:
            db.flush()
        except IntegrityError as exc:
            # Another run created the lock row first.
            logger.warning("Ranking lock row created concurrently, recompute aborted")
            raise StorageUnavailable("Rankings are being recomputed, please retry") from exc
    return lock_row


def _record_run(db: Session, run_at: datetime) -> None:
    row = db.query(SystemConfig).filter(SystemConfig.key == RANKING_LAST_RUN_KEY).first()
    if row is None:
        db.add(SystemConfig(key=RANKING_LAST_RUN_KEY, value=run_at.isoformat()))
    else:
        row.value = run_at.isoformat()


def _signature(rows: Iterable) -> List[Tuple[int, int, float, float, int, int]]:
    return [
        (row.stall_id, row.rank, float(row.score), float(row.avg_rating), row.total_feedback, row.total_visits)
        for row in rows
    ]


def _build_ranking_rows(ranked: Sequence[RankedStall], computed_at: datetime) -> List[StallRanking]:
    return [
        StallRanking(
            stall_id=item.stall_id,
            rank=item.rank,
            score=item.score,
            avg_rating=item.avg_rating,
            total_feedback=item.total_feedback,
            total_visits=item.total_visits,
            computed_at=computed_at,
        )
        for item in ranked
    ]


def recompute_rankings(db: Session) -> RankingRunResponse:
    computed_at: Optional[datetime] = None
    with transaction(db):
        _acquire_ranking_lock(db)
        ranked = rank_stall_scores(load_stall_scores(db))
        existing = db.query(StallRanking).order_by(StallRanking.rank.asc()).all()
        changed = _signature(existing) != _signature(ranked)
        run_at = now_tz()
        _record_run(db, run_at)
        if changed:
            computed_at = run_at
            db.query(StallRanking).delete()
            db.add_all(_build_ranking_rows(ranked, computed_at))
        elif existing:
            computed_at = existing[0].computed_at

    if changed:
        logger.info("Rankings recomputed: %s stalls ranked", len(ranked))
    else:
        logger.info("Rankings unchanged: %s stalls ranked", len(ranked))
    return RankingRunResponse(
        total_stalls=len(ranked),
        changed=changed,
        computed_at=computed_at,
        rankings=get_leaderboard(db),
    )
