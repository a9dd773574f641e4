from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from engine_errors import RankingNotFound, StudentNotFound, UnknownStall
from models import (
    FEEDBACK_LIMIT_PER_STUDENT,
    RANKING_LAST_RUN_KEY,
    AdmissionState,
    Feedback,
    School,
    StaffRole,
    StaffUser,
    Stall,
    StallRanking,
    StallVisit,
    Student,
    SystemConfig,
)
from schemas import (
    EventStatsResponse,
    LeaderboardEntry,
    StallAdminResponse,
    VisitHistoryEntry,
    VisitHistoryResponse,
)


def _leaderboard_query(db: Session):
    return (
        db.query(StallRanking, Stall, School.school_name)
        .join(Stall, Stall.id == StallRanking.stall_id)
        .outerjoin(School, School.id == Stall.school_id)
    )


def _leaderboard_entry(ranking: StallRanking, stall: Stall, school_name: Optional[str]) -> LeaderboardEntry:
    return LeaderboardEntry(
        stall_id=ranking.stall_id,
        rank=ranking.rank,
        score=ranking.score,
        avg_rating=ranking.avg_rating,
        total_feedback=ranking.total_feedback,
        total_visits=ranking.total_visits,
        computed_at=ranking.computed_at,
        stall_name=stall.stall_name,
        stall_number=stall.stall_number,
        school_name=school_name,
    )


def get_leaderboard(db: Session, limit: Optional[int] = None) -> List[LeaderboardEntry]:
    # Single SELECT, so a concurrent recompute is seen either entirely or not at all.
    query = _leaderboard_query(db).order_by(StallRanking.rank.asc())
    if limit is not None:
        query = query.limit(limit)
    return [_leaderboard_entry(ranking, stall, school_name) for ranking, stall, school_name in query.all()]


def get_rank_for_stall(db: Session, stall_id: int) -> LeaderboardEntry:
    if not db.query(Stall.id).filter(Stall.id == stall_id).first():
        raise UnknownStall()
    row = _leaderboard_query(db).filter(StallRanking.stall_id == stall_id).first()
    if not row:
        raise RankingNotFound()
    ranking, stall, school_name = row
    return _leaderboard_entry(ranking, stall, school_name)


def get_visit_history(db: Session, student_id: int) -> VisitHistoryResponse:
    student = db.query(Student).filter(Student.id == student_id).first()
    if not student:
        raise StudentNotFound()
    rows = (
        db.query(Feedback, Stall, School.school_name)
        .join(Stall, Stall.id == Feedback.stall_id)
        .outerjoin(School, School.id == Stall.school_id)
        .filter(Feedback.student_id == student_id)
        .order_by(Feedback.submitted_at.desc(), Feedback.id.desc())
        .all()
    )
    visits = [
        VisitHistoryEntry(
            stall_id=stall.id,
            stall_number=stall.stall_number,
            stall_name=stall.stall_name,
            school_name=school_name,
            rating=feedback.rating,
            comment=feedback.comment,
            visited_at=feedback.submitted_at,
        )
        for feedback, stall, school_name in rows
    ]
    return VisitHistoryResponse(
        total_visits=len(visits),
        remaining_feedbacks=FEEDBACK_LIMIT_PER_STUDENT - student.feedback_count,
        visits=visits,
    )


def list_stalls(db: Session) -> List[StallAdminResponse]:
    rows = (
        db.query(Stall, School.school_name)
        .outerjoin(School, School.id == Stall.school_id)
        .order_by(Stall.stall_number.asc())
        .all()
    )
    return [
        StallAdminResponse(
            id=stall.id,
            stall_number=stall.stall_number,
            stall_name=stall.stall_name,
            school_name=school_name,
            description=stall.description,
            location=stall.location,
            qr_code_token=stall.qr_code_token,
            total_feedback_count=stall.total_feedback_count or 0,
        )
        for stall, school_name in rows
    ]


def get_last_ranking_run(db: Session) -> Optional[datetime]:
    """When the ranking job last ran, whether or not it changed the leaderboard."""
    row = db.query(SystemConfig).filter(SystemConfig.key == RANKING_LAST_RUN_KEY).first()
    if row is None:
        return db.query(func.max(StallRanking.computed_at)).scalar()
    return datetime.fromisoformat(row.value)


def get_event_stats(db: Session) -> EventStatsResponse:
    return EventStatsResponse(
        total_students=db.query(func.count(Student.id)).scalar() or 0,
        total_volunteers=(
            db.query(func.count(StaffUser.id))
            .filter(StaffUser.role == StaffRole.VOLUNTEER, StaffUser.is_active == True)  # noqa: E712
            .scalar()
            or 0
        ),
        total_stalls=db.query(func.count(Stall.id)).scalar() or 0,
        active_check_ins=(
            db.query(func.count(Student.id))
            .filter(Student.admission_state == AdmissionState.INSIDE)
            .scalar()
            or 0
        ),
        total_feedbacks=db.query(func.count(Feedback.id)).scalar() or 0,
        total_visits=db.query(func.count(StallVisit.id)).scalar() or 0,
        ranked_stalls=db.query(func.count(StallRanking.id)).scalar() or 0,
        last_ranking_at=get_last_ranking_run(db),
    )
