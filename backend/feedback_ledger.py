"""Stall scanning, feedback submission and stall visit recording.

A student may hold one feedback per stall and at most
``FEEDBACK_LIMIT_PER_STUDENT`` feedbacks overall. Both limits are enforced by
the database: the ``(student_id, stall_id)`` unique index rejects a second
insert and the student counter is only incremented while it is below the
limit. The lookups done before the insert only pick the right error for the
common case.
"""
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from admission_state import get_student, is_eligible_for_stall_actions, resolve_student_token
from database import transaction
from engine_errors import DuplicateFeedback, InvalidRating, InvalidToken, LimitExceeded, NotEligible, UnknownStall
from models import FEEDBACK_LIMIT_PER_STUDENT, AdmissionState, Feedback, Stall, StallVisit, Student
from schemas import (
    ExistingFeedback,
    FeedbackRecordResponse,
    FeedbackSubmitResponse,
    StallScanResponse,
    StallSummary,
    StallVisitResponse,
)
from time_utils import now_tz
from token_codec import verify_stall_token

logger = logging.getLogger(__name__)

VALID_RATINGS = frozenset(range(1, 6))


def _school_name(stall: Stall) -> Optional[str]:
    return stall.school.school_name if stall.school else None


def stall_summary(stall: Stall) -> StallSummary:
    return StallSummary(
        id=stall.id,
        stall_number=stall.stall_number,
        stall_name=stall.stall_name,
        school_name=_school_name(stall),
        description=stall.description,
        location=stall.location,
    )


def resolve_stall_token(db: Session, token: str) -> Stall:
    check = verify_stall_token(token)
    if not check.valid:
        raise InvalidToken()
    stall = db.query(Stall).filter(Stall.qr_code_token == token).first()
    if not stall or stall.stall_number != check.subject:
        raise InvalidToken()
    return stall


def _find_existing_feedback(db: Session, student_id: int, stall_id: int) -> Optional[Feedback]:
    return (
        db.query(Feedback)
        .filter(Feedback.student_id == student_id, Feedback.stall_id == stall_id)
        .first()
    )


def validate_rating(rating) -> int:
    # bool is an int subclass; True must not pass as a rating of 1.
    if isinstance(rating, bool) or not isinstance(rating, int) or rating not in VALID_RATINGS:
        raise InvalidRating()
    return rating


def scan_stall(db: Session, student_id: int, stall_qr_token: str) -> StallScanResponse:
    stall = resolve_stall_token(db, stall_qr_token)
    student = get_student(db, student_id)
    if not is_eligible_for_stall_actions(student):
        raise NotEligible("You must be checked in at the event to scan stalls")

    existing = _find_existing_feedback(db, student.id, stall.id)
    return StallScanResponse(
        stall=stall_summary(stall),
        already_reviewed=existing is not None,
        existing_feedback=ExistingFeedback(
            rating=existing.rating,
            comment=existing.comment,
            submitted_at=existing.submitted_at,
        ) if existing else None,
    )


def submit_feedback(
    db: Session,
    student_id: int,
    stall_id: int,
    rating,
    comment: Optional[str] = None,
) -> FeedbackSubmitResponse:
    student = get_student(db, student_id)
    if not is_eligible_for_stall_actions(student):
        raise NotEligible("You must be checked in at the event to submit feedback")
    if student.feedback_count >= FEEDBACK_LIMIT_PER_STUDENT:
        raise LimitExceeded()

    stall = db.query(Stall).filter(Stall.id == stall_id).first()
    if not stall:
        raise UnknownStall()
    if _find_existing_feedback(db, student_id, stall_id):
        raise DuplicateFeedback()
    rating_value = validate_rating(rating)

    feedback = Feedback(
        student_id=student_id,
        stall_id=stall_id,
        rating=rating_value,
        comment=comment or None,
        submitted_at=now_tz(),
    )
    try:
        with transaction(db):
            db.add(feedback)
            db.flush()
            incremented = (
                db.query(Student)
                .filter(
                    Student.id == student_id,
                    Student.admission_state == AdmissionState.INSIDE,
                    Student.feedback_count < FEEDBACK_LIMIT_PER_STUDENT,
                )
                .update({Student.feedback_count: Student.feedback_count + 1}, synchronize_session=False)
            )
            if not incremented:
                db.refresh(student)
                if not is_eligible_for_stall_actions(student):
                    raise NotEligible("You must be checked in at the event to submit feedback")
                raise LimitExceeded()
            db.query(Stall).filter(Stall.id == stall_id).update(
                {Stall.total_feedback_count: Stall.total_feedback_count + 1},
                synchronize_session=False,
            )
    except IntegrityError:
        logger.info("Duplicate feedback rejected by unique index: student=%s stall=%s", student_id, stall_id)
        raise DuplicateFeedback()

    db.refresh(student)
    total_given = student.feedback_count
    logger.info("Feedback %s recorded: student=%s stall=%s rating=%s", feedback.id, student_id, stall_id, rating_value)
    return FeedbackSubmitResponse(
        feedback=FeedbackRecordResponse(
            id=feedback.id,
            stall_name=stall.stall_name,
            stall_number=stall.stall_number,
            rating=feedback.rating,
            comment=feedback.comment,
            submitted_at=feedback.submitted_at,
        ),
        total_feedbacks_given=total_given,
        remaining_feedbacks=FEEDBACK_LIMIT_PER_STUDENT - total_given,
    )


def record_stall_visit(
    db: Session,
    student_qr_token: str,
    stall_qr_token: str,
    recorded_by: Optional[int] = None,
) -> StallVisitResponse:
    student = resolve_student_token(db, student_qr_token)
    stall = resolve_stall_token(db, stall_qr_token)
    if not is_eligible_for_stall_actions(student):
        raise NotEligible("Student must be checked in at the event before visiting stalls")

    visit = StallVisit(
        student_id=student.id,
        stall_id=stall.id,
        recorded_by=recorded_by,
        visited_at=now_tz(),
    )
    with transaction(db):
        db.add(visit)
    db.refresh(visit)
    logger.info("Stall visit recorded: student=%s stall=%s", student.registration_no, stall.stall_number)
    return StallVisitResponse(
        id=visit.id,
        student_id=visit.student_id,
        stall_id=visit.stall_id,
        stall_number=stall.stall_number,
        visited_at=visit.visited_at,
    )
