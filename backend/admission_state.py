import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from database import transaction
from engine_errors import AdmissionConflict, InvalidToken, StudentNotFound
from models import AdmissionAction, AdmissionEvent, AdmissionState, Student
from schemas import AdmissionActionEnum, AdmissionEventResponse, AdmissionResponse, AdmissionStateEnum
from time_utils import now_tz
from token_codec import verify_student_token

logger = logging.getLogger(__name__)

# action -> (required current state, next state)
TRANSITIONS: Dict[AdmissionAction, Tuple[AdmissionState, AdmissionState]] = {
    AdmissionAction.CHECK_IN: (AdmissionState.OUTSIDE, AdmissionState.INSIDE),
    AdmissionAction.CHECK_OUT: (AdmissionState.INSIDE, AdmissionState.OUTSIDE),
}

_CONFLICT_MESSAGES = {
    AdmissionAction.CHECK_IN: "Student is already checked in",
    AdmissionAction.CHECK_OUT: "Student is not checked in",
}


def is_eligible_for_stall_actions(student: Optional[Student]) -> bool:
    if student is None:
        return False
    return student.admission_state == AdmissionState.INSIDE


def get_student(db: Session, student_id: int) -> Student:
    student = db.query(Student).filter(Student.id == student_id).first()
    if not student:
        raise StudentNotFound()
    return student


def resolve_student_token(db: Session, token: str) -> Student:
    check = verify_student_token(token)
    if not check.valid:
        raise InvalidToken()
    student = db.query(Student).filter(Student.qr_code_token == token).first()
    if not student or student.registration_no != check.subject:
        raise InvalidToken()
    return student


def _transition(
    db: Session,
    student_id: int,
    action: AdmissionAction,
    recorded_by: Optional[int] = None,
) -> AdmissionResponse:
    required_state, next_state = TRANSITIONS[action]
    occurred_at = now_tz()
    with transaction(db):
        student = get_student(db, student_id)
        # Conditional update: two gate scanners racing on one student cannot both win.
        updated = (
            db.query(Student)
            .filter(Student.id == student_id, Student.admission_state == required_state)
            .update({Student.admission_state: next_state}, synchronize_session=False)
        )
        if not updated:
            logger.info("Rejected %s for student %s: state is not %s", action.value, student_id, required_state.value)
            raise AdmissionConflict(_CONFLICT_MESSAGES[action])
        db.add(
            AdmissionEvent(
                student_id=student_id,
                action=action,
                recorded_by=recorded_by,
                occurred_at=occurred_at,
            )
        )
    db.refresh(student)
    logger.info("Student %s %s (recorded_by=%s)", student.registration_no, action.value, recorded_by)
    return AdmissionResponse(
        student_id=student.id,
        registration_no=student.registration_no,
        full_name=student.full_name,
        admission_state=AdmissionStateEnum(student.admission_state.value),
        action=AdmissionActionEnum(action.value),
        occurred_at=occurred_at,
    )


def check_in(db: Session, student_id: int, recorded_by: Optional[int] = None) -> AdmissionResponse:
    return _transition(db, student_id, AdmissionAction.CHECK_IN, recorded_by)


def check_out(db: Session, student_id: int, recorded_by: Optional[int] = None) -> AdmissionResponse:
    return _transition(db, student_id, AdmissionAction.CHECK_OUT, recorded_by)


def check_in_by_token(db: Session, student_qr_token: str, recorded_by: Optional[int] = None) -> AdmissionResponse:
    student = resolve_student_token(db, student_qr_token)
    return check_in(db, student.id, recorded_by)


def check_out_by_token(db: Session, student_qr_token: str, recorded_by: Optional[int] = None) -> AdmissionResponse:
    student = resolve_student_token(db, student_qr_token)
    return check_out(db, student.id, recorded_by)


def get_admission_history(db: Session, student_id: int) -> List[AdmissionEventResponse]:
    rows = (
        db.query(AdmissionEvent)
        .filter(AdmissionEvent.student_id == student_id)
        .order_by(AdmissionEvent.occurred_at.desc(), AdmissionEvent.id.desc())
        .all()
    )
    return [
        AdmissionEventResponse(
            id=row.id,
            action=AdmissionActionEnum(row.action.value),
            occurred_at=row.occurred_at,
            recorded_by=row.recorded_by,
        )
        for row in rows
    ]
