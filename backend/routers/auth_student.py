import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from admission_state import get_admission_history, get_student
from auth import ROLE_STUDENT, Principal, decode_token, issue_principal_tokens, principal_from_payload, verify_password
from database import get_db, transaction
from models import Student
from schemas import (
    AdmissionEventResponse,
    QrCodeResponse,
    RefreshTokenRequest,
    StudentLogin,
    StudentResponse,
    TokenResponse,
)
from security import require_student
from token_codec import issue_student_token
from utils import render_qr_data_url

logger = logging.getLogger(__name__)

router = APIRouter()


def student_response(student: Student) -> StudentResponse:
    return StudentResponse(
        id=student.id,
        full_name=student.full_name,
        email=student.email,
        registration_no=student.registration_no,
        school_name=student.school.school_name if student.school else None,
        phone=student.phone,
        admission_state=student.admission_state.value,
        feedback_count=student.feedback_count,
        created_at=student.created_at,
    )


def _student_tokens(student: Student) -> TokenResponse:
    tokens = issue_principal_tokens(Principal(id=student.id, role=ROLE_STUDENT))
    return TokenResponse(
        access_token=tokens["access_token"],
        refresh_token=tokens["refresh_token"],
        role=ROLE_STUDENT,
        student=student_response(student),
    )


def ensure_student_qr_token(db: Session, student: Student) -> str:
    if student.qr_code_token:
        return student.qr_code_token
    with transaction(db):
        student.qr_code_token = issue_student_token(student.registration_no)
    db.refresh(student)
    logger.info("QR token issued for student %s", student.registration_no)
    return student.qr_code_token


@router.post("/student/login", response_model=TokenResponse)
def student_login(login_data: StudentLogin, db: Session = Depends(get_db)):
    query = db.query(Student)
    if login_data.email:
        student = query.filter(Student.email == login_data.email.lower()).first()
    else:
        student = query.filter(Student.registration_no == login_data.registration_no).first()
    if not student or not verify_password(login_data.password, student.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return _student_tokens(student)


@router.post("/student/refresh", response_model=TokenResponse)
def student_refresh(request: RefreshTokenRequest, db: Session = Depends(get_db)):
    principal = principal_from_payload(decode_token(request.refresh_token), expected_type="refresh")
    if principal.role != ROLE_STUDENT:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")
    student = db.query(Student).filter(Student.id == principal.id).first()
    if not student:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return _student_tokens(student)


@router.get("/student/profile", response_model=StudentResponse)
def get_student_profile(principal: Principal = Depends(require_student), db: Session = Depends(get_db)):
    return student_response(get_student(db, principal.id))


@router.get("/student/qr-code", response_model=QrCodeResponse)
def get_student_qr_code(principal: Principal = Depends(require_student), db: Session = Depends(get_db)):
    student = get_student(db, principal.id)
    token = ensure_student_qr_token(db, student)
    return QrCodeResponse(token=token, qr_code=render_qr_data_url(token), subject=student.registration_no)


@router.get("/student/check-in-history", response_model=List[AdmissionEventResponse])
def get_student_check_in_history(principal: Principal = Depends(require_student), db: Session = Depends(get_db)):
    return get_admission_history(db, principal.id)
