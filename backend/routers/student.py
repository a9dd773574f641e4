from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth import Principal
from database import get_db
from feedback_ledger import scan_stall, submit_feedback
from schemas import (
    FeedbackSubmitRequest,
    FeedbackSubmitResponse,
    StallScanRequest,
    StallScanResponse,
    VisitHistoryResponse,
)
from security import require_student
from stall_queries import get_visit_history

router = APIRouter()


@router.post("/student/scan-stall", response_model=StallScanResponse)
def student_scan_stall(
    payload: StallScanRequest,
    principal: Principal = Depends(require_student),
    db: Session = Depends(get_db),
):
    return scan_stall(db, principal.id, payload.stall_qr_token)


@router.post("/student/submit-feedback", response_model=FeedbackSubmitResponse, status_code=201)
def student_submit_feedback(
    payload: FeedbackSubmitRequest,
    principal: Principal = Depends(require_student),
    db: Session = Depends(get_db),
):
    return submit_feedback(db, principal.id, payload.stall_id, payload.rating, payload.comment)


@router.get("/student/my-visits", response_model=VisitHistoryResponse)
def student_my_visits(principal: Principal = Depends(require_student), db: Session = Depends(get_db)):
    return get_visit_history(db, principal.id)
