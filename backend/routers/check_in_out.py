from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from admission_state import check_in_by_token, check_out_by_token
from auth import Principal
from database import get_db
from feedback_ledger import record_stall_visit
from schemas import AdmissionResponse, GateScanRequest, StallVisitRequest, StallVisitResponse
from security import require_volunteer

router = APIRouter()


@router.post("/check-in-out/check-in", response_model=AdmissionResponse)
def gate_check_in(
    payload: GateScanRequest,
    principal: Principal = Depends(require_volunteer),
    db: Session = Depends(get_db),
):
    return check_in_by_token(db, payload.student_qr_token, recorded_by=principal.id)


@router.post("/check-in-out/check-out", response_model=AdmissionResponse)
def gate_check_out(
    payload: GateScanRequest,
    principal: Principal = Depends(require_volunteer),
    db: Session = Depends(get_db),
):
    return check_out_by_token(db, payload.student_qr_token, recorded_by=principal.id)


@router.post("/check-in-out/stall-visit", response_model=StallVisitResponse, status_code=201)
def stall_visit(
    payload: StallVisitRequest,
    principal: Principal = Depends(require_volunteer),
    db: Session = Depends(get_db),
):
    return record_stall_visit(db, payload.student_qr_token, payload.stall_qr_token, recorded_by=principal.id)
