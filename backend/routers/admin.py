import csv
import io
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from openpyxl import Workbook
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth import Principal
from database import get_db, transaction
from models import School, Stall
from schemas import (
    EventStatsResponse,
    ExportFormatEnum,
    QrCodeResponse,
    StallAdminResponse,
    StallCreate,
)
from security import require_admin
from stall_queries import get_event_stats, get_leaderboard, list_stalls
from token_codec import issue_stall_token
from utils import log_admin_action, render_qr_data_url

router = APIRouter()

LEADERBOARD_HEADERS = [
    "Rank", "Stall Number", "Stall Name", "School", "Score",
    "Average Rating", "Total Feedback", "Total Visits", "Computed At",
]


@router.get("/admin/stats", response_model=EventStatsResponse)
def admin_stats(admin: Principal = Depends(require_admin), db: Session = Depends(get_db)):
    return get_event_stats(db)


@router.get("/admin/stalls", response_model=List[StallAdminResponse])
def admin_list_stalls(admin: Principal = Depends(require_admin), db: Session = Depends(get_db)):
    return list_stalls(db)


@router.post("/admin/stalls", response_model=StallAdminResponse, status_code=201)
def admin_create_stall(
    payload: StallCreate,
    request: Request,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    school = None
    if payload.school_id is not None:
        school = db.query(School).filter(School.id == payload.school_id).first()
        if not school:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="School not found")
    if db.query(Stall.id).filter(Stall.stall_number == payload.stall_number).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Stall number already exists")

    stall = Stall(
        stall_number=payload.stall_number,
        stall_name=payload.stall_name,
        school_id=payload.school_id,
        description=payload.description,
        location=payload.location,
        qr_code_token=issue_stall_token(payload.stall_number),
        total_feedback_count=0,
    )
    try:
        with transaction(db):
            db.add(stall)
    except IntegrityError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Stall number already exists")
    db.refresh(stall)
    log_admin_action(
        db,
        admin,
        "create_stall",
        method=request.method,
        path=request.url.path,
        meta={"stall_id": stall.id, "stall_number": stall.stall_number},
    )
    return StallAdminResponse(
        id=stall.id,
        stall_number=stall.stall_number,
        stall_name=stall.stall_name,
        school_name=school.school_name if school else None,
        description=stall.description,
        location=stall.location,
        qr_code_token=stall.qr_code_token,
        total_feedback_count=stall.total_feedback_count,
    )


@router.get("/admin/stalls/{stall_id}/qr-code", response_model=QrCodeResponse)
def admin_stall_qr_code(stall_id: int, admin: Principal = Depends(require_admin), db: Session = Depends(get_db)):
    stall = db.query(Stall).filter(Stall.id == stall_id).first()
    if not stall:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Stall not found")
    return QrCodeResponse(
        token=stall.qr_code_token,
        qr_code=render_qr_data_url(stall.qr_code_token),
        subject=stall.stall_number,
    )


@router.get("/admin/export/leaderboard")
def export_leaderboard(
    request: Request,
    format: ExportFormatEnum = Query(ExportFormatEnum.CSV),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    entries = get_leaderboard(db)
    rows = [
        [
            e.rank, e.stall_number, e.stall_name, e.school_name or "", e.score,
            e.avg_rating, e.total_feedback, e.total_visits, e.computed_at.isoformat(),
        ]
        for e in entries
    ]
    log_admin_action(
        db,
        admin,
        "export_leaderboard",
        method=request.method,
        path=request.url.path,
        meta={"format": format.value, "rows": len(rows)},
    )

    if format == ExportFormatEnum.XLSX:
        wb = Workbook()
        ws = wb.active
        ws.title = "Leaderboard"
        ws.append(LEADERBOARD_HEADERS)
        for row in rows:
            ws.append(row)

        output = io.BytesIO()
        wb.save(output)
        output.seek(0)

        return StreamingResponse(
            output,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={"Content-Disposition": "attachment; filename=leaderboard.xlsx"}
        )

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(LEADERBOARD_HEADERS)
    writer.writerows(rows)

    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=leaderboard.csv"}
    )
