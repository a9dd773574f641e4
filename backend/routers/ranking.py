from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from auth import Principal
from database import get_db
from ranking_engine import recompute_rankings
from schemas import LeaderboardEntry, RankingRunResponse
from security import require_admin
from stall_queries import get_leaderboard, get_rank_for_stall
from utils import log_admin_action

router = APIRouter()

MAX_TOP_LIMIT = 100


@router.get("/ranking", response_model=List[LeaderboardEntry])
def list_rankings(db: Session = Depends(get_db)):
    return get_leaderboard(db)


@router.get("/ranking/top/{limit}", response_model=List[LeaderboardEntry])
def top_rankings(limit: int, db: Session = Depends(get_db)):
    if limit < 1 or limit > MAX_TOP_LIMIT:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Limit must be between 1 and {MAX_TOP_LIMIT}",
        )
    return get_leaderboard(db, limit=limit)


@router.get("/ranking/stall/{stall_id}", response_model=LeaderboardEntry)
def stall_ranking(stall_id: int, db: Session = Depends(get_db)):
    return get_rank_for_stall(db, stall_id)


@router.post("/ranking/calculate", response_model=RankingRunResponse)
def calculate_rankings(
    request: Request,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    result = recompute_rankings(db)
    log_admin_action(
        db,
        admin,
        "recompute_rankings",
        method=request.method,
        path=request.url.path,
        meta={"total_stalls": result.total_stalls, "changed": result.changed},
    )
    return result
