"""
Leaderboard API Router
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from schemas import LeaderboardLevel, LeaderboardResponse
from services.attempt_store import DEFAULT_LEADERBOARD_LIMIT
from services.request_pipeline import AttemptPipeline, get_attempt_pipeline

router = APIRouter(prefix="/api/leaderboard", tags=["Leaderboard"])


@router.get("", response_model=LeaderboardResponse)
def get_leaderboard(
    level: LeaderboardLevel = Query(LeaderboardLevel.DISTRICT),
    sport: Optional[str] = Query(None),
    region: Optional[str] = Query(None),
    limit: int = Query(DEFAULT_LEADERBOARD_LIMIT, ge=0),
    pipeline: AttemptPipeline = Depends(get_attempt_pipeline),
):
    """
    Users ranked by best form score.

    sport="All" disables the sport filter. region filters on district for
    level=district and on state for level=state; national ignores it.
    """
    return LeaderboardResponse(leaderboard=pipeline.leaderboard(level, sport, region, limit))
