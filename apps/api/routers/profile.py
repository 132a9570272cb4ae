"""
Profile API Router

Read and upsert the athlete profile used for leaderboard grouping.
"""
from fastapi import APIRouter, Depends

from schemas import ProfileResponse, ProfileUpdate
from services.request_pipeline import AttemptPipeline, get_attempt_pipeline

router = APIRouter(prefix="/api/profile", tags=["Profile"])


@router.get("/{user_id}", response_model=ProfileResponse)
def get_profile(user_id: str, pipeline: AttemptPipeline = Depends(get_attempt_pipeline)):
    """Profile or null when the user has never saved one."""
    return ProfileResponse(profile=pipeline.get_profile(user_id))


@router.post("/{user_id}", response_model=ProfileResponse)
def save_profile(
    user_id: str,
    update: ProfileUpdate,
    pipeline: AttemptPipeline = Depends(get_attempt_pipeline),
):
    return ProfileResponse(profile=pipeline.save_profile(user_id, update))
