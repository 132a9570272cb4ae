"""
Fitness Test API Router

Endpoints for:
- Submitting an exercise video for AI scoring
- Attempt history per user
- Aggregate stats per user
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from core.config import settings
from schemas import AnalyzeResponse, HistoryResponse, StatsResponse
from services.attempt_store import DEFAULT_HISTORY_LIMIT
from services.request_pipeline import AttemptPipeline, VideoSubmission, get_attempt_pipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tests", tags=["Tests"])


def read_upload(upload: Optional[UploadFile], limit_bytes: int) -> Optional[bytes]:
    """Read at most limit_bytes + 1 so oversize uploads are detectable without buffering them whole."""
    if upload is None:
        return None
    try:
        return upload.file.read(limit_bytes + 1)
    finally:
        upload.file.close()


@router.post("/analyze", response_model=AnalyzeResponse)
def analyze_test(
    video: Optional[UploadFile] = File(None),
    testType: Optional[str] = Form(None),
    userId: Optional[str] = Form(None),
    pipeline: AttemptPipeline = Depends(get_attempt_pipeline),
):
    """
    Score one exercise video.

    Multipart fields: video (file), testType, userId.
    """
    submission = VideoSubmission(
        user_id=userId,
        test_type=testType,
        content=read_upload(video, settings.MAX_UPLOAD_BYTES),
        content_type=video.content_type if video else None,
        filename=video.filename if video else None,
    )
    run = pipeline.submit(submission)
    return AnalyzeResponse(attempt=run.attempt, analysis=run.analysis)


@router.get("/history/{user_id}", response_model=HistoryResponse)
def get_test_history(
    user_id: str,
    testType: Optional[str] = Query(None),
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=0),
    pipeline: AttemptPipeline = Depends(get_attempt_pipeline),
):
    return HistoryResponse(attempts=pipeline.history(user_id, testType, limit))


@router.get("/stats/{user_id}", response_model=StatsResponse)
def get_user_stats(
    user_id: str,
    pipeline: AttemptPipeline = Depends(get_attempt_pipeline),
):
    return StatsResponse(stats=pipeline.stats(user_id))
