"""
Attempt Pipeline

Runs one submitted exercise video through validation, AI analysis, metric
mapping and persistence, and serves the read-side queries over the store.

Stages per submission:
    received -> validated -> analyzing -> mapped -> persisted -> responded
with two terminal failures, validation_failed and analysis_failed. A failure
short-circuits to the caller; nothing is retried and a submission never
re-enters analyzing.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from fastapi import Depends

from core.config import settings
from core.exceptions import APIException, AnalysisFailed, PayloadTooLarge, ValidationError
from schemas import (
    AnalysisResult,
    Attempt,
    LeaderboardEntry,
    LeaderboardLevel,
    Profile,
    ProfileUpdate,
    TestType,
    UserStats,
)
from services.analysis_client import GeminiAnalysisClient, get_analysis_client
from services.attempt_store import (
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_LEADERBOARD_LIMIT,
    AttemptStore,
    get_attempt_store,
)

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    ANALYZING = "analyzing"
    MAPPED = "mapped"
    PERSISTED = "persisted"
    RESPONDED = "responded"
    VALIDATION_FAILED = "validation_failed"
    ANALYSIS_FAILED = "analysis_failed"


@dataclass
class VideoSubmission:
    """One multipart upload as received by the API."""
    user_id: Optional[str]
    test_type: Optional[str]
    content: Optional[bytes]
    content_type: Optional[str] = None
    filename: Optional[str] = None


@dataclass
class SubmissionRun:
    submission: VideoSubmission
    stage: PipelineStage = PipelineStage.RECEIVED
    stages: List[PipelineStage] = field(default_factory=lambda: [PipelineStage.RECEIVED])
    analysis: Optional[AnalysisResult] = None
    attempt: Optional[Attempt] = None

    def advance(self, stage: PipelineStage) -> None:
        self.stage = stage
        self.stages.append(stage)
        logger.debug(
            f"Submission stage: {stage.value}",
            extra={"extra_fields": {"stage": stage.value, "user_id": self.submission.user_id}},
        )


class AttemptPipeline:
    """Orchestrates analysis client and attempt store for the API layer."""

    def __init__(
        self,
        analysis_client: GeminiAnalysisClient,
        store: AttemptStore,
        max_upload_bytes: int = 100 * 1024 * 1024,
    ):
        self.analysis_client = analysis_client
        self.store = store
        self.max_upload_bytes = max_upload_bytes

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def validate(self, submission: VideoSubmission) -> None:
        if not submission.content:
            raise ValidationError("No video file provided", field="video")
        if not submission.test_type or not submission.user_id:
            raise ValidationError("Missing testType or userId")
        if submission.content_type and not submission.content_type.startswith("video/"):
            raise ValidationError("Only video files allowed", field="video")
        if len(submission.content) > self.max_upload_bytes:
            raise PayloadTooLarge(len(submission.content), self.max_upload_bytes)
        try:
            TestType(submission.test_type)
        except ValueError:
            raise ValidationError(f"Unknown testType: {submission.test_type}", field="testType")

    def submit(self, submission: VideoSubmission) -> SubmissionRun:
        """Validate, analyze and persist one attempt."""
        run = SubmissionRun(submission=submission)

        try:
            self.validate(submission)
        except APIException:
            run.advance(PipelineStage.VALIDATION_FAILED)
            raise
        run.advance(PipelineStage.VALIDATED)

        logger.info(
            f"Analyzing {submission.test_type} attempt for user {submission.user_id}",
            extra={"extra_fields": {
                "user_id": submission.user_id,
                "test_type": submission.test_type,
                "bytes": len(submission.content),
            }},
        )
        run.advance(PipelineStage.ANALYZING)
        try:
            analysis = self.analysis_client.analyze(submission.content, submission.test_type)
        except APIException:
            run.advance(PipelineStage.ANALYSIS_FAILED)
            raise
        except Exception as e:
            run.advance(PipelineStage.ANALYSIS_FAILED)
            logger.error(f"Test analysis error: {e}", exc_info=True)
            raise AnalysisFailed() from e
        run.analysis = analysis
        run.advance(PipelineStage.MAPPED)

        attempt = Attempt(
            id=str(uuid.uuid4()),
            user_id=submission.user_id,
            test_type=submission.test_type,
            video_url=None,
            analysis_result=analysis.model_dump(mode="json", by_alias=True),
            metrics=analysis.metrics,
            form_score=analysis.form_score,
            badge=analysis.badge,
            recommendations=analysis.recommendations,
            created_at=datetime.now(timezone.utc),
        )
        try:
            run.attempt = self.store.save_attempt(attempt)
        except Exception as e:
            run.advance(PipelineStage.ANALYSIS_FAILED)
            logger.error(f"Failed to save attempt {attempt.id}: {e}", exc_info=True)
            raise AnalysisFailed() from e
        run.advance(PipelineStage.PERSISTED)

        logger.info(
            f"Saved attempt {run.attempt.id}",
            extra={"extra_fields": {
                "attempt_id": run.attempt.id,
                "form_score": run.attempt.form_score,
                "badge": run.attempt.badge,
            }},
        )
        run.advance(PipelineStage.RESPONDED)
        return run

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def history(self, user_id: str, test_type: Optional[str] = None,
                limit: int = DEFAULT_HISTORY_LIMIT) -> List[Attempt]:
        return self.store.get_history(user_id, test_type, limit)

    def stats(self, user_id: str) -> UserStats:
        return self.store.get_user_stats(user_id)

    def leaderboard(
        self,
        level: LeaderboardLevel = LeaderboardLevel.DISTRICT,
        sport: Optional[str] = None,
        region: Optional[str] = None,
        limit: int = DEFAULT_LEADERBOARD_LIMIT,
    ) -> List[LeaderboardEntry]:
        return self.store.get_leaderboard(level, sport, region, limit)

    def get_profile(self, user_id: str) -> Optional[Profile]:
        return self.store.get_profile(user_id)

    def save_profile(self, user_id: str, update: ProfileUpdate) -> Profile:
        profile = Profile(id=user_id, **update.model_dump(exclude_unset=True))
        return self.store.save_profile(profile)


def get_attempt_pipeline(
    store: AttemptStore = Depends(get_attempt_store),
    analysis_client: GeminiAnalysisClient = Depends(get_analysis_client),
) -> AttemptPipeline:
    """FastAPI dependency: pipeline over the app's store and Gemini client."""
    return AttemptPipeline(analysis_client, store, max_upload_bytes=settings.MAX_UPLOAD_BYTES)
