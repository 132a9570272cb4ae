"""
Training Plans API Router

Endpoints for:
- Generating a personalized plan from test history
- Acknowledging a chosen plan
"""
import logging

from fastapi import APIRouter, Depends

from schemas import MessageResponse, TrainingPlanResponse, TrainingPlanSave
from services.analysis_client import GeminiAnalysisClient, get_analysis_client
from services.attempt_store import AttemptStore, get_attempt_store
from services.training_plans import TrainingPlanService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/training-plans", tags=["Training Plans"])


def get_training_plan_service(
    store: AttemptStore = Depends(get_attempt_store),
    analysis_client: GeminiAnalysisClient = Depends(get_analysis_client),
) -> TrainingPlanService:
    return TrainingPlanService(analysis_client, store)


@router.get("/{user_id}", response_model=TrainingPlanResponse)
def get_training_plan(
    user_id: str,
    service: TrainingPlanService = Depends(get_training_plan_service),
):
    plan = service.generate(user_id)
    return TrainingPlanResponse(plan=plan, user_level=plan.difficulty)


@router.post("/{user_id}", response_model=MessageResponse)
def save_training_plan(user_id: str, body: TrainingPlanSave):
    # Plans are not persisted; the client keeps its own copy
    logger.info(
        f"Training plan selected by user {user_id}",
        extra={"extra_fields": {"user_id": user_id, "plan_id": body.plan_id}},
    )
    return MessageResponse(message="Training plan saved successfully")
