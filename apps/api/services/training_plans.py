"""
Training plan generation from a user's test history.

Gemini drafts a plan from the user's stats and recent attempts. This is
enrichment: any failure (no key, call error, unparseable reply) returns the
fixed basic plan instead of an error.
"""
import logging
from typing import List

from pydantic import ValidationError as PydanticValidationError

from schemas import Attempt, PlanExercise, TrainingPlan, UserStats
from services.analysis_client import GeminiAnalysisClient
from services.attempt_store import AttemptStore

logger = logging.getLogger(__name__)

RECENT_ATTEMPTS_FOR_PLAN = 10

BASIC_PLAN = TrainingPlan(
    name="Basic Fitness Plan",
    difficulty="Intermediate",
    duration="4 weeks",
    focus=["Overall Fitness"],
    exercises=[
        PlanExercise(name="Push-ups", sets=3, reps="10-15", rest="60s"),
        PlanExercise(name="Squats", sets=3, reps="15-20", rest="45s"),
        PlanExercise(name="Plank", sets=3, reps="30s", rest="30s"),
    ],
    schedule="3 days per week",
)


def build_plan_prompt(stats: UserStats, attempts: List[Attempt]) -> str:
    recent = ", ".join(f"{a.test_type}: {a.form_score:g}/100" for a in attempts[:5]) or "none yet"
    average = stats.average_form_score or 60
    return f"""You are an expert fitness trainer. Based on this user's performance data, create a personalized training plan.

User Performance Summary:
- Average Form Score: {average}/100
- Total Tests: {stats.total_attempts}
- Recent Test Results: {recent}

Create a training plan with:
1. Difficulty level (Beginner/Intermediate/Advanced)
2. 4-6 specific exercises targeting weak areas
3. Sets, reps, and rest periods
4. Training focus areas

Return ONLY valid JSON:
{{
  "name": "Plan Name",
  "difficulty": "Beginner|Intermediate|Advanced",
  "duration": "X weeks",
  "focus": ["area1", "area2"],
  "exercises": [
    {{"name": "Exercise", "sets": 3, "reps": "10-15", "rest": "60s", "notes": "tip"}}
  ],
  "schedule": "X days per week"
}}"""


class TrainingPlanService:

    def __init__(self, analysis_client: GeminiAnalysisClient, store: AttemptStore):
        self.analysis_client = analysis_client
        self.store = store

    def generate(self, user_id: str) -> TrainingPlan:
        stats = self.store.get_user_stats(user_id)
        attempts = self.store.get_history(user_id, None, RECENT_ATTEMPTS_FOR_PLAN)

        if not self.analysis_client.configured:
            logger.info("Gemini not configured, returning basic training plan")
            return BASIC_PLAN

        try:
            parsed = self.analysis_client.generate_json(build_plan_prompt(stats, attempts))
            return TrainingPlan.model_validate(parsed)
        except PydanticValidationError as e:
            logger.warning(f"Training plan reply did not match schema: {e.error_count()} errors")
        except Exception as e:
            logger.warning(f"Gemini training plan error: {type(e).__name__}: {e}")
        return BASIC_PLAN
