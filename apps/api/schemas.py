from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Optional, List, Dict


class CamelModel(BaseModel):
    """Base schema: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class TestType(str, Enum):
    """The nine supported fitness tests."""
    __test__ = False  # not a pytest test class

    VERTICAL_JUMP = "verticalJump"
    SIT_UPS = "sitUps"
    PUSH_UPS = "pushUps"
    PULL_UPS = "pullUps"
    SHUTTLE_RUN = "shuttleRun"
    FLEXIBILITY_TEST = "flexibilityTest"
    AGILITY_LADDER = "agilityLadder"
    ENDURANCE_RUN = "enduranceRun"
    HEIGHT_WEIGHT = "heightWeight"


class Badge(str, Enum):
    """Badge tiers, lowest first. NEEDS_IMPROVEMENT is display-only."""
    NEEDS_IMPROVEMENT = "Needs Improvement"
    GOOD = "Good"
    DISTRICT_ELITE = "District Elite"
    STATE_LEVEL = "State Level"
    NATIONAL_STANDARD = "National Standard"


class LeaderboardLevel(str, Enum):
    DISTRICT = "district"
    STATE = "state"
    NATIONAL = "national"


class Trend(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


# ---------------------------------------------------------------------------
# Attempts and analysis
# ---------------------------------------------------------------------------

class AnalysisResult(CamelModel):
    """Normalized output of one AI video analysis."""
    test_type: str
    metrics: Dict[str, float]
    form_score: float = Field(ge=0, le=100)
    recommendations: List[str] = Field(default_factory=list)
    badge: str
    # Always empty today; kept on the wire for clients that render it
    errors: List[str] = Field(default_factory=list)
    is_real_ai: bool = Field(default=True, alias="isRealAI")


class Attempt(CamelModel):
    """Immutable record of one scored attempt."""
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    test_type: str
    video_url: Optional[str] = None
    analysis_result: Optional[Dict[str, Any]] = None
    metrics: Dict[str, float] = Field(default_factory=dict)
    form_score: float = 0
    badge: str = Badge.GOOD.value
    recommendations: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class UserStats(CamelModel):
    total_attempts: int
    average_form_score: int
    best_performances: Dict[str, Attempt]
    recent_trend: Trend
    weekly_progress: int = Field(ge=0, le=100)


class LeaderboardEntry(CamelModel):
    user_id: str
    name: str
    district: str
    state: str
    sport: str
    score: float
    badge: str
    rank: int


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

class ProfileUpdate(CamelModel):
    """Body of POST /api/profile/{userId}. Unknown keys are ignored."""
    model_config = ConfigDict(extra="ignore")

    email: Optional[str] = None
    name: Optional[str] = None
    age: Optional[int] = Field(default=None, ge=0, le=130)
    gender: Optional[str] = None
    district: Optional[str] = None
    state: Optional[str] = None
    sport: Optional[str] = None
    photo_url: Optional[str] = None


class Profile(CamelModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    district: Optional[str] = None
    state: Optional[str] = None
    sport: Optional[str] = None
    photo_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# EMG readings
# ---------------------------------------------------------------------------

class EMGDataCreate(CamelModel):
    user_id: str = Field(min_length=1)
    emg_value: float
    muscle_activity: float = Field(ge=0, le=100)
    fatigue: float = Field(ge=0, le=100)
    activated: bool = False
    test_attempt_id: Optional[str] = None


class EMGReading(CamelModel):
    id: str
    user_id: str
    test_attempt_id: Optional[str] = None
    emg_value: float
    muscle_activity: float
    fatigue_level: float
    activation_detected: bool
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class EMGAnalysis(CamelModel):
    performance_level: str
    fatigue_warning: bool
    recommendations: List[str]
    injury_risk: str


# ---------------------------------------------------------------------------
# Nutrition and training plans
# ---------------------------------------------------------------------------

class FoodAnalysis(CamelModel):
    food_name: str = "Unknown food"
    calories: float = 0
    protein: float = 0
    carbs: float = 0
    fat: float = 0
    fiber: float = 0
    sugar: float = 0
    sodium: float = 0
    health_score: float = 50
    recommendations: List[str] = Field(default_factory=lambda: ["Eat in moderation"])


# Gemini sometimes answers reps: 12 instead of "12"
LooseStr = Annotated[str, BeforeValidator(lambda v: str(v) if isinstance(v, (int, float)) else v)]


class PlanExercise(CamelModel):
    name: str
    sets: int = 3
    reps: LooseStr = "10"
    rest: LooseStr = "60s"
    notes: Optional[str] = None


class TrainingPlan(CamelModel):
    name: str
    difficulty: str
    duration: str
    focus: List[str] = Field(default_factory=list)
    exercises: List[PlanExercise] = Field(default_factory=list)
    schedule: str


class TrainingPlanSave(CamelModel):
    model_config = ConfigDict(extra="ignore")

    plan_id: Optional[str] = None
    custom_exercises: Optional[List[PlanExercise]] = None


# ---------------------------------------------------------------------------
# Response envelopes
# ---------------------------------------------------------------------------

class AnalyzeResponse(CamelModel):
    success: bool = True
    attempt: Attempt
    analysis: AnalysisResult


class HistoryResponse(CamelModel):
    success: bool = True
    attempts: List[Attempt]


class StatsResponse(CamelModel):
    success: bool = True
    stats: UserStats


class LeaderboardResponse(CamelModel):
    success: bool = True
    leaderboard: List[LeaderboardEntry]


class ProfileResponse(CamelModel):
    success: bool = True
    profile: Optional[Profile] = None


class FoodAnalysisResponse(CamelModel):
    success: bool = True
    analysis: FoodAnalysis


class TrainingPlanResponse(CamelModel):
    success: bool = True
    plan: TrainingPlan
    user_level: str


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class EMGDataResponse(CamelModel):
    success: bool = True
    data: EMGReading
    analysis: EMGAnalysis


class EMGHistoryResponse(CamelModel):
    success: bool = True
    data: List[EMGReading]
