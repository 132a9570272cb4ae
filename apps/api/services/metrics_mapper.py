"""
Metrics mapping and badge assignment.

Turns the JSON object returned by the analysis model into the canonical
metrics record for its test type and a badge tier.

Each test type has its own payload model (a tagged union keyed by TestType),
so the model's output is validated field by field instead of being read with
blind defaults. Everything here is pure and total: missing or non-numeric
fields become 0, unknown test types produce an empty metrics map.
"""
import math
from typing import Annotated, Any, Dict, List, Type

from pydantic import BaseModel, BeforeValidator, ConfigDict

from schemas import AnalysisResult, Badge, TestType


def coerce_number(value: Any) -> float:
    """Numbers pass through, numeric strings are parsed, anything else is 0."""
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


def coerce_strings(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


Number = Annotated[float, BeforeValidator(coerce_number)]
StringList = Annotated[List[str], BeforeValidator(coerce_strings)]


# ---------------------------------------------------------------------------
# Per-test-type payloads
# ---------------------------------------------------------------------------

class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    formScore: Number = 0
    recommendations: StringList = []

    def to_metrics(self) -> Dict[str, float]:
        raise NotImplementedError


class VerticalJumpPayload(_Payload):
    jumpHeight: Number = 0

    def to_metrics(self) -> Dict[str, float]:
        return {"jumpHeightCm": self.jumpHeight}


class RepsPayload(_Payload):
    reps: Number = 0

    def to_metrics(self) -> Dict[str, float]:
        return {"reps": self.reps}


class ShuttleRunPayload(_Payload):
    laps: Number = 0
    time: Number = 0

    def to_metrics(self) -> Dict[str, float]:
        return {"laps": self.laps, "timeSec": self.time}


class FlexibilityPayload(_Payload):
    reach: Number = 0
    flexibility: Number = 0

    def to_metrics(self) -> Dict[str, float]:
        return {"reachCm": self.reach, "flexibilityScore": self.flexibility}


class AgilityLadderPayload(_Payload):
    time: Number = 0
    footwork: Number = 0

    def to_metrics(self) -> Dict[str, float]:
        return {"completionTime": self.time, "footworkScore": self.footwork}


class EnduranceRunPayload(_Payload):
    distance: Number = 0
    pace: Number = 0

    def to_metrics(self) -> Dict[str, float]:
        return {"distanceKm": self.distance, "pace": self.pace}


class HeightWeightPayload(_Payload):
    height: Number = 0
    weight: Number = 0
    bmi: Number = 0

    def to_metrics(self) -> Dict[str, float]:
        return {"heightCm": self.height, "weightKg": self.weight, "bmi": self.bmi}


class _UnknownPayload(_Payload):
    def to_metrics(self) -> Dict[str, float]:
        return {}


PAYLOAD_MODELS: Dict[TestType, Type[_Payload]] = {
    TestType.VERTICAL_JUMP: VerticalJumpPayload,
    TestType.SIT_UPS: RepsPayload,
    TestType.PUSH_UPS: RepsPayload,
    TestType.PULL_UPS: RepsPayload,
    TestType.SHUTTLE_RUN: ShuttleRunPayload,
    TestType.FLEXIBILITY_TEST: FlexibilityPayload,
    TestType.AGILITY_LADDER: AgilityLadderPayload,
    TestType.ENDURANCE_RUN: EnduranceRunPayload,
    TestType.HEIGHT_WEIGHT: HeightWeightPayload,
}

# Exact metric keys per test type
METRIC_KEYS: Dict[TestType, tuple] = {
    TestType.VERTICAL_JUMP: ("jumpHeightCm",),
    TestType.SIT_UPS: ("reps",),
    TestType.PUSH_UPS: ("reps",),
    TestType.PULL_UPS: ("reps",),
    TestType.SHUTTLE_RUN: ("laps", "timeSec"),
    TestType.FLEXIBILITY_TEST: ("reachCm", "flexibilityScore"),
    TestType.AGILITY_LADDER: ("completionTime", "footworkScore"),
    TestType.ENDURANCE_RUN: ("distanceKm", "pace"),
    TestType.HEIGHT_WEIGHT: ("heightCm", "weightKg", "bmi"),
}


def parse_payload(parsed: Dict[str, Any], test_type: str) -> _Payload:
    """Validate a parsed model response against its test type's payload."""
    try:
        model = PAYLOAD_MODELS[TestType(test_type)]
    except ValueError:
        model = _UnknownPayload
    return model.model_validate(parsed if isinstance(parsed, dict) else {})


def extract_metrics(parsed: Dict[str, Any], test_type: str) -> Dict[str, float]:
    return parse_payload(parsed, test_type).to_metrics()


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------

# (minimum score, badge), highest first
BADGE_THRESHOLDS = (
    (90, Badge.NATIONAL_STANDARD),
    (80, Badge.STATE_LEVEL),
    (70, Badge.DISTRICT_ELITE),
    (50, Badge.GOOD),
)


def clamp_score(score: float) -> float:
    return max(0.0, min(100.0, float(score)))


def calculate_badge(form_score: float) -> Badge:
    score = clamp_score(form_score)
    for minimum, badge in BADGE_THRESHOLDS:
        if score >= minimum:
            return badge
    return Badge.NEEDS_IMPROVEMENT


def badge_for_leaderboard(score: float) -> Badge:
    """Badge shown on the leaderboard when a user's best attempt has none."""
    badge = calculate_badge(score)
    if badge is Badge.NEEDS_IMPROVEMENT:
        return Badge.GOOD
    return badge


def map_analysis(parsed: Dict[str, Any], test_type: str) -> AnalysisResult:
    """Build the normalized analysis result for one parsed model response."""
    payload = parse_payload(parsed, test_type)
    form_score = clamp_score(payload.formScore)
    return AnalysisResult(
        test_type=test_type,
        metrics=payload.to_metrics(),
        form_score=form_score,
        recommendations=payload.recommendations,
        badge=calculate_badge(form_score).value,
        errors=[],
    )
