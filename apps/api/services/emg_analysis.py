"""
EMG reading analysis.

Rule-based read of one muscle-sensor sample: performance level, fatigue
warning, injury risk and short recommendations. Thresholds are on the
0-100 muscle activity and fatigue scales the sensor widget reports.
"""
import uuid
from datetime import datetime, timezone
from typing import List, Tuple

from schemas import EMGAnalysis, EMGDataCreate, EMGReading
from services.attempt_store import AttemptStore


def performance_level(muscle_activity: float) -> str:
    if muscle_activity > 70:
        return "High"
    if muscle_activity > 40:
        return "Medium"
    return "Low"


def emg_recommendations(muscle_activity: float, fatigue: float) -> List[str]:
    recommendations = []
    if fatigue > 70:
        recommendations.append("Consider taking a rest break")
    if muscle_activity < 30:
        recommendations.append("Increase muscle engagement")
    if muscle_activity > 90:
        recommendations.append("Monitor for overexertion")
    return recommendations


def injury_risk(fatigue: float, muscle_activity: float) -> str:
    if fatigue > 80 and muscle_activity > 80:
        return "High"
    if fatigue > 60 or muscle_activity > 70:
        return "Medium"
    return "Low"


def analyze_emg(muscle_activity: float, fatigue: float) -> EMGAnalysis:
    return EMGAnalysis(
        performance_level=performance_level(muscle_activity),
        fatigue_warning=fatigue > 80,
        recommendations=emg_recommendations(muscle_activity, fatigue),
        injury_risk=injury_risk(fatigue, muscle_activity),
    )


def record_emg_reading(store: AttemptStore, data: EMGDataCreate) -> Tuple[EMGReading, EMGAnalysis]:
    """Persist one reading and return it with its analysis."""
    reading = EMGReading(
        id=str(uuid.uuid4()),
        user_id=data.user_id,
        test_attempt_id=data.test_attempt_id,
        emg_value=data.emg_value,
        muscle_activity=data.muscle_activity,
        fatigue_level=data.fatigue,
        activation_detected=data.activated,
        timestamp=datetime.now(timezone.utc),
    )
    saved = store.save_emg_reading(reading)
    return saved, analyze_emg(data.muscle_activity, data.fatigue)
