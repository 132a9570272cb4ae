"""Tests for metrics mapping and badge assignment.

Covers:
- Exact metric keys per test type
- Coercion of missing / non-numeric fields
- Badge thresholds and form score clamping
"""
import pytest

from schemas import Badge, TestType
from services.metrics_mapper import (
    METRIC_KEYS,
    badge_for_leaderboard,
    calculate_badge,
    coerce_number,
    extract_metrics,
    map_analysis,
)


# ---------------------------------------------------------------------------
# Metric keys
# ---------------------------------------------------------------------------

class TestExtractMetrics:

    @pytest.mark.parametrize("test_type", list(TestType))
    def test_keys_depend_only_on_test_type(self, test_type):
        assert tuple(extract_metrics({}, test_type.value)) == METRIC_KEYS[test_type]
        noisy = {"formScore": 50, "unexpected": 3, "reps": 1, "time": 2}
        assert tuple(extract_metrics(noisy, test_type.value)) == METRIC_KEYS[test_type]

    def test_vertical_jump(self):
        assert extract_metrics({"jumpHeight": 45}, "verticalJump") == {"jumpHeightCm": 45}

    @pytest.mark.parametrize("test_type", ["sitUps", "pushUps", "pullUps"])
    def test_rep_counting_tests(self, test_type):
        assert extract_metrics({"reps": 30}, test_type) == {"reps": 30}

    def test_shuttle_run(self):
        metrics = extract_metrics({"laps": 8, "time": 42.5, "agility": 70}, "shuttleRun")
        assert metrics == {"laps": 8, "timeSec": 42.5}

    def test_flexibility(self):
        metrics = extract_metrics({"reach": 12, "flexibility": 65}, "flexibilityTest")
        assert metrics == {"reachCm": 12, "flexibilityScore": 65}

    def test_agility_ladder(self):
        metrics = extract_metrics({"time": 9.8, "footwork": 88}, "agilityLadder")
        assert metrics == {"completionTime": 9.8, "footworkScore": 88}

    def test_endurance_run(self):
        metrics = extract_metrics({"distance": 5, "pace": 5.5, "endurance": 60}, "enduranceRun")
        assert metrics == {"distanceKm": 5, "pace": 5.5}

    def test_height_weight(self):
        metrics = extract_metrics({"height": 175, "weight": 70, "bmi": 22.9}, "heightWeight")
        assert metrics == {"heightCm": 175, "weightKg": 70, "bmi": 22.9}

    def test_missing_and_non_numeric_fields_become_zero(self):
        metrics = extract_metrics({"laps": "seven", "time": None}, "shuttleRun")
        assert metrics == {"laps": 0, "timeSec": 0}

    def test_numeric_strings_are_parsed(self):
        assert extract_metrics({"reps": " 12 "}, "sitUps") == {"reps": 12}

    def test_unknown_test_type_gives_empty_metrics(self):
        assert extract_metrics({"reps": 10}, "burpees") == {}


class TestCoerceNumber:

    @pytest.mark.parametrize("value,expected", [
        (5, 5.0),
        (2.5, 2.5),
        ("3.5", 3.5),
        (True, 0.0),
        (None, 0.0),
        ([1], 0.0),
        (float("nan"), 0.0),
        ("inf", 0.0),
    ])
    def test_values(self, value, expected):
        assert coerce_number(value) == expected


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------

class TestCalculateBadge:

    @pytest.mark.parametrize("score,badge", [
        (100, Badge.NATIONAL_STANDARD),
        (90, Badge.NATIONAL_STANDARD),
        (89.9, Badge.STATE_LEVEL),
        (89, Badge.STATE_LEVEL),
        (80, Badge.STATE_LEVEL),
        (79, Badge.DISTRICT_ELITE),
        (70, Badge.DISTRICT_ELITE),
        (69, Badge.GOOD),
        (50, Badge.GOOD),
        (49, Badge.NEEDS_IMPROVEMENT),
        (0, Badge.NEEDS_IMPROVEMENT),
    ])
    def test_thresholds(self, score, badge):
        assert calculate_badge(score) is badge

    def test_out_of_range_scores_are_clamped(self):
        assert calculate_badge(250) is Badge.NATIONAL_STANDARD
        assert calculate_badge(-10) is Badge.NEEDS_IMPROVEMENT

    def test_leaderboard_never_shows_needs_improvement(self):
        assert badge_for_leaderboard(10) is Badge.GOOD
        assert badge_for_leaderboard(95) is Badge.NATIONAL_STANDARD


class TestMapAnalysis:

    def test_full_result(self):
        result = map_analysis(
            {"reps": 25, "formScore": 85, "recommendations": ["Slow down", "Breathe"]},
            "pushUps",
        )
        assert result.test_type == "pushUps"
        assert result.metrics == {"reps": 25}
        assert result.form_score == 85
        assert result.badge == "State Level"
        assert result.recommendations == ["Slow down", "Breathe"]
        assert result.errors == []
        assert result.is_real_ai is True

    def test_form_score_clamped_into_range(self):
        assert map_analysis({"formScore": 140}, "sitUps").form_score == 100
        assert map_analysis({"formScore": -5}, "sitUps").form_score == 0

    def test_missing_form_score_is_zero_and_needs_improvement(self):
        result = map_analysis({"reps": 3}, "sitUps")
        assert result.form_score == 0
        assert result.badge == Badge.NEEDS_IMPROVEMENT.value

    def test_bad_recommendations_become_empty_list(self):
        assert map_analysis({"recommendations": "do better"}, "sitUps").recommendations == []

    def test_wire_names_are_camel_case(self):
        dumped = map_analysis({"reps": 1, "formScore": 60}, "sitUps").model_dump(by_alias=True)
        assert {"testType", "formScore", "isRealAI"} <= set(dumped)
