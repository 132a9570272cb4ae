"""Tests for the attempt stores.

Covers:
- History ordering, filtering and limits (in-memory and SQL)
- User stats and leaderboard derived views
- Profile upsert
- Fallback decorator behaviour when the primary store fails
"""
import threading

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from core.exceptions import StoreUnavailable
from schemas import Attempt, EMGReading, LeaderboardLevel, Profile, Trend
from services.attempt_store import (
    FallbackAttemptStore,
    InMemoryAttemptStore,
    SqlAttemptStore,
    build_attempt_store,
    compute_user_stats,
    rank_leaderboard,
)

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _attempt(id, user_id="user-1", test_type="pushUps", score=70.0, minutes=0, badge=None):
    return Attempt(
        id=id,
        user_id=user_id,
        test_type=test_type,
        metrics={"reps": 10},
        form_score=score,
        badge=badge or "Good",
        recommendations=["tip"],
        created_at=BASE_TIME + timedelta(minutes=minutes),
    )


@pytest.fixture(params=["memory", "sql"])
def store(request, memory_store, sql_store):
    return memory_store if request.param == "memory" else sql_store


# ---------------------------------------------------------------------------
# Shared contract
# ---------------------------------------------------------------------------

class TestHistory:

    def test_newest_first(self, store):
        for i in range(3):
            store.save_attempt(_attempt(f"a{i}", minutes=i))
        assert [a.id for a in store.get_history("user-1")] == ["a2", "a1", "a0"]

    def test_saved_attempt_round_trips(self, store):
        store.save_attempt(_attempt("a1", score=82.5))
        assert [a.id for a in store.get_history("user-1", "pushUps", 1)] == ["a1"]
        [found] = store.get_history("user-1")
        assert found.id == "a1"
        assert found.form_score == 82.5
        assert found.metrics == {"reps": 10}
        assert found.recommendations == ["tip"]
        assert found.created_at == BASE_TIME

    def test_filter_by_test_type_and_user(self, store):
        store.save_attempt(_attempt("a1", test_type="pushUps"))
        store.save_attempt(_attempt("a2", test_type="sitUps", minutes=1))
        store.save_attempt(_attempt("a3", user_id="user-2", minutes=2))
        assert [a.id for a in store.get_history("user-1", "sitUps")] == ["a2"]
        assert [a.id for a in store.get_history("user-1")] == ["a2", "a1"]

    def test_limit(self, store):
        for i in range(5):
            store.save_attempt(_attempt(f"a{i}", minutes=i))
        assert len(store.get_history("user-1", limit=2)) == 2
        assert store.get_history("user-1", limit=0) == []

    def test_unknown_user_is_empty(self, store):
        assert store.get_history("nobody") == []


class TestUserStats:

    def test_no_attempts(self, store):
        stats = store.get_user_stats("nobody")
        assert stats.total_attempts == 0
        assert stats.average_form_score == 0
        assert stats.best_performances == {}
        assert stats.recent_trend is Trend.STABLE
        assert stats.weekly_progress == 0

    def test_aggregates(self, store):
        store.save_attempt(_attempt("a1", test_type="pushUps", score=60))
        store.save_attempt(_attempt("a2", test_type="pushUps", score=81, minutes=1))
        store.save_attempt(_attempt("a3", test_type="sitUps", score=72, minutes=2))
        stats = store.get_user_stats("user-1")
        assert stats.total_attempts == 3
        assert stats.average_form_score == 71
        assert stats.best_performances["pushUps"].id == "a2"
        assert stats.best_performances["sitUps"].id == "a3"
        assert stats.weekly_progress == 30

    def test_half_point_average_rounds_up(self, store):
        store.save_attempt(_attempt("a1", score=80))
        store.save_attempt(_attempt("a2", score=85, minutes=1))
        assert store.get_user_stats("user-1").average_form_score == 83

    def test_average_rounds_to_nearest(self):
        assert compute_user_stats([_attempt("a1", score=70), _attempt("a2", score=71.2)]).average_form_score == 71
        assert compute_user_stats([_attempt("a1", score=61.5)]).average_form_score == 62
        assert compute_user_stats([_attempt("a1", score=62.5)]).average_form_score == 63

    def test_reading_stats_does_not_change_them(self, store):
        store.save_attempt(_attempt("a1", score=64))
        assert store.get_user_stats("user-1") == store.get_user_stats("user-1")

    def test_weekly_progress_caps_at_100(self):
        attempts = [_attempt(f"a{i}", minutes=i) for i in range(14)]
        assert compute_user_stats(attempts).weekly_progress == 100


class TestLeaderboard:

    def test_ranked_by_best_score(self, store):
        store.save_attempt(_attempt("a1", user_id="u1", score=90, badge="National Standard"))
        store.save_attempt(_attempt("a2", user_id="u2", score=70, badge="District Elite", minutes=1))
        store.save_attempt(_attempt("a3", user_id="u3", score=80, badge="State Level", minutes=2))
        board = store.get_leaderboard(LeaderboardLevel.NATIONAL)
        assert [(e.user_id, e.rank, e.score) for e in board] == [("u1", 1, 90), ("u3", 2, 80), ("u2", 3, 70)]
        assert board[0].badge == "National Standard"

    def test_one_entry_per_user_with_best_attempt(self, store):
        store.save_attempt(_attempt("a1", user_id="u1", score=55))
        store.save_attempt(_attempt("a2", user_id="u1", score=88, badge="State Level", minutes=1))
        [entry] = store.get_leaderboard(LeaderboardLevel.NATIONAL)
        assert entry.score == 88
        assert entry.badge == "State Level"

    def test_defaults_without_profile(self, store):
        store.save_attempt(_attempt("a1", user_id="abcdefghijkl"))
        [entry] = store.get_leaderboard(LeaderboardLevel.NATIONAL)
        assert entry.name == "User abcdefgh"
        assert entry.district == "Unknown"
        assert entry.state == "Unknown"
        assert entry.sport == "Athletics"

    def test_sport_and_region_filters(self, store):
        store.save_profile(Profile(id="u1", name="Asha", district="Pune", state="MH", sport="Hockey"))
        store.save_profile(Profile(id="u2", name="Ravi", district="Nagpur", state="MH", sport="Football"))
        store.save_profile(Profile(id="u3", name="Meera", district="Pune", state="KA", sport="Hockey"))
        for i, user in enumerate(["u1", "u2", "u3"]):
            store.save_attempt(_attempt(f"a{i}", user_id=user, score=60 + i, minutes=i))

        hockey = store.get_leaderboard(LeaderboardLevel.NATIONAL, sport="Hockey")
        assert {e.user_id for e in hockey} == {"u1", "u3"}

        everyone = store.get_leaderboard(LeaderboardLevel.NATIONAL, sport="All")
        assert len(everyone) == 3

        pune = store.get_leaderboard(LeaderboardLevel.DISTRICT, region="Pune")
        assert {e.user_id for e in pune} == {"u1", "u3"}

        mh = store.get_leaderboard(LeaderboardLevel.STATE, region="MH")
        assert [e.name for e in mh] == ["Ravi", "Asha"]

        # national ignores region
        assert len(store.get_leaderboard(LeaderboardLevel.NATIONAL, region="Pune")) == 3

    def test_limit(self, store):
        for i in range(4):
            store.save_attempt(_attempt(f"a{i}", user_id=f"u{i}", score=50 + i, minutes=i))
        board = store.get_leaderboard(LeaderboardLevel.NATIONAL, limit=2)
        assert [e.rank for e in board] == [1, 2]
        assert board[0].user_id == "u3"


def test_leaderboard_ties_keep_most_recently_active_user_first():
    attempts = [
        _attempt("early", user_id="u-early", score=75, minutes=1),
        _attempt("late", user_id="u-late", score=75, minutes=10),
    ]
    board = rank_leaderboard(attempts, {}, LeaderboardLevel.NATIONAL)
    assert [e.user_id for e in board] == ["u-late", "u-early"]
    assert [e.rank for e in board] == [1, 2]


def test_leaderboard_best_attempt_is_newest_among_equal_scores():
    attempts = [
        _attempt("old", user_id="u1", score=80, minutes=1, badge="State Level"),
        _attempt("new", user_id="u1", score=80, minutes=5, badge="Good"),
    ]
    [entry] = rank_leaderboard(attempts, {}, LeaderboardLevel.NATIONAL)
    assert entry.badge == "Good"


def test_leaderboard_badge_falls_back_to_score_tier():
    attempt = _attempt("a1", score=20).model_copy(update={"badge": ""})
    [entry] = rank_leaderboard([attempt], {}, LeaderboardLevel.NATIONAL)
    assert entry.badge == "Good"


class TestProfiles:

    def test_missing_profile_is_none(self, store):
        assert store.get_profile("nobody") is None

    def test_upsert_keeps_unset_fields(self, store):
        created = store.save_profile(Profile(id="u1", name="Asha", age=17, district="Pune"))
        assert created.created_at is not None

        updated = store.save_profile(Profile(id="u1", sport="Hockey"))
        assert updated.name == "Asha"
        assert updated.age == 17
        assert updated.sport == "Hockey"

        stored = store.get_profile("u1")
        assert stored.name == "Asha"
        assert stored.sport == "Hockey"


class TestEMGReadings:

    def test_history_newest_first_per_user(self, store):
        for i in range(3):
            store.save_emg_reading(EMGReading(
                id=f"r{i}", user_id="u1", emg_value=0.5, muscle_activity=40 + i,
                fatigue_level=10, activation_detected=True,
                timestamp=BASE_TIME + timedelta(seconds=i),
            ))
        store.save_emg_reading(EMGReading(
            id="other", user_id="u2", emg_value=0.1, muscle_activity=5,
            fatigue_level=1, activation_detected=False, timestamp=BASE_TIME,
        ))
        assert [r.id for r in store.get_emg_history("u1")] == ["r2", "r1", "r0"]
        assert len(store.get_emg_history("u1", limit=1)) == 1


# ---------------------------------------------------------------------------
# SQL specifics
# ---------------------------------------------------------------------------

def test_sql_errors_raise_store_unavailable():
    def broken_session():
        session = MagicMock()
        session.query.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
        return session

    store = SqlAttemptStore(broken_session)
    with pytest.raises(StoreUnavailable):
        store.get_history("user-1")


# ---------------------------------------------------------------------------
# Fallback decorator
# ---------------------------------------------------------------------------

class TestFallbackAttemptStore:

    def _failing_primary(self):
        primary = MagicMock()
        for method in ("save_attempt", "get_history", "get_user_stats", "get_leaderboard", "get_profile"):
            getattr(primary, method).side_effect = StoreUnavailable("db down")
        return primary

    def test_write_and_read_fall_back_to_secondary(self):
        secondary = InMemoryAttemptStore()
        store = FallbackAttemptStore(self._failing_primary(), secondary)

        saved = store.save_attempt(_attempt("a1"))

        assert saved.id == "a1"
        assert [a.id for a in store.get_history("user-1")] == ["a1"]
        assert store.get_user_stats("user-1").total_attempts == 1
        assert store.fallback_count == 3

    def test_healthy_primary_is_used(self, sql_store):
        secondary = InMemoryAttemptStore()
        store = FallbackAttemptStore(sql_store, secondary)
        store.save_attempt(_attempt("a1"))
        assert secondary.get_history("user-1") == []
        assert store.fallback_count == 0

    def test_fallback_count_is_exact_under_concurrent_calls(self):
        store = FallbackAttemptStore(self._failing_primary(), InMemoryAttemptStore())

        def read_many():
            for _ in range(50):
                store.get_history("user-1")

        threads = [threading.Thread(target=read_many) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert store.fallback_count == 200

    def test_any_exception_triggers_fallback(self):
        primary = MagicMock()
        primary.get_profile.side_effect = RuntimeError("unexpected")
        secondary = InMemoryAttemptStore()
        secondary.save_profile(Profile(id="u1", name="Asha"))
        store = FallbackAttemptStore(primary, secondary)
        assert store.get_profile("u1").name == "Asha"


def test_build_attempt_store():
    assert isinstance(build_attempt_store(True, MagicMock()), InMemoryAttemptStore)
    store = build_attempt_store(False, MagicMock())
    assert isinstance(store, FallbackAttemptStore)
    assert isinstance(store.primary, SqlAttemptStore)
    assert isinstance(store.secondary, InMemoryAttemptStore)
