"""
Attempt Store

Persistence for test attempts, profiles and EMG readings behind one interface:

- SqlAttemptStore: networked relational store (PostgreSQL in production)
- InMemoryAttemptStore: process-lifetime lists, cleared on restart
- FallbackAttemptStore: wraps a primary and a secondary store; any failure
  of the primary is logged and that single call is served by the secondary

Callers cannot tell a durable write from a fallback write. Derived views
(user stats, leaderboard) are computed by the same functions for every
implementation so both stores honour one contract.
"""
import logging
import math
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import StoreUnavailable
from models import EMGReading as EMGReadingRow
from models import Profile as ProfileRow
from models import TestAttempt as TestAttemptRow
from schemas import (
    Attempt,
    EMGReading,
    LeaderboardEntry,
    LeaderboardLevel,
    Profile,
    Trend,
    UserStats,
)
from services.metrics_mapper import badge_for_leaderboard

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20
DEFAULT_LEADERBOARD_LIMIT = 100
DEFAULT_EMG_HISTORY_LIMIT = 50


# ---------------------------------------------------------------------------
# Derived views (shared by every implementation)
# ---------------------------------------------------------------------------

def best_performances(attempts: Iterable[Attempt]) -> Dict[str, Attempt]:
    """Highest-scoring attempt per test type; the first seen wins ties."""
    best: Dict[str, Attempt] = {}
    for attempt in attempts:
        current = best.get(attempt.test_type)
        if current is None or attempt.form_score > current.form_score:
            best[attempt.test_type] = attempt
    return best


def compute_user_stats(attempts: List[Attempt]) -> UserStats:
    total = len(attempts)
    # Halves round up, not to even
    average = math.floor(sum(a.form_score for a in attempts) / total + 0.5) if total else 0
    return UserStats(
        total_attempts=total,
        average_form_score=average,
        best_performances=best_performances(attempts),
        # No trend model yet; every user reports stable
        recent_trend=Trend.STABLE,
        weekly_progress=min(total * 10, 100),
    )


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def rank_leaderboard(
    attempts: Iterable[Attempt],
    profiles: Dict[str, Profile],
    level: LeaderboardLevel = LeaderboardLevel.DISTRICT,
    sport: Optional[str] = None,
    region: Optional[str] = None,
    limit: int = DEFAULT_LEADERBOARD_LIMIT,
) -> List[LeaderboardEntry]:
    """
    One entry per user with at least one attempt, ranked by best form score.

    Attempts are walked newest first. A user's best is the newest of their
    top-scoring attempts, and users with equal scores keep the order in which
    the walk first met them (most recently active first).
    """
    newest_first = sorted(attempts, key=lambda a: _as_utc(a.created_at), reverse=True)
    best: Dict[str, Attempt] = {}
    for attempt in newest_first:
        current = best.get(attempt.user_id)
        if current is None or attempt.form_score > current.form_score:
            best[attempt.user_id] = attempt

    level = LeaderboardLevel(level)
    rows = []
    for user_id, attempt in best.items():
        profile = profiles.get(user_id)
        user_sport = (profile.sport if profile else None) or "Athletics"
        district = (profile.district if profile else None) or "Unknown"
        state = (profile.state if profile else None) or "Unknown"

        if sport and sport != "All" and user_sport != sport:
            continue
        if region:
            if level is LeaderboardLevel.DISTRICT and district != region:
                continue
            if level is LeaderboardLevel.STATE and state != region:
                continue

        rows.append((attempt, LeaderboardEntry(
            user_id=user_id,
            name=(profile.name if profile else None) or f"User {user_id[:8]}",
            district=district,
            state=state,
            sport=user_sport,
            score=attempt.form_score,
            badge=attempt.badge or badge_for_leaderboard(attempt.form_score).value,
            rank=0,
        )))

    rows.sort(key=lambda row: -row[1].score)
    return [
        entry.model_copy(update={"rank": index + 1})
        for index, (_, entry) in enumerate(rows[:max(limit, 0)])
    ]


def merge_profile(existing: Optional[Profile], incoming: Profile) -> Profile:
    """Upsert semantics: fields left as None keep their stored value."""
    now = datetime.now(timezone.utc)
    if existing is None:
        return incoming.model_copy(update={
            "created_at": incoming.created_at or now,
            "updated_at": now,
        })
    changes = {
        key: value
        for key, value in incoming.model_dump(exclude={"id", "created_at", "updated_at"}).items()
        if value is not None
    }
    changes["updated_at"] = now
    return existing.model_copy(update=changes)


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------

class AttemptStore(ABC):
    """Capability set shared by every attempt store."""

    @abstractmethod
    def save_attempt(self, attempt: Attempt) -> Attempt:
        pass

    @abstractmethod
    def get_history(
        self, user_id: str, test_type: Optional[str] = None, limit: int = DEFAULT_HISTORY_LIMIT
    ) -> List[Attempt]:
        """Newest first, optionally filtered by test type."""
        pass

    @abstractmethod
    def get_user_stats(self, user_id: str) -> UserStats:
        pass

    @abstractmethod
    def get_profile(self, user_id: str) -> Optional[Profile]:
        pass

    @abstractmethod
    def save_profile(self, profile: Profile) -> Profile:
        pass

    @abstractmethod
    def get_leaderboard(
        self,
        level: LeaderboardLevel = LeaderboardLevel.DISTRICT,
        sport: Optional[str] = None,
        region: Optional[str] = None,
        limit: int = DEFAULT_LEADERBOARD_LIMIT,
    ) -> List[LeaderboardEntry]:
        pass

    @abstractmethod
    def save_emg_reading(self, reading: EMGReading) -> EMGReading:
        pass

    @abstractmethod
    def get_emg_history(self, user_id: str, limit: int = DEFAULT_EMG_HISTORY_LIMIT) -> List[EMGReading]:
        pass


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

class InMemoryAttemptStore(AttemptStore):
    """Process-lifetime store. Lists are kept newest first."""

    def __init__(self):
        self._attempts: List[Attempt] = []
        self._emg_readings: List[EMGReading] = []
        self._profiles: Dict[str, Profile] = {}
        # FastAPI runs sync handlers on a thread pool
        self._lock = threading.Lock()

    def save_attempt(self, attempt: Attempt) -> Attempt:
        with self._lock:
            self._attempts.insert(0, attempt)
        return attempt

    def _user_attempts(self, user_id: str) -> List[Attempt]:
        with self._lock:
            return [a for a in self._attempts if a.user_id == user_id]

    def get_history(self, user_id, test_type=None, limit=DEFAULT_HISTORY_LIMIT):
        attempts = self._user_attempts(user_id)
        if test_type:
            attempts = [a for a in attempts if a.test_type == test_type]
        return attempts[:max(limit, 0)]

    def get_user_stats(self, user_id):
        return compute_user_stats(self._user_attempts(user_id))

    def get_profile(self, user_id):
        with self._lock:
            return self._profiles.get(user_id)

    def save_profile(self, profile):
        with self._lock:
            merged = merge_profile(self._profiles.get(profile.id), profile)
            self._profiles[profile.id] = merged
        return merged

    def get_leaderboard(self, level=LeaderboardLevel.DISTRICT, sport=None, region=None,
                        limit=DEFAULT_LEADERBOARD_LIMIT):
        with self._lock:
            attempts = list(self._attempts)
            profiles = dict(self._profiles)
        return rank_leaderboard(attempts, profiles, level, sport, region, limit)

    def save_emg_reading(self, reading):
        with self._lock:
            self._emg_readings.insert(0, reading)
        return reading

    def get_emg_history(self, user_id, limit=DEFAULT_EMG_HISTORY_LIMIT):
        with self._lock:
            readings = [r for r in self._emg_readings if r.user_id == user_id]
        return readings[:max(limit, 0)]


# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

def _to_attempt(row: TestAttemptRow) -> Attempt:
    return Attempt(
        id=str(row.id),
        user_id=row.user_id,
        test_type=row.test_type,
        video_url=row.video_url,
        analysis_result=row.analysis_result,
        metrics=row.metrics or {},
        form_score=row.form_score or 0,
        badge=row.badge,
        recommendations=row.recommendations or [],
        created_at=_as_utc(row.created_at),
    )


class SqlAttemptStore(AttemptStore):
    """
    Relational store via SQLAlchemy.

    Every database error is re-raised as StoreUnavailable so a wrapping
    FallbackAttemptStore can take over.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    @contextmanager
    def _session(self):
        db = None
        try:
            db = self._session_factory()
            yield db
            db.commit()
        except SQLAlchemyError as e:
            if db is not None:
                db.rollback()
            raise StoreUnavailable(f"{type(e).__name__}: {e}") from e
        finally:
            if db is not None:
                db.close()

    def save_attempt(self, attempt: Attempt) -> Attempt:
        with self._session() as db:
            row = TestAttemptRow(
                id=attempt.id,
                user_id=attempt.user_id,
                test_type=attempt.test_type,
                video_url=attempt.video_url,
                analysis_result=attempt.analysis_result,
                metrics=attempt.metrics,
                form_score=attempt.form_score,
                badge=attempt.badge,
                recommendations=attempt.recommendations,
                created_at=attempt.created_at,
            )
            db.add(row)
            db.flush()
            db.refresh(row)
            saved = _to_attempt(row)
        logger.info(f"Saved attempt {saved.id} for user {saved.user_id}")
        return saved

    def get_history(self, user_id, test_type=None, limit=DEFAULT_HISTORY_LIMIT):
        with self._session() as db:
            query = db.query(TestAttemptRow).filter(TestAttemptRow.user_id == user_id)
            if test_type:
                query = query.filter(TestAttemptRow.test_type == test_type)
            rows = query.order_by(TestAttemptRow.created_at.desc()).limit(max(limit, 0)).all()
            return [_to_attempt(row) for row in rows]

    def get_user_stats(self, user_id):
        with self._session() as db:
            rows = (
                db.query(TestAttemptRow)
                .filter(TestAttemptRow.user_id == user_id)
                .order_by(TestAttemptRow.created_at.desc())
                .all()
            )
            attempts = [_to_attempt(row) for row in rows]
        return compute_user_stats(attempts)

    def get_profile(self, user_id):
        with self._session() as db:
            row = db.query(ProfileRow).filter(ProfileRow.id == user_id).first()
            return Profile.model_validate(row) if row else None

    def save_profile(self, profile):
        with self._session() as db:
            row = db.query(ProfileRow).filter(ProfileRow.id == profile.id).first()
            existing = Profile.model_validate(row) if row else None
            merged = merge_profile(existing, profile)
            if row is None:
                row = ProfileRow(id=merged.id, created_at=merged.created_at)
                db.add(row)
            for field in ("email", "name", "age", "gender", "district", "state", "sport", "photo_url"):
                setattr(row, field, getattr(merged, field))
            row.updated_at = merged.updated_at
            db.flush()
            return Profile.model_validate(row)

    def get_leaderboard(self, level=LeaderboardLevel.DISTRICT, sport=None, region=None,
                        limit=DEFAULT_LEADERBOARD_LIMIT):
        with self._session() as db:
            attempts = [
                _to_attempt(row)
                for row in db.query(TestAttemptRow).order_by(TestAttemptRow.created_at.desc()).all()
            ]
            profiles = {row.id: Profile.model_validate(row) for row in db.query(ProfileRow).all()}
        return rank_leaderboard(attempts, profiles, level, sport, region, limit)

    def save_emg_reading(self, reading):
        with self._session() as db:
            row = EMGReadingRow(
                id=reading.id,
                user_id=reading.user_id,
                test_attempt_id=reading.test_attempt_id,
                emg_value=reading.emg_value,
                muscle_activity=reading.muscle_activity,
                fatigue_level=reading.fatigue_level,
                activation_detected=reading.activation_detected,
                timestamp=reading.timestamp,
            )
            db.add(row)
            db.flush()
            return EMGReading.model_validate(row)

    def get_emg_history(self, user_id, limit=DEFAULT_EMG_HISTORY_LIMIT):
        with self._session() as db:
            rows = (
                db.query(EMGReadingRow)
                .filter(EMGReadingRow.user_id == user_id)
                .order_by(EMGReadingRow.timestamp.desc())
                .limit(max(limit, 0))
                .all()
            )
            return [EMGReading.model_validate(row) for row in rows]


# ---------------------------------------------------------------------------
# Fallback decorator
# ---------------------------------------------------------------------------

class FallbackAttemptStore(AttemptStore):
    """
    Serve each call from the primary store; on any failure, log and repeat
    the same call against the secondary. Primary failures never propagate.
    """

    def __init__(self, primary: AttemptStore, secondary: AttemptStore):
        self.primary = primary
        self.secondary = secondary
        self.fallback_count = 0
        self._count_lock = threading.Lock()

    def _call(self, method: str, *args, **kwargs):
        try:
            return getattr(self.primary, method)(*args, **kwargs)
        except Exception as e:
            with self._count_lock:
                self.fallback_count += 1
            logger.warning(
                f"Primary store unavailable for {method}, using fallback: {e}",
                extra={"extra_fields": {"store_method": method, "error": str(e)}},
            )
            return getattr(self.secondary, method)(*args, **kwargs)

    def save_attempt(self, attempt):
        return self._call("save_attempt", attempt)

    def get_history(self, user_id, test_type=None, limit=DEFAULT_HISTORY_LIMIT):
        return self._call("get_history", user_id, test_type, limit)

    def get_user_stats(self, user_id):
        return self._call("get_user_stats", user_id)

    def get_profile(self, user_id):
        return self._call("get_profile", user_id)

    def save_profile(self, profile):
        return self._call("save_profile", profile)

    def get_leaderboard(self, level=LeaderboardLevel.DISTRICT, sport=None, region=None,
                        limit=DEFAULT_LEADERBOARD_LIMIT):
        return self._call("get_leaderboard", level, sport, region, limit)

    def save_emg_reading(self, reading):
        return self._call("save_emg_reading", reading)

    def get_emg_history(self, user_id, limit=DEFAULT_EMG_HISTORY_LIMIT):
        return self._call("get_emg_history", user_id, limit)


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def build_attempt_store(use_in_memory: bool, session_factory: Callable[[], Session]) -> AttemptStore:
    if use_in_memory:
        logger.info("Attempt store: in-memory only")
        return InMemoryAttemptStore()
    return FallbackAttemptStore(SqlAttemptStore(session_factory), InMemoryAttemptStore())


def get_attempt_store(request: Request) -> AttemptStore:
    """FastAPI dependency: the store built at startup."""
    return request.app.state.attempt_store
