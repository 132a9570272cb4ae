from sqlalchemy import Column, Boolean, Float, DateTime, Integer, JSON, Text, String, Index
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from core.database import Base
import uuid


# JSONB on PostgreSQL, generic JSON elsewhere (SQLite in local runs and tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _new_id() -> str:
    return str(uuid.uuid4())


class TestAttempt(Base):
    """
    One submitted, analyzed and scored exercise video.

    Append-only: rows are inserted once and never updated.
    """
    __tablename__ = "test_attempts"
    __test__ = False  # not a pytest test class

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(Text, nullable=False, index=True)
    test_type = Column(Text, nullable=False)
    video_url = Column(Text, nullable=True)
    analysis_result = Column(JSONType, nullable=True)
    metrics = Column(JSONType, nullable=False, default=dict)
    form_score = Column(Float, nullable=False, default=0)
    badge = Column(Text, nullable=False)
    recommendations = Column(JSONType, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_test_attempts_user_type_created", "user_id", "test_type", "created_at"),
    )


class Profile(Base):
    """Athlete profile, at most one per user (upserted by id)."""
    __tablename__ = "profiles"

    id = Column(Text, primary_key=True)
    email = Column(Text, nullable=True)
    name = Column(Text, nullable=True)
    age = Column(Integer, nullable=True)
    gender = Column(Text, nullable=True)
    district = Column(Text, nullable=True)
    state = Column(Text, nullable=True)
    sport = Column(Text, nullable=True)
    photo_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class EMGReading(Base):
    """Muscle-sensor reading, optionally tied to a test attempt."""
    __tablename__ = "emg_readings"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(Text, nullable=False, index=True)
    test_attempt_id = Column(String(36), nullable=True)
    emg_value = Column(Float, nullable=False)
    muscle_activity = Column(Float, nullable=False)
    fatigue_level = Column(Float, nullable=False)
    activation_detected = Column(Boolean, nullable=False, default=False)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
