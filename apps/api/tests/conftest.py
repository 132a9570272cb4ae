"""
Pytest configuration and fixtures

No external services: the app runs on the in-memory attempt store, the SQL
store is exercised against SQLite in memory, and Gemini is a MagicMock.
"""
import json
import os
import sys
from unittest.mock import MagicMock

import pytest

# Settings are read at import time; pin them before anything imports core.config
os.environ["USE_IN_MEMORY_STORE"] = "true"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_FORMAT"] = "text"
os.environ.pop("GEMINI_API_KEY", None)

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from core.database import Base, build_engine
from services.analysis_client import GeminiAnalysisClient, get_analysis_client
from services.attempt_store import InMemoryAttemptStore, SqlAttemptStore, get_attempt_store

# Minimal MP4 header: ftyp box of size 0x18
MP4_BYTES = bytes.fromhex("00000018") + b"ftypmp42" + b"\x00" * 64
PNG_BYTES = bytes.fromhex("89504E47") + b"\r\n\x1a\n" + b"\x00" * 32


def make_gemini(reply=None, error=None):
    """Mock google-genai client whose generate_content returns `reply` text."""
    client = MagicMock()
    if error is not None:
        client.models.generate_content.side_effect = error
    else:
        response = MagicMock()
        response.text = reply if isinstance(reply, str) else json.dumps(reply or {})
        client.models.generate_content.return_value = response
    return client


@pytest.fixture
def memory_store():
    return InMemoryAttemptStore()


@pytest.fixture
def sql_store():
    engine = build_engine("sqlite://")
    import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    yield SqlAttemptStore(factory)
    engine.dispose()


@pytest.fixture
def gemini_reply():
    """Override per test to change what the mocked Gemini returns."""
    return {"reps": 25, "formScore": 85, "recommendations": ["Keep your core tight"]}


@pytest.fixture
def gemini(gemini_reply):
    return make_gemini(gemini_reply)


@pytest.fixture
def analysis_client(gemini):
    return GeminiAnalysisClient(api_key="test-key", client=gemini)


@pytest.fixture
def client(memory_store, analysis_client):
    from main import app

    app.dependency_overrides[get_attempt_store] = lambda: memory_store
    app.dependency_overrides[get_analysis_client] = lambda: analysis_client
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
