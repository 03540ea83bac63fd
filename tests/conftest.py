"""Pytest configuration and shared fixtures."""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("STORE_BACKEND", "memory")

import pytest
from unittest.mock import Mock, patch
from fastapi.testclient import TestClient

from app.infrastructure.document_store import MemoryDocumentStore
from app.services.container import build_services, get_services


@pytest.fixture
def store():
    """Empty in-memory document store."""
    return MemoryDocumentStore()


@pytest.fixture
def services(store):
    """Service container over the in-memory store."""
    return build_services(store, max_workers=2)


@pytest.fixture
def sample_assessment():
    """Day 3 assessment with one question per topic."""
    return {
        "day": 3,
        "title": "Fractions and Equations",
        "chapter": "fractions_decimals",
        "createdBy": "tutor@school.org",
        "questions": [
            {
                "id": "q1",
                "type": "mcq",
                "question": "What is 1/2 + 1/4?",
                "options": ["3/4", "2/6", "1/8", "1"],
                "correctAnswer": "3/4",
                "points": 4,
                "topicPath": "number/fractions_decimals/fraction_operations",
            },
            {
                "id": "q2",
                "type": "written",
                "question": "Solve 2x + 3 = 11 and show your working.",
                "points": 6,
                "strand": "algebra",
                "chapter": "equations",
                "subtopic": "linear_equations",
                "hasCanvas": True,
            },
        ],
    }


@pytest.fixture
def created_assessment(services, sample_assessment):
    """The sample assessment stored through the assessment service."""
    return services.assessments.create_assessment(sample_assessment)


@pytest.fixture
def make_submission():
    """Factory for submission payloads."""
    def _make(assessment_id, student_id="aisha@school.org", q1=(True, 4), q2=(False, 0), **extra):
        return {
            "assessmentId": assessment_id,
            "studentId": student_id,
            "answers": {
                "q1": {"answer": "3/4", "isCorrect": q1[0], "pointsEarned": q1[1]},
                "q2": {"answer": "x = 4", "isCorrect": q2[0], "pointsEarned": q2[1]},
            },
            "timeSpent": 420,
            **extra,
        }
    return _make


@pytest.fixture
def test_client(services):
    """FastAPI test client bound to the in-memory services."""
    from main import app
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def mock_redis():
    """Auto-mock Redis for all tests to avoid needing real Redis."""
    with patch('app.infrastructure.redis.get_redis_client') as mock:
        mock_client = Mock()
        mock_client.get.return_value = None
        mock_client.set.return_value = True
        mock_client.delete.return_value = 1
        mock_client.smembers.return_value = set()
        mock_client.ping.return_value = True
        mock.return_value = mock_client
        yield mock_client


@pytest.fixture(autouse=True)
def reset_singletons():
    """Drop the process-wide store and services built by a test."""
    yield
    from app.infrastructure.document_store import reset_document_store
    from app.services.container import reset_services
    reset_services()
    reset_document_store()
