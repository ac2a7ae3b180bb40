# FILE: tests/conftest.py

import os
import random
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Keep test runs from writing telemetry into ./logs
os.environ.setdefault("TELEMETRY_ENABLED", "false")
os.environ.setdefault("STORAGE_BACKEND", "memory")

import pytest
from attempt_engine.config import get_settings
from attempt_engine.models.activities import Activity, Question
from attempt_engine.services.engine import AttemptEngine
from attempt_engine.services.memory_store import InMemoryActivityCatalog, InMemoryAttemptRepository

GROUP_ID = "group-1"
STUDENTS = ["alice", "bob", "carol", "dave"]


class FrozenClock:
    """Clock that only moves when told to"""

    def __init__(self, now: datetime):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current


def make_questions(activity_id: str, count: int = 5):
    """Four-choice questions; the last one is multi-select"""
    questions = []
    for n in range(1, count + 1):
        correct = [0, 2] if n == count else [n % 4]
        questions.append(Question(
            id=f"{activity_id}-q{n}",
            activity_id=activity_id,
            content=f"Question {n}",
            choices=[f"Choice {n}.{c}" for c in range(4)],
            correct_answers=correct,
        ))
    return questions


@pytest.fixture(scope="session")
def settings():
    """Provide settings for tests"""
    return get_settings()


@pytest.fixture
def clock():
    return FrozenClock(datetime(2025, 3, 3, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def catalog():
    """Activities of every mode in one group"""
    catalog = InMemoryActivityCatalog()

    for user_id in STUDENTS:
        catalog.add_member(user_id, GROUP_ID)
    catalog.add_member("teacher", GROUP_ID, role="instructor")

    catalog.add_activity(
        Activity.model_validate({
            "id": "exam-1",
            "group_id": GROUP_ID,
            "name": "Photosynthesis quiz",
            "mode": "exam",
            "settings": {"timeLimit": 30, "passThreshold": 60, "maxAttempts": 1},
        }),
        make_questions("exam-1"),
    )
    catalog.add_activity(
        Activity.model_validate({
            "id": "exam-retake",
            "group_id": GROUP_ID,
            "name": "Practice quiz",
            "mode": "exam",
            "settings": {
                "timeLimit": 0,
                "maxAttempts": 3,
                "shuffleQuestions": False,
                "shuffleChoices": False,
            },
        }),
        make_questions("exam-retake", count=3),
    )
    catalog.add_activity(
        Activity.model_validate({
            "id": "case-1",
            "group_id": GROUP_ID,
            "name": "Innovation cases",
            "mode": "case",
            "settings": {
                "timePerCase": 10,
                "totalTimeLimit": 60,
                "passThreshold": 6.0,
                "scenarios": [
                    {"id": "s1", "title": "Clinic scheduling", "content": "A rural clinic..."},
                    {"id": "s2", "title": "Water kiosk", "content": "A village water kiosk..."},
                ],
            },
        }),
    )
    catalog.add_activity(
        Activity.model_validate({
            "id": "inquiry-1",
            "group_id": GROUP_ID,
            "name": "Ecosystems inquiry",
            "mode": "inquiry",
            "subject": "Science",
            "settings": {
                "questionsRequired": 2,
                "timePerQuestion": 240,
                "keywordPool1": ["energy", "matter"],
                "keywordPool2": ["transfer", "cycle"],
                "topic": "Ecosystems",
            },
        }),
    )
    return catalog


@pytest.fixture
def repository():
    return InMemoryAttemptRepository()


@pytest.fixture
def engine(repository, catalog, clock):
    """Engine over in-memory stores with a frozen clock and seeded shuffles"""
    return AttemptEngine(repository, catalog, catalog, clock=clock, rng=random.Random(7))


@pytest.fixture
def answer_key(catalog):
    """question_id -> correct original choice indices for exam-1"""
    return {q.id: q.correct_answers for q in catalog.get_questions("exam-1")}
