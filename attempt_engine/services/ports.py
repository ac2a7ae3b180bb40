# FILE: attempt_engine/services/ports.py
"""
Persistence and read-model ports consumed by the engine

Adapters (in-memory, JSONL files) implement these; the engine only ever sees
the protocol, so it can be driven by a fake in tests.
"""
from abc import abstractmethod
from typing import List, Optional, Protocol

from attempt_engine.models.activities import Activity, Membership, Question
from attempt_engine.models.attempts import Attempt, AttemptStatus, Response


class AttemptRepository(Protocol):
    """Attempt and response persistence"""

    @abstractmethod
    def get_attempt(self, attempt_id: str) -> Optional[Attempt]:
        """Attempt by id, or None"""
        ...

    @abstractmethod
    def find_in_progress(self, user_id: str, activity_id: str) -> Optional[Attempt]:
        """The in_progress attempt for (user, activity), or None"""
        ...

    @abstractmethod
    def count_completed(self, user_id: str, activity_id: str) -> int:
        ...

    @abstractmethod
    def list_attempts(self, user_id: str, activity_id: str) -> List[Attempt]:
        """All attempts of a user for an activity, newest first"""
        ...

    @abstractmethod
    def list_completed(self, activity_id: str) -> List[Attempt]:
        """All completed attempts for an activity"""
        ...

    @abstractmethod
    def insert_attempt(self, attempt: Attempt) -> bool:
        """
        Persist a new in_progress attempt.
        Returns False (and stores nothing) if (user, activity) already has one.
        """
        ...

    @abstractmethod
    def update_attempt(self, attempt: Attempt, expected_status: AttemptStatus) -> bool:
        """
        Replace the stored attempt only if its persisted status still equals
        expected_status. Returns whether the write happened.
        """
        ...

    @abstractmethod
    def upsert_response(self, response: Response) -> Response:
        """Insert or overwrite by (attempt_id, question_id)"""
        ...

    @abstractmethod
    def get_responses(self, attempt_id: str) -> List[Response]:
        ...

    @abstractmethod
    def mark_response(self, attempt_id: str, question_id: str, is_correct: bool) -> None:
        """Record the correctness flag assigned at scoring time"""
        ...


class ActivityReadModel(Protocol):
    """Activity configuration and question bank"""

    @abstractmethod
    def get_activity(self, activity_id: str) -> Optional[Activity]:
        ...

    @abstractmethod
    def get_questions(self, activity_id: str) -> List[Question]:
        """Questions of an activity, deleted ones included"""
        ...


class MembershipLookup(Protocol):
    """Group membership + role"""

    @abstractmethod
    def get_membership(self, user_id: str, group_id: str) -> Optional[Membership]:
        ...
