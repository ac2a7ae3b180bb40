# FILE: attempt_engine/services/memory_store.py
"""
Process-local stores (tests, demos, STORAGE_BACKEND=memory)
"""
import logging
import threading
from typing import Dict, List, Optional, Tuple

from attempt_engine.models.activities import Activity, Membership, Question
from attempt_engine.models.attempts import Attempt, AttemptStatus, Response

logger = logging.getLogger(__name__)


class InMemoryAttemptRepository:
    """Attempt repository backed by dicts; copies in and out so callers never share state"""

    def __init__(self):
        self._lock = threading.RLock()
        self._attempts: Dict[str, Attempt] = {}
        self._responses: Dict[Tuple[str, str], Response] = {}

    def get_attempt(self, attempt_id: str) -> Optional[Attempt]:
        with self._lock:
            attempt = self._attempts.get(attempt_id)
            return attempt.model_copy(deep=True) if attempt else None

    def find_in_progress(self, user_id: str, activity_id: str) -> Optional[Attempt]:
        with self._lock:
            for attempt in self._attempts.values():
                if (
                    attempt.user_id == user_id
                    and attempt.activity_id == activity_id
                    and attempt.status == AttemptStatus.IN_PROGRESS
                ):
                    return attempt.model_copy(deep=True)
        return None

    def count_completed(self, user_id: str, activity_id: str) -> int:
        with self._lock:
            return sum(
                1 for a in self._attempts.values()
                if a.user_id == user_id
                and a.activity_id == activity_id
                and a.status == AttemptStatus.COMPLETED
            )

    def list_attempts(self, user_id: str, activity_id: str) -> List[Attempt]:
        with self._lock:
            attempts = [
                a.model_copy(deep=True) for a in self._attempts.values()
                if a.user_id == user_id and a.activity_id == activity_id
            ]
        return sorted(attempts, key=lambda a: a.started_at, reverse=True)

    def list_completed(self, activity_id: str) -> List[Attempt]:
        with self._lock:
            return [
                a.model_copy(deep=True) for a in self._attempts.values()
                if a.activity_id == activity_id and a.status == AttemptStatus.COMPLETED
            ]

    def insert_attempt(self, attempt: Attempt) -> bool:
        with self._lock:
            if self.find_in_progress(attempt.user_id, attempt.activity_id) is not None:
                return False
            self._attempts[attempt.id] = attempt.model_copy(deep=True)
        return True

    def update_attempt(self, attempt: Attempt, expected_status: AttemptStatus) -> bool:
        with self._lock:
            current = self._attempts.get(attempt.id)
            if current is None or current.status != expected_status:
                return False
            self._attempts[attempt.id] = attempt.model_copy(deep=True)
        return True

    def upsert_response(self, response: Response) -> Response:
        key = (response.attempt_id, response.question_id)
        with self._lock:
            existing = self._responses.get(key)
            if existing is not None:
                # Identity and creation time belong to the first write
                response = response.model_copy(
                    update={"id": existing.id, "created_at": existing.created_at}
                )
            self._responses[key] = response.model_copy(deep=True)
        return response

    def get_responses(self, attempt_id: str) -> List[Response]:
        with self._lock:
            responses = [
                r.model_copy(deep=True) for (a_id, _), r in self._responses.items()
                if a_id == attempt_id
            ]
        return sorted(responses, key=lambda r: r.created_at)

    def mark_response(self, attempt_id: str, question_id: str, is_correct: bool) -> None:
        with self._lock:
            response = self._responses.get((attempt_id, question_id))
            if response is None:
                logger.debug(f"No response to mark: {attempt_id}/{question_id}")
                return
            self._responses[(attempt_id, question_id)] = response.model_copy(
                update={"is_correct": is_correct}
            )


class InMemoryActivityCatalog:
    """Activity read model + membership lookup held in memory"""

    def __init__(self):
        self._activities: Dict[str, Activity] = {}
        self._questions: Dict[str, List[Question]] = {}
        self._members: Dict[Tuple[str, str], Membership] = {}

    def add_activity(self, activity: Activity, questions: Optional[List[Question]] = None):
        self._activities[activity.id] = activity
        if questions is not None:
            self._questions[activity.id] = list(questions)

    def add_member(self, user_id: str, group_id: str, role: str = "member"):
        self._members[(user_id, group_id)] = Membership(
            user_id=user_id, group_id=group_id, role=role
        )

    def get_activity(self, activity_id: str) -> Optional[Activity]:
        return self._activities.get(activity_id)

    def get_questions(self, activity_id: str) -> List[Question]:
        return list(self._questions.get(activity_id, []))

    def get_membership(self, user_id: str, group_id: str) -> Optional[Membership]:
        return self._members.get((user_id, group_id))
