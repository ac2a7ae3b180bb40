# FILE: attempt_engine/services/response_store.py
"""
Response capture: one upserted answer per (attempt, question), last write wins
"""
import logging
import uuid
from typing import List, Optional

from attempt_engine.errors import NotFoundError, StateError, ValidationError
from attempt_engine.models.attempts import (
    Attempt,
    AttemptStatus,
    CaseAnswer,
    QuestionEvaluation,
    Response,
)
from attempt_engine.services.ports import AttemptRepository
from attempt_engine.services.shuffle import to_original_choices
from attempt_engine.services.timer import Clock, utc_now

logger = logging.getLogger(__name__)


def check_writable(attempt: Optional[Attempt], user_id: str) -> Attempt:
    """Attempt must exist, belong to the caller and still be in progress"""
    if attempt is None or attempt.user_id != user_id:
        raise NotFoundError("Attempt not found")
    if attempt.status != AttemptStatus.IN_PROGRESS:
        raise StateError("This attempt has already been submitted")
    return attempt


class ResponseStore:
    """Stores answers without scoring them; scoring happens at submission"""

    def __init__(self, repository: AttemptRepository, clock: Clock = utc_now):
        self.repository = repository
        self.clock = clock

    def save_choices(
        self,
        attempt: Attempt,
        user_id: str,
        question_id: str,
        selected_choices: List[int],
        display_order: bool = False
    ) -> Response:
        """Exam answer. With display_order, positions are mapped back through the attempt's choice shuffle"""
        check_writable(attempt, user_id)

        permutation = attempt.choice_shuffles.get(question_id)
        if question_id not in attempt.question_order or permutation is None:
            raise ValidationError(f"Question {question_id} is not part of this attempt")

        for index in selected_choices:
            if not 0 <= index < len(permutation):
                raise ValidationError(f"Choice index {index} out of range for question {question_id}")

        if display_order:
            selected_choices = to_original_choices(permutation, selected_choices)

        # Selections are a set; keep first-seen order for display
        unique = list(dict.fromkeys(selected_choices))
        return self._upsert(attempt, user_id, question_id, selected_choices=unique)

    def save_case_answer(
        self,
        attempt: Attempt,
        user_id: str,
        scenario_id: str,
        answer: CaseAnswer
    ) -> Response:
        check_writable(attempt, user_id)
        if scenario_id not in attempt.question_order:
            raise ValidationError(f"Scenario {scenario_id} is not part of this attempt")
        return self._upsert(attempt, user_id, scenario_id, case_answer=answer)

    def save_text(
        self,
        attempt: Attempt,
        user_id: str,
        question_id: str,
        text: str,
        evaluation: Optional[QuestionEvaluation] = None
    ) -> Response:
        check_writable(attempt, user_id)
        return self._upsert(attempt, user_id, question_id, text=text, evaluation=evaluation)

    def _upsert(self, attempt: Attempt, user_id: str, question_id: str, **answer) -> Response:
        now = self.clock()
        response = Response(
            id=str(uuid.uuid4()),
            attempt_id=attempt.id,
            question_id=question_id,
            user_id=user_id,
            created_at=now,
            updated_at=now,
            **answer,
        )
        stored = self.repository.upsert_response(response)
        logger.debug(f"Saved response {attempt.id}/{question_id}")
        return stored
