# FILE: attempt_engine/services/shuffle.py
"""
Per-attempt question/choice ordering and keyword assignment

Orders are drawn once, when the attempt is created, and persisted on the
attempt. Nothing here is seeded across attempts; pass a ``random.Random``
to make draws reproducible in tests.
"""
import logging
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, TypeVar

from attempt_engine.models.activities import Question
from attempt_engine.models.attempts import KeywordPair
from attempt_engine.models.settings import CaseSettings, ExamSettings, InquirySettings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ShuffleMap:
    """What gets frozen on a new attempt"""
    question_order: List[str] = field(default_factory=list)
    choice_shuffles: Dict[str, List[int]] = field(default_factory=dict)
    keyword_assignments: List[KeywordPair] = field(default_factory=list)


class ShuffleEngine:
    """Draws the shuffle map for a new attempt"""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def fisher_yates(self, items: Sequence[T]) -> List[T]:
        """Uniform random permutation (returns a new list)"""
        shuffled = list(items)
        for i in range(len(shuffled) - 1, 0, -1):
            j = self.rng.randint(0, i)
            shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
        return shuffled

    def exam_map(self, questions: List[Question], settings: ExamSettings) -> ShuffleMap:
        eligible = [q for q in questions if not q.is_deleted]
        question_ids = [q.id for q in eligible]

        if settings.shuffle_questions:
            question_ids = self.fisher_yates(question_ids)

        sample_size = settings.questions_to_show or len(question_ids)
        question_ids = question_ids[:sample_size]

        choice_counts = {q.id: len(q.choices) for q in eligible}
        choice_shuffles = {}
        for question_id in question_ids:
            identity = list(range(choice_counts[question_id]))
            choice_shuffles[question_id] = (
                self.fisher_yates(identity) if settings.shuffle_choices else identity
            )

        logger.debug(
            f"Exam shuffle: {len(question_ids)}/{len(eligible)} questions, "
            f"shuffle_questions={settings.shuffle_questions} shuffle_choices={settings.shuffle_choices}"
        )
        return ShuffleMap(question_order=question_ids, choice_shuffles=choice_shuffles)

    def case_map(self, settings: CaseSettings) -> ShuffleMap:
        # Scenarios keep their configured order
        scenario_ids = [s.id for s in settings.scenarios]
        if settings.num_cases_to_show:
            scenario_ids = scenario_ids[:settings.num_cases_to_show]
        return ShuffleMap(question_order=scenario_ids)

    def inquiry_map(self, settings: InquirySettings) -> ShuffleMap:
        return ShuffleMap(
            keyword_assignments=self.assign_keywords(
                settings.keyword_pool_1,
                settings.keyword_pool_2,
                settings.questions_required,
            )
        )

    def assign_keywords(
        self,
        pool_1: List[str],
        pool_2: List[str],
        count: int
    ) -> List[KeywordPair]:
        """
        One keyword pair per question slot, without repeating a combination
        until every combination has been used once.
        """
        if not pool_1 or not pool_2:
            return []

        combinations = [(k1, k2) for k1 in pool_1 for k2 in pool_2]
        assigned: List[KeywordPair] = []
        deck: List[tuple] = []
        for _ in range(count):
            if not deck:
                deck = self.fisher_yates(combinations)
            k1, k2 = deck.pop()
            assigned.append(KeywordPair(keyword_1=k1, keyword_2=k2))
        return assigned


def to_original_choices(permutation: List[int], displayed: List[int]) -> List[int]:
    """
    Map choice positions as displayed back to original choice indices.
    ``permutation[i]`` is the original index shown at position ``i``.
    """
    return [permutation[p] for p in displayed]
