# FILE: attempt_engine/services/scoring.py
"""
Mode-specific grading and attempt finalization
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from attempt_engine.models.activities import Question
from attempt_engine.models.attempts import Attempt, AttemptStatus, CaseAnswer, Response, ScenarioScore
from attempt_engine.models.settings import (
    ActivityMode,
    CaseSettings,
    ExamSettings,
    InquirySettings,
)
from attempt_engine.services.evaluation import CaseEvaluator, HeuristicCaseEvaluator
from attempt_engine.services.timer import ModeSettings

logger = logging.getLogger(__name__)


def is_exact_match(selected: Optional[List[int]], correct: List[int]) -> bool:
    """Order-independent, multi-select safe comparison of choice-index sets"""
    return sorted(set(selected or [])) == sorted(set(correct))


def _round1(value: float) -> float:
    return round(value * 10) / 10


class ScoringEngine:
    """Grades an in-progress attempt and returns its completed version"""

    def __init__(self, case_evaluator: Optional[CaseEvaluator] = None):
        self.fallback_case_evaluator = HeuristicCaseEvaluator()
        self.case_evaluator = case_evaluator or self.fallback_case_evaluator

    def finalize(
        self,
        attempt: Attempt,
        responses: List[Response],
        settings: ModeSettings,
        questions: List[Question],
        now: datetime,
        auto_submitted: bool = False
    ) -> Tuple[Attempt, Dict[str, bool]]:
        """
        Score and complete the attempt.
        Returns the completed attempt (not yet persisted) and the per-question
        correctness flags to write back onto the responses (exam only).
        """
        correctness: Dict[str, bool] = {}
        update: Dict[str, Any] = {}

        if attempt.mode == ActivityMode.EXAM:
            update, correctness = self.score_exam(attempt, responses, questions, settings)
        elif attempt.mode == ActivityMode.CASE:
            update = self.score_case(attempt, responses, settings)
        else:
            update = self.score_inquiry(attempt, responses, settings)

        update.update(
            status=AttemptStatus.COMPLETED,
            completed_at=now,
            time_spent_seconds=max(0, int((now - attempt.started_at).total_seconds())),
            auto_submitted=auto_submitted,
        )
        return attempt.model_copy(update=update, deep=True), correctness

    def score_exam(
        self,
        attempt: Attempt,
        responses: List[Response],
        questions: List[Question],
        settings: ExamSettings
    ) -> Tuple[Dict[str, Any], Dict[str, bool]]:
        answer_key = {q.id: q.correct_answers for q in questions}
        in_attempt = set(attempt.question_order)

        correct_answers = 0
        correctness: Dict[str, bool] = {}
        for response in responses:
            if response.question_id not in in_attempt:
                continue
            correct = answer_key.get(response.question_id)
            if correct is None:
                logger.warning(f"No answer key for question {response.question_id}")
                continue

            is_correct = is_exact_match(response.selected_choices, correct)
            correctness[response.question_id] = is_correct
            if is_correct:
                correct_answers += 1

        total_questions = len(attempt.question_order)
        score = (correct_answers / total_questions) * 100 if total_questions > 0 else 0.0

        return {
            "score": score,
            "passed": score >= settings.pass_threshold,
            "correct_answers": correct_answers,
            "total_questions": total_questions,
        }, correctness

    def score_case(
        self,
        attempt: Attempt,
        responses: List[Response],
        settings: CaseSettings
    ) -> Dict[str, Any]:
        scenarios = {s.id: s for s in settings.scenarios}
        answers = {r.question_id: r.case_answer for r in responses if r.case_answer is not None}

        scenario_scores: Dict[str, ScenarioScore] = {}
        for scenario_id in attempt.question_order:
            scenario = scenarios.get(scenario_id)
            if scenario is None:
                logger.warning(f"Scenario {scenario_id} no longer configured; skipped")
                continue
            answer = answers.get(scenario_id) or CaseAnswer()
            scenario_scores[scenario_id] = self._evaluate_case(scenario, answer)

        scores = [s.score for s in scenario_scores.values()]
        total_score = _round1(sum(scores) / len(scores)) if scores else 0.0

        return {
            "total_score": total_score,
            "passed": total_score >= settings.pass_threshold,
            "scenario_scores": scenario_scores,
        }

    def _evaluate_case(self, scenario, answer: CaseAnswer) -> ScenarioScore:
        try:
            return self.case_evaluator.evaluate(scenario, answer)
        except Exception as e:
            if self.case_evaluator is self.fallback_case_evaluator:
                raise
            logger.warning(f"Case evaluator failed for {scenario.id}, using heuristic: {e}")
            return self.fallback_case_evaluator.evaluate(scenario, answer)

    def score_inquiry(
        self,
        attempt: Attempt,
        responses: List[Response],
        settings: InquirySettings
    ) -> Dict[str, Any]:
        scores = [r.evaluation.overall_score for r in responses if r.evaluation is not None]
        average = sum(scores) / len(scores) if scores else 0.0

        return {
            "average_score": _round1(average),
            "passed": average >= settings.pass_threshold,
        }


def summarize_outcome(attempt: Attempt) -> Dict[str, Any]:
    """Mode-appropriate submission result"""
    summary: Dict[str, Any] = {
        "attempt_id": attempt.id,
        "passed": attempt.passed,
        "time_spent_seconds": attempt.time_spent_seconds,
        "auto_submitted": attempt.auto_submitted,
    }

    if attempt.mode == ActivityMode.EXAM:
        summary.update(
            score=_round1(attempt.score or 0.0),
            correct_answers=attempt.correct_answers,
            total_questions=attempt.total_questions,
        )
    elif attempt.mode == ActivityMode.CASE:
        summary.update(
            total_score=attempt.total_score,
            scenario_scores=[
                {
                    "scenario_id": s.scenario_id,
                    "title": s.title,
                    "score": s.score,
                    "feedback": s.feedback,
                }
                for s in attempt.scenario_scores.values()
            ],
        )
    else:
        summary.update(
            average_score=attempt.average_score,
            questions_generated=attempt.questions_generated,
            questions_required=attempt.questions_required,
        )

    return summary
