# FILE: attempt_engine/services/engine.py
"""
Attempt state machine and public engine operations

not_started -> in_progress -> completed. Nothing leaves ``completed``.

Every public operation returns an ``OperationResult``; engine errors become
failed results carrying their code, anything unexpected is logged with its
traceback and reported as ``operation_failed``.

Deadlines are recomputed from the persisted ``started_at`` before any
mutating call. An overdue attempt is force-submitted first and the original
request is then refused (except an explicit submit, which returns the outcome).
"""
import logging
import random
import threading
import uuid
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from attempt_engine.errors import (
    OPERATION_FAILED,
    AuthorizationError,
    EngineError,
    NotFoundError,
    OperationResult,
    StateError,
    ValidationError,
)
from attempt_engine.models.activities import Activity
from attempt_engine.models.attempts import (
    AntiCheatStats,
    Attempt,
    AttemptStatus,
    CaseAnswer,
)
from attempt_engine.models.settings import ActivityMode
from attempt_engine.services import telemetry
from attempt_engine.services.anti_cheat import AntiCheatAggregator
from attempt_engine.services.evaluation import (
    PENDING_EVALUATION,
    CaseEvaluator,
    HeuristicQuestionEvaluator,
    InquiryContext,
    QuestionEvaluator,
)
from attempt_engine.services.export import export_csv
from attempt_engine.services.gate import AttemptGate, require_user
from attempt_engine.services.leaderboard import LeaderboardProjector
from attempt_engine.services.ports import ActivityReadModel, AttemptRepository, MembershipLookup
from attempt_engine.services.response_store import ResponseStore
from attempt_engine.services.scoring import ScoringEngine, summarize_outcome
from attempt_engine.services.shuffle import ShuffleEngine, ShuffleMap
from attempt_engine.services.timer import ADVANCE, Clock, TimerCoordinator, utc_now

logger = logging.getLogger(__name__)

CompletionHook = Callable[[Attempt], None]

EXPORT_ROLES = {"owner", "admin", "instructor"}
ALREADY_SUBMITTED = "This attempt has already been submitted"
TIME_EXPIRED = "Time limit exceeded; the attempt was submitted automatically"


class _KeyLock:
    """A lock plus the number of callers holding or waiting on it"""

    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class AttemptEngine:
    """Orchestrates gate, shuffle, responses, timers, scoring and anti-cheat for attempts"""

    def __init__(
        self,
        repository: AttemptRepository,
        activities: ActivityReadModel,
        memberships: MembershipLookup,
        clock: Clock = utc_now,
        rng: Optional[random.Random] = None,
        case_evaluator: Optional[CaseEvaluator] = None,
        question_evaluator: Optional[QuestionEvaluator] = None,
        completion_hooks: Optional[Iterable[CompletionHook]] = None
    ):
        self.repository = repository
        self.activities = activities
        self.memberships = memberships

        self.timer = TimerCoordinator(clock)
        self.gate = AttemptGate(activities, memberships, repository)
        self.shuffle = ShuffleEngine(rng)
        self.responses = ResponseStore(repository, clock)
        self.scoring = ScoringEngine(case_evaluator)
        self.question_evaluator = question_evaluator or HeuristicQuestionEvaluator()
        self.anti_cheat = AntiCheatAggregator()
        self.leaderboard = LeaderboardProjector()

        self._hooks: List[CompletionHook] = list(completion_hooks or [])
        self._locks: Dict[str, _KeyLock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def on_completed(self, hook: CompletionHook) -> None:
        """Register a callback fired once per attempt, after it completes"""
        self._hooks.append(hook)

    @contextmanager
    def _lock(self, key: str):
        """Serialize operations on ``key``; the entry is dropped once nobody holds or waits on it"""
        with self._locks_guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _KeyLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[key]

    def _run(self, operation: str, fn: Callable[..., Any], *args, **kwargs) -> OperationResult:
        try:
            return OperationResult.ok(fn(*args, **kwargs))
        except EngineError as e:
            logger.info(f"{operation} refused ({e.code}): {e.message}")
            return OperationResult.fail(e.message, e.code)
        except Exception as e:
            logger.error(f"{operation} failed: {e}", exc_info=True)
            return OperationResult.fail("Operation failed", OPERATION_FAILED)

    def _load_owned(self, user_id: str, attempt_id: str) -> Attempt:
        require_user(user_id)
        attempt = self.repository.get_attempt(attempt_id)
        if attempt is None or attempt.user_id != user_id:
            raise NotFoundError("Attempt not found")
        return attempt

    def _activity_for(self, attempt: Attempt) -> Activity:
        # Soft-deleted activities still own their in-flight attempts
        activity = self.activities.get_activity(attempt.activity_id)
        if activity is None:
            raise NotFoundError("Activity not found")
        return activity

    def _open_for_write(self, user_id: str, attempt_id: str) -> Tuple[Attempt, Activity]:
        """Load an attempt for mutation, force-submitting it first if overdue"""
        attempt = self._load_owned(user_id, attempt_id)
        if attempt.is_completed:
            raise StateError(ALREADY_SUBMITTED)

        activity = self._activity_for(attempt)
        if self.timer.is_expired(attempt, activity.settings):
            self._complete(attempt, activity, auto_submitted=True)
            raise StateError(TIME_EXPIRED)
        return attempt, activity

    def _sweep(self, attempt: Attempt, activity: Activity) -> Attempt:
        """Force-submit an overdue attempt; returns the current version either way"""
        if self.timer.is_expired(attempt, activity.settings):
            return self._complete(attempt, activity, auto_submitted=True)
        return attempt

    def _save(self, attempt: Attempt) -> None:
        if not self.repository.update_attempt(attempt, expected_status=AttemptStatus.IN_PROGRESS):
            raise StateError(ALREADY_SUBMITTED)

    def _complete(self, attempt: Attempt, activity: Activity, auto_submitted: bool = False) -> Attempt:
        responses = self.repository.get_responses(attempt.id)
        questions = (
            self.activities.get_questions(activity.id) if attempt.mode == ActivityMode.EXAM else []
        )

        completed, correctness = self.scoring.finalize(
            attempt,
            responses,
            activity.settings,
            questions,
            now=self.timer.now(),
            auto_submitted=auto_submitted,
        )

        # Conditional on the pre-transition status: exactly one submit wins
        self._save(completed)

        for question_id, is_correct in correctness.items():
            self.repository.mark_response(attempt.id, question_id, is_correct)

        logger.info(
            f"Attempt {attempt.id} completed (mode={attempt.mode.value}, "
            f"auto_submitted={auto_submitted}, passed={completed.passed})"
        )
        telemetry.record_event(
            "attempt_completed",
            attempt_id=attempt.id,
            activity_id=attempt.activity_id,
            mode=attempt.mode.value,
            auto_submitted=auto_submitted,
            passed=completed.passed,
            time_spent_seconds=completed.time_spent_seconds,
        )
        self._fire_hooks(completed)
        return completed

    def _fire_hooks(self, attempt: Attempt) -> None:
        for hook in self._hooks:
            try:
                hook(attempt)
            except Exception as e:
                logger.error(f"Completion hook {hook!r} failed for {attempt.id}: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(
        self,
        user_id: str,
        activity_id: str,
        mode: Optional[Union[ActivityMode, str]] = None
    ) -> OperationResult:
        """Create, or idempotently resume, the caller's attempt"""
        return self._run("start", self._start, user_id, activity_id, mode)

    def _start(self, user_id: str, activity_id: str, mode: Optional[Union[ActivityMode, str]]) -> Dict[str, Any]:
        require_user(user_id)
        if mode is not None:
            try:
                mode = ActivityMode(mode)
            except ValueError as e:
                raise ValidationError(f"Unknown activity mode: {mode}") from e

        with self._lock(f"start:{user_id}:{activity_id}"):
            decision = self.gate.admit(user_id, activity_id, mode)

            if decision.existing is not None:
                with self._lock(decision.existing.id):
                    current = self.repository.get_attempt(decision.existing.id)
                    if current is not None and not current.is_completed:
                        current = self._sweep(current, decision.activity)
                    if current is not None and not current.is_completed:
                        logger.info(f"Resuming attempt {current.id} for user {user_id}")
                        return self._start_view(current, decision.activity, resumed=True)
                # The old attempt just ran out; the gate decides on a fresh one
                decision = self.gate.admit(user_id, activity_id, mode)

            activity = decision.activity
            shuffle_map = self._draw(activity, decision.questions)
            now = self.timer.now()

            attempt = Attempt(
                id=str(uuid.uuid4()),
                user_id=user_id,
                activity_id=activity.id,
                mode=activity.mode,
                status=AttemptStatus.IN_PROGRESS,
                started_at=now,
                question_order=shuffle_map.question_order,
                choice_shuffles=shuffle_map.choice_shuffles,
                keyword_assignments=shuffle_map.keyword_assignments,
            )
            if activity.mode == ActivityMode.EXAM:
                attempt.total_questions = len(shuffle_map.question_order)
            elif activity.mode == ActivityMode.CASE:
                attempt.scenario_started_at = now
            else:
                attempt.questions_required = activity.settings.questions_required

            if not self.repository.insert_attempt(attempt):
                # Lost a race with another process; hand back the winner
                existing = self.repository.find_in_progress(user_id, activity.id)
                if existing is None:
                    raise StateError("Could not create attempt")
                return self._start_view(existing, activity, resumed=True)

        logger.info(
            f"Started attempt {attempt.id} (user={user_id}, activity={activity.id}, "
            f"mode={activity.mode.value}, attempt #{decision.completed_count + 1})"
        )
        telemetry.record_event(
            "attempt_started",
            attempt_id=attempt.id,
            activity_id=activity.id,
            mode=activity.mode.value,
        )
        return self._start_view(attempt, activity, resumed=False)

    def _draw(self, activity: Activity, questions) -> ShuffleMap:
        if activity.mode == ActivityMode.EXAM:
            shuffle_map = self.shuffle.exam_map(questions, activity.settings)
            if not shuffle_map.question_order:
                raise ValidationError("This exam has no questions")
            return shuffle_map
        if activity.mode == ActivityMode.CASE:
            shuffle_map = self.shuffle.case_map(activity.settings)
            if not shuffle_map.question_order:
                raise ValidationError("This case study has no scenarios")
            return shuffle_map
        return self.shuffle.inquiry_map(activity.settings)

    def _start_view(self, attempt: Attempt, activity: Activity, resumed: bool) -> Dict[str, Any]:
        return {
            "attempt_id": attempt.id,
            "mode": attempt.mode.value,
            "started_at": attempt.started_at.isoformat(),
            "question_order": list(attempt.question_order),
            "choice_shuffles": {k: list(v) for k, v in attempt.choice_shuffles.items()},
            "keyword_assignments": [k.model_dump() for k in attempt.keyword_assignments],
            "remaining_seconds": self.timer.remaining_seconds(attempt, activity.settings),
            "resumed": resumed,
        }

    def submit(self, user_id: str, attempt_id: str) -> OperationResult:
        """Score and complete; refused once the attempt is completed"""
        return self._run("submit", self._submit, user_id, attempt_id)

    def _submit(self, user_id: str, attempt_id: str) -> Dict[str, Any]:
        with self._lock(attempt_id):
            attempt = self._load_owned(user_id, attempt_id)
            if attempt.is_completed:
                raise StateError(ALREADY_SUBMITTED)
            activity = self._activity_for(attempt)
            overdue = self.timer.is_expired(attempt, activity.settings)
            completed = self._complete(attempt, activity, auto_submitted=overdue)
        return summarize_outcome(completed)

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    def save_response(
        self,
        user_id: str,
        attempt_id: str,
        question_id: str,
        selected_choices: List[int],
        display_order: bool = False
    ) -> OperationResult:
        """Upsert an exam answer; ``display_order`` maps shuffled positions back to original choices"""
        return self._run(
            "save_response", self._save_response,
            user_id, attempt_id, question_id, selected_choices, display_order,
        )

    def _save_response(
        self,
        user_id: str,
        attempt_id: str,
        question_id: str,
        selected_choices: List[int],
        display_order: bool
    ) -> Dict[str, Any]:
        with self._lock(attempt_id):
            attempt, activity = self._open_for_write(user_id, attempt_id)
            if attempt.mode != ActivityMode.EXAM:
                raise ValidationError(f"Choice answers are not accepted in {attempt.mode.value} mode")

            response = self.responses.save_choices(
                attempt, user_id, question_id, list(selected_choices), display_order=display_order
            )

        telemetry.record_event("response_saved", attempt_id=attempt_id, mode=attempt.mode.value)
        return {
            "response_id": response.id,
            "question_id": response.question_id,
            "selected_choices": response.selected_choices,
            "remaining_seconds": self.timer.remaining_seconds(attempt, activity.settings),
        }

    def save_case_response(
        self,
        user_id: str,
        attempt_id: str,
        scenario_id: str,
        issues: str = "",
        solution: str = ""
    ) -> OperationResult:
        """
        Auto-save the current scenario's answer. When the scenario timer has
        run out the attempt moves on to the next scenario (or signals submit
        on the last one).
        """
        return self._run(
            "save_case_response", self._save_case_response,
            user_id, attempt_id, scenario_id, issues, solution,
        )

    def _save_case_response(
        self,
        user_id: str,
        attempt_id: str,
        scenario_id: str,
        issues: str,
        solution: str
    ) -> Dict[str, Any]:
        with self._lock(attempt_id):
            attempt, activity = self._open_for_write(user_id, attempt_id)
            if attempt.mode != ActivityMode.CASE:
                raise ValidationError(f"Case answers are not accepted in {attempt.mode.value} mode")
            if scenario_id not in attempt.question_order:
                raise ValidationError(f"Scenario {scenario_id} is not part of this attempt")

            index = attempt.question_order.index(scenario_id)
            if index < attempt.current_scenario_index:
                raise StateError("Time for this scenario has expired")
            if index > attempt.current_scenario_index:
                raise StateError("This scenario is not open yet")

            response = self.responses.save_case_answer(
                attempt, user_id, scenario_id, CaseAnswer(issues=issues or "", solution=solution or "")
            )

            signal = self.timer.scenario_signal(attempt, activity.settings)
            if signal.action == ADVANCE:
                attempt = self._advance(attempt)
                logger.info(f"Scenario timer expired on {attempt_id}; advanced to {attempt.current_scenario_index}")

        return {
            "response_id": response.id,
            "scenario_id": scenario_id,
            "scenario": signal.to_dict(),
            "current_scenario_index": attempt.current_scenario_index,
            "remaining_seconds": self.timer.remaining_seconds(attempt, activity.settings),
        }

    def _advance(self, attempt: Attempt) -> Attempt:
        advanced = attempt.model_copy(update={
            "current_scenario_index": attempt.current_scenario_index + 1,
            "scenario_started_at": self.timer.now(),
        })
        self._save(advanced)
        return advanced

    def advance_scenario(self, user_id: str, attempt_id: str) -> OperationResult:
        """Move a case attempt on to its next scenario"""
        return self._run("advance_scenario", self._advance_scenario, user_id, attempt_id)

    def _advance_scenario(self, user_id: str, attempt_id: str) -> Dict[str, Any]:
        with self._lock(attempt_id):
            attempt, activity = self._open_for_write(user_id, attempt_id)
            if attempt.mode != ActivityMode.CASE:
                raise ValidationError("Only case attempts have scenarios")
            if attempt.current_scenario_index + 1 >= len(attempt.question_order):
                raise StateError("No more scenarios; submit the attempt")

            attempt = self._advance(attempt)
            signal = self.timer.scenario_signal(attempt, activity.settings)
        return {
            "current_scenario_index": attempt.current_scenario_index,
            "scenario": signal.to_dict(),
        }

    def submit_inquiry_question(self, user_id: str, attempt_id: str, content: str) -> OperationResult:
        """Record one generated question together with its evaluation"""
        return self._run(
            "submit_inquiry_question", self._submit_inquiry_question, user_id, attempt_id, content
        )

    def _submit_inquiry_question(self, user_id: str, attempt_id: str, content: str) -> Dict[str, Any]:
        with self._lock(attempt_id):
            attempt, activity = self._open_for_write(user_id, attempt_id)
            if attempt.mode != ActivityMode.INQUIRY:
                raise ValidationError("Questions can only be submitted in inquiry mode")

            content = (content or "").strip()
            if not content:
                raise ValidationError("Question content is required")

            settings = activity.settings
            required = attempt.questions_required or settings.questions_required
            slot = attempt.questions_generated
            if slot >= required:
                raise StateError("All required questions have already been submitted")

            keywords = attempt.keyword_assignments[slot] if slot < len(attempt.keyword_assignments) else None
            context = InquiryContext(
                activity_name=activity.name,
                subject=settings.subject or activity.subject,
                topic=settings.topic,
                education_level=settings.education_level or activity.education_level,
                keywords=keywords,
            )
            try:
                evaluation = self.question_evaluator.evaluate(content, context)
            except Exception as e:
                logger.warning(f"Question evaluation failed on {attempt_id}: {e}", exc_info=True)
                evaluation = PENDING_EVALUATION.model_copy()

            question_id = f"iq-{slot + 1}"
            response = self.responses.save_text(
                attempt, user_id, question_id, content, evaluation=evaluation
            )
            attempt = attempt.model_copy(update={"questions_generated": slot + 1})
            self._save(attempt)

        telemetry.record_event("response_saved", attempt_id=attempt_id, mode=attempt.mode.value)
        return {
            "response_id": response.id,
            "question_id": question_id,
            "question_number": slot + 1,
            "questions_generated": attempt.questions_generated,
            "questions_required": required,
            "keywords": keywords.model_dump() if keywords else None,
            "evaluation": evaluation.model_dump(),
            "remaining_seconds": self.timer.remaining_seconds(attempt, settings),
        }

    # ------------------------------------------------------------------
    # Anti-cheat
    # ------------------------------------------------------------------

    def update_cheating_stats(
        self,
        user_id: str,
        attempt_id: str,
        stats: Union[AntiCheatStats, Dict[str, Any]]
    ) -> OperationResult:
        """Overwrite cumulative counters and append unseen events"""
        return self._run("update_cheating_stats", self._update_cheating_stats, user_id, attempt_id, stats)

    def _update_cheating_stats(
        self,
        user_id: str,
        attempt_id: str,
        stats: Union[AntiCheatStats, Dict[str, Any]]
    ) -> Dict[str, Any]:
        if not isinstance(stats, AntiCheatStats):
            try:
                stats = AntiCheatStats.model_validate(stats)
            except ValueError as e:
                raise ValidationError(f"Malformed anti-cheat payload: {e}") from e

        with self._lock(attempt_id):
            attempt, _ = self._open_for_write(user_id, attempt_id)
            merged, appended = self.anti_cheat.merge(attempt, stats)
            self._save(merged)

        telemetry.record_event(
            "anti_cheat_synced",
            attempt_id=attempt_id,
            appended=len(appended),
            tab_switch_count=merged.tab_switch_count,
        )
        return {
            "appended": len(appended),
            "total_events": len(merged.cheating_events),
            "last_event_sequence": merged.last_event_sequence,
            "tab_switch_count": merged.tab_switch_count,
            "copy_attempts": merged.copy_attempts,
            "paste_attempts": merged.paste_attempts,
        }

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_timer(self, user_id: str, attempt_id: str) -> OperationResult:
        """Authoritative remaining time (force-submits an overdue attempt)"""
        return self._run("get_timer", self._get_timer, user_id, attempt_id)

    def _get_timer(self, user_id: str, attempt_id: str) -> Dict[str, Any]:
        with self._lock(attempt_id):
            attempt = self._load_owned(user_id, attempt_id)
            activity = self._activity_for(attempt)
            if not attempt.is_completed:
                attempt = self._sweep(attempt, activity)

        if attempt.is_completed:
            return {
                "status": attempt.status.value,
                "remaining_seconds": 0,
                "expired": attempt.auto_submitted,
                "auto_submitted": attempt.auto_submitted,
                "scenario": None,
            }

        remaining = self.timer.remaining_seconds(attempt, activity.settings)
        scenario = None
        if attempt.mode == ActivityMode.CASE:
            scenario = self.timer.scenario_signal(attempt, activity.settings).to_dict()
        return {
            "status": attempt.status.value,
            "remaining_seconds": remaining,
            "expired": False,
            "auto_submitted": False,
            "scenario": scenario,
        }

    def get_attempt(self, user_id: str, attempt_id: str) -> OperationResult:
        """Attempt with its saved answers, for resuming or reviewing"""
        return self._run("get_attempt", self._get_attempt, user_id, attempt_id)

    def _get_attempt(self, user_id: str, attempt_id: str) -> Dict[str, Any]:
        with self._lock(attempt_id):
            attempt = self._load_owned(user_id, attempt_id)
            activity = self._activity_for(attempt)
            if not attempt.is_completed:
                attempt = self._sweep(attempt, activity)

        responses = self.repository.get_responses(attempt.id)
        view = attempt.model_dump(mode="json")
        view["responses"] = [r.model_dump(mode="json") for r in responses]
        view["remaining_seconds"] = (
            0 if attempt.is_completed else self.timer.remaining_seconds(attempt, activity.settings)
        )
        if attempt.mode == ActivityMode.EXAM:
            view["questions"] = self._displayed_questions(attempt, activity)
        return view

    def _displayed_questions(self, attempt: Attempt, activity: Activity) -> List[Dict[str, Any]]:
        """Questions in this attempt's order with choices in its shuffled order; no answer key"""
        by_id = {q.id: q for q in self.activities.get_questions(activity.id)}
        displayed = []
        for question_id in attempt.question_order:
            question = by_id.get(question_id)
            if question is None:
                continue
            permutation = attempt.choice_shuffles.get(question_id, list(range(len(question.choices))))
            displayed.append({
                "id": question.id,
                "content": question.content,
                "choices": [question.choices[i] for i in permutation if i < len(question.choices)],
                "multiple": len(question.correct_answers) > 1,
            })
        return displayed

    def get_status(self, user_id: str, activity_id: str) -> OperationResult:
        """The caller's in-progress and completed attempts on an activity"""
        return self._run("get_status", self._get_status, user_id, activity_id)

    def _get_status(self, user_id: str, activity_id: str) -> Dict[str, Any]:
        require_user(user_id)
        activity = self.gate.load_activity(activity_id)
        self.gate.check_member(user_id, activity)

        in_progress = self.repository.find_in_progress(user_id, activity.id)
        if in_progress is not None:
            with self._lock(in_progress.id):
                current = self.repository.get_attempt(in_progress.id)
                in_progress = self._sweep(current, activity) if current and not current.is_completed else current
            if in_progress is not None and in_progress.is_completed:
                in_progress = None

        completed = [a for a in self.repository.list_attempts(user_id, activity.id) if a.is_completed]
        scores = [a.leaderboard_score for a in completed if a.leaderboard_score is not None]
        max_attempts = activity.settings.max_attempts

        return {
            "in_progress": {
                "attempt_id": in_progress.id,
                "started_at": in_progress.started_at.isoformat(),
                "remaining_seconds": self.timer.remaining_seconds(in_progress, activity.settings),
            } if in_progress else None,
            "completed": [
                {**summarize_outcome(a), "completed_at": a.completed_at.isoformat() if a.completed_at else None}
                for a in completed
            ],
            "attempt_count": len(completed),
            "max_attempts": max_attempts,
            "can_start": in_progress is not None or len(completed) < max_attempts,
            "best_score": round(max(scores), 1) if scores else None,
        }

    def get_leaderboard(self, user_id: str, activity_id: str, best_per_user: bool = False) -> OperationResult:
        """Competition-ranked completed attempts for an activity"""
        return self._run("get_leaderboard", self._get_leaderboard, user_id, activity_id, best_per_user)

    def _get_leaderboard(self, user_id: str, activity_id: str, best_per_user: bool) -> Dict[str, Any]:
        require_user(user_id)
        activity = self.gate.load_activity(activity_id)
        self.gate.check_member(user_id, activity)

        entries = self.leaderboard.project(
            self.repository.list_completed(activity.id), best_per_user=best_per_user
        )
        return {
            "activity_id": activity.id,
            "mode": activity.mode.value,
            "entries": [e.to_dict() for e in entries],
        }

    def export_results(self, user_id: str, activity_id: str) -> OperationResult:
        """CSV of completed attempts; group staff only"""
        return self._run("export_results", self._export_results, user_id, activity_id)

    def _export_results(self, user_id: str, activity_id: str) -> str:
        require_user(user_id)
        activity = self.gate.load_activity(activity_id)
        membership = self.gate.check_member(user_id, activity)
        if membership.role not in EXPORT_ROLES:
            raise AuthorizationError("Only group staff can export results")
        return export_csv(self.repository.list_completed(activity.id))
