# FILE: tests/test_attempt_engine.py
"""Attempt lifecycle through the engine's public operations"""
import threading

import pytest

from attempt_engine.models.attempts import AttemptStatus


def wrong_choice(correct):
    """A selection that does not match the correct set"""
    return [next(i for i in range(4) if i not in correct)]


def answer_exam(engine, user_id, attempt_id, answer_key, wrong=()):
    for question_id, correct in answer_key.items():
        selection = wrong_choice(correct) if question_id in wrong else list(correct)
        result = engine.save_response(user_id, attempt_id, question_id, selection)
        assert result.success, result.error


def take_exam(engine, user_id, answer_key, wrong=()):
    started = engine.start(user_id, "exam-1")
    assert started.success, started.error
    attempt_id = started.data["attempt_id"]
    answer_exam(engine, user_id, attempt_id, answer_key, wrong=wrong)
    return attempt_id, engine.submit(user_id, attempt_id)


def test_max_attempts_reached_after_perfect_score(engine, answer_key):
    """A 5-question exam with maxAttempts=1 cannot be started again"""
    _, submitted = take_exam(engine, "alice", answer_key)

    assert submitted.success
    assert submitted.data["score"] == 100.0
    assert submitted.data["passed"] is True
    assert submitted.data["correct_answers"] == 5
    assert submitted.data["total_questions"] == 5

    again = engine.start("alice", "exam-1")
    assert not again.success
    assert again.error_code == "state_error"
    assert again.error == "maximum attempts reached"


def test_two_of_five_correct_fails_threshold(engine, answer_key):
    """2 correct of 5 -> 40%, below the 60% pass threshold"""
    wrong = list(answer_key)[:3]
    _, submitted = take_exam(engine, "bob", answer_key, wrong=wrong)

    assert submitted.success
    assert submitted.data["score"] == 40.0
    assert submitted.data["correct_answers"] == 2
    assert submitted.data["passed"] is False


def test_unanswered_questions_count_as_wrong(engine, answer_key):
    started = engine.start("alice", "exam-1")
    attempt_id = started.data["attempt_id"]
    first = next(iter(answer_key))
    engine.save_response("alice", attempt_id, first, answer_key[first])

    submitted = engine.submit("alice", attempt_id)
    assert submitted.data["score"] == 20.0
    assert submitted.data["total_questions"] == 5


def test_start_is_idempotent_while_in_progress(engine):
    first = engine.start("alice", "exam-1")
    second = engine.start("alice", "exam-1")

    assert first.success and second.success
    assert second.data["attempt_id"] == first.data["attempt_id"]
    assert second.data["question_order"] == first.data["question_order"]
    assert second.data["choice_shuffles"] == first.data["choice_shuffles"]
    assert second.data["started_at"] == first.data["started_at"]
    assert first.data["resumed"] is False
    assert second.data["resumed"] is True


def test_resume_does_not_reset_timer(engine, clock):
    first = engine.start("alice", "exam-1")
    clock.advance(minutes=10)
    second = engine.start("alice", "exam-1")

    assert first.data["remaining_seconds"] == 1800
    assert second.data["remaining_seconds"] == 1200


def test_submit_twice_is_rejected_without_mutation(engine, repository, answer_key):
    attempt_id, first = take_exam(engine, "alice", answer_key)
    before = repository.get_attempt(attempt_id)

    second = engine.submit("alice", attempt_id)

    assert first.success
    assert not second.success
    assert second.error_code == "state_error"
    assert repository.get_attempt(attempt_id) == before


def test_racing_submits_have_one_winner(engine, answer_key):
    started = engine.start("alice", "exam-1")
    attempt_id = started.data["attempt_id"]
    answer_exam(engine, "alice", attempt_id, answer_key)

    results = []
    barrier = threading.Barrier(2)

    def submit():
        barrier.wait()
        results.append(engine.submit("alice", attempt_id))

    threads = [threading.Thread(target=submit) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(r.success for r in results) == [False, True]
    loser = next(r for r in results if not r.success)
    assert loser.error_code == "state_error"


def test_save_after_submit_is_rejected(engine, answer_key):
    attempt_id, _ = take_exam(engine, "alice", answer_key)
    result = engine.save_response("alice", attempt_id, next(iter(answer_key)), [0])

    assert not result.success
    assert result.error_code == "state_error"


def test_expired_exam_is_force_submitted_before_save(engine, repository, clock, answer_key):
    """startedAt 31 minutes ago on a 30 minute exam: a benign save triggers submission"""
    started = engine.start("alice", "exam-1")
    attempt_id = started.data["attempt_id"]
    first = next(iter(answer_key))
    engine.save_response("alice", attempt_id, first, answer_key[first])

    clock.advance(minutes=31)
    result = engine.save_response("alice", attempt_id, first, [3])

    assert not result.success
    assert result.error_code == "state_error"

    attempt = repository.get_attempt(attempt_id)
    assert attempt.status == AttemptStatus.COMPLETED
    assert attempt.auto_submitted is True
    assert attempt.time_spent_seconds == 1860
    assert attempt.correct_answers == 1


def test_explicit_submit_after_deadline_returns_outcome(engine, clock):
    started = engine.start("alice", "exam-1")
    clock.advance(minutes=45)

    submitted = engine.submit("alice", started.data["attempt_id"])

    assert submitted.success
    assert submitted.data["auto_submitted"] is True
    assert submitted.data["time_spent_seconds"] == 2700


def test_untimed_exam_never_expires(engine, clock):
    started = engine.start("alice", "exam-retake")
    assert started.data["remaining_seconds"] is None

    clock.advance(days=2)
    result = engine.save_response("alice", started.data["attempt_id"], "exam-retake-q1", [1])
    assert result.success


def test_retake_allowed_under_max_attempts(engine):
    first = engine.start("alice", "exam-retake")
    engine.submit("alice", first.data["attempt_id"])

    second = engine.start("alice", "exam-retake")

    assert second.success
    assert second.data["attempt_id"] != first.data["attempt_id"]
    assert second.data["resumed"] is False


def test_identity_order_when_shuffling_disabled(engine):
    started = engine.start("alice", "exam-retake")

    assert started.data["question_order"] == ["exam-retake-q1", "exam-retake-q2", "exam-retake-q3"]
    assert all(p == [0, 1, 2, 3] for p in started.data["choice_shuffles"].values())


def test_correctness_flags_written_on_submit(engine, answer_key):
    wrong = [list(answer_key)[0]]
    attempt_id, _ = take_exam(engine, "alice", answer_key, wrong=wrong)

    view = engine.get_attempt("alice", attempt_id)
    flags = {r["question_id"]: r["is_correct"] for r in view.data["responses"]}

    assert flags[wrong[0]] is False
    assert sum(1 for v in flags.values() if v) == 4


def test_multi_select_order_does_not_matter(engine, answer_key):
    started = engine.start("alice", "exam-1")
    attempt_id = started.data["attempt_id"]
    multi = next(q for q, c in answer_key.items() if len(c) > 1)

    engine.save_response("alice", attempt_id, multi, list(reversed(answer_key[multi])))
    submitted = engine.submit("alice", attempt_id)

    assert submitted.data["correct_answers"] == 1


def test_display_order_answers_map_to_original_choices(engine, answer_key):
    started = engine.start("alice", "exam-1")
    attempt_id = started.data["attempt_id"]
    question_id = started.data["question_order"][0]
    permutation = started.data["choice_shuffles"][question_id]
    correct = answer_key[question_id]

    displayed = [permutation.index(c) for c in correct]
    saved = engine.save_response("alice", attempt_id, question_id, displayed, display_order=True)

    assert saved.success
    assert sorted(saved.data["selected_choices"]) == sorted(correct)


def test_save_validates_question_and_choice_range(engine):
    started = engine.start("alice", "exam-1")
    attempt_id = started.data["attempt_id"]

    unknown = engine.save_response("alice", attempt_id, "not-a-question", [0])
    out_of_range = engine.save_response("alice", attempt_id, started.data["question_order"][0], [9])

    assert unknown.error_code == "validation_error"
    assert out_of_range.error_code == "validation_error"


def test_last_write_wins(engine, repository):
    started = engine.start("alice", "exam-1")
    attempt_id = started.data["attempt_id"]
    question_id = started.data["question_order"][0]

    engine.save_response("alice", attempt_id, question_id, [0])
    engine.save_response("alice", attempt_id, question_id, [2])

    responses = repository.get_responses(attempt_id)
    assert len(responses) == 1
    assert responses[0].selected_choices == [2]


def test_gate_errors(engine):
    no_session = engine.start("", "exam-1")
    outsider = engine.start("mallory", "exam-1")
    missing = engine.start("alice", "nope")
    wrong_mode = engine.start("alice", "exam-1", mode="case")

    assert no_session.error_code == "authentication_error"
    assert outsider.error_code == "authorization_error"
    assert missing.error_code == "not_found"
    assert wrong_mode.error_code == "not_found"


def test_deleted_activity_cannot_be_started(engine, catalog):
    activity = catalog.get_activity("exam-1")
    catalog.add_activity(activity.model_copy(update={"is_deleted": True}))

    assert engine.start("alice", "exam-1").error_code == "not_found"


def test_foreign_attempt_is_not_found(engine):
    started = engine.start("alice", "exam-1")
    attempt_id = started.data["attempt_id"]

    assert engine.submit("bob", attempt_id).error_code == "not_found"
    assert engine.get_attempt("bob", attempt_id).error_code == "not_found"


def test_unexpected_failure_becomes_operation_failed(engine, repository, monkeypatch):
    started = engine.start("alice", "exam-1")

    def broken(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(repository, "upsert_response", broken)
    result = engine.save_response("alice", started.data["attempt_id"], started.data["question_order"][0], [0])

    assert not result.success
    assert result.error_code == "operation_failed"
    assert result.to_dict() == {"status": "error", "code": "operation_failed", "message": "Operation failed"}


def test_completion_hooks(engine, answer_key):
    completed = []

    def broken_hook(attempt):
        raise RuntimeError("notification service down")

    engine.on_completed(broken_hook)
    engine.on_completed(completed.append)

    attempt_id, submitted = take_exam(engine, "alice", answer_key)

    assert submitted.success
    assert [a.id for a in completed] == [attempt_id]


def test_get_status(engine, clock, answer_key):
    started = engine.start("alice", "exam-1")
    clock.advance(minutes=5)

    status = engine.get_status("alice", "exam-1")
    assert status.data["in_progress"]["attempt_id"] == started.data["attempt_id"]
    assert status.data["in_progress"]["remaining_seconds"] == 1500
    assert status.data["attempt_count"] == 0

    answer_exam(engine, "alice", started.data["attempt_id"], answer_key)
    engine.submit("alice", started.data["attempt_id"])

    status = engine.get_status("alice", "exam-1")
    assert status.data["in_progress"] is None
    assert status.data["attempt_count"] == 1
    assert status.data["max_attempts"] == 1
    assert status.data["can_start"] is False
    assert status.data["best_score"] == 100.0
    assert status.data["completed"][0]["score"] == 100.0


def test_get_status_sweeps_expired_attempt(engine, clock):
    engine.start("alice", "exam-1")
    clock.advance(minutes=40)

    status = engine.get_status("alice", "exam-1")

    assert status.data["in_progress"] is None
    assert status.data["attempt_count"] == 1
    assert status.data["completed"][0]["auto_submitted"] is True


def test_get_attempt_hides_answer_key(engine):
    started = engine.start("alice", "exam-1")
    view = engine.get_attempt("alice", started.data["attempt_id"])

    assert view.success
    assert [q["id"] for q in view.data["questions"]] == started.data["question_order"]
    assert all("correct_answers" not in q for q in view.data["questions"])
    assert view.data["remaining_seconds"] == 1800


def test_export_results_requires_staff(engine, answer_key):
    take_exam(engine, "alice", answer_key)

    denied = engine.export_results("bob", "exam-1")
    exported = engine.export_results("teacher", "exam-1")

    assert denied.error_code == "authorization_error"
    assert exported.success
    lines = exported.data.strip().splitlines()
    assert lines[0].startswith("attempt_id,user_id,activity_id")
    assert len(lines) == 2
    assert ",alice," in lines[1]


@pytest.mark.parametrize("user_id", ["alice", "teacher"])
def test_leaderboard_requires_membership_only(engine, user_id):
    assert engine.get_leaderboard(user_id, "exam-1").success
    assert engine.get_leaderboard("mallory", "exam-1").error_code == "authorization_error"


def test_lock_registry_does_not_grow(engine, answer_key):
    """Keys are released once no call holds or waits on them"""
    for n in range(50):
        assert engine.get_timer("alice", f"missing-{n}").error_code == "not_found"

    _, submitted = take_exam(engine, "bob", answer_key)
    engine.get_status("bob", "exam-1")

    assert submitted.success
    assert engine._locks == {}
