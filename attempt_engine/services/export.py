# FILE: attempt_engine/services/export.py
"""
Results export for instructors
"""
import csv
import io
import logging
from typing import Any, Dict, List

from attempt_engine.models.attempts import Attempt

logger = logging.getLogger(__name__)

EXPORT_FIELDS = [
    "attempt_id", "user_id", "activity_id", "mode", "status",
    "started_at", "completed_at", "time_spent_seconds", "auto_submitted",
    "score", "passed", "correct_answers", "total_questions",
    "total_score", "average_score", "questions_generated",
    "tab_switch_count", "copy_attempts", "paste_attempts", "cheating_events",
]


def attempt_row(attempt: Attempt) -> Dict[str, Any]:
    """Flatten an attempt into one export row"""
    return {
        "attempt_id": attempt.id,
        "user_id": attempt.user_id,
        "activity_id": attempt.activity_id,
        "mode": attempt.mode.value,
        "status": attempt.status.value,
        "started_at": attempt.started_at.isoformat(),
        "completed_at": attempt.completed_at.isoformat() if attempt.completed_at else "",
        "time_spent_seconds": attempt.time_spent_seconds,
        "auto_submitted": attempt.auto_submitted,
        "score": round(attempt.score, 1) if attempt.score is not None else "",
        "passed": attempt.passed,
        "correct_answers": attempt.correct_answers,
        "total_questions": attempt.total_questions,
        "total_score": attempt.total_score,
        "average_score": attempt.average_score,
        "questions_generated": attempt.questions_generated,
        "tab_switch_count": attempt.tab_switch_count,
        "copy_attempts": attempt.copy_attempts,
        "paste_attempts": attempt.paste_attempts,
        "cheating_events": len(attempt.cheating_events),
    }


def export_csv(attempts: List[Attempt]) -> str:
    """Completed attempts as CSV (header only when there are none)"""
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=EXPORT_FIELDS)
    writer.writeheader()

    for attempt in sorted(attempts, key=lambda a: a.completed_at or a.started_at):
        writer.writerow({k: ("" if v is None else v) for k, v in attempt_row(attempt).items()})

    logger.info(f"Exported {len(attempts)} attempts")
    return output.getvalue()
