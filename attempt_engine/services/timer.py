# FILE: attempt_engine/services/timer.py
"""
Server-authoritative attempt timers

All deadline decisions are recomputed from the persisted ``started_at`` (and,
for case mode, ``scenario_started_at``). Client countdowns are display only.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from attempt_engine.models.attempts import Attempt
from attempt_engine.models.settings import CaseSettings, ExamSettings, InquirySettings

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
ModeSettings = Union[ExamSettings, CaseSettings, InquirySettings]

CONTINUE = "continue"
ADVANCE = "advance"
SUBMIT = "submit"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def remaining_seconds(
    started_at: datetime,
    limit_seconds: Optional[int],
    now: datetime
) -> Optional[int]:
    """max(0, limit - elapsed), rounded up to whole seconds; None when untimed"""
    if limit_seconds is None:
        return None
    elapsed = (now - started_at).total_seconds()
    return max(0, math.ceil(limit_seconds - elapsed))


@dataclass(frozen=True)
class ScenarioSignal:
    """Where a case attempt stands on its per-scenario timer"""
    scenario_index: int
    scenario_id: Optional[str]
    remaining_seconds: Optional[int]
    expired: bool
    action: str

    def to_dict(self):
        return {
            "scenario_index": self.scenario_index,
            "scenario_id": self.scenario_id,
            "remaining_seconds": self.remaining_seconds,
            "expired": self.expired,
            "action": self.action,
        }


class TimerCoordinator:
    """Computes remaining time and decides when an attempt must be force-submitted"""

    def __init__(self, clock: Clock = utc_now):
        self.clock = clock

    def now(self) -> datetime:
        return self.clock()

    def elapsed_seconds(self, attempt: Attempt, now: Optional[datetime] = None) -> int:
        now = now or self.now()
        return max(0, int((now - attempt.started_at).total_seconds()))

    def remaining_seconds(self, attempt: Attempt, settings: ModeSettings) -> Optional[int]:
        return remaining_seconds(attempt.started_at, settings.time_limit_seconds, self.now())

    def is_expired(self, attempt: Attempt, settings: ModeSettings) -> bool:
        if attempt.is_completed:
            return False
        remaining = self.remaining_seconds(attempt, settings)
        return remaining is not None and remaining <= 0

    def scenario_signal(self, attempt: Attempt, settings: CaseSettings) -> ScenarioSignal:
        """Per-scenario sub-timer; expiry means advance (or submit on the last one)"""
        index = attempt.current_scenario_index
        scenario_ids = attempt.question_order
        scenario_id = scenario_ids[index] if index < len(scenario_ids) else None

        anchor = attempt.scenario_started_at or attempt.started_at
        remaining = remaining_seconds(anchor, settings.scenario_limit_seconds, self.now())
        expired = remaining is not None and remaining <= 0

        if not expired:
            action = CONTINUE
        elif index + 1 < len(scenario_ids):
            action = ADVANCE
        else:
            action = SUBMIT

        return ScenarioSignal(
            scenario_index=index,
            scenario_id=scenario_id,
            remaining_seconds=remaining,
            expired=expired,
            action=action,
        )
