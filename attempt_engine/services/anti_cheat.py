# FILE: attempt_engine/services/anti_cheat.py
"""
Anti-cheat telemetry merge

Clients re-send overlapping slices of their local event log when a sync is
retried. Each event carries the client's sequence number; only events past
the last persisted sequence, and not already seen, are appended.
"""
import logging
from typing import List, Tuple

from attempt_engine.errors import StateError
from attempt_engine.models.attempts import AntiCheatEvent, AntiCheatStats, Attempt, AttemptStatus

logger = logging.getLogger(__name__)


class AntiCheatAggregator:
    """Folds a telemetry sync into an attempt (caller persists the result)"""

    def merge(self, attempt: Attempt, stats: AntiCheatStats) -> Tuple[Attempt, List[AntiCheatEvent]]:
        if attempt.status != AttemptStatus.IN_PROGRESS:
            raise StateError("This attempt has already been submitted")

        update = {}
        # Counters are cumulative on the client; latest value wins
        if stats.tab_switch_count is not None:
            update["tab_switch_count"] = stats.tab_switch_count
        if stats.copy_attempts is not None:
            update["copy_attempts"] = stats.copy_attempts
        if stats.paste_attempts is not None:
            update["paste_attempts"] = stats.paste_attempts

        seen = {event.key for event in attempt.cheating_events}
        last_sequence = attempt.last_event_sequence
        appended: List[AntiCheatEvent] = []

        for event in sorted(stats.events, key=self._order):
            if event.sequence is None:
                last_sequence += 1
                event = event.model_copy(update={"sequence": last_sequence})
            elif event.sequence <= last_sequence:
                continue

            if event.key in seen:
                continue

            seen.add(event.key)
            appended.append(event)
            last_sequence = max(last_sequence, event.sequence)

        if appended:
            update["cheating_events"] = list(attempt.cheating_events) + appended
            update["last_event_sequence"] = last_sequence

        if len(appended) < len(stats.events):
            logger.debug(
                f"Attempt {attempt.id}: dropped {len(stats.events) - len(appended)} "
                f"already-synced anti-cheat events"
            )

        return attempt.model_copy(update=update, deep=True), appended

    @staticmethod
    def _order(event: AntiCheatEvent):
        # Sequenced events first in client order; unsequenced ones keep arrival order by time
        return (event.sequence is None, event.sequence or 0, event.timestamp)
