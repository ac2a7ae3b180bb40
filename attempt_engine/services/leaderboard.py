# FILE: attempt_engine/services/leaderboard.py
"""
Leaderboard projection over completed attempts, recomputed on demand
"""
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from attempt_engine.models.attempts import Attempt

logger = logging.getLogger(__name__)


@dataclass
class LeaderboardEntry:
    user_id: str
    score: float
    rank: int
    attempt_id: str
    completed_at: Optional[datetime] = None
    time_spent_seconds: Optional[int] = None
    attempt_count: Optional[int] = None
    average_score: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["completed_at"] = self.completed_at.isoformat() if self.completed_at else None
        return data


class LeaderboardProjector:
    """
    Sorts completed attempts descending by their mode's score field and
    assigns competition ranks: equal scores share a rank and the next
    distinct score skips ahead (100, 100, 80 -> 1, 1, 3).
    """

    def project(self, attempts: List[Attempt], best_per_user: bool = False) -> List[LeaderboardEntry]:
        scored = [a for a in attempts if a.is_completed and a.leaderboard_score is not None]
        skipped = len(attempts) - len(scored)
        if skipped:
            logger.debug(f"Leaderboard: {skipped} attempts without a score left out")

        if best_per_user:
            return self._rank(self._best_per_user(scored), with_stats=True, all_attempts=scored)
        return self._rank(scored)

    def _best_per_user(self, attempts: List[Attempt]) -> List[Attempt]:
        best: Dict[str, Attempt] = {}
        for attempt in sorted(attempts, key=self._sort_key):
            # First in sort order is the user's best (ties: earliest completion)
            best.setdefault(attempt.user_id, attempt)
        return list(best.values())

    @staticmethod
    def _sort_key(attempt: Attempt):
        completed = attempt.completed_at.timestamp() if attempt.completed_at else float("inf")
        return (-attempt.leaderboard_score, completed)

    def _rank(
        self,
        attempts: List[Attempt],
        with_stats: bool = False,
        all_attempts: Optional[List[Attempt]] = None
    ) -> List[LeaderboardEntry]:
        per_user: Dict[str, List[float]] = {}
        for attempt in all_attempts or []:
            per_user.setdefault(attempt.user_id, []).append(attempt.leaderboard_score)

        entries: List[LeaderboardEntry] = []
        previous_score = None
        rank = 0
        for position, attempt in enumerate(sorted(attempts, key=self._sort_key), start=1):
            score = attempt.leaderboard_score
            if score != previous_score:
                rank = position
                previous_score = score

            entry = LeaderboardEntry(
                user_id=attempt.user_id,
                score=round(score, 1),
                rank=rank,
                attempt_id=attempt.id,
                completed_at=attempt.completed_at,
                time_spent_seconds=attempt.time_spent_seconds,
            )
            if with_stats:
                scores = per_user.get(attempt.user_id, [score])
                entry.attempt_count = len(scores)
                entry.average_score = round(sum(scores) / len(scores), 1)
            entries.append(entry)

        return entries
