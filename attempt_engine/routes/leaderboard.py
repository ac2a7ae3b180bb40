# FILE: attempt_engine/routes/leaderboard.py
"""
Leaderboard endpoint
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends

from attempt_engine.dependencies import get_engine, get_user_id, to_response
from attempt_engine.services.engine import AttemptEngine

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/{activity_id}")
async def get_leaderboard(
    activity_id: str,
    best_per_user: bool = False,
    user_id: Optional[str] = Depends(get_user_id),
    engine: AttemptEngine = Depends(get_engine)
):
    """
    Ranked completed attempts for an activity.
    best_per_user=true keeps each learner's best attempt, with their attempt count and average.
    """
    return to_response(engine.get_leaderboard(user_id, activity_id, best_per_user=best_per_user))
