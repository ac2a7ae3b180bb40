# FILE: attempt_engine/routes/attempts.py
"""
Attempt endpoints
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from pydantic import BaseModel, Field

from attempt_engine.dependencies import get_engine, get_user_id, to_response
from attempt_engine.models.attempts import AntiCheatStats
from attempt_engine.models.settings import ActivityMode
from attempt_engine.services.engine import AttemptEngine

logger = logging.getLogger(__name__)
router = APIRouter()


class StartRequest(BaseModel):
    """Start (or resume) an attempt"""
    activity_id: str
    mode: Optional[ActivityMode] = None


class SaveResponseRequest(BaseModel):
    """Exam answer"""
    question_id: str
    selected_choices: List[int] = Field(default_factory=list)
    display_order: bool = Field(
        default=False,
        description="selected_choices are positions as displayed, not original indices"
    )


class CaseResponseRequest(BaseModel):
    """Case scenario answer"""
    scenario_id: str
    issues: str = ""
    solution: str = ""


class InquiryQuestionRequest(BaseModel):
    """Learner-generated question"""
    content: str


@router.post("/start")
async def start_attempt(
    request: StartRequest,
    user_id: Optional[str] = Depends(get_user_id),
    engine: AttemptEngine = Depends(get_engine)
):
    """Start an attempt, or resume the one in progress"""
    logger.info(f"Start attempt: activity={request.activity_id} user={user_id}")
    return to_response(engine.start(user_id, request.activity_id, request.mode))


@router.get("/status/{activity_id}")
async def attempt_status(
    activity_id: str,
    user_id: Optional[str] = Depends(get_user_id),
    engine: AttemptEngine = Depends(get_engine)
):
    """In-progress and completed attempts of the caller on an activity"""
    return to_response(engine.get_status(user_id, activity_id))


@router.get("/export/{activity_id}")
async def export_results(
    activity_id: str,
    user_id: Optional[str] = Depends(get_user_id),
    engine: AttemptEngine = Depends(get_engine)
):
    """Completed attempts as CSV (group staff)"""
    result = engine.export_results(user_id, activity_id)
    if not result.success:
        return to_response(result)

    return Response(
        content=result.data,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{activity_id}-results.csv"'},
    )


@router.get("/{attempt_id}")
async def get_attempt(
    attempt_id: str,
    user_id: Optional[str] = Depends(get_user_id),
    engine: AttemptEngine = Depends(get_engine)
):
    return to_response(engine.get_attempt(user_id, attempt_id))


@router.get("/{attempt_id}/timer")
async def get_timer(
    attempt_id: str,
    user_id: Optional[str] = Depends(get_user_id),
    engine: AttemptEngine = Depends(get_engine)
):
    """Server-side remaining time; client countdowns should resync from this"""
    return to_response(engine.get_timer(user_id, attempt_id))


@router.post("/{attempt_id}/responses")
async def save_response(
    attempt_id: str,
    request: SaveResponseRequest,
    user_id: Optional[str] = Depends(get_user_id),
    engine: AttemptEngine = Depends(get_engine)
):
    return to_response(engine.save_response(
        user_id,
        attempt_id,
        request.question_id,
        request.selected_choices,
        display_order=request.display_order,
    ))


@router.post("/{attempt_id}/case-responses")
async def save_case_response(
    attempt_id: str,
    request: CaseResponseRequest,
    user_id: Optional[str] = Depends(get_user_id),
    engine: AttemptEngine = Depends(get_engine)
):
    return to_response(engine.save_case_response(
        user_id, attempt_id, request.scenario_id, request.issues, request.solution
    ))


@router.post("/{attempt_id}/advance")
async def advance_scenario(
    attempt_id: str,
    user_id: Optional[str] = Depends(get_user_id),
    engine: AttemptEngine = Depends(get_engine)
):
    return to_response(engine.advance_scenario(user_id, attempt_id))


@router.post("/{attempt_id}/inquiry-questions")
async def submit_inquiry_question(
    attempt_id: str,
    request: InquiryQuestionRequest,
    user_id: Optional[str] = Depends(get_user_id),
    engine: AttemptEngine = Depends(get_engine)
):
    return to_response(engine.submit_inquiry_question(user_id, attempt_id, request.content))


@router.post("/{attempt_id}/anti-cheat")
async def update_cheating_stats(
    attempt_id: str,
    stats: AntiCheatStats,
    user_id: Optional[str] = Depends(get_user_id),
    engine: AttemptEngine = Depends(get_engine)
):
    """Best-effort telemetry sync"""
    return to_response(engine.update_cheating_stats(user_id, attempt_id, stats))


@router.post("/{attempt_id}/submit")
async def submit_attempt(
    attempt_id: str,
    user_id: Optional[str] = Depends(get_user_id),
    engine: AttemptEngine = Depends(get_engine)
):
    """Score and complete the attempt"""
    logger.info(f"Submit attempt: {attempt_id}")
    return to_response(engine.submit(user_id, attempt_id))
