# FILE: attempt_engine/models/attempts.py
"""
Attempt models
"""
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple
from pydantic import BaseModel, Field

from attempt_engine.models.settings import ActivityMode


class AttemptStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class AntiCheatEventType(str, Enum):
    TAB_SWITCH = "tab_switch"
    COPY = "copy"
    PASTE = "paste"
    BLUR = "blur"
    FOCUS = "focus"


class AntiCheatEvent(BaseModel):
    """Suspicious-behaviour signal logged by the client"""
    type: AntiCheatEventType
    timestamp: datetime
    sequence: Optional[int] = Field(
        default=None,
        ge=0,
        description="Client-side position in its local event log"
    )

    @property
    def key(self) -> Tuple[str, str, Optional[int]]:
        return (self.type.value, self.timestamp.isoformat(), self.sequence)


class AntiCheatStats(BaseModel):
    """Telemetry sync payload: cumulative counters plus the new events"""
    tab_switch_count: Optional[int] = Field(default=None, ge=0)
    copy_attempts: Optional[int] = Field(default=None, ge=0)
    paste_attempts: Optional[int] = Field(default=None, ge=0)
    events: List[AntiCheatEvent] = Field(default_factory=list)


class KeywordPair(BaseModel):
    """Keyword combination a learner must build an inquiry question around"""
    keyword_1: str
    keyword_2: str


class CaseAnswer(BaseModel):
    """Learner's answer to one case scenario"""
    issues: str = ""
    solution: str = ""


class ScenarioScore(BaseModel):
    """Evaluation of one case scenario"""
    scenario_id: str
    title: str = ""
    score: float = Field(ge=0.0, le=10.0)
    feedback: str = ""
    understanding: float = 0.0
    ingenuity: float = 0.0
    critical_thinking: float = 0.0
    real_world_application: float = 0.0
    strengths: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    evaluator: str = ""


class QuestionEvaluation(BaseModel):
    """Evaluation of one learner-generated inquiry question"""
    blooms_level: str
    blooms_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    overall_score: float = Field(ge=0.0, le=10.0)
    creativity_score: float = 0.0
    clarity_score: float = 0.0
    relevance_score: float = 0.0
    complexity_score: float = 0.0
    feedback: str = ""
    keywords_found: List[str] = Field(default_factory=list)
    evaluator: str = ""


class Attempt(BaseModel):
    """One learner's timed run through an activity"""
    id: str
    user_id: str
    activity_id: str
    mode: ActivityMode
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    started_at: datetime
    completed_at: Optional[datetime] = None
    time_spent_seconds: Optional[int] = None
    auto_submitted: bool = False

    # Shuffle map, frozen at creation
    question_order: List[str] = Field(default_factory=list)
    choice_shuffles: Dict[str, List[int]] = Field(default_factory=dict)
    keyword_assignments: List[KeywordPair] = Field(default_factory=list)

    # Case per-scenario timer anchor
    current_scenario_index: int = 0
    scenario_started_at: Optional[datetime] = None

    # Exam outcome
    score: Optional[float] = None
    passed: Optional[bool] = None
    correct_answers: Optional[int] = None
    total_questions: Optional[int] = None

    # Case outcome
    total_score: Optional[float] = None
    scenario_scores: Dict[str, ScenarioScore] = Field(default_factory=dict)

    # Inquiry outcome
    questions_generated: int = 0
    questions_required: Optional[int] = None
    average_score: Optional[float] = None

    # Anti-cheat
    tab_switch_count: int = 0
    copy_attempts: int = 0
    paste_attempts: int = 0
    cheating_events: List[AntiCheatEvent] = Field(default_factory=list)
    last_event_sequence: int = -1

    @property
    def is_completed(self) -> bool:
        return self.status == AttemptStatus.COMPLETED

    @property
    def leaderboard_score(self) -> Optional[float]:
        """Score field the leaderboard ranks by for this attempt's mode"""
        if self.mode == ActivityMode.EXAM:
            return self.score
        if self.mode == ActivityMode.CASE:
            return self.total_score
        return self.average_score


class Response(BaseModel):
    """Learner's answer to one question within one attempt"""
    id: str
    attempt_id: str
    question_id: str
    user_id: str
    selected_choices: Optional[List[int]] = None
    text: Optional[str] = None
    case_answer: Optional[CaseAnswer] = None
    evaluation: Optional[QuestionEvaluation] = None
    is_correct: Optional[bool] = None
    created_at: datetime
    updated_at: datetime
