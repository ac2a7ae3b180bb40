# FILE: attempt_engine/services/evaluation.py
"""
Evaluation collaborators for case and inquiry modes

Both evaluators are plain heuristics standing in for a model-backed
evaluator. The engine depends only on the protocols, so a model-backed
implementation can be injected without touching scoring.
"""
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Protocol, Tuple

from attempt_engine.models.attempts import CaseAnswer, KeywordPair, QuestionEvaluation, ScenarioScore
from attempt_engine.models.settings import CaseScenario

logger = logging.getLogger(__name__)


class CaseEvaluator(Protocol):
    def evaluate(self, scenario: CaseScenario, answer: CaseAnswer) -> ScenarioScore:
        ...


@dataclass(frozen=True)
class InquiryContext:
    """What the question evaluator knows about the activity and the slot"""
    activity_name: str = ""
    subject: Optional[str] = None
    topic: Optional[str] = None
    education_level: Optional[str] = None
    keywords: Optional[KeywordPair] = None


class QuestionEvaluator(Protocol):
    def evaluate(self, content: str, context: InquiryContext) -> QuestionEvaluation:
        ...


# ---------------------------------------------------------------------------
# Case mode
# ---------------------------------------------------------------------------

REASONING_MARKERS = (
    "because", "therefore", "however", "stakeholder", "risk", "cost",
    "impact", "implement", "evidence", "trade-off", "alternative", "timeline",
)


@dataclass(frozen=True)
class _Band:
    min_chars: int
    low: float
    high: float
    feedback: str


# Keyed on the shorter of the two fields, so both must be developed to score well
CASE_BANDS: Tuple[_Band, ...] = (
    _Band(600, 9.0, 10.0,
          "Thorough and detailed analysis. Issues are explored in depth and the "
          "proposed solution is developed with clear reasoning."),
    _Band(300, 7.0, 9.0,
          "Good analysis with solid detail. Consider discussing trade-offs and "
          "implementation constraints further."),
    _Band(150, 5.0, 7.0,
          "Adequate response that covers the basics. Develop the reasoning behind "
          "each issue and make the solution more concrete."),
    _Band(50, 3.0, 5.0,
          "Developing response. Identify the issues more specifically and explain "
          "how your solution addresses each one."),
    _Band(0, 1.0, 3.0,
          "Response is too brief to demonstrate your analysis. Identify the specific "
          "issues in the scenario and explain how your solution addresses them."),
)


class HeuristicCaseEvaluator:
    """Length-bucketed case scoring with a small reasoning-marker bonus within the band"""

    name = "length-heuristic"

    def evaluate(self, scenario: CaseScenario, answer: CaseAnswer) -> ScenarioScore:
        issues = (answer.issues or "").strip()
        solution = (answer.solution or "").strip()

        shorter = min(len(issues), len(solution))
        total = len(issues) + len(solution)
        band, span = self._band_for(shorter)

        length_fraction = min(1.0, (shorter - band.min_chars) / span)
        text = f"{issues} {solution}".lower()
        markers = sum(1 for m in REASONING_MARKERS if m in text)
        marker_fraction = min(1.0, markers / 4)

        position = 0.6 * length_fraction + 0.4 * marker_fraction
        score = round(band.low + position * (band.high - band.low), 1)
        if band.high < 10.0:
            score = min(score, round(band.high - 0.1, 1))

        return ScenarioScore(
            scenario_id=scenario.id,
            title=scenario.title,
            score=score,
            feedback=band.feedback,
            understanding=score,
            ingenuity=score,
            critical_thinking=score,
            real_world_application=score,
            strengths=["Provided detailed response"] if total > 200 else [],
            improvements=["Consider providing more detailed analysis"] if total < 200 else [],
            evaluator=self.name,
        )

    def _band_for(self, shorter: int) -> Tuple[_Band, int]:
        upper = None
        for band in CASE_BANDS:
            if shorter >= band.min_chars:
                span = (upper - band.min_chars) if upper is not None else band.min_chars
                return band, max(span, 1)
            upper = band.min_chars
        return CASE_BANDS[-1], CASE_BANDS[-2].min_chars


# ---------------------------------------------------------------------------
# Inquiry mode
# ---------------------------------------------------------------------------

BLOOMS_LEVELS = ["remember", "understand", "apply", "analyze", "evaluate", "create"]

# Checked from the highest level down; first hit wins
BLOOMS_CUES = {
    "create": ("design", "invent", "propose", "create", "develop a", "construct", "what if", "imagine"),
    "evaluate": ("evaluate", "justify", "judge", "assess", "should", "defend", "critique", "is it better"),
    "analyze": ("analyze", "analyse", "compare", "contrast", "why", "relationship", "differ", "cause"),
    "apply": ("apply", "how would", "how can", "solve", "calculate", "predict", "demonstrate", "use"),
    "understand": ("explain", "describe", "summarize", "summarise", "interpret", "what does", "mean"),
    "remember": ("what is", "who", "when", "where", "define", "list", "name"),
}

LEVEL_COMPLEXITY = {
    "remember": 4.0,
    "understand": 5.0,
    "apply": 6.0,
    "analyze": 7.0,
    "evaluate": 8.0,
    "create": 9.0,
}


class HeuristicQuestionEvaluator:
    """Cue-word Bloom's taxonomy classifier with four scored dimensions"""

    name = "blooms-heuristic"

    def classify(self, content: str) -> Tuple[str, float]:
        text = content.lower()
        for level in reversed(BLOOMS_LEVELS):
            for cue in BLOOMS_CUES[level]:
                if re.search(rf"\b{re.escape(cue)}\b", text):
                    return level, 0.6
        return "remember", 0.3

    def evaluate(self, content: str, context: InquiryContext) -> QuestionEvaluation:
        level, confidence = self.classify(content)
        words = content.split()
        text = content.lower()

        complexity = LEVEL_COMPLEXITY[level]

        if len(words) < 5:
            clarity = 3.0
        elif content.rstrip().endswith("?") and len(words) <= 60:
            clarity = 8.0
        else:
            clarity = 5.0

        keywords_found: List[str] = []
        if context.keywords is not None:
            for keyword in (context.keywords.keyword_1, context.keywords.keyword_2):
                if keyword.lower() in text:
                    keywords_found.append(keyword)
            relevance = 4.0 + 3.0 * len(keywords_found)
        else:
            relevance = 7.0

        creativity = 5.0
        if level in ("evaluate", "create"):
            creativity += 2.0
        if len(words) > 15:
            creativity += 1.0

        overall = round((complexity + clarity + relevance + creativity) / 4, 1)

        return QuestionEvaluation(
            blooms_level=level,
            blooms_confidence=confidence,
            overall_score=min(10.0, overall),
            creativity_score=creativity,
            clarity_score=clarity,
            relevance_score=relevance,
            complexity_score=complexity,
            feedback=self._feedback(level, keywords_found, context),
            keywords_found=keywords_found,
            evaluator=self.name,
        )

    def _feedback(self, level: str, found: List[str], context: InquiryContext) -> str:
        parts = [f"Your question works at the '{level}' level of Bloom's taxonomy."]
        if level in ("remember", "understand"):
            parts.append("Try asking why or how, or compare two ideas, to reach a higher level.")
        if context.keywords is not None and len(found) < 2:
            parts.append(
                f"Build the question around both keywords: "
                f"{context.keywords.keyword_1} and {context.keywords.keyword_2}."
            )
        return " ".join(parts)


# Recorded when the evaluator itself fails; refined later by a re-evaluation
PENDING_EVALUATION = QuestionEvaluation(
    blooms_level="understand",
    overall_score=7.0,
    feedback="Evaluating your question...",
    evaluator="pending-estimate",
)
