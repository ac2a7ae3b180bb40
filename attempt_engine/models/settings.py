# FILE: attempt_engine/models/settings.py
"""
Per-mode activity settings

Stored settings blobs are loosely typed (camelCase keys written by the
activity editor). They are validated once, at load time, into one of the
typed models below, discriminated by ``mode``.
"""
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from attempt_engine.errors import ValidationError


class ActivityMode(str, Enum):
    """Timed activity modes handled by the engine"""
    EXAM = "exam"
    CASE = "case"
    INQUIRY = "inquiry"


class _SettingsModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ExamSettings(_SettingsModel):
    """Exam mode configuration"""
    mode: Literal["exam"] = "exam"
    time_limit: int = Field(default=30, ge=0, le=180, description="Minutes; 0 disables the limit")
    questions_to_show: Optional[int] = Field(default=None, ge=1, le=100)
    pass_threshold: float = Field(default=60.0, ge=0, le=100, description="Percentage")
    shuffle_questions: bool = True
    shuffle_choices: bool = True
    max_attempts: int = Field(default=1, ge=1, le=10)
    show_feedback: bool = True

    @property
    def time_limit_seconds(self) -> Optional[int]:
        return self.time_limit * 60 if self.time_limit > 0 else None


class CaseScenario(_SettingsModel):
    """One case study scenario"""
    id: str
    title: str
    content: str = ""
    domain: Optional[str] = None
    innovation_name: Optional[str] = None


class CaseSettings(_SettingsModel):
    """Case mode configuration"""
    mode: Literal["case"] = "case"
    scenarios: List[CaseScenario] = Field(default_factory=list)
    time_per_case: int = Field(default=10, ge=1, le=60, description="Minutes per scenario")
    total_time_limit: int = Field(default=60, ge=1, le=180, description="Minutes for the whole attempt")
    num_cases_to_show: Optional[int] = Field(default=None, ge=1)
    max_attempts: int = Field(default=1, ge=1, le=10)
    pass_threshold: float = Field(default=6.0, ge=0, le=10)
    instructions: Optional[str] = None

    @property
    def time_limit_seconds(self) -> int:
        return self.total_time_limit * 60

    @property
    def scenario_limit_seconds(self) -> int:
        return self.time_per_case * 60


class InquirySettings(_SettingsModel):
    """Inquiry (question generation) mode configuration"""
    mode: Literal["inquiry"] = "inquiry"
    questions_required: int = Field(default=5, ge=1, le=20)
    time_per_question: int = Field(default=240, ge=60, le=600, description="Seconds per question")
    keyword_pool_1: List[str] = Field(default_factory=list)
    keyword_pool_2: List[str] = Field(default_factory=list)
    pass_threshold: float = Field(default=6.0, ge=0, le=10)
    max_attempts: int = Field(default=1, ge=1, le=10)
    subject: Optional[str] = None
    topic: Optional[str] = None
    education_level: Optional[str] = None

    @field_validator("keyword_pool_1", "keyword_pool_2", mode="before")
    @classmethod
    def _clean_pool(cls, value: Any) -> List[str]:
        if not value:
            return []
        if not isinstance(value, list):
            raise ValueError("keyword pool must be a list of strings")
        return [k.strip() for k in value if isinstance(k, str) and k.strip()]

    @property
    def time_limit_seconds(self) -> int:
        # The attempt as a whole gets one question slot per required question
        return self.questions_required * self.time_per_question


ActivitySettings = Annotated[
    Union[ExamSettings, CaseSettings, InquirySettings],
    Field(discriminator="mode"),
]

_settings_adapter: TypeAdapter = TypeAdapter(ActivitySettings)


def parse_activity_settings(
    mode: ActivityMode,
    raw: Optional[Dict[str, Any]]
) -> Union[ExamSettings, CaseSettings, InquirySettings]:
    """Validate a raw settings blob for ``mode`` into its typed model"""
    payload = dict(raw or {})
    payload["mode"] = ActivityMode(mode).value

    try:
        return _settings_adapter.validate_python(payload)
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(p) for p in first.get("loc", ()))
        raise ValidationError(
            f"Invalid {payload['mode']} settings ({location}): {first.get('msg')}"
        ) from e
