# FILE: attempt_engine/models/activities.py
"""
Activity read-model records
"""
from typing import Any, List, Optional
from pydantic import BaseModel, Field, model_validator

from attempt_engine.models.settings import (
    ActivityMode,
    ActivitySettings,
)


class Question(BaseModel):
    """Multiple-choice exam question (correct answers are original choice indices)"""
    id: str
    activity_id: str
    content: str = ""
    choices: List[str] = Field(default_factory=list)
    correct_answers: List[int] = Field(default_factory=list)
    explanation: Optional[str] = None
    is_deleted: bool = False


class Activity(BaseModel):
    """Activity with its settings already validated for its mode"""
    id: str
    group_id: str
    name: str = ""
    mode: ActivityMode
    is_deleted: bool = False
    subject: Optional[str] = None
    education_level: Optional[str] = None
    settings: ActivitySettings

    @model_validator(mode="before")
    @classmethod
    def _tag_settings(cls, data: Any) -> Any:
        # Stored blobs do not repeat the mode; copy it in for the discriminator
        if isinstance(data, dict) and "mode" in data:
            raw = data.get("settings")
            if raw is None or isinstance(raw, dict):
                mode = data["mode"]
                data = dict(data)
                data["settings"] = {**(raw or {}), "mode": getattr(mode, "value", mode)}
        return data


class Membership(BaseModel):
    """Group membership as reported by the membership lookup"""
    user_id: str
    group_id: str
    role: str = "member"

