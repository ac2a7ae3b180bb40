# FILE: attempt_engine/services/activity_store.py
"""
Activity store: activity configuration, question bank and group rosters
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from attempt_engine.config import get_settings
from attempt_engine.errors import ValidationError
from attempt_engine.models.activities import Activity, Membership, Question
from attempt_engine.models.settings import ActivityMode, parse_activity_settings

logger = logging.getLogger(__name__)


class ActivityStore:
    """
    File-backed activity read model and membership lookup.

    Layout under ACTIVITIES_DIR:
        <activity_id>.json            activity row incl. raw settings blob
        questions/<activity_id>.jsonl one question per line
        groups/<group_id>.json        {"members": [{"user_id", "role"}]}
    """

    def __init__(self, activities_dir: Optional[str] = None):
        settings = get_settings()
        self.data_dir = Path(activities_dir or settings.activities_dir)
        self.questions_dir = self.data_dir / "questions"
        self.groups_dir = self.data_dir / "groups"
        for d in (self.data_dir, self.questions_dir, self.groups_dir):
            d.mkdir(parents=True, exist_ok=True)

    def get_activity(self, activity_id: str) -> Optional[Activity]:
        """Load and validate an activity; malformed settings raise ValidationError"""
        activity_file = self.data_dir / f"{activity_id}.json"

        if not activity_file.exists():
            return None

        with open(activity_file, 'r', encoding="utf-8") as f:
            record = json.load(f)

        try:
            mode = ActivityMode(record.get("mode"))
        except ValueError as e:
            raise ValidationError(f"Activity {activity_id} has unknown mode {record.get('mode')!r}") from e

        record = dict(record, mode=mode, settings=parse_activity_settings(mode, record.get("settings")))
        try:
            return Activity.model_validate(record)
        except PydanticValidationError as e:
            logger.warning(f"Invalid activity record {activity_id}: {e}")
            raise ValidationError(f"Activity {activity_id} is malformed") from e

    def get_questions(self, activity_id: str) -> List[Question]:
        """Get questions for activity"""
        questions_file = self.questions_dir / f"{activity_id}.jsonl"

        if not questions_file.exists():
            return []

        questions = []
        with open(questions_file, 'r', encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    questions.append(Question.model_validate_json(line))

        return questions

    def get_membership(self, user_id: str, group_id: str) -> Optional[Membership]:
        roster = self._read_roster(group_id)
        for member in roster.get("members", []):
            if member.get("user_id") == user_id:
                return Membership(
                    user_id=user_id,
                    group_id=group_id,
                    role=member.get("role", "member")
                )
        return None

    def save_activity(self, record: Dict[str, Any]) -> Activity:
        """Validate and write an activity row"""
        activity = Activity.model_validate(record)
        with open(self.data_dir / f"{activity.id}.json", 'w', encoding="utf-8") as f:
            json.dump(record, f, indent=2)
        return activity

    def add_question(self, question: Question):
        """Add question"""
        questions_file = self.questions_dir / f"{question.activity_id}.jsonl"

        with open(questions_file, 'a', encoding="utf-8") as f:
            f.write(question.model_dump_json() + '\n')

    def add_member(self, user_id: str, group_id: str, role: str = "member"):
        roster = self._read_roster(group_id)
        members = [m for m in roster.get("members", []) if m.get("user_id") != user_id]
        members.append({"user_id": user_id, "role": role})
        with open(self.groups_dir / f"{group_id}.json", 'w', encoding="utf-8") as f:
            json.dump({"group_id": group_id, "members": members}, f, indent=2)

    def _read_roster(self, group_id: str) -> Dict[str, Any]:
        roster_file = self.groups_dir / f"{group_id}.json"
        if not roster_file.exists():
            return {}
        with open(roster_file, 'r', encoding="utf-8") as f:
            return json.load(f)
