# FILE: attempt_engine/services/gate.py
"""
Attempt gate: who may start (or resume) an attempt on which activity
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from attempt_engine.errors import AuthenticationError, AuthorizationError, NotFoundError, StateError
from attempt_engine.models.activities import Activity, Membership, Question
from attempt_engine.models.attempts import Attempt
from attempt_engine.models.settings import ActivityMode
from attempt_engine.services.ports import ActivityReadModel, AttemptRepository, MembershipLookup

logger = logging.getLogger(__name__)


def require_user(user_id: Optional[str]) -> str:
    if not user_id or not str(user_id).strip():
        raise AuthenticationError("Not authenticated")
    return user_id


@dataclass
class GateDecision:
    """
    Outcome of the gate check. ``existing`` is set when the caller already has
    an in-progress attempt, which must be resumed rather than recreated.
    """
    activity: Activity
    membership: Membership
    questions: List[Question]
    existing: Optional[Attempt] = None
    completed_count: int = 0


class AttemptGate:
    def __init__(
        self,
        activities: ActivityReadModel,
        memberships: MembershipLookup,
        repository: AttemptRepository
    ):
        self.activities = activities
        self.memberships = memberships
        self.repository = repository

    def load_activity(self, activity_id: str, mode: Optional[ActivityMode] = None) -> Activity:
        activity = self.activities.get_activity(activity_id)
        if activity is None or activity.is_deleted:
            raise NotFoundError("Activity not found")
        if mode is not None and activity.mode != mode:
            raise NotFoundError(f"Activity not found or not a {mode.value} activity")
        return activity

    def check_member(self, user_id: str, activity: Activity) -> Membership:
        membership = self.memberships.get_membership(user_id, activity.group_id)
        if membership is None:
            raise AuthorizationError("Not a member of this group")
        return membership

    def admit(self, user_id: str, activity_id: str, mode: Optional[ActivityMode] = None) -> GateDecision:
        """Raises unless the caller may start (or resume) an attempt"""
        require_user(user_id)
        activity = self.load_activity(activity_id, mode)
        membership = self.check_member(user_id, activity)

        existing = self.repository.find_in_progress(user_id, activity.id)
        if existing is not None:
            return GateDecision(activity=activity, membership=membership, questions=[], existing=existing)

        completed = self.repository.count_completed(user_id, activity.id)
        if completed >= activity.settings.max_attempts:
            logger.info(
                f"User {user_id} reached max attempts ({activity.settings.max_attempts}) "
                f"on activity {activity.id}"
            )
            raise StateError("maximum attempts reached")

        questions = self.activities.get_questions(activity.id) if activity.mode == ActivityMode.EXAM else []
        return GateDecision(
            activity=activity,
            membership=membership,
            questions=questions,
            completed_count=completed,
        )
