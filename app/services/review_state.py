"""
Review State Machine

Resolves where a KPI/review pair sits in its lifecycle and which actor may do
what from there:

    NO_KPI -> PENDING -> ACKNOWLEDGED -> EMPLOYEE_SUBMITTED -> MANAGER_SUBMITTED -> COMPLETED
                                                                               \\-> REJECTED

When the department disables employee self-rating for the KPI's period type,
EMPLOYEE_SUBMITTED is skipped and the manager starts the review straight from
ACKNOWLEDGED. COMPLETED and REJECTED are terminal; HR can mark a rejection
resolved, which never reopens editing.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from app.core.exceptions import AccessDeniedError, KPIValidationError
from app.models.kpi import KPIStatus
from app.models.kpi_review import ReviewStatus

logger = logging.getLogger(__name__)

AWAITING_CONFIRMATION_ALIAS = "awaiting_employee_confirmation"
RESOLVED = "resolved"


class ActorRole(str, enum.Enum):
    EMPLOYEE = "employee"
    MANAGER = "manager"
    HR = "hr"


class ReviewState(str, enum.Enum):
    NO_KPI = "no_kpi"
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    EMPLOYEE_SUBMITTED = "employee_submitted"
    MANAGER_SUBMITTED = "manager_submitted"
    COMPLETED = "completed"
    REJECTED = "rejected"


TERMINAL_STATES = frozenset({ReviewState.COMPLETED, ReviewState.REJECTED})


class ReviewAction(str, enum.Enum):
    ACKNOWLEDGE = "acknowledge"
    SUBMIT_SELF_RATING = "submit_self_rating"
    SUBMIT_MANAGER_REVIEW = "submit_manager_review"
    APPROVE_REVIEW = "approve_review"
    REJECT_REVIEW = "reject_review"
    RESOLVE_REJECTION = "resolve_rejection"


@dataclass(frozen=True)
class Transition:
    role: ActorRole
    target: ReviewState
    # None: always allowed; True/False: only when self-rating is enabled/disabled
    requires_self_rating: Optional[bool] = None


TRANSITIONS: Dict[Tuple[ReviewState, ReviewAction], Transition] = {
    (ReviewState.PENDING, ReviewAction.ACKNOWLEDGE):
        Transition(ActorRole.EMPLOYEE, ReviewState.ACKNOWLEDGED),
    (ReviewState.ACKNOWLEDGED, ReviewAction.SUBMIT_SELF_RATING):
        Transition(ActorRole.EMPLOYEE, ReviewState.EMPLOYEE_SUBMITTED, requires_self_rating=True),
    (ReviewState.ACKNOWLEDGED, ReviewAction.SUBMIT_MANAGER_REVIEW):
        Transition(ActorRole.MANAGER, ReviewState.MANAGER_SUBMITTED, requires_self_rating=False),
    (ReviewState.EMPLOYEE_SUBMITTED, ReviewAction.SUBMIT_MANAGER_REVIEW):
        Transition(ActorRole.MANAGER, ReviewState.MANAGER_SUBMITTED),
    (ReviewState.MANAGER_SUBMITTED, ReviewAction.APPROVE_REVIEW):
        Transition(ActorRole.EMPLOYEE, ReviewState.COMPLETED),
    (ReviewState.MANAGER_SUBMITTED, ReviewAction.REJECT_REVIEW):
        Transition(ActorRole.EMPLOYEE, ReviewState.REJECTED),
    (ReviewState.REJECTED, ReviewAction.RESOLVE_REJECTION):
        Transition(ActorRole.HR, ReviewState.REJECTED),
}


def normalize_review_status(status: Optional[str]) -> Optional[str]:
    if status == AWAITING_CONFIRMATION_ALIAS:
        return ReviewStatus.MANAGER_SUBMITTED.value
    return status


def resolve_state(kpi: Optional[Any], review: Optional[Any] = None) -> ReviewState:
    """Current lifecycle state from the KPI status and, when present, the review status."""
    if kpi is None:
        return ReviewState.NO_KPI

    review_status = normalize_review_status(getattr(review, "review_status", None)) if review else None
    if review_status and review_status != ReviewStatus.PENDING.value:
        return ReviewState(review_status)

    kpi_status = getattr(kpi, "status", None)
    if kpi_status == KPIStatus.PENDING.value:
        return ReviewState.PENDING
    if kpi_status == KPIStatus.COMPLETED.value:
        return ReviewState.COMPLETED
    if kpi_status == KPIStatus.REJECTED.value:
        return ReviewState.REJECTED
    return ReviewState.ACKNOWLEDGED


def _permits(transition: Transition, role: ActorRole, self_rating_enabled: bool) -> bool:
    if transition.role != role:
        return False
    if transition.requires_self_rating is None:
        return True
    return transition.requires_self_rating == self_rating_enabled


def allowed_actions(state: ReviewState, role: ActorRole, self_rating_enabled: bool) -> List[ReviewAction]:
    return [
        action
        for (from_state, action), transition in TRANSITIONS.items()
        if from_state == state and _permits(transition, role, self_rating_enabled)
    ]


def can_edit_manager_ratings(state: ReviewState, role: ActorRole, self_rating_enabled: bool) -> bool:
    return ReviewAction.SUBMIT_MANAGER_REVIEW in allowed_actions(state, role, self_rating_enabled)


def can_edit_self_rating(state: ReviewState, role: ActorRole, self_rating_enabled: bool) -> bool:
    return ReviewAction.SUBMIT_SELF_RATING in allowed_actions(state, role, self_rating_enabled)


def is_read_only(state: ReviewState) -> bool:
    return state in TERMINAL_STATES


def next_state(
    state: ReviewState,
    action: ReviewAction,
    role: ActorRole,
    self_rating_enabled: bool,
) -> ReviewState:
    """
    Target state of `action`, or AccessDeniedError when the actor may not
    take it from `state`.
    """
    transition = TRANSITIONS.get((state, action))
    if transition is None:
        raise AccessDeniedError(f"Cannot {action.value.replace('_', ' ')} while the review is {state.value}.")
    if transition.role != role:
        raise AccessDeniedError(
            f"Only the {transition.role.value} can {action.value.replace('_', ' ')}."
        )
    if not _permits(transition, role, self_rating_enabled):
        if transition.requires_self_rating:
            raise AccessDeniedError("Employee self-rating is disabled for this KPI period.")
        raise AccessDeniedError("The manager review opens once the employee has submitted a self-rating.")
    logger.info(f"Review transition {state.value} --{action.value}--> {transition.target.value} by {role.value}")
    return transition.target


def require_rejection_note(note: Optional[str]) -> str:
    if not note or not note.strip():
        raise KPIValidationError("Please provide a reason for rejecting this review")
    return note.strip()


def is_rejection_resolved(review: Any) -> bool:
    return getattr(review, "rejection_resolved_status", None) == RESOLVED
