"""
Submission Orchestrator

Two-phase submit for the manager review and the employee self-rating:

    outcome = orchestrator.validate(context, form)
    # show outcome.error, or ask the user about outcome.warnings
    result = orchestrator.confirm_and_submit(context, form, acknowledged_warnings=outcome.warnings)

Validation never touches the gateway. confirm_and_submit re-runs validation,
refuses to send while any warning is unacknowledged and clears the draft only
once the gateway has accepted the submission.
"""
import enum
import logging
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence

from app.core.config import settings
from app.core.exceptions import KPIValidationError, SubmissionInProgressError
from app.services.api_client import KPIReviewApiClient, ReviewGateway
from app.services.calculation_settings import is_performance_reflection_hidden
from app.services.draft_store import DraftStore
from app.services.forms import QUARTERLY, ReviewForm, SelfRatingForm
from app.services.goal_weights import validate_goal_weights
from app.services.rating_options import numeric_scale, qualitative_codes
from app.services.rating_arithmetic import (
    ALLOWED_RATINGS,
    METHOD_NORMAL,
    calculate_average_rating,
    manager_rating_percentage,
    percentage_obtained,
    round_to_allowed_rating,
    to_float,
)

logger = logging.getLogger(__name__)

RATING_TOLERANCE = 1e-6


class SubmissionWarning(str, enum.Enum):
    MEETING_NOT_CONFIRMED = "meeting_not_confirmed"
    NO_GOAL_WEIGHTS = "no_goal_weights"


@dataclass
class ValidationOutcome:
    ok: bool
    error: Optional[str] = None
    warnings: List[SubmissionWarning] = field(default_factory=list)


@dataclass
class SubmissionResult:
    submitted: bool
    review_id: Optional[int] = None
    response: Optional[Dict[str, Any]] = None
    pending_warnings: List[SubmissionWarning] = field(default_factory=list)


@dataclass
class ReviewContext:
    """The KPI being reviewed and the policy it is reviewed under."""
    kpi: Any
    review_id: Optional[int] = None
    calculation_method: str = METHOD_NORMAL
    allowed_ratings: Sequence[float] = ALLOWED_RATINGS
    qualitative_ratings: Sequence[str] = tuple(settings.review.qualitative_ratings)

    @property
    def items(self) -> List[Any]:
        return list(getattr(self.kpi, "items", None) or [])

    @property
    def draft_id(self) -> Any:
        # A review that does not exist yet keeps its draft under the KPI
        if self.review_id is not None:
            return self.review_id
        return f"kpi-{self.kpi.id}"


def load_review_context(client: KPIReviewApiClient, kpi_id: int, review_id: Optional[int] = None) -> ReviewContext:
    """KPI, calculation method and rating scale as the API reports them."""
    kpi = client.get_kpi(kpi_id)
    features = client.get_department_features(kpi_id)
    options = client.get_rating_options(kpi.period)
    return ReviewContext(
        kpi=kpi,
        review_id=review_id,
        calculation_method=features.get("calculation_method") or METHOD_NORMAL,
        allowed_ratings=tuple(numeric_scale(options, kpi.period)),
        qualitative_ratings=tuple(qualitative_codes(options)),
    )


def is_allowed_rating(value: Any, allowed: Sequence[float]) -> bool:
    rating = to_float(value)
    if rating is None:
        return False
    return any(abs(rating - option) < RATING_TOLERANCE for option in allowed)


def _numeric_items(items: Iterable[Any]) -> List[Any]:
    return [item for item in items if not getattr(item, "is_qualitative", False)]


def _qualitative_items(items: Iterable[Any]) -> List[Any]:
    return [item for item in items if getattr(item, "is_qualitative", False)]


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class _GoalWeightRow:
    title: Any
    description: Any
    goal_weight: Any
    is_qualitative: bool


def _goal_weight_rows(items: Iterable[Any], overrides: Dict[int, str]) -> List[_GoalWeightRow]:
    return [
        _GoalWeightRow(
            title=item.title,
            description=getattr(item, "description", None),
            goal_weight=overrides.get(item.id) or getattr(item, "goal_weight", None),
            is_qualitative=bool(getattr(item, "is_qualitative", False)),
        )
        for item in items
    ]


class GuardedSubmitter:
    """Holds the saving flag shared by the orchestrators."""

    def __init__(self, gateway: ReviewGateway, drafts: DraftStore):
        self.gateway = gateway
        self.drafts = drafts
        self.saving = False

    def _begin(self) -> None:
        if self.saving:
            raise SubmissionInProgressError()
        self.saving = True

    def _end(self) -> None:
        self.saving = False


class SubmissionOrchestrator(GuardedSubmitter):
    """Manager review submission."""

    def validate(self, context: ReviewContext, form: ReviewForm) -> ValidationOutcome:
        items = context.items

        if not form.period:
            return ValidationOutcome(False, "Please select a review period.")
        if form.period == QUARTERLY and not form.quarter:
            return ValidationOutcome(False, "Please select a review quarter.")

        for item in _numeric_items(items):
            if not is_allowed_rating(form.manager_ratings.get(item.id), context.allowed_ratings):
                allowed = ", ".join(f"{r:.2f}" for r in context.allowed_ratings)
                return ValidationOutcome(
                    False, f"Please rate every KPI item ({allowed}). \"{item.title}\" has no valid rating."
                )
        for item in _qualitative_items(items):
            if form.qualitative_ratings.get(item.id) not in context.qualitative_ratings:
                return ValidationOutcome(
                    False, f"Please choose Exceeds, Meets or Needs Improvement for \"{item.title}\"."
                )

        has_rating = any((to_float(v) or 0) > 0 for v in form.manager_ratings.values())
        has_rating = has_rating or any(form.qualitative_ratings.values())
        has_accomplishment = any((to_float(a.manager_rating) or 0) > 0 for a in form.accomplishments)
        if not (has_rating or has_accomplishment):
            return ValidationOutcome(False, "Please rate at least one KPI item or accomplishment.")

        if not is_performance_reflection_hidden(context.calculation_method):
            for accomplishment in form.accomplishments:
                if not is_allowed_rating(accomplishment.manager_rating, context.allowed_ratings):
                    return ValidationOutcome(
                        False, f"Please rate the accomplishment \"{accomplishment.title}\"."
                    )

        if not form.manager_signature.strip():
            return ValidationOutcome(False, "Please provide your digital signature.")

        warnings = []
        if not form.meeting_confirmed:
            warnings.append(SubmissionWarning.MEETING_NOT_CONFIRMED)

        goal_weights = validate_goal_weights(_goal_weight_rows(items, form.goal_weights))
        if not goal_weights.is_valid:
            return ValidationOutcome(False, goal_weights.error, warnings)
        if goal_weights.needs_confirmation:
            warnings.append(SubmissionWarning.NO_GOAL_WEIGHTS)

        return ValidationOutcome(True, None, warnings)

    def build_payload(self, context: ReviewContext, form: ReviewForm) -> Dict[str, Any]:
        items = []
        for item in _numeric_items(context.items):
            actual = form.actual_values.get(item.id) or getattr(item, "actual_value", None)
            target = getattr(item, "target_value", None)
            weight = form.goal_weights.get(item.id) or getattr(item, "goal_weight", None)
            percentage = percentage_obtained(actual, target)
            items.append({
                "item_id": item.id,
                "rating": to_float(form.manager_ratings.get(item.id)),
                "comment": form.manager_comments.get(item.id, ""),
                "actual_value": actual,
                "target_value": target,
                "goal_weight": weight,
                "current_performance_status": (
                    form.current_performance_statuses.get(item.id)
                    or getattr(item, "current_performance_status", None)
                ),
                "percentage_value_obtained": percentage,
                "manager_rating_percentage": manager_rating_percentage(
                    percentage, weight, form.manual_percentages.get(item.id)
                ),
            })

        qualitative = [
            {
                "item_id": item.id,
                "rating": form.qualitative_ratings.get(item.id),
                "comment": form.qualitative_comments.get(item.id, ""),
            }
            for item in _qualitative_items(context.items)
        ]

        return {
            "items": items,
            "qualitative_ratings": qualitative,
            "accomplishments": [asdict(a) for a in form.accomplishments],
            "overall_manager_comment": form.overall_comment,
            "manager_signature": form.manager_signature,
            "review_date": _iso(form.review_date),
            "review_period": form.period,
            "review_quarter": form.quarter or None,
            "review_year": form.year,
            "major_accomplishments_manager_comment": form.major_accomplishments_manager_comment,
            "disappointments_manager_comment": form.disappointments_manager_comment,
            "improvement_needed_manager_comment": form.improvement_needed_manager_comment,
            "meeting": {
                "meeting_confirmed": form.meeting_confirmed,
                "meeting_date": _iso(form.meeting_date),
            },
        }

    def confirm_and_submit(
        self,
        context: ReviewContext,
        form: ReviewForm,
        acknowledged_warnings: Iterable[SubmissionWarning] = (),
    ) -> SubmissionResult:
        outcome = self.validate(context, form)
        if not outcome.ok:
            raise KPIValidationError(outcome.error)

        pending = [w for w in outcome.warnings if w not in set(acknowledged_warnings)]
        if pending:
            return SubmissionResult(submitted=False, review_id=context.review_id, pending_warnings=pending)

        payload = self.build_payload(context, form)
        self._begin()
        try:
            if context.review_id is None:
                response = self.gateway.initiate_review(context.kpi.id, payload)
            else:
                response = self.gateway.submit_manager_review(context.review_id, payload)
        finally:
            self._end()

        self.drafts.clear_review_draft(context.draft_id)
        review_id = response.get("id", context.review_id) if isinstance(response, dict) else context.review_id
        logger.info(f"Manager review submitted for KPI {context.kpi.id} (review {review_id})")
        return SubmissionResult(submitted=True, review_id=review_id, response=response)


class SelfRatingOrchestrator(GuardedSubmitter):
    """Employee self-rating submission."""

    def validate(self, context: ReviewContext, form: SelfRatingForm) -> ValidationOutcome:
        if not form.employee_signature.strip():
            return ValidationOutcome(False, "Please provide your digital signature.")
        if form.review_date is None:
            return ValidationOutcome(False, "Please select a review date.")
        for item in _numeric_items(context.items):
            if not is_allowed_rating(form.ratings.get(item.id), context.allowed_ratings):
                return ValidationOutcome(False, f"Please rate \"{item.title}\" before submitting.")
        return ValidationOutcome(True)

    def build_payload(self, context: ReviewContext, form: SelfRatingForm) -> Dict[str, Any]:
        numeric = _numeric_items(context.items)
        average = calculate_average_rating(numeric, form.ratings, form.accomplishments)
        items = [
            {
                "item_id": item.id,
                "rating": to_float(form.ratings.get(item.id)),
                "comment": form.comments.get(item.id, ""),
            }
            for item in numeric
        ]
        qualitative = [
            {"item_id": item.id, "rating": form.ratings[item.id], "comment": form.comments.get(item.id, "")}
            for item in _qualitative_items(context.items)
            if form.ratings.get(item.id) in context.qualitative_ratings
        ]
        return {
            "items": items,
            "qualitative_ratings": qualitative,
            "employee_signature": form.employee_signature,
            "review_date": _iso(form.review_date),
            "major_accomplishments": form.major_accomplishments,
            "disappointments": form.disappointments,
            "improvement_needed": form.improvement_needed,
            "future_plan": form.future_plan,
            "accomplishments": [asdict(a) for a in form.accomplishments],
            "average_rating": average,
            "rounded_rating": round_to_allowed_rating(average, context.allowed_ratings) if average else 0.0,
        }

    def confirm_and_submit(self, context: ReviewContext, form: SelfRatingForm) -> SubmissionResult:
        outcome = self.validate(context, form)
        if not outcome.ok:
            raise KPIValidationError(outcome.error)

        payload = self.build_payload(context, form)
        self._begin()
        try:
            response = self.gateway.submit_self_rating(context.kpi.id, payload)
        finally:
            self._end()

        self.drafts.clear_self_rating_draft(context.kpi.id)
        logger.info(f"Self-rating submitted for KPI {context.kpi.id}")
        review_id = response.get("id") if isinstance(response, dict) else None
        return SubmissionResult(submitted=True, review_id=review_id, response=response)
