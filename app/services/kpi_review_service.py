"""
KPI review workflow on the server.

Every write re-resolves the lifecycle state from the stored KPI/review pair
and asks the state machine whether the calling actor may take the action.
Review scores are always recomputed here from the submitted item ratings;
numbers computed by the client are never stored as-is.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from app.core.exceptions import AccessDeniedError, KPIValidationError, NotFoundError
from app.models.kpi import KPI, KPIItem, KPIPeriod, KPIStatus
from app.models.kpi_review import Accomplishment, KPIItemRating, KPIReview, RaterType, ReviewStatus
from app.schemas.kpi import KPICreate
from app.schemas.kpi_review import (
    AccomplishmentInput,
    AccomplishmentResponse,
    EmployeeConfirmation,
    ManagerReviewSubmission,
    QualitativeRatingInput,
    SelfRatingSubmission,
)
from app.services.base import BaseService
from app.services.calculation_settings import (
    CalculationFeatures,
    get_calculation_method_name,
    get_department_features,
    is_employee_self_rating_enabled,
    is_performance_reflection_hidden,
)
from app.services.forms import min_rows
from app.services.draft_store import KPI_SETTING_DRAFT, SELF_RATING_DRAFT, parse_draft_key
from app.services.goal_weights import validate_goal_weights
from app.services.rating_arithmetic import (
    build_scored_items,
    calculate_average_rating,
    calculate_final_kpi_rating,
    manager_rating_percentage,
    percentage_obtained,
)
from app.services.rating_options import load_rating_options, numeric_scale, qualitative_codes
from app.services.review_aggregator import encode_legacy_blob
from app.services.review_state import (
    RESOLVED,
    ActorRole,
    ReviewAction,
    ReviewState,
    allowed_actions,
    is_read_only,
    is_rejection_resolved,
    next_state,
    require_rejection_note,
    resolve_state,
)
from app.services.submission import is_allowed_rating


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _draft_subject_id(key: str, subject: str) -> int:
    try:
        return int(subject)
    except ValueError:
        raise KPIValidationError(f"'{key}' is not a draft key.")


class KPIReviewService(BaseService):

    # --- lookups and access ---

    def get_kpi(self, kpi_id: int) -> KPI:
        kpi = self.db.get(KPI, kpi_id)
        if kpi is None:
            raise NotFoundError(f"KPI {kpi_id} not found")
        self._ensure_participant(kpi)
        return kpi

    def get_review(self, review_id: int) -> KPIReview:
        review = self.db.get(KPIReview, review_id)
        if review is None:
            raise NotFoundError(f"Review {review_id} not found")
        self._ensure_participant(review.kpi)
        return review

    def list_kpis(
        self,
        employee_id: Optional[int] = None,
        status: Optional[str] = None,
        period: Optional[str] = None,
    ) -> List[KPI]:
        query = self.db.query(KPI)
        if self.actor.role == ActorRole.EMPLOYEE:
            query = query.filter(KPI.employee_id == self.actor.id)
        elif self.actor.role == ActorRole.MANAGER:
            query = query.filter(KPI.manager_id == self.actor.id)
        if employee_id is not None:
            query = query.filter(KPI.employee_id == employee_id)
        if status:
            query = query.filter(KPI.status == status)
        if period:
            query = query.filter(KPI.period == period)
        return query.order_by(KPI.created_at.desc(), KPI.id.desc()).all()

    def _ensure_participant(self, kpi: KPI) -> None:
        role = self.actor.role
        if role == ActorRole.HR:
            return
        if role == ActorRole.EMPLOYEE and kpi.employee_id == self.actor.id:
            return
        if role == ActorRole.MANAGER and kpi.manager_id == self.actor.id:
            return
        raise AccessDeniedError("You are not a participant of this KPI.")

    def ensure_draft_access(self, key: str) -> None:
        """
        Drafts belong to the one person editing the form they capture:
        review drafts to the KPI's manager, self-rating drafts to its employee,
        KPI setting drafts to a manager.
        """
        parsed = parse_draft_key(key)
        if parsed is None:
            raise KPIValidationError(f"'{key}' is not a draft key.")
        kind, subject = parsed

        if kind == KPI_SETTING_DRAFT:
            _draft_subject_id(key, subject)
            if self.actor.role != ActorRole.MANAGER:
                raise AccessDeniedError("Only a manager can keep a KPI setting draft.")
            return

        if kind == SELF_RATING_DRAFT:
            kpi = self.get_kpi(_draft_subject_id(key, subject))
            if self.actor.role != ActorRole.EMPLOYEE or kpi.employee_id != self.actor.id:
                raise AccessDeniedError("Only the KPI's employee can keep a self-rating draft.")
            return

        if subject.startswith("kpi-"):
            kpi = self.get_kpi(_draft_subject_id(key, subject[len("kpi-"):]))
        else:
            kpi = self.get_review(_draft_subject_id(key, subject)).kpi
        if self.actor.role != ActorRole.MANAGER or kpi.manager_id != self.actor.id:
            raise AccessDeniedError("Only the KPI's manager can keep a review draft.")

    def features_for(self, kpi: KPI) -> CalculationFeatures:
        return get_department_features(self.db, kpi.department_id)

    def _self_rating_enabled(self, kpi: KPI) -> bool:
        return is_employee_self_rating_enabled(self.features_for(kpi), kpi.period)

    def _transition(self, kpi: KPI, action: ReviewAction) -> ReviewState:
        state = resolve_state(kpi, kpi.review)
        return next_state(state, action, self.actor.role, self._self_rating_enabled(kpi))

    def _scale(self, period: Optional[str]):
        options = load_rating_options(self.db)
        return numeric_scale(options, period), qualitative_codes(options)

    # --- KPI setting ---

    def create_kpi(self, data: KPICreate) -> KPI:
        if self.actor.role != ActorRole.MANAGER:
            raise AccessDeniedError("Only a manager can set KPIs.")
        if data.period not in (KPIPeriod.QUARTERLY.value, KPIPeriod.YEARLY.value):
            raise KPIValidationError(f"Unknown KPI period '{data.period}'.")
        if data.period == KPIPeriod.QUARTERLY.value and not data.quarter:
            raise KPIValidationError("Please select a quarter for a quarterly KPI.")
        if not data.manager_signature.strip():
            raise KPIValidationError("Please provide your digital signature.")

        required = min_rows(data.period)
        filled = [i for i in data.items if i.title.strip() and (i.description or "").strip()]
        if len(filled) < required:
            raise KPIValidationError(
                f"Please fill in at least {required} KPI items with a title and description "
                f"for a {data.period} KPI."
            )
        goal_weights = validate_goal_weights(filled)
        if not goal_weights.is_valid:
            raise KPIValidationError(goal_weights.error)

        kpi = KPI(
            employee_id=data.employee_id,
            manager_id=self.actor.id,
            department_id=data.department_id,
            title=data.title,
            description=data.description,
            period=data.period,
            quarter=data.quarter,
            year=data.year,
            status=KPIStatus.PENDING.value,
            meeting_date=data.meeting_date,
            manager_signature=data.manager_signature,
            manager_signed_at=_now(),
        )
        for order, item in enumerate(filled):
            kpi.items.append(KPIItem(
                title=item.title.strip(),
                description=(item.description or "").strip(),
                current_performance_status=item.current_performance_status,
                target_value=item.target_value,
                measure_unit=item.measure_unit,
                goal_weight=item.goal_weight,
                expected_completion_date=item.expected_completion_date,
                is_qualitative=item.is_qualitative,
                exclude_from_calculation=item.is_qualitative and item.exclude_from_calculation,
                item_order=order,
            ))
        self.db.add(kpi)
        self._commit()
        self.db.refresh(kpi)
        self._logger.info(f"KPI {kpi.id} set for employee {kpi.employee_id} by manager {self.actor.id}")
        return kpi

    def acknowledge_kpi(self, kpi_id: int, employee_signature: str) -> KPI:
        kpi = self.get_kpi(kpi_id)
        self._transition(kpi, ReviewAction.ACKNOWLEDGE)
        if not employee_signature.strip():
            raise KPIValidationError("Please provide your digital signature.")
        kpi.status = KPIStatus.ACKNOWLEDGED.value
        kpi.employee_signature = employee_signature
        kpi.employee_signed_at = _now()
        self._commit()
        self.db.refresh(kpi)
        return kpi

    # --- rating submissions ---

    def _validate_ratings(
        self,
        kpi: KPI,
        ratings: Dict[int, Any],
        qualitative: Dict[int, QualitativeRatingInput],
        scale: Sequence[float],
        codes: Sequence[str],
        require_qualitative: bool,
    ) -> None:
        for item in kpi.items:
            if item.is_qualitative:
                entry = qualitative.get(item.id)
                if entry is None and not require_qualitative:
                    continue
                if entry is None or entry.rating not in codes:
                    raise KPIValidationError(
                        f"\"{item.title}\" needs one of: {', '.join(codes)}."
                    )
            elif not is_allowed_rating(ratings.get(item.id), scale):
                allowed = ", ".join(f"{r:.2f}" for r in scale)
                raise KPIValidationError(f"\"{item.title}\" must be rated {allowed}.")

    @staticmethod
    def _split_entries(kpi: KPI, data: Any):
        """Numeric and qualitative entries keyed by item id, each limited to items of its kind."""
        kinds = {item.id: item.is_qualitative for item in kpi.items}
        numeric = {e.item_id: e for e in data.items if kinds.get(e.item_id) is False}
        qualitative = {e.item_id: e for e in data.qualitative_ratings if kinds.get(e.item_id) is True}
        unknown = {e.item_id for e in data.items} | {e.item_id for e in data.qualitative_ratings}
        unknown -= set(kinds)
        if unknown:
            raise KPIValidationError(f"Items {sorted(unknown)} do not belong to KPI {kpi.id}.")
        return numeric, qualitative

    @staticmethod
    def _legacy_blob(
        kpi: KPI,
        ratings: Dict[int, Any],
        comments: Dict[int, str],
        qualitative: Dict[int, QualitativeRatingInput],
        average: float,
        final_rating: float,
    ) -> str:
        labels = {item_id: entry.rating for item_id, entry in qualitative.items()}
        all_comments = dict(comments)
        all_comments.update({item_id: entry.comment or "" for item_id, entry in qualitative.items()})
        return encode_legacy_blob(kpi.items, ratings, all_comments, average, final_rating, qualitative_ratings=labels)

    def _ensure_review(self, kpi: KPI) -> KPIReview:
        if kpi.review is not None:
            return kpi.review
        review = KPIReview(
            kpi_id=kpi.id,
            employee_id=kpi.employee_id,
            manager_id=kpi.manager_id,
            review_status=ReviewStatus.PENDING.value,
            review_period=kpi.period,
            review_quarter=kpi.quarter,
            review_year=kpi.year,
        )
        self.db.add(review)
        kpi.review = review
        self.db.flush()
        return review

    def _replace_item_ratings(self, review: KPIReview, rater: RaterType) -> None:
        review.item_ratings = [r for r in review.item_ratings if r.rater != rater.value]
        self.db.flush()

    def _store_accomplishments(self, review: KPIReview, entries: List[AccomplishmentInput], rater: RaterType) -> None:
        existing = list(review.accomplishments)
        for order, entry in enumerate(entries):
            if order < len(existing):
                row = existing[order]
            else:
                row = Accomplishment(title=entry.title, item_order=order)
                review.accomplishments.append(row)
            row.title = entry.title or row.title
            if entry.description is not None:
                row.description = entry.description
            if rater == RaterType.EMPLOYEE:
                row.employee_rating = entry.employee_rating
                row.employee_comment = entry.employee_comment
            else:
                row.manager_rating = entry.manager_rating
                row.manager_comment = entry.manager_comment

    def submit_self_rating(self, kpi_id: int, data: SelfRatingSubmission) -> KPIReview:
        kpi = self.get_kpi(kpi_id)
        if self.actor.role == ActorRole.EMPLOYEE and kpi.employee_id != self.actor.id:
            raise AccessDeniedError("Only the KPI's employee can submit a self-rating.")
        self._transition(kpi, ReviewAction.SUBMIT_SELF_RATING)
        if not data.employee_signature.strip():
            raise KPIValidationError("Please provide your digital signature.")

        scale, codes = self._scale(kpi.period)
        numeric, qualitative = self._split_entries(kpi, data)
        ratings = {item_id: entry.rating for item_id, entry in numeric.items()}
        comments = {item_id: entry.comment or "" for item_id, entry in numeric.items()}
        self._validate_ratings(kpi, ratings, qualitative, scale, codes, require_qualitative=False)

        review = self._ensure_review(kpi)
        self._replace_item_ratings(review, RaterType.EMPLOYEE)
        for entry in numeric.values():
            review.item_ratings.append(KPIItemRating(
                item_id=entry.item_id,
                rater=RaterType.EMPLOYEE.value,
                rating=entry.rating,
                comment=entry.comment,
            ))
        for entry in qualitative.values():
            review.item_ratings.append(KPIItemRating(
                item_id=entry.item_id,
                rater=RaterType.EMPLOYEE.value,
                qualitative_rating=entry.rating,
                comment=entry.comment,
            ))
        self._store_accomplishments(review, data.accomplishments, RaterType.EMPLOYEE)

        features = self.features_for(kpi)
        method = get_calculation_method_name(features, kpi.period)
        average = calculate_average_rating(kpi.items, ratings, review.accomplishments)
        result = calculate_final_kpi_rating(build_scored_items(kpi.items, ratings, {}), scale, method, "employee")

        review.employee_rating = average
        review.employee_final_rating = result.final_rating
        review.employee_final_rating_percentage = result.percentage
        review.employee_comment = self._legacy_blob(kpi, ratings, comments, qualitative, average, result.final_rating)
        review.employee_signature = data.employee_signature
        review.employee_signed_at = _now()
        review.major_accomplishments = data.major_accomplishments
        review.disappointments = data.disappointments
        review.improvement_needed = data.improvement_needed
        review.future_plan = data.future_plan
        review.review_status = ReviewStatus.EMPLOYEE_SUBMITTED.value

        self._commit()
        self.db.refresh(review)
        self._logger.info(f"Self-rating stored for KPI {kpi.id} (review {review.id}, avg {average:.2f})")
        return review

    def initiate_review(self, kpi_id: int, data: ManagerReviewSubmission) -> KPIReview:
        kpi = self.get_kpi(kpi_id)
        return self._apply_manager_review(kpi, data)

    def submit_manager_review(self, review_id: int, data: ManagerReviewSubmission) -> KPIReview:
        review = self.get_review(review_id)
        return self._apply_manager_review(review.kpi, data)

    def _apply_manager_review(self, kpi: KPI, data: ManagerReviewSubmission) -> KPIReview:
        if self.actor.role == ActorRole.MANAGER and kpi.manager_id != self.actor.id:
            raise AccessDeniedError("Only the KPI's manager can review it.")
        self._transition(kpi, ReviewAction.SUBMIT_MANAGER_REVIEW)
        if not data.manager_signature.strip():
            raise KPIValidationError("Please provide your digital signature.")

        scale, codes = self._scale(kpi.period)
        features = self.features_for(kpi)
        method = get_calculation_method_name(features, kpi.period)

        numeric, qualitative = self._split_entries(kpi, data)
        ratings = {item_id: entry.rating for item_id, entry in numeric.items()}
        comments = {item_id: entry.comment or "" for item_id, entry in numeric.items()}
        self._validate_ratings(kpi, ratings, qualitative, scale, codes, require_qualitative=True)

        if not is_performance_reflection_hidden(method):
            for entry in data.accomplishments:
                if not is_allowed_rating(entry.manager_rating, scale):
                    raise KPIValidationError(f"Please rate the accomplishment \"{entry.title}\".")

        items_by_id = {item.id: item for item in kpi.items}
        weights = {
            item_id: entry.goal_weight or items_by_id[item_id].goal_weight
            for item_id, entry in numeric.items()
        }

        goal_weights = validate_goal_weights(
            [_WeightRow(item, weights.get(item.id, item.goal_weight)) for item in kpi.items]
        )
        if not goal_weights.is_valid:
            raise KPIValidationError(goal_weights.error)

        review = self._ensure_review(kpi)
        self._replace_item_ratings(review, RaterType.MANAGER)
        for entry in numeric.values():
            item = items_by_id[entry.item_id]
            if entry.actual_value is not None:
                item.actual_value = entry.actual_value
            percentage = percentage_obtained(item.actual_value, item.target_value)
            weighted = manager_rating_percentage(percentage, weights[item.id])
            if weighted is None and entry.manager_rating_percentage is not None:
                # Nothing to compute from; keep the manager's manual figure
                weighted = entry.manager_rating_percentage
            review.item_ratings.append(KPIItemRating(
                item_id=item.id,
                rater=RaterType.MANAGER.value,
                rating=entry.rating,
                comment=entry.comment,
                actual_value=item.actual_value,
                target_value=item.target_value,
                goal_weight=weights[item.id],
                current_performance_status=entry.current_performance_status or item.current_performance_status,
                percentage_value_obtained=percentage,
                manager_rating_percentage=weighted,
            ))
        for entry in qualitative.values():
            review.item_ratings.append(KPIItemRating(
                item_id=entry.item_id,
                rater=RaterType.MANAGER.value,
                qualitative_rating=entry.rating,
                comment=entry.comment,
            ))
        self._store_accomplishments(review, data.accomplishments, RaterType.MANAGER)

        employee_ratings = {
            r.item_id: r.rating for r in review.item_ratings
            if r.rater == RaterType.EMPLOYEE.value and r.rating is not None
        }
        average = calculate_average_rating(kpi.items, ratings, review.accomplishments)
        scored = build_scored_items(kpi.items, employee_ratings, ratings, goal_weights=weights)
        result = calculate_final_kpi_rating(scored, scale, method, "manager")

        review.manager_rating = average
        review.manager_final_rating = result.final_rating
        review.manager_final_rating_percentage = result.percentage
        review.calculation_method = result.method
        review.manager_comment = self._legacy_blob(kpi, ratings, comments, qualitative, average, result.final_rating)
        review.overall_manager_comment = data.overall_manager_comment
        review.manager_signature = data.manager_signature
        review.manager_signed_at = _now()
        review.review_period = data.review_period or kpi.period
        review.review_quarter = data.review_quarter or kpi.quarter
        review.review_year = data.review_year or kpi.year
        review.major_accomplishments_manager_comment = data.major_accomplishments_manager_comment
        review.disappointments_manager_comment = data.disappointments_manager_comment
        review.improvement_needed_manager_comment = data.improvement_needed_manager_comment
        review.meeting_confirmed = data.meeting.meeting_confirmed
        review.meeting_date = data.meeting.meeting_date
        review.meeting_confirmed_at = _now() if data.meeting.meeting_confirmed else None
        review.review_status = ReviewStatus.MANAGER_SUBMITTED.value

        self._commit()
        self.db.refresh(review)
        self._logger.info(
            f"Manager review stored for KPI {kpi.id} (review {review.id}, "
            f"{result.method}: {result.final_rating:.2f} / {result.percentage:.1f}%)"
        )
        return review

    # --- confirmation and rejection ---

    def confirm_review(self, review_id: int, data: EmployeeConfirmation) -> KPIReview:
        review = self.get_review(review_id)
        kpi = review.kpi
        if self.actor.role == ActorRole.EMPLOYEE and kpi.employee_id != self.actor.id:
            raise AccessDeniedError("Only the KPI's employee can confirm the review.")
        if not data.signature.strip():
            raise KPIValidationError("Please provide your digital signature.")

        if data.action == "approve":
            self._transition(kpi, ReviewAction.APPROVE_REVIEW)
            review.review_status = ReviewStatus.COMPLETED.value
            kpi.status = KPIStatus.COMPLETED.value
            review.confirmation_status = "approved"
        else:
            self._transition(kpi, ReviewAction.REJECT_REVIEW)
            review.rejection_note = require_rejection_note(data.rejection_note)
            review.review_status = ReviewStatus.REJECTED.value
            kpi.status = KPIStatus.REJECTED.value
            review.confirmation_status = "rejected"

        review.confirmation_signature = data.signature
        review.confirmation_signed_at = _now()
        self._commit()
        self.db.refresh(review)
        return review

    def resolve_rejection(self, review_id: int, note: Optional[str] = None) -> KPIReview:
        review = self.get_review(review_id)
        self._transition(review.kpi, ReviewAction.RESOLVE_REJECTION)
        if is_rejection_resolved(review):
            raise KPIValidationError("This rejection has already been resolved.")
        review.rejection_resolved_status = RESOLVED
        review.rejection_resolved_note = note
        review.rejection_resolved_at = _now()
        review.rejection_resolved_by = self.actor.id
        self._commit()
        self.db.refresh(review)
        return review

    # --- read model ---

    def review_payload(self, review: KPIReview) -> Dict[str, Any]:
        kpi = review.kpi
        enabled = self._self_rating_enabled(kpi)
        state = resolve_state(kpi, review)

        item_ratings: Dict[str, Dict[str, Dict[str, Any]]] = {
            RaterType.EMPLOYEE.value: {},
            RaterType.MANAGER.value: {},
        }
        for row in review.item_ratings:
            item_ratings.setdefault(row.rater, {})[str(row.item_id)] = {
                "rating": row.rating,
                "qualitative_rating": row.qualitative_rating,
                "comment": row.comment,
                "actual_value": row.actual_value,
                "percentage_value_obtained": row.percentage_value_obtained,
                "manager_rating_percentage": row.manager_rating_percentage,
            }

        payload = {
            column.name: getattr(review, column.name)
            for column in KPIReview.__table__.columns
            if column.name not in ("employee_signature", "manager_signature", "confirmation_signature")
        }
        payload.update({
            "state": state.value,
            "allowed_actions": [a.value for a in allowed_actions(state, self.actor.role, enabled)],
            "read_only": is_read_only(state),
            "item_ratings": item_ratings,
            "accomplishments": [AccomplishmentResponse.model_validate(a) for a in review.accomplishments],
            "calculation": self._calculation(review) if review.manager_signed_at else None,
        })
        return payload

    def _calculation(self, review: KPIReview) -> Dict[str, Any]:
        kpi = review.kpi
        scale, _ = self._scale(kpi.period)
        employee, manager, weights = {}, {}, {}
        for row in review.item_ratings:
            if row.rating is None:
                continue
            if row.rater == RaterType.EMPLOYEE.value:
                employee[row.item_id] = row.rating
            else:
                manager[row.item_id] = row.rating
                weights[row.item_id] = row.goal_weight
        method = review.calculation_method or get_calculation_method_name(self.features_for(kpi), kpi.period)
        scored = build_scored_items(kpi.items, employee, manager, goal_weights=weights)
        return calculate_final_kpi_rating(scored, scale, method, "manager").to_dict()


class _WeightRow:
    """KPI item seen through the goal-weight validator with a possibly updated weight."""

    def __init__(self, item: KPIItem, goal_weight: Any):
        self.title = item.title
        self.description = item.description
        self.is_qualitative = item.is_qualitative
        self.goal_weight = goal_weight
