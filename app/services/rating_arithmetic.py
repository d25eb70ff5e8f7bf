"""
Rating Arithmetic

Pure functions that turn item-level ratings into review-level scores.

Three company calculation policies are supported:
1. Normal Calculation: total rating / total possible rating * 100
2. Goal Weight: sum(rating * goal_weight)
3. Actual vs Target Values: sum((actual / target * 100) * goal_weight)

Nothing here touches the database; callers pass ORM rows or schema objects,
both of which expose the KPI item attributes used below.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

ALLOWED_RATINGS: Sequence[float] = tuple(settings.review.allowed_ratings)

METHOD_NORMAL = "Normal Calculation"
METHOD_GOAL_WEIGHT = "Goal Weight Calculation"
METHOD_ACTUAL_VALUES = "Actual vs Target Values"


def to_float(value: Any) -> Optional[float]:
    """Lenient numeric parse: accepts numbers and numeric strings, with or without '%'."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace("%", "")
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


_LEADING_NUMBER = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def parse_leading_number(value: Any) -> Optional[float]:
    """
    Number at the start of free text, the rest ignored.

    "30 pts" -> 30.0, "25%" -> 25.0, "approx 30" -> None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = _LEADING_NUMBER.match(str(value))
    if match is None:
        return None
    return float(match.group(1))


def is_counted(item: Any) -> bool:
    """Items that take part in the numeric average."""
    return not getattr(item, "is_qualitative", False) and not getattr(item, "exclude_from_calculation", False)


def accomplishment_rating(accomplishment: Any) -> Optional[float]:
    """Manager rating of an accomplishment, falling back to the employee's own."""
    rating = getattr(accomplishment, "manager_rating", None)
    if rating is None:
        rating = getattr(accomplishment, "employee_rating", None)
    return to_float(rating)


def calculate_average_rating(
    items: Iterable[Any],
    ratings_map: Mapping[int, float],
    accomplishments: Optional[Iterable[Any]] = None,
) -> float:
    """
    Mean of every rated (> 0) value.

    Qualitative and explicitly excluded items are left out. Rated
    accomplishments count in both the numerator and the denominator.
    Returns 0 when nothing is rated.
    """
    values: List[float] = []
    for item in items:
        if not is_counted(item):
            continue
        rating = to_float(ratings_map.get(item.id)) or 0.0
        if rating > 0:
            values.append(rating)

    for accomplishment in accomplishments or []:
        rating = accomplishment_rating(accomplishment)
        if rating is not None and rating > 0:
            values.append(rating)

    if not values:
        return 0.0
    return sum(values) / len(values)


def round_to_allowed_rating(average: float, allowed: Sequence[float] = ALLOWED_RATINGS) -> float:
    """
    Snap an average onto the discrete scale.

    Comparison is strict, so on an exact tie the first listed (lower) value wins.
    """
    nearest = allowed[0]
    for candidate in allowed[1:]:
        if abs(candidate - average) < abs(nearest - average):
            nearest = candidate
    return nearest


def round_to_nearest_rating_option(rating: float, options: Sequence[float]) -> float:
    """Like round_to_allowed_rating but for a configured option list; 0 stays 0."""
    if not rating or not options:
        return 0.0
    ordered = sorted(options)
    nearest = ordered[0]
    min_diff = abs(rating - nearest)
    for option in ordered:
        diff = abs(rating - option)
        if diff < min_diff:
            min_diff = diff
            nearest = option
    return nearest


def percentage_obtained(actual: Any, target: Any) -> Optional[float]:
    """actual / target * 100, or None when either side is missing or the target is zero."""
    actual_num = to_float(actual)
    target_num = to_float(target)
    if actual_num is None or target_num is None or target_num == 0:
        return None
    return (actual_num / target_num) * 100


def manager_rating_percentage(
    percentage: Optional[float],
    goal_weight: Any,
    manual_override: Optional[str] = None,
) -> Optional[float]:
    """
    Weighted contribution of one item: percentage * goal_weight / 100.

    A manually entered value wins over the computed one and is taken as-is
    once its '%' is stripped.
    """
    if manual_override is not None and str(manual_override).strip():
        manual = to_float(manual_override)
        if manual is not None:
            return manual
    weight = to_float(goal_weight)
    if percentage is None or weight is None:
        return None
    return percentage * (weight / 100)


def parse_goal_weight(goal_weight: Any) -> float:
    """
    Goal weight as a fraction of one.

    "40%" -> 0.4, "40" -> 0.4, "0.4" -> 0.4. Unparseable or empty -> 0.
    """
    if goal_weight is None or goal_weight == "":
        return 0.0
    text = str(goal_weight).strip()
    if text.endswith("%"):
        return (parse_leading_number(text) or 0.0) / 100
    weight = parse_leading_number(text)
    if weight is None:
        return 0.0
    if weight > 1:
        return weight / 100
    return weight


def get_rating_label(rating: float, labels: Optional[Mapping[float, str]] = None) -> str:
    if labels is None:
        labels = {float(k): v for k, v in settings.review.fallback_rating_labels.items()}
    for value, label in labels.items():
        if abs(float(value) - rating) < 1e-9:
            return label
    return f"{rating}"


@dataclass
class ScoredItem:
    """Flattened view of one item with both raters' values, used by the final-rating policies."""
    item_id: int
    title: str
    employee_rating: float = 0.0
    manager_rating: float = 0.0
    goal_weight: Any = None
    actual_value: Any = None
    target_value: Any = None


@dataclass
class CalculationResult:
    method: str
    average_rating: float
    final_rating: float
    percentage: float
    item_calculations: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "average_rating": self.average_rating,
            "final_rating": self.final_rating,
            "percentage": self.percentage,
            "item_calculations": self.item_calculations,
            "error": self.error,
        }


def build_scored_items(
    items: Iterable[Any],
    employee_ratings: Mapping[int, float],
    manager_ratings: Mapping[int, float],
    actual_values: Optional[Mapping[int, Any]] = None,
    goal_weights: Optional[Mapping[int, Any]] = None,
) -> List[ScoredItem]:
    actual_values = actual_values or {}
    goal_weights = goal_weights or {}
    scored = []
    for item in items:
        if not is_counted(item):
            continue
        scored.append(ScoredItem(
            item_id=item.id,
            title=item.title,
            employee_rating=to_float(employee_ratings.get(item.id)) or 0.0,
            manager_rating=to_float(manager_ratings.get(item.id)) or 0.0,
            goal_weight=goal_weights.get(item.id) or getattr(item, "goal_weight", None),
            actual_value=actual_values.get(item.id) or getattr(item, "actual_value", None),
            target_value=getattr(item, "target_value", None),
        ))
    return scored


def _rating_for(item: ScoredItem, rater: str) -> float:
    return item.employee_rating if rater == "employee" else item.manager_rating


def calculate_normal_rating(items: List[ScoredItem], rating_options: Sequence[float], rater: str = "manager") -> CalculationResult:
    max_rating = max(rating_options)
    total_rating = 0.0
    total_possible = 0.0
    calculations = []
    for item in items:
        rating = _rating_for(item, rater)
        total_rating += rating
        total_possible += max_rating
        calculations.append({
            "item_id": item.item_id,
            "title": item.title,
            "rating": rating,
            "possible_rating": max_rating,
            "contribution": rating,
        })
    percentage = (total_rating / total_possible) * 100 if total_possible > 0 else 0.0
    average = (percentage / 100) * max_rating
    return CalculationResult(METHOD_NORMAL, average, average, percentage, calculations)


def calculate_goal_weight_rating(items: List[ScoredItem], rating_options: Sequence[float], rater: str = "manager") -> CalculationResult:
    weighted_sum = 0.0
    total_weight = 0.0
    calculations = []
    for item in items:
        rating = _rating_for(item, rater)
        weight = parse_goal_weight(item.goal_weight)
        contribution = rating * weight
        weighted_sum += contribution
        total_weight += weight
        calculations.append({
            "item_id": item.item_id,
            "title": item.title,
            "rating": rating,
            "goal_weight": weight,
            "goal_weight_display": f"{weight * 100:.0f}%",
            "contribution": contribution,
        })
    percentage = (weighted_sum / total_weight) * 100 if total_weight > 0 else 0.0
    return CalculationResult(METHOD_GOAL_WEIGHT, weighted_sum, weighted_sum, percentage, calculations)


def calculate_actual_value_rating(items: List[ScoredItem], rating_options: Sequence[float]) -> CalculationResult:
    total_percentage = 0.0
    calculations = []
    for item in items:
        weight = parse_goal_weight(item.goal_weight)
        achieved = percentage_obtained(item.actual_value, item.target_value) or 0.0
        contribution = achieved * weight
        total_percentage += contribution
        calculations.append({
            "item_id": item.item_id,
            "title": item.title,
            "actual_value": to_float(item.actual_value) or 0.0,
            "target_value": to_float(item.target_value) or 0.0,
            "percentage_achieved": achieved,
            "goal_weight": weight,
            "goal_weight_display": f"{weight * 100:.0f}%",
            "manager_rating_percentage": contribution,
            "contribution": contribution,
        })
    average = total_percentage / 100
    return CalculationResult(METHOD_ACTUAL_VALUES, average, average, total_percentage, calculations)


def calculate_final_kpi_rating(
    items: List[ScoredItem],
    rating_options: Sequence[float],
    method_name: str,
    rater: str = "manager",
) -> CalculationResult:
    """
    Apply the company's calculation policy and round onto the configured scale.

    Errors degrade to a zero result tagged "error" instead of propagating.
    """
    if not items:
        return CalculationResult("none", 0.0, 0.0, 0.0, error="No items provided")
    if not rating_options:
        return CalculationResult("none", 0.0, 0.0, 0.0, error="No rating options provided")

    try:
        if method_name == METHOD_ACTUAL_VALUES:
            result = calculate_actual_value_rating(items, rating_options)
        elif method_name == METHOD_GOAL_WEIGHT:
            result = calculate_goal_weight_rating(items, rating_options, rater)
        else:
            result = calculate_normal_rating(items, rating_options, rater)
    except (TypeError, ValueError, ZeroDivisionError) as e:
        logger.warning(f"Final rating calculation failed: {e}")
        return CalculationResult("error", 0.0, 0.0, 0.0, error=str(e))

    result.final_rating = round_to_nearest_rating_option(result.average_rating, rating_options)
    return result
