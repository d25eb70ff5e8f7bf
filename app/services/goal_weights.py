"""
Goal-weight validation for a set of KPI items.

Either nobody carries a weight (allowed, but the caller must confirm) or every
non-qualitative item does and the weights add up to 100%. A partial set is
always rejected; it is never patched up silently.
"""
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from app.core.config import settings
from app.services.rating_arithmetic import parse_leading_number

PARTIAL_WEIGHTS_ERROR = (
    "Some KPI items have goal weights while others do not. "
    "Please either fill in all goal weights or leave all blank."
)


@dataclass
class GoalWeightValidation:
    is_valid: bool
    error: Optional[str] = None
    needs_confirmation: bool = False
    total: Optional[float] = None


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def is_filled_row(row: Any) -> bool:
    """A row counts once both title and description are filled in."""
    return bool(_text(getattr(row, "title", None))) and bool(_text(getattr(row, "description", None)))


def get_valid_rows(rows: Iterable[Any]) -> List[Any]:
    return [row for row in rows if is_filled_row(row)]


def extract_weight(row: Any) -> Optional[float]:
    return parse_leading_number(_text(getattr(row, "goal_weight", None)))


def validate_goal_weights(rows: Iterable[Any]) -> GoalWeightValidation:
    candidates = get_valid_rows(rows)
    if not candidates:
        return GoalWeightValidation(is_valid=True)

    weighted = []
    missing = 0
    for row in candidates:
        weight = extract_weight(row)
        if weight is not None:
            weighted.append(weight)
        elif not getattr(row, "is_qualitative", False):
            missing += 1

    if not weighted:
        return GoalWeightValidation(is_valid=True, needs_confirmation=True)

    if missing:
        return GoalWeightValidation(is_valid=False, error=PARTIAL_WEIGHTS_ERROR)

    total = sum(weighted)
    if all(0 < w <= 1 for w in weighted):
        total *= 100
    total = round(total, 2)

    if abs(total - 100) > settings.review.goal_weight_tolerance:
        return GoalWeightValidation(
            is_valid=False,
            error=f"Total Goal Weight must be exactly 100%. Current total is {total:.2f}%.",
            total=total,
        )
    return GoalWeightValidation(is_valid=True, total=total)
