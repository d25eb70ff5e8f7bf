"""
In-memory form state for the three editing screens: KPI setting, employee
self-rating and manager review.

Every mutation returns a new form holding new maps; an existing form object
is never changed in place.
"""
from dataclasses import dataclass, field, replace, asdict
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Tuple

from app.core.config import settings

QUARTERLY = "quarterly"
YEARLY = "yearly"


def min_rows(period: str) -> int:
    if period == YEARLY:
        return settings.review.min_rows_yearly
    return settings.review.min_rows_quarterly


def int_keys(mapping: Optional[Mapping[Any, Any]]) -> Dict[int, Any]:
    """JSON object keys come back as strings; item ids are ints."""
    result: Dict[int, Any] = {}
    for key, value in (mapping or {}).items():
        try:
            result[int(key)] = value
        except (TypeError, ValueError):
            continue
    return result


def parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


@dataclass(frozen=True)
class KPIRow:
    title: str = ""
    description: str = ""
    current_performance_status: str = ""
    target_value: str = ""
    expected_completion_date: str = ""
    measure_unit: str = ""
    goal_weight: str = ""
    is_qualitative: bool = False
    exclude_from_calculation: bool = False

    def has_content(self) -> bool:
        return bool(self.title.strip()) or bool(self.description.strip())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "KPIRow":
        known = {k: data[k] for k in cls.__dataclass_fields__ if k in data and data[k] is not None}
        for text_field in ("title", "description", "current_performance_status", "target_value",
                           "expected_completion_date", "measure_unit", "goal_weight"):
            if text_field in known:
                known[text_field] = str(known[text_field])
        return cls(**known)


def initial_rows(period: str) -> List[KPIRow]:
    return [KPIRow() for _ in range(min_rows(period))]


@dataclass(frozen=True)
class KPISettingForm:
    employee_id: int
    kpi_rows: Tuple[KPIRow, ...] = ()
    period: str = QUARTERLY
    quarter: str = ""
    year: Optional[int] = None
    meeting_date: Optional[date] = None
    manager_signature: str = ""
    title: str = ""
    description: str = ""
    selected_period_setting: Optional[Dict[str, Any]] = None

    def with_row(self, index: int, row: KPIRow) -> "KPISettingForm":
        rows = list(self.kpi_rows)
        rows[index] = row
        return replace(self, kpi_rows=tuple(rows))

    def with_added_row(self) -> "KPISettingForm":
        return replace(self, kpi_rows=self.kpi_rows + (KPIRow(),))

    def to_draft(self) -> Dict[str, Any]:
        return {
            "kpi_rows": [asdict(row) for row in self.kpi_rows],
            "period": self.period,
            "quarter": self.quarter,
            "year": self.year,
            "meeting_date": self.meeting_date.isoformat() if self.meeting_date else None,
            "manager_signature": self.manager_signature,
            "title": self.title,
            "description": self.description,
            "selected_period_setting": self.selected_period_setting,
        }

    @classmethod
    def from_draft(cls, employee_id: int, data: Mapping[str, Any]) -> "KPISettingForm":
        period = data.get("period") or QUARTERLY
        rows = [KPIRow.from_dict(r) for r in data.get("kpi_rows") or [] if isinstance(r, Mapping)]
        if not any(row.has_content() for row in rows):
            rows = initial_rows(period)
        return cls(
            employee_id=employee_id,
            kpi_rows=tuple(rows),
            period=period,
            quarter=data.get("quarter") or "",
            year=data.get("year"),
            meeting_date=parse_date(data.get("meeting_date")),
            manager_signature=data.get("manager_signature") or "",
            title=data.get("title") or "",
            description=data.get("description") or "",
            selected_period_setting=data.get("selected_period_setting"),
        )


@dataclass(frozen=True)
class AccomplishmentEntry:
    title: str
    description: str = ""
    employee_rating: Optional[float] = None
    employee_comment: str = ""
    manager_rating: Optional[float] = None
    manager_comment: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AccomplishmentEntry":
        return cls(
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            employee_rating=data.get("employee_rating"),
            employee_comment=str(data.get("employee_comment") or ""),
            manager_rating=data.get("manager_rating"),
            manager_comment=str(data.get("manager_comment") or ""),
        )


# Fields of ReviewForm that are persisted in a review draft
REVIEW_DRAFT_FIELDS = (
    "manager_ratings",
    "manager_comments",
    "qualitative_ratings",
    "qualitative_comments",
    "actual_values",
    "overall_comment",
    "manager_signature",
    "review_date",
    "major_accomplishments_manager_comment",
    "disappointments_manager_comment",
    "improvement_needed_manager_comment",
)

_ITEM_MAP_FIELDS = {
    "manager_ratings", "manager_comments", "qualitative_ratings", "qualitative_comments",
    "actual_values", "goal_weights", "manual_percentages", "current_performance_statuses",
    "ratings", "comments",
}


@dataclass(frozen=True)
class ReviewForm:
    manager_ratings: Dict[int, float] = field(default_factory=dict)
    manager_comments: Dict[int, str] = field(default_factory=dict)
    qualitative_ratings: Dict[int, str] = field(default_factory=dict)
    qualitative_comments: Dict[int, str] = field(default_factory=dict)
    actual_values: Dict[int, str] = field(default_factory=dict)
    goal_weights: Dict[int, str] = field(default_factory=dict)
    manual_percentages: Dict[int, str] = field(default_factory=dict)
    current_performance_statuses: Dict[int, str] = field(default_factory=dict)
    overall_comment: str = ""
    manager_signature: str = ""
    review_date: Optional[date] = None
    major_accomplishments_manager_comment: str = ""
    disappointments_manager_comment: str = ""
    improvement_needed_manager_comment: str = ""
    accomplishments: Tuple[AccomplishmentEntry, ...] = ()
    meeting_confirmed: bool = False
    meeting_date: Optional[date] = None
    period: str = ""
    quarter: str = ""
    year: Optional[int] = None

    def with_rating(self, item_id: int, value: Any) -> "ReviewForm":
        return replace(self, manager_ratings={**self.manager_ratings, item_id: float(value)})

    def with_comment(self, item_id: int, value: str) -> "ReviewForm":
        return replace(self, manager_comments={**self.manager_comments, item_id: value})

    def with_qualitative_rating(self, item_id: int, label: str) -> "ReviewForm":
        return replace(self, qualitative_ratings={**self.qualitative_ratings, item_id: label})

    def with_qualitative_comment(self, item_id: int, value: str) -> "ReviewForm":
        return replace(self, qualitative_comments={**self.qualitative_comments, item_id: value})

    def with_actual_value(self, item_id: int, value: str) -> "ReviewForm":
        return replace(self, actual_values={**self.actual_values, item_id: value})

    def with_accomplishment_rating(self, index: int, rating: float, comment: Optional[str] = None) -> "ReviewForm":
        entries = list(self.accomplishments)
        entry = entries[index]
        entries[index] = replace(
            entry,
            manager_rating=rating,
            manager_comment=entry.manager_comment if comment is None else comment,
        )
        return replace(self, accomplishments=tuple(entries))

    def to_draft(self) -> Dict[str, Any]:
        data = {}
        for name in REVIEW_DRAFT_FIELDS:
            value = getattr(self, name)
            if isinstance(value, date):
                value = value.isoformat()
            elif isinstance(value, dict):
                value = {str(k): v for k, v in value.items()}
            data[name] = value
        return data


@dataclass(frozen=True)
class SelfRatingForm:
    ratings: Dict[int, float] = field(default_factory=dict)
    comments: Dict[int, str] = field(default_factory=dict)
    employee_signature: str = ""
    review_date: Optional[date] = None
    major_accomplishments: str = ""
    disappointments: str = ""
    improvement_needed: str = ""
    future_plan: str = ""
    accomplishments: Tuple[AccomplishmentEntry, ...] = ()

    def with_rating(self, item_id: int, value: Any) -> "SelfRatingForm":
        return replace(self, ratings={**self.ratings, item_id: value})

    def with_comment(self, item_id: int, value: str) -> "SelfRatingForm":
        return replace(self, comments={**self.comments, item_id: value})

    def to_draft(self) -> Dict[str, Any]:
        return {
            "ratings": {str(k): v for k, v in self.ratings.items()},
            "comments": {str(k): v for k, v in self.comments.items()},
            "employee_signature": self.employee_signature,
            "review_date": self.review_date.isoformat() if self.review_date else None,
            "major_accomplishments": self.major_accomplishments,
            "disappointments": self.disappointments,
            "improvement_needed": self.improvement_needed,
            "future_plan": self.future_plan,
        }


def is_blank(value: Any) -> bool:
    """Empty or still at its default: no text, no date, or a map with nothing entered yet."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, dict):
        return not any(v not in (None, "", 0, 0.0) for v in value.values())
    return False


def decode_draft_value(name: str, value: Any) -> Any:
    if name in _ITEM_MAP_FIELDS:
        return int_keys(value) if isinstance(value, Mapping) else {}
    if name == "review_date":
        return parse_date(value)
    return value
