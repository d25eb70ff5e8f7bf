"""
Review Aggregator

Reviews reach us in one of two shapes:

* structured: item_ratings = {"employee": {item_id: {...}}, "manager": {...}}
* legacy: employee_comment / manager_comment holding a JSON string
  {"items": [{"item_id", "rating" or "qualitative_rating", "comment"}], "average_rating", "rounded_rating"}

Both are decoded here, once, into SideRatings. Nothing downstream looks at
the wire shape again. Legacy blobs that fail to parse decode to empty maps
(older records are known to carry malformed JSON).
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from app.services.forms import ReviewForm
from app.services.rating_arithmetic import calculate_average_rating, to_float

logger = logging.getLogger(__name__)

SOURCE_STRUCTURED = "structured"
SOURCE_LEGACY = "legacy"
SOURCE_EMPTY = "empty"

EMPLOYEE = "employee"
MANAGER = "manager"


@dataclass
class SideRatings:
    ratings: Dict[int, float] = field(default_factory=dict)
    comments: Dict[int, str] = field(default_factory=dict)
    qualitative_ratings: Dict[int, str] = field(default_factory=dict)
    actual_values: Dict[int, str] = field(default_factory=dict)
    source: str = SOURCE_EMPTY
    average_rating: Optional[float] = None
    rounded_rating: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return not (self.ratings or self.qualitative_ratings or self.comments)


@dataclass
class AggregatedReview:
    review_id: Optional[int]
    kpi_id: Optional[int]
    review_status: Optional[str]
    employee: SideRatings
    manager: SideRatings
    overall_comment: str = ""
    employee_average: float = 0.0
    manager_average: float = 0.0


def _item_id(raw: Any) -> Optional[int]:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _qualitative_label(label: Any, rating: Any) -> Optional[str]:
    # Numeric placeholders (0, "0", None) are not labels
    for value in (label, rating):
        if isinstance(value, str) and value.strip() and to_float(value) is None:
            return value.strip()
    return None


def _place(side: SideRatings, item_id: int, rating: Any, comment: Any, label: Any, qualitative_ids: Set[int]) -> None:
    if item_id in qualitative_ids or label:
        text = _qualitative_label(label, rating)
        if text:
            side.qualitative_ratings[item_id] = text
    else:
        side.ratings[item_id] = to_float(rating) or 0.0
    side.comments[item_id] = str(comment or "")


def _decode_structured(entries: Mapping[Any, Any], qualitative_ids: Set[int]) -> SideRatings:
    side = SideRatings(source=SOURCE_STRUCTURED)
    for raw_id, data in entries.items():
        item_id = _item_id(raw_id)
        if item_id is None or not isinstance(data, Mapping):
            continue
        label = data.get("qualitative_rating")
        if not label and data.get("type") == "qualitative":
            label = data.get("rating")
        _place(side, item_id, data.get("rating"), data.get("comment"), label, qualitative_ids)
        if data.get("actual_value") not in (None, ""):
            side.actual_values[item_id] = str(data["actual_value"])
    return side


def _decode_legacy(blob: Optional[str], qualitative_ids: Set[int]) -> SideRatings:
    try:
        data = json.loads(blob or "{}")
    except (TypeError, ValueError) as e:
        logger.debug(f"Unreadable legacy review blob, treating as empty: {e}")
        return SideRatings()

    if not isinstance(data, dict) or not isinstance(data.get("items"), list):
        return SideRatings()

    side = SideRatings(
        source=SOURCE_LEGACY,
        average_rating=to_float(data.get("average_rating")),
        rounded_rating=to_float(data.get("rounded_rating")),
    )
    for entry in data["items"]:
        if not isinstance(entry, Mapping):
            continue
        item_id = _item_id(entry.get("item_id"))
        if not item_id:
            continue
        _place(side, item_id, entry.get("rating", 0), entry.get("comment"), entry.get("qualitative_rating"), qualitative_ids)
        if entry.get("actual_value") not in (None, ""):
            side.actual_values[item_id] = str(entry["actual_value"])
    return side


def decode_side(
    item_ratings: Optional[Mapping[str, Any]],
    legacy_blob: Optional[str],
    side: str,
    items: Iterable[Any] = (),
) -> SideRatings:
    """Structured entries for `side` when present, otherwise the legacy JSON blob."""
    qualitative_ids = {item.id for item in items if getattr(item, "is_qualitative", False)}
    entries = (item_ratings or {}).get(side) if isinstance(item_ratings, Mapping) else None
    if isinstance(entries, Mapping) and entries:
        return _decode_structured(entries, qualitative_ids)
    return _decode_legacy(legacy_blob, qualitative_ids)


def parse_employee_data(review: Mapping[str, Any], items: Iterable[Any] = ()) -> SideRatings:
    return decode_side(review.get("item_ratings"), review.get("employee_comment"), EMPLOYEE, items)


def parse_manager_data(review: Mapping[str, Any], items: Iterable[Any] = ()) -> SideRatings:
    return decode_side(review.get("item_ratings"), review.get("manager_comment"), MANAGER, items)


def encode_legacy_blob(
    items: Iterable[Any],
    ratings: Mapping[int, Any],
    comments: Mapping[int, str],
    average_rating: float,
    rounded_rating: float,
    qualitative_ratings: Optional[Mapping[int, str]] = None,
) -> str:
    """
    JSON string kept in employee_comment / manager_comment for older readers.

    Qualitative items carry their label under "qualitative_rating" and no
    numeric rating, so they never read back as a score of 0.
    """
    qualitative_ratings = qualitative_ratings or {}
    entries = []
    for item in items:
        entry = {"item_id": item.id, "comment": comments.get(item.id, "")}
        if getattr(item, "is_qualitative", False):
            entry["qualitative_rating"] = qualitative_ratings.get(item.id) or ""
        else:
            entry["rating"] = ratings.get(item.id, 0)
        entries.append(entry)
    return json.dumps({
        "items": entries,
        "average_rating": average_rating,
        "rounded_rating": rounded_rating,
    })


def initialize_item_maps(items: Iterable[Any]) -> SideRatings:
    """Blank entry for every item: numeric 0 for rated items, empty comment for all."""
    side = SideRatings()
    for item in items:
        if not getattr(item, "is_qualitative", False):
            side.ratings[item.id] = 0.0
        side.comments[item.id] = ""
    return side


def aggregate_review(
    review: Mapping[str, Any],
    items: Iterable[Any],
    accomplishments: Optional[List[Any]] = None,
) -> AggregatedReview:
    items = list(items)
    employee = parse_employee_data(review, items)
    manager = parse_manager_data(review, items)
    if manager.is_empty:
        blank = initialize_item_maps(items)
        blank.source = manager.source
        manager = blank

    return AggregatedReview(
        review_id=review.get("id"),
        kpi_id=review.get("kpi_id"),
        review_status=review.get("review_status"),
        employee=employee,
        manager=manager,
        overall_comment=review.get("overall_manager_comment") or "",
        employee_average=calculate_average_rating(items, employee.ratings),
        manager_average=calculate_average_rating(items, manager.ratings, accomplishments),
    )


def to_review_form(aggregated: AggregatedReview, kpi: Any) -> ReviewForm:
    """Manager review form pre-filled with what the review already holds for the manager side."""
    qualitative_ids = {item.id for item in getattr(kpi, "items", None) or [] if getattr(item, "is_qualitative", False)}
    manager = aggregated.manager
    return ReviewForm(
        manager_ratings=dict(manager.ratings),
        manager_comments={k: v for k, v in manager.comments.items() if k not in qualitative_ids},
        qualitative_ratings=dict(manager.qualitative_ratings),
        qualitative_comments={k: v for k, v in manager.comments.items() if k in qualitative_ids},
        actual_values=dict(manager.actual_values),
        overall_comment=aggregated.overall_comment,
        period=getattr(kpi, "period", None) or "",
        quarter=getattr(kpi, "quarter", None) or "",
        year=getattr(kpi, "year", None),
    )
