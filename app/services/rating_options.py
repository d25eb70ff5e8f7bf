import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.rating_option import RatingOption

logger = logging.getLogger(__name__)

NUMERIC_TYPES = ("quarterly", "yearly")
QUALITATIVE_TYPE = "qualitative"


@dataclass(frozen=True)
class RatingOptionValue:
    rating_type: str
    label: str
    rating_value: Optional[float] = None
    code: Optional[str] = None
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "rating_type": self.rating_type,
            "rating_value": self.rating_value,
            "code": self.code,
            "label": self.label,
            "description": self.description,
        }


def fallback_rating_options(period: str = "quarterly") -> List[RatingOptionValue]:
    """{1.00: Below, 1.25: Meets, 1.50: Exceeds Expectation}"""
    return [
        RatingOptionValue(rating_type=period, rating_value=float(value), label=label)
        for value, label in settings.review.fallback_rating_labels.items()
    ]


def fallback_qualitative_options() -> List[RatingOptionValue]:
    return [
        RatingOptionValue(rating_type=QUALITATIVE_TYPE, code=code, label=code.replace("_", " ").title())
        for code in settings.review.qualitative_ratings
    ]


def split_options(options: List[RatingOptionValue], period: Optional[str] = None):
    """(numeric options for the period, qualitative options)"""
    numeric = [
        o for o in options
        if o.rating_type in NUMERIC_TYPES and (period is None or o.rating_type == period)
    ]
    qualitative = [o for o in options if o.rating_type == QUALITATIVE_TYPE]
    return numeric, qualitative


def load_rating_options(db: Session) -> List[RatingOptionValue]:
    rows = db.query(RatingOption).order_by(RatingOption.rating_type, RatingOption.rating_value).all()
    return [
        RatingOptionValue(
            rating_type=row.rating_type,
            rating_value=row.rating_value,
            code=row.code,
            label=row.label,
            description=row.description,
        )
        for row in rows
    ]


def numeric_scale(options: List[RatingOptionValue], period: Optional[str] = None) -> List[float]:
    """Sorted numeric values for the period, or the configured scale when none are set up."""
    numeric, _ = split_options(options, period)
    values = sorted({o.rating_value for o in numeric if o.rating_value is not None})
    if not values:
        return list(settings.review.allowed_ratings)
    return values


def qualitative_codes(options: List[RatingOptionValue]) -> List[str]:
    _, qualitative = split_options(options)
    codes = [o.code for o in qualitative if o.code]
    return codes or list(settings.review.qualitative_ratings)


def rating_labels(options: List[RatingOptionValue], period: Optional[str] = None) -> Dict[float, str]:
    numeric, _ = split_options(options, period)
    labels = {o.rating_value: o.label for o in numeric if o.rating_value is not None}
    if not labels:
        labels = {o.rating_value: o.label for o in fallback_rating_options()}
    return labels


def get_rating_scale(db: Session, period: Optional[str]) -> List[float]:
    return numeric_scale(load_rating_options(db), period)
