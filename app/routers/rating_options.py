from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional

from app.database import get_db
from app.routers.deps import get_current_actor
from app.schemas.kpi import RatingOptionsResponse
from app.services.base import Actor
from app.services.rating_options import fallback_rating_options, load_rating_options, split_options

router = APIRouter(
    prefix="/rating-options",
    tags=["rating-options"]
)


@router.get("", response_model=RatingOptionsResponse)
def get_rating_options(
    period: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Numeric options for the period plus the qualitative scale. Falls back to the default three-step scale."""
    options = load_rating_options(db)
    numeric, qualitative = split_options(options, period)
    if not numeric:
        numeric = fallback_rating_options(period or "quarterly")
    return {"rating_options": [o.to_dict() for o in numeric + qualitative]}
