"""
Request-scoped dependencies.
Identity is resolved upstream; this service only reads the forwarded actor headers.
"""
import logging
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import AuthenticationError
from app.core.logging import actor_var
from app.database import get_db
from app.services.base import Actor
from app.services.draft_store import SqlDraftRepository
from app.services.kpi_review_service import KPIReviewService
from app.services.review_state import ActorRole

logger = logging.getLogger(__name__)


async def get_current_actor(request: Request) -> Actor:
    # async so the actor context var is set on the request task, not a worker thread
    raw_id: Optional[str] = request.headers.get(settings.actor_id_header)
    raw_role: Optional[str] = request.headers.get(settings.actor_role_header)
    if not raw_id or not raw_role:
        logger.warning("Request without actor headers")
        raise AuthenticationError("Missing actor identity headers")
    try:
        actor = Actor(id=int(raw_id), role=ActorRole(raw_role.strip().lower()))
    except ValueError:
        logger.warning(f"Unrecognised actor headers: id={raw_id!r} role={raw_role!r}")
        raise AuthenticationError("Invalid actor identity headers")
    actor_var.set(f"{actor.role.value}:{actor.id}")
    return actor


def get_review_service(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> KPIReviewService:
    return KPIReviewService(db, actor)


def get_draft_repository(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> SqlDraftRepository:
    return SqlDraftRepository(db, owner_id=actor.id)
