import logging
from dataclasses import dataclass
from sqlalchemy.orm import Session
from typing import Optional

from app.services.review_state import ActorRole


@dataclass(frozen=True)
class Actor:
    """Caller identity as forwarded by the upstream gateway."""
    id: int
    role: ActorRole


class BaseService:
    def __init__(self, db: Session, actor: Optional[Actor] = None):
        self.db = db
        self.actor = actor
        self._logger = logging.getLogger(self.__class__.__module__)

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
