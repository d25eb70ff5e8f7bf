"""
Draft Store

Key-addressed persistence of unsaved form state. The storage itself sits
behind DraftRepository so the same store runs against a dict in tests, the
form_drafts table on the server, or anything else with get/set/delete.

Writes are fire-and-forget and reads that fail count as "no draft": a broken
draft must never block the user from editing or submitting.
"""
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from app.models.form_draft import FormDraft
from app.services.forms import (
    KPISettingForm,
    REVIEW_DRAFT_FIELDS,
    ReviewForm,
    SelfRatingForm,
    decode_draft_value,
    is_blank,
)

logger = logging.getLogger(__name__)


def review_draft_key(review_id: Any) -> str:
    return f"kpi-review-draft-{review_id}"


def kpi_setting_draft_key(employee_id: Any) -> str:
    return f"kpi-setting-draft-{employee_id}"


def self_rating_draft_key(kpi_id: Any) -> str:
    return f"self-rating-draft-{kpi_id}"


REVIEW_DRAFT = "review"
KPI_SETTING_DRAFT = "kpi_setting"
SELF_RATING_DRAFT = "self_rating"

_KEY_PREFIXES = (
    ("kpi-review-draft-", REVIEW_DRAFT),
    ("kpi-setting-draft-", KPI_SETTING_DRAFT),
    ("self-rating-draft-", SELF_RATING_DRAFT),
)


def parse_draft_key(key: str) -> Optional[Tuple[str, str]]:
    """("review", "12"), ("review", "kpi-3"), ("self_rating", "3")... or None for a foreign key."""
    for prefix, kind in _KEY_PREFIXES:
        if key.startswith(prefix) and len(key) > len(prefix):
            return kind, key[len(prefix):]
    return None


class DraftRepository(ABC):
    @abstractmethod
    def load(self, key: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def save(self, key: str, data: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def clear(self, key: str) -> None:
        ...


class InMemoryDraftRepository(DraftRepository):
    """Keeps serialized JSON strings, the same way browser storage would."""

    def __init__(self):
        self._items: Dict[str, str] = {}

    def load(self, key: str) -> Optional[Dict[str, Any]]:
        raw = self._items.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def save(self, key: str, data: Dict[str, Any]) -> None:
        self._items[key] = json.dumps(data)

    def clear(self, key: str) -> None:
        self._items.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._items


class SqlDraftRepository(DraftRepository):
    """form_drafts rows; a new row is stamped with owner_id when one is given."""

    def __init__(self, db: Session, owner_id: Optional[int] = None):
        self.db = db
        self.owner_id = owner_id

    def owner_of(self, key: str) -> Optional[int]:
        draft = self.db.get(FormDraft, key)
        return draft.owner_id if draft is not None else None

    def load(self, key: str) -> Optional[Dict[str, Any]]:
        draft = self.db.get(FormDraft, key)
        if draft is None:
            return None
        return json.loads(draft.payload)

    def save(self, key: str, data: Dict[str, Any]) -> None:
        payload = json.dumps(data)
        draft = self.db.get(FormDraft, key)
        if draft is None:
            self.db.add(FormDraft(key=key, owner_id=self.owner_id, payload=payload))
        else:
            draft.payload = payload
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def clear(self, key: str) -> None:
        draft = self.db.get(FormDraft, key)
        if draft is None:
            return
        self.db.delete(draft)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise


class DraftStore:
    def __init__(self, repository: DraftRepository):
        self.repository = repository

    # --- raw key access ---

    def save(self, key: str, data: Dict[str, Any]) -> bool:
        try:
            self.repository.save(key, data)
            return True
        except Exception as e:
            logger.warning(f"Could not save draft {key}: {e}")
            return False

    def load(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            data = self.repository.load(key)
        except Exception as e:
            logger.warning(f"Ignoring unreadable draft {key}: {e}")
            return None
        if not isinstance(data, dict):
            return None
        return data

    def clear(self, key: str) -> None:
        try:
            self.repository.clear(key)
        except Exception as e:
            logger.warning(f"Could not clear draft {key}: {e}")

    # --- manager review ---

    def save_review_draft(self, review_id: Any, form: ReviewForm) -> bool:
        return self.save(review_draft_key(review_id), form.to_draft())

    def load_review_draft(self, review_id: Any) -> Optional[Dict[str, Any]]:
        return self.load(review_draft_key(review_id))

    def merge_review_draft(self, review_id: Any, form: ReviewForm) -> ReviewForm:
        """
        Overlay a saved draft onto the current form.

        A draft value only fills a field that is still empty or at its default;
        anything loaded from the server or already edited is kept.
        """
        draft = self.load_review_draft(review_id)
        if not draft:
            return form
        return merge_review_draft(form, draft)

    def clear_review_draft(self, review_id: Any) -> None:
        self.clear(review_draft_key(review_id))

    # --- KPI setting ---

    def save_kpi_setting_draft(self, form: KPISettingForm) -> bool:
        return self.save(kpi_setting_draft_key(form.employee_id), form.to_draft())

    def load_kpi_setting_draft(self, employee_id: int) -> Optional[KPISettingForm]:
        data = self.load(kpi_setting_draft_key(employee_id))
        if data is None:
            return None
        try:
            return KPISettingForm.from_draft(employee_id, data)
        except (TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed KPI setting draft for employee {employee_id}: {e}")
            return None

    def clear_kpi_setting_draft(self, employee_id: int) -> None:
        self.clear(kpi_setting_draft_key(employee_id))

    # --- employee self-rating ---

    def save_self_rating_draft(self, kpi_id: Any, form: SelfRatingForm) -> bool:
        return self.save(self_rating_draft_key(kpi_id), form.to_draft())

    def merge_self_rating_draft(self, kpi_id: Any, form: SelfRatingForm) -> SelfRatingForm:
        draft = self.load(self_rating_draft_key(kpi_id))
        if not draft:
            return form
        updates = {}
        for name in ("ratings", "comments", "employee_signature", "review_date",
                     "major_accomplishments", "disappointments", "improvement_needed", "future_plan"):
            if name not in draft:
                continue
            value = decode_draft_value(name, draft[name])
            if is_blank(getattr(form, name)) and not is_blank(value):
                updates[name] = value
        return replace(form, **updates) if updates else form

    def clear_self_rating_draft(self, kpi_id: Any) -> None:
        self.clear(self_rating_draft_key(kpi_id))


def merge_review_draft(form: ReviewForm, draft: Dict[str, Any]) -> ReviewForm:
    updates = {}
    for name in REVIEW_DRAFT_FIELDS:
        if name not in draft:
            continue
        value = decode_draft_value(name, draft[name])
        if is_blank(getattr(form, name)) and not is_blank(value):
            updates[name] = value
    return replace(form, **updates) if updates else form
