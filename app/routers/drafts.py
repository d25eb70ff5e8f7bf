import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import AccessDeniedError, DraftStorageError, NotFoundError
from app.routers.deps import get_draft_repository, get_review_service
from app.schemas.kpi_review import DraftPayload, DraftResponse
from app.services.draft_store import SqlDraftRepository
from app.services.kpi_review_service import KPIReviewService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/drafts",
    tags=["drafts"]
)


def _authorize(key: str, service: KPIReviewService, drafts: SqlDraftRepository) -> None:
    service.ensure_draft_access(key)
    owner = drafts.owner_of(key)
    if owner is not None and owner != service.actor.id:
        raise AccessDeniedError("This draft belongs to someone else.")


@router.get("/{key}", response_model=DraftResponse)
def get_draft(
    key: str,
    service: KPIReviewService = Depends(get_review_service),
    drafts: SqlDraftRepository = Depends(get_draft_repository),
):
    _authorize(key, service, drafts)
    data = drafts.load(key)
    if data is None:
        raise NotFoundError(f"No draft saved under '{key}'")
    return {"key": key, "data": data}


@router.put("/{key}", response_model=DraftResponse)
def put_draft(
    key: str,
    request: DraftPayload,
    service: KPIReviewService = Depends(get_review_service),
    drafts: SqlDraftRepository = Depends(get_draft_repository),
):
    _authorize(key, service, drafts)
    try:
        drafts.save(key, request.data)
    except SQLAlchemyError as e:
        logger.error(f"Could not store draft {key}: {e}")
        raise DraftStorageError()
    return {"key": key, "data": request.data}


@router.delete("/{key}", status_code=status.HTTP_204_NO_CONTENT)
def delete_draft(
    key: str,
    service: KPIReviewService = Depends(get_review_service),
    drafts: SqlDraftRepository = Depends(get_draft_repository),
):
    _authorize(key, service, drafts)
    try:
        drafts.clear(key)
    except SQLAlchemyError as e:
        logger.error(f"Could not delete draft {key}: {e}")
        raise DraftStorageError("The draft could not be deleted. Please try again.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
