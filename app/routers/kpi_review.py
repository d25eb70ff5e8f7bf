"""
KPI Review Router
Self-rating > Manager review > Employee confirmation > HR resolution.
"""
from fastapi import APIRouter, Depends

from app.routers.deps import get_review_service
from app.schemas.kpi_review import (
    EmployeeConfirmation,
    ManagerReviewSubmission,
    RejectionResolution,
    ReviewResponse,
    SelfRatingSubmission,
)
from app.services.kpi_review_service import KPIReviewService

router = APIRouter(
    prefix="/kpi-review",
    tags=["kpi-review"]
)


@router.get("/{review_id}", response_model=ReviewResponse)
def get_review(review_id: int, service: KPIReviewService = Depends(get_review_service)):
    """Review with structured item ratings, its lifecycle state and what the caller may do next."""
    review = service.get_review(review_id)
    return service.review_payload(review)


@router.post("/{kpi_id}/self-rating", response_model=ReviewResponse)
def submit_self_rating(
    kpi_id: int,
    request: SelfRatingSubmission,
    service: KPIReviewService = Depends(get_review_service),
):
    review = service.submit_self_rating(kpi_id, request)
    return service.review_payload(review)


@router.post("/initiate/{kpi_id}", response_model=ReviewResponse)
def initiate_review(
    kpi_id: int,
    request: ManagerReviewSubmission,
    service: KPIReviewService = Depends(get_review_service),
):
    """Manager starts the review directly when employee self-rating is disabled."""
    review = service.initiate_review(kpi_id, request)
    return service.review_payload(review)


@router.post("/{review_id}/manager-review", response_model=ReviewResponse)
def submit_manager_review(
    review_id: int,
    request: ManagerReviewSubmission,
    service: KPIReviewService = Depends(get_review_service),
):
    review = service.submit_manager_review(review_id, request)
    return service.review_payload(review)


@router.post("/{review_id}/employee-confirmation", response_model=ReviewResponse)
def confirm_review(
    review_id: int,
    request: EmployeeConfirmation,
    service: KPIReviewService = Depends(get_review_service),
):
    review = service.confirm_review(review_id, request)
    return service.review_payload(review)


@router.post("/{review_id}/resolve-rejection", response_model=ReviewResponse)
def resolve_rejection(
    review_id: int,
    request: RejectionResolution,
    service: KPIReviewService = Depends(get_review_service),
):
    review = service.resolve_rejection(review_id, request.note)
    return service.review_payload(review)
