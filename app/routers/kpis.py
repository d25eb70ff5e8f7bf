from fastapi import APIRouter, Depends, status
from typing import List, Optional

from app.routers.deps import get_review_service
from app.schemas.kpi import KPIAcknowledge, KPICreate, KPIResponse
from app.services.kpi_review_service import KPIReviewService

router = APIRouter(
    prefix="/kpis",
    tags=["kpis"]
)


@router.get("", response_model=List[KPIResponse])
def list_kpis(
    employee_id: Optional[int] = None,
    status: Optional[str] = None,
    period: Optional[str] = None,
    service: KPIReviewService = Depends(get_review_service),
):
    """KPIs visible to the caller: own KPIs for employees, managed KPIs for managers, all for HR."""
    return service.list_kpis(employee_id=employee_id, status=status, period=period)


@router.get("/{kpi_id}", response_model=KPIResponse)
def get_kpi(kpi_id: int, service: KPIReviewService = Depends(get_review_service)):
    return service.get_kpi(kpi_id)


@router.post("", response_model=KPIResponse, status_code=status.HTTP_201_CREATED)
def create_kpi(request: KPICreate, service: KPIReviewService = Depends(get_review_service)):
    """Manager sets a KPI for one of their employees."""
    return service.create_kpi(request)


@router.post("/{kpi_id}/acknowledge", response_model=KPIResponse)
def acknowledge_kpi(
    kpi_id: int,
    request: KPIAcknowledge,
    service: KPIReviewService = Depends(get_review_service),
):
    return service.acknowledge_kpi(kpi_id, request.employee_signature)
