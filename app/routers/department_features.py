from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.exceptions import AccessDeniedError
from app.database import get_db
from app.routers.deps import get_current_actor, get_review_service
from app.schemas.kpi import DepartmentFeaturesSchema, DepartmentFeaturesUpdate, KPICalculationSettings
from app.services.base import Actor
from app.services.calculation_settings import (
    are_actual_values_required,
    are_goal_weights_required,
    get_calculation_method_name,
    is_employee_self_rating_enabled,
    update_department_features,
)
from app.services.kpi_review_service import KPIReviewService
from app.services.review_state import ActorRole

router = APIRouter(
    prefix="/department-features",
    tags=["department-features"]
)


@router.get("/kpi/{kpi_id}", response_model=KPICalculationSettings)
def get_features_for_kpi(kpi_id: int, service: KPIReviewService = Depends(get_review_service)):
    """Calculation policy that applies to a KPI, resolved from its department and period."""
    kpi = service.get_kpi(kpi_id)
    features = service.features_for(kpi)
    return {
        **features.to_dict(),
        "kpi_id": kpi.id,
        "department_id": kpi.department_id,
        "period": kpi.period,
        "calculation_method": get_calculation_method_name(features, kpi.period),
        "goal_weights_required": are_goal_weights_required(features, kpi.period),
        "actual_values_required": are_actual_values_required(features, kpi.period),
        "self_rating_enabled": is_employee_self_rating_enabled(features, kpi.period),
    }


@router.put("/{department_id}", response_model=DepartmentFeaturesSchema)
def put_department_features(
    department_id: int,
    request: DepartmentFeaturesUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    if actor.role != ActorRole.HR:
        raise AccessDeniedError("Only HR can change calculation settings.")
    return update_department_features(db, department_id, request.model_dump(exclude_unset=True))
