"""
Department-level calculation policy and feature switches.
"""
import logging
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.models.department_features import DepartmentFeatures
from app.models.kpi import KPIPeriod
from app.services.rating_arithmetic import METHOD_ACTUAL_VALUES, METHOD_GOAL_WEIGHT, METHOD_NORMAL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalculationFeatures:
    use_goal_weight_yearly: bool = False
    use_goal_weight_quarterly: bool = False
    use_actual_values_yearly: bool = False
    use_actual_values_quarterly: bool = False
    use_normal_calculation: bool = True
    enable_employee_self_rating_quarterly: bool = False
    enable_employee_self_rating_yearly: bool = False
    is_default: bool = False

    @classmethod
    def from_model(cls, row: DepartmentFeatures) -> "CalculationFeatures":
        values = {f.name: bool(getattr(row, f.name)) for f in fields(cls) if f.name != "is_default"}
        return cls(**values)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalculationFeatures":
        names = {f.name for f in fields(cls)}
        return cls(**{k: bool(v) for k, v in data.items() if k in names})

    def to_dict(self) -> Dict[str, bool]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


DEFAULT_FEATURES = CalculationFeatures(is_default=True)


def _is_yearly(period: Optional[str]) -> bool:
    return period == KPIPeriod.YEARLY.value


def get_calculation_method_name(features: Optional[CalculationFeatures], period: Optional[str]) -> str:
    if features is None:
        return METHOD_NORMAL
    if _is_yearly(period):
        if features.use_actual_values_yearly:
            return METHOD_ACTUAL_VALUES
        if features.use_goal_weight_yearly:
            return METHOD_GOAL_WEIGHT
        return METHOD_NORMAL
    if features.use_actual_values_quarterly:
        return METHOD_ACTUAL_VALUES
    if features.use_goal_weight_quarterly:
        return METHOD_GOAL_WEIGHT
    return METHOD_NORMAL


def are_goal_weights_required(features: Optional[CalculationFeatures], period: Optional[str]) -> bool:
    return get_calculation_method_name(features, period) in (METHOD_GOAL_WEIGHT, METHOD_ACTUAL_VALUES)


def are_actual_values_required(features: Optional[CalculationFeatures], period: Optional[str]) -> bool:
    return get_calculation_method_name(features, period) == METHOD_ACTUAL_VALUES


def is_employee_self_rating_enabled(features: Optional[CalculationFeatures], period: Optional[str]) -> bool:
    """Quarterly is assumed when the period is unknown."""
    if features is None:
        return False
    if _is_yearly(period):
        return features.enable_employee_self_rating_yearly
    return features.enable_employee_self_rating_quarterly


def is_performance_reflection_hidden(method_name: str) -> bool:
    """The Actual vs Target layout drops the accomplishments section."""
    return "Actual vs Target" in method_name


def get_department_features(db: Session, department_id: Optional[int]) -> CalculationFeatures:
    if department_id is None:
        return DEFAULT_FEATURES
    row = db.query(DepartmentFeatures).filter(DepartmentFeatures.department_id == department_id).first()
    if row is None:
        return DEFAULT_FEATURES
    return CalculationFeatures.from_model(row)


def update_department_features(db: Session, department_id: int, updates: Dict[str, Any]) -> DepartmentFeatures:
    row = db.query(DepartmentFeatures).filter(DepartmentFeatures.department_id == department_id).first()
    if row is None:
        row = DepartmentFeatures(department_id=department_id)
        db.add(row)
    for name, value in updates.items():
        if value is not None and hasattr(DepartmentFeatures, name) and name not in ("id", "department_id"):
            setattr(row, name, bool(value))
    try:
        db.commit()
        db.refresh(row)
    except Exception:
        db.rollback()
        raise
    logger.info(f"Updated calculation features for department {department_id}")
    return row
