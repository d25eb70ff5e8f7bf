from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from typing import List, Optional


class KPIItemCreate(BaseModel):
    title: str
    description: Optional[str] = None
    current_performance_status: Optional[str] = None
    target_value: Optional[str] = None
    measure_unit: Optional[str] = None
    goal_weight: Optional[str] = None
    expected_completion_date: Optional[date] = None
    is_qualitative: bool = False
    exclude_from_calculation: bool = False


class KPICreate(BaseModel):
    employee_id: int
    department_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    period: str = "quarterly"
    quarter: Optional[str] = None
    year: Optional[int] = None
    meeting_date: Optional[date] = None
    manager_signature: str
    items: List[KPIItemCreate] = Field(default_factory=list)


class KPIAcknowledge(BaseModel):
    employee_signature: str


class KPIItemResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    current_performance_status: Optional[str] = None
    target_value: Optional[str] = None
    actual_value: Optional[str] = None
    measure_unit: Optional[str] = None
    goal_weight: Optional[str] = None
    expected_completion_date: Optional[date] = None
    is_qualitative: bool = False
    exclude_from_calculation: bool = False
    item_order: int = 0

    model_config = ConfigDict(from_attributes=True)


class KPIResponse(BaseModel):
    id: int
    employee_id: int
    manager_id: int
    department_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    period: str
    quarter: Optional[str] = None
    year: Optional[int] = None
    status: str
    meeting_date: Optional[date] = None
    manager_signed_at: Optional[datetime] = None
    employee_signed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    items: List[KPIItemResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class RatingOptionResponse(BaseModel):
    rating_type: str
    rating_value: Optional[float] = None
    code: Optional[str] = None
    label: str
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class RatingOptionsResponse(BaseModel):
    rating_options: List[RatingOptionResponse]


class DepartmentFeaturesSchema(BaseModel):
    use_goal_weight_yearly: bool = False
    use_goal_weight_quarterly: bool = False
    use_actual_values_yearly: bool = False
    use_actual_values_quarterly: bool = False
    use_normal_calculation: bool = True
    enable_employee_self_rating_quarterly: bool = False
    enable_employee_self_rating_yearly: bool = False

    model_config = ConfigDict(from_attributes=True)


class DepartmentFeaturesUpdate(BaseModel):
    use_goal_weight_yearly: Optional[bool] = None
    use_goal_weight_quarterly: Optional[bool] = None
    use_actual_values_yearly: Optional[bool] = None
    use_actual_values_quarterly: Optional[bool] = None
    use_normal_calculation: Optional[bool] = None
    enable_employee_self_rating_quarterly: Optional[bool] = None
    enable_employee_self_rating_yearly: Optional[bool] = None


class KPICalculationSettings(DepartmentFeaturesSchema):
    kpi_id: int
    department_id: Optional[int] = None
    period: str
    calculation_method: str
    goal_weights_required: bool
    actual_values_required: bool
    self_rating_enabled: bool
    is_default: bool = False
