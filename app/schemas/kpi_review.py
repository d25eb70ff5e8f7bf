from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional


class ItemRatingInput(BaseModel):
    item_id: int
    rating: Optional[float] = None
    comment: Optional[str] = ""
    actual_value: Optional[str] = None
    target_value: Optional[str] = None
    goal_weight: Optional[str] = None
    current_performance_status: Optional[str] = None
    # Client-side computed values are echoed back but recomputed on the server
    percentage_value_obtained: Optional[float] = None
    manager_rating_percentage: Optional[float] = None


class QualitativeRatingInput(BaseModel):
    item_id: int
    rating: str
    comment: Optional[str] = ""


class AccomplishmentInput(BaseModel):
    title: str
    description: Optional[str] = None
    employee_rating: Optional[float] = None
    employee_comment: Optional[str] = None
    manager_rating: Optional[float] = None
    manager_comment: Optional[str] = None


class MeetingConfirmation(BaseModel):
    meeting_confirmed: bool = False
    meeting_date: Optional[date] = None


class SelfRatingSubmission(BaseModel):
    items: List[ItemRatingInput] = Field(default_factory=list)
    qualitative_ratings: List[QualitativeRatingInput] = Field(default_factory=list)
    employee_signature: str
    review_date: Optional[date] = None
    major_accomplishments: Optional[str] = None
    disappointments: Optional[str] = None
    improvement_needed: Optional[str] = None
    future_plan: Optional[str] = None
    accomplishments: List[AccomplishmentInput] = Field(default_factory=list)
    average_rating: Optional[float] = None
    rounded_rating: Optional[float] = None


class ManagerReviewSubmission(BaseModel):
    items: List[ItemRatingInput] = Field(default_factory=list)
    qualitative_ratings: List[QualitativeRatingInput] = Field(default_factory=list)
    accomplishments: List[AccomplishmentInput] = Field(default_factory=list)
    overall_manager_comment: Optional[str] = None
    manager_signature: str
    review_date: Optional[date] = None
    review_period: Optional[str] = None
    review_quarter: Optional[str] = None
    review_year: Optional[int] = None
    major_accomplishments_manager_comment: Optional[str] = None
    disappointments_manager_comment: Optional[str] = None
    improvement_needed_manager_comment: Optional[str] = None
    meeting: MeetingConfirmation = Field(default_factory=MeetingConfirmation)


class EmployeeConfirmation(BaseModel):
    action: Literal["approve", "reject"]
    signature: str
    rejection_note: Optional[str] = None


class RejectionResolution(BaseModel):
    note: Optional[str] = None


class ItemRatingEntry(BaseModel):
    rating: Optional[float] = None
    qualitative_rating: Optional[str] = None
    comment: Optional[str] = None
    actual_value: Optional[str] = None
    percentage_value_obtained: Optional[float] = None
    manager_rating_percentage: Optional[float] = None


class AccomplishmentResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    employee_rating: Optional[float] = None
    employee_comment: Optional[str] = None
    manager_rating: Optional[float] = None
    manager_comment: Optional[str] = None
    item_order: int = 0

    model_config = ConfigDict(from_attributes=True)


class ReviewResponse(BaseModel):
    id: int
    kpi_id: int
    employee_id: int
    manager_id: int
    review_status: str
    state: str
    allowed_actions: List[str] = Field(default_factory=list)
    read_only: bool = False

    review_period: Optional[str] = None
    review_quarter: Optional[str] = None
    review_year: Optional[int] = None

    employee_rating: Optional[float] = None
    employee_final_rating: Optional[float] = None
    employee_final_rating_percentage: Optional[float] = None
    manager_rating: Optional[float] = None
    manager_final_rating: Optional[float] = None
    manager_final_rating_percentage: Optional[float] = None
    calculation_method: Optional[str] = None

    employee_comment: Optional[str] = None
    manager_comment: Optional[str] = None
    overall_manager_comment: Optional[str] = None
    employee_signed_at: Optional[datetime] = None
    manager_signed_at: Optional[datetime] = None

    major_accomplishments: Optional[str] = None
    disappointments: Optional[str] = None
    improvement_needed: Optional[str] = None
    future_plan: Optional[str] = None
    major_accomplishments_manager_comment: Optional[str] = None
    disappointments_manager_comment: Optional[str] = None
    improvement_needed_manager_comment: Optional[str] = None

    meeting_confirmed: bool = False
    meeting_date: Optional[date] = None

    confirmation_status: Optional[str] = None
    rejection_note: Optional[str] = None
    rejection_resolved_status: Optional[str] = None
    rejection_resolved_note: Optional[str] = None
    rejection_resolved_at: Optional[datetime] = None

    item_ratings: Dict[str, Dict[str, ItemRatingEntry]] = Field(default_factory=dict)
    accomplishments: List[AccomplishmentResponse] = Field(default_factory=list)
    calculation: Optional[Dict[str, Any]] = None


class DraftPayload(BaseModel):
    data: Dict[str, Any]


class DraftResponse(BaseModel):
    key: str
    data: Optional[Dict[str, Any]] = None
