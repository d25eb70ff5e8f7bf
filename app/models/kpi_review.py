from sqlalchemy import (
    Column, Integer, String, Text, Float, Boolean, Date, DateTime, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from app.database import Base


class ReviewStatus(str, enum.Enum):
    PENDING = "pending"
    EMPLOYEE_SUBMITTED = "employee_submitted"
    MANAGER_SUBMITTED = "manager_submitted"
    COMPLETED = "completed"
    REJECTED = "rejected"


class RaterType(str, enum.Enum):
    EMPLOYEE = "employee"
    MANAGER = "manager"


class KPIReview(Base):
    __tablename__ = "kpi_reviews"

    id = Column(Integer, primary_key=True, index=True)
    kpi_id = Column(Integer, ForeignKey("kpis.id"), unique=True, nullable=False, index=True)
    employee_id = Column(Integer, index=True, nullable=False)
    manager_id = Column(Integer, index=True, nullable=False)
    review_status = Column(String, default=ReviewStatus.PENDING.value, index=True)

    review_period = Column(String, nullable=True)
    review_quarter = Column(String, nullable=True)
    review_year = Column(Integer, nullable=True)

    # Derived scores. Recomputed from item ratings on every submission.
    employee_rating = Column(Float, nullable=True)
    employee_final_rating = Column(Float, nullable=True)
    employee_final_rating_percentage = Column(Float, nullable=True)
    manager_rating = Column(Float, nullable=True)
    manager_final_rating = Column(Float, nullable=True)
    manager_final_rating_percentage = Column(Float, nullable=True)
    calculation_method = Column(String, nullable=True)

    # Legacy JSON blobs ({"items": [...], "average_rating": .., "rounded_rating": ..})
    employee_comment = Column(Text, nullable=True)
    manager_comment = Column(Text, nullable=True)

    employee_signature = Column(Text, nullable=True)
    employee_signed_at = Column(DateTime(timezone=True), nullable=True)
    manager_signature = Column(Text, nullable=True)
    manager_signed_at = Column(DateTime(timezone=True), nullable=True)
    overall_manager_comment = Column(Text, nullable=True)

    # Performance reflection
    major_accomplishments = Column(Text, nullable=True)
    disappointments = Column(Text, nullable=True)
    improvement_needed = Column(Text, nullable=True)
    future_plan = Column(Text, nullable=True)
    major_accomplishments_manager_comment = Column(Text, nullable=True)
    disappointments_manager_comment = Column(Text, nullable=True)
    improvement_needed_manager_comment = Column(Text, nullable=True)

    # Meeting confirmation
    meeting_confirmed = Column(Boolean, default=False, nullable=False)
    meeting_date = Column(Date, nullable=True)
    meeting_confirmed_at = Column(DateTime(timezone=True), nullable=True)

    # Employee confirmation / rejection
    confirmation_status = Column(String, nullable=True)  # approved | rejected
    confirmation_signature = Column(Text, nullable=True)
    confirmation_signed_at = Column(DateTime(timezone=True), nullable=True)
    rejection_note = Column(Text, nullable=True)
    rejection_resolved_status = Column(String, nullable=True)  # "resolved" once HR closes it
    rejection_resolved_note = Column(Text, nullable=True)
    rejection_resolved_at = Column(DateTime(timezone=True), nullable=True)
    rejection_resolved_by = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    kpi = relationship("KPI", back_populates="review")
    item_ratings = relationship("KPIItemRating", back_populates="review", cascade="all, delete-orphan")
    accomplishments = relationship(
        "Accomplishment",
        back_populates="review",
        cascade="all, delete-orphan",
        order_by="Accomplishment.item_order",
    )

    def __repr__(self):
        return f"<KPIReview {self.id} kpi={self.kpi_id} ({self.review_status})>"


class KPIItemRating(Base):
    """One rater's assessment of one KPI item."""
    __tablename__ = "kpi_item_ratings"
    __table_args__ = (
        UniqueConstraint("review_id", "item_id", "rater", name="uq_item_rating_rater"),
    )

    id = Column(Integer, primary_key=True, index=True)
    review_id = Column(Integer, ForeignKey("kpi_reviews.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("kpi_items.id"), nullable=False, index=True)
    rater = Column(String, nullable=False)  # employee | manager
    rating = Column(Float, nullable=True)
    qualitative_rating = Column(String, nullable=True)  # exceeds | meets | needs_improvement
    comment = Column(Text, nullable=True)

    # Snapshot taken at submission time
    actual_value = Column(String, nullable=True)
    target_value = Column(String, nullable=True)
    goal_weight = Column(String, nullable=True)
    current_performance_status = Column(String, nullable=True)
    percentage_value_obtained = Column(Float, nullable=True)
    manager_rating_percentage = Column(Float, nullable=True)

    review = relationship("KPIReview", back_populates="item_ratings")


class Accomplishment(Base):
    __tablename__ = "kpi_review_accomplishments"

    id = Column(Integer, primary_key=True, index=True)
    review_id = Column(Integer, ForeignKey("kpi_reviews.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    employee_rating = Column(Float, nullable=True)
    employee_comment = Column(Text, nullable=True)
    manager_rating = Column(Float, nullable=True)
    manager_comment = Column(Text, nullable=True)
    item_order = Column(Integer, default=0, nullable=False)

    review = relationship("KPIReview", back_populates="accomplishments")
