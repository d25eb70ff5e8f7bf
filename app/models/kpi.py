from sqlalchemy import Column, Integer, String, Text, Boolean, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from app.database import Base


class KPIPeriod(str, enum.Enum):
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class KPIStatus(str, enum.Enum):
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    COMPLETED = "completed"
    REJECTED = "rejected"


class KPI(Base):
    __tablename__ = "kpis"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, index=True, nullable=False)
    manager_id = Column(Integer, index=True, nullable=False)
    department_id = Column(Integer, index=True, nullable=True)  # selects DepartmentFeatures

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    period = Column(String, default=KPIPeriod.QUARTERLY.value, nullable=False)  # quarterly | yearly
    quarter = Column(String, nullable=True)  # Q1..Q4, quarterly only
    year = Column(Integer, nullable=True)
    status = Column(String, default=KPIStatus.PENDING.value, index=True)

    meeting_date = Column(Date, nullable=True)
    manager_signature = Column(Text, nullable=True)
    manager_signed_at = Column(DateTime(timezone=True), nullable=True)
    employee_signature = Column(Text, nullable=True)
    employee_signed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    items = relationship(
        "KPIItem",
        back_populates="kpi",
        cascade="all, delete-orphan",
        order_by="KPIItem.item_order",
    )
    review = relationship("KPIReview", back_populates="kpi", uselist=False)

    def __repr__(self):
        return f"<KPI {self.id} {self.period} employee={self.employee_id} ({self.status})>"


class KPIItem(Base):
    __tablename__ = "kpi_items"

    id = Column(Integer, primary_key=True, index=True)
    kpi_id = Column(Integer, ForeignKey("kpis.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    current_performance_status = Column(String, nullable=True)
    target_value = Column(String, nullable=True)
    actual_value = Column(String, nullable=True)
    measure_unit = Column(String, nullable=True)
    goal_weight = Column(String, nullable=True)  # "40%", "40" or "0.4"
    expected_completion_date = Column(Date, nullable=True)
    is_qualitative = Column(Boolean, default=False, nullable=False)
    # Qualitative items only: rated but left out of the average
    exclude_from_calculation = Column(Boolean, default=False, nullable=False)
    item_order = Column(Integer, default=0, nullable=False)

    kpi = relationship("KPI", back_populates="items")
