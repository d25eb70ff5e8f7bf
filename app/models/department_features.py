from sqlalchemy import Column, Integer, Boolean, DateTime
from sqlalchemy.sql import func
from app.database import Base


class DepartmentFeatures(Base):
    """Per-department switches that pick the KPI calculation policy."""
    __tablename__ = "department_features"

    id = Column(Integer, primary_key=True, index=True)
    department_id = Column(Integer, unique=True, index=True, nullable=False)

    use_goal_weight_yearly = Column(Boolean, default=False, nullable=False)
    use_goal_weight_quarterly = Column(Boolean, default=False, nullable=False)
    use_actual_values_yearly = Column(Boolean, default=False, nullable=False)
    use_actual_values_quarterly = Column(Boolean, default=False, nullable=False)
    use_normal_calculation = Column(Boolean, default=True, nullable=False)
    enable_employee_self_rating_quarterly = Column(Boolean, default=False, nullable=False)
    enable_employee_self_rating_yearly = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
