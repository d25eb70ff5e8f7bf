# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import kpi, kpi_review, rating_option, department_features, form_draft

# Explicit class exports for cleaner imports
from .kpi import KPI, KPIItem, KPIPeriod, KPIStatus
from .kpi_review import KPIReview, KPIItemRating, Accomplishment, ReviewStatus, RaterType
from .rating_option import RatingOption
from .department_features import DepartmentFeatures
from .form_draft import FormDraft

__all__ = [
    "KPI",
    "KPIItem",
    "KPIPeriod",
    "KPIStatus",
    "KPIReview",
    "KPIItemRating",
    "Accomplishment",
    "ReviewStatus",
    "RaterType",
    "RatingOption",
    "DepartmentFeatures",
    "FormDraft",
]
