from fastapi import APIRouter
from app.routers import kpis, kpi_review, rating_options, department_features, drafts

# Centralized API router hub
# Routers are aggregated here, and main.py only imports this single hub.
api_router = APIRouter()

api_router.include_router(kpis.router, tags=["KPIs"])
api_router.include_router(kpi_review.router, tags=["KPI Review"])
api_router.include_router(rating_options.router, tags=["Rating Options"])
api_router.include_router(department_features.router, tags=["Calculation Settings"])
api_router.include_router(drafts.router, tags=["Drafts"])
