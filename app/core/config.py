import os
import logging
from pydantic import BaseModel, Field
from typing import Dict, List
from dotenv import load_dotenv

load_dotenv()

class ReviewSettings(BaseModel):
    # Discrete numeric scale used when /rating-options has nothing configured
    allowed_ratings: List[float] = [1.00, 1.25, 1.50]
    fallback_rating_labels: Dict[str, str] = {
        "1.0": "Below Expectation",
        "1.25": "Meets Expectation",
        "1.5": "Exceeds Expectation",
    }
    qualitative_ratings: List[str] = ["exceeds", "meets", "needs_improvement"]
    goal_weight_tolerance: float = 0.01
    min_rows_quarterly: int = 3
    min_rows_yearly: int = 5

class GatewaySettings(BaseModel):
    base_url: str = Field(default=os.getenv("KPI_API_BASE_URL", "http://localhost:8000/api"))
    timeout_seconds: float = Field(default=float(os.getenv("KPI_API_TIMEOUT", "30")))

class Config(BaseModel):
    app_name: str = "KPI Review Engine"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = os.getenv("API_PREFIX", "/api")

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./database.db")

    version: str = "1.0.0"
    build_id: str = os.getenv("BUILD_ID", "local")
    request_id_header: str = "X-Request-ID"

    # Identity is resolved by the upstream gateway and forwarded as headers
    actor_id_header: str = "X-Actor-Id"
    actor_role_header: str = "X-Actor-Role"

    review: ReviewSettings = ReviewSettings()
    gateway: GatewaySettings = GatewaySettings()

    cors_origins: List[str] = Field(
        default_factory=lambda: [
            o.strip()
            for o in os.getenv(
                "CORS_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if o.strip()
        ]
    )

settings = Config()

_logger = logging.getLogger(__name__)
if settings.environment != "development" and settings.database_url.startswith("sqlite:///./"):
    _logger.warning("Using the local SQLite file outside development (APP_ENV=%s).", settings.environment)
