"""
HTTP gateway to the KPI persistence API.

Every failure to reach the API surfaces as NetworkError; error responses
from the API are mapped back onto the matching AppException subclass so the
caller sees the same errors whether it runs in-process or over HTTP.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests
from pydantic import ValidationError

from app.core.config import settings
from app.core.exceptions import (
    AccessDeniedError,
    AppException,
    AuthenticationError,
    KPIValidationError,
    NetworkError,
    NotFoundError,
)
from app.schemas.kpi import KPIResponse
from app.services.rating_options import RatingOptionValue, fallback_rating_options

logger = logging.getLogger(__name__)


class ReviewGateway(ABC):
    """What the orchestrators need from the persistence layer."""

    @abstractmethod
    def create_kpi(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    def submit_self_rating(self, kpi_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    def initiate_review(self, kpi_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    def submit_manager_review(self, review_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        ...


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    errors = body.get("errors") if isinstance(body, dict) else None
    if errors and isinstance(errors, list) and isinstance(errors[0], dict):
        return errors[0].get("msg") or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return f"HTTP {response.status_code}"


def _raise_for_response(response: requests.Response) -> None:
    if response.status_code < 400:
        return
    message = _error_message(response)
    if response.status_code in (400, 422):
        raise KPIValidationError(message)
    if response.status_code == 401:
        raise AuthenticationError(message)
    if response.status_code == 403:
        raise AccessDeniedError(message)
    if response.status_code == 404:
        raise NotFoundError(message)
    if response.status_code < 500:
        raise AppException(message, status_code=response.status_code)
    raise NetworkError(message, details={"status_code": response.status_code})


class KPIReviewApiClient(ReviewGateway):
    def __init__(
        self,
        actor_id: int,
        actor_role: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or settings.gateway.base_url).rstrip("/")
        self.timeout = timeout or settings.gateway.timeout_seconds
        self.session = session or requests.Session()
        self.session.headers.update({
            settings.actor_id_header: str(actor_id),
            settings.actor_role_header: actor_role,
            "Content-Type": "application/json",
        })

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error(f"{method} {url} failed: {e}")
            raise NetworkError(f"Could not reach the KPI service: {e}")
        _raise_for_response(response)
        if not response.content:
            return {}
        return response.json()

    # --- KPIs ---

    @staticmethod
    def _kpi(body: Any) -> KPIResponse:
        try:
            return KPIResponse.model_validate(body)
        except ValidationError as e:
            logger.error(f"Unexpected KPI body from the KPI service: {e}")
            raise NetworkError("The KPI service returned a malformed KPI.")

    def list_kpis(self, **filters) -> List[KPIResponse]:
        body = self._request("GET", "/kpis", params=filters)
        return [self._kpi(raw) for raw in body or []]

    def get_kpi(self, kpi_id: int) -> KPIResponse:
        """The KPI with its items as attribute objects, ready for ReviewContext."""
        return self._kpi(self._request("GET", f"/kpis/{kpi_id}"))

    def create_kpi(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/kpis", json=payload)

    def acknowledge_kpi(self, kpi_id: int, employee_signature: str) -> KPIResponse:
        body = self._request("POST", f"/kpis/{kpi_id}/acknowledge", json={"employee_signature": employee_signature})
        return self._kpi(body)

    # --- reviews ---

    def get_review(self, review_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/kpi-review/{review_id}")

    def submit_self_rating(self, kpi_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", f"/kpi-review/{kpi_id}/self-rating", json=payload)

    def initiate_review(self, kpi_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", f"/kpi-review/initiate/{kpi_id}", json=payload)

    def submit_manager_review(self, review_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", f"/kpi-review/{review_id}/manager-review", json=payload)

    def confirm_review(self, review_id: int, action: str, signature: str, rejection_note: Optional[str] = None) -> Dict[str, Any]:
        payload = {"action": action, "signature": signature, "rejection_note": rejection_note}
        return self._request("POST", f"/kpi-review/{review_id}/employee-confirmation", json=payload)

    def resolve_rejection(self, review_id: int, note: Optional[str] = None) -> Dict[str, Any]:
        return self._request("POST", f"/kpi-review/{review_id}/resolve-rejection", json={"note": note})

    # --- settings ---

    def get_department_features(self, kpi_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/department-features/kpi/{kpi_id}")

    def get_rating_options(self, period: Optional[str] = None) -> List[RatingOptionValue]:
        """Configured options, or the built-in three-step scale when the API has none or is unreachable."""
        params = {"period": period} if period else {}
        try:
            body = self._request("GET", "/rating-options", params=params)
        except AppException as e:
            logger.warning(f"Falling back to default rating options: {e.message}")
            return fallback_rating_options(period or "quarterly")

        options = [
            RatingOptionValue(
                rating_type=raw.get("rating_type", ""),
                rating_value=raw.get("rating_value"),
                code=raw.get("code"),
                label=raw.get("label", ""),
                description=raw.get("description"),
            )
            for raw in body.get("rating_options", [])
            if isinstance(raw, dict)
        ]
        if not any(o.rating_type in ("quarterly", "yearly") for o in options):
            options = fallback_rating_options(period or "quarterly") + options
        return options
