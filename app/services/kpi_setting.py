import logging
from typing import Any, Dict, Iterable, Optional

from app.core.exceptions import KPIValidationError
from app.services.forms import KPISettingForm, QUARTERLY, min_rows
from app.services.goal_weights import get_valid_rows, validate_goal_weights
from app.services.submission import (
    SubmissionResult,
    SubmissionWarning,
    ValidationOutcome,
    GuardedSubmitter,
)

logger = logging.getLogger(__name__)


def default_title(form: KPISettingForm) -> str:
    if form.title.strip():
        return form.title.strip()
    parts = [form.quarter if form.period == QUARTERLY else "", str(form.year or ""), "KPI"]
    return " ".join(p for p in parts if p)


class KPISettingOrchestrator(GuardedSubmitter):
    """Manager sets a KPI for an employee."""

    def validate(self, form: KPISettingForm) -> ValidationOutcome:
        if not form.manager_signature.strip():
            return ValidationOutcome(False, "Please provide your digital signature.")

        rows = get_valid_rows(form.kpi_rows)
        required = min_rows(form.period)
        if len(rows) < required:
            return ValidationOutcome(
                False,
                f"Please fill in at least {required} KPI items with a title and description "
                f"for a {form.period} KPI.",
            )

        goal_weights = validate_goal_weights(rows)
        if not goal_weights.is_valid:
            return ValidationOutcome(False, goal_weights.error)
        if goal_weights.needs_confirmation:
            return ValidationOutcome(True, None, [SubmissionWarning.NO_GOAL_WEIGHTS])
        return ValidationOutcome(True)

    def build_payload(self, form: KPISettingForm, department_id: Optional[int] = None) -> Dict[str, Any]:
        return {
            "employee_id": form.employee_id,
            "department_id": department_id,
            "title": default_title(form),
            "description": form.description or None,
            "period": form.period,
            "quarter": form.quarter or None,
            "year": form.year,
            "meeting_date": form.meeting_date.isoformat() if form.meeting_date else None,
            "manager_signature": form.manager_signature,
            "items": [
                {
                    "title": row.title.strip(),
                    "description": row.description.strip(),
                    "current_performance_status": row.current_performance_status or None,
                    "target_value": row.target_value or None,
                    "measure_unit": row.measure_unit or None,
                    "goal_weight": row.goal_weight or None,
                    "expected_completion_date": row.expected_completion_date or None,
                    "is_qualitative": row.is_qualitative,
                    "exclude_from_calculation": row.is_qualitative and row.exclude_from_calculation,
                }
                for row in get_valid_rows(form.kpi_rows)
            ],
        }

    def confirm_and_submit(
        self,
        form: KPISettingForm,
        acknowledged_warnings: Iterable[SubmissionWarning] = (),
        department_id: Optional[int] = None,
    ) -> SubmissionResult:
        outcome = self.validate(form)
        if not outcome.ok:
            raise KPIValidationError(outcome.error)

        pending = [w for w in outcome.warnings if w not in set(acknowledged_warnings)]
        if pending:
            return SubmissionResult(submitted=False, pending_warnings=pending)

        payload = self.build_payload(form, department_id)
        self._begin()
        try:
            response = self.gateway.create_kpi(payload)
        finally:
            self._end()

        self.drafts.clear_kpi_setting_draft(form.employee_id)
        logger.info(f"KPI set for employee {form.employee_id} ({form.period})")
        return SubmissionResult(submitted=True, response=response)
