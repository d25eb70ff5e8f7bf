import pytest
from datetime import date

from app.core.exceptions import KPIValidationError
from app.services.draft_store import DraftStore, InMemoryDraftRepository, kpi_setting_draft_key
from app.services.forms import KPIRow, KPISettingForm
from app.services.api_client import ReviewGateway
from app.services.kpi_setting import KPISettingOrchestrator
from app.services.submission import SubmissionWarning


class RecordingGateway(ReviewGateway):
    def __init__(self):
        self.calls = []

    def create_kpi(self, payload):
        self.calls.append(("create_kpi", payload))
        return {"id": 5}

    def submit_self_rating(self, kpi_id, payload):
        raise AssertionError("not used")

    def initiate_review(self, kpi_id, payload):
        raise AssertionError("not used")

    def submit_manager_review(self, review_id, payload):
        raise AssertionError("not used")


def _rows(*weights):
    return tuple(
        KPIRow(title=f"KPI {i}", description=f"Goal {i}", goal_weight=w, target_value="10")
        for i, w in enumerate(weights)
    )


def _form(rows, **overrides):
    values = dict(employee_id=7, kpi_rows=rows, period="quarterly", quarter="Q2", year=2025,
                  manager_signature="sig", meeting_date=date(2025, 4, 1))
    values.update(overrides)
    return KPISettingForm(**values)


@pytest.fixture
def repository():
    return InMemoryDraftRepository()


@pytest.fixture
def orchestrator(repository):
    return KPISettingOrchestrator(RecordingGateway(), DraftStore(repository))


def test_quarterly_needs_three_rows(orchestrator):
    outcome = orchestrator.validate(_form(_rows("50", "50")))
    assert not outcome.ok
    assert "at least 3" in outcome.error


def test_yearly_needs_five_rows(orchestrator):
    outcome = orchestrator.validate(_form(_rows("30", "30", "40"), period="yearly"))
    assert "at least 5" in outcome.error


def test_empty_rows_do_not_count(orchestrator):
    rows = _rows("50", "50") + (KPIRow(title="Only a title"),)
    assert not orchestrator.validate(_form(rows)).ok


def test_partial_weights_rejected(orchestrator):
    outcome = orchestrator.validate(_form(_rows("50", "50", "")))
    assert "Some KPI items have goal weights" in outcome.error


def test_missing_weights_need_confirmation(orchestrator):
    outcome = orchestrator.validate(_form(_rows("", "", "")))
    assert outcome.ok
    assert outcome.warnings == [SubmissionWarning.NO_GOAL_WEIGHTS]

    result = orchestrator.confirm_and_submit(_form(_rows("", "", "")))
    assert not result.submitted
    assert orchestrator.gateway.calls == []


def test_signature_required(orchestrator):
    with pytest.raises(KPIValidationError):
        orchestrator.confirm_and_submit(_form(_rows("30", "30", "40"), manager_signature=""))


def test_submit_posts_kpi_and_clears_draft(orchestrator, repository):
    form = _form(_rows("30", "30", "40") + (KPIRow(),))
    orchestrator.drafts.save_kpi_setting_draft(form)

    result = orchestrator.confirm_and_submit(form, department_id=10)

    assert result.submitted
    name, payload = orchestrator.gateway.calls[0]
    assert name == "create_kpi"
    assert payload["title"] == "Q2 2025 KPI"
    assert payload["department_id"] == 10
    assert payload["meeting_date"] == "2025-04-01"
    assert [item["goal_weight"] for item in payload["items"]] == ["30", "30", "40"]
    assert kpi_setting_draft_key(7) not in repository
