from fastapi import status
from sqlalchemy.exc import SQLAlchemyError

from app.main import app
from app.models.rating_option import RatingOption
from app.routers.deps import get_draft_repository
from app.services.draft_store import SqlDraftRepository


def test_rating_options_fall_back_to_default_scale(client, employee_headers):
    """With nothing configured the three-step scale is served."""
    response = client.get("/api/rating-options", headers=employee_headers)
    assert response.status_code == 200
    options = response.json()["rating_options"]
    numeric = [o for o in options if o["rating_value"] is not None]
    assert [o["rating_value"] for o in numeric] == [1.0, 1.25, 1.5]
    assert numeric[1]["label"] == "Meets Expectation"


def test_rating_options_filtered_by_period(client, db_session, employee_headers):
    db_session.add_all([
        RatingOption(rating_type="yearly", rating_value=2.0, label="Two"),
        RatingOption(rating_type="yearly", rating_value=4.0, label="Four"),
        RatingOption(rating_type="quarterly", rating_value=3.0, label="Three"),
        RatingOption(rating_type="qualitative", code="meets", label="Meets"),
    ])
    db_session.commit()

    response = client.get("/api/rating-options", params={"period": "yearly"}, headers=employee_headers)
    options = response.json()["rating_options"]
    assert [o["rating_value"] for o in options if o["rating_type"] == "yearly"] == [2.0, 4.0]
    assert not any(o["rating_type"] == "quarterly" for o in options)
    assert [o["code"] for o in options if o["rating_type"] == "qualitative"] == ["meets"]


def test_rating_options_need_identity(client):
    assert client.get("/api/rating-options").status_code == status.HTTP_401_UNAUTHORIZED


def test_features_for_kpi_default(client, manager_headers, kpi_payload):
    kpi = client.post("/api/kpis", headers=manager_headers, json=kpi_payload()).json()
    response = client.get(f"/api/department-features/kpi/{kpi['id']}", headers=manager_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["is_default"] is True
    assert body["calculation_method"] == "Normal Calculation"
    assert body["self_rating_enabled"] is False
    assert body["goal_weights_required"] is False


def test_features_for_kpi_after_update(client, manager_headers, hr_headers, kpi_payload):
    client.put(
        "/api/department-features/10",
        headers=hr_headers,
        json={"use_goal_weight_quarterly": True, "use_actual_values_quarterly": True},
    )
    kpi = client.post("/api/kpis", headers=manager_headers, json=kpi_payload()).json()
    body = client.get(f"/api/department-features/kpi/{kpi['id']}", headers=manager_headers).json()
    assert body["is_default"] is False
    assert body["calculation_method"] == "Actual vs Target Values"
    assert body["actual_values_required"] is True
    assert body["goal_weights_required"] is True


class _FailingRepository(SqlDraftRepository):
    def save(self, key, data):
        raise SQLAlchemyError("disk I/O error")


def _kpi(client, manager_headers, payload):
    response = client.post("/api/kpis", headers=manager_headers, json=payload)
    assert response.status_code == status.HTTP_201_CREATED, response.text
    return response.json()


def test_draft_lifecycle(client, manager_headers, kpi_payload):
    kpi = _kpi(client, manager_headers, kpi_payload())
    url = f"/api/drafts/kpi-review-draft-kpi-{kpi['id']}"
    assert client.get(url, headers=manager_headers).status_code == status.HTTP_404_NOT_FOUND

    saved = client.put(url, headers=manager_headers, json={"data": {"managerRatings": {"3": 1.25}}})
    assert saved.status_code == 200
    assert saved.json()["key"] == f"kpi-review-draft-kpi-{kpi['id']}"

    loaded = client.get(url, headers=manager_headers)
    assert loaded.json()["data"] == {"managerRatings": {"3": 1.25}}

    client.put(url, headers=manager_headers, json={"data": {"overallComment": "Almost done"}})
    assert client.get(url, headers=manager_headers).json()["data"] == {"overallComment": "Almost done"}

    deleted = client.delete(url, headers=manager_headers)
    assert deleted.status_code == status.HTTP_204_NO_CONTENT
    assert client.get(url, headers=manager_headers).status_code == status.HTTP_404_NOT_FOUND


def test_review_draft_is_private_to_the_kpi_manager(client, manager_headers, employee_headers, hr_headers,
                                                    actor_headers, kpi_payload):
    kpi = _kpi(client, manager_headers, kpi_payload())
    url = f"/api/drafts/kpi-review-draft-kpi-{kpi['id']}"
    client.put(url, headers=manager_headers, json={"data": {"overallComment": "Not ready"}})

    for headers in (employee_headers, hr_headers, actor_headers("manager", 555)):
        assert client.get(url, headers=headers).status_code == status.HTTP_403_FORBIDDEN
        overwrite = client.put(url, headers=headers, json={"data": {"overallComment": "hijacked"}})
        assert overwrite.status_code == status.HTTP_403_FORBIDDEN
        assert client.delete(url, headers=headers).status_code == status.HTTP_403_FORBIDDEN

    assert client.get(url, headers=manager_headers).json()["data"] == {"overallComment": "Not ready"}


def test_self_rating_draft_belongs_to_the_employee(client, manager_headers, employee_headers, actor_headers,
                                                   kpi_payload):
    kpi = _kpi(client, manager_headers, kpi_payload())
    url = f"/api/drafts/self-rating-draft-{kpi['id']}"

    saved = client.put(url, headers=employee_headers, json={"data": {"ratings": {"1": 1.5}}})
    assert saved.status_code == 200
    assert client.get(url, headers=manager_headers).status_code == status.HTTP_403_FORBIDDEN
    assert client.get(url, headers=actor_headers("employee", 8)).status_code == status.HTTP_403_FORBIDDEN


def test_kpi_setting_draft_is_kept_per_manager(client, manager_headers, employee_headers, actor_headers):
    url = "/api/drafts/kpi-setting-draft-7"
    assert client.put(url, headers=manager_headers, json={"data": {"title": "Q2"}}).status_code == 200

    other_manager = actor_headers("manager", 555)
    assert client.get(url, headers=other_manager).status_code == status.HTTP_403_FORBIDDEN
    assert client.put(url, headers=other_manager, json={"data": {}}).status_code == status.HTTP_403_FORBIDDEN
    assert client.get(url, headers=employee_headers).status_code == status.HTTP_403_FORBIDDEN
    assert client.get(url, headers=manager_headers).json()["data"] == {"title": "Q2"}


def test_draft_for_unknown_review(client, manager_headers):
    response = client.get("/api/drafts/kpi-review-draft-999999", headers=manager_headers)
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_unrecognised_draft_key(client, manager_headers):
    for key in ("anything", "kpi-review-draft-kpi-abc"):
        response = client.put(f"/api/drafts/{key}", headers=manager_headers, json={"data": {}})
        assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_failed_draft_save_is_reported(client, db_session, manager_headers, kpi_payload):
    """A draft that could not be written is an error, not a 200."""
    kpi = _kpi(client, manager_headers, kpi_payload())
    app.dependency_overrides[get_draft_repository] = lambda: _FailingRepository(db_session, owner_id=100)

    response = client.put(
        f"/api/drafts/kpi-review-draft-kpi-{kpi['id']}",
        headers=manager_headers,
        json={"data": {"overallComment": "lost"}},
    )

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert response.json()["errors"][0]["code"] == "DRAFT_NOT_SAVED"


def test_drafts_need_identity(client):
    response = client.put("/api/drafts/anything", json={"data": {}})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
