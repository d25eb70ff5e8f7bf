import json

import pytest
from fastapi import status

SIGNATURE = "data:image/png;base64,signature"


@pytest.fixture
def acknowledged_kpi(client, manager_headers, employee_headers, kpi_payload):
    """A quarterly KPI the employee has already signed."""
    created = client.post("/api/kpis", headers=manager_headers, json=kpi_payload())
    assert created.status_code == status.HTTP_201_CREATED, created.text
    kpi = created.json()
    acknowledged = client.post(
        f"/api/kpis/{kpi['id']}/acknowledge",
        headers=employee_headers,
        json={"employee_signature": SIGNATURE},
    )
    assert acknowledged.status_code == 200
    return acknowledged.json()


def _manager_review(kpi, ratings=(1.0, 1.25, 1.5), **overrides):
    payload = {
        "items": [
            {"item_id": item["id"], "rating": rating, "comment": f"{item['title']} reviewed"}
            for item, rating in zip(kpi["items"], ratings)
        ],
        "manager_signature": SIGNATURE,
        "overall_manager_comment": "Solid quarter",
        "meeting": {"meeting_confirmed": True, "meeting_date": "2025-04-02"},
    }
    payload.update(overrides)
    return payload


def _initiate(client, manager_headers, kpi, **kwargs):
    return client.post(
        f"/api/kpi-review/initiate/{kpi['id']}",
        headers=manager_headers,
        json=_manager_review(kpi, **kwargs),
    )


def test_full_review_flow(client, manager_headers, employee_headers, acknowledged_kpi):
    """Manager initiates when self-rating is off, employee approves."""
    response = _initiate(client, manager_headers, acknowledged_kpi)
    assert response.status_code == 200, response.text
    review = response.json()

    assert review["review_status"] == "manager_submitted"
    assert review["state"] == "manager_submitted"
    assert review["manager_rating"] == pytest.approx(1.25)
    assert review["manager_final_rating"] == 1.25
    assert review["calculation_method"] == "Normal Calculation"
    assert review["meeting_confirmed"] is True
    assert review["calculation"]["final_rating"] == 1.25

    first_item = str(acknowledged_kpi["items"][0]["id"])
    assert review["item_ratings"]["manager"][first_item]["rating"] == 1.0
    assert "manager_signature" not in review

    as_employee = client.get(f"/api/kpi-review/{review['id']}", headers=employee_headers).json()
    assert as_employee["allowed_actions"] == ["approve_review", "reject_review"]

    confirmed = client.post(
        f"/api/kpi-review/{review['id']}/employee-confirmation",
        headers=employee_headers,
        json={"action": "approve", "signature": SIGNATURE},
    )
    assert confirmed.status_code == 200
    body = confirmed.json()
    assert body["review_status"] == "completed"
    assert body["confirmation_status"] == "approved"
    assert body["read_only"] is True

    kpi = client.get(f"/api/kpis/{acknowledged_kpi['id']}", headers=employee_headers).json()
    assert kpi["status"] == "completed"


def test_completed_review_is_locked(client, manager_headers, employee_headers, acknowledged_kpi):
    review = _initiate(client, manager_headers, acknowledged_kpi).json()
    client.post(
        f"/api/kpi-review/{review['id']}/employee-confirmation",
        headers=employee_headers,
        json={"action": "approve", "signature": SIGNATURE},
    )
    response = client.post(
        f"/api/kpi-review/{review['id']}/manager-review",
        headers=manager_headers,
        json=_manager_review(acknowledged_kpi),
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_review_needs_acknowledged_kpi(client, manager_headers, kpi_payload):
    kpi = client.post("/api/kpis", headers=manager_headers, json=kpi_payload()).json()
    response = _initiate(client, manager_headers, kpi)
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_rating_off_scale_is_rejected(client, manager_headers, acknowledged_kpi):
    response = _initiate(client, manager_headers, acknowledged_kpi, ratings=(1.1, 1.25, 1.5))
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "Close tickets" in response.json()["errors"][0]["msg"]


def test_every_item_needs_a_rating(client, manager_headers, acknowledged_kpi):
    response = _initiate(client, manager_headers, acknowledged_kpi, ratings=(1.0, 1.25))
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_foreign_item_ids_are_rejected(client, manager_headers, acknowledged_kpi):
    payload = _manager_review(acknowledged_kpi)
    payload["items"].append({"item_id": 987654, "rating": 1.0})
    response = client.post(
        f"/api/kpi-review/initiate/{acknowledged_kpi['id']}", headers=manager_headers, json=payload
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_missing_manager_signature(client, manager_headers, acknowledged_kpi):
    response = _initiate(client, manager_headers, acknowledged_kpi, manager_signature="  ")
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_self_rating_flow(client, manager_headers, employee_headers, hr_headers, acknowledged_kpi):
    """With self-rating enabled the manager waits for the employee."""
    features = client.put(
        "/api/department-features/10",
        headers=hr_headers,
        json={"enable_employee_self_rating_quarterly": True},
    )
    assert features.status_code == 200
    assert features.json()["enable_employee_self_rating_quarterly"] is True

    blocked = _initiate(client, manager_headers, acknowledged_kpi)
    assert blocked.status_code == status.HTTP_403_FORBIDDEN

    self_rating = client.post(
        f"/api/kpi-review/{acknowledged_kpi['id']}/self-rating",
        headers=employee_headers,
        json={
            "items": [
                {"item_id": item["id"], "rating": 1.5, "comment": "Went well"}
                for item in acknowledged_kpi["items"]
            ],
            "employee_signature": SIGNATURE,
            "review_date": "2025-03-30",
            "major_accomplishments": "Shipped the portal",
        },
    )
    assert self_rating.status_code == 200, self_rating.text
    review = self_rating.json()
    assert review["review_status"] == "employee_submitted"
    assert review["employee_rating"] == pytest.approx(1.5)
    assert review["employee_final_rating"] == 1.5
    assert review["major_accomplishments"] == "Shipped the portal"
    assert len(review["item_ratings"]["employee"]) == 3

    managed = client.post(
        f"/api/kpi-review/{review['id']}/manager-review",
        headers=manager_headers,
        json=_manager_review(acknowledged_kpi),
    )
    assert managed.status_code == 200, managed.text
    body = managed.json()
    assert body["review_status"] == "manager_submitted"
    assert len(body["item_ratings"]["employee"]) == 3
    assert len(body["item_ratings"]["manager"]) == 3


def test_self_rating_disabled_by_default(client, employee_headers, acknowledged_kpi):
    response = client.post(
        f"/api/kpi-review/{acknowledged_kpi['id']}/self-rating",
        headers=employee_headers,
        json={
            "items": [{"item_id": item["id"], "rating": 1.0} for item in acknowledged_kpi["items"]],
            "employee_signature": SIGNATURE,
        },
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_only_hr_changes_features(client, manager_headers):
    response = client.put(
        "/api/department-features/10",
        headers=manager_headers,
        json={"use_goal_weight_quarterly": True},
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_rejection_and_resolution(client, manager_headers, employee_headers, hr_headers, acknowledged_kpi):
    review = _initiate(client, manager_headers, acknowledged_kpi).json()
    url = f"/api/kpi-review/{review['id']}"

    no_note = client.post(
        f"{url}/employee-confirmation",
        headers=employee_headers,
        json={"action": "reject", "signature": SIGNATURE, "rejection_note": "   "},
    )
    assert no_note.status_code == status.HTTP_400_BAD_REQUEST

    rejected = client.post(
        f"{url}/employee-confirmation",
        headers=employee_headers,
        json={"action": "reject", "signature": SIGNATURE, "rejection_note": "Docs item was out of scope"},
    )
    assert rejected.status_code == 200
    assert rejected.json()["review_status"] == "rejected"
    assert rejected.json()["rejection_note"] == "Docs item was out of scope"

    by_manager = client.post(f"{url}/resolve-rejection", headers=manager_headers, json={"note": "ok"})
    assert by_manager.status_code == status.HTTP_403_FORBIDDEN

    resolved = client.post(f"{url}/resolve-rejection", headers=hr_headers, json={"note": "Discussed with both"})
    assert resolved.status_code == 200
    body = resolved.json()
    assert body["rejection_resolved_status"] == "resolved"
    assert body["review_status"] == "rejected"
    assert body["read_only"] is True

    again = client.post(f"{url}/resolve-rejection", headers=hr_headers, json={})
    assert again.status_code == status.HTTP_400_BAD_REQUEST


def test_outsiders_cannot_read_review(client, manager_headers, actor_headers, acknowledged_kpi):
    review = _initiate(client, manager_headers, acknowledged_kpi).json()
    response = client.get(f"/api/kpi-review/{review['id']}", headers=actor_headers("employee", 8))
    assert response.status_code == status.HTTP_403_FORBIDDEN

    hr = client.get(f"/api/kpi-review/{review['id']}", headers=actor_headers("hr", 2))
    assert hr.status_code == 200
    assert hr.json()["allowed_actions"] == []


def test_goal_weight_calculation(client, manager_headers, employee_headers, hr_headers, kpi_payload):
    """Weighted departments score by goal weight."""
    client.put("/api/department-features/10", headers=hr_headers, json={"use_goal_weight_quarterly": True})
    payload = kpi_payload()
    for item, weight in zip(payload["items"], ["50%", "25%", "25%"]):
        item["goal_weight"] = weight
    kpi = client.post("/api/kpis", headers=manager_headers, json=payload).json()
    client.post(f"/api/kpis/{kpi['id']}/acknowledge", headers=employee_headers, json={"employee_signature": SIGNATURE})

    response = _initiate(client, manager_headers, kpi, ratings=(1.5, 1.0, 1.0))
    assert response.status_code == 200, response.text
    review = response.json()
    assert review["calculation_method"] == "Goal Weight Calculation"
    # 1.5 * 0.5 + 1.0 * 0.25 + 1.0 * 0.25
    assert review["manager_final_rating"] == 1.25
    assert review["calculation"]["method"] == "Goal Weight Calculation"


def test_qualitative_label_kept_in_legacy_comment(client, manager_headers, employee_headers, kpi_payload):
    payload = kpi_payload()
    payload["items"].append({"title": "Teamwork", "description": "Works across teams", "is_qualitative": True})
    kpi = client.post("/api/kpis", headers=manager_headers, json=payload).json()
    client.post(f"/api/kpis/{kpi['id']}/acknowledge", headers=employee_headers, json={"employee_signature": SIGNATURE})
    teamwork = kpi["items"][3]
    assert teamwork["is_qualitative"] is True

    response = _initiate(
        client, manager_headers, kpi,
        qualitative_ratings=[{"item_id": teamwork["id"], "rating": "meets", "comment": "Helpful"}],
    )
    assert response.status_code == 200, response.text

    blob = json.loads(response.json()["manager_comment"])
    entry = next(e for e in blob["items"] if e["item_id"] == teamwork["id"])
    assert entry == {"item_id": teamwork["id"], "comment": "Helpful", "qualitative_rating": "meets"}
