from fastapi import status

from app.models.kpi import KPI


def _create_kpi(client, manager_headers, payload):
    response = client.post("/api/kpis", headers=manager_headers, json=payload)
    assert response.status_code == status.HTTP_201_CREATED, response.text
    return response.json()


def test_manager_sets_kpi(client, manager_headers, kpi_payload, db_session):
    """Test creating a KPI as the manager."""
    data = _create_kpi(client, manager_headers, kpi_payload())
    assert data["status"] == "pending"
    assert data["manager_id"] == 100
    assert [item["title"] for item in data["items"]] == ["Close tickets", "Write docs", "Mentor"]
    assert db_session.get(KPI, data["id"]).manager_signed_at is not None


def test_missing_actor_headers(client, kpi_payload):
    """Requests without forwarded identity are rejected."""
    response = client.post("/api/kpis", json=kpi_payload())
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["success"] is False


def test_unknown_role_is_rejected(client, actor_headers):
    response = client.get("/api/kpis", headers=actor_headers("ceo", 3))
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_employee_cannot_set_kpi(client, employee_headers, kpi_payload):
    response = client.post("/api/kpis", headers=employee_headers, json=kpi_payload())
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["errors"][0]["code"] == "PERMISSION_DENIED"


def test_too_few_items(client, manager_headers, kpi_payload):
    payload = kpi_payload()
    payload["items"] = payload["items"][:2]
    response = client.post("/api/kpis", headers=manager_headers, json=payload)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "at least 3" in response.json()["errors"][0]["msg"]


def test_partial_goal_weights_rejected(client, manager_headers, kpi_payload):
    payload = kpi_payload()
    payload["items"][0]["goal_weight"] = "50"
    payload["items"][1]["goal_weight"] = "50"
    response = client.post("/api/kpis", headers=manager_headers, json=payload)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["errors"][0]["code"] == "VALIDATION_ERROR"


def test_goal_weights_must_total_100(client, manager_headers, kpi_payload):
    payload = kpi_payload()
    for item, weight in zip(payload["items"], ["30%", "30%", "30%"]):
        item["goal_weight"] = weight
    response = client.post("/api/kpis", headers=manager_headers, json=payload)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "90.00%" in response.json()["errors"][0]["msg"]


def test_employee_acknowledges(client, manager_headers, employee_headers, kpi_payload):
    kpi = _create_kpi(client, manager_headers, kpi_payload())
    response = client.post(
        f"/api/kpis/{kpi['id']}/acknowledge",
        headers=employee_headers,
        json={"employee_signature": "data:image/png;base64,employee"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "acknowledged"

    again = client.post(
        f"/api/kpis/{kpi['id']}/acknowledge",
        headers=employee_headers,
        json={"employee_signature": "data:image/png;base64,employee"},
    )
    assert again.status_code == status.HTTP_403_FORBIDDEN


def test_other_employee_cannot_see_kpi(client, manager_headers, actor_headers, kpi_payload):
    kpi = _create_kpi(client, manager_headers, kpi_payload())
    response = client.get(f"/api/kpis/{kpi['id']}", headers=actor_headers("employee", 8))
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_unknown_kpi(client, hr_headers):
    response = client.get("/api/kpis/999999", headers=hr_headers)
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_list_is_scoped_to_caller(client, manager_headers, employee_headers, actor_headers, kpi_payload):
    _create_kpi(client, manager_headers, kpi_payload())
    _create_kpi(client, manager_headers, kpi_payload(employee_id=8))

    own = client.get("/api/kpis", headers=employee_headers).json()
    assert {k["employee_id"] for k in own} == {7}

    managed = client.get("/api/kpis", headers=manager_headers).json()
    assert len(managed) >= 2

    other_manager = client.get("/api/kpis", headers=actor_headers("manager", 555)).json()
    assert other_manager == []


def test_malformed_payload_names_the_field(client, manager_headers, kpi_payload):
    payload = kpi_payload()
    del payload["manager_signature"]
    payload["items"][1]["is_qualitative"] = "sometimes"
    response = client.post("/api/kpis", headers=manager_headers, json=payload)
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    fields = {e["field"] for e in response.json()["errors"]}
    assert "manager_signature" in fields
    assert "items.1.is_qualitative" in fields
