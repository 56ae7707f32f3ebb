"""HTTP tests for the submission API"""
import inspect

import pytest
from fastapi.testclient import TestClient

from docuflow.api.deps import get_submission_service_dep
from docuflow.main import create_app
from docuflow.utils.jwt import create_access_token


def _auth(actor):
    token = create_access_token(
        actor.user_id, actor.role, department=actor.department, display_name=actor.display_name
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(service):
    app = create_app()
    app.dependency_overrides[get_submission_service_dep] = lambda: service
    # Not used as a context manager: the lifespan (indexes, dispatcher) stays off
    return TestClient(app)


def _create(client, actor, **body):
    payload = {"template_id": "TPL-7", "title": "Daily machine check"}
    payload.update(body)
    response = client.post("/api/v1/submissions/", json=payload, headers=_auth(actor))
    assert response.status_code == 201, response.text
    return response.json()["submission"]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["storage"]["backend"] == "memory"


def test_full_workflow_over_http(client, operator, supervisor, auditor):
    submission_id = _create(client, operator)["submission_id"]

    steps = [
        ("submit", operator, "Submitted"),
        ("start-verification", supervisor, "Under Verification"),
        ("complete-verification", supervisor, "Verified"),
        ("approve", auditor, "Approved"),
    ]
    for path, actor, expected in steps:
        response = client.post(f"/api/v1/submissions/{submission_id}/{path}", headers=_auth(actor))
        assert response.status_code == 200, response.text
        assert response.json()["to_status"] == expected
        assert response.json()["workflow_history"][-1]["status_after"] == expected

    history = client.get(f"/api/v1/submissions/{submission_id}/history", headers=_auth(auditor)).json()
    assert history["status"] == "Approved"
    assert [s["action"] for s in history["steps"]] == [
        "submit", "start_verification", "complete_verification", "approve"
    ]

    audit = client.get(f"/api/v1/submissions/{submission_id}/audit", headers=_auth(auditor)).json()
    assert audit[0]["action"] == "approve_form"
    assert len(audit) == 5


def test_missing_token_is_401(client):
    response = client.get("/api/v1/submissions/")
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTHENTICATION_ERROR"
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_bad_token_is_401(client):
    response = client.get("/api/v1/submissions/", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


def test_wrong_role_is_403(client, operator, auditor):
    submission_id = _create(client, operator)["submission_id"]
    client.post(f"/api/v1/submissions/{submission_id}/submit", headers=_auth(operator))

    response = client.post(
        f"/api/v1/submissions/{submission_id}/start-verification", headers=_auth(auditor)
    )
    assert response.status_code == 403
    body = response.json()["error"]
    assert body["code"] == "UNAUTHORIZED"
    assert body["retryable"] is False


def test_invalid_transition_is_409(client, operator, auditor):
    submission_id = _create(client, operator)["submission_id"]

    response = client.post(f"/api/v1/submissions/{submission_id}/approve", headers=_auth(auditor))
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "INVALID_TRANSITION"


def test_reject_requires_comment(client, operator, supervisor):
    submission_id = _create(client, operator)["submission_id"]
    client.post(f"/api/v1/submissions/{submission_id}/submit", headers=_auth(operator))
    client.post(f"/api/v1/submissions/{submission_id}/start-verification", headers=_auth(supervisor))

    missing = client.post(f"/api/v1/submissions/{submission_id}/reject", headers=_auth(supervisor))
    assert missing.status_code == 400

    blank = client.post(
        f"/api/v1/submissions/{submission_id}/reject", json={"comment": "  "}, headers=_auth(supervisor)
    )
    assert blank.status_code == 400
    assert blank.json()["error"]["code"] == "VALIDATION_ERROR"

    ok = client.post(
        f"/api/v1/submissions/{submission_id}/reject",
        json={"comment": "Readings missing"},
        headers=_auth(supervisor)
    )
    assert ok.status_code == 200
    assert ok.json()["step"]["comment"] == "Readings missing"


def test_unknown_submission_is_404(client, operator):
    response = client.get("/api/v1/submissions/SUB-missing", headers=_auth(operator))
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "SUBMISSION_NOT_FOUND"


def test_correlation_id_is_echoed(client, operator):
    response = client.get(
        "/api/v1/submissions/", headers={**_auth(operator), "X-Correlation-Id": "COR-from-client"}
    )
    assert response.headers["X-Correlation-Id"] == "COR-from-client"


def test_get_includes_available_actions(client, operator, supervisor):
    submission_id = _create(client, operator)["submission_id"]

    mine = client.get(f"/api/v1/submissions/{submission_id}", headers=_auth(operator)).json()
    assert mine["available_actions"] == ["submit"]

    theirs = client.get(f"/api/v1/submissions/{submission_id}", headers=_auth(supervisor)).json()
    assert theirs["available_actions"] == []


def test_edit_draft(client, operator):
    submission_id = _create(client, operator)["submission_id"]

    response = client.patch(
        f"/api/v1/submissions/{submission_id}",
        json={"title": "Renamed", "expected_version": 1},
        headers=_auth(operator)
    )
    assert response.status_code == 200
    assert response.json()["submission"]["title"] == "Renamed"
    assert response.json()["submission"]["version"] == 2

    stale = client.patch(
        f"/api/v1/submissions/{submission_id}",
        json={"title": "Again", "expected_version": 1},
        headers=_auth(operator)
    )
    assert stale.status_code == 409
    assert stale.json()["error"]["retryable"] is True


def test_pending_and_list(client, operator, supervisor):
    submission_id = _create(client, operator)["submission_id"]
    _create(client, operator, title="Second")
    client.post(f"/api/v1/submissions/{submission_id}/submit", headers=_auth(operator))

    pending = client.get("/api/v1/submissions/pending", headers=_auth(supervisor)).json()
    assert [s["submission_id"] for s in pending["items"]] == [submission_id]

    listed = client.get(
        "/api/v1/submissions/", params={"statuses": "Draft"}, headers=_auth(supervisor)
    ).json()
    assert listed["total"] == 1

    bad = client.get("/api/v1/submissions/", params={"statuses": "Lost"}, headers=_auth(supervisor))
    assert bad.status_code == 400


def test_clone_rejected(client, operator, supervisor):
    submission_id = _create(client, operator, field_data={"torque": 40})["submission_id"]
    client.post(f"/api/v1/submissions/{submission_id}/submit", headers=_auth(operator))
    client.post(f"/api/v1/submissions/{submission_id}/start-verification", headers=_auth(supervisor))
    client.post(
        f"/api/v1/submissions/{submission_id}/reject", json={"comment": "Redo"}, headers=_auth(supervisor)
    )

    response = client.post(f"/api/v1/submissions/{submission_id}/clone", headers=_auth(operator))
    assert response.status_code == 201
    clone = response.json()["submission"]
    assert clone["status"] == "Draft"
    assert clone["cloned_from"] == submission_id
    assert clone["field_data"] == {"torque": 40}


def test_transition_response_carries_history(client, operator, supervisor):
    submission_id = _create(client, operator)["submission_id"]
    client.post(f"/api/v1/submissions/{submission_id}/submit", headers=_auth(operator))

    body = client.post(
        f"/api/v1/submissions/{submission_id}/start-verification",
        json={"comment": "Picking up"},
        headers=_auth(supervisor)
    ).json()

    assert [s["action"] for s in body["workflow_history"]] == ["submit", "start_verification"]
    assert body["workflow_history"][-1] == body["step"]


def test_collection_routes_registered_with_trailing_slash():
    paths = {route.path for route in create_app().routes}
    assert "/api/v1/submissions/" in paths
    assert "/api/v1/submissions/pending" in paths


def test_action_routes_run_in_threadpool():
    # Conflict retries sleep, so action handlers must not be coroutines
    from docuflow.api.routes.submissions import actions

    for handler in (
        actions.submit, actions.start_verification, actions.complete_verification,
        actions.approve, actions.reject
    ):
        assert not inspect.iscoroutinefunction(handler)


def test_admin_filters_list_by_department(client, operator, other_supervisor, admin, supervisor):
    _create(client, operator, title="QC check")
    _create(client, other_supervisor, title="Paint check")

    paint = client.get(
        "/api/v1/submissions/", params={"department": "Paint"}, headers=_auth(admin)
    ).json()
    assert [s["title"] for s in paint["items"]] == ["Paint check"]

    ignored = client.get(
        "/api/v1/submissions/", params={"department": "Paint"}, headers=_auth(supervisor)
    ).json()
    assert [s["title"] for s in ignored["items"]] == ["QC check"]


def test_list_date_filters(client, operator, supervisor):
    submission_id = _create(client, operator)["submission_id"]
    _create(client, operator, title="Still a draft")
    client.post(f"/api/v1/submissions/{submission_id}/submit", headers=_auth(operator))

    recent = client.get(
        "/api/v1/submissions/", params={"date_from": "2000-01-01"}, headers=_auth(supervisor)
    ).json()
    assert [s["submission_id"] for s in recent["items"]] == [submission_id]

    old = client.get(
        "/api/v1/submissions/", params={"date_to": "2000-01-01T00:00:00Z"}, headers=_auth(supervisor)
    ).json()
    assert old["total"] == 0

    bad = client.get(
        "/api/v1/submissions/", params={"date_from": "last tuesday"}, headers=_auth(supervisor)
    )
    assert bad.status_code == 400
    assert bad.json()["error"]["code"] == "VALIDATION_ERROR"
