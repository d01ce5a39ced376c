"""HTTP surface of the workflow service."""

import pytest
from fastapi.testclient import TestClient

from services.workflow_service.config import settings
from services.workflow_service.main import app


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(settings, "events_enabled", False)
    monkeypatch.setattr(settings, "storage_backend", "memory")
    with TestClient(app) as test_client:
        yield test_client


def start_budget(client, initiated_by="alice"):
    response = client.post("/executions/", json={
        "template_id": "budget-approval",
        "session_id": "board-42",
        "initiated_by": initiated_by,
        "context": {"amount": 250000},
        "documents": ["q3-forecast.pdf"],
    })
    assert response.status_code == 201
    return response.json()


def test_root_and_health(client):
    assert client.get("/").json()["service"] == "workflow-service"

    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["components"]["storage"]["backend"] == "memory"
    assert health["active_executions"] == 0


def test_builtin_templates_are_listed(client):
    response = client.get("/templates/")

    assert response.status_code == 200
    assert len(response.json()) == 7
    assert client.get("/templates/hiring-decision").json()["name"] == "Hiring Decision Workflow"
    assert client.get("/templates/nope").status_code == 404


def test_builtin_templates_cannot_be_replaced_or_deleted(client):
    response = client.delete("/templates/budget-approval")
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "TEMPLATE_PROTECTED"

    replacement = dict(client.get("/templates/budget-approval").json(), name="Hijacked")
    assert client.post("/templates/", json=replacement).status_code == 409

    assert client.get("/templates/budget-approval").json()["name"] == "Budget Approval Workflow"
    start_budget(client)


def test_custom_templates_can_be_created_and_deleted(client):
    template = {
        "id": "quick-notice",
        "name": "Quick Notice",
        "steps": [{"id": "notify", "type": "escalation", "name": "Notify"}],
        "start_step_id": "notify",
    }

    assert client.post("/templates/", json=template).status_code == 201
    assert client.delete("/templates/quick-notice").status_code == 200
    assert client.get("/templates/quick-notice").status_code == 404


def test_cyclic_template_is_rejected(client):
    template = {
        "id": "loop",
        "name": "Loop",
        "steps": [
            {"id": "a", "type": "escalation", "name": "A", "next_steps": ["b"]},
            {"id": "b", "type": "escalation", "name": "B", "next_steps": ["a"]},
        ],
        "start_step_id": "a",
    }

    response = client.post("/templates/", json=template)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
    assert client.get("/templates/loop").status_code == 404


def test_start_stops_at_decision_point(client):
    execution = start_budget(client)

    assert execution["status"] == "in_progress"
    assert execution["current_step_id"] == "decision_point"
    assert execution["completed_steps"] == ["analyze_request"]
    assert execution["context"]["analyze_request_confidence"] == 0.85
    assert execution["step_history"][-1]["status"] == "pending"


def test_unknown_template_returns_error_body(client):
    response = client.post("/executions/", json={
        "template_id": "missing", "session_id": "s", "initiated_by": "alice"
    })

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


def test_validation_errors_are_400_with_details(client):
    response = client.post("/executions/", json={"template_id": "budget-approval"})

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    paths = {detail["path"] for detail in error["details"]}
    assert {"body.session_id", "body.initiated_by"} <= paths


def test_decision_then_approval_completes(client):
    execution_id = start_budget(client)["id"]

    response = client.post(f"/executions/{execution_id}/steps/decision_point/decision", json={
        "decided_by": "bob", "decision": "approve", "reasoning": "Within plan"
    })
    assert response.status_code == 200
    assert response.json()["current_step_id"] == "approval"

    response = client.post(f"/executions/{execution_id}/steps/approval/approval", json={
        "approver_user_id": "carol", "approver_role": "manager", "approval": "approve"
    })
    body = response.json()
    assert body["status"] == "completed"
    assert body["context"]["approval_approved"] is True
    assert set(body["participants"]) == {"alice", "bob", "carol"}

    stored = client.get(f"/executions/{execution_id}").json()
    assert stored["status"] == "completed"
    assert client.get("/health").json()["active_executions"] == 0


def test_invalid_decision_option(client):
    execution_id = start_budget(client)["id"]

    response = client.post(f"/executions/{execution_id}/steps/decision_point/decision", json={
        "decided_by": "bob", "decision": "maybe"
    })

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_SUBMISSION"


def test_approval_on_decision_step_conflicts(client):
    execution_id = start_budget(client)["id"]

    response = client.post(f"/executions/{execution_id}/steps/decision_point/approval", json={
        "approver_user_id": "carol", "approver_role": "manager", "approval": "approve"
    })

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "INVALID_STATE"


def test_resume_dispatches_by_step_type(client):
    execution_id = start_budget(client)["id"]

    response = client.post(f"/executions/{execution_id}/steps/decision_point/resume", json={
        "decided_by": "bob", "decision": "revise"
    })
    assert response.status_code == 200
    assert response.json()["context"]["decision_point_decision"] == "revise"

    response = client.post(f"/executions/{execution_id}/steps/approval/resume", json={"approver_role": "manager"})
    assert response.status_code == 400


def test_list_by_user_and_cancel(client):
    first = start_budget(client, "alice")["id"]
    start_budget(client, "dave")

    listed = client.get("/executions/", params={"user_id": "alice"}).json()
    assert [execution["id"] for execution in listed] == [first]

    response = client.post(f"/executions/{first}/cancel", params={"reason": "Board postponed"})
    assert response.json()["status"] == "cancelled"
    assert response.json()["error_message"] == "Board postponed"

    assert client.get(f"/executions/{first}").json()["status"] == "cancelled"
    assert client.post(f"/executions/{first}/cancel").status_code == 404


def test_unknown_execution_is_404(client):
    assert client.get("/executions/does-not-exist").status_code == 404
    assert client.post("/executions/does-not-exist/steps/approval").status_code == 404
