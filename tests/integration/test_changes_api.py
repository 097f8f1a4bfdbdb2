"""HTTP tests for the change request endpoints."""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from changegov.api.deps import get_db
from changegov.api.main import app
from changegov.core.security import create_access_token


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth(user):
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


def create(client, project, user, **fields):
    body = {"project_id": str(project.id), "title": "Upgrade scanners", **fields}
    response = client.post("/api/changes", json=body, headers=auth(user))
    assert response.status_code == 201, response.text
    return response.json()["item"]


def to_analysis(client, item, user):
    response = client.post(
        f"/api/changes/{item['id']}/delivery-status",
        json={"delivery_status": "analysis"},
        headers=auth(user),
    )
    assert response.status_code == 200, response.text
    return response.json()["item"]


class TestAuthentication:

    def test_missing_token(self, client, project):
        response = client.post("/api/changes", json={"project_id": str(project.id), "title": "x"})
        assert response.status_code == 401

    def test_expired_token(self, client, project, editor):
        token = create_access_token(editor.id, expires_delta=timedelta(seconds=-5))
        response = client.post(
            "/api/changes",
            json={"project_id": str(project.id), "title": "x"},
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 401


class TestChangeLifecycle:

    def test_create_and_get(self, client, project, editor, viewer):
        item = create(client, project, editor, impact_analysis={"cost": 1500})
        assert item["decision_status"] == "draft"
        assert item["delivery_status"] == "intake"

        response = client.get(f"/api/changes/{item['id']}", headers=auth(viewer))
        assert response.status_code == 200
        body = response.json()["item"]
        assert body["amount"] == 1500
        assert body["approval"] is None

    def test_submit_and_approve(self, client, project, editor, approver, standard_rules):
        item = to_analysis(client, create(client, project, editor, estimated_cost=7500), editor)

        response = client.post(
            f"/api/changes/{item['id']}/submit",
            json={"expected_version": item["updated_at"]},
            headers=auth(editor),
        )
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["approval_chain_id"] == body["item"]["approval_chain_id"]
        assert body["amount"] == 7500
        assert body["artifact_type"] == "change"
        assert body["already_submitted"] is False
        assert body["warnings"] == []

        response = client.post(
            f"/api/changes/{item['id']}/decision",
            json={"decision": "approved", "rationale": "Budgeted in Q3"},
            headers=auth(approver),
        )
        assert response.status_code == 200, response.text
        assert response.json()["item"]["delivery_status"] == "in_progress"

        events = client.get(f"/api/changes/{item['id']}/events", headers=auth(editor)).json()
        assert events["total"] == 4
        assert events["items"][-1]["to_status"] == "in_progress"

    def test_repeat_submit(self, client, project, editor, standard_rules):
        item = to_analysis(client, create(client, project, editor), editor)
        first = client.post(f"/api/changes/{item['id']}/submit", headers=auth(editor)).json()
        second = client.post(f"/api/changes/{item['id']}/submit", headers=auth(editor)).json()

        assert second["already_submitted"] is True
        assert second["approval_chain_id"] == first["approval_chain_id"]

    def test_request_changes_without_body(self, client, project, editor, owner, standard_rules):
        item = to_analysis(client, create(client, project, editor), editor)
        client.post(f"/api/changes/{item['id']}/submit", headers=auth(editor))

        response = client.post(f"/api/changes/{item['id']}/request-changes", headers=auth(owner))
        assert response.status_code == 200, response.text
        assert response.json()["item"]["decision_status"] == "rework"

    def test_preview(self, client, project, editor, approver, sponsor, standard_rules):
        item = create(client, project, editor, impact_analysis={"cost": 6000})
        response = client.get(f"/api/changes/{item['id']}/approval-preview", headers=auth(editor))

        assert response.status_code == 200
        steps = response.json()["steps"]
        assert [s["name"] for s in steps] == ["Finance Review", "Sponsor Sign-off"]
        assert steps[1]["approvers"] == [str(sponsor.id)]

    def test_delete(self, client, project, editor):
        item = create(client, project, editor)
        response = client.delete(
            f"/api/changes/{item['id']}",
            params={"expected_version": item["updated_at"]},
            headers=auth(editor),
        )
        assert response.status_code == 200
        assert client.get(f"/api/changes/{item['id']}", headers=auth(editor)).status_code == 404


class TestErrorMapping:

    def test_invalid_input(self, client, project, editor):
        item = create(client, project, editor)
        response = client.patch(
            f"/api/changes/{item['id']}",
            json={"color": "blue"},
            headers=auth(editor),
        )
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Bad Request"
        assert body["code"] == "invalid_input"
        assert body["fields"] == ["color"]

    def test_forbidden(self, client, project, editor, viewer):
        item = create(client, project, editor)
        response = client.patch(f"/api/changes/{item['id']}", json={"title": "Mine now"}, headers=auth(viewer))
        assert response.status_code == 403
        assert response.json()["required_permission"] == "changes:edit"

    def test_not_found(self, client, editor):
        response = client.get("/api/changes/00000000-0000-0000-0000-000000000000", headers=auth(editor))
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    def test_governance_conflict(self, client, project, editor):
        item = create(client, project, editor)
        response = client.patch(
            f"/api/changes/{item['id']}",
            json={"title": "x", "decision_status": "approved"},
            headers=auth(editor),
        )
        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "governance_conflict"
        assert body["decision_status"] == "draft"
        assert body["delivery_status"] == "intake"

    def test_lane_move_with_decision_field(self, client, project, editor):
        item = create(client, project, editor)
        response = client.post(
            f"/api/changes/{item['id']}/delivery-status",
            json={"delivery_status": "analysis", "decision_status": "approved"},
            headers=auth(editor),
        )
        assert response.status_code == 409
        assert response.json()["fields"] == ["decision_status"]

    def test_version_conflict(self, client, project, editor):
        item = create(client, project, editor)
        stale = item["updated_at"]
        client.patch(f"/api/changes/{item['id']}", json={"title": "One", "expected_version": stale}, headers=auth(editor))

        response = client.patch(
            f"/api/changes/{item['id']}",
            json={"title": "Two", "expected_version": stale},
            headers=auth(editor),
        )
        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "version_conflict"
        assert body["expected_version"] == stale
        assert body["current_version"] > stale

    def test_configuration_error(self, client, project, editor):
        item = to_analysis(client, create(client, project, editor), editor)
        response = client.post(f"/api/changes/{item['id']}/submit", headers=auth(editor))

        assert response.status_code == 422
        assert response.json()["code"] == "approval_configuration"
        assert client.get(f"/api/changes/{item['id']}", headers=auth(editor)).json()["item"]["decision_status"] == "draft"

    def test_decision_requires_rationale(self, client, project, editor, approver, standard_rules):
        item = to_analysis(client, create(client, project, editor), editor)
        client.post(f"/api/changes/{item['id']}/submit", headers=auth(editor))

        response = client.post(
            f"/api/changes/{item['id']}/decision",
            json={"decision": "approved"},
            headers=auth(approver),
        )
        assert response.status_code == 400


class TestHealth:

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"
        assert client.get("/health/live").json()["status"] == "alive"

    def test_ready(self, client):
        response = client.get("/health/ready")
        assert response.status_code == 200
        assert response.json()["checks"]["database"]["status"] == "healthy"
