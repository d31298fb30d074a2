"""Tests for the flow catalog and module endpoints."""

from approvalflow.db.models import ApprovalFlow, Module

from tests.factories import create_flow

ADMIN = {"X-Actor-Id": "root"}


def flow_id(db_session, name):
    return db_session.query(ApprovalFlow.id).filter(ApprovalFlow.name == name).scalar()


class TestFlowEndpoints:
    """Test /api/flows."""

    def test_list_flows_for_module(self, client, travel_module, finance_module):
        response = client.get("/api/flows", params={"module_id": travel_module.id})

        assert response.status_code == 200
        flows = response.json()
        assert [f["name"] for f in flows] == ["Travel-High", "Travel-Default"]
        assert flows[0]["rules"] == [{"field": "amount", "operator": ">", "value": "5000", "order": 0}]
        assert [s["approver_type"] for s in flows[0]["steps"]] == [
            "immediate_superior", "department_head", "role",
        ]

    def test_get_flow(self, client, travel_module, db_session):
        response = client.get(f"/api/flows/{flow_id(db_session, 'Travel-Default')}")
        assert response.status_code == 200
        assert response.json()["is_default"] is True

    def test_unknown_flow(self, client):
        response = client.get("/api/flows/4040")
        assert response.status_code == 404
        assert response.json()["error"] == "flow_definition_not_found"

    def test_validation_of_healthy_flow(self, client, travel_module, db_session):
        response = client.get(f"/api/flows/{flow_id(db_session, 'Travel-High')}/validation")
        assert response.json()["valid"] is True
        assert response.json()["issues"] == []

    def test_validation_reports_issues(self, client, travel_module, db_session):
        flow = create_flow(
            db_session,
            module=travel_module,
            name="Broken",
            rules=[("amount", ">", "lots")],
            steps=[{"step_order": 2, "approver_type": "role"}],
        )
        db_session.commit()

        body = client.get(f"/api/flows/{flow.id}/validation").json()

        assert body["valid"] is False
        assert len(body["issues"]) == 3

    def test_resolve_preview_rule_match(self, client, travel_module):
        response = client.post(
            "/api/flows/resolve",
            json={"module_id": travel_module.id, "data": {"amount": 6000}},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["flow_name"] == "Travel-High"
        assert body["used_default"] is False
        assert len(body["steps"]) == 3
        assert body["candidates"][0]["matched"] is True
        assert body["candidates"][0]["rules"][0]["matched"] is True

    def test_resolve_preview_default(self, client, travel_module):
        body = client.post(
            "/api/flows/resolve",
            json={"module_id": travel_module.id, "data": {"amount": 10}},
        ).json()

        assert body["flow_name"] == "Travel-Default"
        assert body["used_default"] is True
        assert body["candidates"][0]["matched"] is False

    def test_resolve_preview_inactive_module(self, client, travel_module):
        client.patch(f"/api/modules/{travel_module.id}/active", json={"is_active": False}, headers=ADMIN)
        response = client.post("/api/flows/resolve", json={"module_id": travel_module.id, "data": {}})
        assert response.status_code == 404

    def test_deactivate_flow(self, client, travel_module, db_session):
        high = flow_id(db_session, "Travel-High")

        response = client.patch(f"/api/flows/{high}/active", json={"is_active": False}, headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        body = client.post(
            "/api/flows/resolve",
            json={"module_id": travel_module.id, "data": {"amount": 6000}},
        ).json()
        assert body["flow_name"] == "Travel-Default"

    def test_activating_second_default_is_refused(self, client, travel_module, db_session):
        other = create_flow(db_session, module=travel_module, name="Other-Default", is_default=True, is_active=False)
        db_session.commit()

        response = client.patch(f"/api/flows/{other.id}/active", json={"is_active": True}, headers=ADMIN)

        assert response.status_code == 422
        assert response.json()["error"] == "invalid_flow_configuration"


class TestModuleEndpoints:
    """Test /api/modules."""

    def test_list_modules(self, client, travel_module, finance_module):
        response = client.get("/api/modules")
        assert [m["name"] for m in response.json()] == ["Travel Request", "Expense Claim"]

    def test_deactivated_module_refuses_submissions(self, client, travel_module):
        response = client.patch(f"/api/modules/{travel_module.id}/active", json={"is_active": False}, headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        response = client.post(
            "/api/approvals",
            json={"module_id": travel_module.id, "request_id": "REQ-HIGH"},
            headers={"X-Actor-Id": "alice"},
        )
        assert response.status_code == 404

    def test_unknown_module(self, client):
        response = client.patch("/api/modules/404/active", json={"is_active": True}, headers=ADMIN)
        assert response.status_code == 404


class TestCatalogToggleAccess:
    """Only administrators may toggle modules and flows."""

    def test_flow_toggle_requires_actor(self, client, travel_module, db_session):
        high = flow_id(db_session, "Travel-High")

        response = client.patch(f"/api/flows/{high}/active", json={"is_active": False})

        assert response.status_code == 401
        db_session.expire_all()
        assert db_session.get(ApprovalFlow, high).is_active is True

    def test_flow_toggle_refused_for_non_administrator(self, client, travel_module, db_session):
        high = flow_id(db_session, "Travel-High")

        response = client.patch(
            f"/api/flows/{high}/active", json={"is_active": False}, headers={"X-Actor-Id": "alice"}
        )

        assert response.status_code == 403
        assert response.json()["error"] == "unauthorized"
        db_session.expire_all()
        assert db_session.get(ApprovalFlow, high).is_active is True

    def test_module_toggle_refused_for_non_administrator(self, client, travel_module, db_session):
        response = client.patch(
            f"/api/modules/{travel_module.id}/active", json={"is_active": False}, headers={"X-Actor-Id": "alice"}
        )

        assert response.status_code == 403
        db_session.expire_all()
        assert db_session.get(Module, travel_module.id).is_active is True

    def test_module_toggle_refused_for_inactive_administrator(self, client, travel_module, directory):
        directory.update_user("root", active=False)

        response = client.patch(f"/api/modules/{travel_module.id}/active", json={"is_active": False}, headers=ADMIN)

        assert response.status_code == 403

    def test_module_toggle_requires_actor(self, client, travel_module):
        response = client.patch(f"/api/modules/{travel_module.id}/active", json={"is_active": False})
        assert response.status_code == 401
