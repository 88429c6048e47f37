"""Tests for the KYC HTTP routes (in-memory store behind FastAPI's TestClient)."""

import pytest
from fastapi.testclient import TestClient

from kyc_core.api.deps import get_notifier, get_store
from kyc_core.core.auth import create_access_token
from kyc_core.core.config import get_settings
from kyc_core.main import app
from kyc_core.models.kyc import AuditAction, KycStatus
from tests.helpers import ADMIN_ID, EMPLOYER_ID, STUDENT_ID, RecordingNotifier, student_profile


def auth_headers(subject_id: str, role: str) -> dict:
    token = create_access_token({"sub": subject_id, "role": role})
    return {"Authorization": f"Bearer {token}"}


STUDENT = auth_headers(STUDENT_ID, "student")
EMPLOYER = auth_headers(EMPLOYER_ID, "employer")
ADMIN = auth_headers(ADMIN_ID, "admin")


@pytest.fixture
def client(store):
    notifier = RecordingNotifier()
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


def submit_student(client) -> dict:
    response = client.post(
        "/api/kyc/submit",
        json={"profile": student_profile().model_dump(mode="json")},
        headers=STUDENT,
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestSubjectRoutes:

    def test_submit_and_status(self, client) -> None:
        body = submit_student(client)
        assert body["kyc_status"] == "pending"
        assert body["is_verified"] is False
        assert body["audit_entry_id"]

        status = client.get("/api/kyc/status", headers=STUDENT).json()
        assert status["kyc_status"] == "pending"
        assert status["can_resubmit"] is False
        assert status["message"] == "Your KYC is under verification. Please wait."

    def test_double_submit_conflicts(self, client) -> None:
        submit_student(client)
        response = client.post(
            "/api/kyc/submit",
            json={"profile": student_profile().model_dump(mode="json")},
            headers=STUDENT,
        )
        assert response.status_code == 409
        assert response.json()["detail"] == "KYC already submitted and under review"
        assert response.json()["current_status"] == "pending"

    def test_malformed_profile_is_rejected_by_schema(self, client) -> None:
        response = client.post("/api/kyc/submit", json={"profile": {"kind": "student"}}, headers=STUDENT)
        assert response.status_code == 422

    def test_wrong_profile_kind(self, client) -> None:
        profile = {"kind": "corporate_employer", "company_name": "Acme Pvt Ltd"}
        response = client.post("/api/kyc/submit", json={"profile": profile}, headers=STUDENT)
        assert response.status_code == 400

    def test_requires_token(self, client) -> None:
        assert client.get("/api/kyc/status").status_code in (401, 403)
        bad = {"Authorization": "Bearer not-a-jwt"}
        assert client.get("/api/kyc/status", headers=bad).status_code == 401

    def test_withdraw(self, client) -> None:
        submit_student(client)
        response = client.delete("/api/kyc/submission", headers=STUDENT)
        assert response.status_code == 200
        assert response.json()["kyc_status"] == "not_submitted"

    def test_change_employer_type(self, client) -> None:
        response = client.put(
            "/api/kyc/employer-type", json={"employer_type": "corporate_employer"}, headers=EMPLOYER
        )
        assert response.status_code == 200
        status = client.get("/api/kyc/status", headers=EMPLOYER).json()
        assert status["subject_type"] == "corporate_employer"


class TestAdminRoutes:

    def test_students_are_not_admins(self, client) -> None:
        response = client.get("/api/admin/kyc/pending", headers=STUDENT)
        assert response.status_code == 403

    def test_review_flow(self, client, store) -> None:
        submit_student(client)

        pending = client.get("/api/admin/kyc/pending", headers=ADMIN).json()
        assert pending["count"] == 1
        assert pending["records"][0]["subject_id"] == STUDENT_ID

        response = client.patch(
            f"/api/admin/kyc/{STUDENT_ID}/approve",
            json={"reason": "Documents verified"},
            headers={**ADMIN, "User-Agent": "admin-console/2.1"},
        )
        assert response.status_code == 200
        assert response.json()["is_verified"] is True

        status = client.get("/api/kyc/status", headers=STUDENT).json()
        assert status["kyc_status"] == "approved"

        entry = store.find_audit(subject_id=STUDENT_ID, action=AuditAction.approved)[0]
        assert entry.actor_id == ADMIN_ID
        assert entry.user_agent == "admin-console/2.1"

    def test_reject_requires_reason(self, client) -> None:
        submit_student(client)
        response = client.patch(f"/api/admin/kyc/{STUDENT_ID}/reject", json={"reason": "   "}, headers=ADMIN)
        assert response.status_code == 400
        assert response.json()["detail"] == "Rejection reason is required"

    def test_reject_then_status_shows_reason(self, client) -> None:
        submit_student(client)
        response = client.patch(
            f"/api/admin/kyc/{STUDENT_ID}/reject", json={"reason": "Blurry ID card"}, headers=ADMIN
        )
        assert response.status_code == 200

        status = client.get("/api/kyc/status", headers=STUDENT).json()
        assert status["kyc_status"] == "rejected"
        assert status["rejection_reason"] == "Blurry ID card"
        assert status["can_resubmit"] is True

    def test_suspend_and_reactivate_without_body(self, client) -> None:
        submit_student(client)
        client.patch(f"/api/admin/kyc/{STUDENT_ID}/approve", headers=ADMIN)

        suspended = client.patch(f"/api/admin/kyc/{STUDENT_ID}/suspend", headers=ADMIN)
        assert suspended.status_code == 200
        assert suspended.json()["kyc_status"] == "suspended"

        reactivated = client.patch(f"/api/admin/kyc/{STUDENT_ID}/reactivate", headers=ADMIN)
        assert reactivated.json()["kyc_status"] == "pending"

    def test_illegal_edge_is_conflict(self, client) -> None:
        response = client.patch(f"/api/admin/kyc/{STUDENT_ID}/approve", headers=ADMIN)
        assert response.status_code == 409
        assert response.json()["error"] == "InvalidTransition"

    def test_unknown_subject(self, client) -> None:
        response = client.get("/api/admin/kyc/nobody/status", headers=ADMIN)
        assert response.status_code == 404

    def test_admin_status_includes_consistency(self, client, store) -> None:
        submit_student(client)
        account = store.get_account(STUDENT_ID)
        store.force_account(account.model_copy(update={"kyc_status": KycStatus.approved, "is_verified": True}))

        body = client.get(f"/api/admin/kyc/{STUDENT_ID}/status", headers=ADMIN).json()
        assert body["kyc_status"] == "pending"
        assert body["consistency"]["consistent"] is False
        assert body["record"]["subject_id"] == STUDENT_ID

    def test_audit_query(self, client) -> None:
        submit_student(client)
        client.patch(f"/api/admin/kyc/{STUDENT_ID}/reject", json={"reason": "Blurry"}, headers=ADMIN)

        body = client.get("/api/admin/kyc/audit", params={"subject_id": STUDENT_ID}, headers=ADMIN).json()
        assert body["count"] == 2
        assert [e["action"] for e in body["entries"]] == ["rejected", "submitted"]

        filtered = client.get("/api/admin/kyc/audit", params={"action": "rejected"}, headers=ADMIN).json()
        assert filtered["count"] == 1

    def test_reconcile(self, client, store) -> None:
        account = store.get_account(STUDENT_ID)
        store.force_account(account.model_copy(update={"is_verified": True}))

        body = client.post("/api/admin/kyc/reconcile", headers=ADMIN).json()
        assert body["success"] is True
        assert body["inconsistencies_repaired"] == 1
        assert body["audit_entry_id"]
        assert store.get_account(STUDENT_ID).is_verified is False

    def test_forwarded_for_from_untrusted_peer_is_ignored(self, client, store) -> None:
        submit_student(client)
        client.patch(
            f"/api/admin/kyc/{STUDENT_ID}/approve",
            headers={**ADMIN, "X-Forwarded-For": "203.0.113.7"},
        )

        entry = store.find_audit(subject_id=STUDENT_ID, action=AuditAction.approved)[0]
        assert entry.ip_address == "testclient"

    def test_forwarded_for_from_trusted_proxy_is_used(self, client, store, monkeypatch) -> None:
        proxied = get_settings().model_copy(update={"trusted_proxies": ["testclient"]})
        monkeypatch.setattr("kyc_core.core.auth.get_settings", lambda: proxied)
        submit_student(client)
        client.patch(
            f"/api/admin/kyc/{STUDENT_ID}/approve",
            headers={**ADMIN, "X-Forwarded-For": "203.0.113.7, 10.0.0.2"},
        )

        entry = store.find_audit(subject_id=STUDENT_ID, action=AuditAction.approved)[0]
        assert entry.ip_address == "203.0.113.7"


class TestHealth:

    def test_health_reports_mongo(self, client, monkeypatch) -> None:
        monkeypatch.setattr("kyc_core.main.test_mongo_connection", lambda: False)
        body = client.get("/health").json()
        assert body["mongodb"] == "disconnected"
