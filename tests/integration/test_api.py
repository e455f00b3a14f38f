"""End-to-end tests of the approval HTTP API."""

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from coopflow.api.deps import get_session_factory
from coopflow.api.main import app
from coopflow.core.security import create_access_token
from coopflow.db.seed import create_user, upsert_member_account

pytestmark = pytest.mark.integration


@pytest.fixture
def client(session_factory, seeded_roles):
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth(session_factory, seeded_roles):
    """Bearer headers for a fresh user with the given role."""
    def _headers(role_name: str, member_id: str = None) -> dict:
        with session_factory.begin() as db:
            n = uuid4().hex[:8]
            user = create_user(
                db,
                f"{role_name.lower()}-{n}@example.com",
                f"{role_name.title()} {n}",
                role_name,
                member_id=member_id,
            )
            user_id = user.id
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}
    return _headers


@pytest.fixture
def account(session_factory):
    """Member balances on record."""
    def _account(member_id: str, **figures) -> None:
        with session_factory.begin() as db:
            upsert_member_account(db, member_id, **figures)
    return _account


@pytest.fixture
def member(auth, account):
    """Headers for member M-001 with a willing deposit balance of 10000."""
    account("M-001", willing_deposit_balance="10000.00")
    return auth("MEMBER", member_id="M-001")


def submit_withdrawal(client, headers, amount="1500.00"):
    response = client.post(
        "/api/requests",
        json={"kind": "WITHDRAWAL", "amount": amount, "metadata": {"reason": "rent"}},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["id"]


class TestAuthentication:

    def test_missing_token(self, client):
        assert client.get("/api/requests/pending").status_code == 401

    def test_invalid_token(self, client):
        response = client.get("/api/requests/pending", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"


class TestWithdrawalFlow:

    def test_full_chain(self, client, auth, member):
        request_id = submit_withdrawal(client, member)

        for role in ["ACCOUNTANT", "SUPERVISOR", "MANAGER", "ACCOUNTANT"]:
            headers = auth(role)
            stage = client.get(f"/api/requests/{request_id}/stage", headers=headers).json()
            assert stage["role"] == role

            response = client.post(f"/api/requests/{request_id}/approve", json={}, headers=headers)
            assert response.status_code == 200, response.text

        body = client.get(f"/api/requests/{request_id}", headers=auth("MANAGER")).json()
        assert body["status"] == "DISBURSED"
        assert body["amount"] == "1500.00"

        history = client.get(f"/api/requests/{request_id}/history", headers=auth("MANAGER")).json()
        assert [h["stage_role"] for h in history] == ["ACCOUNTANT", "SUPERVISOR", "MANAGER", "ACCOUNTANT"]

        stage = client.get(f"/api/requests/{request_id}/stage", headers=auth("MANAGER")).json()
        assert stage == {"status": "DISBURSED", "role": None, "ordinal": None, "is_terminal": True}

    def test_wrong_role_forbidden(self, client, auth, member):
        request_id = submit_withdrawal(client, member)

        response = client.post(f"/api/requests/{request_id}/approve", json={}, headers=auth("MANAGER"))
        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "unauthorized"

    def test_reject_without_remarks(self, client, auth, member):
        request_id = submit_withdrawal(client, member)

        response = client.post(f"/api/requests/{request_id}/reject", json={}, headers=auth("ACCOUNTANT"))
        assert response.status_code == 422
        assert response.json()["detail"]["field"] == "remarks"

    def test_terminal_conflict(self, client, auth, member):
        request_id = submit_withdrawal(client, member)
        client.post(
            f"/api/requests/{request_id}/reject",
            json={"remarks": "account frozen"},
            headers=auth("ACCOUNTANT"),
        )

        response = client.post(f"/api/requests/{request_id}/approve", json={}, headers=auth("ACCOUNTANT"))
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "terminal_state"

    def test_unknown_request(self, client, auth):
        response = client.get(
            "/api/requests/00000000-0000-0000-0000-000000000000/history",
            headers=auth("ACCOUNTANT"),
        )
        assert response.status_code == 404

    def test_invalid_amount(self, client, member):
        response = client.post(
            "/api/requests",
            json={"kind": "WITHDRAWAL", "amount": "-10"},
            headers=member,
        )
        assert response.status_code == 422

    def test_staff_without_create_grant(self, client, auth):
        response = client.post(
            "/api/requests",
            json={"kind": "WITHDRAWAL", "subject_id": "M-001", "amount": "10"},
            headers=auth("COMMITTEE"),
        )
        assert response.status_code == 403

    def test_pending_queue(self, client, auth, member):
        request_id = submit_withdrawal(client, member)

        queue = client.get("/api/requests/pending", headers=auth("ACCOUNTANT")).json()
        assert [r["id"] for r in queue] == [request_id]
        assert client.get("/api/requests/pending", headers=auth("SUPERVISOR")).json() == []


class TestSubmission:
    """Who a request is for, and the balances it is admitted against."""

    def test_member_submits_for_own_account(self, client, member):
        response = client.post(
            "/api/requests",
            json={"kind": "WITHDRAWAL", "amount": "250.00"},
            headers=member,
        )

        assert response.status_code == 201, response.text
        assert response.json()["subject_id"] == "M-001"

    def test_member_cannot_submit_for_another_member(self, client, auth, member, account):
        account("M-999", willing_deposit_balance="10000.00")

        response = client.post(
            "/api/requests",
            json={"kind": "WITHDRAWAL", "subject_id": "M-999", "amount": "250.00"},
            headers=member,
        )

        assert response.status_code == 403
        assert client.get("/api/requests/pending", headers=auth("ACCOUNTANT")).json() == []

    def test_member_naming_themselves(self, client, member):
        response = client.post(
            "/api/requests",
            json={"kind": "WITHDRAWAL", "subject_id": "M-001", "amount": "250.00"},
            headers=member,
        )
        assert response.status_code == 201

    def test_member_without_linked_record(self, client, auth):
        response = client.post(
            "/api/requests",
            json={"kind": "WITHDRAWAL", "amount": "250.00"},
            headers=auth("MEMBER"),
        )
        assert response.status_code == 403

    def test_staff_submits_on_behalf(self, client, auth, account):
        account("M-002", willing_deposit_balance="500.00")

        response = client.post(
            "/api/requests",
            json={"kind": "WITHDRAWAL", "subject_id": "M-002", "amount": "500.00"},
            headers=auth("ADMIN"),
        )

        assert response.status_code == 201, response.text
        assert response.json()["subject_id"] == "M-002"

    def test_staff_must_name_member(self, client, auth):
        response = client.post(
            "/api/requests",
            json={"kind": "WITHDRAWAL", "amount": "500.00"},
            headers=auth("ADMIN"),
        )
        assert response.status_code == 422
        assert response.json()["detail"]["field"] == "subject_id"

    def test_withdrawal_over_willing_deposit_balance(self, client, member):
        response = client.post(
            "/api/requests",
            json={"kind": "WITHDRAWAL", "amount": "10000.01"},
            headers=member,
        )

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "inadmissible"
        assert detail["error"] == "Insufficient willing deposit balance"

    def test_member_without_account(self, client, auth):
        response = client.post(
            "/api/requests",
            json={"kind": "WITHDRAWAL", "amount": "10.00"},
            headers=auth("MEMBER", member_id="M-404"),
        )
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "inadmissible"


class TestLoanFlow:

    @pytest.fixture
    def borrower(self, auth, account):
        account(
            "M-009",
            total_savings="100000",
            total_contributions="60000",
            monthly_salary="20000",
        )
        return auth("MEMBER", member_id="M-009")

    def loan_body(self, **overrides):
        body = {"kind": "LOAN", "amount": "50000.00", "tenure_months": 12}
        body.update(overrides)
        return body

    def test_admissible_loan(self, client, borrower):
        response = client.post("/api/requests", json=self.loan_body(), headers=borrower)

        assert response.status_code == 201, response.text
        body = response.json()
        assert body["status"] == "PENDING"
        assert body["subject_id"] == "M-009"
        assert body["extra_data"]["product_name"] == "Standard"

    def test_inadmissible_loan(self, client, borrower):
        response = client.post("/api/requests", json=self.loan_body(amount="900000.00"), headers=borrower)

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "inadmissible"
        assert response.json()["detail"]["reasons"]

    def test_declared_figures_are_ignored(self, client, borrower):
        body = self.loan_body(
            amount="5000000.00",
            financials={
                "total_savings": "9999999",
                "total_contributions": "9999999",
                "monthly_salary": "9999999",
            },
        )

        response = client.post("/api/requests", json=body, headers=borrower)

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "inadmissible"

    def test_loan_needs_tenure(self, client, borrower):
        response = client.post("/api/requests", json=self.loan_body(tenure_months=None), headers=borrower)
        assert response.status_code == 422
        assert response.json()["detail"]["field"] == "tenure_months"
