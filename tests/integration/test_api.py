"""Integration tests for API endpoints"""

import logging
import pytest
import uuid
from decimal import Decimal
from unittest.mock import MagicMock, patch
from fastapi.testclient import TestClient
from microlend.domain.exceptions import InternalError
from microlend.infrastructure.database.models import Loan


def _as(user):
    """Identity header for a user"""
    return {"X-User-ID": str(user.id)}


@pytest.fixture
def pending_loan(client: TestClient, borrower):
    response = client.post(
        "/v1/loans",
        json={"amount": "12000", "interest_rate": "12", "tenure": 12, "purpose": "Sewing machine"},
        headers=_as(borrower),
    )
    assert response.status_code == 201
    return response.json()["loan"]


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "microlend_lifecycle_transitions_total" in response.text


def test_request_id_is_echoed(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_register_user(client: TestClient):
    """Test POST /v1/users"""
    response = client.post(
        "/v1/users",
        json={"name": "Meera", "email": "Meera@Example.com", "role": "lender"},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["email"] == "meera@example.com"
    assert data["credit_score"] == 650
    assert data["verified"] is False
    assert Decimal(data["wallet"]) == Decimal("0")


def test_register_duplicate_email(client: TestClient):
    payload = {"name": "Meera", "email": "meera@example.com", "role": "borrower"}
    assert client.post("/v1/users", json=payload).status_code == 201

    response = client.post("/v1/users", json=payload)
    assert response.status_code == 422


def test_register_unknown_role(client: TestClient):
    response = client.post("/v1/users", json={"name": "X", "email": "x@example.com", "role": "banker"})
    assert response.status_code == 422


def test_identity_required(client: TestClient):
    assert client.get("/v1/users/me/wallet").status_code == 401
    assert client.get("/v1/users/me/wallet", headers={"X-User-ID": "not-a-uuid"}).status_code == 401
    assert client.get("/v1/users/me/wallet", headers={"X-User-ID": str(uuid.uuid4())}).status_code == 401


def test_admin_routes_require_admin(client: TestClient, borrower):
    assert client.get("/v1/admin/users", headers=_as(borrower)).status_code == 403


def test_lender_cannot_apply(client: TestClient, lender):
    response = client.post(
        "/v1/loans",
        json={"amount": "1000", "interest_rate": "12", "tenure": 6, "purpose": "Test"},
        headers=_as(lender),
    )
    assert response.status_code == 403


def test_unverified_borrower_cannot_apply(client: TestClient, make_user):
    unverified = make_user("borrower", verified=False)

    response = client.post(
        "/v1/loans",
        json={"amount": "1000", "interest_rate": "12", "tenure": 6, "purpose": "Test"},
        headers=_as(unverified),
    )
    assert response.status_code == 403


def test_apply_out_of_range(client: TestClient, borrower):
    response = client.post(
        "/v1/loans",
        json={"amount": "600000", "interest_rate": "12", "tenure": 6, "purpose": "Test"},
        headers=_as(borrower),
    )
    assert response.status_code == 422


def test_apply_returns_quote(pending_loan):
    assert pending_loan["status"] == "pending"
    assert Decimal(pending_loan["emi"]) == Decimal("1066.19")
    assert pending_loan["risk_score"] == "medium"
    assert pending_loan["progress"] == 0


def test_duplicate_pending_application(client: TestClient, borrower, pending_loan):
    response = client.post(
        "/v1/loans",
        json={"amount": "500", "interest_rate": "10", "tenure": 3, "purpose": "Again"},
        headers=_as(borrower),
    )
    assert response.status_code == 400


def test_get_loan_errors(client: TestClient, borrower, make_user, pending_loan):
    assert client.get("/v1/loans/not-a-uuid", headers=_as(borrower)).status_code == 400
    assert client.get(f"/v1/loans/{uuid.uuid4()}", headers=_as(borrower)).status_code == 404

    stranger = make_user("borrower")
    assert client.get(f"/v1/loans/{pending_loan['id']}", headers=_as(stranger)).status_code == 403


def test_fund_before_approval(client: TestClient, lender, pending_loan):
    response = client.post(f"/v1/loans/{pending_loan['id']}/fund", headers=_as(lender))
    assert response.status_code == 400


def test_lender_listing_hides_pending(client: TestClient, admin, lender, pending_loan):
    lender_view = client.get("/v1/loans", headers=_as(lender)).json()
    assert lender_view["total"] == 0

    admin_view = client.get("/v1/loans", headers=_as(admin)).json()
    assert [loan["id"] for loan in admin_view["loans"]] == [pending_loan["id"]]

    assert client.get("/v1/loans?status=bogus", headers=_as(admin)).status_code == 400


def test_fund_with_insufficient_wallet(client: TestClient, admin, make_user, pending_loan):
    poor_lender = make_user("lender", wallet=Decimal("5000"))
    client.put(f"/v1/admin/loans/{pending_loan['id']}/approve", headers=_as(admin))

    response = client.post(f"/v1/loans/{pending_loan['id']}/fund", headers=_as(poor_lender))

    assert response.status_code == 400
    assert "Insufficient" in response.json()["detail"]


def test_full_loan_flow(client: TestClient, admin, borrower, lender, pending_loan):
    """Apply -> approve -> fund -> repay, observed through the API"""
    loan_id = pending_loan["id"]

    # Admin approves
    response = client.put(f"/v1/admin/loans/{loan_id}/approve", json={"admin_note": "OK"}, headers=_as(admin))
    assert response.status_code == 200
    assert response.json()["loan"]["status"] == "approved"

    # Lender sees it and funds it
    listing = client.get("/v1/loans", headers=_as(lender)).json()
    assert [loan["id"] for loan in listing["loans"]] == [loan_id]

    response = client.post(f"/v1/loans/{loan_id}/fund", headers=_as(lender))
    assert response.status_code == 200
    assert response.json()["loan"]["status"] == "active"

    schedule = client.get(f"/v1/loans/{loan_id}/schedule", headers=_as(borrower)).json()["schedule"]
    assert len(schedule) == 12
    assert Decimal(schedule[0]["interest"]) == Decimal("120.00")

    wallet = client.get("/v1/users/me/wallet", headers=_as(borrower)).json()
    assert Decimal(wallet["wallet"]) == Decimal("12000.00")

    # Out-of-order payment is refused, next one succeeds
    response = client.post(f"/v1/loans/{loan_id}/repay", json={"installment_no": 3}, headers=_as(borrower))
    assert response.status_code == 400

    response = client.post(f"/v1/loans/{loan_id}/repay", headers=_as(borrower))
    assert response.status_code == 200
    data = response.json()
    assert data["installment"]["installment_no"] == 1
    assert data["installment"]["status"] == "paid"
    assert data["new_credit_score"] == 655
    assert Decimal(data["new_balance"]) == Decimal("12000.00") - Decimal("1066.19")
    assert data["loan_status"] == "active"

    # Ledger history for the borrower
    txns = client.get("/v1/users/me/transactions?type=emi_paid", headers=_as(borrower)).json()
    assert txns["total"] == 1
    assert txns["transactions"][0]["direction"] == "debit"

    # Notifications landed for every party
    admin_titles = [n["title"] for n in client.get("/v1/users/me/notifications", headers=_as(admin)).json()["notifications"]]
    assert "New Loan Application" in admin_titles

    lender_inbox = client.get("/v1/users/me/notifications", headers=_as(lender)).json()
    assert "EMI Received from Asha Borrower" in [n["title"] for n in lender_inbox["notifications"]]
    assert lender_inbox["unread_count"] > 0

    response = client.put("/v1/users/me/notifications/read-all", headers=_as(lender))
    assert response.status_code == 200
    assert client.get("/v1/users/me/notifications", headers=_as(lender)).json()["unread_count"] == 0


def test_reject_via_admin(client: TestClient, admin, borrower, pending_loan):
    response = client.put(f"/v1/admin/loans/{pending_loan['id']}/reject", headers=_as(admin))

    assert response.status_code == 200
    assert response.json()["loan"]["status"] == "rejected"

    score = client.get("/v1/users/me/credit-score", headers=_as(borrower)).json()
    assert score["credit_score"] == 645
    assert score["history"][-1]["delta"] == -5


def test_admin_verifies_user(client: TestClient, admin, make_user):
    user = make_user("borrower", verified=False)

    response = client.put(f"/v1/admin/users/{user.id}/verify", json={"verified": True}, headers=_as(admin))

    assert response.status_code == 200
    assert response.json()["verified"] is True
    inbox = client.get("/v1/users/me/notifications", headers=_as(user)).json()
    assert inbox["notifications"][0]["title"] == "Account Verified"


def test_admin_list_users_by_role(client: TestClient, admin, borrower, lender):
    data = client.get("/v1/admin/users?role=lender", headers=_as(admin)).json()
    assert data["total"] == 1
    assert data["users"][0]["id"] == str(lender.id)


def test_wallet_topup(client: TestClient, borrower):
    response = client.post("/v1/users/me/wallet/topup", json={"amount": "2500"}, headers=_as(borrower))

    assert response.status_code == 200
    data = response.json()
    assert Decimal(data["wallet"]) == Decimal("2500.00")
    assert data["transaction"]["type"] == "topup"


def test_wallet_topup_over_limit(client: TestClient, borrower):
    response = client.post("/v1/users/me/wallet/topup", json={"amount": "100001"}, headers=_as(borrower))
    assert response.status_code == 422


def test_transactions_unknown_type(client: TestClient, borrower):
    response = client.get("/v1/users/me/transactions?type=gift", headers=_as(borrower))
    assert response.status_code == 400


def test_credit_simulate(client: TestClient, borrower):
    response = client.post("/v1/users/me/credit-simulate", json={"action": "missed_payment"}, headers=_as(borrower))

    assert response.status_code == 200
    assert response.json() == {"credit_score": 620, "delta": -30, "reason": "Simulated: Missed payment"}

    response = client.post("/v1/users/me/credit-simulate", json={"action": "lottery"}, headers=_as(borrower))
    assert response.status_code == 422


def test_mark_notification_read(client: TestClient, borrower, pending_loan):
    inbox = client.get("/v1/users/me/notifications", headers=_as(borrower)).json()
    notification_id = inbox["notifications"][0]["id"]
    assert inbox["unread_count"] == 1

    response = client.put(f"/v1/users/me/notifications/{notification_id}/read", headers=_as(borrower))

    assert response.status_code == 200
    assert response.json()["read"] is True
    assert client.get("/v1/users/me/notifications", headers=_as(borrower)).json()["unread_count"] == 0


def test_mark_notification_read_not_found(client: TestClient, borrower, lender, pending_loan):
    inbox = client.get("/v1/users/me/notifications", headers=_as(borrower)).json()
    borrowers_notification = inbox["notifications"][0]["id"]

    # Another user's notification is invisible to the caller
    response = client.put(f"/v1/users/me/notifications/{borrowers_notification}/read", headers=_as(lender))
    assert response.status_code == 404

    response = client.put(f"/v1/users/me/notifications/{uuid.uuid4()}/read", headers=_as(borrower))
    assert response.status_code == 404

    response = client.put("/v1/users/me/notifications/not-a-uuid/read", headers=_as(borrower))
    assert response.status_code == 400


@patch("microlend.infrastructure.notifications.dispatcher.NotificationDispatcher.dispatch")
def test_fund_succeeds_when_notification_dispatch_fails(
    mock_dispatch: MagicMock,
    client: TestClient,
    db,
    admin,
    lender,
    pending_loan,
):
    """Funding has committed; a notification failure must not turn it into an error"""
    client.put(f"/v1/admin/loans/{pending_loan['id']}/approve", headers=_as(admin))
    mock_dispatch.side_effect = InternalError("Persistence failure")

    response = client.post(f"/v1/loans/{pending_loan['id']}/fund", headers=_as(lender))

    assert response.status_code == 200
    assert response.json()["loan"]["status"] == "active"
    assert db.get(Loan, uuid.UUID(pending_loan["id"])).status == "active"


@patch("microlend.infrastructure.notifications.dispatcher.NotificationDispatcher.dispatch")
def test_repay_succeeds_when_notification_dispatch_fails(
    mock_dispatch: MagicMock,
    client: TestClient,
    admin,
    borrower,
    lender,
    pending_loan,
):
    loan_id = pending_loan["id"]
    client.put(f"/v1/admin/loans/{loan_id}/approve", headers=_as(admin))
    client.post(f"/v1/loans/{loan_id}/fund", headers=_as(lender))
    mock_dispatch.side_effect = InternalError("Persistence failure")

    response = client.post(f"/v1/loans/{loan_id}/repay", headers=_as(borrower))

    assert response.status_code == 200
    assert response.json()["installment"]["installment_no"] == 1
    schedule = client.get(f"/v1/loans/{loan_id}/schedule", headers=_as(borrower)).json()["schedule"]
    assert [inst["status"] for inst in schedule[:2]] == ["paid", "pending"]


def test_lifecycle_log_uses_caller_request_id(client: TestClient, borrower, caplog):
    caplog.set_level(logging.INFO, logger="microlend.lifecycle")

    response = client.post(
        "/v1/loans",
        json={"amount": "1000", "interest_rate": "12", "tenure": 6, "purpose": "Stock"},
        headers={**_as(borrower), "X-Request-ID": "req-apply-1"},
    )

    assert response.status_code == 201
    request_ids = [r.request_id for r in caplog.records if r.name == "microlend.lifecycle"]
    assert request_ids == ["req-apply-1"]
