"""
Tests for the HTTP surface

Tests cover:
1. Bearer authentication and the admin claim
2. Withdrawal request and admin adjudication round trip
3. Deposit approval with commission
4. Stable error shape
"""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from wallet.api import app
from wallet.context import get_context
from wallet.security import issue_token


@pytest.fixture
def client(ctx):
    app.dependency_overrides[get_context] = lambda: ctx
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(user_id, is_admin=False):
    return {"Authorization": f"Bearer {issue_token(user_id, is_admin=is_admin)}"}


class TestAuthentication:
    def test_health_is_public(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_missing_token(self, client):
        response = client.get("/wallet")

        assert response.status_code == 401
        assert response.json() == {"error": "auth_error", "message": "Unauthorized"}

    def test_invalid_token(self, client):
        response = client.get("/wallet", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401
        assert response.json()["error"] == "auth_error"

    def test_expired_token(self, client, make_account):
        user_id = make_account()
        token = issue_token(user_id, ttl_minutes=-1)

        response = client.get("/wallet", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_admin_routes_require_admin_claim(self, client, make_account):
        user_id = make_account()

        response = client.get("/admin/withdrawals", headers=auth(user_id))

        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    def test_blocked_account(self, client, ctx, make_account):
        user_id = make_account(deposit="1000")
        ctx.accounts.set_blocked(user_id, True)

        response = client.get("/wallet", headers=auth(user_id))

        assert response.status_code == 403
        assert response.json() == {"error": "account_blocked", "message": "Account is blocked"}


class TestWithdrawalEndpoints:
    def test_withdraw_then_reject(self, client, aggregator, make_account):
        user_id = make_account(deposit="1000")
        admin_id = make_account("Admin User", is_admin=True)
        aggregator.totals[user_id] = Decimal("100")

        # Request a withdrawal
        response = client.post(
            "/withdraw",
            json={
                "amount": 600,
                "withdrawalMethod": "bank",
                "accountDetails": "PK36SCBL0000001123456702",
                "bankName": "Meezan Bank",
            },
            headers=auth(user_id),
        )
        assert response.status_code == 201
        body = response.json()
        withdrawal = body["withdrawal"]
        assert withdrawal["methodLabel"] == "Bank Transfer - Meezan Bank"
        assert Decimal(withdrawal["externalAmount"]) == Decimal("100")
        assert Decimal(withdrawal["depositAmount"]) == Decimal("500")
        assert Decimal(body["updatedBalances"]["totalBalance"]) == Decimal("500")

        # Admin rejects it
        response = client.patch(
            "/admin/withdrawals",
            json={"withdrawalId": withdrawal["id"], "status": "rejected", "rejectedReason": "Wrong IBAN"},
            headers=auth(admin_id, is_admin=True),
        )
        assert response.status_code == 200
        refund = response.json()["refundDetails"]
        assert Decimal(refund["totalRefund"]) == Decimal("600")
        assert Decimal(refund["externalRefund"]) == Decimal("100")

        # Balance is whole again
        response = client.get("/wallet", headers=auth(user_id))
        assert Decimal(response.json()["balances"]["totalBalance"]) == Decimal("1100")

    def test_below_minimum_error_shape(self, client, make_account):
        user_id = make_account(deposit="1000")

        response = client.post(
            "/withdraw",
            json={"amount": 400, "withdrawalMethod": "easypaisa", "accountDetails": "03001234567"},
            headers=auth(user_id),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "below_minimum"
        assert "500" in response.json()["message"]

    def test_insufficient_balance(self, client, make_account):
        user_id = make_account(deposit="200")

        response = client.post(
            "/withdraw",
            json={"amount": 300, "withdrawalMethod": "easypaisa", "accountDetails": "03001234567"},
            headers=auth(user_id),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "insufficient_balance"

    def test_malformed_body(self, client, make_account):
        user_id = make_account(deposit="1000")

        response = client.post("/withdraw", json={"amount": "lots"}, headers=auth(user_id))

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_invalid_transition_is_conflict(self, client, ctx, make_account):
        user_id = make_account(deposit="1000")
        admin_id = make_account("Admin User", is_admin=True)
        receipt = ctx.withdrawals.request_withdrawal(user_id, Decimal("600"), "easypaisa", "03001234567")
        ctx.withdrawals.set_withdrawal_status(receipt.withdrawal.id, "approved")

        response = client.patch(
            "/admin/withdrawals",
            json={"withdrawalId": str(receipt.withdrawal.id), "status": "rejected"},
            headers=auth(admin_id, is_admin=True),
        )

        assert response.status_code == 409
        assert response.json()["error"] == "invalid_transition"

    def test_user_withdrawal_history(self, client, ctx, make_account):
        user_id = make_account(deposit="1000")
        ctx.withdrawals.request_withdrawal(user_id, Decimal("600"), "easypaisa", "03001234567")

        response = client.get("/withdrawals", headers=auth(user_id))

        assert response.status_code == 200
        assert len(response.json()) == 1


class TestDepositEndpoints:
    def test_deposit_approval_with_commission(self, client, make_account):
        make_account("Ahmed Khan", referral_code="AB1234")
        user_id = make_account("Bilal Shah", referred_by="AB1234")
        admin_id = make_account("Admin User", is_admin=True)

        response = client.post(
            "/deposits",
            json={"amount": 1000, "paymentMethod": "Easypaisa", "transactionId": "EP-1"},
            headers=auth(user_id),
        )
        assert response.status_code == 201
        deposit_id = response.json()["id"]

        response = client.patch(
            "/admin/deposits",
            json={"depositId": deposit_id, "status": "approved"},
            headers=auth(admin_id, is_admin=True),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert Decimal(body["newBalance"]) == Decimal("1000")
        assert body["referralCommission"]["credited"] is True
        assert Decimal(body["referralCommission"]["amount"]) == Decimal("70")

    def test_invalid_deposit_status(self, client, ctx, make_account):
        user_id = make_account()
        admin_id = make_account("Admin User", is_admin=True)
        deposit = ctx.deposits.create_deposit(user_id, Decimal("1000"), "Easypaisa")

        response = client.patch(
            "/admin/deposits",
            json={"depositId": str(deposit.id), "status": "done"},
            headers=auth(admin_id, is_admin=True),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_status"

    def test_admin_lists_deposits(self, client, ctx, make_account):
        user_id = make_account()
        admin_id = make_account("Admin User", is_admin=True)
        ctx.deposits.create_deposit(user_id, Decimal("1000"), "Easypaisa")

        response = client.get("/admin/deposits", headers=auth(admin_id, is_admin=True))

        assert response.status_code == 200
        assert len(response.json()) == 1


class TestAdminUsers:
    def test_block_user(self, client, make_account):
        user_id = make_account(deposit="1000")
        admin_id = make_account("Admin User", is_admin=True)

        response = client.patch(
            f"/admin/users/{user_id}/block",
            json={"isBlocked": True},
            headers=auth(admin_id, is_admin=True),
        )

        assert response.status_code == 200
        assert response.json()["isBlocked"] is True

        response = client.post(
            "/withdraw",
            json={"amount": 600, "withdrawalMethod": "easypaisa", "accountDetails": "03001234567"},
            headers=auth(user_id),
        )
        assert response.status_code == 403


class TestUnexpectedErrors:
    def test_unexpected_error_is_internal_error_without_trace(self, ctx, make_account, monkeypatch):
        user_id = make_account()

        def broken_balances(user_id):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(ctx.withdrawals, "balances", broken_balances)
        app.dependency_overrides[get_context] = lambda: ctx
        try:
            response = TestClient(app, raise_server_exceptions=False).get("/wallet", headers=auth(user_id))
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert response.json() == {"error": "internal_error", "message": "Internal server error"}


class TestReferralEndpoint:
    def test_referrals_overview(self, client, make_account):
        referrer_id = make_account("Ahmed Khan", referral_code="AB1234")
        make_account("Bilal Shah", referred_by="AB1234")

        response = client.get("/referrals", headers=auth(referrer_id))

        assert response.status_code == 200
        body = response.json()
        assert body["referralCode"] == "AB1234"
        assert len(body["referrals"]) == 1
