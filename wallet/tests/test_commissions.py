"""
Tests for referral commissions

Tests cover:
1. Commission amount and where it is credited
2. Users without a referrer, and referrers that no longer exist
3. Case-insensitive referral codes
4. One commission per deposit
5. Failures reported instead of raised
"""

from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from sqlalchemy.exc import OperationalError

from wallet.commissions import (
    ALREADY_CREDITED,
    NO_REFERRER,
    PERSISTENCE_ERROR,
    REFERRER_NOT_FOUND,
    USER_NOT_FOUND,
)
from wallet.errors import NotFoundError
from wallet.store import BalanceStore


class TestCreditCommission:
    """Tests for crediting a referrer."""

    def test_seven_percent_of_deposit(self, ctx, make_account, load_account):
        referrer_id = make_account("Ahmed Khan", referral_code="AB1234")
        user_id = make_account("Bilal Shah", referred_by="AB1234")

        outcome = ctx.commissions.credit_referral_commission(user_id, Decimal("1000"), Decimal("7"))

        assert outcome.credited is True
        assert outcome.amount == Decimal("70.00")
        assert outcome.referrer_id == referrer_id
        assert outcome.referrer_name == "Ahmed Khan"

        # Commission lands in both the spendable balance and referral earnings
        referrer = load_account(referrer_id)
        assert referrer.deposit_balance == Decimal("70.00")
        assert referrer.referral_earnings == Decimal("70.00")

    def test_commission_is_logged(self, ctx, make_account):
        referrer_id = make_account("Ahmed Khan", referral_code="AB1234")
        user_id = make_account("Bilal Shah", referred_by="AB1234")

        ctx.commissions.credit_referral_commission(user_id, Decimal("2500"))

        records = ctx.commissions.list_commissions(referrer_id)
        assert len(records) == 1
        assert records[0].referred_user_id == user_id
        assert records[0].deposit_amount == Decimal("2500.00")
        assert records[0].percentage == Decimal("7")
        assert records[0].commission_amount == Decimal("175.00")

    def test_commission_rounded_to_minor_unit(self, ctx, make_account, load_account):
        referrer_id = make_account("Ahmed Khan", referral_code="AB1234")
        user_id = make_account("Bilal Shah", referred_by="AB1234")

        outcome = ctx.commissions.credit_referral_commission(user_id, Decimal("333.33"))

        # 333.33 * 7% = 23.3331
        assert outcome.amount == Decimal("23.33")
        assert load_account(referrer_id).referral_earnings == Decimal("23.33")

    def test_referral_code_match_is_case_insensitive(self, ctx, make_account, load_account):
        referrer_id = make_account("Ahmed Khan", referral_code="AB1234")
        user_id = make_account("Bilal Shah", referred_by="ab1234")

        outcome = ctx.commissions.credit_referral_commission(user_id, Decimal("1000"))

        assert outcome.credited is True
        assert load_account(referrer_id).deposit_balance == Decimal("70.00")

    def test_no_referrer_is_not_an_error(self, ctx, make_account):
        user_id = make_account("Bilal Shah")

        outcome = ctx.commissions.credit_referral_commission(user_id, Decimal("1000"))

        assert outcome.credited is False
        assert outcome.reason == NO_REFERRER
        assert outcome.error is None

    def test_missing_referrer_is_reported(self, ctx, make_account):
        user_id = make_account("Bilal Shah", referred_by="ZZ9999")

        outcome = ctx.commissions.credit_referral_commission(user_id, Decimal("1000"))

        assert outcome.credited is False
        assert outcome.reason == REFERRER_NOT_FOUND
        assert outcome.error

    def test_missing_user_is_reported(self, ctx):
        outcome = ctx.commissions.credit_referral_commission(uuid4(), Decimal("1000"))

        assert outcome.credited is False
        assert outcome.reason == USER_NOT_FOUND

    def test_same_deposit_credited_once(self, ctx, make_account, load_account):
        referrer_id = make_account("Ahmed Khan", referral_code="AB1234")
        user_id = make_account("Bilal Shah", referred_by="AB1234")
        deposit = ctx.deposits.create_deposit(user_id, Decimal("1000"), "Easypaisa")

        first = ctx.commissions.credit_referral_commission(user_id, Decimal("1000"), deposit_id=deposit.id)
        second = ctx.commissions.credit_referral_commission(user_id, Decimal("1000"), deposit_id=deposit.id)

        assert first.credited is True
        assert second.credited is False
        assert second.reason == ALREADY_CREDITED
        assert load_account(referrer_id).referral_earnings == Decimal("70.00")

    def test_persistence_failure_is_returned(self, ctx, make_account, load_account, monkeypatch):
        referrer_id = make_account("Ahmed Khan", referral_code="AB1234")
        user_id = make_account("Bilal Shah", referred_by="AB1234")

        def broken_apply_delta(self, user_id, delta, **kwargs):
            raise OperationalError("UPDATE users", {}, Exception("connection reset"))

        monkeypatch.setattr(BalanceStore, "apply_delta", broken_apply_delta)

        outcome = ctx.commissions.credit_referral_commission(user_id, Decimal("1000"))

        assert outcome.credited is False
        assert outcome.reason == PERSISTENCE_ERROR
        monkeypatch.undo()
        assert load_account(referrer_id).referral_earnings == Decimal("0.00")
        assert ctx.commissions.list_commissions(referrer_id) == []


class TestReferralOverview:
    """Tests for the referral summary of a user."""

    def test_overview_lists_referred_users_and_commissions(self, ctx, make_account):
        referrer_id = make_account("Ahmed Khan", referral_code="AB1234")
        first = make_account("Bilal Shah", referred_by="AB1234")
        second = make_account("Sana Malik", referred_by="ab1234")
        make_account("Unrelated User")
        ctx.commissions.credit_referral_commission(first, Decimal("1000"))

        overview = ctx.commissions.referral_overview(referrer_id)

        assert overview.referral_code == "AB1234"
        assert {r.id for r in overview.referrals} == {first, second}
        assert overview.total_earnings == Decimal("70.00")
        assert len(overview.commissions) == 1


class TestRegistration:
    """Tests for registering accounts with a referral code."""

    def test_register_with_referral_code(self, ctx, make_account):
        make_account("Ahmed Khan", referral_code="AB1234")

        account = ctx.accounts.register("Bilal Shah", "bilal@example.com", referred_by="ab1234")

        assert account.referred_by == "AB1234"
        assert account.referral_code.startswith("BI")
        assert len(account.referral_code) == 6

    def test_register_with_unknown_code(self, ctx):
        with pytest.raises(NotFoundError):
            ctx.accounts.register("Bilal Shah", "bilal@example.com", referred_by="NOPE00")

    def test_unknown_user_lookup(self, ctx):
        with pytest.raises(NotFoundError):
            ctx.accounts.get(UUID("00000000-0000-0000-0000-000000000000"))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
