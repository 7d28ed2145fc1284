"""Referral commissions credited when a referred user's deposit is approved."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional
from uuid import UUID

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlmodel import select

from .errors import WalletError
from .models import Account, CommissionRecord
from .money import ZERO, percentage_of, to_money
from .schemas import CommissionOutcome, CommissionRead, ReferralsResponse, ReferredUser
from .store import BalanceDelta, BalanceStore

NO_REFERRER = "no_referrer"
REFERRER_NOT_FOUND = "referrer_not_found"
USER_NOT_FOUND = "user_not_found"
ALREADY_CREDITED = "already_credited"
PERSISTENCE_ERROR = "persistence_error"


class CommissionEngine:
    def __init__(self, session_maker: sessionmaker, default_percentage: Decimal = Decimal("7")):
        self._session_maker = session_maker
        self.default_percentage = Decimal(str(default_percentage))

    def credit_referral_commission(
        self,
        user_id: UUID,
        deposit_amount: Decimal,
        percentage: Optional[Decimal] = None,
        *,
        deposit_id: Optional[UUID] = None,
    ) -> CommissionOutcome:
        """Credit the referrer of ``user_id`` with a share of ``deposit_amount``.

        The commission is added to both the referrer's deposit balance and
        referral earnings, and logged as a ``CommissionRecord``. This never
        raises: anything that prevents the credit is reported through
        ``credited=False`` and a ``reason``.
        """
        pct = self.default_percentage if percentage is None else Decimal(str(percentage))
        try:
            with self._session_maker() as session, session.begin():
                return self._credit(session, user_id, to_money(deposit_amount), pct, deposit_id)
        except (SQLAlchemyError, WalletError) as exc:
            logger.error(
                "Referral commission failed for {user_id}: {error}",
                user_id=user_id,
                error=repr(exc),
            )
            return CommissionOutcome(credited=False, reason=PERSISTENCE_ERROR, error=str(exc))

    def _credit(self, session, user_id, amount, pct, deposit_id) -> CommissionOutcome:
        store = BalanceStore(session)
        user = session.get(Account, user_id)
        if user is None:
            logger.warning("Commission skipped, user {user_id} not found", user_id=user_id)
            return CommissionOutcome(credited=False, reason=USER_NOT_FOUND, error="User not found")

        if not user.referred_by:
            return CommissionOutcome(credited=False, reason=NO_REFERRER)

        referrer = store.find_by_referral_code(user.referred_by)
        if referrer is None:
            logger.warning(
                "Referrer {code} of user {user_id} does not exist",
                code=user.referred_by,
                user_id=user_id,
            )
            return CommissionOutcome(credited=False, reason=REFERRER_NOT_FOUND, error="Referrer not found")

        if deposit_id is not None:
            existing = session.exec(
                select(CommissionRecord).where(CommissionRecord.deposit_id == deposit_id)
            ).first()
            if existing is not None:
                return CommissionOutcome(
                    credited=False,
                    amount=existing.commission_amount,
                    referrer_id=existing.referrer_id,
                    referrer_name=referrer.name,
                    reason=ALREADY_CREDITED,
                )

        commission = percentage_of(amount, pct)
        if commission <= ZERO:
            return CommissionOutcome(credited=False, referrer_id=referrer.id, referrer_name=referrer.name)

        store.apply_delta(referrer.id, BalanceDelta(deposit=commission, referral=commission))
        session.add(CommissionRecord(
            referrer_id=referrer.id,
            referred_user_id=user.id,
            deposit_id=deposit_id,
            deposit_amount=amount,
            percentage=pct,
            commission_amount=commission,
        ))
        session.flush()

        logger.info(
            "Referral commission {commission} credited to {referrer} for deposit {amount} by {user}",
            commission=commission,
            referrer=referrer.id,
            amount=amount,
            user=user.id,
        )
        return CommissionOutcome(
            credited=True,
            amount=commission,
            referrer_id=referrer.id,
            referrer_name=referrer.name,
        )

    def list_commissions(self, referrer_id: UUID) -> list[CommissionRead]:
        with self._session_maker() as session:
            stmt = (
                select(CommissionRecord)
                .where(CommissionRecord.referrer_id == referrer_id)
                .order_by(CommissionRecord.created_at.desc())
            )
            return [CommissionRead.model_validate(r) for r in session.exec(stmt).all()]

    def referral_overview(self, user_id: UUID) -> ReferralsResponse:
        """The user's own code, who they referred, and what it earned them."""
        with self._session_maker() as session:
            store = BalanceStore(session)
            account = store.get_active_account(user_id)
            referred = [ReferredUser.model_validate(a) for a in store.list_referred(account.referral_code)]
            referral_code = account.referral_code
            referred_by = account.referred_by
            total_earnings = to_money(account.referral_earnings)
        return ReferralsResponse(
            referral_code=referral_code,
            referred_by=referred_by,
            total_earnings=total_earnings,
            referrals=referred,
            commissions=self.list_commissions(user_id),
        )


__all__ = [
    "ALREADY_CREDITED",
    "NO_REFERRER",
    "PERSISTENCE_ERROR",
    "REFERRER_NOT_FOUND",
    "USER_NOT_FOUND",
    "CommissionEngine",
]
