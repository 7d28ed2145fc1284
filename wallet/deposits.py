"""Deposit requests and their adjudication by admins.

Approval is the only transition that touches balances: the deposit balance is
credited in one transaction, and the referrer's commission is credited
afterwards in a separate one. A failed commission is reported back to the
caller but never undoes the approval.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional
from uuid import UUID

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlmodel import select

from .commissions import CommissionEngine
from .errors import DepositNotFound, InvalidTransition, PersistenceFailure, ValidationError
from .models import Deposit, TransactionStatus, utcnow
from .money import ZERO, format_money, to_money
from .schemas import DepositDecision, DepositRead
from .store import BalanceDelta, BalanceStore
from .withdrawals import parse_status


class DepositService:
    def __init__(self, session_maker: sessionmaker, commissions: CommissionEngine):
        self._session_maker = session_maker
        self.commissions = commissions

    def create_deposit(
        self,
        user_id: UUID,
        amount: Decimal,
        payment_method: str,
        transaction_id: Optional[str] = None,
    ) -> DepositRead:
        amount = to_money(amount)
        if amount <= ZERO:
            raise ValidationError("Invalid amount")
        if not (payment_method or "").strip():
            raise ValidationError("Payment method is required")

        with self._session_maker() as session, session.begin():
            account = BalanceStore(session).get_active_account(user_id)
            deposit = Deposit(
                user_id=account.id,
                amount=amount,
                payment_method=payment_method.strip(),
                transaction_id=transaction_id,
            )
            session.add(deposit)
            session.flush()
            record = DepositRead.model_validate(deposit)

        logger.info("Deposit {deposit_id} of {amount} requested by {user_id}",
                    deposit_id=record.id, amount=amount, user_id=user_id)
        return record

    def set_deposit_status(self, deposit_id: UUID, new_status: str) -> DepositDecision:
        target = parse_status(new_status)

        try:
            with self._session_maker() as session, session.begin():
                stmt = (
                    select(Deposit)
                    .where(Deposit.id == deposit_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                )
                deposit = session.exec(stmt).one_or_none()
                if deposit is None:
                    raise DepositNotFound(f"Deposit {deposit_id} not found")

                current = deposit.status
                if current == target:
                    return DepositDecision(
                        message=f"Deposit already {target.value}",
                        deposit=DepositRead.model_validate(deposit),
                    )
                if current.is_terminal or target is TransactionStatus.PENDING:
                    raise InvalidTransition(
                        f"Cannot change deposit from {current.value} to {target.value}"
                    )

                new_balance = None
                deposit.status = target
                deposit.decided_at = utcnow()
                deposit.touch()
                session.add(deposit)
                if target is TransactionStatus.APPROVED:
                    account = BalanceStore(session).apply_delta(
                        deposit.user_id, BalanceDelta(deposit=to_money(deposit.amount))
                    )
                    new_balance = account.deposit_balance
                session.flush()
                record = DepositRead.model_validate(deposit)
        except SQLAlchemyError as exc:
            logger.error("Status change of deposit {deposit_id} rolled back: {error}",
                         deposit_id=deposit_id, error=repr(exc))
            raise PersistenceFailure("Failed to update deposit status") from exc

        logger.info("Deposit {deposit_id} {old} -> {new}",
                    deposit_id=deposit_id, old=current.value, new=target.value)

        if target is not TransactionStatus.APPROVED:
            return DepositDecision(message=f"Deposit {target.value} successfully", deposit=record)

        commission = self.commissions.credit_referral_commission(
            record.user_id, record.amount, deposit_id=record.id
        )
        message = "Deposit approved and wallet updated successfully"
        if commission.credited:
            message += (
                f". Referral commission of {format_money(commission.amount)} "
                f"credited to {commission.referrer_name}"
            )
        elif commission.error:
            logger.warning("Deposit {deposit_id} approved without commission: {reason}",
                           deposit_id=deposit_id, reason=commission.reason)
        return DepositDecision(
            message=message,
            deposit=record,
            new_balance=new_balance,
            referral_commission=commission,
        )

    def list_deposits(self, user_id: Optional[UUID] = None) -> list[DepositRead]:
        with self._session_maker() as session:
            stmt = select(Deposit).order_by(Deposit.created_at.desc())
            if user_id is not None:
                stmt = stmt.where(Deposit.user_id == user_id)
            return [DepositRead.model_validate(d) for d in session.exec(stmt).all()]


__all__ = ["DepositService"]
