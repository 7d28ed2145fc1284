"""Withdrawal ledger.

A withdrawal is paid out of three sources in a fixed order: external
(email submission) earnings first, then the deposit balance, then referral
earnings. The per-source split is deducted from the account when the request
is created and stored on the withdrawal, so a rejection can hand back exactly
what was taken.

Withdrawal lifecycle::

    pending -> approved   (terminal, no balance effect)
    pending -> rejected   (terminal, breakdown refunded)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from uuid import UUID

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlmodel import select

from .earnings import EarningsAggregator, available_external, resolve_total_earned
from .errors import (
    BelowMinimum,
    InsufficientBalance,
    InvalidMethod,
    InvalidStatus,
    InvalidTransition,
    PersistenceFailure,
    ValidationError,
    WithdrawalNotFound,
)
from .models import Account, TransactionStatus, Withdrawal, WithdrawalMethod, WithdrawalType, utcnow
from .money import ZERO, to_money
from .schemas import BalanceSummary, RefundDetails, WithdrawalRead, WithdrawalReceipt, WithdrawalStatusChange
from .store import BalanceDelta, BalanceStore


@dataclass(frozen=True, slots=True)
class Apportionment:
    external: Decimal
    deposit: Decimal
    referral: Decimal

    @property
    def total(self) -> Decimal:
        return self.external + self.deposit + self.referral

    def as_delta(self) -> BalanceDelta:
        """Balance change that takes this split out of an account."""
        return BalanceDelta(
            deposit=-self.deposit,
            referral=-self.referral,
            external_withdrawn=self.external,
        )


def apportion(
    amount: Decimal,
    available_external: Decimal,
    deposit_balance: Decimal,
    referral_earnings: Decimal,
) -> Apportionment:
    """Greedily split ``amount`` over the sources in priority order.

    Raises ``InsufficientBalance`` if the sources together cannot cover it.
    """
    remaining = to_money(amount)
    taken = []
    for cap in (available_external, deposit_balance, referral_earnings):
        part = min(remaining, max(ZERO, to_money(cap)))
        taken.append(part)
        remaining -= part
    if remaining > ZERO:
        raise InsufficientBalance("Insufficient balance")
    return Apportionment(*taken)


def classify(split: Apportionment) -> WithdrawalType:
    if split.referral > ZERO and (split.deposit + split.external) > ZERO:
        return WithdrawalType.BOTH
    if split.referral > ZERO:
        return WithdrawalType.REFERRAL_EARNINGS
    return WithdrawalType.INVESTMENT_PROFIT


def parse_method(method: str, bank_name: Optional[str]) -> WithdrawalMethod:
    try:
        parsed = WithdrawalMethod((method or "").strip().lower())
    except ValueError:
        raise InvalidMethod(f"Unsupported withdrawal method: {method}") from None
    if parsed is WithdrawalMethod.BANK and not (bank_name or "").strip():
        raise InvalidMethod("Bank name is required for bank transfers")
    return parsed


def parse_status(status: str) -> TransactionStatus:
    try:
        return TransactionStatus((status or "").strip().lower())
    except ValueError:
        raise InvalidStatus(f"Invalid status: {status}") from None


class WithdrawalLedger:
    def __init__(
        self,
        session_maker: sessionmaker,
        aggregator: EarningsAggregator,
        minimum_other: Decimal = Decimal("500"),
    ):
        self._session_maker = session_maker
        self._aggregator = aggregator
        self.minimum_other = to_money(minimum_other)

    def _summary(self, account: Account, total_earned: Decimal) -> BalanceSummary:
        external = available_external(total_earned, account.external_earnings_withdrawn)
        deposit = to_money(account.deposit_balance)
        referral = to_money(account.referral_earnings)
        return BalanceSummary(
            total_external_earned=to_money(total_earned),
            external_earnings=external,
            deposit_balance=deposit,
            referral_earnings=referral,
            other_earnings=deposit + referral,
            total_balance=external + deposit + referral,
        )

    def balances(self, user_id: UUID) -> BalanceSummary:
        total_earned = resolve_total_earned(self._aggregator, user_id)
        with self._session_maker() as session:
            account = BalanceStore(session).get_active_account(user_id)
            return self._summary(account, total_earned)

    def request_withdrawal(
        self,
        user_id: UUID,
        amount: Decimal,
        method: str,
        account_details: str,
        bank_name: Optional[str] = None,
    ) -> WithdrawalReceipt:
        amount = to_money(amount)
        if amount <= ZERO:
            raise ValidationError("Invalid amount")
        if not (account_details or "").strip():
            raise ValidationError("Account details are required")
        parsed_method = parse_method(method, bank_name)

        # Resolved outside the transaction so no row lock is held during the lookup.
        total_earned = resolve_total_earned(self._aggregator, user_id)

        with self._session_maker() as session:
            try:
                with session.begin():
                    store = BalanceStore(session)
                    account = store.get_active_account(user_id, for_update=True)
                    balances = self._summary(account, total_earned)
                    split = self._validate_and_split(amount, balances)

                    withdrawal = Withdrawal(
                        user_id=account.id,
                        amount=amount,
                        withdrawal_type=classify(split),
                        external_amount=split.external,
                        deposit_amount=split.deposit,
                        referral_amount=split.referral,
                        method=parsed_method,
                        method_label=parsed_method.label(bank_name),
                        bank_name=bank_name,
                        account_details=account_details.strip(),
                    )
                    session.add(withdrawal)
                    session.flush()

                    # A failure here rolls back the whole transaction, withdrawal row included.
                    account = store.apply_delta(account.id, split.as_delta())
                    updated = self._summary(account, total_earned)
                    record = WithdrawalRead.model_validate(withdrawal)
            except SQLAlchemyError as exc:
                logger.error(
                    "Withdrawal for {user_id} rolled back: {error}",
                    user_id=user_id,
                    error=repr(exc),
                )
                raise PersistenceFailure("Failed to create withdrawal request") from exc

        logger.info(
            "Withdrawal {withdrawal_id} requested by {user_id}: {amount} "
            "(external={external}, deposit={deposit}, referral={referral})",
            withdrawal_id=record.id,
            user_id=user_id,
            amount=amount,
            external=split.external,
            deposit=split.deposit,
            referral=split.referral,
        )
        return WithdrawalReceipt(
            message="Withdrawal request submitted successfully",
            withdrawal=record,
            updated_balances=updated,
        )

    def _validate_and_split(self, amount: Decimal, balances: BalanceSummary) -> Apportionment:
        if amount > balances.total_balance:
            raise InsufficientBalance("Insufficient balance")

        if amount > balances.external_earnings and balances.other_earnings > ZERO:
            from_other = amount - balances.external_earnings
            if from_other < self.minimum_other:
                raise BelowMinimum(
                    f"Minimum withdrawal from deposits/referrals is {self.minimum_other}"
                )

        split = apportion(
            amount,
            balances.external_earnings,
            balances.deposit_balance,
            balances.referral_earnings,
        )
        return split

    def set_withdrawal_status(
        self,
        withdrawal_id: UUID,
        new_status: str,
        transaction_id: Optional[str] = None,
        rejected_reason: Optional[str] = None,
    ) -> WithdrawalStatusChange:
        target = parse_status(new_status)

        try:
            with self._session_maker() as session, session.begin():
                stmt = (
                    select(Withdrawal)
                    .where(Withdrawal.id == withdrawal_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                )
                withdrawal = session.exec(stmt).one_or_none()
                if withdrawal is None:
                    raise WithdrawalNotFound(f"Withdrawal {withdrawal_id} not found")

                current = withdrawal.status
                if current == target:
                    # Repeating a decision is a no-op, so a retried reject never refunds twice.
                    return WithdrawalStatusChange(
                        message=f"Withdrawal already {target.value}",
                        withdrawal=WithdrawalRead.model_validate(withdrawal),
                    )
                if current.is_terminal or target is TransactionStatus.PENDING:
                    raise InvalidTransition(
                        f"Cannot change withdrawal from {current.value} to {target.value}"
                    )

                refund = None
                withdrawal.status = target
                withdrawal.decided_at = utcnow()
                withdrawal.touch()
                if target is TransactionStatus.APPROVED:
                    withdrawal.transaction_id = transaction_id
                else:
                    withdrawal.rejected_reason = rejected_reason
                    refund = self._refund(BalanceStore(session), withdrawal)
                session.add(withdrawal)
                session.flush()
                record = WithdrawalRead.model_validate(withdrawal)
        except SQLAlchemyError as exc:
            logger.error(
                "Status change of withdrawal {withdrawal_id} rolled back: {error}",
                withdrawal_id=withdrawal_id,
                error=repr(exc),
            )
            raise PersistenceFailure("Failed to update withdrawal status") from exc

        logger.info(
            "Withdrawal {withdrawal_id} {old} -> {new}",
            withdrawal_id=withdrawal_id,
            old=current.value,
            new=target.value,
        )
        if refund is not None:
            message = "Withdrawal rejected and amount refunded"
        else:
            message = f"Withdrawal {target.value} successfully"
        return WithdrawalStatusChange(message=message, withdrawal=record, refund_details=refund)

    def _refund(self, store: BalanceStore, withdrawal: Withdrawal) -> RefundDetails:
        split = Apportionment(
            external=to_money(withdrawal.external_amount),
            deposit=to_money(withdrawal.deposit_amount),
            referral=to_money(withdrawal.referral_amount),
        )
        store.apply_delta(withdrawal.user_id, -split.as_delta(), floor_external=True)
        return RefundDetails(
            total_refund=split.total,
            external_refund=split.external,
            deposit_refund=split.deposit,
            referral_refund=split.referral,
        )

    def list_withdrawals(self, user_id: Optional[UUID] = None) -> list[WithdrawalRead]:
        with self._session_maker() as session:
            stmt = select(Withdrawal).order_by(Withdrawal.created_at.desc())
            if user_id is not None:
                stmt = stmt.where(Withdrawal.user_id == user_id)
            return [WithdrawalRead.model_validate(w) for w in session.exec(stmt).all()]


__all__ = [
    "Apportionment",
    "WithdrawalLedger",
    "apportion",
    "classify",
    "parse_method",
    "parse_status",
]
