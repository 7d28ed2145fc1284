"""Balance store: the only code that writes the balance fields of ``users``.

``BalanceStore`` works on a session the caller has already put inside a
transaction. ``apply_delta`` locks the account row before reading it, so the
read-compute-write of a balance mutation commits or rolls back together with
whatever else the caller does in that transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import func
from sqlalchemy.orm import sessionmaker
from sqlmodel import Session, select

from .errors import (
    AccountBlocked,
    AccountNotFound,
    ConflictError,
    InsufficientBalance,
    NotFoundError,
    ValidationError,
)
from .models import Account, generate_referral_code
from .money import ZERO, to_money
from .schemas import AccountRead


@dataclass(frozen=True, slots=True)
class BalanceDelta:
    """Signed change to each balance field of one account."""

    deposit: Decimal = ZERO
    referral: Decimal = ZERO
    external_withdrawn: Decimal = ZERO

    def __neg__(self) -> "BalanceDelta":
        return BalanceDelta(-self.deposit, -self.referral, -self.external_withdrawn)


class BalanceStore:
    def __init__(self, session: Session):
        self.session = session

    def get_account(self, user_id: UUID, *, for_update: bool = False) -> Account:
        stmt = select(Account).where(Account.id == user_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        account = self.session.exec(stmt).one_or_none()
        if account is None:
            raise AccountNotFound(f"User {user_id} not found")
        return account

    def get_active_account(self, user_id: UUID, *, for_update: bool = False) -> Account:
        account = self.get_account(user_id, for_update=for_update)
        if account.is_blocked:
            raise AccountBlocked("Account is blocked")
        return account

    def apply_delta(self, user_id: UUID, delta: BalanceDelta, *, floor_external: bool = False) -> Account:
        """Add ``delta`` to the account's balance fields.

        No field may end below zero. With ``floor_external`` the withdrawn
        counter is clamped at zero instead, which is how refunds treat it.
        """
        account = self.get_account(user_id, for_update=True)

        deposit_balance = to_money(account.deposit_balance + delta.deposit)
        referral_earnings = to_money(account.referral_earnings + delta.referral)
        external_withdrawn = to_money(account.external_earnings_withdrawn + delta.external_withdrawn)
        if floor_external:
            external_withdrawn = max(ZERO, external_withdrawn)

        if deposit_balance < ZERO or referral_earnings < ZERO or external_withdrawn < ZERO:
            raise InsufficientBalance("Insufficient balance")

        account.deposit_balance = deposit_balance
        account.referral_earnings = referral_earnings
        account.external_earnings_withdrawn = external_withdrawn
        account.touch()
        self.session.add(account)
        self.session.flush()
        return account

    def find_by_referral_code(self, code: str) -> Optional[Account]:
        stmt = select(Account).where(func.upper(Account.referral_code) == code.strip().upper())
        return self.session.exec(stmt).first()

    def list_referred(self, referral_code: str) -> list[Account]:
        stmt = (
            select(Account)
            .where(func.upper(Account.referred_by) == referral_code.upper())
            .order_by(Account.created_at.desc())
        )
        return list(self.session.exec(stmt).all())

    def create_account(
        self,
        *,
        name: str,
        email: str,
        referred_by: Optional[str] = None,
        is_admin: bool = False,
    ) -> Account:
        if not name.strip() or not email.strip():
            raise ValidationError("Name and email are required")

        email = email.strip().lower()
        if self.session.exec(select(Account).where(Account.email == email)).first() is not None:
            raise ConflictError(f"Email {email} is already registered")

        referrer_code = None
        if referred_by is not None:
            if not referred_by.strip():
                raise ValidationError("Referral code must not be blank")
            referrer = self.find_by_referral_code(referred_by)
            if referrer is None:
                raise NotFoundError(f"Referral code {referred_by} does not exist")
            referrer_code = referrer.referral_code

        code = generate_referral_code(name)
        while self.find_by_referral_code(code) is not None:
            code = generate_referral_code(name)

        account = Account(
            name=name.strip(),
            email=email,
            referral_code=code,
            referred_by=referrer_code,
            is_admin=is_admin,
        )
        self.session.add(account)
        self.session.flush()
        logger.info("Account created: {user_id} referred_by={code}", user_id=account.id, code=referrer_code)
        return account

    def set_blocked(self, user_id: UUID, blocked: bool) -> Account:
        account = self.get_account(user_id, for_update=True)
        account.is_blocked = blocked
        account.touch()
        self.session.add(account)
        self.session.flush()
        logger.info("Account {user_id} blocked={blocked}", user_id=user_id, blocked=blocked)
        return account


class AccountService:
    """Account registration and admin actions, each in its own transaction."""

    def __init__(self, session_maker: sessionmaker):
        self._session_maker = session_maker

    def register(
        self,
        name: str,
        email: str,
        referred_by: Optional[str] = None,
        is_admin: bool = False,
    ) -> AccountRead:
        with self._session_maker() as session, session.begin():
            account = BalanceStore(session).create_account(
                name=name, email=email, referred_by=referred_by, is_admin=is_admin
            )
            return AccountRead.model_validate(account)

    def get(self, user_id: UUID) -> AccountRead:
        with self._session_maker() as session:
            return AccountRead.model_validate(BalanceStore(session).get_account(user_id))

    def set_blocked(self, user_id: UUID, blocked: bool) -> AccountRead:
        with self._session_maker() as session, session.begin():
            return AccountRead.model_validate(BalanceStore(session).set_blocked(user_id, blocked))


__all__ = ["AccountService", "BalanceDelta", "BalanceStore"]
