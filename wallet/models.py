"""SQLModel tables and status enums."""

from __future__ import annotations

import secrets
import string
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

MONEY = {"max_digits": 14, "decimal_places": 2}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_referral_code(name: str = "") -> str:
    """Two letters of the owner's name followed by four random characters."""
    prefix = "".join(ch for ch in name.upper() if ch.isalpha())[:2] or "RF"
    alphabet = string.ascii_uppercase + string.digits
    return prefix + "".join(secrets.choice(alphabet) for _ in range(4))


class TransactionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.PENDING


class WithdrawalMethod(str, Enum):
    BANK = "bank"
    EASYPAISA = "easypaisa"
    JAZZCASH = "jazzcash"
    CRYPTO = "crypto"

    def label(self, bank_name: Optional[str] = None) -> str:
        if self is WithdrawalMethod.BANK:
            return f"Bank Transfer - {bank_name}"
        return {
            WithdrawalMethod.EASYPAISA: "Easypaisa",
            WithdrawalMethod.JAZZCASH: "JazzCash",
            WithdrawalMethod.CRYPTO: "Crypto",
        }[self]


class WithdrawalType(str, Enum):
    BOTH = "both"
    REFERRAL_EARNINGS = "referral_earnings"
    INVESTMENT_PROFIT = "investment_profit"


class TimeStampedModel(SQLModel, table=False):
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)

    def touch(self) -> None:
        self.updated_at = utcnow()


class Account(TimeStampedModel, table=True):
    """A user together with the balance fields the ledger owns."""

    __tablename__ = "users"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str = Field(max_length=100)
    email: str = Field(max_length=255, index=True, unique=True)
    referral_code: str = Field(max_length=32, index=True, unique=True)
    referred_by: Optional[str] = Field(default=None, max_length=32, index=True)
    deposit_balance: Decimal = Field(default=Decimal("0.00"), **MONEY)
    referral_earnings: Decimal = Field(default=Decimal("0.00"), **MONEY)
    external_earnings_withdrawn: Decimal = Field(default=Decimal("0.00"), **MONEY)
    is_blocked: bool = False
    is_admin: bool = False


class Deposit(TimeStampedModel, table=True):
    __tablename__ = "deposits"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    amount: Decimal = Field(**MONEY)
    payment_method: str = Field(max_length=64)
    transaction_id: Optional[str] = Field(default=None, max_length=128)
    status: TransactionStatus = Field(default=TransactionStatus.PENDING, index=True)
    decided_at: Optional[datetime] = None


class Withdrawal(TimeStampedModel, table=True):
    """A withdrawal request and the per-source breakdown deducted at creation."""

    __tablename__ = "withdrawals"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    amount: Decimal = Field(**MONEY)
    withdrawal_type: WithdrawalType
    external_amount: Decimal = Field(default=Decimal("0.00"), **MONEY)
    deposit_amount: Decimal = Field(default=Decimal("0.00"), **MONEY)
    referral_amount: Decimal = Field(default=Decimal("0.00"), **MONEY)
    method: WithdrawalMethod
    method_label: str = Field(max_length=128)
    bank_name: Optional[str] = Field(default=None, max_length=128)
    account_details: str = Field(max_length=512)
    status: TransactionStatus = Field(default=TransactionStatus.PENDING, index=True)
    transaction_id: Optional[str] = Field(default=None, max_length=128)
    rejected_reason: Optional[str] = Field(default=None, max_length=512)
    decided_at: Optional[datetime] = None


class CommissionRecord(SQLModel, table=True):
    """Append-only log of referral commissions, at most one per deposit."""

    __tablename__ = "referral_transactions"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    referrer_id: UUID = Field(foreign_key="users.id", index=True)
    referred_user_id: UUID = Field(foreign_key="users.id", index=True)
    deposit_id: Optional[UUID] = Field(default=None, foreign_key="deposits.id", unique=True)
    deposit_amount: Decimal = Field(**MONEY)
    percentage: Decimal = Field(max_digits=5, decimal_places=2)
    commission_amount: Decimal = Field(**MONEY)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


class EmailSubmission(SQLModel, table=True):
    """Paid email-account submissions; approved ones make up external earnings."""

    __tablename__ = "email_submissions"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    email_address: str = Field(max_length=255)
    status: TransactionStatus = Field(default=TransactionStatus.PENDING, index=True)
    price_at_submission: Decimal = Field(default=Decimal("10.00"), **MONEY)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


__all__ = [
    "Account",
    "CommissionRecord",
    "Deposit",
    "EmailSubmission",
    "TimeStampedModel",
    "TransactionStatus",
    "Withdrawal",
    "WithdrawalMethod",
    "WithdrawalType",
    "generate_referral_code",
    "utcnow",
]
