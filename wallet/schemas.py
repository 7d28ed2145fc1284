"""Request and response models exchanged with the HTTP layer."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import TransactionStatus, WithdrawalMethod, WithdrawalType


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class AccountRead(CamelModel):
    id: UUID
    name: str
    email: str
    referral_code: str
    referred_by: Optional[str] = None
    deposit_balance: Decimal
    referral_earnings: Decimal
    external_earnings_withdrawn: Decimal
    is_blocked: bool
    is_admin: bool
    created_at: datetime


class BalanceSummary(CamelModel):
    """Spendable balances of one account, with external earnings resolved."""

    total_external_earned: Decimal
    external_earnings: Decimal
    deposit_balance: Decimal
    referral_earnings: Decimal
    other_earnings: Decimal
    total_balance: Decimal


class DepositRead(CamelModel):
    id: UUID
    user_id: UUID
    amount: Decimal
    payment_method: str
    transaction_id: Optional[str] = None
    status: TransactionStatus
    created_at: datetime
    decided_at: Optional[datetime] = None


class WithdrawalRead(CamelModel):
    id: UUID
    user_id: UUID
    amount: Decimal
    withdrawal_type: WithdrawalType
    external_amount: Decimal
    deposit_amount: Decimal
    referral_amount: Decimal
    method: WithdrawalMethod
    method_label: str
    account_details: str
    status: TransactionStatus
    transaction_id: Optional[str] = None
    rejected_reason: Optional[str] = None
    created_at: datetime
    decided_at: Optional[datetime] = None


class CommissionRead(CamelModel):
    id: UUID
    referrer_id: UUID
    referred_user_id: UUID
    deposit_id: Optional[UUID] = None
    deposit_amount: Decimal
    percentage: Decimal
    commission_amount: Decimal
    created_at: datetime


class CommissionOutcome(CamelModel):
    """Result of crediting a referrer. ``credited=False`` is not an error by itself."""

    credited: bool
    amount: Decimal = Decimal("0.00")
    referrer_id: Optional[UUID] = None
    referrer_name: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[str] = None


class RefundDetails(CamelModel):
    total_refund: Decimal
    external_refund: Decimal
    deposit_refund: Decimal
    referral_refund: Decimal


class WithdrawalReceipt(CamelModel):
    message: str
    withdrawal: WithdrawalRead
    updated_balances: BalanceSummary


class WithdrawalStatusChange(CamelModel):
    success: bool = True
    message: str
    withdrawal: WithdrawalRead
    refund_details: Optional[RefundDetails] = None


class DepositDecision(CamelModel):
    success: bool = True
    message: str
    deposit: DepositRead
    new_balance: Optional[Decimal] = None
    referral_commission: Optional[CommissionOutcome] = None


class WithdrawRequest(CamelModel):
    amount: Decimal
    method: str = Field(..., validation_alias="withdrawalMethod")
    account_details: str = ""
    bank_name: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "amount": 600,
            "withdrawalMethod": "bank",
            "accountDetails": "PK36SCBL0000001123456702",
            "bankName": "Meezan Bank",
        }
    })


class DepositRequest(CamelModel):
    amount: Decimal
    payment_method: str
    transaction_id: Optional[str] = None


class AdminWithdrawalUpdate(CamelModel):
    withdrawal_id: UUID
    status: str
    transaction_id: Optional[str] = None
    rejected_reason: Optional[str] = None


class AdminDepositUpdate(CamelModel):
    deposit_id: UUID
    status: str


class BlockRequest(CamelModel):
    is_blocked: bool


class WalletResponse(CamelModel):
    balances: BalanceSummary
    deposits: list[DepositRead]


class ReferredUser(CamelModel):
    id: UUID
    name: str
    email: str
    is_blocked: bool
    created_at: datetime


class ReferralsResponse(CamelModel):
    referral_code: str
    referred_by: Optional[str] = None
    total_earnings: Decimal
    referrals: list[ReferredUser]
    commissions: list[CommissionRead]


class ErrorResponse(BaseModel):
    error: str
    message: str
