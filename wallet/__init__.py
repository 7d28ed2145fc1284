"""
Wallet Ledger

Balance accounting for a deposit/referral/withdrawal platform:
- Per-account balances (deposit balance, referral earnings, external
  earnings withdrawn) mutated only inside atomic transactions
- Referral commissions credited on deposit approval
- Withdrawals apportioned across balance sources by fixed priority
- Admin adjudication of deposits and withdrawals with exact refunds
"""

from .commissions import CommissionEngine
from .deposits import DepositService
from .errors import WalletError
from .models import (
    Account,
    CommissionRecord,
    Deposit,
    TransactionStatus,
    Withdrawal,
    WithdrawalMethod,
    WithdrawalType,
)
from .store import AccountService, BalanceDelta, BalanceStore
from .withdrawals import Apportionment, WithdrawalLedger, apportion, classify

__all__ = [
    "Account",
    "AccountService",
    "Apportionment",
    "BalanceDelta",
    "BalanceStore",
    "CommissionEngine",
    "CommissionRecord",
    "Deposit",
    "DepositService",
    "TransactionStatus",
    "WalletError",
    "Withdrawal",
    "WithdrawalLedger",
    "WithdrawalMethod",
    "WithdrawalType",
    "apportion",
    "classify",
]
