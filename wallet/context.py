"""Wires the ledger components together from settings."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import sessionmaker

from .commissions import CommissionEngine
from .config import AppSettings, get_settings
from .db import get_session_maker
from .deposits import DepositService
from .earnings import EarningsAggregator, build_aggregator
from .store import AccountService
from .withdrawals import WithdrawalLedger


@dataclass
class WalletContext:
    accounts: AccountService
    commissions: CommissionEngine
    deposits: DepositService
    withdrawals: WithdrawalLedger


def build_context(
    session_maker: sessionmaker,
    settings: AppSettings | None = None,
    aggregator: EarningsAggregator | None = None,
) -> WalletContext:
    settings = settings or get_settings()
    ledger = settings.ledger
    commissions = CommissionEngine(session_maker, ledger.commission_percentage)
    return WalletContext(
        accounts=AccountService(session_maker),
        commissions=commissions,
        deposits=DepositService(session_maker, commissions),
        withdrawals=WithdrawalLedger(
            session_maker,
            aggregator or build_aggregator(settings.earnings, session_maker),
            ledger.minimum_withdrawal,
        ),
    )


_context: WalletContext | None = None


def get_context() -> WalletContext:
    global _context
    if _context is None:
        _context = build_context(get_session_maker())
    return _context


__all__ = ["WalletContext", "build_context", "get_context"]
