"""Read-only port to the external earnings total (email submission payouts).

The ledger only ever needs one number per user: how much has been earned
outside the ledger to date. Lookups are bounded by a timeout and fall back to
zero, so a slow or failing aggregator never fails a wallet request.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol
from uuid import UUID

import requests
from loguru import logger
from sqlalchemy import func
from sqlalchemy.orm import sessionmaker
from sqlmodel import select

from .config import EarningsSettings
from .models import EmailSubmission, TransactionStatus
from .money import ZERO, to_money


class EarningsAggregator(Protocol):
    def total_earned(self, user_id: UUID) -> Decimal: ...


class SubmissionEarningsAggregator:
    """Sums the price of a user's approved email submissions."""

    def __init__(self, session_maker: sessionmaker, timeout_seconds: float = 2.0):
        self._session_maker = session_maker
        self._timeout_ms = int(timeout_seconds * 1000)

    def total_earned(self, user_id: UUID) -> Decimal:
        stmt = select(func.coalesce(func.sum(EmailSubmission.price_at_submission), 0)).where(
            EmailSubmission.user_id == user_id,
            EmailSubmission.status == TransactionStatus.APPROVED,
        )
        with self._session_maker() as session:
            if session.bind.dialect.name == "postgresql":
                session.exec(select(func.set_config("statement_timeout", str(self._timeout_ms), True)))
            total = session.exec(stmt).one()
        return to_money(total)


class HttpEarningsAggregator:
    """Asks a remote service for ``GET {base_url}/users/{user_id}/earnings``."""

    def __init__(self, base_url: str, timeout_seconds: float = 2.0, session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout_seconds
        self._http = session or requests.Session()

    def total_earned(self, user_id: UUID) -> Decimal:
        response = self._http.get(f"{self.base_url}/users/{user_id}/earnings", timeout=self.timeout)
        response.raise_for_status()
        return to_money(response.json().get("totalEarned"))


def build_aggregator(settings: EarningsSettings, session_maker: sessionmaker) -> EarningsAggregator:
    if settings.backend == "http":
        if not settings.base_url:
            raise ValueError("earnings.base_url is required for the http backend")
        return HttpEarningsAggregator(settings.base_url, settings.timeout_seconds)
    return SubmissionEarningsAggregator(session_maker, settings.timeout_seconds)


def resolve_total_earned(aggregator: EarningsAggregator, user_id: UUID) -> Decimal:
    """Total external earnings for ``user_id``, or zero if the lookup fails."""
    try:
        total = aggregator.total_earned(user_id)
    except Exception as exc:
        logger.warning(
            "External earnings lookup failed for {user_id}, using 0: {error}",
            user_id=user_id,
            error=repr(exc),
        )
        return ZERO
    return max(ZERO, to_money(total))


def available_external(total_earned: Decimal, withdrawn: Decimal) -> Decimal:
    return max(ZERO, to_money(total_earned) - to_money(withdrawn))


__all__ = [
    "EarningsAggregator",
    "HttpEarningsAggregator",
    "SubmissionEarningsAggregator",
    "available_external",
    "build_aggregator",
    "resolve_total_earned",
]
