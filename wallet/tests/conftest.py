from decimal import Decimal
from uuid import UUID

import pytest

from wallet.context import build_context
from wallet.db import build_engine, build_session_maker, init_db
from wallet.models import Account


class FakeAggregator:
    """External earnings source with per-user totals set by the test."""

    def __init__(self):
        self.totals: dict[UUID, Decimal] = {}
        self.error: Exception | None = None
        self.calls = 0

    def total_earned(self, user_id: UUID) -> Decimal:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.totals.get(user_id, Decimal("0"))


@pytest.fixture
def session_maker():
    engine = build_engine("sqlite://", echo=False)
    init_db(engine)
    yield build_session_maker(engine)
    engine.dispose()


@pytest.fixture
def aggregator():
    return FakeAggregator()


@pytest.fixture
def ctx(session_maker, aggregator):
    return build_context(session_maker, aggregator=aggregator)


@pytest.fixture
def make_account(ctx, session_maker):
    """Register an account and set its balance fields directly."""

    def _make(
        name="Ali Raza",
        email=None,
        *,
        deposit="0",
        referral="0",
        external_withdrawn="0",
        referral_code=None,
        referred_by=None,
        is_admin=False,
    ):
        email = email or f"{name.split()[0].lower()}.{len(_make.created)}@example.com"
        account = ctx.accounts.register(name, email, is_admin=is_admin)
        with session_maker() as session, session.begin():
            row = session.get(Account, account.id)
            row.deposit_balance = Decimal(deposit)
            row.referral_earnings = Decimal(referral)
            row.external_earnings_withdrawn = Decimal(external_withdrawn)
            if referral_code is not None:
                row.referral_code = referral_code
            if referred_by is not None:
                row.referred_by = referred_by
            session.add(row)
        _make.created.append(account.id)
        return account.id

    _make.created = []
    return _make


@pytest.fixture
def load_account(session_maker):
    def _load(user_id: UUID) -> Account:
        with session_maker() as session:
            return session.get(Account, user_id)

    return _load
