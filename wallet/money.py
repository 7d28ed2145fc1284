"""Decimal helpers for amounts in the ledger currency (two minor digits)."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from .config import get_settings

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Amount = Union[Decimal, int, float, str]


def to_money(value: Amount | None) -> Decimal:
    """Coerce ``value`` to a Decimal rounded half-up to the minor unit.

    ``None`` and blank strings count as zero. Floats go through ``str`` so
    ``0.1`` becomes ``0.10`` rather than its binary expansion.
    """
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = str(value)
    if isinstance(value, str):
        value = value.strip() or "0"
    try:
        return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc


def percentage_of(amount: Amount, percentage: Amount) -> Decimal:
    return to_money(Decimal(str(amount)) * Decimal(str(percentage)) / Decimal(100))


def format_money(amount: Amount | None, show_symbol: bool = True) -> str:
    value = to_money(amount)
    text = f"{value:,.2f}"
    if not show_symbol:
        return text
    return f"{get_settings().ledger.currency_symbol} {text}"


__all__ = ["CENT", "ZERO", "format_money", "percentage_of", "to_money"]
