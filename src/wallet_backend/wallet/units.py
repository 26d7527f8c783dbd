"""Amount parsing and display helpers."""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Optional

from web3 import Web3

# Wei precision: amounts finer than this cannot be represented on chain.
_WEI_QUANTUM = Decimal("1e-18")


def parse_amount(value: object) -> Optional[Decimal]:
    """Parse a native-unit amount, returning ``None`` if it is not a positive number."""
    if value is None or value == "":
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return amount


def truncate_to_wei(amount: Decimal) -> Decimal:
    """Drop digits below one wei; amounts already within wei precision are untouched."""
    if amount.as_tuple().exponent < -18:
        return amount.quantize(_WEI_QUANTUM, rounding=ROUND_DOWN)
    return amount


def to_wei(amount: Decimal) -> int:
    """Convert ether to wei."""
    return int(Web3.to_wei(truncate_to_wei(amount), "ether"))


def _plain(value: Decimal) -> str:
    text = format(value.normalize(), "f")
    return text if "." in text else f"{text}.0"


def format_ether(wei: int) -> str:
    """``500000000000000000`` -> ``"0.5"``, ``10**18`` -> ``"1.0"``."""
    return _plain(Decimal(wei) / Decimal(10**18))


def format_gwei(wei: int) -> str:
    return _plain(Decimal(wei) / Decimal(10**9))


def format_usd(amount: Decimal) -> str:
    return str(amount.quantize(Decimal("0.01")))
