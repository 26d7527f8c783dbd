"""Request bodies for the HTTP API.

Every field is optional at this layer so that missing or malformed values
are reported by the service with its own error messages instead of a
generic validation failure. Numeric JSON values are accepted and kept as
strings to preserve decimal precision.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class _Body(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True, populate_by_name=True)


class WithdrawBody(_Body):
    toAddress: Optional[str] = None
    amountETH: Optional[str] = None


class EstimateGasBody(WithdrawBody):
    pass


class SignMessageBody(_Body):
    message: Optional[str] = None


class CreditEarningsBody(_Body):
    amountUSD: Optional[str] = None
    source: Optional[str] = None


class TreasuryTransferBody(_Body):
    """Shared by the treasury-moving endpoints; each reads the fields it needs."""

    treasury: Optional[str] = None
    to: Optional[str] = None
    toAddress: Optional[str] = None
    amountETH: Optional[str] = None
    amountUSD: Optional[str] = None
    percentage: Optional[str] = None
