"""In-memory earnings counter."""

from __future__ import annotations

import logging
import math
import threading

logger = logging.getLogger("wallet_backend.wallet.ledger")


def _coerce_amount(value: object) -> float:
    """Parse a credited amount; anything unusable counts as zero."""
    try:
        amount = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(amount) or amount < 0:
        return 0.0
    return amount


class EarningsLedger:
    """Thread-safe USD earnings accumulator.

    Externally reported revenue is added here and read back on demand.
    The counter is advisory telemetry: transfers never debit it and it is
    lost on restart.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total_usd = 0.0

    def credit(self, amount_usd: object, source: str | None = None) -> float:
        """Add *amount_usd* to the counter and return the new total."""
        amount = _coerce_amount(amount_usd)
        with self._lock:
            self._total_usd += amount
            total = self._total_usd
        logger.info(f"Credited ${amount} from {source or 'unknown'}. Total: ${total}")
        return total

    @property
    def total(self) -> float:
        with self._lock:
            return self._total_usd
