"""USD price quotes for the native asset.

Quotes are advisory: they decorate responses and convert USD-denominated
requests, but nothing here is accurate enough to settle money against.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

import httpx

logger = logging.getLogger("wallet_backend.wallet.pricing")


class PriceOracle:
    """Interface: USD per one unit of the native asset."""

    advisory = True

    def usd_per_native(self) -> Decimal:
        raise NotImplementedError

    def to_usd(self, amount: Decimal) -> Decimal:
        return amount * self.usd_per_native()

    def from_usd(self, amount_usd: Decimal) -> Decimal:
        return amount_usd / self.usd_per_native()


class FixedPriceOracle(PriceOracle):
    """Always answers the configured constant."""

    def __init__(self, usd_per_eth: Decimal | str | float = Decimal("3450")) -> None:
        self._price = Decimal(str(usd_per_eth))
        if self._price <= 0:
            raise ValueError("usd_per_eth must be positive")

    def usd_per_native(self) -> Decimal:
        return self._price


class CoinbasePriceOracle(PriceOracle):
    """Spot price from the public Coinbase API, with a fixed-rate fallback.

    A failed lookup logs a warning and answers the fallback oracle's price.
    """

    SPOT_URL = "https://api.coinbase.com/v2/prices/{symbol}-USD/spot"

    def __init__(
        self,
        fallback: PriceOracle,
        symbol: str = "ETH",
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.fallback = fallback
        self.symbol = symbol
        self._client = client or httpx.Client(timeout=timeout)

    def usd_per_native(self) -> Decimal:
        try:
            resp = self._client.get(self.SPOT_URL.format(symbol=self.symbol))
            resp.raise_for_status()
            price = Decimal(str(resp.json()["data"]["amount"]))
        except (httpx.HTTPError, KeyError, TypeError, ValueError, InvalidOperation) as e:
            logger.warning(f"Coinbase price lookup failed, using fallback: {e}")
            return self.fallback.usd_per_native()
        if price <= 0:
            logger.warning(f"Coinbase returned non-positive price {price}, using fallback")
            return self.fallback.usd_per_native()
        return price

    def close(self) -> None:
        self._client.close()


def build_oracle(source: str, usd_per_eth: Decimal, symbol: str = "ETH", timeout: float = 10.0) -> PriceOracle:
    """Create the oracle named by *source* (``"fixed"`` or ``"coinbase"``)."""
    fixed = FixedPriceOracle(usd_per_eth)
    if source == "fixed":
        return fixed
    if source == "coinbase":
        return CoinbasePriceOracle(fallback=fixed, symbol=symbol, timeout=timeout)
    raise ValueError(f"Unknown price source '{source}'. Available: ['fixed', 'coinbase']")
