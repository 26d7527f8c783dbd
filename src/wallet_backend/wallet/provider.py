"""Web3 chain client for an EVM JSON-RPC node."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional, TypeVar

from web3 import Web3
from web3.exceptions import TimeExhausted, TransactionNotFound
from web3.middleware import ExtraDataToPOAMiddleware

from wallet_backend.exceptions import ChainCommunicationError
from wallet_backend.wallet.chains import Chain

logger = logging.getLogger("wallet_backend.wallet.provider")

T = TypeVar("T")

# A plain value transfer always costs exactly this much gas.
TRANSFER_GAS_LIMIT = 21_000


def _error_code(exc: Exception) -> Any:
    """Pull a JSON-RPC error code out of a web3 exception, if it carries one."""
    response = getattr(exc, "rpc_response", None)
    if isinstance(response, dict):
        error = response.get("error")
        if isinstance(error, dict):
            return error.get("code")
    if exc.args and isinstance(exc.args[0], dict):
        return exc.args[0].get("code")
    return getattr(exc, "code", None)


def _error_message(exc: Exception) -> str:
    if exc.args and isinstance(exc.args[0], dict):
        return str(exc.args[0].get("message", exc))
    return str(exc) or type(exc).__name__


def _wrap(exc: Exception) -> ChainCommunicationError:
    return ChainCommunicationError(_error_message(exc), code=_error_code(exc))


class Web3ChainClient:
    """Capability adapter over a single ``Web3`` HTTP connection.

    Every node failure is re-raised as :class:`ChainCommunicationError`;
    lookups that simply find nothing return ``None``.
    """

    def __init__(self, chain: Chain, request_timeout: float = 60.0, w3: Web3 | None = None) -> None:
        self.chain = chain
        if w3 is None:
            w3 = Web3(
                Web3.HTTPProvider(chain.rpc_url, request_kwargs={"timeout": request_timeout})
            )
            if chain.poa:
                w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        self.w3 = w3

    @property
    def chain_id(self) -> int:
        return self.chain.chain_id

    def _call(self, what: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return fn(*args, **kwargs)
        except ChainCommunicationError:
            raise
        except Exception as exc:
            logger.warning(f"Node call '{what}' failed: {exc}")
            raise _wrap(exc) from exc

    # ------------------------------------------------------------------
    # Account state
    # ------------------------------------------------------------------

    def get_balance(self, address: str) -> int:
        """Balance in wei."""
        checksum = Web3.to_checksum_address(address)
        return self._call("get_balance", self.w3.eth.get_balance, checksum)

    def get_nonce(self, address: str, block: str = "latest") -> int:
        """Transaction count; pass ``block="pending"`` to count in-flight txs."""
        checksum = Web3.to_checksum_address(address)
        return self._call(
            "get_transaction_count", self.w3.eth.get_transaction_count, checksum, block
        )

    def get_gas_price(self) -> int:
        """Current legacy gas price in wei."""
        return self._call("gas_price", lambda: self.w3.eth.gas_price)

    def block_number(self) -> int:
        return self._call("block_number", lambda: self.w3.eth.block_number)

    def estimate_gas(self, tx: dict) -> int:
        return self._call("estimate_gas", self.w3.eth.estimate_gas, tx)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def send_raw_transaction(self, raw_transaction: bytes) -> str:
        """Broadcast a signed transaction and return its 0x-hex hash."""
        tx_hash = self._call(
            "send_raw_transaction", self.w3.eth.send_raw_transaction, raw_transaction
        )
        return Web3.to_hex(tx_hash)

    def get_transaction(self, tx_hash: str) -> Optional[dict]:
        try:
            tx = self.w3.eth.get_transaction(tx_hash)
        except TransactionNotFound:
            return None
        except Exception as exc:
            raise _wrap(exc) from exc
        return dict(tx) if tx is not None else None

    def get_receipt(self, tx_hash: str) -> Optional[dict]:
        try:
            receipt = self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        except Exception as exc:
            raise _wrap(exc) from exc
        return dict(receipt) if receipt is not None else None

    def confirmations(self, receipt: dict) -> int:
        """Number of blocks that include *receipt*'s block (the block itself counts)."""
        block = receipt.get("blockNumber")
        if block is None:
            return 0
        return max(0, self.block_number() - block + 1)

    def wait_for_confirmations(
        self,
        tx_hash: str,
        confirmations: int = 1,
        timeout: float = 600.0,
        poll_interval: float = 2.0,
    ) -> Optional[dict]:
        """Block until *tx_hash* is mined and has *confirmations* blocks.

        Returns the receipt, or ``None`` if it was not mined within
        *timeout* seconds. A receipt is returned even when the deadline
        passes between inclusion and the requested depth.
        """
        deadline = time.monotonic() + timeout
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout, poll_latency=poll_interval
            )
        except TimeExhausted:
            logger.warning(f"No receipt for {tx_hash} after {timeout}s")
            return None
        except Exception as exc:
            raise _wrap(exc) from exc

        receipt = dict(receipt)
        while self.confirmations(receipt) < confirmations:
            if time.monotonic() >= deadline:
                logger.warning(
                    f"{tx_hash} mined in block {receipt['blockNumber']} but did not reach "
                    f"{confirmations} confirmations within {timeout}s"
                )
                break
            time.sleep(poll_interval)
        return receipt
