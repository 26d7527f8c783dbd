"""Single-key signer built on eth-account."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from wallet_backend.exceptions import SigningError

logger = logging.getLogger("wallet_backend.wallet.signer")


@dataclass(frozen=True)
class SignedTransaction:
    """A signed, broadcast-ready transaction."""

    raw_transaction: bytes
    tx_hash: str


class Signer:
    """Holds one private key for the life of the process.

    The key is never persisted or logged. Construct with :meth:`from_key`,
    which refuses to build a signer from a missing or malformed key.
    """

    def __init__(self, account) -> None:
        self._account = account

    @classmethod
    def from_key(cls, private_key: str | bytes | None) -> Signer:
        """Build a signer from a hex or raw private key.

        Raises
        ------
        SigningError
            If the key is absent or cannot be parsed.
        """
        if not private_key:
            raise SigningError("No private key configured (set BACKEND_PRIVATE_KEY)")
        if isinstance(private_key, str):
            private_key = private_key.strip()
        try:
            account = Account.from_key(private_key)
        except Exception as exc:
            # The key itself must never end up in the message.
            raise SigningError(f"Malformed private key: {type(exc).__name__}") from None
        logger.info(f"Signer loaded for {account.address}")
        return cls(account)

    @property
    def address(self) -> str:
        return self._account.address

    def owns(self, address: str) -> bool:
        return address.lower() == self.address.lower()

    def sign_transaction(self, intent: dict) -> SignedTransaction:
        """Sign a transaction dict (``to``, ``value``, ``nonce``, ``gas``, ...)."""
        to = intent.get("to")
        if not to or not Web3.is_address(to):
            raise SigningError(f"Invalid recipient address: {to!r}")
        if intent.get("value", 0) < 0:
            raise SigningError("Transaction value must be non-negative")
        if intent.get("nonce", -1) < 0:
            raise SigningError("Transaction nonce must be non-negative")

        intent = {**intent, "to": Web3.to_checksum_address(to)}
        try:
            signed = self._account.sign_transaction(intent)
        except Exception as exc:
            raise SigningError(f"Failed to sign transaction: {exc}") from exc
        return SignedTransaction(
            raw_transaction=bytes(signed.raw_transaction),
            tx_hash=Web3.to_hex(signed.hash),
        )

    def sign_message(self, message: str) -> str:
        """Return the 0x-hex EIP-191 personal signature of *message*."""
        try:
            signed = self._account.sign_message(encode_defunct(text=message))
        except Exception as exc:
            raise SigningError(f"Failed to sign message: {exc}") from exc
        return Web3.to_hex(signed.signature)
