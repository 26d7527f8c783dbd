"""Error taxonomy for the wallet backend.

Every error raised by the service layer derives from
:class:`WalletServiceError`, which carries the HTTP status the API layer
should answer with and the JSON body to send.
"""

from __future__ import annotations

from typing import Any, Optional


class WalletServiceError(Exception):
    """Base class for service-layer errors."""

    status_code: int = 500

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        body.update({k: v for k, v in self.extra.items() if v is not None})
        return body


class InvalidRequest(WalletServiceError):
    """Raised when request input is missing or malformed."""

    status_code = 400


class SelfTransferRejected(WalletServiceError):
    """Raised when the destination is the backend wallet itself."""

    status_code = 400

    def __init__(self, message: str = "Cannot send to backend wallet") -> None:
        super().__init__(message)


class InsufficientBalance(WalletServiceError):
    """Raised when the live wallet balance cannot cover the transfer."""

    status_code = 400

    def __init__(
        self,
        balance: str,
        required: Optional[str] = None,
        message: str = "Insufficient backend balance",
    ) -> None:
        super().__init__(message, balance=balance, required=required)
        self.balance = balance
        self.required = required


class SigningError(WalletServiceError):
    """Raised when the key is unusable or a payload cannot be signed."""

    status_code = 500


class ChainCommunicationError(WalletServiceError):
    """Raised for any failure talking to the node (network, rejection, RPC error)."""

    status_code = 502

    def __init__(self, message: str, code: Any = None, tx_hash: Optional[str] = None) -> None:
        super().__init__(message, code=code, txHash=tx_hash)
        self.code = code
        self.tx_hash = tx_hash


class NotFound(WalletServiceError):
    """Raised when a transaction lookup finds nothing."""

    status_code = 404


class ConfirmationPending(WalletServiceError):
    """Raised when a broadcast succeeded but no receipt could be obtained.

    Covers both the wait running out and the node failing mid-wait. The
    transaction may still confirm later; callers should poll it by hash.
    """

    status_code = 202

    def __init__(self, tx_hash: str, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"Transaction {tx_hash} broadcast but not yet confirmed",
            txHash=tx_hash,
        )
        self.tx_hash = tx_hash

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["success"] = False
        body["pending"] = True
        return body
