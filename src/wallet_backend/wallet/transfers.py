"""Transfer orchestration: validate, build, sign, broadcast, confirm.

All fund-moving endpoints share :meth:`TransferOrchestrator.transfer`.
They differ only in how the destination and amount are resolved from the
request, which is described by a :class:`TransferPolicy`.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Optional, Union

from web3 import Web3

from wallet_backend.exceptions import (
    ChainCommunicationError,
    ConfirmationPending,
    InsufficientBalance,
    InvalidRequest,
    SelfTransferRejected,
)
from wallet_backend.wallet.pricing import PriceOracle
from wallet_backend.wallet.provider import TRANSFER_GAS_LIMIT, Web3ChainClient
from wallet_backend.wallet.signer import Signer
from wallet_backend.wallet.units import (
    format_ether,
    format_gwei,
    parse_amount,
    to_wei,
    truncate_to_wei,
)

logger = logging.getLogger("wallet_backend.wallet.transfers")

# An amount is either fixed up front or derived from the live balance (in ether).
AmountSpec = Union[Decimal, Callable[[Decimal], Decimal]]


@dataclass
class TransactionRecord:
    """The confirmed result of a transfer."""

    tx_hash: str
    sender: str
    recipient: str
    amount: Decimal
    block_number: int
    gas_used: int
    effective_gas_price: int
    confirmations: int
    purpose: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": True,
            "txHash": self.tx_hash,
            "from": self.sender,
            "to": self.recipient,
            "amount": str(self.amount),
            "blockNumber": self.block_number,
            "gasUsed": str(self.gas_used),
            "effectiveGasPrice": str(self.effective_gas_price),
            "confirmations": self.confirmations,
        }
        if self.purpose:
            data["purpose"] = self.purpose
        return data


class TransferOrchestrator:
    """Moves native currency out of the backend wallet.

    Submissions are serialized per wallet: the lock is held from the
    balance read through broadcast, so two requests can never observe the
    same pending nonce. The confirmation wait runs outside the lock.
    """

    def __init__(
        self,
        signer: Signer,
        client: Web3ChainClient,
        confirmations: int = 1,
        confirmation_timeout: float = 600.0,
        poll_interval: float = 2.0,
    ) -> None:
        self.signer = signer
        self.client = client
        self.confirmations = confirmations
        self.confirmation_timeout = confirmation_timeout
        self.poll_interval = poll_interval
        self._submit_lock = threading.Lock()

    def transfer(
        self,
        destination: Optional[str],
        amount: Optional[AmountSpec],
        purpose: Optional[str] = None,
        reserve: Decimal = Decimal("0"),
    ) -> TransactionRecord:
        """Send *amount* ether to *destination* and wait for confirmation.

        *amount* may be a callable taking the live balance (in ether); it is
        evaluated under the submission lock. *reserve* is extra balance that
        must remain available on top of the amount (gas headroom).
        """
        if not destination or amount is None:
            raise InvalidRequest("Missing parameters")
        if not Web3.is_address(destination):
            raise InvalidRequest("Invalid address")
        if self.signer.owns(destination):
            raise SelfTransferRejected()
        if not callable(amount):
            amount = _require_positive(amount)

        sender = self.signer.address
        recipient = Web3.to_checksum_address(destination)

        with self._submit_lock:
            balance_wei = self.client.get_balance(sender)
            balance = Decimal(balance_wei) / Decimal(10**18)
            value = _require_positive(amount(balance)) if callable(amount) else amount
            value = _require_positive(truncate_to_wei(value))

            required = value + reserve
            if balance < required:
                raise InsufficientBalance(
                    balance=format_ether(balance_wei),
                    required=str(required) if reserve else None,
                )

            gas_price = self.client.get_gas_price()
            nonce = self.client.get_nonce(sender, "pending")
            intent = {
                "to": recipient,
                "value": to_wei(value),
                "nonce": nonce,
                "gas": TRANSFER_GAS_LIMIT,
                "gasPrice": gas_price,
                "chainId": self.client.chain_id,
            }
            logger.info(
                f"Signing transfer: from={sender} to={recipient} amount={value} "
                f"nonce={nonce} gasPrice={format_gwei(gas_price)} gwei purpose={purpose or '-'}"
            )
            signed = self.signer.sign_transaction(intent)
            tx_hash = self.client.send_raw_transaction(signed.raw_transaction)
            logger.info(f"Transaction broadcast: {tx_hash}")

        receipt = self._await_receipt(tx_hash)
        logger.info(f"Transaction {tx_hash} confirmed in block {receipt['blockNumber']}")

        return TransactionRecord(
            tx_hash=tx_hash,
            sender=sender,
            recipient=recipient,
            amount=value,
            block_number=receipt["blockNumber"],
            gas_used=receipt["gasUsed"],
            effective_gas_price=receipt.get("effectiveGasPrice", gas_price),
            confirmations=self._confirmation_count(tx_hash, receipt),
            purpose=purpose,
        )

    def _await_receipt(self, tx_hash: str) -> dict:
        """Wait for *tx_hash*; every failure from here on carries the hash.

        A node error during the wait is treated like a timeout: the receipt
        is looked up once more by hash, and if it is still unknown the caller
        gets :class:`ConfirmationPending` rather than a bare error.
        """
        failure: Optional[ChainCommunicationError] = None
        try:
            receipt = self.client.wait_for_confirmations(
                tx_hash,
                confirmations=self.confirmations,
                timeout=self.confirmation_timeout,
                poll_interval=self.poll_interval,
            )
        except ChainCommunicationError as exc:
            logger.warning(f"Waiting on {tx_hash} failed: {exc}")
            failure = exc
            receipt = None

        if receipt is None:
            receipt = self._lookup_receipt(tx_hash)
        if receipt is None:
            if failure is not None:
                raise ConfirmationPending(
                    tx_hash,
                    f"Transaction {tx_hash} broadcast but confirmation status unknown: {failure}",
                )
            raise ConfirmationPending(tx_hash)
        if receipt.get("status") == 0:
            raise ChainCommunicationError(
                f"Transaction {tx_hash} reverted", code="CALL_EXCEPTION", tx_hash=tx_hash
            )
        return receipt

    def _lookup_receipt(self, tx_hash: str) -> Optional[dict]:
        try:
            return self.client.get_receipt(tx_hash)
        except ChainCommunicationError as exc:
            logger.warning(f"Receipt lookup for {tx_hash} failed: {exc}")
            return None

    def _confirmation_count(self, tx_hash: str, receipt: dict) -> int:
        try:
            return self.client.confirmations(receipt)
        except ChainCommunicationError as exc:
            logger.warning(f"Could not read chain head for {tx_hash}: {exc}")
            # A mined receipt is at least one block deep.
            return 1


def _require_positive(value: object) -> Decimal:
    amount = parse_amount(value)
    if amount is None:
        raise InvalidRequest("Invalid amount")
    return amount


# ---------------------------------------------------------------------------
# Resolution strategies
# ---------------------------------------------------------------------------


@dataclass
class ResolutionContext:
    """What a policy may consult besides the request body."""

    treasury_address: Optional[str]
    oracle: PriceOracle
    reserve: Decimal
    default_amount: Decimal


DestinationResolver = Callable[[dict, ResolutionContext], Optional[str]]
AmountResolver = Callable[[dict, ResolutionContext], Optional[AmountSpec]]


def explicit_destination(key: str = "toAddress") -> DestinationResolver:
    """Take the destination from one body field only."""

    def resolve(body: dict, ctx: ResolutionContext) -> Optional[str]:
        return body.get(key) or None

    return resolve


def first_destination(*keys: str, treasury_fallback: bool = False) -> DestinationResolver:
    """First non-empty body field among *keys*, optionally the configured treasury."""

    def resolve(body: dict, ctx: ResolutionContext) -> Optional[str]:
        for key in keys:
            if body.get(key):
                return body[key]
        if treasury_fallback and ctx.treasury_address:
            return ctx.treasury_address
        return None

    return resolve


def fixed_amount(key: str = "amountETH", use_default: bool = False) -> AmountResolver:
    """``amountETH`` as given; optionally the configured default when absent."""

    def resolve(body: dict, ctx: ResolutionContext) -> Optional[AmountSpec]:
        raw = body.get(key)
        if use_default:
            return parse_amount(raw) or ctx.default_amount
        if raw is None or raw == "":
            return None
        # Let the orchestrator reject unparsable amounts as invalid.
        return raw

    return resolve


def usd_conversion(use_default: bool = False) -> AmountResolver:
    """``amountETH`` if positive, else ``amountUSD`` converted at the oracle price."""

    def resolve(body: dict, ctx: ResolutionContext) -> Optional[AmountSpec]:
        amount = parse_amount(body.get("amountETH"))
        if amount is not None:
            return amount
        usd = parse_amount(body.get("amountUSD"))
        if usd is not None:
            return ctx.oracle.from_usd(usd)
        return ctx.default_amount if use_default else None

    return resolve


def percentage_of_balance() -> AmountResolver:
    """``percentage``% of the live balance less the reserve, else the fixed amount."""
    fallback = fixed_amount(use_default=True)

    def resolve(body: dict, ctx: ResolutionContext) -> Optional[AmountSpec]:
        percentage = parse_amount(body.get("percentage"))
        if percentage is None:
            return fallback(body, ctx)
        if percentage > 100:
            raise InvalidRequest("Invalid percentage")
        reserve = ctx.reserve
        return lambda balance: balance * percentage / Decimal(100) - reserve

    return resolve


@dataclass
class TransferPolicy:
    """One named way of turning a request body into a transfer."""

    name: str
    destination: DestinationResolver
    amount: AmountResolver
    use_reserve: bool = True
    include_usd: bool = False
    missing_destination: str = "Missing destination address"

    def execute(
        self,
        orchestrator: TransferOrchestrator,
        body: dict,
        ctx: ResolutionContext,
    ) -> dict[str, Any]:
        destination = self.destination(body, ctx)
        if not destination:
            raise InvalidRequest(self.missing_destination)
        amount = self.amount(body, ctx)
        record = orchestrator.transfer(
            destination,
            amount,
            purpose=self.name,
            reserve=ctx.reserve if self.use_reserve else Decimal("0"),
        )
        data = record.to_dict()
        if self.include_usd:
            data["amountUSD"] = str(ctx.oracle.to_usd(record.amount).quantize(Decimal("0.01")))
        return data


def default_policies() -> dict[str, TransferPolicy]:
    """The treasury-moving policies exposed over HTTP, keyed by name."""
    treasury_keys = ("treasury", "to", "toAddress")
    policies = [
        TransferPolicy(
            name="withdraw",
            destination=explicit_destination("toAddress"),
            amount=fixed_amount(),
            use_reserve=False,
            missing_destination="Missing parameters",
        ),
        TransferPolicy(
            name="convert-earnings",
            destination=first_destination(*treasury_keys),
            amount=usd_conversion(),
            include_usd=True,
        ),
        TransferPolicy(
            name="fund-from-earnings",
            destination=first_destination(*treasury_keys, treasury_fallback=True),
            amount=usd_conversion(use_default=True),
        ),
        TransferPolicy(
            name="withdraw-profits",
            destination=first_destination(*treasury_keys, treasury_fallback=True),
            amount=percentage_of_balance(),
        ),
        TransferPolicy(
            name="claim-mev-profits",
            destination=first_destination("to", "toAddress", "treasury", treasury_fallback=True),
            amount=fixed_amount(use_default=True),
        ),
    ]
    return {p.name: p for p in policies}
