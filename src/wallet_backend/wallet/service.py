"""High-level wallet service used by the HTTP API and the CLI."""

from __future__ import annotations

import logging
import re
from decimal import Decimal
from typing import Any, Optional

from web3 import Web3

from wallet_backend.config import ServiceConfig, TransfersConfig
from wallet_backend.exceptions import InvalidRequest, NotFound
from wallet_backend.wallet.ledger import EarningsLedger
from wallet_backend.wallet.pricing import PriceOracle, build_oracle
from wallet_backend.wallet.provider import Web3ChainClient
from wallet_backend.wallet.signer import Signer
from wallet_backend.wallet.transfers import (
    ResolutionContext,
    TransactionRecord,
    TransferOrchestrator,
    TransferPolicy,
    default_policies,
)
from wallet_backend.wallet.units import format_ether, format_gwei, format_usd, parse_amount, to_wei

logger = logging.getLogger("wallet_backend.wallet.service")

_TX_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


class WalletService:
    """Owns the signer, chain client, price oracle, earnings ledger and
    transfer orchestrator for one custodial wallet.

    Build it once at startup with :meth:`from_config` and pass it to
    whatever serves requests. Construction fails if the key is unusable.
    """

    def __init__(
        self,
        signer: Signer,
        client: Web3ChainClient,
        oracle: PriceOracle,
        ledger: EarningsLedger | None = None,
        transfers: TransfersConfig | None = None,
        policies: dict[str, TransferPolicy] | None = None,
    ) -> None:
        transfers = transfers or TransfersConfig()
        self.signer = signer
        self.client = client
        self.oracle = oracle
        self.ledger = ledger or EarningsLedger()
        self.policies = policies or default_policies()
        self.reserve = transfers.gas_reserve_eth
        self.default_amount = transfers.default_amount_eth
        self.treasury_address = self._checked_treasury(transfers.treasury_address)
        self.orchestrator = TransferOrchestrator(
            signer,
            client,
            confirmations=transfers.confirmations,
            confirmation_timeout=transfers.confirmation_timeout,
            poll_interval=transfers.poll_interval,
        )

    @classmethod
    def from_config(cls, config: ServiceConfig) -> WalletService:
        """Build the service from configuration.

        Raises
        ------
        SigningError
            If the private key is missing or malformed.
        """
        signer = Signer.from_key(config.wallet.private_key)
        chain = config.chain
        client = Web3ChainClient(chain, request_timeout=config.node.request_timeout)
        oracle = build_oracle(
            config.pricing.source,
            config.pricing.usd_per_eth,
            symbol=chain.native_symbol,
            timeout=config.pricing.timeout,
        )
        logger.info(f"Wallet service ready on {chain.name} (chainId={chain.chain_id})")
        return cls(signer, client, oracle, transfers=config.transfers)

    def _checked_treasury(self, address: str) -> Optional[str]:
        if not address or address.startswith("${"):
            return None
        if not Web3.is_address(address):
            logger.warning(f"Ignoring invalid treasury address {address!r}")
            return None
        return Web3.to_checksum_address(address)

    @property
    def address(self) -> str:
        return self.signer.address

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    def transfer(self, destination: str, amount: str | Decimal, purpose: str | None = None) -> TransactionRecord:
        """Plain withdrawal with no gas reserve."""
        return self.orchestrator.transfer(destination, amount, purpose=purpose)

    def run_policy(self, name: str, body: dict) -> dict[str, Any]:
        """Resolve and execute the named transfer policy against *body*."""
        policy = self.policies[name]
        ctx = ResolutionContext(
            treasury_address=self.treasury_address,
            oracle=self.oracle,
            reserve=self.reserve,
            default_amount=self.default_amount,
        )
        return policy.execute(self.orchestrator, body, ctx)

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------

    def get_balance(self) -> dict[str, Any]:
        balance = self.client.get_balance(self.address)
        nonce = self.client.get_nonce(self.address)
        gas_price = self.client.get_gas_price()
        return {
            "address": self.address,
            "balance": format_ether(balance),
            "nonce": nonce,
            "gasPrice": format_gwei(gas_price),
        }

    def get_transaction_status(self, tx_hash: str) -> dict[str, Any]:
        """Look a transaction and its receipt up by hash.

        Either part is ``None`` while unknown (a pending transaction has no
        receipt yet). Raises :class:`NotFound` when the node knows neither.
        """
        if not _TX_HASH_RE.match(tx_hash or ""):
            raise InvalidRequest("Invalid transaction hash")

        tx = self.client.get_transaction(tx_hash)
        receipt = self.client.get_receipt(tx_hash)
        if tx is None and receipt is None:
            raise NotFound("Transaction not found")

        return {
            "transaction": _format_transaction(tx) if tx else None,
            "receipt": {
                "status": receipt.get("status"),
                "blockNumber": receipt.get("blockNumber"),
                "gasUsed": str(receipt.get("gasUsed")),
                "confirmations": self.client.confirmations(receipt),
            } if receipt else None,
        }

    def estimate_transfer_cost(self, destination: str | None, amount: object) -> dict[str, Any]:
        """Quote the network fee for a transfer. Nothing is signed or sent.

        The USD figure uses the configured price oracle and is advisory.
        """
        if not destination or amount is None or amount == "":
            raise InvalidRequest("Missing parameters")
        if not Web3.is_address(destination):
            raise InvalidRequest("Invalid address")
        value = parse_amount(amount)
        if value is None:
            raise InvalidRequest("Invalid amount")

        gas_limit = self.client.estimate_gas({
            "from": self.address,
            "to": Web3.to_checksum_address(destination),
            "value": to_wei(value),
        })
        gas_price = self.client.get_gas_price()
        cost_wei = gas_limit * gas_price
        cost_usd = self.oracle.to_usd(Decimal(cost_wei) / Decimal(10**18))
        return {
            "gasLimit": str(gas_limit),
            "gasPrice": format_gwei(gas_price),
            "totalCost": format_ether(cost_wei),
            "totalCostUSD": format_usd(cost_usd),
            "advisory": True,
        }

    def sign_message(self, message: str | None) -> dict[str, Any]:
        if message is None:
            raise InvalidRequest("Missing message")
        return {
            "message": message,
            "signature": self.signer.sign_message(message),
            "signer": self.address,
        }

    # ------------------------------------------------------------------
    # Earnings
    # ------------------------------------------------------------------

    def credit_earnings(self, amount_usd: object, source: str | None = None) -> float:
        return self.ledger.credit(amount_usd, source)

    def read_earnings(self) -> dict[str, Any]:
        balance_wei = self.client.get_balance(self.address)
        balance = Decimal(balance_wei) / Decimal(10**18)
        return {
            "earningsUSD": self.ledger.total,
            "backendBalanceETH": format_ether(balance_wei),
            "backendBalanceUSD": format_usd(self.oracle.to_usd(balance)),
        }


def _format_transaction(tx: dict) -> dict[str, Any]:
    tx_hash = tx.get("hash")
    gas_price = tx.get("gasPrice")
    return {
        "hash": Web3.to_hex(tx_hash) if tx_hash is not None else None,
        "from": tx.get("from"),
        "to": tx.get("to"),
        "value": format_ether(tx.get("value", 0)),
        "gasPrice": str(gas_price) if gas_price is not None else None,
        "nonce": tx.get("nonce"),
        "blockNumber": tx.get("blockNumber"),
    }
