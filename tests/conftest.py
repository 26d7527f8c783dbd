"""
Pytest fixtures for wallet backend tests.

The node is replaced by FakeChainClient, an in-memory stand-in with the same
surface as Web3ChainClient. Signing uses a real eth-account key, so signed
payloads and hashes are genuine.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from eth_account import Account
from web3 import Web3

from wallet_backend.config import TransfersConfig
from wallet_backend.wallet.chains import get_chain
from wallet_backend.wallet.pricing import FixedPriceOracle
from wallet_backend.wallet.service import WalletService
from wallet_backend.wallet.signer import Signer

# Throwaway key from the web3.py documentation; never funded on any network.
TEST_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
TEST_ADDRESS = Account.from_key(TEST_KEY).address

RECIPIENT = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
TREASURY = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"

ONE_ETH = 10**18
GWEI = 10**9


class FakeChainClient:
    """Records every call; mines each broadcast into the next block."""

    def __init__(self, balance_wei: int = 5 * ONE_ETH, gas_price: int = 20 * GWEI) -> None:
        self.chain = get_chain("ethereum")
        self.balance_wei = balance_wei
        self.gas_price = gas_price
        self.nonce = 7
        self.head = 100
        self.never_mine = False
        self.revert = False
        self.calls: list[str] = []
        self.broadcasts: list[bytes] = []
        self.transactions: dict[str, dict] = {}
        self.receipts: dict[str, dict] = {}

    @property
    def chain_id(self) -> int:
        return self.chain.chain_id

    def get_balance(self, address: str) -> int:
        self.calls.append("get_balance")
        return self.balance_wei

    def get_nonce(self, address: str, block: str = "latest") -> int:
        self.calls.append(f"get_nonce:{block}")
        return self.nonce + len(self.broadcasts) if block == "pending" else self.nonce

    def get_gas_price(self) -> int:
        self.calls.append("get_gas_price")
        return self.gas_price

    def block_number(self) -> int:
        return self.head

    def estimate_gas(self, tx: dict) -> int:
        self.calls.append("estimate_gas")
        return 21_000

    def send_raw_transaction(self, raw_transaction: bytes) -> str:
        self.calls.append("send_raw_transaction")
        self.broadcasts.append(raw_transaction)
        tx_hash = Web3.to_hex(Web3.keccak(raw_transaction))
        self.transactions[tx_hash] = {
            "hash": Web3.keccak(raw_transaction),
            "from": TEST_ADDRESS,
            "to": RECIPIENT,
            "value": ONE_ETH // 10,
            "gasPrice": self.gas_price,
            "nonce": self.nonce,
            "blockNumber": None,
        }
        return tx_hash

    def _mine(self, tx_hash: str) -> dict:
        self.head += 1
        receipt = {
            "transactionHash": tx_hash,
            "blockNumber": self.head,
            "gasUsed": 21_000,
            "effectiveGasPrice": self.gas_price,
            "status": 0 if self.revert else 1,
        }
        self.receipts[tx_hash] = receipt
        self.transactions[tx_hash]["blockNumber"] = self.head
        return receipt

    def wait_for_confirmations(self, tx_hash, confirmations=1, timeout=600.0, poll_interval=2.0):
        self.calls.append("wait_for_confirmations")
        if self.never_mine:
            return None
        return self._mine(tx_hash)

    def get_transaction(self, tx_hash: str):
        return self.transactions.get(tx_hash)

    def get_receipt(self, tx_hash: str):
        return self.receipts.get(tx_hash)

    def confirmations(self, receipt: dict) -> int:
        return max(0, self.head - receipt["blockNumber"] + 1)


@pytest.fixture
def fake_chain():
    return FakeChainClient()


@pytest.fixture
def signer():
    return Signer.from_key(TEST_KEY)


@pytest.fixture
def service(signer, fake_chain):
    return WalletService(
        signer,
        fake_chain,
        FixedPriceOracle(Decimal("3450")),
        transfers=TransfersConfig(treasury_address=TREASURY, poll_interval=0),
    )


@pytest.fixture
def client(service):
    """FastAPI TestClient wired to the fake chain."""
    from fastapi.testclient import TestClient

    from wallet_backend.api.server import create_app

    return TestClient(create_app(service))
