"""
Pytest tests for Web3ChainClient over a stubbed ``w3`` (no node required).
"""

from __future__ import annotations

import pytest
from web3.exceptions import TimeExhausted, TransactionNotFound

from conftest import GWEI, RECIPIENT
from wallet_backend.exceptions import ChainCommunicationError
from wallet_backend.wallet.chains import get_chain
from wallet_backend.wallet.provider import Web3ChainClient

TX_HASH = "0x" + "ab" * 32


class RPCFailure(Exception):
    """Shaped like web3's RPC errors: the node's reply hangs off ``rpc_response``."""

    def __init__(self, message, rpc_response):
        super().__init__(message)
        self.rpc_response = rpc_response


class StubEth:
    def __init__(self):
        self.heads = [100]
        self.head_reads = 0
        self.receipt = {"blockNumber": 100, "gasUsed": 21_000, "status": 1}
        self.wait_error = None
        self.lookup_error = None
        self.balance_error = None

    @property
    def block_number(self):
        self.head_reads += 1
        head = self.heads[0] if len(self.heads) == 1 else self.heads.pop(0)
        if isinstance(head, Exception):
            raise head
        return head

    @property
    def gas_price(self):
        return 20 * GWEI

    def get_balance(self, address):
        if self.balance_error:
            raise self.balance_error
        return 10**18

    def get_transaction_count(self, address, block):
        return 9 if block == "pending" else 7

    def send_raw_transaction(self, raw):
        return bytes.fromhex("ab" * 32)

    def get_transaction(self, tx_hash):
        if self.lookup_error:
            raise self.lookup_error
        return {"hash": tx_hash, "blockNumber": 100}

    def get_transaction_receipt(self, tx_hash):
        if self.lookup_error:
            raise self.lookup_error
        return self.receipt

    def wait_for_transaction_receipt(self, tx_hash, timeout, poll_latency):
        if self.wait_error:
            raise self.wait_error
        return self.receipt


class StubWeb3:
    def __init__(self):
        self.eth = StubEth()


@pytest.fixture
def stub():
    return StubWeb3()


@pytest.fixture
def chain_client(stub):
    return Web3ChainClient(get_chain("ethereum"), w3=stub)


def test_reads_account_state(chain_client):
    assert chain_client.get_balance(RECIPIENT.lower()) == 10**18
    assert chain_client.get_nonce(RECIPIENT) == 7
    assert chain_client.get_nonce(RECIPIENT, "pending") == 9
    assert chain_client.get_gas_price() == 20 * GWEI
    assert chain_client.chain_id == 1


def test_broadcast_returns_hex_hash(chain_client):
    assert chain_client.send_raw_transaction(b"\x01") == TX_HASH


def test_rpc_error_code_is_kept(chain_client, stub):
    stub.eth.balance_error = RPCFailure(
        "insufficient funds for gas",
        {"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "insufficient funds for gas"}},
    )
    with pytest.raises(ChainCommunicationError) as exc_info:
        chain_client.get_balance(RECIPIENT)
    assert exc_info.value.to_dict() == {"error": "insufficient funds for gas", "code": -32000}
    assert isinstance(exc_info.value.__cause__, RPCFailure)


def test_dict_shaped_error_is_unpacked(chain_client, stub):
    stub.eth.balance_error = ValueError({"code": -32603, "message": "header not found"})
    with pytest.raises(ChainCommunicationError) as exc_info:
        chain_client.get_balance(RECIPIENT)
    assert exc_info.value.to_dict() == {"error": "header not found", "code": -32603}


def test_transport_error_is_wrapped_without_code(chain_client, stub):
    stub.eth.balance_error = ConnectionError("connection refused")
    with pytest.raises(ChainCommunicationError) as exc_info:
        chain_client.get_balance(RECIPIENT)
    assert exc_info.value.to_dict() == {"error": "connection refused"}


def test_lookups_return_none_when_not_found(chain_client, stub):
    stub.eth.lookup_error = TransactionNotFound(f"Transaction with hash {TX_HASH} not found")
    assert chain_client.get_transaction(TX_HASH) is None
    assert chain_client.get_receipt(TX_HASH) is None


def test_lookup_node_failure_is_wrapped(chain_client, stub):
    stub.eth.lookup_error = ConnectionError("connection reset")
    with pytest.raises(ChainCommunicationError, match="connection reset"):
        chain_client.get_receipt(TX_HASH)


def test_confirmations_counts_inclusion_block(chain_client, stub):
    stub.eth.heads = [102]
    assert chain_client.confirmations({"blockNumber": 100}) == 3
    assert chain_client.confirmations({"blockNumber": None}) == 0


def test_wait_returns_none_on_timeout(chain_client, stub):
    stub.eth.wait_error = TimeExhausted("timed out")
    assert chain_client.wait_for_confirmations(TX_HASH, timeout=0, poll_interval=0) is None


def test_wait_failure_is_wrapped(chain_client, stub):
    stub.eth.wait_error = ConnectionError("connection reset by peer")
    with pytest.raises(ChainCommunicationError, match="connection reset by peer"):
        chain_client.wait_for_confirmations(TX_HASH, timeout=5, poll_interval=0)


def test_wait_polls_until_depth(chain_client, stub):
    stub.eth.heads = [100, 101, 102]
    receipt = chain_client.wait_for_confirmations(
        TX_HASH, confirmations=3, timeout=60, poll_interval=0
    )
    assert receipt["blockNumber"] == 100
    assert stub.eth.head_reads == 3


def test_wait_stops_at_deadline_with_receipt(chain_client, stub):
    receipt = chain_client.wait_for_confirmations(
        TX_HASH, confirmations=5, timeout=0, poll_interval=0
    )
    assert receipt == stub.eth.receipt
    assert stub.eth.head_reads == 1


def test_head_failure_during_wait_is_wrapped(chain_client, stub):
    stub.eth.heads = [100, ConnectionError("upstream 503")]
    with pytest.raises(ChainCommunicationError, match="upstream 503"):
        chain_client.wait_for_confirmations(TX_HASH, confirmations=2, timeout=60, poll_interval=0)
