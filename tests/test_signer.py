"""
Pytest tests for the single-key Signer.
"""

from __future__ import annotations

import pytest

from conftest import RECIPIENT, TEST_ADDRESS, TEST_KEY
from wallet_backend.exceptions import SigningError
from wallet_backend.wallet.signer import Signer


def _intent(**overrides) -> dict:
    intent = {
        "to": RECIPIENT,
        "value": 10**17,
        "nonce": 0,
        "gas": 21_000,
        "gasPrice": 10**9,
        "chainId": 1,
    }
    intent.update(overrides)
    return intent


def test_from_key_derives_address():
    assert Signer.from_key(TEST_KEY).address == TEST_ADDRESS
    assert Signer.from_key(TEST_KEY[2:]).address == TEST_ADDRESS


@pytest.mark.parametrize("key", [None, "", "0x1234", "not-hex-at-all"])
def test_from_key_rejects_unusable_keys(key):
    with pytest.raises(SigningError):
        Signer.from_key(key)


def test_malformed_key_is_not_echoed():
    bad = "0x" + "zz" * 32
    with pytest.raises(SigningError) as exc_info:
        Signer.from_key(bad)
    assert bad not in str(exc_info.value)


def test_owns_is_case_insensitive(signer):
    assert signer.owns(TEST_ADDRESS.lower())
    assert not signer.owns(RECIPIENT)


def test_sign_transaction_accepts_lowercase_recipient(signer):
    upper = signer.sign_transaction(_intent())
    lower = signer.sign_transaction(_intent(to=RECIPIENT.lower()))
    assert upper == lower
    assert upper.tx_hash.startswith("0x")
    assert len(upper.tx_hash) == 66


@pytest.mark.parametrize(
    "overrides",
    [{"to": "0x123"}, {"to": None}, {"value": -1}, {"nonce": -1}],
)
def test_sign_transaction_rejects_malformed_intent(signer, overrides):
    with pytest.raises(SigningError):
        signer.sign_transaction(_intent(**overrides))


def test_sign_message_is_deterministic(signer):
    assert signer.sign_message("x") == signer.sign_message("x")
    assert signer.sign_message("x") != signer.sign_message("y")
