"""
Tests for counterfactual address derivation and init code.
"""

import pytest
from web3 import Web3

from address import (
    AccountFactory,
    build_factory_call_data,
    build_init_payload,
    compute_create2_address,
    derive_address,
)
from errors import ConfigurationError

OWNER = "0x2222222222222222222222222222222222222222"


def test_create2_matches_eip1014_example():
    address = compute_create2_address(
        "0x0000000000000000000000000000000000000000",
        b"\x00" * 32,
        Web3.keccak(b"\x00"),
    )
    assert address == "0x4D1A2e2bB4F88F0250f26Ffff098B0b30B26BF38"


def test_derive_address_is_pure(factory):
    first = derive_address(OWNER, factory, 0)
    second = derive_address(OWNER, factory, 0)

    assert first == second
    assert Web3.is_checksum_address(first)


def test_derive_address_depends_on_owner_index_and_factory(factory):
    base = derive_address(OWNER, factory, 0)
    other_factory = AccountFactory(
        address="0x3333333333333333333333333333333333333333",
        proxy_init_code_hash=factory.proxy_init_code_hash,
    )

    assert derive_address(OWNER, factory, 1) != base
    assert derive_address("0x4444444444444444444444444444444444444444", factory, 0) != base
    assert derive_address(OWNER, other_factory, 0) != base


def test_derive_address_requires_a_full_init_code_hash():
    factory = AccountFactory(address="0x1111111111111111111111111111111111111111", proxy_init_code_hash="0x1234")
    with pytest.raises(ConfigurationError):
        derive_address(OWNER, factory)


def test_init_payload_is_factory_address_followed_by_create_account(factory):
    payload = build_init_payload(OWNER, factory, 3)

    assert payload == build_init_payload(OWNER, factory, 3)
    assert payload[:20] == Web3.to_bytes(hexstr=factory.address)
    assert payload[20:] == build_factory_call_data(OWNER, 3)
    assert payload[20:24] == Web3.keccak(text="createAccount(address,uint256)")[:4]
    # owner word and index word
    assert payload[24:56][-20:] == Web3.to_bytes(hexstr=OWNER)
    assert int.from_bytes(payload[56:88], "big") == 3
