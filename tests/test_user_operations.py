"""
Tests for the UserOperation model and hashing.
"""

import pytest
from web3 import Web3

from config import ENTRYPOINT_V06
from user_operations import GasEstimate, UserOperation, encode_function_call, get_user_operation_hash


def _user_op(**overrides) -> UserOperation:
    fields = dict(
        sender="0x1111111111111111111111111111111111111111",
        nonce=2,
        init_code="0x3333",
        call_data="0x4444",
        call_gas_limit=5,
        verification_gas_limit=6,
        pre_verification_gas=7,
        max_fee_per_gas=8,
        max_priority_fee_per_gas=9,
        paymaster_and_data="0xaaaaaa",
        signature="0xbbbb",
    )
    fields.update(overrides)
    return UserOperation(**fields)


def test_hash_ignores_signature():
    first = get_user_operation_hash(_user_op(), ENTRYPOINT_V06, 5)
    second = get_user_operation_hash(_user_op(signature="0x" + "ff" * 65), ENTRYPOINT_V06, 5)

    assert first == second
    assert len(first) == 32


def test_hash_is_scoped_to_fields_entry_point_and_chain():
    base = get_user_operation_hash(_user_op(), ENTRYPOINT_V06, 5)

    assert get_user_operation_hash(_user_op(nonce=3), ENTRYPOINT_V06, 5) != base
    assert get_user_operation_hash(_user_op(paymaster_and_data="0x"), ENTRYPOINT_V06, 5) != base
    assert get_user_operation_hash(_user_op(), ENTRYPOINT_V06, 1) != base
    assert get_user_operation_hash(_user_op(), "0x" + "12" * 20, 5) != base


def test_hash_requires_resolved_gas():
    with pytest.raises(ValueError):
        get_user_operation_hash(_user_op(call_gas_limit=None), ENTRYPOINT_V06, 5)


def test_missing_gas_fields_and_sponsorship():
    op = UserOperation(sender="0x1111111111111111111111111111111111111111", nonce=0)

    assert op.missing_gas_fields() == [
        "call_gas_limit",
        "verification_gas_limit",
        "pre_verification_gas",
        "max_fee_per_gas",
        "max_priority_fee_per_gas",
    ]
    assert not op.sponsored
    assert _user_op().sponsored


def test_with_signature_returns_a_copy():
    op = _user_op(signature="0x")
    signed = op.with_signature("0x1234")

    assert signed.signature == "0x1234"
    assert op.signature == "0x"


def test_encode_function_call_uses_selector():
    data = encode_function_call(
        "transfer(address,uint256)",
        ["address", "uint256"],
        ["0x2222222222222222222222222222222222222222", 10],
    )
    assert Web3.to_hex(data[:4]) == "0xa9059cbb"
    assert len(data) == 4 + 64


def test_gas_estimate_total():
    assert GasEstimate(call_gas_limit=1, verification_gas_limit=2, pre_verification_gas=3).total == 6
