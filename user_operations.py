"""
UserOperation model and hashing utilities for Gnosis Safe smart accounts (EntryPoint v0.6)
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Optional, Sequence

from eth_abi import encode
from web3 import Web3

logger = logging.getLogger(__name__)

GAS_FIELDS = (
    "call_gas_limit",
    "verification_gas_limit",
    "pre_verification_gas",
    "max_fee_per_gas",
    "max_priority_fee_per_gas",
)


def encode_function_call(signature: str, types: Sequence[str], args: Sequence[Any]) -> bytes:
    """Encode call-data for a known function signature, e.g. transfer(address,uint256)"""
    return Web3.keccak(text=signature)[:4] + encode(list(types), list(args))


def to_bytes(value) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if not value:
        return b''
    return Web3.to_bytes(hexstr=value)


@dataclass
class UserOperation:
    """
    ERC-4337 UserOperation.

    Byte fields are 0x-prefixed hex strings. Gas and fee fields stay None
    until they are estimated.
    """
    sender: str
    nonce: int
    init_code: str = "0x"
    call_data: str = "0x"
    call_gas_limit: Optional[int] = None
    verification_gas_limit: Optional[int] = None
    pre_verification_gas: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    paymaster_and_data: str = "0x"
    signature: str = "0x"

    @property
    def sponsored(self) -> bool:
        return len(to_bytes(self.paymaster_and_data)) > 0

    def missing_gas_fields(self) -> list:
        return [name for name in GAS_FIELDS if getattr(self, name) is None]

    def with_signature(self, signature: str) -> "UserOperation":
        return replace(self, signature=signature)


@dataclass
class TransactionDetails:
    """Call target plus optional gas/fee hints used to build a UserOperation"""
    target: str
    data: str = "0x"
    value: int = 0
    gas_limit: Optional[int] = None
    verification_gas_limit: Optional[int] = None
    pre_verification_gas: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None


@dataclass
class GasEstimate:
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int

    @property
    def total(self) -> int:
        return self.call_gas_limit + self.verification_gas_limit + self.pre_verification_gas


def get_user_operation_hash(user_op: UserOperation, entry_point: str, chain_id: int) -> bytes:
    """Hash over every field except the signature, scoped to entry point and chain"""
    missing = user_op.missing_gas_fields()
    if missing:
        raise ValueError(f"Cannot hash UserOperation with unresolved fields: {', '.join(missing)}")

    packed = encode(
        ['address', 'uint256', 'bytes32', 'bytes32', 'uint256', 'uint256',
         'uint256', 'uint256', 'uint256', 'bytes32'],
        [
            Web3.to_checksum_address(user_op.sender),
            user_op.nonce,
            Web3.keccak(to_bytes(user_op.init_code)),
            Web3.keccak(to_bytes(user_op.call_data)),
            user_op.call_gas_limit,
            user_op.verification_gas_limit,
            user_op.pre_verification_gas,
            user_op.max_fee_per_gas,
            user_op.max_priority_fee_per_gas,
            Web3.keccak(to_bytes(user_op.paymaster_and_data)),
        ]
    )
    return Web3.keccak(encode(
        ['bytes32', 'address', 'uint256'],
        [Web3.keccak(packed), Web3.to_checksum_address(entry_point), chain_id]
    ))
