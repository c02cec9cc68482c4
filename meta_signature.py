"""
ERC-6492 signatures for smart accounts that are not deployed yet

A wrapped signature carries the factory address and factory call-data so a
compliant verifier can simulate the deployment and check the signature
against the counterfactual address.
"""

from typing import Tuple

from eth_abi import decode, encode
from eth_account.messages import SignableMessage
from web3 import Web3

from user_operations import to_bytes

ERC6492_MAGIC_SUFFIX = bytes.fromhex("6492" * 16)


def hash_signable_message(message: SignableMessage) -> bytes:
    """EIP-191 digest of a SignableMessage"""
    return Web3.keccak(b'\x19' + message.version + message.header + message.body)


def fix_signed_data(signature: bytes) -> bytes:
    """Normalize a recovery id of 0/1 to 27/28"""
    signature = bytes(signature)
    if len(signature) == 65 and signature[64] < 27:
        return signature[:64] + bytes([signature[64] + 27])
    return signature


def is_wrapped_signature(signature) -> bool:
    return to_bytes(signature).endswith(ERC6492_MAGIC_SUFFIX)


def wrap_signature(signature, factory_address: str, factory_call_data) -> bytes:
    return encode(
        ['address', 'bytes', 'bytes'],
        [Web3.to_checksum_address(factory_address), to_bytes(factory_call_data), to_bytes(signature)]
    ) + ERC6492_MAGIC_SUFFIX


def unwrap_signature(signature) -> Tuple[str, bytes, bytes]:
    """Return (factory address, factory call-data, raw signature)"""
    blob = to_bytes(signature)
    if not blob.endswith(ERC6492_MAGIC_SUFFIX):
        raise ValueError("Signature is not ERC-6492 wrapped")
    factory, call_data, raw = decode(['address', 'bytes', 'bytes'], blob[:-len(ERC6492_MAGIC_SUFFIX)])
    return Web3.to_checksum_address(factory), call_data, raw
