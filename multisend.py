"""
Gnosis MultiSend batch encoding

Each call is packed as operation (1 byte), to (20 bytes), value (32 bytes),
data length (32 bytes) and data. MultiSend reverts the whole batch when any
inner call fails.
"""

from dataclasses import dataclass
from typing import List, Sequence

from eth_abi.packed import encode_packed
from web3 import Web3

from user_operations import encode_function_call, to_bytes

CALL = 0
DELEGATE_CALL = 1


@dataclass(frozen=True)
class Call:
    to: str
    value: int = 0
    data: bytes = b''
    delegate_call: bool = False

    def __post_init__(self):
        object.__setattr__(self, 'to', Web3.to_checksum_address(self.to))
        object.__setattr__(self, 'data', to_bytes(self.data))
        if self.value < 0:
            raise ValueError(f"Negative call value: {self.value}")


def encode_multisend(calls: Sequence[Call]) -> bytes:
    if not calls:
        raise ValueError("Cannot encode an empty batch")

    return b''.join(
        encode_packed(
            ['uint8', 'address', 'uint256', 'uint256', 'bytes'],
            [DELEGATE_CALL if call.delegate_call else CALL, call.to, call.value, len(call.data), call.data]
        )
        for call in calls
    )


def decode_multisend(payload: bytes) -> List[Call]:
    payload = to_bytes(payload)
    calls = []
    offset = 0
    while offset < len(payload):
        header_end = offset + 85
        if header_end > len(payload):
            raise ValueError(f"Truncated MultiSend header at offset {offset}")
        operation = payload[offset]
        if operation not in (CALL, DELEGATE_CALL):
            raise ValueError(f"Unknown MultiSend operation {operation} at offset {offset}")
        to = payload[offset + 1:offset + 21]
        value = int.from_bytes(payload[offset + 21:offset + 53], 'big')
        length = int.from_bytes(payload[offset + 53:header_end], 'big')
        if header_end + length > len(payload):
            raise ValueError(f"Truncated MultiSend data at offset {header_end}")
        calls.append(Call(
            to=Web3.to_checksum_address(to),
            value=value,
            data=payload[header_end:header_end + length],
            delegate_call=operation == DELEGATE_CALL,
        ))
        offset = header_end + length

    if not calls:
        raise ValueError("Empty MultiSend payload")
    return calls


def encode_multisend_call_data(calls: Sequence[Call]) -> bytes:
    """multiSend(bytes transactions) call-data for the given batch"""
    return encode_function_call("multiSend(bytes)", ['bytes'], [encode_multisend(calls)])
