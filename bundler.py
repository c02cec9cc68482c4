"""
ERC-4337 bundler integration and error translation for smart accounts
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from config import DUMMY_SIGNATURE, ClientConfig
from errors import BundlerRejection, TransportError
from transport import HttpTransport
from user_operations import GasEstimate, UserOperation

logger = logging.getLogger(__name__)

FAILED_OP_PATTERN = re.compile(r"FailedOp\((.*)\)")


def _hex_or_zero(value: Optional[int]) -> str:
    return hex(value if value is not None else 0)


def convert_user_operation_to_rpc_format(user_op: UserOperation, signature: str = None) -> Dict:
    """Convert a UserOperation to the bundler JSON-RPC format (EntryPoint v0.6)"""
    return {
        "sender": user_op.sender,
        "nonce": hex(user_op.nonce),
        "initCode": user_op.init_code,
        "callData": user_op.call_data,
        "callGasLimit": _hex_or_zero(user_op.call_gas_limit),
        "verificationGasLimit": _hex_or_zero(user_op.verification_gas_limit),
        "preVerificationGas": _hex_or_zero(user_op.pre_verification_gas),
        "maxFeePerGas": _hex_or_zero(user_op.max_fee_per_gas),
        "maxPriorityFeePerGas": _hex_or_zero(user_op.max_priority_fee_per_gas),
        "paymasterAndData": user_op.paymaster_and_data,
        "signature": signature if signature is not None else user_op.signature,
    }


def _parse_quantity(value) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return int(value, 16) if value.startswith("0x") else int(value)


@dataclass
class UserOperationReceipt:
    user_op_hash: str
    success: bool
    sender: Optional[str] = None
    nonce: Optional[int] = None
    transaction_hash: Optional[str] = None
    block_number: Optional[int] = None
    actual_gas_used: Optional[int] = None
    reason: Optional[str] = None

    @classmethod
    def from_rpc(cls, user_op_hash: str, data: Dict[str, Any]) -> "UserOperationReceipt":
        receipt = data.get('receipt') or {}
        block_number = receipt.get('blockNumber')
        return cls(
            user_op_hash=data.get('userOpHash', user_op_hash),
            success=bool(data.get('success')),
            sender=data.get('sender'),
            nonce=_parse_quantity(data['nonce']) if data.get('nonce') is not None else None,
            transaction_hash=receipt.get('transactionHash'),
            block_number=_parse_quantity(block_number) if block_number is not None else None,
            actual_gas_used=_parse_quantity(data['actualGasUsed']) if data.get('actualGasUsed') else None,
            reason=data.get('reason'),
        )


@dataclass
class FailedOpMatch:
    reason: str
    paymaster_address: str


@dataclass
class Unmatched:
    original: Exception


def parse_failed_op(error: TransportError) -> Union[FailedOpMatch, Unmatched]:
    """Look for FailedOp(<index>,<paymaster>,<reason>) in a JSON-RPC error body"""
    if not error.body:
        return Unmatched(error)
    try:
        payload = json.loads(error.body)
    except ValueError:
        return Unmatched(error)

    rpc_error = payload.get('error') if isinstance(payload, dict) else None
    message = rpc_error.get('message') if isinstance(rpc_error, dict) else None
    if not isinstance(message, str):
        return Unmatched(error)

    matched = FAILED_OP_PATTERN.search(message)
    if matched is None:
        return Unmatched(error)
    fields = matched.group(1).split(',')
    if len(fields) < 3:
        return Unmatched(error)
    return FailedOpMatch(reason=','.join(fields[2:]), paymaster_address=fields[1])


class BundlerClient:
    """Client for interacting with ERC-4337 bundlers"""

    def __init__(self, config: ClientConfig, transport: Optional[HttpTransport] = None):
        self.config = config
        self.transport = transport or HttpTransport(timeout=config.request_timeout)

    async def estimate_user_operation_gas(self, user_operation: UserOperation) -> GasEstimate:
        """Estimate the three gas components of a UserOperation"""
        user_op_dict = convert_user_operation_to_rpc_format(user_operation, signature=DUMMY_SIGNATURE)
        result = await self._make_bundler_request(
            "eth_estimateUserOperationGas", [user_op_dict, self.config.entry_point_address]
        )
        if not isinstance(result, dict):
            raise TransportError(f"Unexpected gas estimate from bundler: {result!r}", body=json.dumps(result))
        estimate = GasEstimate(
            call_gas_limit=_parse_quantity(result.get('callGasLimit')),
            verification_gas_limit=_parse_quantity(
                result.get('verificationGasLimit', result.get('verificationGas'))
            ),
            pre_verification_gas=_parse_quantity(result.get('preVerificationGas')),
        )
        logger.info(f"Gas estimate for {user_operation.sender}: {estimate}")
        return estimate

    async def send_user_operation(self, signed_user_op: UserOperation) -> str:
        """Send a signed UserOperation to the bundler and return its hash"""
        logger.info("Sending UserOperation to bundler...")
        user_op_dict = convert_user_operation_to_rpc_format(signed_user_op)
        try:
            result = await self._make_bundler_request(
                "eth_sendUserOperation", [user_op_dict, self.config.entry_point_address]
            )
        except TransportError as e:
            parsed = parse_failed_op(e)
            if isinstance(parsed, FailedOpMatch):
                logger.error(f"Bundler rejected UserOperation: {parsed.reason}")
                raise BundlerRejection(parsed.reason, parsed.paymaster_address) from e
            raise

        logger.info(f"UserOperation sent successfully: {result}")
        return result

    async def get_user_operation_receipt(self, user_op_hash: str) -> Optional[UserOperationReceipt]:
        result = await self._make_bundler_request("eth_getUserOperationReceipt", [user_op_hash])
        if not result:
            return None
        return UserOperationReceipt.from_rpc(user_op_hash, result)

    async def get_chain_id(self) -> int:
        return _parse_quantity(await self._make_bundler_request("eth_chainId", []))

    async def get_supported_entry_points(self) -> List[str]:
        return await self._make_bundler_request("eth_supportedEntryPoints", [])

    async def _make_bundler_request(self, method: str, params: List) -> Any:
        """Make JSON-RPC request to bundler"""
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": 1
        }
        result = await self.transport.post_json(self.config.bundler_url, payload)
        if 'error' in result:
            error = result['error']
            message = error.get('message', 'Unknown error') if isinstance(error, dict) else str(error)
            logger.error(f"Bundler error: {message}")
            raise TransportError(message, body=json.dumps(result))
        return result.get('result')
