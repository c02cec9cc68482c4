"""
Paymaster co-signing and project backend lookups
"""

import logging
from typing import Optional

from bundler import convert_user_operation_to_rpc_format
from config import ClientConfig
from errors import ConfigurationError, TransportError
from transport import HttpTransport
from user_operations import UserOperation

logger = logging.getLogger(__name__)


class PaymasterClient:
    """Requests paymasterAndData for UserOperations from the sponsoring service"""

    def __init__(self, config: ClientConfig, transport: Optional[HttpTransport] = None):
        self.config = config
        self.transport = transport or HttpTransport(timeout=config.request_timeout)

    async def sign_user_op(self, project_id: str, chain_id: int, user_operation: UserOperation) -> str:
        """Return paymasterAndData for the operation, or "0x" when it is not sponsored"""
        if not self.config.paymaster_url:
            raise ConfigurationError("paymaster_url is not configured")

        logger.info(f"Requesting paymaster signature for {user_operation.sender} on chain {chain_id}")
        result = await self.transport.post_json(
            f"{self.config.paymaster_url}/sign",
            {
                "projectId": project_id,
                "chainId": chain_id,
                "userOp": convert_user_operation_to_rpc_format(user_operation),
            }
        )
        paymaster_and_data = result.get('paymasterAndData') if isinstance(result, dict) else None
        if not paymaster_and_data:
            logger.info("Paymaster declined to sponsor, operation is self-funded")
            return "0x"
        return paymaster_and_data

    async def get_chain_id(self, project_id: str) -> int:
        if not self.config.backend_url:
            raise ConfigurationError("backend_url is not configured")

        result = await self.transport.post_json(
            f"{self.config.backend_url}/v1/projects/get-chain-id",
            {"projectId": project_id}
        )
        chain_id = result.get('chainId') if isinstance(result, dict) else None
        if chain_id is None:
            raise TransportError(f"No chainId for project {project_id}", body=str(result))
        return int(chain_id)
