"""
Read-only account state and awaitable results for submitted UserOperations
"""

import asyncio
import logging
from enum import Enum
from typing import Optional

from web3 import Web3

from account_api import GnosisAccountAPI
from bundler import BundlerClient, UserOperationReceipt
from user_operations import UserOperation

logger = logging.getLogger(__name__)


class TransactionStatus(Enum):
    PENDING = "pending"
    INCLUDED = "included"
    REJECTED = "rejected"


class TransactionResult:
    """
    Handle for a submitted UserOperation.

    Starts PENDING and settles exactly once, to INCLUDED or REJECTED, when the
    bundler reports a receipt. A batch whose inner call reverted settles as a
    single REJECTED result.
    """

    def __init__(self, hash: str, sender: str, nonce: int, bundler: BundlerClient):
        self.hash = hash
        self.sender = sender
        self.nonce = nonce
        self.bundler = bundler
        self.status = TransactionStatus.PENDING
        self.receipt: Optional[UserOperationReceipt] = None

    @property
    def settled(self) -> bool:
        return self.status is not TransactionStatus.PENDING

    async def refresh(self) -> TransactionStatus:
        """Fetch the receipt once and settle if it is available"""
        if self.settled:
            return self.status
        receipt = await self.bundler.get_user_operation_receipt(self.hash)
        if receipt is not None:
            self._settle(receipt)
        return self.status

    async def wait(self, poll_interval: float = 2.0) -> UserOperationReceipt:
        """Poll until the operation settles. Wrap in asyncio.wait_for to bound it."""
        while not self.settled:
            await self.refresh()
            if not self.settled:
                await asyncio.sleep(poll_interval)
        return self.receipt

    def _settle(self, receipt: UserOperationReceipt) -> None:
        if self.settled:
            return
        self.receipt = receipt
        self.status = TransactionStatus.INCLUDED if receipt.success else TransactionStatus.REJECTED
        if receipt.success:
            logger.info(f"UserOperation {self.hash} included in {receipt.transaction_hash}")
        else:
            logger.warning(f"UserOperation {self.hash} reverted: {receipt.reason}")


class AccountProvider:
    """Exposes account state and turns submitted operations into result handles"""

    def __init__(self, web3: Web3, bundler: BundlerClient, account_api: GnosisAccountAPI):
        self.web3 = web3
        self.bundler = bundler
        self.account_api = account_api

    async def get_sender_account_address(self) -> str:
        return await self.account_api.get_account_address()

    async def is_deployed(self) -> bool:
        return not await self.account_api.check_account_phantom()

    async def get_nonce(self) -> int:
        return await self.account_api.get_nonce()

    async def get_balance(self, address: Optional[str] = None) -> int:
        address = address or await self.get_sender_account_address()
        return self.web3.eth.get_balance(Web3.to_checksum_address(address))

    async def get_chain_id(self) -> int:
        return self.account_api.account.chain_id

    async def construct_user_op_transaction_response(self, user_op: UserOperation) -> TransactionResult:
        user_op_hash = Web3.to_hex(self.account_api.get_user_op_hash(user_op))
        return TransactionResult(
            hash=user_op_hash,
            sender=user_op.sender,
            nonce=user_op.nonce,
            bundler=self.bundler,
        )
