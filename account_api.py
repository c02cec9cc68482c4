"""
UserOperation construction for Gnosis Safe smart accounts

The account is owned by an EOA signer. The EntryPoint is enabled as a Safe
module, so calls go through EIP4337Manager.executeAndRevert and the Safe's own
nonce orders operations.
"""

import logging
from dataclasses import replace
from typing import Awaitable, Callable, Optional

from eth_account.messages import encode_defunct
from web3 import Web3

from address import AccountFactory, build_factory_call_data, build_init_payload, derive_address
from errors import AccountNotDeployedError, ConfigurationError
from paymaster import PaymasterClient
from user_operations import (
    GasEstimate,
    TransactionDetails,
    UserOperation,
    encode_function_call,
    get_user_operation_hash,
    to_bytes,
)

logger = logging.getLogger(__name__)

EXECUTE_AND_REVERT_SIGNATURE = "executeAndRevert(address,uint256,bytes,uint8)"

SAFE_NONCE_ABI = [{
    "inputs": [],
    "name": "nonce",
    "outputs": [{"name": "", "type": "uint256"}],
    "stateMutability": "view",
    "type": "function"
}]

GasEstimator = Callable[[UserOperation], Awaitable[GasEstimate]]


class SmartAccount:
    """
    Account identity plus its write-once caches.

    The address is bound once and the Phantom -> Deployed transition happens
    at most once; neither is ever reset.
    """

    def __init__(self, owner_address: str, chain_id: int, address: Optional[str] = None):
        self.owner_address = Web3.to_checksum_address(owner_address)
        self.chain_id = chain_id
        self._address = Web3.to_checksum_address(address) if address else None
        self._deployed = False

    @property
    def address(self) -> Optional[str]:
        return self._address

    @property
    def is_deployed(self) -> bool:
        return self._deployed

    def bind_address(self, address: str) -> str:
        address = Web3.to_checksum_address(address)
        if self._address is None:
            self._address = address
        elif self._address != address:
            raise ConfigurationError(f"Account address already bound to {self._address}, got {address}")
        return self._address

    def mark_deployed(self) -> None:
        if not self._deployed:
            logger.info(f"Smart account {self._address} observed deployed")
        self._deployed = True


class GnosisAccountAPI:
    """Builds and signs UserOperations for one Gnosis Safe smart account"""

    def __init__(
        self,
        web3: Web3,
        owner,
        account: SmartAccount,
        entry_point_address: str,
        factory: Optional[AccountFactory] = None,
        index: int = 0,
        gas_estimator: Optional[GasEstimator] = None,
        paymaster: Optional[PaymasterClient] = None,
        project_id: Optional[str] = None,
        delegate_mode: bool = False,
    ):
        if not entry_point_address:
            raise ConfigurationError("entry_point_address is required")
        self.web3 = web3
        self.owner = owner
        self.account = account
        self.entry_point_address = Web3.to_checksum_address(entry_point_address)
        self.factory = factory
        self.index = index
        self.gas_estimator = gas_estimator
        self.paymaster = paymaster
        self.project_id = project_id
        self.delegate_mode = delegate_mode

    def delegate_copy(self) -> "GnosisAccountAPI":
        """Same account and caches, but calls are executed with DELEGATECALL"""
        return GnosisAccountAPI(
            web3=self.web3,
            owner=self.owner,
            account=self.account,
            entry_point_address=self.entry_point_address,
            factory=self.factory,
            index=self.index,
            gas_estimator=self.gas_estimator,
            paymaster=self.paymaster,
            project_id=self.project_id,
            delegate_mode=True,
        )

    async def get_account_address(self) -> str:
        if self.account.address is not None:
            return self.account.address
        factory = self._require_factory()
        return self.account.bind_address(derive_address(self.account.owner_address, factory, self.index))

    async def check_account_phantom(self) -> bool:
        if self.account.is_deployed:
            return False
        code = self.web3.eth.get_code(await self.get_account_address())
        if len(code) > 0:
            self.account.mark_deployed()
            return False
        return True

    def get_factory_address(self) -> str:
        return self._require_factory().address

    def get_factory_account_init_code(self) -> bytes:
        """createAccount call-data, without the factory address prefix"""
        return build_factory_call_data(self.account.owner_address, self.index)

    async def get_account_init_code(self) -> str:
        """initCode field for an undeployed account: factory address ++ createAccount(...)"""
        return Web3.to_hex(build_init_payload(self.account.owner_address, self._require_factory(), self.index))

    async def get_nonce(self) -> int:
        # Phantom accounts have no Safe storage to read from
        if await self.check_account_phantom():
            return 0
        return self._read_safe_nonce(await self.get_account_address())

    def _read_safe_nonce(self, address: str) -> int:
        if not self.account.is_deployed:
            raise AccountNotDeployedError(f"No Safe deployed at {address}")
        safe = self.web3.eth.contract(address=address, abi=SAFE_NONCE_ABI)
        nonce = safe.functions.nonce().call()
        logger.info(f"Current nonce: {nonce}")
        return nonce

    def encode_execute(self, target: str, value: int, data) -> str:
        operation = 1 if self.delegate_mode else 0
        return Web3.to_hex(encode_function_call(
            EXECUTE_AND_REVERT_SIGNATURE,
            ['address', 'uint256', 'bytes', 'uint8'],
            [Web3.to_checksum_address(target), value or 0, to_bytes(data), operation]
        ))

    async def create_unsigned_user_op(self, details: TransactionDetails) -> UserOperation:
        sender = await self.get_account_address()
        phantom = await self.check_account_phantom()
        init_code = await self.get_account_init_code() if phantom else "0x"
        nonce = 0 if phantom else self._read_safe_nonce(sender)

        return UserOperation(
            sender=sender,
            nonce=nonce,
            init_code=init_code,
            call_data=self.encode_execute(details.target, details.value, details.data),
            call_gas_limit=details.gas_limit,
            verification_gas_limit=details.verification_gas_limit,
            pre_verification_gas=details.pre_verification_gas,
            max_fee_per_gas=details.max_fee_per_gas,
            max_priority_fee_per_gas=details.max_priority_fee_per_gas,
        )

    async def create_signed_user_op(self, details: TransactionDetails) -> UserOperation:
        user_op = await self.create_unsigned_user_op(details)
        user_op = await self._resolve_gas(user_op)

        if self.paymaster is not None:
            user_op = replace(
                user_op,
                paymaster_and_data=await self.paymaster.sign_user_op(
                    self.project_id, self.account.chain_id, user_op
                )
            )

        user_op_hash = self.get_user_op_hash(user_op)
        signature = await self.sign_user_op_hash(user_op_hash)
        logger.info(f"Signed UserOperation {Web3.to_hex(user_op_hash)} for {user_op.sender} (nonce {user_op.nonce})")
        return user_op.with_signature(signature)

    async def _resolve_gas(self, user_op: UserOperation) -> UserOperation:
        limits = ("call_gas_limit", "verification_gas_limit", "pre_verification_gas")
        if any(getattr(user_op, name) is None for name in limits):
            if self.gas_estimator is None:
                raise ConfigurationError("No gas estimator configured and gas limits were not supplied")
            # estimation always runs with zero fees
            estimate = await self.gas_estimator(replace(user_op, max_fee_per_gas=0, max_priority_fee_per_gas=0))
            user_op = replace(
                user_op,
                call_gas_limit=user_op.call_gas_limit if user_op.call_gas_limit is not None else estimate.call_gas_limit,
                verification_gas_limit=(
                    user_op.verification_gas_limit if user_op.verification_gas_limit is not None
                    else estimate.verification_gas_limit
                ),
                pre_verification_gas=(
                    user_op.pre_verification_gas if user_op.pre_verification_gas is not None
                    else estimate.pre_verification_gas
                ),
            )

        if user_op.max_fee_per_gas is None or user_op.max_priority_fee_per_gas is None:
            priority_fee = user_op.max_priority_fee_per_gas
            if priority_fee is None:
                priority_fee = self.web3.eth.max_priority_fee
            max_fee = user_op.max_fee_per_gas
            if max_fee is None:
                max_fee = self.web3.eth.gas_price + priority_fee
            priority_fee = min(priority_fee, max_fee)
            user_op = replace(user_op, max_fee_per_gas=max_fee, max_priority_fee_per_gas=priority_fee)
        return user_op

    def get_user_op_hash(self, user_op: UserOperation) -> bytes:
        return get_user_operation_hash(user_op, self.entry_point_address, self.account.chain_id)

    async def sign_user_op_hash(self, user_op_hash: bytes) -> str:
        signed = self.owner.sign_message(encode_defunct(primitive=bytes(user_op_hash)))
        return Web3.to_hex(signed.signature)

    def _require_factory(self) -> AccountFactory:
        if self.factory is None or not self.factory.address:
            raise ConfigurationError("no factory to get initCode")
        return self.factory
