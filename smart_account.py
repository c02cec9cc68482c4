"""
Smart account signer: the caller-facing facade over UserOperation building, signing and submission
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from eth_account.messages import encode_defunct, encode_typed_data
from web3 import Web3

from account_api import GnosisAccountAPI, SmartAccount
from address import AccountFactory
from assets import AssetIndexer, AssetTransfer, AssetType, list_assets
from bundler import BundlerClient, UserOperationReceipt
from config import DEFAULT_GAS_LIMITS, ClientConfig, TransactionStartedInfo
from errors import ConfigurationError, MissingFieldError, UnsupportedOperationError
from meta_signature import fix_signed_data, hash_signable_message, wrap_signature
from multisend import Call, encode_multisend_call_data
from paymaster import PaymasterClient
from provider import AccountProvider, TransactionResult
from transport import HttpTransport
from user_operations import TransactionDetails, UserOperation, encode_function_call, to_bytes

logger = logging.getLogger(__name__)

# prevOwner for the only owner of a Safe is the sentinel address(1)
SENTINEL_OWNER = "0x0000000000000000000000000000000000000001"

ERC20_BALANCE_ABI = [{
    "inputs": [{"name": "owner", "type": "address"}],
    "name": "balanceOf",
    "outputs": [{"name": "", "type": "uint256"}],
    "stateMutability": "view",
    "type": "function"
}]

ERC1155_BALANCE_ABI = [{
    "inputs": [{"name": "account", "type": "address"}, {"name": "id", "type": "uint256"}],
    "name": "balanceOf",
    "outputs": [{"name": "", "type": "uint256"}],
    "stateMutability": "view",
    "type": "function"
}]

SAFE_OWNERS_ABI = [{
    "inputs": [],
    "name": "getOwners",
    "outputs": [{"name": "", "type": "address[]"}],
    "stateMutability": "view",
    "type": "function"
}]

KNOWN_MODULE_CALLS = {
    "enableModule(address)": "enable_module",
    "swapOwner(address,address,address)": "transfer_ownership",
    "multiSend(bytes)": "batch",
    "transfer(address,uint256)": "erc20_transfer",
    "transferFrom(address,address,uint256)": "erc721_transfer",
    "safeTransferFrom(address,address,uint256,uint256,bytes)": "erc1155_transfer",
}

KNOWN_MODULE_SELECTORS = {
    Web3.to_hex(Web3.keccak(text=signature)[:4]): label
    for signature, label in KNOWN_MODULE_CALLS.items()
}


def get_module_info(data, selectors: Optional[Dict[str, str]] = None) -> Optional[str]:
    """Classify call-data by its 4 byte selector"""
    data = to_bytes(data)
    if len(data) < 4:
        return None
    return (selectors or KNOWN_MODULE_SELECTORS).get(Web3.to_hex(data[:4]))


class SendState(Enum):
    IDLE = "idle"
    POPULATING = "populating"
    ESTIMATING = "estimating"
    SIGNING = "signing"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


_REQUEST_KEYS = {
    "to": "to",
    "data": "data",
    "value": "value",
    "gas_limit": "gas_limit",
    "gasLimit": "gas_limit",
    "gas_price": "gas_price",
    "gasPrice": "gas_price",
    "max_fee_per_gas": "max_fee_per_gas",
    "maxFeePerGas": "max_fee_per_gas",
    "max_priority_fee_per_gas": "max_priority_fee_per_gas",
    "maxPriorityFeePerGas": "max_priority_fee_per_gas",
}

# the sender is always the smart account
_IGNORED_REQUEST_KEYS = {"from"}


@dataclass
class TransactionRequest:
    to: Optional[str] = None
    data: Optional[Union[str, bytes]] = None
    value: Optional[int] = None
    gas_limit: Optional[int] = None
    gas_price: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None

    @classmethod
    def coerce(cls, transaction: Union["TransactionRequest", Dict[str, Any]]) -> "TransactionRequest":
        if isinstance(transaction, cls):
            return transaction
        kwargs = {}
        for key, value in transaction.items():
            if key in _IGNORED_REQUEST_KEYS:
                continue
            if key not in _REQUEST_KEYS:
                raise UnsupportedOperationError(f"Unsupported transaction field: {key}")
            kwargs[_REQUEST_KEYS[key]] = value
        return cls(**kwargs)


class UpdateController(ABC):
    """Checks whether the account runs outdated contracts and performs the upgrade"""

    @abstractmethod
    async def check_update(self, factory_address: Optional[str]) -> bool:
        pass

    @abstractmethod
    async def update(self, signer: "SmartAccountSigner") -> TransactionResult:
        pass


class SmartAccountSigner:
    """Signs and sends transactions from a Gnosis Safe smart account via ERC-4337"""

    def __init__(
        self,
        config: ClientConfig,
        owner,
        provider: AccountProvider,
        bundler: BundlerClient,
        smart_account_api: GnosisAccountAPI,
        asset_indexer: Optional[AssetIndexer] = None,
        update_controller: Optional[UpdateController] = None,
    ):
        self.config = config
        self.owner = owner
        self.provider = provider
        self.bundler = bundler
        self.smart_account_api = smart_account_api
        self.asset_indexer = asset_indexer
        self.update_controller = update_controller

    @property
    def web3(self) -> Web3:
        return self.provider.web3

    def delegate_copy(self) -> "SmartAccountSigner":
        """Signer whose calls run as DELEGATECALL from the account; self is untouched"""
        delegate_api = self.smart_account_api.delegate_copy()
        return SmartAccountSigner(
            config=self.config,
            owner=self.owner,
            provider=AccountProvider(self.provider.web3, self.bundler, delegate_api),
            bundler=self.bundler,
            smart_account_api=delegate_api,
            asset_indexer=self.asset_indexer,
            update_controller=self.update_controller,
        )

    def connect(self, provider):
        raise UnsupportedOperationError("changing providers is not supported")

    async def sign_transaction(self, transaction):
        raise UnsupportedOperationError("signing raw transactions is not supported, use send_transaction")

    async def get_address(self) -> str:
        return await self.smart_account_api.get_account_address()

    async def send_transaction(
        self, transaction: Union[TransactionRequest, Dict[str, Any]]
    ) -> TransactionResult:
        """Build, sign and submit a UserOperation; returns without waiting for inclusion"""
        state = self._advance(SendState.IDLE, SendState.POPULATING)
        request = TransactionRequest.coerce(transaction)

        # Estimation reverts on some bundlers when a zero-balance account
        # carries fees, so fee fields are zeroed until signing.
        max_fee = request.max_fee_per_gas if request.max_fee_per_gas is not None else request.gas_price
        priority_fee = (
            request.max_priority_fee_per_gas if request.max_priority_fee_per_gas is not None
            else request.gas_price
        )
        request = replace(request, max_fee_per_gas=0, max_priority_fee_per_gas=0, gas_price=0)
        self.verify_all_necessary_fields(request)
        details = self._to_details(request)

        state = self._advance(state, SendState.ESTIMATING)
        if details.gas_limit is None:
            unsigned_op = await self.smart_account_api.create_unsigned_user_op(details)
            estimate = await self.bundler.estimate_user_operation_gas(unsigned_op)
            details = replace(
                details,
                gas_limit=estimate.call_gas_limit,
                verification_gas_limit=estimate.verification_gas_limit,
                pre_verification_gas=estimate.pre_verification_gas,
            )

        state = self._advance(state, SendState.SIGNING)
        details = replace(details, max_fee_per_gas=max_fee, max_priority_fee_per_gas=priority_fee)
        user_operation = await self.smart_account_api.create_signed_user_op(details)
        transaction_result = await self.provider.construct_user_op_transaction_response(user_operation)

        self._transaction_started(transaction_result, request, user_operation)

        await self.bundler.send_user_operation(user_operation)
        self._advance(state, SendState.SUBMITTED)
        logger.info(f"UserOperation {transaction_result.hash} submitted from {user_operation.sender}")
        return transaction_result

    def verify_all_necessary_fields(self, request: TransactionRequest) -> None:
        if not request.to:
            raise MissingFieldError("Missing call target")
        if request.data is None and request.value is None:
            raise MissingFieldError("Missing call data or value")

    async def estimate_gas(self, transaction: Union[TransactionRequest, Dict[str, Any]]) -> int:
        """Sum of call, verification and pre-verification gas as estimated by the bundler"""
        request = TransactionRequest.coerce(transaction)
        if not request.to:
            raise MissingFieldError("Missing call target")
        unsigned_op = await self.smart_account_api.create_unsigned_user_op(self._to_details(request))
        estimate = await self.bundler.estimate_user_operation_gas(unsigned_op)
        return estimate.total

    async def get_user_operation_receipt(self, user_op_hash: str) -> Optional[UserOperationReceipt]:
        return await self.bundler.get_user_operation_receipt(user_op_hash)

    async def sign_message(self, message: Union[str, bytes]) -> str:
        """
        Sign an EIP-191 message on behalf of the smart account.

        While the account is not deployed the signature is wrapped per
        ERC-6492 so verifiers can check it against the counterfactual address.
        """
        if isinstance(message, str):
            signable = encode_defunct(text=message)
        else:
            signable = encode_defunct(primitive=bytes(message))
        data_hash = hash_signable_message(signable)
        signature = fix_signed_data(self.owner.sign_message(encode_defunct(primitive=data_hash)).signature)

        if await self.smart_account_api.check_account_phantom():
            signature = wrap_signature(
                signature,
                self.smart_account_api.get_factory_address(),
                self.smart_account_api.get_factory_account_init_code(),
            )
        return Web3.to_hex(signature)

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> str:
        digest = hash_signable_message(encode_typed_data(full_message=typed_data))
        return await self.sign_message(bytes(digest))

    async def sign_user_operation(self, user_operation: UserOperation) -> str:
        user_op_hash = self.smart_account_api.get_user_op_hash(user_operation)
        return await self.smart_account_api.sign_user_op_hash(user_op_hash)

    async def exec_batch(
        self,
        calls: Sequence[Union[Call, Dict[str, Any]]],
        gas_limit: Optional[int] = None,
        gas_price: Optional[int] = None,
        multisend_address: Optional[str] = None,
    ) -> TransactionResult:
        """Run all calls atomically through MultiSend, delegate-called from the account"""
        calls = [call if isinstance(call, Call) else Call(**call) for call in calls]
        logger.info(f"Executing batch of {len(calls)} calls")
        delegate_signer = self.delegate_copy()
        return await delegate_signer.send_transaction(TransactionRequest(
            to=multisend_address or self.config.multisend_address,
            data=Web3.to_hex(encode_multisend_call_data(calls)),
            gas_limit=gas_limit,
            gas_price=gas_price,
        ))

    async def enable_module(self, module_address: str) -> TransactionResult:
        self_address = await self.get_address()
        data = encode_function_call("enableModule(address)", ['address'], [Web3.to_checksum_address(module_address)])
        return await self.send_transaction(TransactionRequest(
            to=self_address,
            data=Web3.to_hex(data),
            gas_limit=DEFAULT_GAS_LIMITS["module_call"],
        ))

    async def transfer_ownership(self, new_owner: str) -> TransactionResult:
        self_address = await self.get_address()
        safe = self.web3.eth.contract(address=self_address, abi=SAFE_OWNERS_ABI)
        owners = safe.functions.getOwners().call()
        if len(owners) != 1:
            raise UnsupportedOperationError("transferOwnership is only supported for single-owner safes")

        data = encode_function_call(
            "swapOwner(address,address,address)",
            ['address', 'address', 'address'],
            [SENTINEL_OWNER, Web3.to_checksum_address(self.owner.address), Web3.to_checksum_address(new_owner)]
        )
        logger.info(f"Transferring ownership of {self_address} to {new_owner}")
        return await self.send_transaction(TransactionRequest(
            to=self_address,
            data=Web3.to_hex(data),
            gas_limit=DEFAULT_GAS_LIMITS["module_call"],
        ))

    async def update(self, confirm: Callable[[], Awaitable[bool]]) -> Optional[TransactionResult]:
        """Send the account upgrade if one is available and confirm() resolves to True"""
        if self.update_controller is None:
            raise UnsupportedOperationError("No update controller configured")
        if await self.update_controller.check_update(self.config.account_factory_address):
            if await confirm():
                return await self.update_controller.update(self)
        return None

    async def list_assets(self) -> List[AssetTransfer]:
        if self.asset_indexer is None:
            raise UnsupportedOperationError("No asset indexer configured")
        return await list_assets(self.asset_indexer, self.smart_account_api.account.chain_id, await self.get_address())

    async def transfer_all_assets(
        self,
        to: str,
        assets: Sequence[AssetTransfer],
        gas_limit: Optional[int] = None,
        gas_price: Optional[int] = None,
        multisend_address: Optional[str] = None,
    ) -> TransactionResult:
        calls = await self.build_asset_transfer_calls(to, assets)
        return await self.exec_batch(calls, gas_limit=gas_limit, gas_price=gas_price, multisend_address=multisend_address)

    async def build_asset_transfer_calls(self, to: str, assets: Sequence[AssetTransfer]) -> List[Call]:
        """One call per asset; missing amounts are read from chain now, never cached"""
        self_address = await self.get_address()
        to = Web3.to_checksum_address(to)
        return [self._asset_transfer_call(self_address, to, asset) for asset in assets]

    def _asset_transfer_call(self, self_address: str, to: str, asset: AssetTransfer) -> Call:
        if asset.asset_type == AssetType.ETH:
            amount = asset.amount if asset.amount is not None else self.web3.eth.get_balance(self_address)
            return Call(to=to, value=amount)

        if not asset.address:
            raise MissingFieldError(f"Missing token address for {asset.asset_type.name} asset")
        token = Web3.to_checksum_address(asset.address)

        if asset.asset_type == AssetType.ERC20:
            amount = asset.amount
            if amount is None:
                erc20 = self.web3.eth.contract(address=token, abi=ERC20_BALANCE_ABI)
                amount = erc20.functions.balanceOf(self_address).call()
            return Call(to=token, data=encode_function_call(
                "transfer(address,uint256)", ['address', 'uint256'], [to, amount]
            ))

        if asset.token_id is None:
            raise MissingFieldError(f"Missing token id for {asset.asset_type.name} asset")

        if asset.asset_type == AssetType.ERC721:
            return Call(to=token, data=encode_function_call(
                "transferFrom(address,address,uint256)",
                ['address', 'address', 'uint256'],
                [self_address, to, asset.token_id]
            ))

        if asset.asset_type == AssetType.ERC1155:
            amount = asset.amount
            if amount is None:
                erc1155 = self.web3.eth.contract(address=token, abi=ERC1155_BALANCE_ABI)
                amount = erc1155.functions.balanceOf(self_address, asset.token_id).call()
            return Call(to=token, data=encode_function_call(
                "safeTransferFrom(address,address,uint256,uint256,bytes)",
                ['address', 'address', 'uint256', 'uint256', 'bytes'],
                [self_address, to, asset.token_id, amount, b'']
            ))

        raise UnsupportedOperationError(f"Unsupported asset type: {asset.asset_type}")

    def _to_details(self, request: TransactionRequest) -> TransactionDetails:
        return TransactionDetails(
            target=Web3.to_checksum_address(request.to),
            data=Web3.to_hex(to_bytes(request.data)),
            value=request.value or 0,
            gas_limit=request.gas_limit,
            max_fee_per_gas=request.max_fee_per_gas,
            max_priority_fee_per_gas=request.max_priority_fee_per_gas,
        )

    def _transaction_started(
        self, transaction_result: TransactionResult, request: TransactionRequest, user_operation: UserOperation
    ) -> None:
        hook = self.config.hooks.transaction_started
        if hook is None:
            return
        hook(TransactionStartedInfo(
            hash=transaction_result.hash,
            sender=user_operation.sender,
            to=request.to,
            value=request.value or 0,
            sponsored=user_operation.sponsored,
            module=get_module_info(request.data),
        ))

    def _advance(self, current: SendState, new: SendState) -> SendState:
        logger.debug(f"send_transaction: {current.value} -> {new.value}")
        return new


async def create_smart_account_signer(
    config: ClientConfig,
    owner,
    web3: Optional[Web3] = None,
    transport: Optional[HttpTransport] = None,
    account_address: Optional[str] = None,
    index: int = 0,
    asset_indexer: Optional[AssetIndexer] = None,
    update_controller: Optional[UpdateController] = None,
) -> SmartAccountSigner:
    """Create a smart account signer for an owner with the given configuration"""
    web3 = web3 or Web3(Web3.HTTPProvider(config.rpc_url))
    transport = transport or HttpTransport(timeout=config.request_timeout)
    bundler = BundlerClient(config, transport)
    paymaster = PaymasterClient(config, transport) if config.paymaster_url else None

    chain_id = config.chain_id
    if chain_id is None:
        if config.backend_url:
            chain_id = await PaymasterClient(config, transport).get_chain_id(config.project_id)
        else:
            chain_id = await bundler.get_chain_id()

    factory = None
    factory_address = config.factory_for_owner(owner.address)
    if factory_address:
        if not config.proxy_init_code_hash:
            raise ConfigurationError("proxy_init_code_hash is required together with a factory address")
        factory = AccountFactory(address=factory_address, proxy_init_code_hash=config.proxy_init_code_hash)

    smart_account_api = GnosisAccountAPI(
        web3=web3,
        owner=owner,
        account=SmartAccount(owner.address, chain_id, address=account_address),
        entry_point_address=config.entry_point_address,
        factory=factory,
        index=index,
        gas_estimator=bundler.estimate_user_operation_gas,
        paymaster=paymaster,
        project_id=config.project_id,
    )
    logger.info(f"Smart account signer initialized for owner {owner.address} on chain {chain_id}")
    return SmartAccountSigner(
        config=config,
        owner=owner,
        provider=AccountProvider(web3, bundler, smart_account_api),
        bundler=bundler,
        smart_account_api=smart_account_api,
        asset_indexer=asset_indexer,
        update_controller=update_controller,
    )
