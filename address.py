"""
Counterfactual address derivation and init code for Gnosis Safe smart accounts
"""

from dataclasses import dataclass

from eth_abi import encode
from web3 import Web3

from errors import ConfigurationError
from user_operations import encode_function_call, to_bytes

CREATE_ACCOUNT_SIGNATURE = "createAccount(address,uint256)"


@dataclass(frozen=True)
class AccountFactory:
    """Account factory address plus the keccak256 of the proxy creation code it deploys"""
    address: str
    proxy_init_code_hash: str


def compute_create2_address(deployer: str, salt: bytes, init_code_hash: bytes) -> str:
    """EIP-1014: keccak256(0xff ++ deployer ++ salt ++ keccak256(init_code))[12:]"""
    digest = Web3.keccak(
        b'\xff' + to_bytes(deployer) + to_bytes(salt) + to_bytes(init_code_hash)
    )
    return Web3.to_checksum_address(digest[12:])


def account_salt(owner: str, index: int) -> bytes:
    return Web3.keccak(encode(['address', 'uint256'], [Web3.to_checksum_address(owner), index]))


def derive_address(owner: str, factory: AccountFactory, index: int = 0) -> str:
    """Deterministic smart account address for (owner, factory, index)"""
    init_code_hash = to_bytes(factory.proxy_init_code_hash)
    if len(init_code_hash) != 32:
        raise ConfigurationError("proxy_init_code_hash must be a 32 byte keccak256 hash")
    return compute_create2_address(factory.address, account_salt(owner, index), init_code_hash)


def build_factory_call_data(owner: str, index: int = 0) -> bytes:
    return encode_function_call(
        CREATE_ACCOUNT_SIGNATURE,
        ['address', 'uint256'],
        [Web3.to_checksum_address(owner), index],
    )


def build_init_payload(owner: str, factory: AccountFactory, index: int = 0) -> bytes:
    """initCode = factory address ++ createAccount(owner, index)"""
    return to_bytes(factory.address) + build_factory_call_data(owner, index)
