"""
Configuration for Gnosis Safe smart account operations
"""

import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from errors import ConfigurationError

# Network constants
ENTRYPOINT_V06 = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"
MULTISEND_ADDRESS = "0xA238CBeb142c10Ef7Ad8442C6D1f9E89e07e7761"

# Default gas limits for UserOperations
DEFAULT_GAS_LIMITS = {
    "call": 300000,
    "verification": 1000000,
    "pre_verification": 60000,
    "module_call": 200000,
}

# Random 65 byte signature; bundlers check signature length before estimating
# preverification gas.
DUMMY_SIGNATURE = (
    "0x4046ab7d9c387d7a5ef5ca0777eded29767fd9863048946d35b3042d2f7458ff"
    "7c62ade2903503e15973a63a296313eab15b964a18d79f4b06c8c01c7028143c1c"
)


@dataclass
class TransactionStartedInfo:
    """Payload handed to the transaction_started hook before submission"""
    hash: str
    sender: str
    to: str
    value: int
    sponsored: bool
    module: Optional[str] = None


@dataclass
class ClientHooks:
    transaction_started: Optional[Callable[[TransactionStartedInfo], Any]] = None


@dataclass
class ClientConfig:
    """Configuration for a smart account signer"""

    project_id: str
    bundler_url: str
    rpc_url: str = ""
    chain_id: Optional[int] = None
    entry_point_address: str = ENTRYPOINT_V06
    account_factory_address: Optional[str] = None
    proxy_init_code_hash: Optional[str] = None
    multisend_address: str = MULTISEND_ADDRESS
    paymaster_url: Optional[str] = None
    backend_url: Optional[str] = None
    # owner address -> factory address for accounts created by an older factory
    factory_overrides: Dict[str, str] = field(default_factory=dict)
    hooks: ClientHooks = field(default_factory=ClientHooks)
    request_timeout: int = 30

    def __post_init__(self):
        if not self.entry_point_address:
            raise ConfigurationError("entry_point_address is required")
        if not self.bundler_url:
            raise ConfigurationError("bundler_url is required")
        self.factory_overrides = {
            owner.lower(): factory for owner, factory in self.factory_overrides.items()
        }

    def factory_for_owner(self, owner_address: str) -> Optional[str]:
        """Factory address to use for the given owner, honoring overrides"""
        return self.factory_overrides.get(owner_address.lower(), self.account_factory_address)

    @classmethod
    def from_env(cls) -> "ClientConfig":
        project_id = os.environ.get('PROJECT_ID')
        if not project_id:
            raise ConfigurationError("PROJECT_ID environment variable is required")
        bundler_url = os.environ.get('BUNDLER_URL')
        if not bundler_url:
            raise ConfigurationError("BUNDLER_URL environment variable is required")

        chain_id = os.environ.get('CHAIN_ID')
        return cls(
            project_id=project_id,
            bundler_url=bundler_url,
            rpc_url=os.environ.get('RPC_URL', ''),
            chain_id=int(chain_id) if chain_id else None,
            entry_point_address=os.environ.get('ENTRYPOINT_ADDRESS', ENTRYPOINT_V06),
            account_factory_address=os.environ.get('ACCOUNT_FACTORY_ADDRESS'),
            proxy_init_code_hash=os.environ.get('PROXY_INIT_CODE_HASH'),
            multisend_address=os.environ.get('MULTISEND_ADDRESS', MULTISEND_ADDRESS),
            paymaster_url=os.environ.get('PAYMASTER_URL'),
            backend_url=os.environ.get('BACKEND_URL'),
        )
