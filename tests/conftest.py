from unittest.mock import MagicMock

import pytest
from eth_account import Account

from account_api import GnosisAccountAPI, SmartAccount
from address import AccountFactory
from bundler import BundlerClient
from config import ClientConfig
from provider import AccountProvider
from smart_account import SmartAccountSigner

OWNER_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
FACTORY_ADDRESS = "0x1111111111111111111111111111111111111111"
PROXY_INIT_CODE_HASH = "0x" + "ab" * 32
CHAIN_ID = 5
USER_OP_HASH = "0x" + "cd" * 32

GAS_ESTIMATE_RESULT = {
    "callGasLimit": "0x5208",
    "verificationGasLimit": "0x186a0",
    "preVerificationGas": "0xc350",
}


class FakeTransport:
    """Records JSON posts and answers JSON-RPC methods from canned results"""

    def __init__(self):
        self.requests = []
        self.results = {}
        self.errors = {}
        self.payloads = {}

    async def post_json(self, url, body):
        self.requests.append((url, body))
        method = body.get("method")
        if method in self.errors:
            raise self.errors[method]
        if method in self.payloads:
            return self.payloads[method]
        if method is None:
            return self.results[url]
        return {"jsonrpc": "2.0", "id": 1, "result": self.results.get(method)}

    def methods(self):
        return [body.get("method") for _, body in self.requests]

    def params(self, method):
        return [body["params"] for _, body in self.requests if body.get("method") == method]


@pytest.fixture
def owner():
    return Account.from_key(OWNER_KEY)


@pytest.fixture
def web3():
    web3 = MagicMock()
    web3.eth.get_code.return_value = b''
    web3.eth.gas_price = 10
    web3.eth.max_priority_fee = 2
    return web3


@pytest.fixture
def transport():
    transport = FakeTransport()
    transport.results["eth_estimateUserOperationGas"] = GAS_ESTIMATE_RESULT
    transport.results["eth_sendUserOperation"] = USER_OP_HASH
    return transport


@pytest.fixture
def config():
    return ClientConfig(
        project_id="test-project",
        bundler_url="https://bundler.test/rpc",
        chain_id=CHAIN_ID,
        account_factory_address=FACTORY_ADDRESS,
        proxy_init_code_hash=PROXY_INIT_CODE_HASH,
    )


@pytest.fixture
def factory():
    return AccountFactory(address=FACTORY_ADDRESS, proxy_init_code_hash=PROXY_INIT_CODE_HASH)


@pytest.fixture
def bundler(config, transport):
    return BundlerClient(config, transport)


@pytest.fixture
def account_api(web3, owner, config, factory, bundler):
    return GnosisAccountAPI(
        web3=web3,
        owner=owner,
        account=SmartAccount(owner.address, CHAIN_ID),
        entry_point_address=config.entry_point_address,
        factory=factory,
        gas_estimator=bundler.estimate_user_operation_gas,
        project_id=config.project_id,
    )


@pytest.fixture
def signer(config, owner, web3, bundler, account_api):
    return SmartAccountSigner(
        config=config,
        owner=owner,
        provider=AccountProvider(web3, bundler, account_api),
        bundler=bundler,
        smart_account_api=account_api,
    )
