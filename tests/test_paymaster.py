"""
Tests for paymaster sponsorship and backend lookups.
"""

import pytest

from config import ClientConfig
from errors import ConfigurationError, TransportError
from paymaster import PaymasterClient
from user_operations import UserOperation

from conftest import FakeTransport

PAYMASTER_URL = "https://paymaster.test"
BACKEND_URL = "https://backend.test"


@pytest.fixture
def client():
    config = ClientConfig(
        project_id="test-project",
        bundler_url="https://bundler.test/rpc",
        paymaster_url=PAYMASTER_URL,
        backend_url=BACKEND_URL,
    )
    return PaymasterClient(config, FakeTransport())


def _user_op() -> UserOperation:
    return UserOperation(
        sender="0x1111111111111111111111111111111111111111",
        nonce=0,
        call_gas_limit=1,
        verification_gas_limit=2,
        pre_verification_gas=3,
        max_fee_per_gas=4,
        max_priority_fee_per_gas=5,
    )


@pytest.mark.asyncio
async def test_sign_user_op_returns_paymaster_and_data(client):
    client.transport.results[f"{PAYMASTER_URL}/sign"] = {"paymasterAndData": "0xabcd"}

    assert await client.sign_user_op("test-project", 5, _user_op()) == "0xabcd"

    ((url, body),) = client.transport.requests
    assert url == f"{PAYMASTER_URL}/sign"
    assert body["projectId"] == "test-project"
    assert body["chainId"] == 5
    assert body["userOp"]["sender"] == "0x1111111111111111111111111111111111111111"
    assert body["userOp"]["callGasLimit"] == "0x1"


@pytest.mark.asyncio
async def test_declined_sponsorship_is_self_funded(client):
    client.transport.results[f"{PAYMASTER_URL}/sign"] = {}

    assert await client.sign_user_op("test-project", 5, _user_op()) == "0x"


@pytest.mark.asyncio
async def test_sign_user_op_requires_paymaster_url():
    client = PaymasterClient(ClientConfig(project_id="p", bundler_url="https://bundler.test"), FakeTransport())

    with pytest.raises(ConfigurationError):
        await client.sign_user_op("p", 5, _user_op())


@pytest.mark.asyncio
async def test_get_chain_id_from_backend(client):
    client.transport.results[f"{BACKEND_URL}/v1/projects/get-chain-id"] = {"chainId": 137}

    assert await client.get_chain_id("test-project") == 137


@pytest.mark.asyncio
async def test_get_chain_id_without_answer_is_transport_error(client):
    client.transport.results[f"{BACKEND_URL}/v1/projects/get-chain-id"] = {}

    with pytest.raises(TransportError):
        await client.get_chain_id("test-project")
