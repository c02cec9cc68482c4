"""
Tests for result handles and read-only account state.
"""

from unittest.mock import AsyncMock

import pytest
from web3 import Web3

from bundler import UserOperationReceipt
from provider import TransactionResult, TransactionStatus
from user_operations import UserOperation

from conftest import USER_OP_HASH


def _receipt(success: bool) -> UserOperationReceipt:
    return UserOperationReceipt(user_op_hash=USER_OP_HASH, success=success, transaction_hash="0x" + "ab" * 32)


def _result(bundler) -> TransactionResult:
    return TransactionResult(
        hash=USER_OP_HASH,
        sender="0x1111111111111111111111111111111111111111",
        nonce=0,
        bundler=bundler,
    )


@pytest.mark.asyncio
async def test_result_stays_pending_without_receipt():
    bundler = AsyncMock()
    bundler.get_user_operation_receipt.return_value = None
    result = _result(bundler)

    assert await result.refresh() is TransactionStatus.PENDING
    assert not result.settled


@pytest.mark.asyncio
async def test_result_settles_once():
    bundler = AsyncMock()
    bundler.get_user_operation_receipt.return_value = _receipt(True)
    result = _result(bundler)

    assert await result.refresh() is TransactionStatus.INCLUDED

    bundler.get_user_operation_receipt.return_value = _receipt(False)
    assert await result.refresh() is TransactionStatus.INCLUDED
    bundler.get_user_operation_receipt.assert_awaited_once()


@pytest.mark.asyncio
async def test_reverted_batch_is_one_rejected_result():
    bundler = AsyncMock()
    bundler.get_user_operation_receipt.return_value = _receipt(False)
    result = _result(bundler)

    receipt = await result.wait(poll_interval=0)

    assert result.status is TransactionStatus.REJECTED
    assert receipt.success is False


@pytest.mark.asyncio
async def test_wait_polls_until_receipt():
    bundler = AsyncMock()
    bundler.get_user_operation_receipt.side_effect = [None, None, _receipt(True)]
    result = _result(bundler)

    receipt = await result.wait(poll_interval=0)

    assert receipt.success
    assert bundler.get_user_operation_receipt.await_count == 3


@pytest.mark.asyncio
async def test_construct_response_uses_user_op_hash(signer, account_api):
    op = UserOperation(
        sender=await account_api.get_account_address(),
        nonce=0,
        call_gas_limit=1,
        verification_gas_limit=2,
        pre_verification_gas=3,
        max_fee_per_gas=4,
        max_priority_fee_per_gas=5,
    )

    result = await signer.provider.construct_user_op_transaction_response(op)

    assert result.hash == Web3.to_hex(account_api.get_user_op_hash(op))
    assert result.status is TransactionStatus.PENDING
    assert result.sender == op.sender


@pytest.mark.asyncio
async def test_account_state_reads(signer, web3):
    web3.eth.get_balance.return_value = 42

    assert not await signer.provider.is_deployed()
    assert await signer.provider.get_nonce() == 0
    assert await signer.provider.get_balance() == 42
    assert await signer.provider.get_chain_id() == 5
    web3.eth.get_balance.assert_called_once_with(await signer.provider.get_sender_account_address())
