import math
from unittest.mock import AsyncMock, MagicMock

import pytest
from hexbytes import HexBytes

from cabac_dex.core.constants.base import (
    GAS_BUFFER_MULTIPLIER,
    SUGGESTED_PRIORITY_FEE_MULTIPLIER,
)
from cabac_dex.core.utils.transaction import (
    TransactionRevertedError,
    UserRejectedError,
    fill_fees,
    fill_gas_limit,
    fill_nonce,
    is_user_rejection,
    make_local_sign_callback,
    sign_and_send,
    wait_for_transaction_receipt,
)

RANDOM_USER_0 = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
TEST_PRIVATE_KEY = "0x" + "11" * 32


def _web3(**eth_attrs):
    web3 = MagicMock()
    web3.eth = MagicMock()
    for name, value in eth_attrs.items():
        setattr(web3.eth, name, value)
    return web3


def _fee_web3(base_fee=30_000_000_000, tip=2_000_000_000, **extra):
    block = MagicMock()
    block.baseFeePerGas = base_fee
    history = MagicMock()
    history.reward = [[tip] for _ in range(10)]
    return _web3(
        get_block=AsyncMock(return_value=block),
        fee_history=AsyncMock(return_value=history),
        **extra,
    )


@pytest.mark.asyncio
class TestFillTransaction:
    async def test_nonce_uses_pending_count_for_checksummed_sender(self):
        web3 = _web3(get_transaction_count=AsyncMock(return_value=7))

        result = await fill_nonce(web3, {"from": RANDOM_USER_0.lower(), "chainId": 8453})

        assert result["nonce"] == 7
        web3.eth.get_transaction_count.assert_awaited_once_with(
            RANDOM_USER_0, block_identifier="pending"
        )

    async def test_nonce_requires_sender(self):
        with pytest.raises(ValueError, match="does not contain from address"):
            await fill_nonce(_web3(), {"chainId": 8453})

    async def test_eip1559_fees(self):
        web3 = _fee_web3()

        result = await fill_fees(web3, {"chainId": 8453})

        assert result["maxPriorityFeePerGas"] == int(
            2_000_000_000 * SUGGESTED_PRIORITY_FEE_MULTIPLIER
        )
        assert result["maxFeePerGas"] == int(
            30_000_000_000 * 2 + 2_000_000_000 * SUGGESTED_PRIORITY_FEE_MULTIPLIER
        )
        assert "gasPrice" not in result

    async def test_gas_limit_is_buffered_and_ignores_stale_limit(self):
        web3 = _web3(estimate_gas=AsyncMock(return_value=100_000))

        result = await fill_gas_limit(web3, {"chainId": 1, "gas": 1})

        assert result["gas"] == math.ceil(100_000 * GAS_BUFFER_MULTIPLIER)
        assert "gas" not in web3.eth.estimate_gas.call_args.args[0]

    async def test_gas_estimation_failure_propagates(self):
        web3 = _web3(estimate_gas=AsyncMock(side_effect=ValueError("execution reverted")))
        with pytest.raises(ValueError, match="execution reverted"):
            await fill_gas_limit(web3, {"chainId": 1})


@pytest.mark.asyncio
class TestSignAndSend:
    def _web3(self):
        return _fee_web3(
            estimate_gas=AsyncMock(return_value=50_000),
            get_transaction_count=AsyncMock(return_value=3),
            send_raw_transaction=AsyncMock(return_value=HexBytes("0xabcd")),
        )

    async def test_fills_signs_and_broadcasts(self):
        web3 = self._web3()
        seen = []

        async def sign_callback(tx: dict) -> bytes:
            seen.append(tx)
            return b"\x01"

        txn_hash = await sign_and_send(
            web3, {"from": RANDOM_USER_0, "chainId": 8453, "to": RANDOM_USER_0}, sign_callback
        )

        assert txn_hash == "0xabcd"
        (tx,) = seen
        assert tx["nonce"] == 3
        assert tx["gas"] == math.ceil(50_000 * GAS_BUFFER_MULTIPLIER)
        assert "maxFeePerGas" in tx
        web3.eth.send_raw_transaction.assert_awaited_once_with(b"\x01")

    async def test_wallet_rejection_is_typed(self):
        web3 = self._web3()

        async def sign_callback(_tx: dict) -> bytes:
            raise RuntimeError("User rejected the request.")

        with pytest.raises(UserRejectedError):
            await sign_and_send(web3, {"from": RANDOM_USER_0, "chainId": 8453}, sign_callback)
        web3.eth.send_raw_transaction.assert_not_awaited()

    async def test_other_signer_errors_propagate(self):
        async def sign_callback(_tx: dict) -> bytes:
            raise RuntimeError("device locked")

        with pytest.raises(RuntimeError, match="device locked"):
            await sign_and_send(
                self._web3(), {"from": RANDOM_USER_0, "chainId": 8453}, sign_callback
            )

    async def test_requires_sign_callback(self):
        with pytest.raises(ValueError, match="sign_callback"):
            await sign_and_send(self._web3(), {"from": RANDOM_USER_0}, None)


@pytest.mark.asyncio
class TestWaitForReceipt:
    async def test_waits_for_confirmations_and_reports_receipt(self):
        receipt = {"status": 1, "blockNumber": 100}
        block_numbers = iter([100, 101, 102])

        async def _block_number():
            return next(block_numbers)

        web3 = _web3(wait_for_transaction_receipt=AsyncMock(return_value=receipt))
        type(web3.eth).block_number = property(lambda _self: _block_number())

        seen = []
        result = await wait_for_transaction_receipt(
            web3, "abc", poll_interval=0, confirmations=3, on_receipt=seen.append
        )

        assert result == receipt
        assert seen == [receipt]
        assert web3.eth.wait_for_transaction_receipt.call_args.args[0] == "0xabc"

    async def test_timeout_is_passed_to_web3(self):
        web3 = _web3(
            wait_for_transaction_receipt=AsyncMock(return_value={"status": 1, "blockNumber": 1})
        )

        async def _block_number():
            return 1

        type(web3.eth).block_number = property(lambda _self: _block_number())

        await wait_for_transaction_receipt(web3, "0x01", timeout=12, poll_interval=0)

        assert web3.eth.wait_for_transaction_receipt.call_args.kwargs["timeout"] == 12

    async def test_raises_on_status_zero_without_callback(self):
        web3 = _web3(
            wait_for_transaction_receipt=AsyncMock(
                return_value={"status": 0, "blockNumber": 5, "gasUsed": 21_000}
            )
        )
        seen = []

        with pytest.raises(TransactionRevertedError, match="gasUsed=21000") as excinfo:
            await wait_for_transaction_receipt(web3, "0xdead", on_receipt=seen.append)

        assert excinfo.value.txn_hash == "0xdead"
        assert seen == []


def test_is_user_rejection():
    class _WalletError(Exception):
        code = 4001

    assert is_user_rejection(_WalletError("nope"))
    assert is_user_rejection(UserRejectedError())
    assert is_user_rejection(RuntimeError("MetaMask: User denied transaction signature"))
    assert not is_user_rejection(ValueError("insufficient funds"))


@pytest.mark.asyncio
async def test_local_sign_callback_produces_raw_bytes():
    sign = make_local_sign_callback(TEST_PRIVATE_KEY)
    raw = await sign(
        {
            "chainId": 1,
            "nonce": 0,
            "to": RANDOM_USER_0,
            "value": 1,
            "gas": 21_000,
            "maxFeePerGas": 2_000_000_000,
            "maxPriorityFeePerGas": 1_000_000_000,
            "data": "0x",
        }
    )
    assert isinstance(raw, (bytes, bytearray))
    assert len(raw) > 0
