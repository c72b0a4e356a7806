from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError

from cabac_dex.adapters.multicall_adapter.adapter import ContractRead, MulticallOutcome
from cabac_dex.core.clients.ChainClient import (
    ChainClient,
    SimulationError,
    TransactionIntent,
)
from cabac_dex.core.constants.erc20_abi import ERC20_ABI

OWNER = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
TOKEN = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
SPENDER = "0xe2649752dE1DEb3A7bC7Ad3e1CDcE9eb8535392d"


class _RateLimitedError(Exception):
    def __init__(self):
        super().__init__("Too Many Requests")
        self.status = 429


def _mock_web3(fn_name: str, call: AsyncMock) -> tuple[MagicMock, MagicMock]:
    web3 = MagicMock()
    web3.to_checksum_address = AsyncWeb3.to_checksum_address
    contract = MagicMock()
    contract.encode_abi = MagicMock(return_value="0x095ea7b3")
    bound = MagicMock()
    bound.call = call
    setattr(contract.functions, fn_name, MagicMock(return_value=bound))
    web3.eth.contract = MagicMock(return_value=contract)
    return web3, contract


@pytest.mark.asyncio
class TestReadContract:
    async def test_reads_through_contract_function(self):
        web3, contract = _mock_web3("allowance", AsyncMock(return_value=7))
        client = ChainClient(8453, web3=web3)

        value = await client.read_contract(TOKEN, ERC20_ABI, "allowance", (OWNER, SPENDER))

        assert value == 7
        contract.functions.allowance.assert_called_once_with(OWNER, SPENDER)

    @patch("cabac_dex.core.utils.retry.asyncio.sleep", new_callable=AsyncMock)
    async def test_retries_rate_limited_reads(self, mock_sleep):
        call = AsyncMock(side_effect=[_RateLimitedError(), 42])
        web3, _ = _mock_web3("balanceOf", call)
        client = ChainClient(8453, web3=web3)

        assert await client.read_contract(TOKEN, ERC20_ABI, "balanceOf", (OWNER,)) == 42
        assert call.await_count == 2
        mock_sleep.assert_awaited_once()

    async def test_does_not_retry_other_errors(self):
        call = AsyncMock(side_effect=ValueError("bad response"))
        web3, _ = _mock_web3("balanceOf", call)
        client = ChainClient(8453, web3=web3)

        with pytest.raises(ValueError, match="bad response"):
            await client.read_contract(TOKEN, ERC20_ABI, "balanceOf", (OWNER,))
        assert call.await_count == 1


@pytest.mark.asyncio
class TestSimulateContract:
    async def test_returns_intent_with_encoded_tx(self):
        web3, _ = _mock_web3("approve", AsyncMock(return_value=True))
        client = ChainClient(8453, web3=web3)

        intent = await client.simulate_contract(
            address=TOKEN,
            abi=ERC20_ABI,
            fn_name="approve",
            args=[SPENDER, 10],
            from_address=OWNER.lower(),
        )

        assert isinstance(intent, TransactionIntent)
        assert intent.result is True
        assert intent.args == (SPENDER, 10)
        assert intent.tx == {
            "chainId": 8453,
            "from": OWNER,
            "to": TOKEN,
            "data": "0x095ea7b3",
            "value": 0,
        }

    async def test_revert_becomes_simulation_error(self):
        call = AsyncMock(side_effect=ContractLogicError("execution reverted: STF"))
        web3, _ = _mock_web3("approve", call)
        client = ChainClient(8453, web3=web3)

        with pytest.raises(SimulationError) as excinfo:
            await client.simulate_contract(
                address=TOKEN,
                abi=ERC20_ABI,
                fn_name="approve",
                args=[SPENDER, 10],
                from_address=OWNER,
            )
        assert excinfo.value.reason == "STF"
        assert excinfo.value.fn_name == "approve"


@pytest.mark.asyncio
class TestMulticall:
    async def test_empty_batch_skips_rpc(self):
        web3 = MagicMock()
        client = ChainClient(8453, web3=web3)
        assert await client.multicall([]) == []
        web3.eth.contract.assert_not_called()

    @patch("cabac_dex.core.clients.ChainClient.MulticallAdapter")
    async def test_delegates_to_aggregate3(self, mock_adapter_cls):
        outcomes = [MulticallOutcome(True, result=1), MulticallOutcome(False, error="x")]
        mock_adapter_cls.return_value.read_many = AsyncMock(return_value=outcomes)
        client = ChainClient(8453, web3=MagicMock())

        reads = [
            ContractRead(TOKEN, ERC20_ABI, "balanceOf", (OWNER,)),
            client.eth_balance_read(OWNER),
        ]
        assert await client.multicall(reads) == outcomes
        assert reads[1].fn_name == "getEthBalance"
        assert reads[1].address == client.multicall_address


@pytest.mark.asyncio
class TestWrites:
    async def test_write_requires_sign_callback(self):
        client = ChainClient(8453, web3=MagicMock())
        intent = TransactionIntent(TOKEN, "approve", (), 0, {"chainId": 8453})
        with pytest.raises(ValueError, match="sign_callback"):
            await client.write_contract(intent)

    @patch("cabac_dex.core.clients.ChainClient.sign_and_send", new_callable=AsyncMock)
    async def test_write_signs_on_the_injected_provider(self, mock_send):
        mock_send.return_value = "0xabc"
        sign = AsyncMock(return_value=b"\x00")
        web3 = MagicMock()
        client = ChainClient(8453, web3=web3, sign_callback=sign)
        intent = TransactionIntent(TOKEN, "approve", (), 0, {"chainId": 8453})

        assert await client.write_contract(intent) == "0xabc"
        mock_send.assert_awaited_once_with(web3, intent.tx, sign)

    @patch(
        "cabac_dex.core.clients.ChainClient.wait_for_transaction_receipt",
        new_callable=AsyncMock,
    )
    async def test_receipt_wait_uses_configured_timeout(self, mock_wait):
        mock_wait.return_value = {"status": 1}
        client = ChainClient(8453, web3=MagicMock())

        receipt = await client.wait_for_transaction_receipt("0xabc")

        assert receipt == {"status": 1}
        kwargs = mock_wait.call_args.kwargs
        assert kwargs["timeout"] > 0
        assert kwargs["confirmations"] >= 1
