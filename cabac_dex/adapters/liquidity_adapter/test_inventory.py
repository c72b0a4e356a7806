from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from cabac_dex.adapters.liquidity_adapter.inventory import PositionInventory, summarize
from cabac_dex.adapters.multicall_adapter.adapter import MulticallOutcome
from cabac_dex.core.constants import ZERO_ADDRESS
from cabac_dex.core.registry import build_registry

OWNER = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
WETH = "0x4200000000000000000000000000000000000006"
USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
FOREIGN = "0x9999999999999999999999999999999999999999"

REGISTRY = build_registry(8453)


def _raw(token0, token1, fee, tick_lower, tick_upper, liquidity, owed0=0, owed1=0):
    return (0, ZERO_ADDRESS, token0, token1, fee, tick_lower, tick_upper, liquidity, 0, 0, owed0, owed1)


POSITIONS = {
    11: _raw(WETH, USDC, 500, -600, 600, 1_000_000, owed0=3),
    12: _raw(WETH, USDC, 500, -600, 600, 0),
    13: _raw(FOREIGN, USDC, 500, -600, 600, 1_000),
    14: _raw(WETH, USDC, 500, 1_000, 2_000, 5_000),
}


def _answer(read, *, fail: set[str] | None = None) -> MulticallOutcome:
    if fail and read.fn_name in fail:
        return MulticallOutcome(False, error=f"{read.fn_name} reverted")
    if read.fn_name == "tokenOfOwnerByIndex":
        return MulticallOutcome(True, result=sorted(POSITIONS)[read.args[1]])
    if read.fn_name == "positions":
        return MulticallOutcome(True, result=POSITIONS[read.args[0]])
    if read.fn_name == "slot0":
        return MulticallOutcome(True, result=(2**96, 0, 0, 1, 1, 0, True))
    if read.fn_name == "liquidity":
        return MulticallOutcome(True, result=10**18)
    if read.fn_name == "tickSpacing":
        return MulticallOutcome(True, result=10)
    raise AssertionError(read.fn_name)


def _chain(balance: int = len(POSITIONS), fail: set[str] | None = None) -> MagicMock:
    chain = MagicMock()
    chain.read_contract = AsyncMock(return_value=balance)

    async def multicall(reads):
        return [_answer(r, fail=fail) for r in reads]

    chain.multicall = AsyncMock(side_effect=multicall)
    return chain


def _fn_names(chain) -> list[str]:
    return [r.fn_name for call in chain.multicall.call_args_list for r in call.args[0]]


@pytest.mark.asyncio
class TestPositionInventory:
    async def test_zero_balance_returns_empty_without_pool_reads(self):
        chain = _chain(balance=0)
        inventory = PositionInventory(chain, REGISTRY, OWNER)

        assert await inventory.refresh() == []
        chain.read_contract.assert_awaited_once()
        assert chain.read_contract.call_args.args[2] == "balanceOf"
        chain.multicall.assert_not_awaited()

    async def test_resolves_sorts_and_drops_foreign_positions(self):
        chain = _chain()
        inventory = PositionInventory(chain, REGISTRY, OWNER)

        positions = await inventory.refresh()

        assert [p.token_id for p in positions] == [14, 11, 12]
        assert [p.token_id for p in inventory.active] == [14, 11]
        assert [p.token_id for p in inventory.empty] == [12]
        assert all(p.token0.symbol == "WETH" for p in positions)

        in_range = inventory.get(11)
        assert in_range.in_range is True
        assert in_range.amount0 > 0 and in_range.amount1 > 0
        assert in_range.tokens_owed0 == 3
        assert in_range.fee_percent == 0.05

        above = inventory.get(14)
        assert above.in_range is False
        assert above.amount0 > 0 and above.amount1 == 0

        assert inventory.get(12).amounts.amount0 == 0

    async def test_each_pool_state_is_read_once(self):
        chain = _chain()
        inventory = PositionInventory(chain, REGISTRY, OWNER)

        await inventory.refresh()

        names = _fn_names(chain)
        assert names.count("slot0") == 1
        assert names.count("liquidity") == 1
        assert names.count("tickSpacing") == 1
        assert chain.multicall.await_count == 3

    async def test_tick_spacing_is_memoised_across_refreshes(self):
        chain = _chain()
        inventory = PositionInventory(chain, REGISTRY, OWNER)

        await inventory.refresh()
        chain.multicall.reset_mock()
        await inventory.refresh()

        assert "tickSpacing" not in _fn_names(chain)
        assert await inventory.tick_spacing(REGISTRY.pools[0]) == 10

    async def test_failed_balance_read_degrades_to_empty(self):
        chain = _chain()
        chain.read_contract = AsyncMock(side_effect=RuntimeError("rpc down"))
        inventory = PositionInventory(chain, REGISTRY, OWNER)

        assert await inventory.refresh() == []

    async def test_failed_position_entries_are_dropped(self):
        chain = _chain()

        async def multicall(reads):
            outcomes = [_answer(r) for r in reads]
            if reads[0].fn_name == "positions":
                outcomes[0] = MulticallOutcome(False, error="positions reverted")
            return outcomes

        chain.multicall = AsyncMock(side_effect=multicall)
        inventory = PositionInventory(chain, REGISTRY, OWNER)

        positions = await inventory.refresh()

        assert 11 not in [p.token_id for p in positions]

    async def test_pool_state_failure_degrades_amounts(self):
        chain = _chain(fail={"slot0"})
        inventory = PositionInventory(chain, REGISTRY, OWNER)

        positions = await inventory.refresh()

        assert [p.token_id for p in positions] == [14, 11, 12]
        view = inventory.get(11)
        assert view.amounts.degraded is True
        assert view.amount0 == 0 and view.amount1 == 0
        assert summarize(view)["degraded"] is True

    async def test_listeners_receive_new_inventory(self):
        chain = _chain(balance=0)
        inventory = PositionInventory(chain, REGISTRY, OWNER)
        listener = MagicMock()
        inventory.subscribe(listener)

        await inventory.refresh()

        listener.assert_called_once_with([])
