from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from aiocache import Cache
from eth_utils import to_checksum_address
from loguru import logger

from cabac_dex.adapters.multicall_adapter.adapter import ContractRead
from cabac_dex.core.clients.ChainClient import ChainClient
from cabac_dex.core.constants.tokens import FEE_TIER_TICK_SPACING
from cabac_dex.core.constants.uniswap_v3_abi import (
    UNISWAP_V3_NPM_ABI,
    UNISWAP_V3_POOL_ABI,
)
from cabac_dex.core.registry import ChainRegistry, Pool, PoolKey, Token, pool_key
from cabac_dex.core.utils.uniswap_v3_math import (
    AmountsDegraded,
    PositionAmounts,
    PositionData,
    is_full_range,
    parse_position_struct,
    position_amounts,
)


@dataclass(frozen=True)
class PoolState:
    sqrt_price_x96: int
    tick: int
    tick_spacing: int
    liquidity: int


@dataclass(frozen=True)
class PositionView:
    token_id: int
    pool: Pool
    tick_lower: int
    tick_upper: int
    liquidity: int
    amounts: PositionAmounts
    current_tick: int | None = None
    tokens_owed0: int = 0
    tokens_owed1: int = 0

    @property
    def token0(self) -> Token:
        return self.pool.token0

    @property
    def token1(self) -> Token:
        return self.pool.token1

    @property
    def fee(self) -> int:
        return self.pool.fee

    @property
    def fee_percent(self) -> float:
        return self.pool.fee_percent

    @property
    def amount0(self) -> int:
        return self.amounts.amount0

    @property
    def amount1(self) -> int:
        return self.amounts.amount1

    @property
    def in_range(self) -> bool:
        if self.current_tick is None:
            return False
        return self.tick_lower <= self.current_tick < self.tick_upper

    @property
    def is_full_range(self) -> bool:
        return is_full_range(self.tick_lower, self.tick_upper)

    @property
    def is_empty(self) -> bool:
        return self.liquidity == 0


class PositionInventory:
    """The owner's position NFTs, resolved against the chain registry.

    ``load`` reads everything in four round trips (balance, token ids,
    positions, pool states) and degrades to an empty list if any of them
    fails. Positions whose pool is not in the registry are dropped.
    """

    def __init__(
        self,
        chain: ChainClient,
        registry: ChainRegistry,
        owner: str,
    ) -> None:
        self.chain = chain
        self.registry = registry
        self.owner = to_checksum_address(owner)
        self.positions: list[PositionView] = []
        self._listeners: list[Callable[[list[PositionView]], None]] = []
        self._cache = Cache(Cache.MEMORY)
        self.logger = logger.bind(component="PositionInventory")

    @property
    def position_manager(self) -> str:
        return self.registry.contracts.position_manager

    @property
    def active(self) -> list[PositionView]:
        return [p for p in self.positions if not p.is_empty]

    @property
    def empty(self) -> list[PositionView]:
        return [p for p in self.positions if p.is_empty]

    def subscribe(self, listener: Callable[[list[PositionView]], None]) -> None:
        self._listeners.append(listener)

    def get(self, token_id: int) -> PositionView | None:
        return next((p for p in self.positions if p.token_id == int(token_id)), None)

    async def refresh(self) -> list[PositionView]:
        self.positions = await self.load()
        for listener in list(self._listeners):
            listener(list(self.positions))
        return self.positions

    async def load(self) -> list[PositionView]:
        try:
            return await self._load()
        except Exception as exc:  # noqa: BLE001
            self.logger.error(f"Failed to load positions for {self.owner}: {exc}")
            return []

    async def _load(self) -> list[PositionView]:
        npm = self.position_manager
        balance = int(
            await self.chain.read_contract(
                npm, UNISWAP_V3_NPM_ABI, "balanceOf", (self.owner,)
            )
        )
        if balance == 0:
            return []

        id_outcomes = await self.chain.multicall(
            [
                ContractRead(npm, UNISWAP_V3_NPM_ABI, "tokenOfOwnerByIndex", (self.owner, i))
                for i in range(balance)
            ]
        )
        token_ids = []
        for index, outcome in enumerate(id_outcomes):
            if outcome.success:
                token_ids.append(int(outcome.result))
            else:
                self.logger.warning(f"tokenOfOwnerByIndex({index}) failed: {outcome.error}")

        position_outcomes = await self.chain.multicall(
            [ContractRead(npm, UNISWAP_V3_NPM_ABI, "positions", (tid,)) for tid in token_ids]
        )
        resolved: list[tuple[int, PositionData, Pool]] = []
        pools: dict[PoolKey, Pool] = {}
        for token_id, outcome in zip(token_ids, position_outcomes, strict=True):
            if not outcome.success:
                self.logger.warning(f"positions({token_id}) failed: {outcome.error}")
                continue
            data = parse_position_struct(outcome.result)
            key = pool_key(data["token0"], data["token1"], data["fee"])
            pool = self.registry.get_pool(key)
            if pool is None:
                continue
            pools[key] = pool
            resolved.append((token_id, data, pool))

        states = await self.pool_states(list(pools.values()))
        views = [
            self._view(token_id, data, pool, states.get(pool.key))
            for token_id, data, pool in resolved
        ]
        views.sort(key=lambda v: (v.is_empty, -v.token_id))
        return views

    async def pool_states(self, pools: list[Pool]) -> dict[PoolKey, PoolState]:
        """``slot0`` and ``liquidity`` for each pool in one batch; tick spacing is memoised."""
        if not pools:
            return {}

        spacings: dict[PoolKey, int] = {}
        missing: list[Pool] = []
        for pool in pools:
            cached = await self._cache.get(self._spacing_key(pool))
            if cached is None:
                missing.append(pool)
            else:
                spacings[pool.key] = int(cached)

        reads: list[ContractRead] = []
        for pool in pools:
            reads.append(ContractRead(pool.address, UNISWAP_V3_POOL_ABI, "slot0"))
            reads.append(ContractRead(pool.address, UNISWAP_V3_POOL_ABI, "liquidity"))
        for pool in missing:
            reads.append(ContractRead(pool.address, UNISWAP_V3_POOL_ABI, "tickSpacing"))

        outcomes = await self.chain.multicall(reads)
        state_outcomes = outcomes[: 2 * len(pools)]
        spacing_outcomes = outcomes[2 * len(pools) :]

        for pool, outcome in zip(missing, spacing_outcomes, strict=True):
            if outcome.success:
                spacings[pool.key] = int(outcome.result)
                await self._cache.set(self._spacing_key(pool), int(outcome.result))
            else:
                spacings[pool.key] = FEE_TIER_TICK_SPACING.get(pool.fee, 1)

        states: dict[PoolKey, PoolState] = {}
        for i, pool in enumerate(pools):
            slot0, liquidity = state_outcomes[2 * i], state_outcomes[2 * i + 1]
            if not (slot0.success and liquidity.success):
                self.logger.warning(
                    f"Pool state read failed for {pool.label}: "
                    f"{slot0.error or liquidity.error}"
                )
                continue
            states[pool.key] = PoolState(
                sqrt_price_x96=int(slot0.result[0]),
                tick=int(slot0.result[1]),
                tick_spacing=spacings[pool.key],
                liquidity=int(liquidity.result),
            )
        return states

    async def tick_spacing(self, pool: Pool) -> int:
        cached = await self._cache.get(self._spacing_key(pool))
        if cached is not None:
            return int(cached)
        spacing = int(
            await self.chain.read_contract(pool.address, UNISWAP_V3_POOL_ABI, "tickSpacing")
        )
        await self._cache.set(self._spacing_key(pool), spacing)
        return spacing

    async def read_position(self, token_id: int) -> PositionData:
        """Fresh ``positions(tokenId)`` read, bypassing the loaded inventory."""
        raw = await self.chain.read_contract(
            self.position_manager, UNISWAP_V3_NPM_ABI, "positions", (int(token_id),)
        )
        return parse_position_struct(raw)

    def _spacing_key(self, pool: Pool) -> str:
        return f"tick_spacing:{self.registry.chain_id}:{pool.address.lower()}"

    @staticmethod
    def _view(
        token_id: int, data: PositionData, pool: Pool, state: PoolState | None
    ) -> PositionView:
        if state is None:
            amounts: PositionAmounts = AmountsDegraded(reason="pool state unavailable")
            current_tick = None
        else:
            amounts = position_amounts(
                data["liquidity"],
                data["tick_lower"],
                data["tick_upper"],
                state.tick,
                state.sqrt_price_x96,
                state.liquidity,
                pool.token0,
                pool.token1,
            )
            current_tick = state.tick
        return PositionView(
            token_id=int(token_id),
            pool=pool,
            tick_lower=data["tick_lower"],
            tick_upper=data["tick_upper"],
            liquidity=data["liquidity"],
            amounts=amounts,
            current_tick=current_tick,
            tokens_owed0=data["tokens_owed0"],
            tokens_owed1=data["tokens_owed1"],
        )


def summarize(view: PositionView) -> dict[str, Any]:
    """Plain-dict rendering used by the CLI."""
    return {
        "token_id": view.token_id,
        "pool": view.pool.label,
        "tick_lower": view.tick_lower,
        "tick_upper": view.tick_upper,
        "liquidity": view.liquidity,
        "amount0": view.amount0,
        "amount1": view.amount1,
        "degraded": view.amounts.degraded,
        "in_range": view.in_range,
        "full_range": view.is_full_range,
        "tokens_owed0": view.tokens_owed0,
        "tokens_owed1": view.tokens_owed1,
    }
