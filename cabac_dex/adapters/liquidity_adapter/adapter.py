from __future__ import annotations

from typing import Any

from cabac_dex.adapters.allowance_adapter.adapter import AllowanceAdapter
from cabac_dex.adapters.liquidity_adapter.inventory import PositionInventory, PositionView
from cabac_dex.core.adapters.BaseAdapter import require_wallet
from cabac_dex.core.adapters.SessionAdapter import SessionAdapter, SessionContext
from cabac_dex.core.clients.ChainClient import ChainClient
from cabac_dex.core.constants.base import ADAPTER_LIQUIDITY, LIQUIDITY_DEADLINE_SECONDS
from cabac_dex.core.constants.uniswap_v3_abi import UNISWAP_V3_NPM_ABI
from cabac_dex.core.engine.actions import PreparedAction, execute_prepared, prepare_gated
from cabac_dex.core.engine.sequencer import (
    ActionResult,
    CallStep,
    TransactionSequencer,
)
from cabac_dex.core.engine.session import WalletSession
from cabac_dex.core.registry import ChainRegistry, Pool, pool_key
from cabac_dex.core.utils.transaction import SignCallback
from cabac_dex.core.utils.uniswap_v3_math import (
    MAX_TICK,
    MIN_TICK,
    collect_params,
    deadline,
    liquidity_to_remove,
    nearest_usable_tick,
    price_to_tick,
)
from cabac_dex.core.utils.units import parse_units

ACTION_MINT = "mint"
ACTION_INCREASE = "increase"
ACTION_REMOVE = "remove"
ACTION_BURN = "burn"


class LiquidityAdapter(SessionAdapter):
    adapter_type = ADAPTER_LIQUIDITY

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        session: WalletSession,
        context: SessionContext | None = None,
        chain: ChainClient | None = None,
        registry: ChainRegistry | None = None,
        reconciler: AllowanceAdapter | None = None,
        sequencer: TransactionSequencer | None = None,
        inventory: PositionInventory | None = None,
        sign_callback: SignCallback | None = None,
    ) -> None:
        super().__init__(
            "liquidity_adapter",
            config,
            session=session,
            context=context,
            chain=chain,
            registry=registry,
            reconciler=reconciler,
            sequencer=sequencer,
            sign_callback=sign_callback,
        )
        self.inventory = inventory or PositionInventory(self.chain, self.registry, self.owner)
        self.sequencer.add_refresh_hook(self.inventory.refresh)

    @property
    def position_manager(self) -> str:
        return self.registry.contracts.position_manager

    @property
    def positions(self) -> list[PositionView]:
        return self.inventory.positions

    # -- inventory ----------------------------------------------------------

    @require_wallet
    async def refresh_positions(self) -> tuple[bool, list[PositionView]]:
        return True, await self.inventory.refresh()

    # -- mint ---------------------------------------------------------------

    @require_wallet
    async def prepare_add_liquidity(
        self,
        pool: Pool,
        amount0: str,
        amount1: str,
        min_price: float | None = None,
        max_price: float | None = None,
    ) -> tuple[bool, PreparedAction | str]:
        """Plan a mint; ``None`` for both prices means full range."""
        try:
            raw0 = parse_units(amount0, pool.token0.decimals)
            raw1 = parse_units(amount1, pool.token1.decimals)
        except ValueError as exc:
            return False, str(exc)
        if raw0 == 0 and raw1 == 0:
            return False, "Enter an amount"

        try:
            spacing = await self.inventory.tick_spacing(pool)
            tick_lower, tick_upper = self._ticks_for_range(
                pool, spacing, min_price, max_price
            )
        except ValueError as exc:
            return False, f"Invalid price range: {exc}"
        except Exception as exc:  # noqa: BLE001
            return False, str(exc)
        if tick_lower >= tick_upper:
            return False, "Invalid price range"

        mint = CallStep(
            self.position_manager,
            UNISWAP_V3_NPM_ABI,
            "mint",
            args=(
                (
                    pool.token0.address,
                    pool.token1.address,
                    pool.fee,
                    tick_lower,
                    tick_upper,
                    raw0,
                    raw1,
                    0,
                    0,
                    self.wallet_address,
                    deadline(LIQUIDITY_DEADLINE_SECONDS),
                ),
            ),
            label=f"mint {pool.label}",
            affects=(
                (pool.token0.address, self.position_manager),
                (pool.token1.address, self.position_manager),
            ),
            balances=(pool.token0.address, pool.token1.address),
        )
        return await self._gate(
            ACTION_MINT,
            [(pool.token0, raw0), (pool.token1, raw1)],
            mint,
            details={"tick_lower": tick_lower, "tick_upper": tick_upper},
        )

    async def add_liquidity(
        self,
        pool: Pool,
        amount0: str,
        amount1: str,
        min_price: float | None = None,
        max_price: float | None = None,
    ) -> tuple[bool, ActionResult | str]:
        ok, prepared = await self.prepare_add_liquidity(
            pool, amount0, amount1, min_price, max_price
        )
        return await execute_prepared(self.sequencer, ok, prepared)

    # -- increase -----------------------------------------------------------

    @require_wallet
    async def prepare_increase_liquidity(
        self, token_id: int, amount0: str, amount1: str
    ) -> tuple[bool, PreparedAction | str]:
        ok, resolved = await self._fresh_position(token_id)
        if not ok:
            return False, resolved
        pool, _ = resolved
        try:
            raw0 = parse_units(amount0, pool.token0.decimals)
            raw1 = parse_units(amount1, pool.token1.decimals)
        except ValueError as exc:
            return False, str(exc)
        if raw0 == 0 and raw1 == 0:
            return False, "Enter an amount"

        increase = CallStep(
            self.position_manager,
            UNISWAP_V3_NPM_ABI,
            "increaseLiquidity",
            args=((int(token_id), raw0, raw1, 0, 0, deadline(LIQUIDITY_DEADLINE_SECONDS)),),
            label=f"increase #{token_id}",
            affects=(
                (pool.token0.address, self.position_manager),
                (pool.token1.address, self.position_manager),
            ),
            balances=(pool.token0.address, pool.token1.address),
        )
        return await self._gate(
            ACTION_INCREASE, [(pool.token0, raw0), (pool.token1, raw1)], increase
        )

    async def increase_liquidity(
        self, token_id: int, amount0: str, amount1: str
    ) -> tuple[bool, ActionResult | str]:
        ok, prepared = await self.prepare_increase_liquidity(token_id, amount0, amount1)
        return await execute_prepared(self.sequencer, ok, prepared)

    # -- remove / burn ------------------------------------------------------

    @require_wallet
    async def prepare_remove_liquidity(
        self, token_id: int, percentage: int | float | str
    ) -> tuple[bool, PreparedAction | str]:
        ok, resolved = await self._fresh_position(token_id)
        if not ok:
            return False, resolved
        pool, position = resolved
        if position["liquidity"] == 0:
            return False, "Position has no liquidity"
        try:
            amount = liquidity_to_remove(position["liquidity"], percentage)
        except ValueError as exc:
            return False, str(exc)
        if amount == 0:
            return False, "Amount too small"

        decrease = CallStep(
            self.position_manager,
            UNISWAP_V3_NPM_ABI,
            "decreaseLiquidity",
            args=((int(token_id), amount, 0, 0, deadline(LIQUIDITY_DEADLINE_SECONDS)),),
            label=f"decrease #{token_id}",
        )
        collect = CallStep(
            self.position_manager,
            UNISWAP_V3_NPM_ABI,
            "collect",
            args=(collect_params(int(token_id), self.wallet_address),),
            label=f"collect #{token_id}",
            balances=(pool.token0.address, pool.token1.address),
        )
        intent, reason = await self.sequencer.prepare(decrease)
        if intent is None:
            return False, reason
        return True, PreparedAction(
            ACTION_REMOVE,
            (decrease, collect),
            intent=intent,
            details={"liquidity_to_remove": amount},
        )

    async def remove_liquidity(
        self, token_id: int, percentage: int | float | str
    ) -> tuple[bool, ActionResult | str]:
        ok, prepared = await self.prepare_remove_liquidity(token_id, percentage)
        return await execute_prepared(self.sequencer, ok, prepared)

    @require_wallet
    async def prepare_burn_position(
        self, token_id: int
    ) -> tuple[bool, PreparedAction | str]:
        ok, resolved = await self._fresh_position(token_id)
        if not ok:
            return False, resolved
        _, position = resolved
        if position["liquidity"] != 0:
            return False, "Position still has liquidity"
        burn = CallStep(
            self.position_manager,
            UNISWAP_V3_NPM_ABI,
            "burn",
            args=(int(token_id),),
            label=f"burn #{token_id}",
        )
        intent, reason = await self.sequencer.prepare(burn)
        if intent is None:
            return False, reason
        return True, PreparedAction(ACTION_BURN, (burn,), intent=intent)

    async def burn_position(self, token_id: int) -> tuple[bool, ActionResult | str]:
        ok, prepared = await self.prepare_burn_position(token_id)
        return await execute_prepared(self.sequencer, ok, prepared)

    # -- helpers ------------------------------------------------------------

    def _ticks_for_range(
        self,
        pool: Pool,
        spacing: int,
        min_price: float | None,
        max_price: float | None,
    ) -> tuple[int, int]:
        if min_price is None and max_price is None:
            return nearest_usable_tick(MIN_TICK, spacing), nearest_usable_tick(
                MAX_TICK, spacing
            )
        if min_price is None or max_price is None:
            raise ValueError("both prices are required")
        return (
            price_to_tick(float(min_price), pool.token0, pool.token1, spacing),
            price_to_tick(float(max_price), pool.token0, pool.token1, spacing),
        )

    async def _fresh_position(self, token_id: int) -> tuple[bool, Any]:
        try:
            position = await self.inventory.read_position(int(token_id))
        except Exception as exc:  # noqa: BLE001
            return False, f"Failed to read position {token_id}: {exc}"
        pool = self.registry.get_pool(
            pool_key(position["token0"], position["token1"], position["fee"])
        )
        if pool is None:
            return False, "Unknown pool"
        return True, (pool, position)

    async def _gate(
        self,
        action: str,
        requirements: list,
        call: CallStep,
        details: dict[str, Any] | None = None,
    ) -> tuple[bool, PreparedAction | str]:
        return await prepare_gated(
            self.reconciler,
            self.sequencer,
            action,
            requirements,
            self.position_manager,
            call,
            details,
        )
