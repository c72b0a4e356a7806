from __future__ import annotations

from typing import Any

from cabac_dex.adapters.allowance_adapter.adapter import AllowanceAdapter
from cabac_dex.adapters.swap_adapter.quotes import QuoteEngine, QuoteState, QuoteStatus
from cabac_dex.core.adapters.BaseAdapter import require_wallet
from cabac_dex.core.adapters.SessionAdapter import SessionAdapter, SessionContext
from cabac_dex.core.clients.ChainClient import ChainClient
from cabac_dex.core.config import get_default_slippage_bps
from cabac_dex.core.constants import ZERO_ADDRESS
from cabac_dex.core.constants.base import (
    ADAPTER_SWAP,
    SLIPPAGE_FAILURE_WARNING_PERCENT,
    SLIPPAGE_FRONTRUN_WARNING_PERCENT,
    SLIPPAGE_PRESETS_PERCENT,
    SWAP_DEADLINE_SECONDS,
)
from cabac_dex.core.constants.erc20_abi import WETH_ABI
from cabac_dex.core.constants.uniswap_v3_abi import UNISWAP_V3_ROUTER_ABI
from cabac_dex.core.engine.actions import PreparedAction, execute_prepared, prepare_gated
from cabac_dex.core.engine.sequencer import (
    ActionResult,
    CallStep,
    TransactionSequencer,
)
from cabac_dex.core.engine.session import WalletSession
from cabac_dex.core.registry import ChainRegistry, Token
from cabac_dex.core.utils.transaction import SignCallback
from cabac_dex.core.utils.uniswap_v3_math import deadline, slippage_min
from cabac_dex.core.utils.units import parse_units

ACTION_SWAP = "swap"
ACTION_WRAP = "wrap"
ACTION_UNWRAP = "unwrap"

FRONTRUN_WARNING = "Your transaction may be frontrun"
FAILURE_WARNING = "Your transaction may fail or be frontrun"


def slippage_warning(percent: float) -> str | None:
    if percent > SLIPPAGE_FAILURE_WARNING_PERCENT:
        return FAILURE_WARNING
    if percent > SLIPPAGE_FRONTRUN_WARNING_PERCENT:
        return FRONTRUN_WARNING
    return None


class SwapAdapter(SessionAdapter):
    """Swap card backend: quotes, slippage, wrap/unwrap and exact-input swaps."""

    adapter_type = ADAPTER_SWAP

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        session: WalletSession,
        context: SessionContext | None = None,
        token_in: Token | str,
        token_out: Token | str,
        fee: int | None = None,
        chain: ChainClient | None = None,
        registry: ChainRegistry | None = None,
        reconciler: AllowanceAdapter | None = None,
        sequencer: TransactionSequencer | None = None,
        quotes: QuoteEngine | None = None,
        sign_callback: SignCallback | None = None,
        slippage_bps: float | None = None,
    ) -> None:
        super().__init__(
            "swap_adapter",
            config,
            session=session,
            context=context,
            chain=chain,
            registry=registry,
            reconciler=reconciler,
            sequencer=sequencer,
            sign_callback=sign_callback,
        )
        self.quotes = quotes or QuoteEngine(
            self.chain,
            self.registry,
            self.owner,
            self._token(token_in),
            self._token(token_out),
            fee=fee,
        )
        self.slippage_bps = (
            get_default_slippage_bps() if slippage_bps is None else float(slippage_bps)
        )

    @property
    def router(self) -> str:
        return self.registry.contracts.router

    @property
    def weth(self) -> str:
        return self.registry.contracts.weth

    @property
    def token_in(self) -> Token:
        return self.quotes.token_in

    @property
    def token_out(self) -> Token:
        return self.quotes.token_out

    @property
    def quote_state(self) -> QuoteState:
        return self.quotes.state

    # -- slippage -----------------------------------------------------------

    @property
    def slippage_percent(self) -> float:
        return self.slippage_bps / 100

    @property
    def slippage_presets(self) -> tuple[float, ...]:
        return SLIPPAGE_PRESETS_PERCENT

    @property
    def slippage_warning(self) -> str | None:
        return slippage_warning(self.slippage_percent)

    def set_slippage(self, percent: float | str) -> str | None:
        """Set the tolerance in percent (preset or custom); returns the warning."""
        value = float(percent)
        if not 0 < value < 100:
            raise ValueError("Slippage must be between 0 and 100 percent")
        self.slippage_bps = value * 100
        return self.slippage_warning

    # -- quoting ------------------------------------------------------------

    def set_pair(self, token_in: Token | str, token_out: Token | str, fee: int | None = None) -> None:
        self.quotes.set_pair(self._token(token_in), self._token(token_out), fee=fee)

    def flip(self) -> None:
        self.quotes.flip()

    def set_amount_in(self, amount: str) -> QuoteState:
        self.quotes.set_amount_in(amount)
        return self.quotes.state

    async def quote(self, amount: str | None = None) -> tuple[bool, QuoteState | str]:
        if amount is not None:
            self.quotes.set_amount_in(amount)
        state = await self.quotes.settle()
        if state.status == QuoteStatus.ERROR:
            return False, state.error or "Quote failed"
        return True, state

    # -- swap ---------------------------------------------------------------

    @require_wallet
    async def prepare_swap(self) -> tuple[bool, PreparedAction | str]:
        direction = self.registry.wrap_direction(self.token_in.address, self.token_out.address)
        if direction == "wrap":
            return await self.prepare_wrap(self.quote_state.amount_in)
        if direction == "unwrap":
            return await self.prepare_unwrap(self.quote_state.amount_in)

        state = await self.quotes.settle()
        if state.status == QuoteStatus.ERROR:
            return False, state.error or "Quote failed"
        if state.status != QuoteStatus.READY or state.raw_amount_in == 0:
            return False, "Enter an amount"
        pool = self.quotes.pool()
        if pool is None:
            return False, "No pool found"

        token_in, token_out = self.token_in, self.token_out
        amount_in = state.raw_amount_in
        min_out = slippage_min(state.raw_amount_out, self.slippage_bps)
        swap = CallStep(
            self.router,
            UNISWAP_V3_ROUTER_ABI,
            "exactInputSingle",
            args=(
                (
                    self.weth if token_in.is_native else token_in.address,
                    token_out.address,
                    pool.fee,
                    self.wallet_address,
                    deadline(SWAP_DEADLINE_SECONDS),
                    amount_in,
                    min_out,
                    0,
                ),
            ),
            value=amount_in if token_in.is_native else 0,
            label=f"swap {token_in.symbol} -> {token_out.symbol}",
            affects=((token_in.address, self.router),),
            balances=(token_in.address, token_out.address),
        )
        return await prepare_gated(
            self.reconciler,
            self.sequencer,
            ACTION_SWAP,
            [(token_in, amount_in)],
            self.router,
            swap,
            details={
                "amount_out": state.amount_out,
                "amount_out_minimum": min_out,
                "slippage_bps": self.slippage_bps,
            },
        )

    async def swap(self) -> tuple[bool, ActionResult | str]:
        ok, prepared = await self.prepare_swap()
        return await execute_prepared(self.sequencer, ok, prepared)

    # -- wrap / unwrap ------------------------------------------------------

    @require_wallet
    async def prepare_wrap(self, amount: str) -> tuple[bool, PreparedAction | str]:
        native = self.registry.require_token(ZERO_ADDRESS)
        try:
            raw = parse_units(amount, native.decimals)
        except ValueError as exc:
            return False, str(exc)
        if raw == 0:
            return False, "Enter an amount"
        deposit = CallStep(
            self.weth,
            WETH_ABI,
            "deposit",
            value=raw,
            label=f"wrap {native.symbol}",
            balances=(ZERO_ADDRESS, self.weth),
        )
        return await prepare_gated(
            self.reconciler, self.sequencer, ACTION_WRAP, [(native, raw)], None, deposit
        )

    async def wrap(self, amount: str) -> tuple[bool, ActionResult | str]:
        ok, prepared = await self.prepare_wrap(amount)
        return await execute_prepared(self.sequencer, ok, prepared)

    @require_wallet
    async def prepare_unwrap(self, amount: str) -> tuple[bool, PreparedAction | str]:
        wrapped = self.registry.require_token(self.weth)
        try:
            raw = parse_units(amount, wrapped.decimals)
        except ValueError as exc:
            return False, str(exc)
        if raw == 0:
            return False, "Enter an amount"
        withdraw = CallStep(
            self.weth,
            WETH_ABI,
            "withdraw",
            args=(raw,),
            label=f"unwrap {wrapped.symbol}",
            balances=(ZERO_ADDRESS, self.weth),
        )
        return await prepare_gated(
            self.reconciler, self.sequencer, ACTION_UNWRAP, [(wrapped, raw)], None, withdraw
        )

    async def unwrap(self, amount: str) -> tuple[bool, ActionResult | str]:
        ok, prepared = await self.prepare_unwrap(amount)
        return await execute_prepared(self.sequencer, ok, prepared)

    def _token(self, token: Token | str) -> Token:
        if isinstance(token, Token):
            return token
        return self.registry.require_token(token)
