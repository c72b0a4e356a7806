"""Debounced exact-input quotes with last-request-wins semantics.

Every ``set_amount_in`` bumps a sequence number. A request sleeps for the
debounce window, then dry-runs the swap; a newer request cancels older ones
that are still sleeping, and any result that comes back for an outdated
sequence number is dropped instead of being written to the slot.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import StrEnum

from eth_utils import to_checksum_address
from loguru import logger

from cabac_dex.core.clients.ChainClient import ChainClient
from cabac_dex.core.config import get_quote_debounce_s, get_quote_source
from cabac_dex.core.constants.base import SWAP_DEADLINE_SECONDS
from cabac_dex.core.constants.uniswap_v3_abi import (
    UNISWAP_V3_QUOTER_V2_ABI,
    UNISWAP_V3_ROUTER_ABI,
)
from cabac_dex.core.engine.sequencer import describe_failure
from cabac_dex.core.registry import ChainRegistry, Pool, Token
from cabac_dex.core.utils.uniswap_v3_math import deadline
from cabac_dex.core.utils.units import format_units, parse_units


class QuoteError(RuntimeError):
    pass


class QuoteStatus(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class QuoteState:
    status: QuoteStatus = QuoteStatus.IDLE
    amount_in: str = ""
    amount_out: str = ""
    raw_amount_in: int = 0
    raw_amount_out: int = 0
    error: str | None = None
    seq: int = 0


@dataclass
class _QuoteRequest:
    seq: int
    amount_in: int
    task: asyncio.Task | None = None
    dispatched: bool = False


class QuoteEngine:
    def __init__(
        self,
        chain: ChainClient,
        registry: ChainRegistry,
        owner: str,
        token_in: Token,
        token_out: Token,
        *,
        fee: int | None = None,
        debounce_s: float | None = None,
        source: str | None = None,
    ) -> None:
        self.chain = chain
        self.registry = registry
        self.owner = to_checksum_address(owner)
        self.token_in = token_in
        self.token_out = token_out
        self.fee = fee
        self.debounce_s = get_quote_debounce_s() if debounce_s is None else debounce_s
        self.source = source or get_quote_source()

        self._state = QuoteState()
        self._seq = 0
        self._request: _QuoteRequest | None = None
        self._listeners: list[Callable[[QuoteState], None]] = []
        self.logger = logger.bind(component="QuoteEngine")

    @property
    def state(self) -> QuoteState:
        return self._state

    @property
    def is_wrap_pair(self) -> bool:
        return self.registry.wrap_direction(self.token_in.address, self.token_out.address) is not None

    def subscribe(self, listener: Callable[[QuoteState], None]) -> None:
        self._listeners.append(listener)

    def pool(self) -> Pool | None:
        return self.registry.find_pool(self.token_in.address, self.token_out.address, self.fee)

    def set_pair(self, token_in: Token, token_out: Token, *, fee: int | None = None) -> None:
        self.token_in = token_in
        self.token_out = token_out
        self.fee = fee
        self.set_amount_in(self._state.amount_in)

    def flip(self) -> None:
        """Swap input and output; the last quoted output becomes the new input."""
        carried = self._state.amount_out if self._state.status == QuoteStatus.READY else ""
        self.token_in, self.token_out = self.token_out, self.token_in
        self.set_amount_in(carried)

    def set_amount_in(self, text: str) -> None:
        self._seq += 1
        seq = self._seq
        previous = self._request
        if previous is not None and not previous.dispatched and previous.task is not None:
            previous.task.cancel()
        self._request = None

        text = (text or "").strip()
        try:
            raw_in = parse_units(text, self.token_in.decimals)
        except ValueError as exc:
            self._write(QuoteState(QuoteStatus.ERROR, amount_in=text, error=str(exc), seq=seq))
            return
        if raw_in == 0:
            self._write(QuoteState(amount_in=text, seq=seq))
            return

        if self.is_wrap_pair:
            self._write(
                QuoteState(
                    QuoteStatus.READY,
                    amount_in=text,
                    amount_out=format_units(raw_in, self.token_out.decimals),
                    raw_amount_in=raw_in,
                    raw_amount_out=raw_in,
                    seq=seq,
                )
            )
            return

        self._write(
            QuoteState(QuoteStatus.LOADING, amount_in=text, raw_amount_in=raw_in, seq=seq)
        )
        request = _QuoteRequest(seq=seq, amount_in=raw_in)
        request.task = asyncio.create_task(self._debounced(request))
        self._request = request

    async def settle(self) -> QuoteState:
        """Wait for the latest scheduled quote (if any) and return the slot.

        Cancelling the waiter leaves the quote running; a quote superseded by a
        newer ``set_amount_in`` just returns the current slot.
        """
        request = self._request
        if request is None or request.task is None:
            return self._state
        try:
            await asyncio.shield(request.task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if not request.task.cancelled() or (current is not None and current.cancelling()):
                raise
        return self._state

    async def quote_exact_input(self, amount_in: int) -> int:
        if self.is_wrap_pair:
            return int(amount_in)
        if self.token_out.is_native:
            raise QuoteError(
                f"Swap to native {self.registry.native_symbol} is not supported; "
                f"unwrap W{self.registry.native_symbol} instead"
            )
        pool = self.pool()
        if pool is None:
            raise QuoteError("No pool found")

        weth = self.registry.contracts.weth
        token_in = weth if self.token_in.is_native else self.token_in.address
        value = int(amount_in) if self.token_in.is_native else 0
        quoter = self.registry.contracts.quoter_v2

        if self.source == "quoter" and quoter:
            intent = await self.chain.simulate_contract(
                address=quoter,
                abi=UNISWAP_V3_QUOTER_V2_ABI,
                fn_name="quoteExactInputSingle",
                args=[(token_in, self.token_out.address, int(amount_in), pool.fee, 0)],
                from_address=self.owner,
            )
            return int(intent.result[0])

        intent = await self.chain.simulate_contract(
            address=self.registry.contracts.router,
            abi=UNISWAP_V3_ROUTER_ABI,
            fn_name="exactInputSingle",
            args=[
                (
                    token_in,
                    self.token_out.address,
                    pool.fee,
                    self.owner,
                    deadline(SWAP_DEADLINE_SECONDS),
                    int(amount_in),
                    0,
                    0,
                )
            ],
            from_address=self.owner,
            value=value,
        )
        return int(intent.result)

    async def _debounced(self, request: _QuoteRequest) -> None:
        if self.debounce_s > 0:
            await asyncio.sleep(self.debounce_s)
        request.dispatched = True
        try:
            raw_out = await self.quote_exact_input(request.amount_in)
        except Exception as exc:  # noqa: BLE001
            if request.seq != self._seq:
                return
            self.logger.warning(f"Quote failed: {exc}")
            self._write(replace(self._state, status=QuoteStatus.ERROR, error=describe_failure(exc)))
            return

        if request.seq != self._seq:
            self.logger.debug(f"Discarding stale quote #{request.seq} (latest #{self._seq})")
            return
        self._write(
            replace(
                self._state,
                status=QuoteStatus.READY,
                amount_out=format_units(raw_out, self.token_out.decimals),
                raw_amount_out=raw_out,
                error=None,
            )
        )

    def _write(self, state: QuoteState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as exc:  # noqa: BLE001
                self.logger.warning(f"Quote listener failed: {exc}")
