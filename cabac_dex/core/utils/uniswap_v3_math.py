"""Uniswap v3 price/tick codec and position value math.

Pure functions only: conversions between human prices, the pool's
``sqrtPriceX96`` encoding and tick indices, plus the three-region liquidity
formula that turns a position's liquidity into token amounts. Token arguments
only need a ``decimals`` attribute (``cabac_dex.core.registry.Token``).
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from decimal import Decimal, getcontext
from fractions import Fraction
from typing import ClassVar, Protocol, TypedDict

from eth_utils import to_checksum_address

from cabac_dex.core.constants.base import MAX_UINT128

getcontext().prec = 64

Q96 = Decimal(2) ** 96
Q32 = 1 << 32
TICK_BASE = 1.0001
MIN_TICK = -887272
MAX_TICK = 887272


class HasDecimals(Protocol):
    decimals: int


class PositionData(TypedDict):
    nonce: int
    operator: str
    token0: str
    token1: str
    fee: int
    tick_lower: int
    tick_upper: int
    liquidity: int
    fee_growth_inside0_last_x128: int
    fee_growth_inside1_last_x128: int
    tokens_owed0: int
    tokens_owed1: int


@dataclass(frozen=True)
class AmountsOk:
    amount0: int
    amount1: int
    degraded: ClassVar[bool] = False


@dataclass(frozen=True)
class AmountsDegraded:
    """Zero amounts standing in for a position whose value could not be computed."""

    reason: str
    amount0: int = 0
    amount1: int = 0
    degraded: ClassVar[bool] = True


PositionAmounts = AmountsOk | AmountsDegraded


def _decimal_shift(token0: HasDecimals, token1: HasDecimals) -> float:
    return 10.0 ** (int(token1.decimals) - int(token0.decimals))


def price_to_tick(
    price: float, token0: HasDecimals, token1: HasDecimals, tick_spacing: int
) -> int:
    """Human price (token1 per token0) -> tick, floored onto ``tick_spacing``.

    Both the raw tick and the spacing rounding go down, so a chosen bound never
    overshoots the requested range. ``tick_spacing == 0`` returns the floored
    raw tick.
    """
    price = float(price)
    if math.isnan(price) or math.isinf(price) or price <= 0:
        raise ValueError(f"price must be a positive finite number, got {price}")
    adjusted = price * _decimal_shift(token0, token1)
    raw_tick = math.log(adjusted) / math.log(TICK_BASE)
    tick = math.floor(raw_tick)
    if tick_spacing:
        tick = round_tick_to_spacing(tick, tick_spacing)
    return tick


def sqrt_price_x96_to_price(
    sqrt_price_x96: int, token0: HasDecimals, token1: HasDecimals
) -> float:
    if sqrt_price_x96 <= 0:
        return 0.0
    raw = (int(sqrt_price_x96) / (1 << 96)) ** 2
    return raw / _decimal_shift(token0, token1)


def price_to_sqrt_price_x96(
    price: float, token0: HasDecimals, token1: HasDecimals
) -> int:
    adjusted = float(price) * _decimal_shift(token0, token1)
    if adjusted < 0:
        raise ValueError("price must be non-negative")
    return int(math.sqrt(adjusted) * (1 << 96))


def tick_to_price(tick: int, token0: HasDecimals, token1: HasDecimals) -> float:
    return TICK_BASE**tick / _decimal_shift(token0, token1)


def round_tick_to_spacing(tick: int, spacing: int) -> int:
    # Python's modulo floors toward -inf for negative ticks as well.
    if spacing <= 0:
        return tick
    return tick - (tick % spacing)


def nearest_usable_tick(tick: int, spacing: int) -> int:
    """Closest multiple of ``spacing`` that lies inside the global tick bounds."""
    if spacing <= 0:
        raise ValueError("tick spacing must be positive")
    # ties round toward +inf
    rounded = math.floor(tick / spacing + 0.5) * spacing
    if rounded < MIN_TICK:
        return rounded + spacing
    if rounded > MAX_TICK:
        return rounded - spacing
    return rounded


def is_full_range(tick_lower: int, tick_upper: int) -> bool:
    return tick_lower == MIN_TICK and tick_upper == MAX_TICK


def amt0_for_liq(sqrt_a: int, sqrt_b: int, liquidity: int) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    L = Decimal(liquidity)
    out = (L * (b - a) * Q96) / (a * b)
    return int(out)


def amt1_for_liq(sqrt_a: int, sqrt_b: int, liquidity: int) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    L = Decimal(liquidity)
    out = (L * (b - a)) / Q96
    return int(out)


def position_amounts(
    liquidity: int,
    tick_lower: int,
    tick_upper: int,
    current_tick: int,
    sqrt_price_x96: int,
    pool_liquidity: int,
    token0: HasDecimals | None = None,
    token1: HasDecimals | None = None,
) -> PositionAmounts:
    """Token amounts a position could withdraw at the pool's current price.

    The region is chosen by the pool's current tick; inside the range the
    split is taken at the pool's sqrt price. Malformed inputs never raise:
    they come back as ``AmountsDegraded`` with the reason attached.
    ``pool_liquidity`` and the tokens are accepted for callers that carry a
    full pool snapshot; the formula itself does not depend on them.
    """
    try:
        liquidity = int(liquidity)
        if liquidity == 0:
            return AmountsOk(0, 0)
        if liquidity < 0:
            raise ValueError(f"negative liquidity {liquidity}")
        if int(pool_liquidity) < 0:
            raise ValueError(f"negative pool liquidity {pool_liquidity}")
        if tick_lower >= tick_upper:
            raise ValueError(f"empty tick range [{tick_lower}, {tick_upper})")

        sqrt_a = sqrt_price_x96_from_tick(int(tick_lower))
        sqrt_b = sqrt_price_x96_from_tick(int(tick_upper))

        if current_tick < tick_lower:
            return AmountsOk(amt0_for_liq(sqrt_a, sqrt_b, liquidity), 0)
        if current_tick >= tick_upper:
            return AmountsOk(0, amt1_for_liq(sqrt_a, sqrt_b, liquidity))

        sqrt_p = int(sqrt_price_x96)
        if sqrt_p <= 0:
            raise ValueError(f"invalid pool sqrt price {sqrt_price_x96}")
        # Clamp so a sqrt price a hair outside the range cannot go negative.
        sqrt_p = min(max(sqrt_p, sqrt_a), sqrt_b)
        return AmountsOk(
            amt0_for_liq(sqrt_p, sqrt_b, liquidity),
            amt1_for_liq(sqrt_a, sqrt_p, liquidity),
        )
    except (ArithmeticError, TypeError, ValueError) as exc:
        return AmountsDegraded(reason=str(exc) or exc.__class__.__name__)


def liquidity_to_remove(liquidity: int, percentage: int | float | str) -> int:
    """``floor(liquidity * percentage / 100)`` with exact rational arithmetic."""
    pct = Fraction(str(percentage))
    if pct <= 0 or pct > 100:
        raise ValueError(f"percentage must be in (0, 100], got {percentage}")
    return math.floor(int(liquidity) * pct / 100)


def sqrt_price_x96_from_tick(
    tick: int, *, min_tick: int = MIN_TICK, max_tick: int = MAX_TICK
) -> int:
    if tick < min_tick or tick > max_tick:
        raise ValueError(f"tick {tick} out of range [{min_tick}, {max_tick}]")

    abs_tick = tick if tick >= 0 else -tick
    ratio = 0x100000000000000000000000000000000

    if abs_tick & 0x1:
        ratio = (ratio * 0xFFFCB933BD6FAD37AA2D162D1A594001) >> 128
    if abs_tick & 0x2:
        ratio = (ratio * 0xFFF97272373D413259A46990580E213A) >> 128
    if abs_tick & 0x4:
        ratio = (ratio * 0xFFF2E50F5F656932EF12357CF3C7FDCC) >> 128
    if abs_tick & 0x8:
        ratio = (ratio * 0xFFE5CACA7E10E4E61C3624EAA0941CD0) >> 128
    if abs_tick & 0x10:
        ratio = (ratio * 0xFFCB9843D60F6159C9DB58835C926644) >> 128
    if abs_tick & 0x20:
        ratio = (ratio * 0xFF973B41FA98C081472E6896DFB254C0) >> 128
    if abs_tick & 0x40:
        ratio = (ratio * 0xFF2EA16466C96A3843EC78B326B52861) >> 128
    if abs_tick & 0x80:
        ratio = (ratio * 0xFE5DEE046A99A2A811C461F1969C3053) >> 128
    if abs_tick & 0x100:
        ratio = (ratio * 0xFCBE86C7900A88AEDCFFC83B479AA3A4) >> 128
    if abs_tick & 0x200:
        ratio = (ratio * 0xF987A7253AC413176F2B074CF7815E54) >> 128
    if abs_tick & 0x400:
        ratio = (ratio * 0xF3392B0822B70005940C7A398E4B70F3) >> 128
    if abs_tick & 0x800:
        ratio = (ratio * 0xE7159475A2C29B7443B29C7FA6E889D9) >> 128
    if abs_tick & 0x1000:
        ratio = (ratio * 0xD097F3BDFD2022B8845AD8F792AA5825) >> 128
    if abs_tick & 0x2000:
        ratio = (ratio * 0xA9F746462D870FDF8A65DC1F90E061E5) >> 128
    if abs_tick & 0x4000:
        ratio = (ratio * 0x70D869A156D2A1B890BB3DF62BAF32F7) >> 128
    if abs_tick & 0x8000:
        ratio = (ratio * 0x31BE135F97D08FD981231505542FCFA6) >> 128
    if abs_tick & 0x10000:
        ratio = (ratio * 0x9AA508B5B7A84E1C677DE54F3E99BC9) >> 128
    if abs_tick & 0x20000:
        ratio = (ratio * 0x5D6AF8DEDB81196699C329225EE604) >> 128
    if abs_tick & 0x40000:
        ratio = (ratio * 0x2216E584F5FA1EA926041BEDFE98) >> 128
    if abs_tick & 0x80000:
        ratio = (ratio * 0x48A170391F7DC42444E8FA2) >> 128

    if tick > 0:
        ratio = ((1 << 256) - 1) // ratio

    sqrt_price_x96 = ratio >> 32
    if ratio & (Q32 - 1):
        sqrt_price_x96 += 1
    return int(sqrt_price_x96)


def tick_from_sqrt_price_x96(sqrt_price_x96: int) -> int:
    """Greatest tick whose sqrt price is <= ``sqrt_price_x96``."""
    if sqrt_price_x96 <= 0:
        raise ValueError("sqrt price must be positive")
    ratio = int(sqrt_price_x96) / (1 << 96)
    tick = math.floor(math.log(ratio * ratio) / math.log(TICK_BASE))
    tick = max(MIN_TICK, min(MAX_TICK, tick))
    # The float estimate can be off by one around exact tick boundaries.
    if tick < MAX_TICK and sqrt_price_x96_from_tick(tick + 1) <= sqrt_price_x96:
        return tick + 1
    if tick > MIN_TICK and sqrt_price_x96_from_tick(tick) > sqrt_price_x96:
        return tick - 1
    return tick


def _sorted_bounds(sqrt_a: int, sqrt_b: int) -> tuple[Decimal, Decimal]:
    a, b = sorted((Decimal(sqrt_a), Decimal(sqrt_b)))
    return a, b


def parse_position_struct(raw: tuple) -> PositionData:
    return PositionData(
        nonce=int(raw[0]),
        operator=to_checksum_address(raw[1]),
        token0=to_checksum_address(raw[2]),
        token1=to_checksum_address(raw[3]),
        fee=int(raw[4]),
        tick_lower=int(raw[5]),
        tick_upper=int(raw[6]),
        liquidity=int(raw[7]),
        fee_growth_inside0_last_x128=int(raw[8]),
        fee_growth_inside1_last_x128=int(raw[9]),
        tokens_owed0=int(raw[10]),
        tokens_owed1=int(raw[11]),
    )


def collect_params(token_id: int, recipient: str) -> tuple:
    return (int(token_id), recipient, MAX_UINT128, MAX_UINT128)


def slippage_min(amount: int, slippage_bps: float) -> int:
    """Minimum acceptable output: ``amount * (10000 - floor(bps)) // 10000``."""
    bps = max(0, min(10_000, math.floor(slippage_bps)))
    return max(0, (int(amount) * (10_000 - bps)) // 10_000)


def deadline(seconds: int = 300) -> int:
    return int(time.time()) + seconds
