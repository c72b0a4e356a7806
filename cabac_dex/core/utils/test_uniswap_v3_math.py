from __future__ import annotations

import math
import time

import pytest

from cabac_dex.core.registry import Token
from cabac_dex.core.utils.uniswap_v3_math import (
    MAX_TICK,
    MAX_UINT128,
    MIN_TICK,
    AmountsDegraded,
    AmountsOk,
    collect_params,
    deadline,
    is_full_range,
    liquidity_to_remove,
    nearest_usable_tick,
    parse_position_struct,
    position_amounts,
    price_to_sqrt_price_x96,
    price_to_tick,
    round_tick_to_spacing,
    slippage_min,
    sqrt_price_x96_from_tick,
    sqrt_price_x96_to_price,
    tick_from_sqrt_price_x96,
    tick_to_price,
)

WETH = Token("0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", "WETH", "Wrapped Ether", 18)
USDC = Token("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", "USDC", "USD Coin", 6)
WBTC = Token("0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599", "WBTC", "Wrapped Bitcoin", 8)
DAI = Token("0x6B175474E89094C44Da98b954EedeAC495271d0F", "DAI", "Dai Stablecoin", 18)

MOCK_TOKEN0 = "0x1111111111111111111111111111111111111111"
MOCK_TOKEN1 = "0x3333333333333333333333333333333333333333"
MOCK_OPERATOR = "0x0000000000000000000000000000000000000000"

RAW_POSITION = (
    0,  # nonce
    MOCK_OPERATOR,  # operator
    MOCK_TOKEN0,  # token0
    MOCK_TOKEN1,  # token1
    3000,  # fee
    -60,  # tickLower
    60,  # tickUpper
    1_000_000,  # liquidity
    100,  # feeGrowthInside0LastX128
    200,  # feeGrowthInside1LastX128
    500,  # tokensOwed0
    600,  # tokensOwed1
)

DECIMAL_PAIRS = [(WETH, USDC), (USDC, WETH), (WBTC, WETH), (WETH, DAI)]


def _raw_tick(price, token0, token1):
    adjusted = price * 10.0 ** (token1.decimals - token0.decimals)
    return math.log(adjusted) / math.log(1.0001)


def test_price_to_tick_pinned_fixture():
    # 2000 USDC per WETH with WETH as token0 (18 decimals) and USDC as token1 (6)
    assert price_to_tick(2000, WETH, USDC, 60) == -200340


def test_price_to_tick_zero_spacing_returns_floored_raw_tick():
    assert price_to_tick(2000, WETH, USDC, 0) == -200312


@pytest.mark.parametrize("spacing", [1, 10, 60, 200])
@pytest.mark.parametrize("price", [0.0001, 0.5, 1.0, 1.2345, 2000, 65_000.5])
@pytest.mark.parametrize(("token0", "token1"), DECIMAL_PAIRS)
def test_price_to_tick_is_floored_multiple_of_spacing(price, token0, token1, spacing):
    tick = price_to_tick(price, token0, token1, spacing)
    assert tick % spacing == 0
    assert tick <= _raw_tick(price, token0, token1)
    assert _raw_tick(price, token0, token1) - tick < spacing + 1


@pytest.mark.parametrize("price", [0, -1, float("nan"), float("inf")])
def test_price_to_tick_rejects_degenerate_prices(price):
    with pytest.raises(ValueError):
        price_to_tick(price, WETH, USDC, 60)


@pytest.mark.parametrize("price", [0.00042, 1.0, 1850.25, 98_000.0])
@pytest.mark.parametrize(("token0", "token1"), DECIMAL_PAIRS)
def test_sqrt_price_round_trip(price, token0, token1):
    sqrt_price = price_to_sqrt_price_x96(price, token0, token1)
    assert sqrt_price_x96_to_price(sqrt_price, token0, token1) == pytest.approx(
        price, rel=1e-9
    )


def test_sqrt_price_to_price_unit_ratio():
    assert sqrt_price_x96_to_price(2**96, DAI, WETH) == pytest.approx(1.0)
    # 1 raw token1 per raw token0 is 1e12 USDC per WETH once decimals are applied
    assert sqrt_price_x96_to_price(2**96, WETH, USDC) == pytest.approx(1e12)


def test_sqrt_price_to_price_zero():
    assert sqrt_price_x96_to_price(0, WETH, USDC) == 0.0


def test_tick_to_price_inverts_price_to_tick():
    tick = price_to_tick(2000, WETH, USDC, 1)
    assert tick_to_price(tick, WETH, USDC) <= 2000
    assert tick_to_price(tick + 1, WETH, USDC) > 2000


def test_round_tick_to_spacing():
    assert round_tick_to_spacing(-200312, 60) == -200340
    assert round_tick_to_spacing(61, 60) == 60
    assert round_tick_to_spacing(60, 60) == 60
    assert round_tick_to_spacing(-1, 10) == -10
    assert round_tick_to_spacing(17, 0) == 17


def test_nearest_usable_tick_stays_inside_bounds():
    assert nearest_usable_tick(MIN_TICK, 60) == -887220
    assert nearest_usable_tick(MAX_TICK, 60) == 887220
    assert nearest_usable_tick(95, 10) == 100
    with pytest.raises(ValueError):
        nearest_usable_tick(0, 0)


def test_nearest_usable_tick_rounds_ties_up():
    assert nearest_usable_tick(30, 60) == 60
    assert nearest_usable_tick(-30, 60) == 0
    assert nearest_usable_tick(90, 60) == 120
    assert nearest_usable_tick(29, 60) == 0


def test_sqrt_price_from_tick_matches_protocol_bounds():
    assert sqrt_price_x96_from_tick(0) == 2**96
    assert sqrt_price_x96_from_tick(MIN_TICK) == 4295128739
    assert (
        sqrt_price_x96_from_tick(MAX_TICK)
        == 1461446703485210103287273052203988822378723970342
    )
    with pytest.raises(ValueError):
        sqrt_price_x96_from_tick(MAX_TICK + 1)


@pytest.mark.parametrize("tick", [MIN_TICK, -200340, -1, 0, 1, 150, 887271])
def test_tick_from_sqrt_price_inverts_tick_math(tick):
    assert tick_from_sqrt_price_x96(sqrt_price_x96_from_tick(tick)) == tick


def test_tick_from_sqrt_price_between_ticks_floors():
    between = sqrt_price_x96_from_tick(150) + 1
    assert tick_from_sqrt_price_x96(between) == 150


def test_is_full_range():
    assert is_full_range(MIN_TICK, MAX_TICK)
    assert not is_full_range(-887220, 887220)


class TestPositionAmounts:
    def test_zero_liquidity_short_circuits(self):
        # A malformed range would degrade; zero liquidity never reaches the formula.
        result = position_amounts(0, 200, 100, 150, 0, 0)
        assert result == AmountsOk(0, 0)

    def test_in_range_split_is_positive_on_both_sides(self):
        sqrt_p = sqrt_price_x96_from_tick(150)
        result = position_amounts(1000, 100, 200, 150, sqrt_p, 5_000, WETH, USDC)
        assert isinstance(result, AmountsOk)
        assert result.amount0 > 0
        assert result.amount1 > 0

        # L * (sqrt_b - sqrt_p) / (sqrt_p * sqrt_b) and L * (sqrt_p - sqrt_a)
        sa, sp, sb = (1.0001 ** (t / 2) for t in (100, 150, 200))
        assert result.amount0 == math.floor(1000 * (sb - sp) / (sp * sb))
        assert result.amount1 == math.floor(1000 * (sp - sa))

    def test_below_range_is_all_token0(self):
        sqrt_p = sqrt_price_x96_from_tick(50)
        result = position_amounts(10**18, 100, 200, 50, sqrt_p, 10**18)
        assert result.amount0 > 0
        assert result.amount1 == 0

    def test_at_upper_tick_is_all_token1(self):
        sqrt_p = sqrt_price_x96_from_tick(200)
        result = position_amounts(10**18, 100, 200, 200, sqrt_p, 10**18)
        assert result.amount0 == 0
        assert result.amount1 > 0

    def test_at_lower_tick_is_in_range(self):
        sqrt_p = sqrt_price_x96_from_tick(100)
        result = position_amounts(10**18, 100, 200, 100, sqrt_p, 10**18)
        assert result.amount0 > 0
        assert result.amount1 == 0

    def test_out_of_bounds_ticks_degrade(self):
        result = position_amounts(1000, MIN_TICK - 60, 0, -10, 2**96, 1)
        assert isinstance(result, AmountsDegraded)
        assert result.degraded
        assert (result.amount0, result.amount1) == (0, 0)
        assert "out of range" in result.reason

    def test_malformed_pool_state_degrades(self):
        result = position_amounts(1000, 100, 200, 150, None, 1)
        assert isinstance(result, AmountsDegraded)
        assert (result.amount0, result.amount1) == (0, 0)

    def test_inverted_range_degrades(self):
        result = position_amounts(1000, 200, 100, 150, 2**96, 1)
        assert isinstance(result, AmountsDegraded)


def test_liquidity_to_remove():
    assert liquidity_to_remove(1000, 50) == 500
    assert liquidity_to_remove(1001, 50) == 500
    assert liquidity_to_remove(1000, 100) == 1000
    assert liquidity_to_remove(1000, 33.3) == 333
    assert liquidity_to_remove(2**128 - 1, 25) == (2**128 - 1) // 4


@pytest.mark.parametrize("percentage", [0, -5, 100.5])
def test_liquidity_to_remove_rejects_bad_percentage(percentage):
    with pytest.raises(ValueError):
        liquidity_to_remove(1000, percentage)


def test_parse_position_struct():
    pos = parse_position_struct(RAW_POSITION)
    assert pos["nonce"] == 0
    assert pos["token0"].lower() == MOCK_TOKEN0.lower()
    assert pos["token1"].lower() == MOCK_TOKEN1.lower()
    assert pos["fee"] == 3000
    assert pos["tick_lower"] == -60
    assert pos["tick_upper"] == 60
    assert pos["liquidity"] == 1_000_000
    assert pos["tokens_owed0"] == 500
    assert pos["tokens_owed1"] == 600


def test_collect_params():
    assert collect_params(7, MOCK_TOKEN0) == (7, MOCK_TOKEN0, MAX_UINT128, MAX_UINT128)


def test_slippage_min():
    assert slippage_min(1_000_000, 50) == 995_000
    assert slippage_min(1_000_000, 12.7) == 998_800
    assert slippage_min(1_000_000, 0) == 1_000_000
    assert slippage_min(1_000_000, 20_000) == 0


def test_deadline():
    before = int(time.time())
    d = deadline(1200)
    assert before + 1200 <= d <= int(time.time()) + 1200
