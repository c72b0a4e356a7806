from __future__ import annotations

import json
from unittest.mock import patch

from click.testing import CliRunner

from cabac_dex.cli import main
from cabac_dex.core.constants import ZERO_ADDRESS
from cabac_dex.core.registry import build_registry
from cabac_dex.testing.fake_chain import FakeChain

OWNER = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
REGISTRY = build_registry(8453)
POOL = REGISTRY.pools[0]


def _invoke(args):
    result = CliRunner().invoke(main, args)
    return result, json.loads(result.stdout) if result.stdout.strip() else None


def test_price_to_tick_matches_pinned_fixture():
    result, payload = _invoke(
        ["price-to-tick", "2000", "--decimals0", "18", "--decimals1", "6", "--spacing", "60"]
    )
    assert result.exit_code == 0
    assert payload == {"ok": True, "result": {"tick": -200340}}


def test_price_to_tick_rejects_non_positive_price():
    result, payload = _invoke(
        ["price-to-tick", "0", "--decimals0", "18", "--decimals1", "6"]
    )
    assert result.exit_code == 1
    assert payload["ok"] is False
    assert "positive" in payload["error"]


def test_tick_to_price_zero_tick_equal_decimals():
    result, payload = _invoke(["tick-to-price", "0", "--decimals0", "6", "--decimals1", "6"])
    assert result.exit_code == 0
    assert payload["result"]["price"] == 1.0


def test_tokens_lists_registry():
    result, payload = _invoke(["tokens", "--chain", "base"])
    assert result.exit_code == 0
    symbols = {t["symbol"] for t in payload["result"]["tokens"]}
    assert {"ETH", "WETH", "USDC"} <= symbols
    assert POOL.label in [p["label"] for p in payload["result"]["pools"]]


def test_unknown_chain_is_a_usage_error():
    result = CliRunner().invoke(main, ["tokens", "--chain", "nowhere"])
    assert result.exit_code == 2


def test_positions_uses_inventory():
    raw = (0, ZERO_ADDRESS, POOL.token0.address, POOL.token1.address, POOL.fee, -600, 600, 0, 0, 0, 0, 0)
    fake = FakeChain(
        position_manager=REGISTRY.contracts.position_manager, positions={5: raw}
    )
    with patch("cabac_dex.cli.ChainClient", return_value=fake):
        result, payload = _invoke(["positions", OWNER, "--chain", "8453"])

    assert result.exit_code == 0
    (position,) = payload["result"]
    assert position["token_id"] == 5
    assert position["pool"] == POOL.label
    assert position["liquidity"] == 0


def test_quote_formats_output():
    fake = FakeChain(swap_output=2500 * 10**6)
    with patch("cabac_dex.cli.ChainClient", return_value=fake):
        result, payload = _invoke(
            ["quote", "1", "--token-in", "WETH", "--token-out", "USDC", "--source", "router"]
        )

    assert result.exit_code == 0
    assert payload["result"]["amount_out"] == "2500"
    assert fake.simulate_contract.call_args.kwargs["fn_name"] == "exactInputSingle"


def test_quote_unknown_token():
    result, payload = _invoke(["quote", "1", "--token-in", "NOPE", "--token-out", "USDC"])
    assert result.exit_code == 1
    assert "Unknown token" in payload["error"]


def test_quote_without_pool():
    fake = FakeChain()
    with patch("cabac_dex.cli.ChainClient", return_value=fake):
        result, payload = _invoke(
            ["quote", "1", "--token-in", "USDC", "--token-out", "ETH", "--source", "router"]
        )
    assert result.exit_code == 1
    assert payload["error"] == "Swap to native ETH is not supported; unwrap WETH instead"


def test_tokens_unsupported_chain_id_is_reported():
    result, payload = _invoke(["tokens", "--chain", "10"])
    assert result.exit_code == 1
    assert payload == {"ok": False, "error": "Unsupported chain: 10"}


def test_positions_unsupported_chain_id_is_reported():
    result, payload = _invoke(["positions", OWNER, "--chain", "10"])
    assert result.exit_code == 1
    assert payload["error"] == "Unsupported chain: 10"


def test_positions_invalid_owner_is_reported():
    with patch("cabac_dex.cli.ChainClient", return_value=FakeChain()):
        result, payload = _invoke(["positions", "not-an-address"])
    assert result.exit_code == 1
    assert payload["ok"] is False


def test_quote_router_revert_is_reported():
    fake = FakeChain(swap_output=10**6)
    fake.reverts["exactInputSingle"] = "STF"
    with patch("cabac_dex.cli.ChainClient", return_value=fake):
        result, payload = _invoke(
            ["quote", "1", "--token-in", "WETH", "--token-out", "USDC", "--source", "router"]
        )
    assert result.exit_code == 1
    assert payload == {"ok": False, "error": "STF"}


def test_quote_rpc_failure_is_reported():
    fake = FakeChain()
    fake.simulate_contract.side_effect = ConnectionError("rpc unreachable")
    with patch("cabac_dex.cli.ChainClient", return_value=fake):
        result, payload = _invoke(
            ["quote", "1", "--token-in", "WETH", "--token-out", "USDC", "--source", "router"]
        )
    assert result.exit_code == 1
    assert payload == {"ok": False, "error": "rpc unreachable"}
