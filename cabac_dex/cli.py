from __future__ import annotations

import asyncio
import json
import sys
from types import SimpleNamespace
from typing import Any, NoReturn

import click
from loguru import logger

from cabac_dex.adapters.liquidity_adapter.inventory import PositionInventory, summarize
from cabac_dex.adapters.swap_adapter.quotes import QuoteEngine, QuoteError
from cabac_dex.core.clients.ChainClient import ChainClient
from cabac_dex.core.config import load_config
from cabac_dex.core.constants.chains import CHAIN_CODE_TO_ID
from cabac_dex.core.engine.sequencer import describe_failure
from cabac_dex.core.registry import ChainRegistry, get_registry
from cabac_dex.core.utils.uniswap_v3_math import price_to_tick, tick_to_price
from cabac_dex.core.utils.units import format_units, parse_units


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _fail(error: str) -> NoReturn:
    _echo_json({"ok": False, "error": error})
    sys.exit(1)


def _registry(chain_id: int) -> ChainRegistry:
    try:
        return get_registry(chain_id)
    except ValueError as exc:
        _fail(str(exc))


def _chain_id(value: str) -> int:
    value = str(value).strip().lower()
    if value in CHAIN_CODE_TO_ID:
        return CHAIN_CODE_TO_ID[value]
    try:
        return int(value)
    except ValueError as exc:
        raise click.BadParameter(f"unknown chain {value!r}") from exc


chain_option = click.option(
    "--chain", "chain", default="base", show_default=True, help="Chain code or id."
)


@click.group(help="Concentrated-liquidity DEX engine tools.")
@click.option("--config", "config_path", default=None, help="Path to config.json.")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
)
def main(config_path: str | None, log_level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=str(log_level).upper())
    if config_path:
        load_config(config_path, require_exists=True)


@main.command(name="price-to-tick", help="Convert a price (token1 per token0) to a tick.")
@click.argument("price", type=float)
@click.option("--decimals0", type=int, required=True)
@click.option("--decimals1", type=int, required=True)
@click.option("--spacing", type=int, default=0, show_default=True)
def price_to_tick_cmd(price: float, decimals0: int, decimals1: int, spacing: int) -> None:
    token0 = SimpleNamespace(decimals=decimals0)
    token1 = SimpleNamespace(decimals=decimals1)
    try:
        tick = price_to_tick(price, token0, token1, spacing)
    except ValueError as exc:
        _fail(str(exc))
    _echo_json({"ok": True, "result": {"tick": tick}})


@main.command(name="tick-to-price", help="Convert a tick to a price (token1 per token0).")
@click.argument("tick", type=int)
@click.option("--decimals0", type=int, required=True)
@click.option("--decimals1", type=int, required=True)
def tick_to_price_cmd(tick: int, decimals0: int, decimals1: int) -> None:
    price = tick_to_price(
        tick, SimpleNamespace(decimals=decimals0), SimpleNamespace(decimals=decimals1)
    )
    _echo_json({"ok": True, "result": {"price": price}})


@main.command(name="tokens", help="List registry tokens and pools for a chain.")
@chain_option
def tokens_cmd(chain: str) -> None:
    registry = _registry(_chain_id(chain))
    _echo_json(
        {
            "ok": True,
            "result": {
                "tokens": [
                    {"symbol": t.symbol, "address": t.address, "decimals": t.decimals}
                    for t in registry.tokens
                ],
                "pools": [{"label": p.label, "address": p.address} for p in registry.pools],
            },
        }
    )


@main.command(name="positions", help="Show an owner's liquidity positions.")
@click.argument("owner")
@chain_option
def positions_cmd(owner: str, chain: str) -> None:
    chain_id = _chain_id(chain)
    registry = _registry(chain_id)
    try:
        inventory = PositionInventory(ChainClient(chain_id), registry, owner)
        views = asyncio.run(inventory.load())
    except Exception as exc:  # noqa: BLE001
        _fail(describe_failure(exc))
    _echo_json({"ok": True, "result": [summarize(v) for v in views]})


@main.command(name="quote", help="Quote an exact-input swap.")
@click.argument("amount")
@click.option("--token-in", required=True, help="Symbol or address.")
@click.option("--token-out", required=True, help="Symbol or address.")
@click.option("--fee", type=int, default=None)
@click.option(
    "--source",
    type=click.Choice(["router", "quoter"], case_sensitive=False),
    default=None,
)
@click.option("--from", "from_address", default="0x0000000000000000000000000000000000000001")
@chain_option
def quote_cmd(
    amount: str,
    token_in: str,
    token_out: str,
    fee: int | None,
    source: str | None,
    from_address: str,
    chain: str,
) -> None:
    chain_id = _chain_id(chain)
    registry = _registry(chain_id)
    try:
        tin = registry.require_token(token_in)
        tout = registry.require_token(token_out)
        raw_in = parse_units(amount, tin.decimals)
    except (KeyError, ValueError) as exc:
        _fail(str(exc))

    engine = QuoteEngine(
        ChainClient(chain_id), registry, from_address, tin, tout, fee=fee, source=source
    )
    try:
        raw_out = asyncio.run(engine.quote_exact_input(raw_in))
    except QuoteError as exc:
        _fail(str(exc))
    except Exception as exc:  # noqa: BLE001
        logger.debug(f"quote failed: {exc!r}")
        _fail(describe_failure(exc))
    _echo_json(
        {
            "ok": True,
            "result": {
                "amount_in": amount,
                "amount_out": format_units(raw_out, tout.decimals),
                "raw_amount_out": raw_out,
            },
        }
    )


if __name__ == "__main__":
    main()
