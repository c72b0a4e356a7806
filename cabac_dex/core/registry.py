"""Static per-chain registry of tokens, pools and periphery contracts.

The registry is read-only data: token metadata, the configured pools keyed by
``(token0, token1, fee)``, and the router / position manager / quoter / wrapped
native addresses for each supported chain. Config can append tokens and pools
per chain (see ``get_registry_overrides``); those entries are validated with
pydantic before they are merged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import cache
from typing import Any, Literal

from eth_utils import is_address, to_checksum_address
from pydantic import BaseModel, Field, field_validator

from cabac_dex.core.config import get_registry_overrides
from cabac_dex.core.constants import NATIVE_TOKEN_ADDRESSES, ZERO_ADDRESS
from cabac_dex.core.constants.chains import CHAIN_ID_TO_CODE, NATIVE_SYMBOLS
from cabac_dex.core.constants.contracts import CONTRACT_ADDRESSES
from cabac_dex.core.constants.tokens import POOLS_BY_CHAIN, TOKENS_BY_CHAIN

PoolKey = tuple[str, str, int]


def is_native_token(address: str | None) -> bool:
    return str(address or "").lower() in NATIVE_TOKEN_ADDRESSES


def normalize_address(address: str) -> str:
    if is_native_token(address):
        return ZERO_ADDRESS
    return to_checksum_address(address)


def sort_tokens(token_a: str, token_b: str) -> tuple[str, str]:
    """Order two token addresses the way Uniswap v3 pools do (numeric ascending)."""
    if int(token_a, 16) < int(token_b, 16):
        return token_a, token_b
    return token_b, token_a


def pool_key(token_a: str, token_b: str, fee: int) -> PoolKey:
    t0, t1 = sort_tokens(token_a.lower(), token_b.lower())
    return (t0, t1, int(fee))


@dataclass(frozen=True)
class Token:
    address: str
    symbol: str
    name: str
    decimals: int
    logo_uri: str = ""

    @property
    def is_native(self) -> bool:
        return is_native_token(self.address)

    def matches(self, address: str | None) -> bool:
        return str(address or "").lower() == self.address.lower()


@dataclass(frozen=True)
class Pool:
    address: str
    token0: Token
    token1: Token
    fee: int

    @property
    def key(self) -> PoolKey:
        return pool_key(self.token0.address, self.token1.address, self.fee)

    @property
    def fee_percent(self) -> float:
        return self.fee / 10_000

    @property
    def label(self) -> str:
        return f"{self.token0.symbol}/{self.token1.symbol} {self.fee_percent:g}%"


@dataclass(frozen=True)
class ContractAddresses:
    router: str
    position_manager: str
    weth: str
    multicall3: str
    quoter_v2: str | None = None


class TokenOverride(BaseModel):
    address: str
    symbol: str
    name: str = ""
    decimals: int = Field(ge=0, le=255)
    logo_uri: str = ""

    @field_validator("address")
    @classmethod
    def _checksum(cls, value: str) -> str:
        if is_native_token(value):
            return ZERO_ADDRESS
        if not is_address(value):
            raise ValueError(f"invalid token address: {value}")
        return to_checksum_address(value)


class PoolOverride(BaseModel):
    address: str
    token_a: str
    token_b: str
    fee: int = Field(gt=0)

    @field_validator("address")
    @classmethod
    def _checksum(cls, value: str) -> str:
        if not is_address(value):
            raise ValueError(f"invalid pool address: {value}")
        return to_checksum_address(value)


class RegistryOverride(BaseModel):
    tokens: list[TokenOverride] = Field(default_factory=list)
    pools: list[PoolOverride] = Field(default_factory=list)


@dataclass
class ChainRegistry:
    chain_id: int
    contracts: ContractAddresses
    tokens: list[Token] = field(default_factory=list)
    pools: list[Pool] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._tokens_by_address = {t.address.lower(): t for t in self.tokens}
        self._pools_by_key = {p.key: p for p in self.pools}

    @property
    def native_symbol(self) -> str:
        return NATIVE_SYMBOLS.get(self.chain_id, "ETH")

    @property
    def wrapped_native(self) -> Token | None:
        return self.get_token(self.contracts.weth)

    def get_token(self, address_or_symbol: str) -> Token | None:
        value = str(address_or_symbol or "").strip()
        if not value:
            return None
        if value.lower().startswith("0x"):
            if is_native_token(value):
                return self._tokens_by_address.get(ZERO_ADDRESS)
            return self._tokens_by_address.get(value.lower())
        symbol = value.upper()
        return next((t for t in self.tokens if t.symbol.upper() == symbol), None)

    def require_token(self, address_or_symbol: str) -> Token:
        token = self.get_token(address_or_symbol)
        if token is None:
            raise KeyError(f"Unknown token on chain {self.chain_id}: {address_or_symbol}")
        return token

    def get_pool(self, key: PoolKey) -> Pool | None:
        return self._pools_by_key.get((key[0].lower(), key[1].lower(), int(key[2])))

    def find_pool(
        self, token_a: str, token_b: str, fee: int | None = None
    ) -> Pool | None:
        """Pool for an unordered token pair; native resolves to the wrapped token."""
        a = self._routable(token_a)
        b = self._routable(token_b)
        if a is None or b is None:
            return None
        if fee is not None:
            return self.get_pool(pool_key(a, b, fee))
        t0, t1 = sort_tokens(a.lower(), b.lower())
        return next(
            (p for p in self.pools if p.key[0] == t0 and p.key[1] == t1), None
        )

    def wrap_direction(
        self, token_in: str, token_out: str
    ) -> Literal["wrap", "unwrap"] | None:
        weth = self.contracts.weth
        if is_native_token(token_in) and weth.lower() == token_out.lower():
            return "wrap"
        if weth.lower() == token_in.lower() and is_native_token(token_out):
            return "unwrap"
        return None

    def _routable(self, token: str) -> str | None:
        if is_native_token(token):
            return self.contracts.weth
        return token or None


def _build_token(data: dict[str, Any]) -> Token:
    return Token(
        address=data["address"],
        symbol=data["symbol"],
        name=data.get("name") or data["symbol"],
        decimals=int(data["decimals"]),
        logo_uri=data.get("logo_uri") or "",
    )


def build_registry(chain_id: int, overrides: dict[str, Any] | None = None) -> ChainRegistry:
    chain_id = int(chain_id)
    contracts = CONTRACT_ADDRESSES.get(chain_id)
    if contracts is None:
        raise ValueError(f"Unsupported chain: {chain_id}")

    extra = RegistryOverride.model_validate(overrides or {})

    tokens: dict[str, Token] = {}
    for data in TOKENS_BY_CHAIN.get(chain_id, []):
        token = _build_token(data)
        tokens[token.address.lower()] = token
    for override in extra.tokens:
        token = _build_token(override.model_dump())
        tokens[token.address.lower()] = token

    registry_tokens = list(tokens.values())
    lookup = ChainRegistry(
        chain_id=chain_id,
        contracts=ContractAddresses(**contracts),
        tokens=registry_tokens,
    )

    declared = [
        (sym_a, sym_b, fee, addr)
        for sym_a, sym_b, fee, addr in POOLS_BY_CHAIN.get(chain_id, [])
    ] + [(p.token_a, p.token_b, p.fee, p.address) for p in extra.pools]

    pools: list[Pool] = []
    for ref_a, ref_b, fee, address in declared:
        token_a = lookup.require_token(ref_a)
        token_b = lookup.require_token(ref_b)
        if token_a.is_native or token_b.is_native:
            raise ValueError(
                f"Pool {address} must reference wrapped tokens, not the native coin"
            )
        if int(token_a.address, 16) < int(token_b.address, 16):
            token0, token1 = token_a, token_b
        else:
            token0, token1 = token_b, token_a
        pools.append(
            Pool(
                address=to_checksum_address(address),
                token0=token0,
                token1=token1,
                fee=int(fee),
            )
        )

    return ChainRegistry(
        chain_id=chain_id,
        contracts=lookup.contracts,
        tokens=registry_tokens,
        pools=pools,
    )


@cache
def _default_registry(chain_id: int) -> ChainRegistry:
    return build_registry(chain_id, get_registry_overrides(chain_id))


def get_registry(chain_id: int) -> ChainRegistry:
    return _default_registry(int(chain_id))


def clear_registry_cache() -> None:
    _default_registry.cache_clear()


def chain_label(chain_id: int) -> str:
    return CHAIN_ID_TO_CODE.get(int(chain_id), str(chain_id))
