from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from eth_utils import to_checksum_address

from cabac_dex.adapters.multicall_adapter.adapter import ContractRead
from cabac_dex.core.adapters.BaseAdapter import BaseAdapter
from cabac_dex.core.clients.ChainClient import ChainClient
from cabac_dex.core.constants.base import ADAPTER_ALLOWANCE
from cabac_dex.core.constants.erc20_abi import ERC20_ABI
from cabac_dex.core.registry import Token, is_native_token

PairKey = tuple[str, str]


class FetchState(StrEnum):
    UNKNOWN = "unknown"
    FETCHING = "fetching"
    KNOWN = "known"
    STALE = "stale"
    ERROR = "error"


@dataclass
class CacheEntry:
    state: FetchState = FetchState.UNKNOWN
    value: int | None = None
    error: str | None = None

    @property
    def known_value(self) -> int | None:
        return self.value if self.state == FetchState.KNOWN else None


def _pair(token: str, spender: str) -> PairKey:
    return token.lower(), spender.lower()


class AllowanceAdapter(BaseAdapter):
    """Cached ERC-20 allowances and balances for one owner.

    Each tracked ``(token, spender)`` pair and each tracked token balance moves
    through ``UNKNOWN -> FETCHING -> KNOWN -> STALE -> FETCHING -> KNOWN``; a
    failed read lands in ``ERROR``, which gates exactly like ``UNKNOWN``.
    Approval flags are re-derived on every event and pushed to listeners.
    """

    adapter_type = ADAPTER_ALLOWANCE

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        chain: ChainClient,
        owner: str,
    ) -> None:
        super().__init__("allowance_adapter", config)
        self.chain = chain
        self.owner = to_checksum_address(owner)

        self._allowances: dict[PairKey, CacheEntry] = {}
        self._pair_addresses: dict[PairKey, tuple[str, str]] = {}
        self._desired: dict[PairKey, int] = {}
        self._balances: dict[str, CacheEntry] = {}
        self._token_addresses: dict[str, str] = {}
        self._flags: dict[PairKey, bool] = {}
        self._listeners: list[Callable[[dict[PairKey, bool]], None]] = []

    # -- registration -----------------------------------------------------

    def track(self, token: str, spender: str) -> None:
        if is_native_token(token):
            return
        key = _pair(token, spender)
        if key not in self._allowances:
            self._allowances[key] = CacheEntry()
            self._pair_addresses[key] = (
                to_checksum_address(token),
                to_checksum_address(spender),
            )
            self._rederive()

    def track_balance(self, token: str) -> None:
        key = token.lower()
        if key not in self._balances:
            self._balances[key] = CacheEntry()
            self._token_addresses[key] = token

    def set_desired(self, token: str, spender: str, amount: int) -> None:
        if is_native_token(token):
            return
        self.track(token, spender)
        self._desired[_pair(token, spender)] = int(amount)
        self._rederive()

    def subscribe(self, listener: Callable[[dict[PairKey, bool]], None]) -> None:
        self._listeners.append(listener)

    # -- accessors --------------------------------------------------------

    def allowance(self, token: str, spender: str) -> CacheEntry:
        return self._allowances.get(_pair(token, spender), CacheEntry())

    def balance(self, token: str) -> CacheEntry:
        return self._balances.get(token.lower(), CacheEntry())

    @property
    def approval_flags(self) -> dict[PairKey, bool]:
        return dict(self._flags)

    def needs_approval(
        self, token: str, spender: str, desired: int | None = None
    ) -> bool:
        """True only when the allowance is known and below ``desired``."""
        if is_native_token(token):
            return False
        key = _pair(token, spender)
        amount = self._desired.get(key, 0) if desired is None else int(desired)
        if amount <= 0:
            return False
        value = self.allowance(token, spender).known_value
        return value is not None and value < amount

    def can_proceed(self, token: str, spender: str, desired: int | None = None) -> bool:
        """False while the allowance is unknown, erroring or insufficient."""
        if is_native_token(token):
            return True
        key = _pair(token, spender)
        amount = self._desired.get(key, 0) if desired is None else int(desired)
        if amount <= 0:
            return True
        value = self.allowance(token, spender).known_value
        return value is not None and value >= amount

    def insufficient_balance(self, token: str, desired: int) -> bool:
        if int(desired) <= 0:
            return False
        value = self.balance(token).known_value
        return value is not None and value < int(desired)

    def balance_known(self, token: str) -> bool:
        return self.balance(token).known_value is not None

    # -- invalidation / refresh -------------------------------------------

    def invalidate(
        self,
        pairs: Iterable[tuple[str, str]] | None = None,
        tokens: Iterable[str] | None = None,
    ) -> None:
        """Mark entries STALE; ``None`` for both invalidates everything."""
        if pairs is None and tokens is None:
            pair_keys = list(self._allowances)
            token_keys = list(self._balances)
        else:
            pair_keys = [_pair(t, s) for t, s in (pairs or [])]
            token_keys = [t.lower() for t in (tokens or [])]

        for key in pair_keys:
            entry = self._allowances.get(key)
            if entry is not None and entry.state != FetchState.UNKNOWN:
                entry.state = FetchState.STALE
        for key in token_keys:
            entry = self._balances.get(key)
            if entry is not None and entry.state != FetchState.UNKNOWN:
                entry.state = FetchState.STALE
        self._rederive()

    async def refresh(self, *, force: bool = False) -> None:
        """Re-read every entry that is not KNOWN (all entries when ``force``) in one batch."""
        pending = {FetchState.UNKNOWN, FetchState.STALE, FetchState.ERROR}
        pair_keys = [
            k for k, e in self._allowances.items() if force or e.state in pending
        ]
        token_keys = [
            k for k, e in self._balances.items() if force or e.state in pending
        ]
        if not pair_keys and not token_keys:
            return

        reads: list[ContractRead] = []
        for key in pair_keys:
            token, spender = self._pair_addresses[key]
            reads.append(ContractRead(token, ERC20_ABI, "allowance", (self.owner, spender)))
        for key in token_keys:
            token = self._token_addresses[key]
            if is_native_token(token):
                reads.append(self.chain.eth_balance_read(self.owner))
            else:
                reads.append(
                    ContractRead(
                        to_checksum_address(token), ERC20_ABI, "balanceOf", (self.owner,)
                    )
                )

        entries = [self._allowances[k] for k in pair_keys] + [
            self._balances[k] for k in token_keys
        ]
        for entry in entries:
            entry.state = FetchState.FETCHING
        self._rederive()

        try:
            outcomes = await self.chain.multicall(reads)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning(f"Allowance/balance refresh failed: {exc}")
            for entry in entries:
                entry.state = FetchState.ERROR
                entry.error = str(exc)
            self._rederive()
            return

        for entry, read, outcome in zip(entries, reads, outcomes, strict=True):
            if outcome.success:
                entry.state = FetchState.KNOWN
                entry.value = int(outcome.result)
                entry.error = None
            else:
                self.logger.warning(
                    f"{read.fn_name} on {read.address} failed: {outcome.error}"
                )
                entry.state = FetchState.ERROR
                entry.error = outcome.error
        self._rederive()

    async def fetch_allowance(self, token: str, spender: str) -> int:
        """Authoritative single read that also updates the cache entry."""
        self.track(token, spender)
        entry = self._allowances[_pair(token, spender)]
        entry.state = FetchState.FETCHING
        try:
            value = await self.chain.read_contract(
                to_checksum_address(token),
                ERC20_ABI,
                "allowance",
                (self.owner, to_checksum_address(spender)),
            )
        except Exception as exc:
            entry.state = FetchState.ERROR
            entry.error = str(exc)
            self._rederive()
            raise
        entry.state = FetchState.KNOWN
        entry.value = int(value)
        entry.error = None
        self._rederive()
        return entry.value

    async def check_funds(
        self, requirements: Sequence[tuple[Token, int]], spender: str | None
    ) -> tuple[list[str], str | None]:
        """Gate an action on balances and allowances.

        Returns the symbols still needing approval, or a blocking reason
        such as ``"Insufficient USDC"``. With ``spender=None`` only balances
        are checked.
        """
        for token, amount in requirements:
            self.track_balance(token.address)
            if spender is not None:
                self.set_desired(token.address, spender, amount)
        await self.refresh()

        needed: list[str] = []
        for token, amount in requirements:
            if amount <= 0:
                continue
            if not self.balance_known(token.address):
                return [], f"Unable to read {token.symbol} balance"
            if self.insufficient_balance(token.address, amount):
                return [], f"Insufficient {token.symbol}"
            if spender is None:
                continue
            if self.needs_approval(token.address, spender, amount):
                needed.append(token.symbol)
            elif not self.can_proceed(token.address, spender, amount):
                return [], f"Unable to read {token.symbol} allowance"
        return needed, None

    async def get_allowance(self, token: str, spender: str) -> tuple[bool, int | str]:
        try:
            return True, await self.fetch_allowance(token, spender)
        except Exception as exc:  # noqa: BLE001
            return False, str(exc)

    def _rederive(self) -> None:
        flags = {
            key: self.needs_approval(*self._pair_addresses[key])
            for key in self._allowances
        }
        if flags == self._flags:
            return
        self._flags = flags
        for listener in list(self._listeners):
            listener(dict(flags))
