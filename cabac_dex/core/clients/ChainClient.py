from __future__ import annotations

from collections.abc import Callable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from web3 import AsyncWeb3
from web3.exceptions import ContractCustomError, ContractLogicError

from cabac_dex.adapters.multicall_adapter.adapter import (
    MULTICALL3_ABI,
    ContractRead,
    MulticallAdapter,
    MulticallOutcome,
)
from cabac_dex.core.config import get_confirmations, get_receipt_timeout_s
from cabac_dex.core.constants.contracts import MULTICALL3_ADDRESS
from cabac_dex.core.utils.retry import RetryPolicy, with_retries
from cabac_dex.core.utils.transaction import (
    SignCallback,
    sign_and_send,
    wait_for_transaction_receipt,
)
from cabac_dex.core.utils.web3 import web3_from_chain_id


class SimulationError(RuntimeError):
    """A dry-run of a contract call reverted or could not be encoded."""

    def __init__(self, fn_name: str, reason: str):
        self.fn_name = fn_name
        self.reason = reason
        super().__init__(f"{fn_name} simulation failed: {reason}")


@dataclass(frozen=True)
class TransactionIntent:
    """A simulated call, ready to hand to the signer."""

    to: str
    fn_name: str
    args: tuple[Any, ...]
    value: int
    tx: dict[str, Any]
    result: Any = None


@dataclass
class ChainClient:
    """Chain reads, dry-runs, batched reads and signed writes for one chain.

    ``web3`` may be injected (tests, long-lived sessions); otherwise a
    short-lived ``AsyncWeb3`` is opened per call from the configured RPCs.
    """

    chain_id: int
    web3: AsyncWeb3 | None = None
    sign_callback: SignCallback | None = None
    multicall_address: str = MULTICALL3_ADDRESS
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    _log: Any = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.chain_id = int(self.chain_id)
        self._log = logger.bind(client="ChainClient", chain_id=self.chain_id)

    @asynccontextmanager
    async def _web3(self):
        if self.web3 is not None:
            yield self.web3
            return
        async with web3_from_chain_id(self.chain_id) as web3:
            yield web3

    def _on_retry(self, attempt: int, exc: Exception, delay_s: float) -> None:
        self._log.warning(
            f"RPC rate-limited (attempt {attempt + 1}); retrying in {delay_s:.2f}s: {exc}"
        )

    async def _retrying(self, fn):
        return await with_retries(fn, self.retry_policy, on_retry=self._on_retry)

    async def read_contract(
        self,
        address: str,
        abi: list[dict[str, Any]],
        fn_name: str,
        args: Sequence[Any] = (),
        *,
        block_identifier: str | int = "latest",
    ) -> Any:
        async def _call():
            async with self._web3() as web3:
                contract = web3.eth.contract(
                    address=web3.to_checksum_address(address), abi=abi
                )
                fn = getattr(contract.functions, fn_name)(*args)
                return await fn.call(block_identifier=block_identifier)

        return await self._retrying(_call)

    async def multicall(
        self,
        reads: Sequence[ContractRead],
        *,
        block_identifier: str | int | None = None,
    ) -> list[MulticallOutcome]:
        if not reads:
            return []

        async def _call():
            async with self._web3() as web3:
                adapter = MulticallAdapter(
                    chain_id=self.chain_id, web3=web3, address=self.multicall_address
                )
                return await adapter.read_many(reads, block_identifier=block_identifier)

        return await self._retrying(_call)

    def eth_balance_read(self, account: str) -> ContractRead:
        return ContractRead(
            address=self.multicall_address,
            abi=MULTICALL3_ABI,
            fn_name="getEthBalance",
            args=(AsyncWeb3.to_checksum_address(account),),
        )

    async def get_balance(self, address: str) -> int:
        async def _call():
            async with self._web3() as web3:
                return await web3.eth.get_balance(web3.to_checksum_address(address))

        return int(await self._retrying(_call))

    async def simulate_contract(
        self,
        *,
        address: str,
        abi: list[dict[str, Any]],
        fn_name: str,
        args: Sequence[Any] = (),
        from_address: str,
        value: int = 0,
    ) -> TransactionIntent:
        """``eth_call`` the write from ``from_address``; raise ``SimulationError`` on revert."""
        async with self._web3() as web3:
            to = web3.to_checksum_address(address)
            sender = web3.to_checksum_address(from_address)
            contract = web3.eth.contract(address=to, abi=abi)
            try:
                data = contract.encode_abi(fn_name, args=list(args))
            except (ValueError, TypeError) as exc:
                raise SimulationError(fn_name, f"could not encode call: {exc}") from exc

            try:
                result = await getattr(contract.functions, fn_name)(*args).call(
                    {"from": sender, "value": int(value)}
                )
            except (ContractLogicError, ContractCustomError) as exc:
                raise SimulationError(fn_name, _revert_reason(exc)) from exc

        return TransactionIntent(
            to=to,
            fn_name=fn_name,
            args=tuple(args),
            value=int(value),
            tx={
                "chainId": self.chain_id,
                "from": sender,
                "to": to,
                "data": data,
                "value": int(value),
            },
            result=result,
        )

    async def write_contract(self, intent: TransactionIntent) -> str:
        """Sign and broadcast ``intent``; returns the tx hash without waiting."""
        if self.sign_callback is None:
            raise ValueError("ChainClient has no sign_callback configured")
        async with self._web3() as web3:
            return await sign_and_send(web3, intent.tx, self.sign_callback)

    async def wait_for_transaction_receipt(
        self,
        tx_hash: str,
        *,
        on_receipt: Callable[[dict], None] | None = None,
    ) -> dict:
        async with self._web3() as web3:
            return await wait_for_transaction_receipt(
                web3,
                tx_hash,
                timeout=get_receipt_timeout_s(),
                confirmations=get_confirmations(),
                on_receipt=on_receipt,
            )


def _revert_reason(exc: Exception) -> str:
    message = getattr(exc, "message", None) or str(exc)
    message = str(message).strip()
    prefix = "execution reverted:"
    if message.lower().startswith(prefix):
        message = message[len(prefix) :].strip()
    return message or "execution reverted"
