from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from eth_abi import decode as abi_decode
from eth_utils.abi import collapse_if_tuple
from hexbytes import HexBytes

from cabac_dex.core.adapters.BaseAdapter import BaseAdapter
from cabac_dex.core.constants.base import ADAPTER_MULTICALL
from cabac_dex.core.constants.contracts import MULTICALL3_ADDRESS

MULTICALL3_ABI = [
    {
        "inputs": [
            {
                "components": [
                    {"internalType": "address", "name": "target", "type": "address"},
                    {"internalType": "bool", "name": "allowFailure", "type": "bool"},
                    {"internalType": "bytes", "name": "callData", "type": "bytes"},
                ],
                "internalType": "struct Multicall3.Call3[]",
                "name": "calls",
                "type": "tuple[]",
            }
        ],
        "name": "aggregate3",
        "outputs": [
            {
                "components": [
                    {"internalType": "bool", "name": "success", "type": "bool"},
                    {"internalType": "bytes", "name": "returnData", "type": "bytes"},
                ],
                "internalType": "struct Multicall3.Result[]",
                "name": "returnData",
                "type": "tuple[]",
            }
        ],
        "stateMutability": "payable",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "address", "name": "addr", "type": "address"}],
        "name": "getEthBalance",
        "outputs": [
            {"internalType": "uint256", "name": "balance", "type": "uint256"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
]


@dataclass(frozen=True)
class ContractRead:
    """One view call to batch: ``abi`` must contain ``fn_name``."""

    address: str
    abi: list[dict[str, Any]]
    fn_name: str
    args: tuple[Any, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class MulticallCall:
    target: str
    call_data: bytes | str
    allow_failure: bool = True

    def as_tuple(self) -> tuple[str, bool, bytes | str]:
        return self.target, self.allow_failure, self.call_data


@dataclass(frozen=True)
class MulticallOutcome:
    """Per-entry result; ``result`` is only meaningful when ``success``."""

    success: bool
    result: Any = None
    error: str | None = None


def _function_abi(abi: list[dict[str, Any]], fn_name: str) -> dict[str, Any]:
    for entry in abi:
        if entry.get("type") == "function" and entry.get("name") == fn_name:
            return entry
    raise ValueError(f"Function {fn_name} not found in ABI")


def output_types(abi: list[dict[str, Any]], fn_name: str) -> list[str]:
    return [collapse_if_tuple(o) for o in _function_abi(abi, fn_name)["outputs"]]


def decode_return_data(abi: list[dict[str, Any]], fn_name: str, data: bytes) -> Any:
    """Decode like ``ContractFunction.call``: one output unwrapped, several as a tuple."""
    types = output_types(abi, fn_name)
    if not types:
        return None
    values = abi_decode(types, bytes(data))
    if len(values) == 1:
        return values[0]
    return tuple(values)


class MulticallAdapter(BaseAdapter):
    adapter_type = ADAPTER_MULTICALL

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        chain_id: int | None = None,
        web3: Any | None = None,
        address: str | None = None,
        abi: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__("multicall_adapter", config)

        if web3 is None:
            raise ValueError("MulticallAdapter requires web3 instance")
        self.chain_id = int(chain_id) if chain_id is not None else None
        self.web3 = web3

        checksum_address = self.web3.to_checksum_address(address or MULTICALL3_ADDRESS)
        self.contract = self.web3.eth.contract(
            address=checksum_address, abi=abi or MULTICALL3_ABI
        )

    async def aggregate3(
        self,
        calls: Iterable[MulticallCall | tuple[str, bool, bytes | str]],
        *,
        block_identifier: str | int | None = None,
    ) -> list[tuple[bool, bytes]]:
        calls_list = list(calls)
        if not calls_list:
            return []

        encoded_calls = [self._coerce_call(call) for call in calls_list]
        call_fn = self.contract.functions.aggregate3(encoded_calls).call
        if block_identifier is None:
            results = await call_fn()
        else:
            results = await call_fn(block_identifier=block_identifier)
        return [(bool(ok), self._ensure_bytes(data)) for ok, data in results]

    async def read_many(
        self,
        reads: Sequence[ContractRead],
        *,
        block_identifier: str | int | None = None,
    ) -> list[MulticallOutcome]:
        """Batch ``reads`` in one ``aggregate3``; failures are reported per entry."""
        if not reads:
            return []
        calls = [self.encode_read(read) for read in reads]
        raw_results = await self.aggregate3(calls, block_identifier=block_identifier)

        outcomes: list[MulticallOutcome] = []
        for read, (ok, data) in zip(reads, raw_results, strict=True):
            if not ok:
                outcomes.append(
                    MulticallOutcome(False, error=f"{read.fn_name} reverted")
                )
                continue
            try:
                value = decode_return_data(read.abi, read.fn_name, data)
            except Exception as exc:  # noqa: BLE001
                outcomes.append(
                    MulticallOutcome(False, error=f"{read.fn_name}: {exc}")
                )
                continue
            outcomes.append(MulticallOutcome(True, result=value))
        return outcomes

    def encode_read(self, read: ContractRead) -> MulticallCall:
        addr = self.web3.to_checksum_address(read.address)
        contract = self.web3.eth.contract(address=addr, abi=read.abi)
        calldata = contract.encode_abi(read.fn_name, args=list(read.args))
        return self.build_call(addr, calldata)

    def build_call(
        self, target: str, call_data: bytes | str, *, allow_failure: bool = True
    ) -> MulticallCall:
        checksum = self.web3.to_checksum_address(target)
        normalized = self._normalize_call_data(call_data)
        return MulticallCall(
            target=checksum, call_data=normalized, allow_failure=allow_failure
        )

    @staticmethod
    def decode_uint256(data: bytes | str) -> int:
        raw = MulticallAdapter._normalize_call_data(data)
        if len(raw) < 32:
            raw = raw.rjust(32, b"\x00")
        return int.from_bytes(raw[-32:], byteorder="big")

    def _coerce_call(
        self, call: MulticallCall | tuple[str, bool, bytes | str]
    ) -> tuple[str, bool, bytes]:
        if isinstance(call, MulticallCall):
            target_str, allow_failure, call_data = call.as_tuple()
        else:
            target_str, allow_failure, call_data = call
        target = self.web3.to_checksum_address(target_str)
        return target, bool(allow_failure), self._normalize_call_data(call_data)

    @staticmethod
    def _normalize_call_data(data: bytes | str) -> bytes:
        if isinstance(data, HexBytes):
            return bytes(data)
        if isinstance(data, bytes):
            return data
        if isinstance(data, str):
            if data.startswith("0x"):
                return bytes.fromhex(data[2:])
            return data.encode()
        raise TypeError("Unsupported calldata type")

    @staticmethod
    def _ensure_bytes(data: bytes | str | HexBytes) -> bytes:
        if isinstance(data, HexBytes):
            return bytes(data)
        if isinstance(data, bytes):
            return data
        if isinstance(data, str):
            if data.startswith("0x"):
                return bytes.fromhex(data[2:])
            return data.encode()
        raise TypeError("Unexpected return data type from multicall")
