from __future__ import annotations

from dataclasses import dataclass

from eth_utils import is_address, to_checksum_address

from cabac_dex.core.constants.chains import SUPPORTED_CHAINS


@dataclass(frozen=True)
class WalletSession:
    """Read-only view of the connected wallet; every component takes one."""

    address: str | None
    chain_id: int
    connected: bool = True

    def __post_init__(self) -> None:
        if self.address is not None:
            if not is_address(self.address):
                raise ValueError(f"Invalid wallet address: {self.address}")
            object.__setattr__(self, "address", to_checksum_address(self.address))
        object.__setattr__(self, "chain_id", int(self.chain_id))

    @property
    def is_ready(self) -> bool:
        return self.connected and self.address is not None

    @property
    def is_supported_chain(self) -> bool:
        return self.chain_id in SUPPORTED_CHAINS

    def require_address(self) -> str:
        if not self.is_ready:
            raise ValueError("Wallet not connected")
        return self.address  # type: ignore[return-value]
