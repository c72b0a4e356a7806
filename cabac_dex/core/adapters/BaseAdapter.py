from __future__ import annotations

import functools
from abc import ABC
from collections.abc import Callable
from typing import Any

from loguru import logger

WALLET_NOT_CONFIGURED = "wallet address not configured"


def require_wallet(fn: Callable) -> Callable:
    """Short-circuit to ``(False, reason)`` unless a wallet on a supported chain is set.

    Adapters without a ``session`` attribute only get the address check.
    """

    @functools.wraps(fn)
    async def wrapper(self: BaseAdapter, *args: Any, **kwargs: Any) -> Any:
        if not getattr(self, "wallet_address", None):
            return self.fail(WALLET_NOT_CONFIGURED, fn.__name__)
        session = getattr(self, "session", None)
        if session is not None and not session.is_supported_chain:
            return self.fail(f"Unsupported chain: {session.chain_id}", fn.__name__)
        return await fn(self, *args, **kwargs)

    return wrapper


class BaseAdapter(ABC):
    adapter_type: str | None = None

    def __init__(self, name: str, config: dict[str, Any] | None = None):
        self.name = name
        self.config = config or {}
        self.logger = logger.bind(adapter=self.__class__.__name__)

    def fail(self, reason: str, operation: str | None = None) -> tuple[bool, str]:
        self.logger.debug(f"{operation or self.name} refused: {reason}")
        return False, reason

    async def close(self) -> None:
        pass
