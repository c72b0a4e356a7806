"""Rate-limit aware retries for RPC reads.

Only provider throttling is retried (HTTP 429, the JSON-RPC codes public
endpoints use for it, or a throttling message). Reverts, encoding errors and
anything else surface on the first attempt.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

_RATE_LIMIT_HTTP_STATUS = 429
_RATE_LIMIT_RPC_ERROR_CODES = {429, -32005, -33200, -33300, -33400}
_RATE_LIMIT_MESSAGE_MARKERS = (
    "too many requests",
    "rate limit",
    "request rate exceeded",
    "limit exceeded",
    "compute units per second",
    "concurrent requests",
)


def _http_status(exc: Exception) -> int | None:
    for candidate in (exc, getattr(exc, "response", None)):
        if candidate is None:
            continue
        for attr in ("status", "status_code"):
            value = getattr(candidate, attr, None)
            if isinstance(value, int):
                return value
    return None


def _rpc_payload(exc: Exception) -> dict[str, Any] | None:
    return next((a for a in getattr(exc, "args", ()) if isinstance(a, dict)), None)


def is_rate_limited_error(exc: Exception) -> bool:
    if _http_status(exc) == _RATE_LIMIT_HTTP_STATUS:
        return True
    payload = _rpc_payload(exc)
    if payload is None:
        text = str(exc)
    else:
        if payload.get("code") in _RATE_LIMIT_RPC_ERROR_CODES:
            return True
        text = f"{payload.get('message') or ''} {payload.get('details') or ''}"
    text = text.lower()
    return any(marker in text for marker in _RATE_LIMIT_MESSAGE_MARKERS)


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    base_delay_s: float = 0.25
    max_delay_s: float = 4.0

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be >= 1")

    def delay_s(self, attempt: int) -> float:
        return min(self.base_delay_s * (2**attempt), self.max_delay_s)


T = TypeVar("T")


async def with_retries(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    retry_on: Callable[[Exception], bool] = is_rate_limited_error,
    on_retry: Callable[[int, Exception, float], None] | None = None,
) -> T:
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as exc:  # noqa: BLE001
            if attempt >= policy.attempts - 1 or not retry_on(exc):
                raise
            delay_s = policy.delay_s(attempt)
            if on_retry is not None:
                on_retry(attempt, exc, delay_s)
            await asyncio.sleep(delay_s)
            attempt += 1
