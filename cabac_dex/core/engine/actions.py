from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from cabac_dex.core.clients.ChainClient import TransactionIntent
from cabac_dex.core.engine.sequencer import (
    ActionInProgressError,
    ActionResult,
    ApproveStep,
    CallStep,
    Step,
    TransactionSequencer,
)
from cabac_dex.core.registry import Token


@dataclass(frozen=True)
class PreparedAction:
    """A ready-to-run step list plus what the UI needs to enable it.

    ``intent`` is the dry-run of the gating call. It is ``None`` while
    approvals are still outstanding, since the call cannot simulate before
    the allowance exists.
    """

    action: str
    steps: tuple[Step, ...]
    approvals_needed: tuple[str, ...] = ()
    intent: TransactionIntent | None = None
    details: dict[str, Any] | None = None


async def prepare_gated(
    reconciler: Any,
    sequencer: TransactionSequencer,
    action: str,
    requirements: list[tuple[Token, int]],
    spender: str | None,
    call: CallStep,
    details: dict[str, Any] | None = None,
) -> tuple[bool, PreparedAction | str]:
    """Check balances/allowances, then build approve steps followed by ``call``.

    ``spender=None`` checks balances only (no approvals are planned).
    """
    needed, reason = await reconciler.check_funds(requirements, spender)
    if reason is not None:
        return False, reason

    steps: list[Step] = []
    if spender is not None:
        steps = [
            ApproveStep(token.address, spender, amount, label=f"approve {token.symbol}")
            for token, amount in requirements
            if amount > 0 and not token.is_native
        ]
    steps.append(call)

    intent = None
    if not needed:
        intent, reason = await sequencer.prepare(call)
        if intent is None:
            return False, reason
    return True, PreparedAction(action, tuple(steps), tuple(needed), intent, details)


async def execute_prepared(
    sequencer: TransactionSequencer,
    ok: bool,
    prepared: PreparedAction | str,
) -> tuple[bool, ActionResult | str]:
    if not ok:
        return False, prepared
    try:
        result = await sequencer.run(prepared.action, prepared.steps)
    except ActionInProgressError as exc:
        return False, str(exc)
    if not result.ok:
        return False, result.reason or "Transaction failed"
    return True, result
