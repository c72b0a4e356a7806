"""Ordered execution of approve/call steps for one user action.

Each action (``"mint"``, ``"swap"``, ``"remove"`` ...) owns a single
``ActionState`` whose status walks::

    IDLE -> SIMULATING -> AWAITING_SIGNATURE -> PENDING -> CONFIRMING
         -> SUCCEEDED | FAILED

and falls back to ``IDLE`` once listeners have seen the terminal state. Steps
run strictly one after another: step N+1 is only simulated once step N's
receipt is confirmed. Approve steps re-read the allowance from chain right
before they run, so re-running an action after a partial failure skips the
approvals that already landed.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

from eth_utils import to_checksum_address
from loguru import logger

from cabac_dex.core.clients.ChainClient import (
    ChainClient,
    SimulationError,
    TransactionIntent,
)
from cabac_dex.core.constants.base import MAX_UINT256
from cabac_dex.core.constants.erc20_abi import ERC20_ABI
from cabac_dex.core.registry import is_native_token
from cabac_dex.core.utils.transaction import (
    TransactionRevertedError,
    UserRejectedError,
    is_user_rejection,
)


class ActionStatus(StrEnum):
    IDLE = "idle"
    SIMULATING = "simulating"
    AWAITING_SIGNATURE = "awaiting_signature"
    PENDING = "pending"
    CONFIRMING = "confirming"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({ActionStatus.SUCCEEDED, ActionStatus.FAILED})


class ActionInProgressError(RuntimeError):
    def __init__(self, action: str, status: ActionStatus):
        self.action = action
        self.status = status
        super().__init__(f"Action {action} already in progress ({status})")


@dataclass(frozen=True)
class ApproveStep:
    token: str
    spender: str
    amount: int
    label: str = ""


@dataclass(frozen=True)
class CallStep:
    contract: str
    abi: list[dict[str, Any]]
    fn_name: str
    args: tuple[Any, ...] = ()
    value: int = 0
    label: str = ""
    # (token, spender) pairs and token balances this call can move
    affects: tuple[tuple[str, str], ...] = ()
    balances: tuple[str, ...] = ()


Step = ApproveStep | CallStep


@dataclass(frozen=True)
class ActionState:
    action: str
    status: ActionStatus = ActionStatus.IDLE
    step_index: int = 0
    step_count: int = 0
    step_label: str = ""
    tx_hash: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class ActionResult:
    ok: bool
    tx_hashes: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    reason: str | None = None


def describe_failure(exc: BaseException) -> str:
    """Short, user-facing text for a failed step."""
    if isinstance(exc, UserRejectedError) or is_user_rejection(exc):
        return "Transaction rejected in wallet"
    if isinstance(exc, SimulationError):
        return exc.reason
    if isinstance(exc, TransactionRevertedError):
        return "Transaction reverted"
    message = str(exc).strip()
    return message.splitlines()[0] if message else exc.__class__.__name__


@dataclass
class _Run:
    tx_hashes: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    pairs: set[tuple[str, str]] = field(default_factory=set)
    tokens: set[str] = field(default_factory=set)


class TransactionSequencer:
    def __init__(
        self,
        chain: ChainClient,
        owner: str,
        reconciler: Any | None = None,
    ) -> None:
        self.chain = chain
        self.owner = to_checksum_address(owner)
        self.reconciler = reconciler
        self._states: dict[str, ActionState] = {}
        self._listeners: list[Callable[[ActionState], None]] = []
        self._refresh_hooks: list[Callable[[], Awaitable[Any]]] = []
        self.logger = logger.bind(component="TransactionSequencer")

    def subscribe(self, listener: Callable[[ActionState], None]) -> None:
        self._listeners.append(listener)

    def add_refresh_hook(self, hook: Callable[[], Awaitable[Any]]) -> None:
        self._refresh_hooks.append(hook)

    def state(self, action: str) -> ActionState:
        return self._states.get(action, ActionState(action))

    def is_busy(self, action: str) -> bool:
        return self.state(action).status != ActionStatus.IDLE

    async def prepare(self, step: CallStep) -> tuple[TransactionIntent | None, str | None]:
        """Dry-run ``step`` without sending; ``(None, reason)`` disables the action."""
        try:
            intent = await self._simulate(step)
        except Exception as exc:  # noqa: BLE001
            return None, describe_failure(exc)
        return intent, None

    async def run(self, action: str, steps: Sequence[Step]) -> ActionResult:
        if self.is_busy(action):
            raise ActionInProgressError(action, self.state(action).status)

        run = _Run()
        self._set(action, ActionStatus.SIMULATING, step_count=len(steps), reason=None)
        try:
            for index, step in enumerate(steps):
                self._set(action, ActionStatus.SIMULATING, step_index=index, tx_hash=None)
                if isinstance(step, ApproveStep):
                    await self._run_approve(action, step, run)
                else:
                    await self._run_call(action, step, run)
        except asyncio.CancelledError:
            self._set(action, ActionStatus.FAILED, reason="Action cancelled")
            self._reset(action)
            raise
        except Exception as exc:  # noqa: BLE001
            reason = describe_failure(exc)
            self.logger.error(
                f"{action} failed at step {self.state(action).step_index}: {exc}"
            )
            if run.tx_hashes:
                await self._reconcile(run)
            self._set(action, ActionStatus.FAILED, reason=reason)
            self._reset(action)
            return ActionResult(False, tuple(run.tx_hashes), tuple(run.skipped), reason)

        self._set(action, ActionStatus.SUCCEEDED)
        await self._reconcile(run)
        await self._run_hooks()
        self._reset(action)
        return ActionResult(True, tuple(run.tx_hashes), tuple(run.skipped))

    async def _run_approve(self, action: str, step: ApproveStep, run: _Run) -> None:
        label = step.label or f"approve {step.token}"
        if is_native_token(step.token) or step.amount <= 0:
            run.skipped.append(label)
            return
        current = await self._fresh_allowance(step.token, step.spender)
        run.pairs.add((step.token, step.spender))
        if current >= step.amount:
            self.logger.info(f"{label}: allowance {current} already covers {step.amount}")
            run.skipped.append(label)
            return
        call = CallStep(
            contract=step.token,
            abi=ERC20_ABI,
            fn_name="approve",
            args=(to_checksum_address(step.spender), MAX_UINT256),
            label=label,
            affects=((step.token, step.spender),),
        )
        await self._run_call(action, call, run)

    async def _run_call(self, action: str, step: CallStep, run: _Run) -> None:
        label = step.label or step.fn_name
        self._set(action, ActionStatus.SIMULATING, step_label=label)
        intent = await self._simulate(step)

        self._set(action, ActionStatus.AWAITING_SIGNATURE)
        tx_hash = await self.chain.write_contract(intent)
        self.logger.info(f"{label} broadcast: {tx_hash}")
        self._set(action, ActionStatus.PENDING, tx_hash=tx_hash)

        def _on_receipt(_receipt: dict) -> None:
            self._set(action, ActionStatus.CONFIRMING)

        await self.chain.wait_for_transaction_receipt(tx_hash, on_receipt=_on_receipt)
        self.logger.info(f"{label} confirmed: {tx_hash}")
        run.tx_hashes.append(tx_hash)
        run.pairs.update(step.affects)
        run.tokens.update(step.balances)

    async def _simulate(self, step: CallStep) -> TransactionIntent:
        return await self.chain.simulate_contract(
            address=step.contract,
            abi=step.abi,
            fn_name=step.fn_name,
            args=step.args,
            from_address=self.owner,
            value=step.value,
        )

    async def _fresh_allowance(self, token: str, spender: str) -> int:
        if self.reconciler is not None:
            return int(await self.reconciler.fetch_allowance(token, spender))
        return int(
            await self.chain.read_contract(
                to_checksum_address(token),
                ERC20_ABI,
                "allowance",
                (self.owner, to_checksum_address(spender)),
            )
        )

    async def _reconcile(self, run: _Run) -> None:
        if self.reconciler is None:
            return
        try:
            if run.pairs or run.tokens:
                self.reconciler.invalidate(pairs=run.pairs, tokens=run.tokens)
            else:
                self.reconciler.invalidate()
            await self.reconciler.refresh()
        except Exception as exc:  # noqa: BLE001
            self.logger.warning(f"Post-transaction refresh failed: {exc}")

    async def _run_hooks(self) -> None:
        for hook in list(self._refresh_hooks):
            try:
                await hook()
            except Exception as exc:  # noqa: BLE001
                self.logger.warning(f"Refresh hook {hook!r} failed: {exc}")

    def _set(self, action: str, status: ActionStatus, **changes: Any) -> None:
        state = replace(self.state(action), status=status, **changes)
        self._states[action] = state
        self._notify(state)

    def _reset(self, action: str) -> None:
        if self.state(action).status in TERMINAL_STATUSES:
            self._states[action] = ActionState(action)
            self._notify(self._states[action])

    def _notify(self, state: ActionState) -> None:
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as exc:  # noqa: BLE001
                self.logger.warning(f"Action listener failed: {exc}")
