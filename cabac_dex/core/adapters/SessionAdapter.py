from __future__ import annotations

from typing import Any, ClassVar

from cabac_dex.adapters.allowance_adapter.adapter import AllowanceAdapter
from cabac_dex.core.adapters.BaseAdapter import BaseAdapter
from cabac_dex.core.clients.ChainClient import ChainClient
from cabac_dex.core.constants import ZERO_ADDRESS
from cabac_dex.core.engine.sequencer import ActionState, TransactionSequencer
from cabac_dex.core.engine.session import WalletSession
from cabac_dex.core.registry import ChainRegistry, get_registry
from cabac_dex.core.utils.transaction import SignCallback


def _owner(session: WalletSession) -> str:
    return (session.address if session.is_ready else None) or ZERO_ADDRESS


class SessionContext:
    """Chain client, registry, reconciler and sequencer for one wallet on one chain.

    Every facade on the same session draws from the same context, so a
    transaction confirmed through one card invalidates the balances and
    allowances the other cards gate on.
    """

    _shared: ClassVar[dict[tuple[int, str], SessionContext]] = {}

    def __init__(
        self,
        session: WalletSession,
        *,
        chain: ChainClient | None = None,
        registry: ChainRegistry | None = None,
        reconciler: AllowanceAdapter | None = None,
        sequencer: TransactionSequencer | None = None,
        sign_callback: SignCallback | None = None,
    ) -> None:
        self.session = session
        self.owner = _owner(session)
        self.chain = chain or ChainClient(session.chain_id, sign_callback=sign_callback)
        self.registry = registry or get_registry(session.chain_id)
        self.reconciler = reconciler or AllowanceAdapter(chain=self.chain, owner=self.owner)
        self.sequencer = sequencer or TransactionSequencer(
            self.chain, self.owner, reconciler=self.reconciler
        )

    @classmethod
    def for_session(
        cls, session: WalletSession, *, sign_callback: SignCallback | None = None
    ) -> SessionContext:
        key = (session.chain_id, _owner(session).lower())
        context = cls._shared.get(key)
        if context is None:
            context = cls._shared[key] = cls(session, sign_callback=sign_callback)
        elif sign_callback is not None and context.chain.sign_callback is None:
            context.chain.sign_callback = sign_callback
        return context

    @classmethod
    def forget(cls, session: WalletSession | None = None) -> None:
        """Drop the shared context for ``session`` (all of them when ``None``)."""
        if session is None:
            cls._shared.clear()
        else:
            cls._shared.pop((session.chain_id, _owner(session).lower()), None)

    def matches(self, session: WalletSession) -> bool:
        return self.session.chain_id == session.chain_id and self.owner == _owner(session)


class SessionAdapter(BaseAdapter):
    """Facade base bound to one wallet session.

    Components come from ``context`` when given, from a private context when
    any of them is injected, and otherwise from the context shared by every
    facade on the same wallet and chain. Without a connected wallet they are
    built for the zero address so reads still work, while ``require_wallet``
    guards every write.
    """

    def __init__(
        self,
        name: str,
        config: dict[str, Any] | None = None,
        *,
        session: WalletSession,
        context: SessionContext | None = None,
        chain: ChainClient | None = None,
        registry: ChainRegistry | None = None,
        reconciler: AllowanceAdapter | None = None,
        sequencer: TransactionSequencer | None = None,
        sign_callback: SignCallback | None = None,
    ) -> None:
        super().__init__(name, config)
        self.session = session
        self.wallet_address = session.address if session.is_ready else None

        if context is not None:
            if not context.matches(session):
                raise ValueError("Session context belongs to a different wallet or chain")
        elif any(c is not None for c in (chain, registry, reconciler, sequencer)):
            context = SessionContext(
                session,
                chain=chain,
                registry=registry,
                reconciler=reconciler,
                sequencer=sequencer,
                sign_callback=sign_callback,
            )
        else:
            context = SessionContext.for_session(session, sign_callback=sign_callback)

        self.context = context
        self.owner = context.owner
        self.chain = context.chain
        self.registry = context.registry
        self.reconciler = context.reconciler
        self.sequencer = context.sequencer

    @property
    def approval_flags(self) -> dict[tuple[str, str], bool]:
        return self.reconciler.approval_flags

    def action_state(self, action: str) -> ActionState:
        return self.sequencer.state(action)
