from cabac_dex.core.engine.sequencer import (
    ActionInProgressError,
    ActionResult,
    ActionState,
    ActionStatus,
    ApproveStep,
    CallStep,
    TransactionSequencer,
    describe_failure,
)
from cabac_dex.core.engine.session import WalletSession

__all__ = [
    "ActionInProgressError",
    "ActionResult",
    "ActionState",
    "ActionStatus",
    "ApproveStep",
    "CallStep",
    "TransactionSequencer",
    "WalletSession",
    "describe_failure",
]
