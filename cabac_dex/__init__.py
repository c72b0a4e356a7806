__version__ = "0.1.0"

from cabac_dex.adapters.liquidity_adapter.adapter import LiquidityAdapter
from cabac_dex.adapters.swap_adapter.adapter import SwapAdapter
from cabac_dex.core.adapters.SessionAdapter import SessionContext
from cabac_dex.core.engine.session import WalletSession
from cabac_dex.core.registry import get_registry

__all__ = [
    "__version__",
    "LiquidityAdapter",
    "SessionContext",
    "SwapAdapter",
    "WalletSession",
    "get_registry",
]
