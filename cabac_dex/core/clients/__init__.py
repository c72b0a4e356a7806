from cabac_dex.core.clients.ChainClient import (
    ChainClient,
    SimulationError,
    TransactionIntent,
)

__all__ = [
    "ChainClient",
    "SimulationError",
    "TransactionIntent",
]
