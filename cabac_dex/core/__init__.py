from cabac_dex.core.adapters.BaseAdapter import BaseAdapter, require_wallet
from cabac_dex.core.config import load_config, set_config

__all__ = [
    "BaseAdapter",
    "load_config",
    "require_wallet",
    "set_config",
]
