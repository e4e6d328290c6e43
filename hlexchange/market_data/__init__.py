from hlexchange.market_data.meta_loader import PERP, SPOT, MetaLoader
from hlexchange.market_data.universe_cache import (
    DEFAULT_TTL_SEC,
    SPOT_ASSET_OFFSET,
    UniverseCache,
    UniverseSnapshot,
    symbol_key,
)

__all__ = [
    "PERP",
    "SPOT",
    "MetaLoader",
    "DEFAULT_TTL_SEC",
    "SPOT_ASSET_OFFSET",
    "UniverseCache",
    "UniverseSnapshot",
    "symbol_key",
]
