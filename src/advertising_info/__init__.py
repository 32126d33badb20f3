"""
Advertising info caching: strategy chain, durable stores, and a provider that
serves the stored value while refreshing it in the background.

Expose records, stores, strategies, and the provider under `advertising_info`.
"""

from .info import (
    AdvertisingInfo,
    INVALID_ADVERTISING_INFO,
    is_info_valid,
)
from .storage import (
    AdvertisingInfoStore,
    InMemStore,
    FileStore,
    RedisStore,
    StoreWriteError,
    validate_store,
)
from .strategies import (
    AdvertisingInfoStrategy,
    FunctionStrategy,
    Resolution,
    StrategyChain,
)
from .provider import AdvertisingInfoProvider

__all__ = [
    "AdvertisingInfo",
    "INVALID_ADVERTISING_INFO",
    "is_info_valid",
    "AdvertisingInfoStore",
    "InMemStore",
    "FileStore",
    "RedisStore",
    "StoreWriteError",
    "validate_store",
    "AdvertisingInfoStrategy",
    "FunctionStrategy",
    "Resolution",
    "StrategyChain",
    "AdvertisingInfoProvider",
]
