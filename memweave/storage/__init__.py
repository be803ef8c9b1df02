"""
Metadata storage.

- base: MetadataStore protocol and record key layout
- redis_store: networked primary store
- local_store: JSON-file fallback store
- strategy: primary/fallback selector with health-gated failover
"""

from memweave.storage.base import MetadataStore
from memweave.storage.local_store import LocalMetadataStore
from memweave.storage.redis_store import RedisMetadataStore
from memweave.storage.strategy import StorageStrategy, StorageStrategySelector

__all__ = [
    "LocalMetadataStore",
    "MetadataStore",
    "RedisMetadataStore",
    "StorageStrategy",
    "StorageStrategySelector",
]
