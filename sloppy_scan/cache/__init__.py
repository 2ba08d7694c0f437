from .scan_cache import (
    CacheEntry,
    CachePartition,
    ScanCache,
    load_cache,
    partition_by_cache,
    save_cache,
    update_cache_entries,
)

__all__ = [
    "CacheEntry",
    "CachePartition",
    "ScanCache",
    "load_cache",
    "partition_by_cache",
    "save_cache",
    "update_cache_entries",
]
