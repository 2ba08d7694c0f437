"""Budget-aware code-quality scanning with small-context language models."""

from .optimization.chunker import prepare_chunks
from .fingerprint import generate_fingerprint, pack_fingerprints
from .cache import partition_by_cache, save_cache, update_cache_entries
from .routing import BudgetRouter
from .scan import ScanRunner

__version__ = "0.1.0"

__all__ = [
    "BudgetRouter",
    "ScanRunner",
    "generate_fingerprint",
    "pack_fingerprints",
    "partition_by_cache",
    "prepare_chunks",
    "save_cache",
    "update_cache_entries",
]
