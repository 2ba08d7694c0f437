"""Content-hash keyed cache of prior scan results.

Files whose content hash matches a stored entry are skipped entirely. A deep
(full content) result answers any later request for the same content; a
fingerprint result only answers fingerprint requests.

The cache is a handle: loaded once at the start of a scan, updated in memory,
then saved once by the caller.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..analysis.file_analyzer import relative_posix_path
from ..config import Settings, get_settings
from ..models import Issue, ScanStrategy
from .errors import StateError
from .hashing import compute_content_hash
from .state_store import read_state, write_state

logger = logging.getLogger(__name__)

CACHE_VERSION = 2


class CacheEntry(BaseModel):
    """Stored result for one file."""

    model_config = ConfigDict(populate_by_name=True)

    hash: str
    issues: List[Issue] = Field(default_factory=list)
    strategy: ScanStrategy
    scanned_at: str = Field(alias="scannedAt")

    def satisfies(self, requested: ScanStrategy) -> bool:
        """Deep results satisfy any request; fingerprint results only fingerprint."""
        return self.strategy == "deep" or self.strategy == requested


class ScanCache(BaseModel):
    """Whole cache file for one model."""

    version: int = CACHE_VERSION
    model: str
    entries: Dict[str, CacheEntry] = Field(default_factory=dict)


@dataclass
class CachePartition:
    cached_issues: List[Issue] = field(default_factory=list)
    uncached_files: List[str] = field(default_factory=list)
    cache_hits: int = 0
    cache: Optional[ScanCache] = None


def cache_path(cwd: str, settings: Optional[Settings] = None) -> Path:
    settings = settings or get_settings()
    return settings.state_path(cwd, settings.state.cache_file)


def _read_text(file_path: str) -> Optional[str]:
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"[CACHE] Cannot read {file_path}: {e}")
        return None


def load_cache(cwd: str, model: str, settings: Optional[Settings] = None) -> Optional[ScanCache]:
    """Load the cache for a model.

    Returns None when there is no cache, it cannot be parsed, or it was
    written by another cache version or for another model.
    """
    path = cache_path(cwd, settings)
    try:
        cache = read_state(path, ScanCache)
    except StateError as e:
        logger.warning(f"[CACHE] Ignoring unusable cache: {e}")
        return None

    if cache is None:
        return None
    if cache.version != CACHE_VERSION or cache.model != model:
        logger.info(
            f"[CACHE] Invalidated (version {cache.version}, model {cache.model}; "
            f"want version {CACHE_VERSION}, model {model})"
        )
        return None
    return cache


def save_cache(cwd: str, cache: ScanCache, settings: Optional[Settings] = None) -> bool:
    """Persist the cache. Returns False (after logging) if it could not be written."""
    try:
        write_state(cache_path(cwd, settings), cache)
    except StateError as e:
        logger.warning(f"[CACHE] Failed to save cache: {e}")
        return False
    return True


def partition_by_cache(
    file_paths: List[str],
    cwd: str,
    model: str,
    strategy: ScanStrategy,
    settings: Optional[Settings] = None,
) -> CachePartition:
    """Split files into cache hits and files that must be scanned.

    Unreadable files are in neither list. The returned partition carries the
    cache handle to pass to `update_cache_entries` and `save_cache`.
    """
    cache = load_cache(cwd, model, settings) or ScanCache(model=model)
    partition = CachePartition(cache=cache)

    for file_path in file_paths:
        content = _read_text(file_path)
        if content is None:
            continue

        entry = cache.entries.get(relative_posix_path(file_path, cwd))
        if (
            entry is not None
            and entry.hash == compute_content_hash(content)
            and entry.satisfies(strategy)
        ):
            partition.cached_issues.extend(entry.issues)
            partition.cache_hits += 1
        else:
            partition.uncached_files.append(file_path)

    logger.info(
        f"[CACHE] {partition.cache_hits} cached, {len(partition.uncached_files)} to scan "
        f"(strategy {strategy})"
    )
    return partition


def update_cache_entries(
    cache: ScanCache,
    issues: List[Issue],
    file_paths: List[str],
    cwd: str,
    strategy: ScanStrategy,
) -> None:
    """Record results for freshly scanned files and prune deleted ones."""
    issues_by_file: Dict[str, List[Issue]] = {}
    for issue in issues:
        issues_by_file.setdefault(issue.file, []).append(issue)

    scanned_at = datetime.now(timezone.utc).isoformat()
    for file_path in file_paths:
        content = _read_text(file_path)
        if content is None:
            continue
        relative_path = relative_posix_path(file_path, cwd)
        cache.entries[relative_path] = CacheEntry(
            hash=compute_content_hash(content),
            issues=issues_by_file.get(relative_path, []),
            strategy=strategy,
            scanned_at=scanned_at,
        )

    root = Path(cwd)
    stale = [key for key in cache.entries if not (root / key).exists()]
    for key in stale:
        del cache.entries[key]
    if stale:
        logger.debug(f"[CACHE] Pruned {len(stale)} entries for deleted files")
