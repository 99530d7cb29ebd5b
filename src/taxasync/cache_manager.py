"""Caching system for TaxaSync.

This module stores registry responses on disk so repeated runs against an
unchanged catalog do not hit the registry again. Each entry is saved with a
checksum describing the request that produced it (endpoint and options);
entries whose checksum differs or whose age exceeds the configured maximum
are treated as misses.
"""

import hashlib
import json
import logging
import os
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from diskcache import Cache

from taxasync.config import config

logger = logging.getLogger(__name__)

# Module-level singleton so every caller shares one diskcache.Cache handle for
# a given directory. Cache objects are thread-safe, which the threaded
# matcher relies on. When the configured directory changes the old handle is
# closed and a new one opened.
_cache_instance: Optional[Cache] = None
_cache_path: Optional[Path] = None
META_SUFFIX = "::meta"
META_VERSION = 1


def _close_cache() -> None:
    """Close the active diskcache instance."""
    global _cache_instance, _cache_path
    if _cache_instance is not None:
        _cache_instance.close()
        _cache_instance = None
        _cache_path = None


def get_cache() -> Cache:
    """Return a diskcache instance rooted at the current config cache dir."""
    global _cache_instance, _cache_path
    cache_dir = Path(config.cache_dir)
    cache_dir.mkdir(parents=True, exist_ok=True)
    if _cache_instance is None or _cache_path != cache_dir:
        if _cache_instance is not None:
            _cache_instance.close()
        _cache_instance = Cache(directory=str(cache_dir))
        _cache_path = cache_dir
    return _cache_instance


def set_cache_namespace(namespace: str) -> Path:
    """Set the effective cache directory to a namespace under the base dir."""
    base_dir = Path(config.cache_base_dir)
    target_dir = base_dir / namespace
    config.cache_dir = str(target_dir)
    _close_cache()
    target_dir.mkdir(parents=True, exist_ok=True)
    return target_dir


def get_cache_directory() -> Path:
    """Return the current cache directory as a Path."""
    cache_dir = Path(config.cache_dir)
    cache_dir.mkdir(parents=True, exist_ok=True)
    return cache_dir


def compute_request_checksum(endpoint: str, options: Dict[str, Any]) -> str:
    """Compute a SHA-256 checksum identifying a kind of registry request.

    Args:
        endpoint: URL of the registry endpoint
        options: Request options that change the response

    Returns:
        Hex digest of the endpoint and the sorted options
    """
    payload = json.dumps({"endpoint": endpoint, "options": options}, sort_keys=True, default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def make_cache_key(prefix: str, value: str) -> str:
    """Build a fixed-length cache key for an arbitrary string value."""
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()
    return f"{prefix}_{digest}"


def save_cache(key: str, obj: Any, checksum: str,
               metadata: Optional[Dict[str, Any]] = None) -> None:
    """Save an object to the cache.

    Args:
        key: Cache key for the object
        obj: The object to cache
        checksum: Checksum value for validation
        metadata: Additional metadata to store with the cache entry
    """
    cache = get_cache()
    meta_key = f"{key}{META_SUFFIX}"

    meta = {
        "checksum": checksum,
        "timestamp": datetime.now().isoformat(),
        "version": META_VERSION,
    }
    if metadata:
        meta.update(metadata)

    try:
        cache.set(key, obj)
        cache.set(meta_key, meta)
        logger.debug(f"Saved object to cache: {key}")
    except Exception as exc:
        # A failed write only costs a future cache miss; drop both halves
        logger.error(f"Failed to save to cache: {key}, {exc}")
        cache.delete(key)
        cache.delete(meta_key)


def load_cache(key: str, expected_checksum: str,
               max_age: Optional[int] = None) -> Optional[Any]:
    """Load an object from the cache if valid.

    Args:
        key: Cache key for the object
        expected_checksum: Expected checksum for validation
        max_age: Maximum age in seconds, or None to use the configured maximum

    Returns:
        The cached object if valid, otherwise None
    """
    cache = get_cache()
    meta = cache.get(f"{key}{META_SUFFIX}", default=None)
    if meta is None:
        logger.debug(f"Cache miss (metadata not found): {key}")
        return None

    if meta.get("checksum") != expected_checksum:
        logger.debug(f"Cache miss (checksum mismatch): {key}")
        return None

    if max_age is None:
        max_age = config.cache_max_age

    if max_age is not None:
        timestamp = datetime.fromisoformat(meta.get("timestamp", "2000-01-01T00:00:00"))
        age = (datetime.now() - timestamp).total_seconds()
        if age > max_age:
            logger.debug(f"Cache miss (expired after {age:.1f}s): {key}")
            return None

    obj = cache.get(key, default=None)
    if obj is None:
        logger.debug(f"Cache miss (value not found): {key}")
        return None
    logger.debug(f"Cache hit: {key}")
    return obj


def clear_cache(pattern: Optional[str] = None) -> int:
    """Clear cache entries matching the given pattern.

    Args:
        pattern: Optional substring of the keys to remove, or None for all

    Returns:
        Number of entries removed
    """
    cache = get_cache()
    if pattern is None:
        count = len(cache)
        cache.clear()
        logger.info(f"Cleared {count} cache entries")
        return count

    keys_to_delete = [key for key in cache if pattern in str(key)]
    for key in keys_to_delete:
        try:
            del cache[key]
        except KeyError:
            continue
    logger.info(f"Cleared {len(keys_to_delete)} cache entries matching '{pattern}'")
    return len(keys_to_delete)


def _classify_cache_key(key: str) -> str:
    """Return the cache object category based on the key prefix."""
    if key.startswith("lookup_"):
        return "lookup"
    return "other"


def get_cache_stats() -> Dict[str, Any]:
    """Get statistics about the cache.

    Returns:
        Dictionary with cache statistics
    """
    cache_dir = get_cache_directory()
    stats: Dict[str, Any] = {
        "namespace": str(cache_dir),
        "total_size_bytes": 0,
        "file_count": 0,
        "entry_count": 0,
        "meta_count": 0,
        "prefix_counts": {},
    }

    for root, _, files in os.walk(cache_dir):
        for file_name in files:
            stats["file_count"] += 1
            try:
                stats["total_size_bytes"] += (Path(root) / file_name).stat().st_size
            except OSError:
                continue

    cache = get_cache()
    prefix_counts: Dict[str, int] = defaultdict(int)
    for key in cache:
        key_str = str(key)
        if key_str.endswith(META_SUFFIX):
            stats["meta_count"] += 1
            continue
        stats["entry_count"] += 1
        prefix_counts[_classify_cache_key(key_str)] += 1

    stats["prefix_counts"] = dict(prefix_counts)
    return stats
