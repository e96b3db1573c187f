"""Result Cache - read-through cache for external reads.

Keys are deterministic functions of a read's identifying arguments:
    file:{path}:{branch}     file contents
    tree:{path}:{branch}     directory listings
    diff:{pull_number}       proposal diffs

Writes invalidate the written file, every listing on the same branch and
every diff. Listings on other branches survive.

Entries never expire on their own; one cache lives for one run (or is
shared between parallel branches of one run).

Layering: ONLY imports from fixloop_protocols.
"""

import threading
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Mapping, Optional

from fixloop_protocols import LoggerProtocol, Tool

DEFAULT_BRANCH = "main"

KeyExtractor = Callable[[Mapping[str, Any]], str]


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache counters."""
    hits: int
    misses: int
    invalidations: int
    size: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def to_dict(self) -> Dict[str, int]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "invalidations": self.invalidations,
            "size": self.size,
        }


class ResultCache:
    """Key/value store for read results with targeted invalidation.

    Usage:
        cache = ResultCache(logger)
        cache.set("file:README.md:main", "...")
        cache.get("file:README.md:main")          # hit
        cache.invalidate_by_prefix_and_suffix("tree:", ":main")
    """

    def __init__(self, logger: Optional[LoggerProtocol] = None) -> None:
        self._entries: Dict[str, str] = {}
        self._hits = 0
        self._misses = 0
        self._invalidations = 0
        self._logger = logger.bind(component="result_cache") if logger else None
        self._lock = threading.RLock()

    @property
    def logger(self) -> Optional[LoggerProtocol]:
        return self._logger

    def get(self, key: str) -> Optional[str]:
        """Return the cached value, or None on a miss."""
        with self._lock:
            if key in self._entries:
                self._hits += 1
                return self._entries[key]
            self._misses += 1
            return None

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._entries[key] = value

    def invalidate(self, key: str) -> bool:
        """Remove one key. Returns True if it was present."""
        with self._lock:
            if key not in self._entries:
                return False
            del self._entries[key]
            self._invalidations += 1
            return True

    def invalidate_by_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix``."""
        return self._invalidate_where(lambda key: key.startswith(prefix))

    def invalidate_by_prefix_and_suffix(self, prefix: str, suffix: str) -> int:
        """Remove every key starting with ``prefix`` AND ending with ``suffix``."""
        return self._invalidate_where(
            lambda key: key.startswith(prefix) and key.endswith(suffix)
        )

    def clear(self) -> None:
        """Drop every entry. Counters are kept."""
        with self._lock:
            self._entries.clear()

    def get_stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                invalidations=self._invalidations,
                size=len(self._entries),
            )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def _invalidate_where(self, predicate: Callable[[str], bool]) -> int:
        with self._lock:
            doomed = [key for key in self._entries if predicate(key)]
            for key in doomed:
                del self._entries[key]
            self._invalidations += len(doomed)
            return len(doomed)


# =============================================================================
# KEY EXTRACTORS
# =============================================================================

def read_file_key(args: Mapping[str, Any]) -> str:
    return f"file:{args['path']}:{args.get('branch') or DEFAULT_BRANCH}"


def list_files_key(args: Mapping[str, Any]) -> str:
    return f"tree:{args.get('path') or ''}:{args.get('branch') or DEFAULT_BRANCH}"


def diff_key(args: Mapping[str, Any]) -> str:
    return f"diff:{args['pull_number']}"


# =============================================================================
# WRAPPERS
# =============================================================================

def wrap_with_cache(
    tool: Tool,
    cache: ResultCache,
    extract_key: KeyExtractor,
) -> Tool:
    """Read-through wrapper: a hit skips the underlying operation."""
    inner = tool.func

    async def cached(**kwargs: Any) -> str:
        key = extract_key(kwargs)
        value = cache.get(key)
        if value is not None:
            if cache.logger:
                cache.logger.debug("cache_hit", tool=tool.name, key=key)
            return value
        value = await inner(**kwargs)
        cache.set(key, value)
        return value

    return replace(tool, func=cached)


def wrap_write_with_invalidation(tool: Tool, cache: ResultCache) -> Tool:
    """Invalidate affected reads after a successful write.

    For a write to ``(path, branch)``:
    - ``file:{path}:{branch}``
    - every ``tree:*:{branch}`` listing
    - every ``diff:*`` entry
    Diffs are dropped on every write, with or without a path.
    """
    inner = tool.func

    async def invalidating(**kwargs: Any) -> str:
        result = await inner(**kwargs)

        path = kwargs.get("path")
        branch = kwargs.get("branch")
        removed = 0
        if path and branch:
            removed += int(cache.invalidate(f"file:{path}:{branch}"))
            removed += cache.invalidate_by_prefix_and_suffix("tree:", f":{branch}")
        removed += cache.invalidate_by_prefix("diff:")

        if cache.logger and removed:
            cache.logger.debug(
                "cache_invalidated",
                tool=tool.name,
                path=path,
                branch=branch,
                removed=removed,
            )
        return result

    return replace(tool, func=invalidating)


__all__ = [
    "CacheStats",
    "DEFAULT_BRANCH",
    "KeyExtractor",
    "ResultCache",
    "diff_key",
    "list_files_key",
    "read_file_key",
    "wrap_with_cache",
    "wrap_write_with_invalidation",
]
