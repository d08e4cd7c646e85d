# ephemserve/core/body_cache.py
# -----------------------------------------------------------------------------
# Process-wide body cache
#
#   get(name)            memoised handle, or walk the loader chain until one
#                        candidate decodes; BodyUnavailable when all fail
#   clear_cache()        drop memoised handles and archives (chains untouched)
#   clear_loaders(name)  reset one chain (or all) to the built-in default
#   add_loader(name, c)  append a candidate to a chain
#
# Locking:
#   _lock            registry maps (handles, archives, chains, generation);
#                    held only for dictionary work, never during decoding
#   name locks       one build per body name at a time
#   pattern locks    one decode per archive pattern at a time
#   (name and pattern locks exist only while a build is in flight)
# Acquisition order is always name → pattern → registry, so no cycle exists.
# clear_cache bumps a generation counter; a build that started before the
# clear still returns to its own caller but is not memoised.
# -----------------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging
import threading

from ..utils.config import EphemerisConfig
from ..utils.metrics import CACHE_CLEARS, CACHE_REQUESTS, LOADER_FAILURES
from ..version import VERSION
from .bodies import CelestialBodyHandle, canonical_name, is_well_known, make_handle
from .errors import BodyUnavailable, EphemerisError
from .jpl_header import Series
from .jpl_loader import EphemerisArchive, open_archive
from .sources import DataSources

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoaderCandidate:
    supported_names: str                 # regular expression on file base names
    series: Optional[str] = None         # explicit coefficient series for custom names


class BodyCache:
    """Lazily built, memoised celestial body handles shared by the whole process."""

    def __init__(self, sources: Optional[DataSources] = None, config: Optional[EphemerisConfig] = None):
        self.config = config or EphemerisConfig()
        self.sources = sources if sources is not None else DataSources(self.config.data_roots)
        self._lock = threading.Lock()
        self._handles: Dict[str, CelestialBodyHandle] = {}
        self._archives: Dict[str, EphemerisArchive] = {}
        self._chains: Dict[str, List[LoaderCandidate]] = {}
        self._name_locks: Dict[str, threading.Lock] = {}
        self._pattern_locks: Dict[str, threading.Lock] = {}
        self._generation = 0

    # ── loader chains ──────────────────────────────────────────────────────
    def _default_chain(self, name: str) -> List[LoaderCandidate]:
        if not is_well_known(name):
            return []
        return [LoaderCandidate(self.config.de_supported_names),
                LoaderCandidate(self.config.inpop_supported_names)]

    @staticmethod
    def _check_candidate(name: str, candidate: LoaderCandidate) -> None:
        if candidate.series is None:
            if not is_well_known(name):
                raise ValueError(f"loader for custom body '{name}' must name a coefficient series")
        elif canonical_name(candidate.series) not in Series.__members__:
            raise ValueError(f"unknown coefficient series '{candidate.series}'")

    def _chain(self, name: str) -> List[LoaderCandidate]:
        chain = self._chains.get(name)
        return list(chain) if chain is not None else self._default_chain(name)

    def loaders(self, name: str) -> Tuple[LoaderCandidate, ...]:
        canon = canonical_name(name)
        with self._lock:
            return tuple(self._chain(canon))

    def add_loader(self, name: str, candidate: LoaderCandidate) -> None:
        canon = canonical_name(name)
        self._check_candidate(canon, candidate)
        with self._lock:
            self._chains.setdefault(canon, self._default_chain(canon)).append(candidate)
        log.debug("loader added for %s: %s", canon, candidate)

    def set_loaders(self, name: str, candidates: Sequence[LoaderCandidate]) -> None:
        """Replace the whole chain for a name (an empty sequence disables it)."""
        canon = canonical_name(name)
        for c in candidates:
            self._check_candidate(canon, c)
        with self._lock:
            self._chains[canon] = list(candidates)

    def clear_loaders(self, name: Optional[str] = None) -> None:
        with self._lock:
            if name is None:
                self._chains.clear()
            else:
                self._chains.pop(canonical_name(name), None)
        CACHE_CLEARS.labels(scope="loaders").inc()
        log.info("loader chain reset to defaults for %s", name or "all bodies")

    # ── invalidation ───────────────────────────────────────────────────────
    def clear_cache(self) -> None:
        with self._lock:
            self._handles.clear()
            self._archives.clear()
            self._generation += 1
        CACHE_CLEARS.labels(scope="cache").inc()
        log.info("body cache cleared")

    # ── lookup ─────────────────────────────────────────────────────────────
    def archive(self, pattern: str) -> EphemerisArchive:
        """Decoded archive for a file-name pattern, shared by every body loaded through it."""
        with self._lock:
            generation = self._generation
        return self._archive(pattern, generation)

    def _archive(self, pattern: str, generation: int) -> EphemerisArchive:
        with self._lock:
            found = self._archives.get(pattern)
            if found is not None:
                return found
            plock = self._pattern_locks.setdefault(pattern, threading.Lock())
        with plock:
            try:
                with self._lock:
                    found = self._archives.get(pattern)
                    if found is not None:
                        return found
                archive = open_archive(pattern, self.sources, overlap_policy=self.config.overlap_policy)
                with self._lock:
                    if self._generation == generation:
                        self._archives[pattern] = archive
                return archive
            finally:
                self._release(self._pattern_locks, pattern, plock)

    def _release(self, locks: Dict[str, threading.Lock], key: str, lock: threading.Lock) -> None:
        # waiters already holding a reference still serialise on it
        with self._lock:
            if locks.get(key) is lock:
                del locks[key]

    def get(self, name: str) -> CelestialBodyHandle:
        canon = canonical_name(name)
        with self._lock:
            handle = self._handles.get(canon)
            if handle is not None:
                CACHE_REQUESTS.labels(result="hit").inc()
                return handle
            if not self._chain(canon):
                CACHE_REQUESTS.labels(result="error").inc()
                raise BodyUnavailable(canon, [])
            nlock = self._name_locks.setdefault(canon, threading.Lock())

        causes: List[EphemerisError] = []
        with nlock:
            try:
                with self._lock:
                    handle = self._handles.get(canon)
                    if handle is not None:
                        CACHE_REQUESTS.labels(result="hit").inc()
                        return handle
                    generation = self._generation
                    chain = self._chain(canon)

                for candidate in chain:
                    try:
                        archive = self._archive(candidate.supported_names, generation)
                        handle = make_handle(canon, archive, candidate.series)
                    except EphemerisError as e:
                        LOADER_FAILURES.labels(kind=type(e).__name__).inc()
                        log.warning("loader %r failed for %s: %s", candidate.supported_names, canon, e)
                        causes.append(e)
                        continue

                    with self._lock:
                        if self._generation == generation:
                            self._handles[canon] = handle
                    CACHE_REQUESTS.labels(result="miss").inc()
                    log.debug("built %r", handle)
                    return handle
            finally:
                self._release(self._name_locks, canon, nlock)

        CACHE_REQUESTS.labels(result="error").inc()
        raise BodyUnavailable(canon, causes)

    def sources_for(self, name: str) -> Tuple[str, ...]:
        """Files that back the handle for `name` (loads it if needed)."""
        return self.get(name).sources

    def describe(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "version": VERSION,
                "generation": self._generation,
                "bodies": sorted(self._handles),
                "archives": {p: a.describe() for p, a in self._archives.items()},
                "custom_chains": {n: [c.supported_names for c in chain] for n, chain in self._chains.items()},
                "sources": repr(self.sources),
            }


# ─────────────────────────────────────────────────────────────────────────────
# Process-wide default
# ─────────────────────────────────────────────────────────────────────────────
_default_cache: Optional[BodyCache] = None
_DEFAULT_LOCK = threading.Lock()


def get_default_cache() -> BodyCache:
    global _default_cache
    with _DEFAULT_LOCK:
        if _default_cache is None:
            _default_cache = BodyCache(config=EphemerisConfig.from_env())
        return _default_cache


def set_default_cache(cache: Optional[BodyCache]) -> None:
    """Install an explicit process-wide cache (None: rebuild from the environment on next use)."""
    global _default_cache
    with _DEFAULT_LOCK:
        _default_cache = cache


__all__ = [
    "LoaderCandidate",
    "BodyCache",
    "get_default_cache",
    "set_default_cache",
]
