# ephemserve/core/sources.py
# -----------------------------------------------------------------------------
# Ephemeris file sources
#
# A DataSources instance knows where archive files live: directory roots that
# are crawled recursively, plus an optional in-memory mapping for callers that
# fetch archives themselves. select(pattern) returns every source whose base
# name fully matches the regular expression, sorted by name so that decoding
# never depends on filesystem listing order. Gzip-compressed files are matched
# on their name without the ".gz" suffix and decompressed on read.
# -----------------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple
import gzip
import logging
import os
import re
import threading
import zlib

from .errors import MalformedRecord, NoMatchingSource

log = logging.getLogger(__name__)

_GZ_SUFFIX = ".gz"


@dataclass(frozen=True)
class Source:
    name: str                       # logical name (".gz" stripped)
    origin: str                     # path or "memory:<name>"
    read: Callable[[], bytes] = field(repr=False, compare=False)


def _file_reader(path: str, compressed: bool) -> Callable[[], bytes]:
    def read() -> bytes:
        try:
            if compressed:
                with gzip.open(path, "rb") as f:
                    return f.read()
            with open(path, "rb") as f:
                return f.read()
        except (OSError, EOFError, zlib.error) as e:
            raise MalformedRecord(f"unable to read ephemeris file: {e}", source=path) from e
    return read


class DataSources:
    """Directory roots plus in-memory payloads, matched by regular expression."""

    def __init__(self, roots: Iterable[str] = (), memory: Optional[Mapping[str, bytes]] = None):
        self._roots: Tuple[str, ...] = tuple(os.path.abspath(os.path.expanduser(r)) for r in roots if r)
        self._memory: Dict[str, bytes] = dict(memory or {})
        self._lock = threading.Lock()

    @property
    def roots(self) -> Tuple[str, ...]:
        return self._roots

    def add_memory(self, name: str, payload: bytes) -> None:
        with self._lock:
            self._memory[name] = bytes(payload)

    def remove_memory(self, name: str) -> None:
        with self._lock:
            self._memory.pop(name, None)

    def _crawl(self) -> List[Source]:
        found: List[Source] = []
        for root in self._roots:
            if not os.path.isdir(root):
                log.debug("data root missing: %s", root)
                continue
            for dirpath, dirnames, filenames in os.walk(root):
                dirnames.sort()
                for fn in sorted(filenames):
                    path = os.path.join(dirpath, fn)
                    compressed = fn.endswith(_GZ_SUFFIX)
                    name = fn[: -len(_GZ_SUFFIX)] if compressed else fn
                    found.append(Source(name, path, _file_reader(path, compressed)))
        with self._lock:
            memory = sorted(self._memory.items())
        for name, payload in memory:
            found.append(Source(name, f"memory:{name}", (lambda p=payload: p)))
        return found

    def select(self, pattern: str) -> List[Source]:
        try:
            rx = re.compile(pattern)
        except re.error as e:
            raise NoMatchingSource(pattern, reason="invalid_pattern", error=str(e)) from e

        matched = [s for s in self._crawl() if rx.fullmatch(s.name)]
        if not matched:
            with self._lock:
                has_memory = bool(self._memory)
            missing_root = not has_memory and not any(os.path.isdir(r) for r in self._roots)
            raise NoMatchingSource(pattern,
                                   reason="missing_root" if missing_root else "no_match",
                                   roots=list(self._roots))
        matched.sort(key=lambda s: (s.name, s.origin))
        log.debug("pattern %s matched %d source(s): %s", pattern, len(matched),
                  ", ".join(s.origin for s in matched))
        return matched

    def __repr__(self) -> str:
        return f"DataSources(roots={list(self._roots)!r}, memory={len(self._memory)})"


__all__ = ["Source", "DataSources"]
