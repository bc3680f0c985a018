"""Process-scoped shared state: the parsed-tree registry and the model cache.

Both objects are created by the pipeline and injected where needed, so tests
can build isolated instances.

Lock discipline:

* :class:`AstRegistry` is guarded by a writer-preferring reader/writer lock.
  Extraction replaces the whole registry under the write lock; an edit batch
  holds the write lock for the entire batch.
* :class:`ModelCache` is guarded by one re-entrant lock held across both the
  freshness check and the re-extraction, so concurrent callers never extract
  twice for the same change.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from godiagram.analysis import Fingerprint, fingerprint
from godiagram.extractors.go import ParsedFile
from godiagram.model import Model

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """Many readers or one writer; waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class AstRegistry:
    """Parsed Go files keyed by package name, then by root-relative file name."""

    def __init__(self) -> None:
        self.lock = ReadWriteLock()
        self._packages: dict[str, dict[str, ParsedFile]] = {}

    @contextmanager
    def read(self) -> Iterator[dict[str, dict[str, ParsedFile]]]:
        with self.lock.read():
            yield self._packages

    @contextmanager
    def write(self) -> Iterator[dict[str, dict[str, ParsedFile]]]:
        """Yield the mutable mapping under exclusive access."""
        with self.lock.write():
            yield self._packages

    def replace(self, packages: dict[str, dict[str, ParsedFile]]) -> None:
        with self.lock.write():
            self._packages = {name: dict(files) for name, files in packages.items()}

    def clear(self) -> None:
        with self.lock.write():
            self._packages = {}

    def snapshot(self) -> dict[str, dict[str, ParsedFile]]:
        with self.lock.read():
            return {name: dict(files) for name, files in self._packages.items()}


@dataclass
class CacheEntry:
    timestamp: float
    model: Model
    fingerprint: Fingerprint


class ModelCache:
    """The last extracted model, keyed by the newest source modification time."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entry: CacheEntry | None = None

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def entry(self) -> CacheEntry | None:
        with self._lock:
            return self._entry

    @property
    def model(self) -> Model | None:
        with self._lock:
            return self._entry.model if self._entry else None

    def is_stale(self, latest_mtime: float) -> bool:
        with self._lock:
            return self._entry is None or latest_mtime > self._entry.timestamp

    def store(self, timestamp: float, model: Model) -> CacheEntry:
        """Replace the cached model atomically."""
        entry = CacheEntry(timestamp=timestamp, model=model, fingerprint=fingerprint(model))
        with self._lock:
            self._entry = entry
        return entry

    def clear(self) -> None:
        with self._lock:
            self._entry = None

    def get_fresh(self, latest_mtime: Callable[[], float], extract: Callable[[], Model]) -> Model:
        """Return the cached model, re-extracting first if sources are newer.

        The modification time is sampled before extracting, so a write that
        lands during extraction leaves the cache stale and is picked up by
        the next call.
        """
        with self._lock:
            mtime = latest_mtime()
            if not self.is_stale(mtime):
                return self._entry.model
            logger.debug("Sources newer than cache (%.6f), re-extracting", mtime)
            model = extract()
            self.store(mtime, model)
            return model
