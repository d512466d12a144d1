"""Build-then-swap holders for state derived from asset files.

Every reloadable component keeps its derived data (parsed catalogs, compiled
profile rules) in a :class:`SwappableCache`. A reload builds the replacement
completely off to the side and publishes it with :meth:`SwappableCache.swap`,
a single reference assignment under a lock. Readers call
:meth:`SwappableCache.current` and keep using the generation they got, so they
observe either the fully old or the fully new data, never a mix.

Quick example::

    from validation_assets.cache import SwappableCache

    cache = SwappableCache("schemas", initial={})
    built = {"UBL-Invoice-2.1.xsd": object()}
    generation = cache.swap(built, source_key="/assets/validator")
    assert cache.data is built and generation.number == 1

Design goals:
    1. Deterministic etags: md5 of cache name, generation number and source key.
    2. A failed build never calls ``swap``; the previous generation keeps serving.
"""

from __future__ import annotations

import hashlib
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class CacheGeneration(Generic[T]):
    """One published, immutable generation of derived data."""

    data: T
    number: int
    loaded_at: float = field(default_factory=time.time)
    etag: str = ""

    def age_seconds(self) -> float:
        return time.time() - self.loaded_at


class SwappableCache(Generic[T]):
    """Thread-safe holder of the current :class:`CacheGeneration`."""

    def __init__(self, name: str, initial: Optional[T] = None):
        self.name = name
        self._lock = threading.Lock()
        self._current: Optional[CacheGeneration[T]] = None
        if initial is not None:
            self._current = CacheGeneration(initial, 0, etag=self._make_etag(0, "initial"))

    def _make_etag(self, number: int, source_key: str) -> str:
        raw = f"{self.name}:{number}:{source_key}"
        return hashlib.md5(raw.encode("utf-8")).hexdigest()

    def current(self) -> Optional[CacheGeneration[T]]:
        with self._lock:
            return self._current

    @property
    def data(self) -> Optional[T]:
        generation = self.current()
        return generation.data if generation else None

    def swap(self, data: T, source_key: str = "") -> CacheGeneration[T]:
        """Publish ``data`` as the next generation and return it."""
        with self._lock:
            number = self._current.number + 1 if self._current else 1
            generation = CacheGeneration(
                data, number, etag=self._make_etag(number, source_key)
            )
            self._current = generation
            return generation

    def stats(self) -> Dict[str, Any]:
        generation = self.current()
        if generation is None:
            return {"name": self.name, "generation": None}
        return {
            "name": self.name,
            "generation": generation.number,
            "loaded_at": generation.loaded_at,
            "age_seconds": round(generation.age_seconds(), 3),
            "etag": generation.etag,
        }
