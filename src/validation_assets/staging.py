"""Per-package holding area for downloaded, not-yet-approved packages.

At most one :class:`~validation_assets.models.StagingEntry` exists per
package. A new ``put`` replaces the previous entry and deletes its tree; it is
an invariant, not a queue. ``put`` and ``take`` acquire a per-package lock, so
they are mutually exclusive for one package without blocking others.

Layout::

        <staging>/<package-id>/<token>/...   one directory per fetch attempt

Each fetch writes into a fresh ``<token>`` directory from :meth:`new_tree`,
so a failed download never touches the entry that is currently pending.
"""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from .errors import InvalidStateError
from .fs import remove_tree
from .models import StagingEntry

logger = logging.getLogger(__name__)


class StagingArea:
    """Thread-safe registry of pending staging entries."""

    def __init__(self, staging_dir: Path):
        self.staging_dir = Path(staging_dir)
        self.staging_dir.mkdir(parents=True, exist_ok=True)
        # Entries live in memory; trees left by a previous process are orphans.
        for stale in self.staging_dir.iterdir():
            logger.info(f"Removing stale staging directory {stale}")
            remove_tree(stale)
        self._entries: Dict[str, StagingEntry] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, package_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(package_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[package_id] = lock
            return lock

    @contextmanager
    def package_lock(self, package_id: str) -> Iterator[None]:
        """Hold the package's lock for a multi-step operation (sync, approve)."""
        lock = self._lock_for(package_id)
        with lock:
            yield

    def new_tree(self, package_id: str) -> Path:
        """Allocate an empty directory for a fresh download."""
        tree = self.staging_dir / package_id / uuid.uuid4().hex
        tree.mkdir(parents=True)
        return tree

    def put(self, entry: StagingEntry) -> None:
        """Store ``entry``, discarding any previously staged tree for the package."""
        with self.package_lock(entry.package_id):
            with self._guard:
                previous = self._entries.get(entry.package_id)
                self._entries[entry.package_id] = entry
        if previous is not None and previous.tree != entry.tree:
            logger.info(f"Replacing pending staging entry for {entry.package_id}")
            remove_tree(previous.tree)

    def get(self, package_id: str) -> Optional[StagingEntry]:
        with self._guard:
            return self._entries.get(package_id)

    def take(self, package_id: str) -> StagingEntry:
        """Remove and return the pending entry.

        Raises:
            InvalidStateError: If nothing is pending for ``package_id``.
        """
        with self.package_lock(package_id):
            with self._guard:
                entry = self._entries.pop(package_id, None)
        if entry is None:
            raise InvalidStateError(
                f"No pending staging for package: {package_id}", package_id
            )
        return entry

    def restore(self, entry: StagingEntry) -> None:
        """Put back an entry taken by a failed approval unless a newer one exists."""
        with self.package_lock(entry.package_id):
            with self._guard:
                if entry.package_id in self._entries:
                    newer = True
                else:
                    self._entries[entry.package_id] = entry
                    newer = False
        if newer:
            remove_tree(entry.tree)

    def discard(self, entry: StagingEntry) -> None:
        remove_tree(entry.tree)

    def list(self) -> List[StagingEntry]:
        with self._guard:
            entries = list(self._entries.values())
        return sorted(entries, key=lambda e: e.package_id)
