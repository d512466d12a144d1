"""Coordinated reload of every component that caches asset-derived state.

Components are registered explicitly at startup; registration order is the
reload order (schema catalogs before the profile service, which resolves
rules against them). Every component is attempted even when an earlier one
fails, and a component that raises is reported as FAILED with the exception
text instead of aborting the reload.

Example:
        from validation_assets.reload import AssetRegistry

        registry = AssetRegistry()
        registry.register(schema_catalog)
        registry.register(schematron_catalog)
        registry.register(profile_service)

        report = registry.reload()
        print(report.status.value, [r.to_dict() for r in report.results])
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import List, Optional

from .models import ReloadReport, ReloadResult, ReloadStatus, utc_now

logger = logging.getLogger(__name__)

STATUS_MARKERS = {
    ReloadStatus.OK: "✓",
    ReloadStatus.PARTIAL: "⚠",
    ReloadStatus.FAILED: "✗",
}


class Reloadable(ABC):
    """A cache-owning component that can rebuild and atomically publish state."""

    name: str = "reloadable"

    @abstractmethod
    def reload(self) -> ReloadResult:
        """Rebuild derived state from current assets and swap it in."""


class AssetRegistry:
    """Ordered set of reloadable components (the reload coordinator)."""

    def __init__(self) -> None:
        self._components: List[Reloadable] = []
        self._reload_lock = threading.Lock()
        self._last_report: Optional[ReloadReport] = None

    def register(self, component: Reloadable) -> None:
        if any(c.name == component.name for c in self._components):
            raise ValueError(f"Reloadable already registered: {component.name}")
        self._components.append(component)
        logger.debug(f"Registered reloadable component {component.name}")

    @property
    def components(self) -> List[Reloadable]:
        return list(self._components)

    @property
    def last_report(self) -> Optional[ReloadReport]:
        return self._last_report

    def reload(self) -> ReloadReport:
        """Reload every component in registration order.

        Concurrent callers are serialized; each gets a report for a reload that
        started after it called.
        """
        with self._reload_lock:
            started_at = utc_now()
            start = time.time()
            results: List[ReloadResult] = []
            logger.info(f"Reloading {len(self._components)} asset component(s)")

            for component in self._components:
                component_start = time.time()
                try:
                    result = component.reload()
                except Exception as e:
                    elapsed = int((time.time() - component_start) * 1000)
                    logger.exception(f"Reload of {component.name} raised")
                    result = ReloadResult.failed(component.name, elapsed, f"{type(e).__name__}: {e}")
                results.append(result)
                marker = STATUS_MARKERS[result.status]
                if result.status == ReloadStatus.OK:
                    logger.info(
                        f"  {marker} {result.component_name}: {result.loaded_count} loaded "
                        f"({result.duration_ms} ms)"
                    )
                else:
                    logger.warning(
                        f"  {marker} {result.component_name}: {result.status.value} "
                        f"({result.loaded_count} loaded) errors={result.errors}"
                    )

            report = ReloadReport.from_results(
                results, int((time.time() - start) * 1000), started_at
            )
            self._last_report = report

        logger.info(f"Reload finished with status {report.status.value} in {report.duration_ms} ms")
        return report
