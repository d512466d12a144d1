"""Wire the components of one service instance together.

Registration order with the :class:`~validation_assets.reload.AssetRegistry`
is fixed here: XSD schemas, then Schematron rules, then validation profiles.

Example:
        from validation_assets.config import AssetSettings
        from validation_assets.services import build_services

        services = build_services(AssetSettings.for_root(Path("/srv/assets")))
        print(services.health())
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Iterable, Optional

from .catalogs import SchemaCatalog, SchematronCatalog
from .config import AssetSettings
from .diff_engine import DiffEngine
from .fetcher import DisabledFetcher, HttpPackageFetcher, PackageFetcher
from .impact import SuppressionImpactAnalyzer
from .models import PackageDefinition
from .packages import LiveAssets, PackageCatalog
from .profiles import ValidationProfileService
from .reload import AssetRegistry
from .staging import StagingArea
from .version_store import VersionStore
from .versioning import AssetVersioningService

logger = logging.getLogger(__name__)


@dataclass
class AssetServices:
    settings: AssetSettings
    catalog: PackageCatalog
    registry: AssetRegistry
    schemas: SchemaCatalog
    schematrons: SchematronCatalog
    profiles: ValidationProfileService
    versioning: AssetVersioningService

    def health(self) -> Dict[str, Any]:
        """Liveness of the asset root plus loaded catalog counts."""
        root = self.settings.asset_root
        if not root.is_dir():
            return {
                "status": "DOWN",
                "asset_root": str(root),
                "reason": "Asset directory does not exist or is not accessible",
            }
        details: Dict[str, Any] = {
            "status": "UP",
            "asset_root": str(root),
            "xsd_loaded": len(self.schemas),
            "schematron_loaded": len(self.schematrons),
            "profiles_loaded": len(self.profiles.list_profiles()),
            "pending": [p.package_id for p in self.versioning.get_all_pending_previews()],
        }
        if details["xsd_loaded"] == 0 and details["schematron_loaded"] == 0:
            details["warning"] = "No XSD or Schematron assets loaded"
        details["caches"] = [
            component.cache.stats()
            for component in (self.schemas, self.schematrons, self.profiles)
        ]
        last = self.registry.last_report
        if last is not None:
            details["last_reload"] = {
                "status": last.status.value,
                "started_at": last.started_at.isoformat(),
            }
        return details


def build_services(
    settings: Optional[AssetSettings] = None,
    fetcher: Optional[PackageFetcher] = None,
    packages: Optional[Iterable[PackageDefinition]] = None,
    initial_reload: bool = True,
) -> AssetServices:
    """Construct and connect every component.

    Args:
        settings: Defaults to :meth:`AssetSettings.from_env`.
        fetcher: Overrides the HTTP fetcher (tests, offline mirrors).
        packages: Overrides the default package catalog.
        initial_reload: Load all reloadable components before returning.
    """
    settings = settings or AssetSettings.from_env()
    settings.asset_root.mkdir(parents=True, exist_ok=True)

    if fetcher is None:
        if settings.sync_enabled:
            fetcher = HttpPackageFetcher(
                connect_timeout_ms=settings.connect_timeout_ms,
                read_timeout_ms=settings.read_timeout_ms,
                base_url_override=settings.base_url_override,
            )
        else:
            fetcher = DisabledFetcher()

    diff_engine = DiffEngine()
    catalog = PackageCatalog(packages)
    profiles = ValidationProfileService(settings.profiles_file)
    schemas = SchemaCatalog(settings.asset_root)
    schematrons = SchematronCatalog(settings.asset_root)

    registry = AssetRegistry()
    registry.register(schemas)
    registry.register(schematrons)
    registry.register(profiles)

    versioning = AssetVersioningService(
        catalog=catalog,
        live=LiveAssets(settings.asset_root),
        staging=StagingArea(settings.staging_dir),
        store=VersionStore(settings.history_dir, diff_engine),
        fetcher=fetcher,
        registry=registry,
        diff_engine=diff_engine,
        impact_analyzer=SuppressionImpactAnalyzer(profiles, diff_engine),
    )

    services = AssetServices(
        settings=settings,
        catalog=catalog,
        registry=registry,
        schemas=schemas,
        schematrons=schematrons,
        profiles=profiles,
        versioning=versioning,
    )
    if initial_reload:
        registry.reload()
    if settings.sync_enabled and settings.sync_on_startup:
        logger.info("Staging all packages on startup")
        versioning.sync_all_to_staging()
    return services


@lru_cache(maxsize=1)
def get_services() -> AssetServices:
    """Process-wide services built from environment settings."""
    return build_services()
