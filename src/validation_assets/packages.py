"""Package catalog and the live asset tree.

The catalog is the static list of externally published packages, defined at
startup and immutable thereafter. :class:`LiveAssets` is the narrow
read/replace interface over each package's live directory; replacement is its
only mutation and is always preceded by a history snapshot by the caller.

Default packages:

        ===========  =====================================  ===========================
        id           live directory                         contents
        ===========  =====================================  ===========================
        efatura      validator/ubl-tr-package/schematron    UBL-TR Schematron rules
        ubltr-xsd    validator/ubl-tr-package/schema        UBL-TR 1.2.1 XSD (common/, maindoc/)
        earsiv       validator/earchive                     e-Archive XSL + XSD
        edefter      validator/eledger                      e-Ledger Schematron + XSD
        ===========  =====================================  ===========================
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .errors import AssetIOError, NotFoundError
from .fs import copy_tree, remove_tree
from .models import FileExtraction, PackageDefinition

logger = logging.getLogger(__name__)

DEFAULT_PACKAGES: List[PackageDefinition] = [
    PackageDefinition(
        id="efatura",
        display_name="UBL-TR Schematron Package",
        download_url="https://ebelge.gib.gov.tr/dosyalar/kilavuzlar/e-FaturaPaketi.zip",
        live_dir="validator/ubl-tr-package/schematron",
        file_mapping=[FileExtraction("**/schematron/*.xml", "")],
        description="UBL-TR Schematron rule files",
    ),
    PackageDefinition(
        id="ubltr-xsd",
        display_name="UBL-TR XSD Package",
        download_url="https://ebelge.gib.gov.tr/dosyalar/kilavuzlar/UBL-TR1.2.1_Paketi.zip",
        live_dir="validator/ubl-tr-package/schema",
        file_mapping=[
            FileExtraction("**/xsdrt/common/*.xsd", "common"),
            FileExtraction("**/xsdrt/maindoc/*.xsd", "maindoc"),
        ],
        description="UBL-TR 1.2.1 XML Schema (XSD) files",
    ),
    PackageDefinition(
        id="earsiv",
        display_name="e-Archive Package",
        download_url="https://ebelge.gib.gov.tr/dosyalar/kilavuzlar/earsiv_paket_v1.1_6.zip",
        live_dir="validator/earchive",
        file_mapping=[
            FileExtraction("*.xsl", "schematron"),
            FileExtraction("*.xsd", "schema"),
        ],
        description="e-Archive Schematron (XSL) and XSD files",
    ),
    PackageDefinition(
        id="edefter",
        display_name="e-Ledger Package",
        download_url="https://www.edefter.gov.tr/dosyalar/paketler/e-Defter_Paketi.zip",
        live_dir="validator/eledger",
        file_mapping=[
            FileExtraction("**/sch/*.sch", "schematron"),
            FileExtraction("**/xsd/*.xsd", "schema"),
            FileExtraction("**/xsd/**/*.xsd", "schema"),
        ],
        description="e-Ledger ISO Schematron (.sch) and XSD files",
    ),
]


class PackageCatalog:
    """Immutable lookup of package definitions by id."""

    def __init__(self, packages: Optional[Iterable[PackageDefinition]] = None):
        definitions = list(DEFAULT_PACKAGES if packages is None else packages)
        self._packages: Dict[str, PackageDefinition] = {p.id: p for p in definitions}

    def get(self, package_id: str) -> PackageDefinition:
        package = self._packages.get(package_id)
        if package is None:
            raise NotFoundError(
                f"Unknown package: {package_id}. Available: {self.ids()}", package_id
            )
        return package

    def ids(self) -> List[str]:
        return list(self._packages)

    def all(self) -> List[PackageDefinition]:
        return list(self._packages.values())


class LiveAssets:
    """Owned reference to the live directory of every package.

    Args:
        asset_root: Directory the validation engines read assets from.
    """

    def __init__(self, asset_root: Path):
        self.asset_root = Path(asset_root)
        self._lock = threading.Lock()

    def path(self, package: PackageDefinition) -> Path:
        return self.asset_root / package.live_dir

    def replace(self, package: PackageDefinition, source_tree: Path) -> None:
        """Swap the package's live directory for a copy of ``source_tree``.

        The copy is built beside the live directory and swapped in with two
        renames, so engines reading the tree see either the old or the new
        contents.

        Raises:
            AssetIOError: If the copy or either rename fails. The previous live
                tree is put back when the second rename fails.
        """
        live = self.path(package)
        incoming = live.with_name(live.name + ".incoming")
        previous = live.with_name(live.name + ".previous")

        with self._lock:
            remove_tree(incoming)
            remove_tree(previous)
            live.parent.mkdir(parents=True, exist_ok=True)
            try:
                copy_tree(source_tree, incoming)
            except OSError as e:
                remove_tree(incoming)
                raise AssetIOError(f"Cannot prepare live tree for {package.id}: {e}", package.id)

            had_live = live.exists()
            try:
                if had_live:
                    os.replace(live, previous)
                os.replace(incoming, live)
            except OSError as e:
                if had_live and previous.exists() and not live.exists():
                    os.replace(previous, live)
                remove_tree(incoming)
                raise AssetIOError(f"Cannot replace live tree for {package.id}: {e}", package.id)
            remove_tree(previous)

        logger.info(f"Live tree for {package.id} replaced at {live}")
