"""Reloadable catalogs of the live XSD and Schematron files.

The validation engines consume the live asset directories directly; these
catalogs hold the parsed metadata the service itself needs (which schemas and
rule files are present, their namespaces, rule ids) and are the first
components registered with the :class:`~validation_assets.reload.AssetRegistry`.

Reload outcome per catalog:
* every file parsed → ``OK``
* some files unparsable → ``PARTIAL`` (the parsable ones are published)
* nothing parsable while errors occurred → ``FAILED`` (previous generation
    keeps serving)
"""

from __future__ import annotations

import logging
import time
import xml.etree.ElementTree as ET
from abc import abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Generic, Iterable, List, Optional, TypeVar

from .cache import SwappableCache
from .models import ReloadResult
from .reload import Reloadable
from .schematron_parser import SchematronParser

logger = logging.getLogger(__name__)

XSD_NS = "http://www.w3.org/2001/XMLSchema"
TRANSIENT_SUFFIXES = (".incoming", ".previous", ".partial")

T = TypeVar("T")


@dataclass(frozen=True)
class SchemaInfo:
    path: str
    target_namespace: Optional[str]
    element_count: int


@dataclass(frozen=True)
class SchematronInfo:
    path: str
    rule_count: int
    rule_ids: frozenset = field(default_factory=frozenset)


def _is_transient(path: Path, root: Path) -> bool:
    """Swap leftovers and hidden directories (history, staging) are not live assets."""
    return any(
        part.endswith(TRANSIENT_SUFFIXES) or part.startswith(".")
        for part in path.relative_to(root).parts
    )


class FileCatalog(Reloadable, Generic[T]):
    """Scan the asset root for files and publish parsed entries atomically."""

    suffixes: Iterable[str] = ()

    def __init__(self, asset_root: Path):
        self.asset_root = Path(asset_root)
        self.cache: SwappableCache[Dict[str, T]] = SwappableCache(self.name, initial={})

    def _candidates(self) -> List[Path]:
        if not self.asset_root.is_dir():
            return []
        files = []
        for path in sorted(self.asset_root.rglob("*")):
            if not path.is_file() or _is_transient(path, self.asset_root):
                continue
            if self._accepts(path):
                files.append(path)
        return files

    def _accepts(self, path: Path) -> bool:
        return path.suffix.lower() in self.suffixes

    @abstractmethod
    def _load_file(self, path: Path, rel: str) -> T:
        """Parse one file; raise on malformed input."""

    def reload(self) -> ReloadResult:
        start = time.time()
        built: Dict[str, T] = {}
        errors: List[str] = []
        for path in self._candidates():
            rel = path.relative_to(self.asset_root).as_posix()
            try:
                built[rel] = self._load_file(path, rel)
            except (ET.ParseError, OSError) as e:
                errors.append(f"{rel}: {e}")
        duration_ms = int((time.time() - start) * 1000)

        if errors and not built:
            return ReloadResult.failed(self.name, duration_ms, "; ".join(errors))
        self.cache.swap(built, source_key=str(self.asset_root))
        if errors:
            return ReloadResult.partial(self.name, len(built), duration_ms, errors)
        return ReloadResult.success(self.name, len(built), duration_ms)

    def entries(self) -> Dict[str, T]:
        return dict(self.cache.data or {})

    def get(self, rel_path: str) -> Optional[T]:
        return (self.cache.data or {}).get(rel_path)

    def __len__(self) -> int:
        return len(self.cache.data or {})


class SchemaCatalog(FileCatalog[SchemaInfo]):
    """XSD schemas found under the asset root."""

    name = "xsd-schemas"
    suffixes = (".xsd",)

    def _load_file(self, path: Path, rel: str) -> SchemaInfo:
        root = ET.parse(path).getroot()
        if root.tag != f"{{{XSD_NS}}}schema":
            raise ET.ParseError(f"root element is {root.tag}, not xs:schema")
        elements = root.findall(f"{{{XSD_NS}}}element")
        return SchemaInfo(rel, root.get("targetNamespace"), len(elements))


class SchematronCatalog(FileCatalog[SchematronInfo]):
    """Schematron rule files (``.sch``, plus ``.xml``/``.xsl`` in schematron dirs)."""

    name = "schematron-rules"
    suffixes = (".sch", ".xml", ".xsl")

    def _accepts(self, path: Path) -> bool:
        suffix = path.suffix.lower()
        if suffix == ".sch":
            return True
        rel_dirs = path.relative_to(self.asset_root).parent.parts
        return suffix in self.suffixes and "schematron" in rel_dirs

    def _load_file(self, path: Path, rel: str) -> SchematronInfo:
        if path.suffix.lower() == ".xsl":
            # Precompiled XSLT form; only well-formedness is checked here.
            ET.parse(path)
            return SchematronInfo(rel, 0)
        parser = SchematronParser(path)
        rules = list(parser.iter_rules())
        return SchematronInfo(rel, len(rules), frozenset(parser.rule_ids()))
