"""Read Schematron rule files into normalized rule metadata.

Used in two places: the Schematron catalog counts the assertions it can load
after a reload, and suppression impact analysis compares the rule ids of a
live Schematron file with the ids of its staged replacement.

Features:
* Iterates patterns → rules → (assert|report) producing :class:`SchematronRule`
    objects with their ``id`` attributes preserved
* Matches elements by local name so both the ISO namespace and the legacy
    ``http://www.ascc.net/xml/schematron`` namespace are understood
* :func:`extract_rule_ids` collects every ``id`` found on pattern, rule,
    assert and report elements

Severity mapping:
* If an ``@role`` is absent on ``assert`` nodes we default to ``error``
* If an ``@role`` is absent on ``report`` nodes we default to ``warn``

Example:
        from pathlib import Path
        from validation_assets.schematron_parser import SchematronParser

        parser = SchematronParser(Path("UBL-TR_Main_Schematron.xml"))
        for rule in parser.iter_rules():
                print(rule.id, rule.context, rule.test)
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Optional, Set

logger = logging.getLogger(__name__)

ID_BEARING_ELEMENTS = ("pattern", "rule", "assert", "report")


@dataclass
class SchematronRule:
    context: str
    message: str
    test: str
    severity: str
    id: Optional[str] = None
    pattern_id: Optional[str] = None


def _local_name(tag) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _children(element: ET.Element, name: str) -> Iterator[ET.Element]:
    for child in element:
        if _local_name(child.tag) == name:
            yield child


class SchematronParser:
    """Parse a Schematron file and expose its rules.

    Args:
        schematron_path: Path to the Schematron XML file.

    Raises:
        xml.etree.ElementTree.ParseError: If the file is not well-formed XML.
    """

    def __init__(self, schematron_path: Path) -> None:
        self.path = Path(schematron_path)
        self.tree = ET.parse(self.path)
        self.root = self.tree.getroot()

    def iter_rules(self) -> Iterable[SchematronRule]:
        """Yield each assert/report as a :class:`SchematronRule`.

        Returns:
            Iterator of normalized rules preserving context XPath, test
            expression and ``id``. Messages are stripped; severity is
            lower-cased.
        """
        for pattern in self.root.iter():
            if _local_name(pattern.tag) != "pattern":
                continue
            for rule in _children(pattern, "rule"):
                context = rule.get("context")
                if not context:
                    continue
                for node in rule:
                    kind = _local_name(node.tag)
                    if kind not in ("assert", "report"):
                        continue
                    default_role = "ERROR" if kind == "assert" else "WARN"
                    yield SchematronRule(
                        context=context,
                        message="".join(node.itertext()).strip(),
                        test=node.get("test", ""),
                        severity=node.get("role", default_role).lower(),
                        id=node.get("id") or rule.get("id"),
                        pattern_id=pattern.get("id"),
                    )

    def rule_ids(self) -> Set[str]:
        """Return every non-blank ``id`` on pattern/rule/assert/report elements."""
        ids: Set[str] = set()
        for element in self.root.iter():
            if _local_name(element.tag) in ID_BEARING_ELEMENTS:
                value = (element.get("id") or "").strip()
                if value:
                    ids.add(value)
        return ids


def extract_rule_ids(schematron_path: Optional[Path]) -> Set[str]:
    """Collect rule ids from a Schematron file.

    Missing files yield an empty set. Unparsable files are logged and also
    yield an empty set, so a corrupt upstream file is reported as "all ids
    removed" by impact analysis rather than aborting a sync.
    """
    if schematron_path is None or not Path(schematron_path).is_file():
        return set()
    try:
        return SchematronParser(schematron_path).rule_ids()
    except (ET.ParseError, OSError) as e:
        logger.warning(f"Could not extract Schematron rule ids from {schematron_path}: {e}")
        return set()
