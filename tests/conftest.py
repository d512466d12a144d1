"""Shared fixtures: an offline package fetcher and fully wired services."""

import threading
from pathlib import Path

import pytest

from validation_assets.config import AssetSettings
from validation_assets.errors import AssetIOError
from validation_assets.models import FetchResult, FileExtraction, PackageDefinition
from validation_assets.services import build_services

SCHEMATRON_LIVE_DIR = "validator/ubl-tr-package/schematron"
SCHEMA_LIVE_DIR = "validator/ubl-tr-package/schema"

TEST_PACKAGES = [
    PackageDefinition(
        id="efatura",
        display_name="UBL-TR Schematron Package",
        download_url="https://ebelge.example.test/dosyalar/efatura.zip",
        live_dir=SCHEMATRON_LIVE_DIR,
        file_mapping=[FileExtraction("**/schematron/*.xml", "")],
    ),
    PackageDefinition(
        id="ubltr-xsd",
        display_name="UBL-TR XSD Package",
        download_url="https://ebelge.example.test/dosyalar/ubltr.zip",
        live_dir=SCHEMA_LIVE_DIR,
        file_mapping=[FileExtraction("**/xsdrt/common/*.xsd", "common")],
    ),
]


def build_schematron(*rule_ids):
    """Minimal ISO Schematron document with one assert per rule id."""
    asserts = "\n".join(
        f'      <sch:assert id="{rule_id}" test="cbc:{rule_id}">{rule_id} failed</sch:assert>'
        for rule_id in rule_ids
    )
    return (
        '<sch:schema xmlns:sch="http://purl.oclc.org/dsdl/schematron">\n'
        '  <sch:pattern>\n'
        '    <sch:rule context="/Invoice">\n'
        f"{asserts}\n"
        "    </sch:rule>\n"
        "  </sch:pattern>\n"
        "</sch:schema>\n"
    )


def build_xsd(namespace="urn:oasis:names:specification:ubl:schema:xsd:Invoice-2", *elements):
    body = "".join(f'<xs:element name="{name}"/>' for name in elements)
    return (
        '<xs:schema xmlns:xs="http://www.w3.org/2001/XMLSchema" '
        f'targetNamespace="{namespace}">{body}</xs:schema>'
    )


class FetchGate:
    """Holds one fetch inside the fetcher until released."""

    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()


class FakeFetcher:
    """Writes canned package trees instead of downloading archives."""

    def __init__(self):
        self.trees = {}
        self.failures = {}
        self.gates = {}
        self.calls = []

    def set_tree(self, package_id, files):
        self.trees[package_id] = dict(files)
        self.failures.pop(package_id, None)

    def fail(self, package_id, message="upstream unavailable"):
        self.failures[package_id] = message

    def block(self, package_id):
        """Make the next fetch of ``package_id`` wait on the returned gate."""
        gate = FetchGate()
        self.gates[package_id] = gate
        return gate

    def fetch(self, package, target_dir):
        self.calls.append(package.id)
        gate = self.gates.pop(package.id, None)
        if gate is not None:
            gate.entered.set()
            gate.release.wait(timeout=10)
        if package.id in self.failures:
            (target_dir / "partial.xml").write_text("<partial/>", encoding="utf-8")
            raise AssetIOError(self.failures[package.id], package.id)
        files = []
        for rel, content in sorted(self.trees.get(package.id, {}).items()):
            destination = target_dir / rel
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_text(content, encoding="utf-8")
            files.append(rel)
        return FetchResult(files=files, warnings=[], duration_ms=1)


def write_live(asset_root, live_dir, files):
    root = Path(asset_root) / live_dir
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def asset_root(tmp_path):
    return tmp_path / "assets"


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def services(asset_root, fetcher):
    return build_services(
        AssetSettings.for_root(asset_root), fetcher=fetcher, packages=TEST_PACKAGES
    )
