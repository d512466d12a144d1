"""Tests for the XSD and Schematron catalogs."""

from conftest import SCHEMA_LIVE_DIR, SCHEMATRON_LIVE_DIR, build_schematron, build_xsd, write_live

from validation_assets.catalogs import SchemaCatalog, SchematronCatalog
from validation_assets.models import ReloadStatus


def test_schema_catalog_loads_xsd(tmp_path):
    write_live(
        tmp_path,
        SCHEMA_LIVE_DIR,
        {
            "maindoc/UBL-Invoice-2.1.xsd": build_xsd("urn:invoice", "Invoice"),
            "common/UBL-CommonBasicComponents-2.1.xsd": build_xsd("urn:cbc", "ID", "Note"),
        },
    )
    catalog = SchemaCatalog(tmp_path)

    result = catalog.reload()

    assert result.status == ReloadStatus.OK
    assert result.loaded_count == 2
    info = catalog.get(f"{SCHEMA_LIVE_DIR}/common/UBL-CommonBasicComponents-2.1.xsd")
    assert info.target_namespace == "urn:cbc"
    assert info.element_count == 2


def test_schema_catalog_partial_and_failed(tmp_path):
    write_live(tmp_path, SCHEMA_LIVE_DIR, {"good.xsd": build_xsd(), "bad.xsd": "<xs:schema"})
    catalog = SchemaCatalog(tmp_path)

    partial = catalog.reload()
    assert partial.status == ReloadStatus.PARTIAL
    assert len(catalog) == 1
    assert any("bad.xsd" in e for e in partial.errors)

    (tmp_path / SCHEMA_LIVE_DIR / "good.xsd").unlink()
    failed = catalog.reload()
    assert failed.status == ReloadStatus.FAILED
    assert len(catalog) == 1


def test_non_schema_root_is_an_error(tmp_path):
    write_live(tmp_path, SCHEMA_LIVE_DIR, {"not-a-schema.xsd": "<root/>"})
    result = SchemaCatalog(tmp_path).reload()
    assert result.status == ReloadStatus.FAILED


def test_hidden_and_transient_directories_skipped(tmp_path):
    write_live(tmp_path, SCHEMA_LIVE_DIR, {"a.xsd": build_xsd()})
    write_live(tmp_path, ".versions/history/snapshots/x/_before", {"old.xsd": "<broken"})
    write_live(tmp_path, SCHEMA_LIVE_DIR + ".incoming", {"a.xsd": "<broken"})

    catalog = SchemaCatalog(tmp_path)
    result = catalog.reload()

    assert result.status == ReloadStatus.OK
    assert list(catalog.entries()) == [f"{SCHEMA_LIVE_DIR}/a.xsd"]


def test_schematron_catalog(tmp_path):
    write_live(
        tmp_path,
        SCHEMATRON_LIVE_DIR,
        {"UBL-TR_Main_Schematron.xml": build_schematron("R-1", "R-2")},
    )
    write_live(tmp_path, "validator/earchive/schematron", {"earsiv.xsl": "<xsl:stylesheet xmlns:xsl='http://www.w3.org/1999/XSL/Transform'/>"})
    write_live(tmp_path, "validator/eledger/schematron", {"yevmiye.sch": build_schematron("Y-1")})
    write_live(tmp_path, "validator/other", {"unrelated.xml": "<not-schematron/>"})

    catalog = SchematronCatalog(tmp_path)
    result = catalog.reload()

    assert result.status == ReloadStatus.OK
    assert result.loaded_count == 3
    main = catalog.get(f"{SCHEMATRON_LIVE_DIR}/UBL-TR_Main_Schematron.xml")
    assert main.rule_count == 2
    assert main.rule_ids == {"R-1", "R-2"}
    assert catalog.get("validator/earchive/schematron/earsiv.xsl").rule_count == 0
    assert catalog.get("validator/other/unrelated.xml") is None


def test_missing_root(tmp_path):
    catalog = SchematronCatalog(tmp_path / "absent")
    result = catalog.reload()
    assert result.status == ReloadStatus.OK
    assert len(catalog) == 0
