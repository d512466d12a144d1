"""Tests for the admin HTTP API."""

import pytest
from conftest import SCHEMATRON_LIVE_DIR, build_schematron, write_live
from fastapi.testclient import TestClient

from validation_assets.app import app
from validation_assets.routes import get_asset_services


@pytest.fixture
def client(services):
    app.dependency_overrides[get_asset_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client, services):
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "UP"
    assert data["xsd_loaded"] == 0
    assert data["warning"] == "No XSD or Schematron assets loaded"
    assert data["last_reload"]["status"] == "OK"
    caches = {c["name"]: c for c in data["caches"]}
    assert set(caches) == {"xsd-schemas", "schematron-rules", "validation-profiles"}
    assert all(len(c["etag"]) == 32 for c in caches.values())
    assert "X-Response-Time" in resp.headers
    assert resp.headers["X-API-Version"] == "0.3.0"


def test_health_down_without_asset_root(client, services, asset_root):
    asset_root.rename(asset_root.with_name("moved"))
    resp = client.get("/health")
    assert resp.status_code == 503
    assert resp.json()["status"] == "DOWN"


def test_packages_listing(client):
    resp = client.get("/v1/admin/packages")
    assert resp.status_code == 200
    packages = {p["id"]: p for p in resp.json()["packages"]}
    assert set(packages) == {"efatura", "ubltr-xsd"}
    assert packages["efatura"]["state"] == "NONE"


def test_sync_approve_and_history(client, fetcher, asset_root):
    write_live(asset_root, SCHEMATRON_LIVE_DIR, {"main.xml": build_schematron("R-1")})
    fetcher.set_tree("efatura", {"main.xml": build_schematron("R-1", "R-2")})

    resp = client.post("/v1/admin/packages/efatura/sync")
    assert resp.status_code == 200
    preview = resp.json()
    assert preview["target_version_id"] == "efatura-v1"
    assert preview["files_summary"]["modified"] == 1
    assert preview["files_extracted"] == 1

    pending = client.get("/v1/admin/pending").json()["pending"]
    assert [p["package_id"] for p in pending] == ["efatura"]
    diff = client.get("/v1/admin/pending/efatura/diff/main.xml").json()
    assert diff["status"] == "MODIFIED"
    assert "+++ b/main.xml" in diff["unified_diff"]

    resp = client.post("/v1/admin/packages/efatura/approve")
    assert resp.status_code == 200
    body = resp.json()
    assert body["version"]["id"] == "efatura-v1"
    assert body["reload"]["status"] == "OK"

    versions = client.get("/v1/admin/versions", params={"package": "efatura"}).json()["versions"]
    assert [v["id"] for v in versions] == ["efatura-v1"]
    summary = client.get("/v1/admin/versions/efatura-v1/diff").json()
    assert summary["diffs"][0]["path"] == "main.xml"
    file_diff = client.get("/v1/admin/versions/efatura-v1/diff/main.xml").json()
    assert 'id="R-2"' in file_diff["unified_diff"]


def test_reject(client, fetcher):
    fetcher.set_tree("efatura", {"main.xml": build_schematron("R-1")})
    client.post("/v1/admin/packages/efatura/sync")

    resp = client.post("/v1/admin/packages/efatura/reject")
    assert resp.status_code == 200
    assert resp.json() == {"package_id": "efatura", "rejected": True}
    assert client.get("/v1/admin/versions").json()["versions"] == []


def test_error_status_mapping(client, fetcher):
    resp = client.post("/v1/admin/packages/unknown/sync")
    assert resp.status_code == 404
    assert resp.json()["identifier"] == "unknown"

    resp = client.post("/v1/admin/packages/efatura/approve")
    assert resp.status_code == 409
    assert resp.json()["error"] == "Invalid State"

    fetcher.fail("efatura", "HTTP 503 downloading efatura")
    resp = client.post("/v1/admin/packages/efatura/sync")
    assert resp.status_code == 502
    assert "HTTP 503" in resp.json()["detail"]

    assert client.get("/v1/admin/versions/efatura-v7/diff").status_code == 404


def test_profiles_crud(client):
    resp = client.put(
        "/v1/admin/profiles/base",
        json={"suppressions": [{"match": "ruleId", "pattern": "BR-.*", "scope": ["INVOICE"]}]},
    )
    assert resp.status_code == 200
    assert resp.json()["reload"]["status"] == "OK"

    resp = client.put(
        "/v1/admin/profiles/child",
        json={
            "extends": "base",
            "xsd_overrides": {"Invoice": [{"element": "cac:Signature", "min_occurs": "0"}]},
        },
    )
    assert resp.status_code == 200

    resolved = client.get("/v1/admin/profiles/child").json()
    assert resolved["suppressions"][0]["scope"] == ["INVOICE"]
    raw = client.get("/v1/admin/profiles/child", params={"resolved": False}).json()
    assert raw["suppressions"] == []

    resp = client.put("/v1/admin/profiles/base", json={"extends": "child"})
    assert resp.status_code == 422
    assert "cycle" in resp.json()["detail"]

    assert client.delete("/v1/admin/profiles/base").status_code == 422
    assert client.delete("/v1/admin/profiles/child").status_code == 200
    assert client.delete("/v1/admin/profiles/child").status_code == 404
    assert client.get("/v1/admin/profiles/child").status_code == 404
    names = [p["name"] for p in client.get("/v1/admin/profiles").json()["profiles"]]
    assert names == ["base"]


def test_suppression_dry_run(client):
    client.put(
        "/v1/admin/profiles/tenant",
        json={"suppressions": [{"match": "text", "pattern": ".*IBAN.*"}]},
    )
    resp = client.post(
        "/v1/admin/suppressions/schematron",
        json={
            "profile": "tenant",
            "errors": [
                {"rule_id": "R-1", "test": "cbc:IBAN", "message": "bad IBAN"},
                {"rule_id": "R-2", "test": "cbc:ID", "message": "missing"},
            ],
            "additional_suppressions": ["R-9"],
        },
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["suppressed_count"] == 1
    assert [e["rule_id"] for e in body["active_errors"]] == ["R-2"]

    resp = client.post(
        "/v1/admin/suppressions/xsd",
        json={"profile": "tenant", "errors": ["cvc: IBAN too long", "cvc: other"]},
    )
    assert resp.json() == {"errors": ["cvc: other"], "suppressed_count": 1}


def test_global_schematron_rules(client):
    resp = client.put(
        "/v1/admin/schematron-rules",
        json={"UBL_TR_MAIN": [{"context": "/Invoice", "test": "cbc:UUID", "message": "UUID"}]},
    )
    assert resp.status_code == 200
    rules = client.get("/v1/admin/schematron-rules").json()
    assert rules == {"UBL_TR_MAIN": [{"context": "/Invoice", "test": "cbc:UUID", "message": "UUID"}]}


def test_reload_endpoint(client, asset_root):
    write_live(asset_root, "validator/ubl-tr-package/schema", {"bad.xsd": "<xs:schema"})
    resp = client.post("/v1/admin/assets/reload")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "PARTIAL"
    statuses = {r["component_name"]: r["status"] for r in body["results"]}
    assert statuses == {
        "xsd-schemas": "FAILED",
        "schematron-rules": "OK",
        "validation-profiles": "OK",
    }
