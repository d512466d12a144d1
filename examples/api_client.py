#!/usr/bin/env python3
"""
Example client for the Validation Assets admin API.

This script demonstrates the package review workflow: stage a package,
inspect its diff and suppression warnings, then approve or reject it.
"""

import sys
from typing import Any, Dict, List, Optional

import httpx


class ValidationAssetsClient:
    """Client for interacting with the admin API."""

    def __init__(self, base_url: str = "http://localhost:8000"):
        """Initialize the client with the API base URL."""
        self.base_url = base_url
        # Package downloads can take a while on the server side.
        self.client = httpx.Client(base_url=base_url, timeout=120.0)

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - close the client."""
        self.client.close()

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        response = self.client.request(method, path, **kwargs)
        response.raise_for_status()
        return response.json()

    def get_health(self) -> Dict:
        """Check asset root and catalog health."""
        response = self.client.get("/health")
        return response.json()

    def list_packages(self) -> List[Dict]:
        return self._request("GET", "/v1/admin/packages")["packages"]

    def sync(self, package_id: str) -> Dict:
        """Download ``package_id`` into staging and return its preview."""
        return self._request("POST", f"/v1/admin/packages/{package_id}/sync")

    def file_diff(self, package_id: str, path: str) -> str:
        return self._request("GET", f"/v1/admin/pending/{package_id}/diff/{path}")["unified_diff"]

    def approve(self, package_id: str) -> Dict:
        return self._request("POST", f"/v1/admin/packages/{package_id}/approve")

    def reject(self, package_id: str) -> Dict:
        return self._request("POST", f"/v1/admin/packages/{package_id}/reject")

    def versions(self, package_id: Optional[str] = None) -> List[Dict]:
        params = {"package": package_id} if package_id else None
        return self._request("GET", "/v1/admin/versions", params=params)["versions"]


def review_package(client: ValidationAssetsClient, package_id: str, auto_approve: bool = False) -> None:
    """Stage a package, print what would change and optionally approve it."""
    preview = client.sync(package_id)
    summary = preview["files_summary"]
    print(f"\n{preview['display_name']} → {preview['target_version_id']}")
    print(f"  +{summary['added']} -{summary['removed']} ~{summary['modified']} ={summary['unchanged']}")

    for warning in preview["warnings"]:
        print(f"  ⚠ {warning}")
    critical = [w for w in preview["suppression_warnings"] if w["severity"] == "CRITICAL"]
    for warning in preview["suppression_warnings"]:
        print(f"  [{warning['severity']}] {warning['message']}")

    for diff in preview["file_diffs"]:
        if diff["status"] == "MODIFIED":
            print(f"\n--- {diff['path']} ---")
            print(client.file_diff(package_id, diff["path"])[:2000])

    if not auto_approve:
        print("\nLeaving package pending for manual review")
        return
    if critical:
        print(f"\n✗ {len(critical)} critical suppression warning(s); rejecting")
        client.reject(package_id)
        return

    result = client.approve(package_id)
    print(f"\n✓ Approved as {result['version']['id']} (reload {result['reload']['status']})")
    for component in result["reload"]["results"]:
        print(f"  {component['component_name']}: {component['status']} ({component['loaded_count']} loaded)")


def main():
    package_id = sys.argv[1] if len(sys.argv) > 1 else "efatura"
    auto_approve = "--approve" in sys.argv

    with ValidationAssetsClient() as client:
        try:
            health = client.get_health()
        except httpx.ConnectError:
            print("✗ Could not connect to API. Is the server running?")
            print("  Start it with: uvicorn validation_assets.app:app")
            return 1

        print(f"Service status: {health['status']}")
        for package in client.list_packages():
            print(f"  {package['id']:<10} {package['state']:<15} {package['version_count']} version(s)")

        try:
            review_package(client, package_id, auto_approve)
        except httpx.HTTPStatusError as e:
            detail = e.response.json().get("detail", e.response.text)
            print(f"✗ {e.response.status_code}: {detail}")
            return 1

        print("\nRecent versions:")
        for version in client.versions(package_id)[:5]:
            print(f"  {version['id']}  {version['created_at']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
