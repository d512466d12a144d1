"""Admin API routes for package staging, history, profiles and reload.

All routes are mounted under ``/v1/admin`` by :mod:`validation_assets.app`.
Handlers are plain ``def`` functions; FastAPI runs them in its threadpool,
which matches the blocking filesystem and network work they perform.
Domain errors propagate to the exception handlers registered on the app.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from .models import (
    SchematronCustomAssertion,
    SchematronError,
    SuppressionRule,
    ValidationProfile,
    XsdOverride,
    make_scope,
)
from .services import AssetServices, get_services


def get_asset_services() -> AssetServices:
    """Dependency hook; tests replace it through ``app.dependency_overrides``."""
    return get_services()


class SuppressionRuleModel(BaseModel):
    match: str = Field("ruleId", description="ruleId, ruleIdEquals, test, testEquals, message or text")
    pattern: str = Field(..., min_length=1, description="Regex, or literal for *Equals modes")
    scope: Optional[Union[List[str], str]] = Field(
        None, description="Document/schematron types the rule is limited to"
    )
    description: Optional[str] = None

    def to_rule(self) -> SuppressionRule:
        return SuppressionRule(self.match, self.pattern, make_scope(self.scope), self.description)


class XsdOverrideModel(BaseModel):
    element: str = Field(..., min_length=1)
    min_occurs: Optional[str] = None
    max_occurs: Optional[str] = None


class SchematronRuleModel(BaseModel):
    context: str = Field(..., min_length=1)
    test: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    id: Optional[str] = None

    def to_assertion(self) -> SchematronCustomAssertion:
        return SchematronCustomAssertion(self.context, self.test, self.message, self.id)


class ProfileRequest(BaseModel):
    """Request body for creating or replacing a profile."""

    description: Optional[str] = None
    extends: Optional[str] = None
    suppressions: List[SuppressionRuleModel] = Field(default_factory=list)
    xsd_overrides: Dict[str, List[XsdOverrideModel]] = Field(default_factory=dict)
    schematron_rules: Dict[str, List[SchematronRuleModel]] = Field(default_factory=dict)

    def to_profile(self, name: str) -> ValidationProfile:
        return ValidationProfile(
            name=name,
            description=self.description,
            extends=self.extends or None,
            suppressions=[s.to_rule() for s in self.suppressions],
            xsd_overrides={
                key: [XsdOverride(o.element, o.min_occurs, o.max_occurs) for o in items]
                for key, items in self.xsd_overrides.items()
            },
            schematron_rules={
                key: [r.to_assertion() for r in items]
                for key, items in self.schematron_rules.items()
            },
        )


class SchematronErrorModel(BaseModel):
    rule_id: Optional[str] = None
    test: Optional[str] = None
    message: Optional[str] = None


class SchematronSuppressionRequest(BaseModel):
    errors: List[SchematronErrorModel]
    profile: Optional[str] = None
    additional_suppressions: List[str] = Field(default_factory=list)
    active_types: List[str] = Field(default_factory=list)


class XsdSuppressionRequest(BaseModel):
    errors: List[str]
    profile: Optional[str] = None
    additional_suppressions: List[str] = Field(default_factory=list)
    active_types: List[str] = Field(default_factory=list)


def create_admin_router() -> APIRouter:
    """Create the admin router."""
    router = APIRouter()

    # -- staging ----------------------------------------------------------

    @router.get("/packages")
    def list_packages(services: AssetServices = Depends(get_asset_services)):
        """Package catalog with per-package state and history size."""
        return {"packages": services.versioning.package_overview()}

    @router.post("/packages/sync")
    def sync_all(services: AssetServices = Depends(get_asset_services)):
        """Stage every package; failed packages are omitted from the result."""
        previews = services.versioning.sync_all_to_staging()
        return {"previews": [p.to_dict() for p in previews]}

    @router.post("/packages/{package_id}/sync")
    def sync_package(package_id: str, services: AssetServices = Depends(get_asset_services)):
        return services.versioning.sync_to_staging(package_id).to_dict()

    @router.post("/packages/{package_id}/approve")
    def approve_package(package_id: str, services: AssetServices = Depends(get_asset_services)):
        """Commit the pending package; reload outcome is part of the response."""
        return services.versioning.approve_pending(package_id).to_dict()

    @router.post("/packages/{package_id}/reject")
    def reject_package(package_id: str, services: AssetServices = Depends(get_asset_services)):
        services.versioning.reject_pending(package_id)
        return {"package_id": package_id, "rejected": True}

    # -- pending ----------------------------------------------------------

    @router.get("/pending")
    def list_pending(services: AssetServices = Depends(get_asset_services)):
        previews = services.versioning.get_all_pending_previews()
        return {"pending": [p.to_dict() for p in previews]}

    @router.get("/pending/{package_id}")
    def get_pending(package_id: str, services: AssetServices = Depends(get_asset_services)):
        return services.versioning.get_pending_preview(package_id).to_dict()

    @router.get("/pending/{package_id}/diff/{path:path}")
    def get_pending_file_diff(
        package_id: str, path: str, services: AssetServices = Depends(get_asset_services)
    ):
        return services.versioning.get_pending_file_diff(package_id, path).to_dict()

    # -- history ----------------------------------------------------------

    @router.get("/versions")
    def list_versions(
        package: Optional[str] = Query(None, description="Restrict to one package id"),
        services: AssetServices = Depends(get_asset_services),
    ):
        """Version history, newest first."""
        versions = services.versioning.list_versions(package)
        return {"versions": [v.to_dict() for v in versions]}

    @router.get("/versions/{version_id}/diff")
    def get_version_diff(version_id: str, services: AssetServices = Depends(get_asset_services)):
        diffs = services.versioning.get_version_diff(version_id)
        return {"version_id": version_id, "diffs": [d.to_dict() for d in diffs]}

    @router.get("/versions/{version_id}/diff/{path:path}")
    def get_version_file_diff(
        version_id: str, path: str, services: AssetServices = Depends(get_asset_services)
    ):
        return services.versioning.get_file_diff(version_id, path).to_dict()

    # -- profiles ---------------------------------------------------------

    @router.get("/profiles")
    def list_profiles(services: AssetServices = Depends(get_asset_services)):
        return {"profiles": [p.to_dict() for p in services.profiles.list_profiles()]}

    @router.get("/profiles/{name}")
    def get_profile(
        name: str,
        resolved: bool = Query(True, description="Apply the extends chain"),
        services: AssetServices = Depends(get_asset_services),
    ):
        if resolved:
            return services.profiles.get_profile(name).to_dict()
        return services.profiles.get_raw_profile(name).to_dict()

    @router.put("/profiles/{name}")
    def save_profile(
        name: str, request: ProfileRequest, services: AssetServices = Depends(get_asset_services)
    ):
        result = services.profiles.save_profile(request.to_profile(name))
        return {"name": name, "saved": True, "reload": result.to_dict()}

    @router.delete("/profiles/{name}")
    def delete_profile(name: str, services: AssetServices = Depends(get_asset_services)):
        if not services.profiles.delete_profile(name):
            raise HTTPException(status_code=404, detail=f"Validation profile not found: {name}")
        return {"name": name, "deleted": True}

    @router.get("/schematron-rules")
    def get_global_rules(services: AssetServices = Depends(get_asset_services)):
        rules = services.profiles.get_global_schematron_rules()
        return {key: [r.to_dict() for r in items] for key, items in rules.items()}

    @router.put("/schematron-rules")
    def save_global_rules(
        rules: Dict[str, List[SchematronRuleModel]],
        services: AssetServices = Depends(get_asset_services),
    ):
        result = services.profiles.save_global_schematron_rules(
            {key: [r.to_assertion() for r in items] for key, items in rules.items()}
        )
        return {"saved": True, "reload": result.to_dict()}

    @router.post("/suppressions/schematron")
    def apply_schematron_suppressions(
        request: SchematronSuppressionRequest,
        services: AssetServices = Depends(get_asset_services),
    ):
        """Dry-run suppression of structured Schematron errors."""
        errors = [SchematronError(e.rule_id, e.test, e.message) for e in request.errors]
        result = services.profiles.apply_schematron_suppressions(
            errors, request.profile, request.additional_suppressions, request.active_types
        )
        return result.to_dict()

    @router.post("/suppressions/xsd")
    def apply_xsd_suppressions(
        request: XsdSuppressionRequest, services: AssetServices = Depends(get_asset_services)
    ):
        remaining = services.profiles.apply_xsd_suppressions(
            request.errors, request.profile, request.additional_suppressions, request.active_types
        )
        return {"errors": remaining, "suppressed_count": len(request.errors) - len(remaining)}

    # -- reload -----------------------------------------------------------

    @router.post("/assets/reload")
    def reload_assets(services: AssetServices = Depends(get_asset_services)):
        """Reload every registered component and report per-component outcome."""
        return services.registry.reload().to_dict()

    return router
