"""Validation Assets
==================

Lifecycle management for the externally published rule sets (XSD schemas,
Schematron rules) that drive e-invoicing validation, and resolution of the
validation profiles layered on top of them.

Key capabilities
----------------
- Download a package into **staging**, preview its diff against the live tree
  and the suppressions it would break.
- **Approve** (snapshot live tree → replace → reload) or **reject** pending
  packages; per-package version history with unified file diffs.
- Coordinated, ordered **hot reload** of every cache derived from assets,
  with per-component OK / PARTIAL / FAILED reporting.
- **Validation profiles** with single-parent inheritance, XSD override merge,
  Schematron custom rule accumulation and scoped suppression.

Design principles
-----------------
1. **Build then swap** – derived state is rebuilt off to the side and
    published atomically; a failed rebuild keeps serving the old generation.
2. **Append-only history** – approvals never mutate or delete versions.
3. **Fine-grained locking** – staging, approval and rejection serialize per
    package; unrelated packages never block each other.
4. **Resolve at read time** – profiles are stored unmerged; inheritance is
    walked iteratively with cycle detection on every read.

Docstring style
---------------
Public functions and classes follow the Google style docstring convention
(Args, Returns, Raises, Examples).

Minimal quick start
-------------------
>>> from validation_assets.services import build_services
>>> services = build_services()
>>> preview = services.versioning.sync_to_staging("efatura")
>>> preview.files_summary.to_dict()

FastAPI application instance (for ASGI servers like uvicorn):
>>> from validation_assets.app import app  # noqa: F401
"""

__version__ = "0.3.0"

from .errors import (
    AssetError,
    AssetIOError,
    InvalidStateError,
    NotFoundError,
    ProfileConfigError,
    ProfileCycleError,
)
from .models import ReloadStatus, SchematronError, ValidationProfile

__all__ = [
    "AssetError",
    "AssetIOError",
    "InvalidStateError",
    "NotFoundError",
    "ProfileConfigError",
    "ProfileCycleError",
    "ReloadStatus",
    "SchematronError",
    "ValidationProfile",
]
