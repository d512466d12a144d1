"""Exception taxonomy for asset lifecycle and profile resolution.

Client-caused failures (:class:`NotFoundError`, :class:`InvalidStateError`,
:class:`ProfileCycleError`) carry the offending identifier so callers can
surface it directly. :class:`AssetIOError` wraps filesystem and network
failures. A partially failed reload is never raised; it is reported through
:class:`~validation_assets.models.ReloadReport`.
"""

from __future__ import annotations

from typing import Optional


class AssetError(Exception):
    """Base class for all errors raised by this package."""

    def __init__(self, message: str, identifier: Optional[str] = None):
        super().__init__(message)
        self.identifier = identifier


class NotFoundError(AssetError):
    """Unknown version id, package, file path or profile."""


class InvalidStateError(AssetError):
    """Approve/reject/preview requested while no staging entry is pending."""


class ProfileConfigError(AssetError):
    """Profile configuration is malformed (e.g. dangling ``extends``)."""


class ProfileCycleError(ProfileConfigError):
    """An ``extends`` chain revisits a profile it already walked."""

    def __init__(self, chain):
        self.chain = list(chain)
        super().__init__(
            "Profile inheritance cycle: " + " -> ".join(self.chain),
            identifier=self.chain[0] if self.chain else None,
        )


class AssetIOError(AssetError):
    """Fetch, snapshot copy, live replacement or configuration write failed."""
