"""
Exception types shared across the repository server.

Each error maps to one failure class of the service:
- ManifestError is fatal at startup.
- NotFoundError, BuildError become HTTP responses.
- NegotiationConflictError is recovered inside the compression negotiator.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class KodiRepoError(Exception):
    """Base class for all repository server errors."""


class ManifestError(KodiRepoError):
    """The addon listing could not be read or its identifiers extracted."""

    def __init__(self, path: Path, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Invalid addon listing {self.path}: {reason}")


class NotFoundError(KodiRepoError):
    """The requested addon is not part of the repository index."""

    def __init__(self, addon_id: str):
        self.addon_id = addon_id
        super().__init__(f"Addon not found: {addon_id!r}")


class BuildError(KodiRepoError):
    """Packaging an addon archive failed for a single key."""

    def __init__(self, key: str, reason: str, attempt: Optional[int] = None):
        self.key = key
        self.reason = reason
        self.attempt = attempt
        super().__init__(f"Failed to build archive for {key!r}: {reason}")


class NegotiationConflictError(KodiRepoError):
    """The negotiated transfer encoding cannot be applied to a payload."""
