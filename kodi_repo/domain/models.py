"""
Pydantic models for the addon repository server.

This module defines the configuration model and the small value types that
flow between the archive cache, the negotiator and the HTTP layer.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# Name of the cache directory created inside the addons directory when no
# explicit cache directory is configured.
DEFAULT_CACHE_DIRNAME = ".zips"

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9001


# ---------------------------------------------------------------------------
# Server configuration
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    """
    Runtime configuration for the `serve` command.

    Values come from command line arguments first and KODI_REPO_* environment
    variables second (see kodi_repo.core.config).
    """

    addons_dir: Path = Field(
        description="Directory containing one sub-directory of sources per addon.",
    )
    listing_path: Path = Field(
        description="Path to the addons.xml listing that declares the known addon ids.",
    )
    cache_dir: Optional[Path] = Field(
        default=None,
        description="Directory holding built archives. Defaults to <addons_dir>/.zips.",
    )
    host: str = Field(
        default=DEFAULT_HOST,
        description="Interface the HTTP server binds to.",
    )
    port: int = Field(
        default=DEFAULT_PORT,
        ge=1,
        le=65535,
        description="TCP port the HTTP server listens on.",
    )
    compression_level: int = Field(
        default=6,
        ge=1,
        le=9,
        description="gzip level used when a client asks for a compressed transfer.",
    )
    recheck_interval_seconds: float = Field(
        default=30.0,
        ge=0,
        description="Minimum time between two checks of a cached archive against its addon sources.",
    )
    log_level: str = Field(
        default="INFO",
        description="Root logging level (DEBUG, INFO, WARNING, ERROR).",
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {value}")
        return level

    @model_validator(mode="after")
    def _default_cache_dir(self) -> "ServerSettings":
        if self.cache_dir is None:
            self.cache_dir = self.addons_dir / DEFAULT_CACHE_DIRNAME
        return self


# ---------------------------------------------------------------------------
# Archive cache state
# ---------------------------------------------------------------------------


# Lifecycle of one archive cache entry. A build attempt moves an entry from
# "absent" (or "failed", or a stale "ready") to "building", then to "ready"
# or "failed".
ArchiveState = Literal["absent", "building", "ready", "failed"]


class ArchiveStatus(BaseModel):
    """Point-in-time snapshot of a single cache entry."""

    model_config = ConfigDict(frozen=True)

    key: str
    state: ArchiveState
    path: Optional[Path] = None
    waiters: int = 0
    attempts: int = 0
