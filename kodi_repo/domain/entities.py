from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, FrozenSet, Iterable, Iterator

from kodi_repo.data.manifest import read_addon_ids

logger = logging.getLogger(__name__)


class AddonIndex:
    """
    Immutable set of addon identifiers known to the repository.

    Built once at startup from the listing and shared by every request
    without locking. Requests for ids outside the index are answered
    without touching the filesystem.
    """

    __slots__ = ("_identifiers",)

    def __init__(self, identifiers: Iterable[str]):
        object.__setattr__(self, "_identifiers", frozenset(identifiers))

    @classmethod
    def build(cls, manifest_path: Path) -> "AddonIndex":
        """Load the index from a listing file. Raises ManifestError."""
        index = cls(read_addon_ids(manifest_path))
        logger.info(f"Loaded {len(index)} addon ids from {manifest_path}")
        return index

    @property
    def identifiers(self) -> FrozenSet[str]:
        return self._identifiers

    def contains(self, addon_id: Any) -> bool:
        if not isinstance(addon_id, str) or not addon_id:
            return False
        return addon_id in self._identifiers

    __contains__ = contains

    def __setattr__(self, name, value):
        raise AttributeError("AddonIndex is immutable")

    def __len__(self) -> int:
        return len(self._identifiers)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._identifiers))

    def __repr__(self) -> str:
        return f"AddonIndex({len(self._identifiers)} addons)"
