"""
Packaging of addon sources into installable zip archives.

Kodi installs an addon from a zip whose single top-level directory is named
after the addon id, e.g. `plugin.video.example/addon.xml`.
"""
from __future__ import annotations

import logging
import os
import zipfile
from pathlib import Path

logger = logging.getLogger(__name__)

# Paths never shipped inside an archive.
EXCLUDED_DIRS = {".git", ".svn", ".hg", "__pycache__"}
EXCLUDED_SUFFIXES = (".pyc", ".pyo")


def _should_exclude(rel: Path) -> bool:
    if any(part in EXCLUDED_DIRS for part in rel.parts):
        return True
    return rel.name.endswith(EXCLUDED_SUFFIXES)


def addon_source_dir(addons_dir: Path, addon_id: str) -> Path:
    return Path(addons_dir) / addon_id


def package_addon(addons_dir: Path, addon_id: str, destination: Path) -> Path:
    """
    Zip the sources of `addon_id` into `destination`.

    The caller owns `destination`: it is written in place and is expected to
    be a temporary path that gets renamed once this function returns.

    Raises:
        FileNotFoundError: the addon has no source directory.
    """
    source = addon_source_dir(addons_dir, addon_id)
    if not source.is_dir():
        raise FileNotFoundError(f"Addon source directory not found: {source}")

    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)

    count = 0
    # Sorted member order keeps archives reproducible between builds.
    with zipfile.ZipFile(destination, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for path in sorted(source.rglob("*")):
            rel = path.relative_to(source)
            if _should_exclude(rel) or not path.is_file():
                continue
            zf.write(path, arcname=(Path(addon_id) / rel).as_posix())
            count += 1

    logger.debug(f"Packaged {count} files from {source} into {destination}")
    return destination


def newest_source_mtime_ns(addons_dir: Path, addon_id: str) -> int:
    """
    Latest modification time (ns) over the addon directory and its files.

    Returns 0 when the addon has no source directory, so an archive cached
    for it is never considered out of date.
    """
    source = addon_source_dir(addons_dir, addon_id)
    if not source.is_dir():
        return 0

    newest = source.stat().st_mtime_ns
    for dirpath, dirnames, filenames in os.walk(source):
        dirnames[:] = [d for d in dirnames if d not in EXCLUDED_DIRS]
        for name in filenames:
            if name.endswith(EXCLUDED_SUFFIXES):
                continue
            try:
                mtime = os.stat(os.path.join(dirpath, name)).st_mtime_ns
            except FileNotFoundError:
                continue
            newest = max(newest, mtime)
    return newest
