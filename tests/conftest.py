"""
Pytest configuration and shared fixtures.

Every test gets its own addons directory under tmp_path with two addon
sources and a listing that declares them.
"""

import threading
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from kodi_repo.core.config import load_settings
from kodi_repo.main import create_app
from kodi_repo.services.packaging import package_addon


ADDON_IDS = ("skin.estuary", "plugin.video.example")

LISTING_XML = """<?xml version="1.0" encoding="UTF-8"?>
<addons>
    <addon id="skin.estuary" name="Estuary" version="3.0.0" provider-name="Team Kodi"/>
    <addon id="plugin.video.example" name="Example" version="1.2.0" provider-name="someone"/>
</addons>
"""


def write_addon(addons_dir: Path, addon_id: str, version: str = "1.0.0") -> Path:
    """Create a minimal addon source tree and return its directory."""
    addon_dir = addons_dir / addon_id
    (addon_dir / "resources").mkdir(parents=True, exist_ok=True)
    (addon_dir / "addon.xml").write_text(
        f'<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<addon id="{addon_id}" name="{addon_id}" version="{version}" provider-name="tests">\n'
        f'    <extension point="xbmc.addon.metadata"/>\n'
        f'</addon>\n',
        encoding="utf-8",
    )
    (addon_dir / "resources" / "settings.xml").write_text("<settings/>\n", encoding="utf-8")
    (addon_dir / "default.py").write_text(f"print({addon_id!r})\n", encoding="utf-8")
    return addon_dir


class CountingPackager:
    """Wraps package_addon and records every key it is asked to build."""

    def __init__(self, addons_dir: Path):
        self.addons_dir = addons_dir
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, key: str, destination: Path) -> Path:
        with self._lock:
            self.calls.append(key)
        return package_addon(self.addons_dir, key, destination)

    def count(self, key: str) -> int:
        with self._lock:
            return self.calls.count(key)


class GatedPackager(CountingPackager):
    """
    Blocks builds until `release` is set; keys in `failing` raise.

    Only keys in `gated` are blocked when it is given.
    """

    def __init__(self, addons_dir, failing=(), gated=None):
        super().__init__(addons_dir)
        self.release = threading.Event()
        self.failing = set(failing)
        self.gated = None if gated is None else set(gated)

    def __call__(self, key, destination):
        with self._lock:
            self.calls.append(key)
        blocked = self.gated is None or key in self.gated
        if blocked and not self.release.wait(timeout=5):
            raise TimeoutError("build was never released")
        if key in self.failing:
            # Leave a partial file behind, as an interrupted zip would.
            destination.write_bytes(b"PK partial")
            raise OSError(f"cannot package {key}")
        return package_addon(self.addons_dir, key, destination)


@pytest.fixture
def addons_dir(tmp_path: Path) -> Path:
    root = tmp_path / "addons"
    root.mkdir()
    for addon_id in ADDON_IDS:
        write_addon(root, addon_id)
    return root


@pytest.fixture
def listing(tmp_path: Path) -> Path:
    path = tmp_path / "addons.xml"
    path.write_text(LISTING_XML, encoding="utf-8")
    return path


@pytest.fixture
def settings(addons_dir: Path, listing: Path):
    return load_settings(addons_dir, listing, environ={})


@pytest.fixture
def packager(addons_dir: Path) -> CountingPackager:
    return CountingPackager(addons_dir)


@pytest.fixture
def app(settings, packager):
    return create_app(settings, packager=packager)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
