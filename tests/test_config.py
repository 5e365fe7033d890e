"""Tests for settings loading and the command line entry point."""

import pytest
from pydantic import ValidationError

from kodi_repo import cli
from kodi_repo.core.config import load_settings
from kodi_repo.data.manifest import read_addon_ids
from kodi_repo.domain.models import DEFAULT_HOST, DEFAULT_PORT

from conftest import ADDON_IDS


def test_defaults(tmp_path):
    settings = load_settings(tmp_path / "addons", tmp_path / "addons.xml", environ={})

    assert settings.cache_dir == tmp_path / "addons" / ".zips"
    assert settings.host == DEFAULT_HOST == "127.0.0.1"
    assert settings.port == DEFAULT_PORT == 9001
    assert settings.compression_level == 6
    assert settings.log_level == "INFO"
    assert settings.recheck_interval_seconds == 30.0


def test_environment_overrides(tmp_path):
    env = {
        "KODI_REPO_HOST": "0.0.0.0",
        "KODI_REPO_PORT": "8080",
        "KODI_REPO_CACHE_DIR": str(tmp_path / "zips"),
        "KODI_REPO_COMPRESSION_LEVEL": "9",
        "KODI_REPO_LOG_LEVEL": "debug",
        "KODI_REPO_RECHECK_INTERVAL": "2.5",
    }
    settings = load_settings(tmp_path / "addons", tmp_path / "addons.xml", environ=env)

    assert settings.host == "0.0.0.0"
    assert settings.port == 8080
    assert settings.cache_dir == tmp_path / "zips"
    assert settings.compression_level == 9
    assert settings.log_level == "DEBUG"
    assert settings.recheck_interval_seconds == 2.5


def test_cache_dir_argument_wins_over_environment(tmp_path):
    env = {"KODI_REPO_CACHE_DIR": str(tmp_path / "from-env")}
    settings = load_settings(tmp_path / "addons", tmp_path / "addons.xml", tmp_path / "from-arg", environ=env)
    assert settings.cache_dir == tmp_path / "from-arg"


@pytest.mark.parametrize(
    "env",
    [
        {"KODI_REPO_PORT": "0"},
        {"KODI_REPO_PORT": "not-a-port"},
        {"KODI_REPO_COMPRESSION_LEVEL": "10"},
        {"KODI_REPO_LOG_LEVEL": "chatty"},
    ],
)
def test_invalid_values_are_rejected(tmp_path, env):
    with pytest.raises(ValidationError):
        load_settings(tmp_path / "addons", tmp_path / "addons.xml", environ=env)


def test_cli_generate(tmp_path, addons_dir):
    output = tmp_path / "addons.xml"

    assert cli.main(["generate", str(addons_dir), str(output)]) == 0
    assert read_addon_ids(output) == set(ADDON_IDS)
    assert (tmp_path / "addons.xml.md5").is_file()


@pytest.mark.parametrize("command", ["serve", "server"])
def test_cli_serve_starts_uvicorn(monkeypatch, addons_dir, listing, command):
    started = {}

    def fake_run(app, host, port, log_level):
        started.update(app=app, host=host, port=port, log_level=log_level)

    for name in ("KODI_REPO_HOST", "KODI_REPO_PORT", "KODI_REPO_CACHE_DIR", "KODI_REPO_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("uvicorn.run", fake_run)

    assert cli.main([command, str(addons_dir), str(listing)]) == 0
    assert started["host"] == "127.0.0.1"
    assert started["port"] == 9001
    assert started["app"].state.settings.cache_dir == addons_dir / ".zips"
    assert (addons_dir / ".zips").is_dir()


def test_cli_serve_with_custom_cache_dir(monkeypatch, tmp_path, addons_dir, listing):
    monkeypatch.delenv("KODI_REPO_CACHE_DIR", raising=False)
    monkeypatch.setattr("uvicorn.run", lambda app, **kwargs: None)

    assert cli.main(["serve", str(addons_dir), str(listing), str(tmp_path / "zips")]) == 0
    assert (tmp_path / "zips").is_dir()


def test_cli_serve_refuses_bad_listing(monkeypatch, tmp_path, addons_dir):
    monkeypatch.setattr("uvicorn.run", lambda *args, **kwargs: pytest.fail("server must not start"))

    assert cli.main(["serve", str(addons_dir), str(tmp_path / "missing.xml")]) == 1


def test_cli_requires_a_command():
    with pytest.raises(SystemExit):
        cli.main([])
