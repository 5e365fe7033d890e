from pathlib import Path
from typing import Mapping, Optional
import os

from kodi_repo.domain.models import ServerSettings

ENV_PREFIX = "KODI_REPO_"
HOST_ENV_VAR = ENV_PREFIX + "HOST"
PORT_ENV_VAR = ENV_PREFIX + "PORT"
CACHE_DIR_ENV_VAR = ENV_PREFIX + "CACHE_DIR"
COMPRESSION_LEVEL_ENV_VAR = ENV_PREFIX + "COMPRESSION_LEVEL"
LOG_LEVEL_ENV_VAR = ENV_PREFIX + "LOG_LEVEL"
RECHECK_INTERVAL_ENV_VAR = ENV_PREFIX + "RECHECK_INTERVAL"


def load_settings(
    addons_dir: Path,
    listing_path: Path,
    cache_dir: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ServerSettings:
    """
    Build the server settings for the `serve` command.

    Explicit arguments take priority over KODI_REPO_* environment variables,
    which take priority over the model defaults.
    """
    env = os.environ if environ is None else environ
    values = {
        "addons_dir": Path(addons_dir).expanduser(),
        "listing_path": Path(listing_path).expanduser(),
    }

    if cache_dir is not None:
        values["cache_dir"] = Path(cache_dir).expanduser()
    elif env.get(CACHE_DIR_ENV_VAR):
        values["cache_dir"] = Path(env[CACHE_DIR_ENV_VAR]).expanduser()

    if env.get(HOST_ENV_VAR):
        values["host"] = env[HOST_ENV_VAR]
    if env.get(PORT_ENV_VAR):
        values["port"] = env[PORT_ENV_VAR]
    if env.get(COMPRESSION_LEVEL_ENV_VAR):
        values["compression_level"] = env[COMPRESSION_LEVEL_ENV_VAR]
    if env.get(RECHECK_INTERVAL_ENV_VAR):
        values["recheck_interval_seconds"] = env[RECHECK_INTERVAL_ENV_VAR]
    if env.get(LOG_LEVEL_ENV_VAR):
        values["log_level"] = env[LOG_LEVEL_ENV_VAR]

    return ServerSettings(**values)
