import logging
from functools import partial
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from kodi_repo import __version__
from kodi_repo.api.addons import router as addons_router
from kodi_repo.domain.entities import AddonIndex
from kodi_repo.domain.errors import BuildError, NotFoundError
from kodi_repo.domain.models import ServerSettings
from kodi_repo.services.archive_cache import ArchiveCache, Packager
from kodi_repo.services.negotiation import CompressionNegotiator
from kodi_repo.services.packaging import newest_source_mtime_ns, package_addon

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)


async def _not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    logger.debug(f"{request.url.path}: unknown addon {exc.addon_id!r}")
    return JSONResponse(status_code=404, content={"detail": "Addon not found"})


async def _build_error_handler(request: Request, exc: BuildError) -> JSONResponse:
    # Already logged by the cache when the build failed.
    logger.debug(f"{request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": f"Failed to build archive for {exc.key}"})


def create_app(settings: ServerSettings, packager: Optional[Packager] = None) -> FastAPI:
    """
    Build the repository application.

    The addon index is loaded here, before any route exists, so an unreadable
    or malformed listing raises ManifestError instead of producing an app.
    """
    addon_index = AddonIndex.build(settings.listing_path)

    if packager is None:
        packager = partial(package_addon, settings.addons_dir)
    archive_cache = ArchiveCache(
        settings.cache_dir,
        packager,
        source_mtime=partial(newest_source_mtime_ns, settings.addons_dir),
        recheck_interval=settings.recheck_interval_seconds,
    )

    app = FastAPI(
        title="Kodi addon repository",
        version=__version__,
        description="Serves addon lookups and packaged addon archives for a Kodi repository.",
    )
    app.state.settings = settings
    app.state.addon_index = addon_index
    app.state.archive_cache = archive_cache
    app.state.negotiator = CompressionNegotiator(settings.compression_level)

    app.add_exception_handler(NotFoundError, _not_found_handler)
    app.add_exception_handler(BuildError, _build_error_handler)

    app.include_router(addons_router, tags=["addons"])

    @app.get("/health")
    async def health() -> dict:
        """
        Lightweight health check endpoint.
        """
        return {"status": "ok", "addons": len(addon_index)}

    logger.info(f"Serving {len(addon_index)} addons from {settings.addons_dir}, archives cached in {settings.cache_dir}")
    return app


def run(settings: ServerSettings) -> None:
    """Start uvicorn with the application for `settings`."""
    import uvicorn

    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
