from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response

from kodi_repo.core.dependencies import get_addon_index, get_archive_cache, get_negotiator
from kodi_repo.domain.entities import AddonIndex
from kodi_repo.domain.errors import NotFoundError
from kodi_repo.services.archive_cache import ArchiveCache
from kodi_repo.services.negotiation import CompressionNegotiator

logger = logging.getLogger(__name__)
router = APIRouter()


# ---------------------------------------------------------------------------
# 1. GET /addons/{addon_id}
# ---------------------------------------------------------------------------

@router.get("/addons/{addon_id}")
async def get_addon(
    addon_id: str,
    request: Request,
    index: AddonIndex = Depends(get_addon_index),
    negotiator: CompressionNegotiator = Depends(get_negotiator),
) -> Response:
    """
    Confirm that an addon is part of the repository.
    """
    if not index.contains(addon_id):
        raise NotFoundError(addon_id)

    async def produce() -> bytes:
        return f"{addon_id} exists!".encode("utf-8")

    return await negotiator.respond(request, produce, media_type="text/plain; charset=utf-8")


# ---------------------------------------------------------------------------
# 2. GET /addons/{addon_id}/archive
# ---------------------------------------------------------------------------

@router.get("/addons/{addon_id}/archive")
async def get_addon_archive(
    addon_id: str,
    request: Request,
    index: AddonIndex = Depends(get_addon_index),
    cache: ArchiveCache = Depends(get_archive_cache),
    negotiator: CompressionNegotiator = Depends(get_negotiator),
) -> Response:
    """
    Serve the packaged zip of an addon, building it on first request.
    """
    # Unknown ids are rejected before the cache (and the disk) is involved.
    if not index.contains(addon_id):
        raise NotFoundError(addon_id)

    handle = await cache.fetch(addon_id)

    return await negotiator.respond(
        request,
        handle.read_bytes,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{handle.filename}"'},
    )
