from fastapi import Request

from kodi_repo.domain.entities import AddonIndex
from kodi_repo.services.archive_cache import ArchiveCache
from kodi_repo.services.negotiation import CompressionNegotiator

# The collaborators are built once by create_app() and stored on app.state;
# these accessors hand them to route handlers through Depends().


def get_addon_index(request: Request) -> AddonIndex:
    return request.app.state.addon_index


def get_archive_cache(request: Request) -> ArchiveCache:
    return request.app.state.archive_cache


def get_negotiator(request: Request) -> CompressionNegotiator:
    return request.app.state.negotiator
