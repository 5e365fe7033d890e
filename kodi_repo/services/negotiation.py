"""
Per-request compression negotiation.

Clients opt into a gzip transfer with a boolean `compression` request header.
The negotiator owns both the decision and the transfer: the payload is
produced exactly once, and only the already produced bytes are branched on.

    request ──► wants_compression? ──┐
    produce() (exactly once) ────────┴──► NegotiatedResponse ──► transfer()
                                                                   │
                                               gzip ◄── compress ──┤
                                           verbatim ◄── otherwise ─┘
                                           verbatim ◄── NegotiationConflictError

A payload that cannot be encoded is delivered verbatim, so a successfully
produced response is never dropped because of the encoding step.
"""
from __future__ import annotations

import gzip
import logging
import zlib
from typing import Awaitable, Callable, Dict, Mapping, Optional

from fastapi import Request, Response

from kodi_repo.domain.errors import NegotiationConflictError

logger = logging.getLogger(__name__)

COMPRESSION_HEADER = "compression"

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


def parse_compression_header(value: Optional[str]) -> bool:
    """
    Interpret the `compression` header.

    Missing or unrecognised values mean no compression.
    """
    if value is None:
        return False
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized not in _FALSE_VALUES:
        logger.debug(f"Ignoring unrecognised {COMPRESSION_HEADER} header value: {value!r}")
    return False


class NegotiatedResponse:
    """A produced body together with the decision on how to transfer it."""

    __slots__ = ("body", "compress", "media_type", "status_code", "headers")

    def __init__(
        self,
        body: bytes,
        compress: bool,
        media_type: Optional[str] = None,
        status_code: int = 200,
        headers: Optional[Mapping[str, str]] = None,
    ):
        self.body = body
        self.compress = compress
        self.media_type = media_type
        self.status_code = status_code
        self.headers: Dict[str, str] = dict(headers or {})


class CompressionNegotiator:
    """Produces a payload once and transfers it gzip-encoded or verbatim."""

    def __init__(self, compression_level: int = 6):
        self.compression_level = compression_level

    def wants_compression(self, request: Request) -> bool:
        return parse_compression_header(request.headers.get(COMPRESSION_HEADER))

    async def respond(
        self,
        request: Request,
        produce: Callable[[], Awaitable[bytes]],
        media_type: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Response:
        """Run `produce` exactly once and transfer its result as negotiated."""
        compress = self.wants_compression(request)
        body = await produce()
        negotiated = NegotiatedResponse(body, compress, media_type=media_type, headers=headers)
        return self.transfer(negotiated)

    def encode(self, negotiated: NegotiatedResponse) -> bytes:
        """
        gzip the produced body.

        Raises:
            NegotiationConflictError: the body already carries a content
                encoding, or the encoder rejected it.
        """
        existing = {k.lower(): v for k, v in negotiated.headers.items()}.get("content-encoding")
        if existing and existing.lower() != "identity":
            raise NegotiationConflictError(f"payload is already {existing}-encoded")
        try:
            # mtime=0 keeps the encoded bytes identical for identical bodies.
            return gzip.compress(negotiated.body, compresslevel=self.compression_level, mtime=0)
        except (zlib.error, ValueError, TypeError) as e:
            raise NegotiationConflictError(f"gzip encoding failed: {e}") from e

    def transfer(self, negotiated: NegotiatedResponse) -> Response:
        headers = dict(negotiated.headers)
        headers["Vary"] = COMPRESSION_HEADER.capitalize()
        content = negotiated.body

        if negotiated.compress:
            try:
                content = self.encode(negotiated)
                headers["Content-Encoding"] = "gzip"
            except NegotiationConflictError as e:
                logger.warning(f"Sending response uncompressed: {e}")

        return Response(
            content=content,
            status_code=negotiated.status_code,
            media_type=negotiated.media_type,
            headers=headers,
        )
