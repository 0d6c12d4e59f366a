"""
Attachment decode stage.

Reads every uploaded file into base64 text concurrently and returns the
results in input order. Any failure aborts the whole stage with a
DecodeError; nothing is silently dropped.
"""
import asyncio
import base64
import logging
import mimetypes
from typing import List, Sequence

from ..errors import DecodeError
from ..models import AttachmentSource, DecodedAttachment

logger = logging.getLogger(__name__)


def resolve_media_type(source: AttachmentSource, default: str) -> str:
    """Declared media type, else a guess from the title, else ``default``."""
    if source.media_type:
        return source.media_type
    guessed, _ = mimetypes.guess_type(source.display_title)
    return guessed or default


async def _read_bytes(source: AttachmentSource) -> bytes:
    if source.content is not None:
        return source.content
    if source.path is not None:
        return await asyncio.to_thread(source.path.read_bytes)
    raise DecodeError(source.display_title, "no content or path supplied")


async def decode_attachment(
    source: AttachmentSource,
    allowed_types: Sequence[str],
    default_type: str = "application/pdf",
) -> DecodedAttachment:
    """
    Read one attachment and encode it as base64 text.

    Raises:
        DecodeError: unsupported media type or unreadable content
    """
    media_type = resolve_media_type(source, default_type)
    if allowed_types and media_type not in allowed_types:
        raise DecodeError(source.display_title, f"unsupported media type {media_type}")

    try:
        raw = await _read_bytes(source)
    except OSError as e:
        raise DecodeError(source.display_title, str(e)) from e

    return DecodedAttachment(
        title=source.display_title,
        media_type=media_type,
        data=base64.b64encode(raw).decode("ascii"),
    )


async def decode_attachments(
    sources: Sequence[AttachmentSource],
    allowed_types: Sequence[str],
    default_type: str = "application/pdf",
) -> List[DecodedAttachment]:
    """
    Decode all attachments in parallel.

    Output order matches input order regardless of completion order.

    Raises:
        DecodeError: if any attachment fails (the first failure in input order)
    """
    if not sources:
        return []

    tasks = [decode_attachment(s, allowed_types, default_type) for s in sources]
    results = await asyncio.gather(*tasks, return_exceptions=True)

    for source, result in zip(sources, results):
        if isinstance(result, BaseException):
            logger.error("Attachment decode failed: %s", result)
            if isinstance(result, DecodeError):
                raise result
            raise DecodeError(source.display_title, str(result)) from result

    logger.info("Decoded %d attachment(s)", len(results))
    return list(results)
