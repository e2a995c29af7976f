"""Attachment downloads.

Downloads run as fetch -> chunk -> respond. The bytes are fetched completely
before anything is handed to the responder, so a failed fetch surfaces as one
error instead of a truncated stream.
"""

from __future__ import annotations

import re
from collections.abc import AsyncIterator
from dataclasses import dataclass

import structlog

from gmail_sync.exceptions import NotFoundError, ValidationError
from gmail_sync.gmail.client import MailClient
from gmail_sync.gmail.parsing import decode_base64url, find_part

logger = structlog.get_logger()

_ATTACHMENT_URL_RE = re.compile(
    r"^https://gmail\.googleapis\.com/gmail/v1/users/[^/]+/messages/"
    r"(?P<message_id>[^/]+)/(?P<kind>attachments|parts)/(?P<ref>[^/?#]+)$"
)


@dataclass(frozen=True)
class AttachmentRef:
    """Where an attachment's bytes live: an attachment id, or an inline part."""

    message_id: str
    attachment_id: str | None = None
    part_id: str | None = None


def parse_attachment_url(url: str) -> AttachmentRef:
    """Split an attachment URL into the message and the attachment or part it names.

    Raises:
        ValidationError: If the URL was not produced by the message mapper.
    """

    match = _ATTACHMENT_URL_RE.match(url or "")
    if match is None:
        raise ValidationError(f"Not a Gmail attachment URL: {url!r}")
    if match.group("kind") == "parts":
        return AttachmentRef(message_id=match.group("message_id"), part_id=match.group("ref"))
    return AttachmentRef(message_id=match.group("message_id"), attachment_id=match.group("ref"))


@dataclass(frozen=True)
class AttachmentDownload:
    filename: str
    mime_type: str
    content: bytes
    chunk_size: int = 64 * 1024

    @property
    def size(self) -> int:
        return len(self.content)

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        for start in range(0, len(self.content), self.chunk_size):
            yield self.content[start : start + self.chunk_size]


async def _read_part(client: MailClient, message_id: str, part_id: str) -> bytes:
    message = await client.get_message(message_id)
    part = find_part(message.payload, part_id)
    if part is None or part.body is None:
        raise NotFoundError(f"Part {part_id} not found in message {message_id}")
    # Large parts can still be stored out of line.
    if part.body.attachment_id:
        return await client.get_attachment(message_id, part.body.attachment_id)
    return decode_base64url(part.body.data)


async def fetch_attachment(
    client: MailClient,
    url: str,
    filename: str,
    mime_type: str,
    chunk_size: int = 64 * 1024,
) -> AttachmentDownload:
    ref = parse_attachment_url(url)
    if ref.part_id is not None:
        content = await _read_part(client, ref.message_id, ref.part_id)
    else:
        content = await client.get_attachment(ref.message_id, ref.attachment_id or "")
    logger.info(
        "attachment_fetched",
        message_id=ref.message_id,
        filename=filename,
        size=len(content),
        inline=ref.part_id is not None,
    )
    return AttachmentDownload(
        filename=filename,
        mime_type=mime_type or "application/octet-stream",
        content=content,
        chunk_size=chunk_size,
    )
