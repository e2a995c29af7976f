"""Helpers for mapping Gmail API messages into local thread records."""

from __future__ import annotations

import base64
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Iterator

from pydantic import ValidationError as PydanticValidationError

from gmail_sync.exceptions import InternalError
from gmail_sync.models import Attachment, GmailMessage, MessagePart, ThreadRecord

ATTACHMENT_URL_TEMPLATE = (
    "https://gmail.googleapis.com/gmail/v1/users/me/messages/{message_id}/attachments/{attachment_id}"
)
# Parts whose bytes Gmail inlines in body.data have no attachment id; they are
# addressed by part id and read back from the full message.
PART_URL_TEMPLATE = "https://gmail.googleapis.com/gmail/v1/users/me/messages/{message_id}/parts/{part_id}"

_MAPPED_HEADERS = ("Subject", "From", "To", "Cc", "Bcc", "Date")


def attachment_url(message_id: str, attachment_id: str) -> str:
    return ATTACHMENT_URL_TEMPLATE.format(message_id=message_id, attachment_id=attachment_id)


def part_url(message_id: str, part_id: str) -> str:
    return PART_URL_TEMPLATE.format(message_id=message_id, part_id=part_id)


def decode_base64url(data: str | None) -> bytes:
    """Decode Gmail's base64url body encoding. Empty input decodes to b""."""

    if not data:
        return b""
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def decode_body(data: str | None) -> str:
    return decode_base64url(data).decode("utf-8", errors="replace")


def _header_map(part: MessagePart | None) -> dict[str, str]:
    result: dict[str, str] = {}
    if part is None:
        return result
    for h in part.headers:
        # Exact-case match; the first occurrence of a name wins.
        if h.name in _MAPPED_HEADERS:
            result.setdefault(h.name, h.value)
    return result


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, OverflowError, IndexError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _walk(part: MessagePart) -> Iterator[MessagePart]:
    for child in part.parts:
        yield child
        yield from _walk(child)


def _part_ref(index: int, part: MessagePart) -> str:
    # Walk position stands in for a missing partId.
    return part.part_id or f"walk-{index}"


def find_part(payload: MessagePart | None, part_ref: str) -> MessagePart | None:
    """Return the part ``part_url`` was built for, or None."""

    if payload is None:
        return None
    for index, part in enumerate(_walk(payload)):
        if _part_ref(index, part) == part_ref:
            return part
    return None


def _first_part(payload: MessagePart, mime_type: str) -> MessagePart | None:
    for part in _walk(payload):
        if (part.mime_type or "").lower() == mime_type:
            return part
    return None


def extract_body(payload: MessagePart | None) -> str:
    """Return the first text/html part, else the first text/plain part, else the top-level body."""

    if payload is None:
        return ""

    if payload.parts:
        for mime_type in ("text/html", "text/plain"):
            part = _first_part(payload, mime_type)
            if part is not None:
                return decode_body(part.body.data if part.body else None)

    return decode_body(payload.body.data if payload.body else None)


def extract_attachments(message_id: str, payload: MessagePart | None) -> list[Attachment]:
    if payload is None:
        return []

    attachments: list[Attachment] = []
    for index, part in enumerate(_walk(payload)):
        if not part.filename:
            continue
        attachment_id = part.body.attachment_id if part.body else None
        if attachment_id:
            url = attachment_url(message_id, attachment_id)
        else:
            url = part_url(message_id, _part_ref(index, part))
        attachments.append(
            Attachment(
                filename=part.filename,
                mime_type=part.mime_type,
                url=url,
                attachment_id=attachment_id,
                size=part.body.size if part.body else None,
            )
        )
    return attachments


def message_to_thread_record(
    message: GmailMessage | dict[str, Any],
    account_id: str,
    thread_id: str | None = None,
) -> ThreadRecord:
    """Convert a Gmail API message (format=full) to a ThreadRecord.

    Args:
        message: Gmail API message, typed or as the raw response dict.
        account_id: Id of the account the message was fetched for.
        thread_id: Thread the message belongs to. Defaults to the message's
            own threadId, then its id.

    Returns:
        ThreadRecord: Mapped record without a local id.

    Raises:
        InternalError: If the payload does not look like a Gmail message.
    """

    if not isinstance(message, GmailMessage):
        try:
            message = GmailMessage.model_validate(message)
        except PydanticValidationError as exc:
            raise InternalError(f"Unexpected Gmail message payload: {exc}") from exc

    hm = _header_map(message.payload)

    return ThreadRecord(
        account_id=account_id,
        thread_id=thread_id or message.thread_id or message.id,
        message_id=message.id,
        subject=hm.get("Subject"),
        from_address=hm.get("From"),
        to_address=hm.get("To"),
        cc=hm.get("Cc"),
        bcc=hm.get("Bcc"),
        date=_parse_date(hm.get("Date")),
        received_at=message.internal_datetime,
        body=extract_body(message.payload),
        attachments=extract_attachments(message.id, message.payload),
        label_ids=list(message.label_ids),
    )
