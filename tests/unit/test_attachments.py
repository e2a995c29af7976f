"""Unit tests for attachment downloads."""

import pytest

from gmail_sync.attachments import (
    AttachmentDownload,
    AttachmentRef,
    fetch_attachment,
    parse_attachment_url,
)
from gmail_sync.exceptions import GmailAPIError, NotFoundError, ValidationError
from gmail_sync.gmail.parsing import attachment_url, message_to_thread_record, part_url


def _inline_message(message_id: str = "m1") -> dict:
    return {
        "id": message_id,
        "threadId": "t1",
        "payload": {
            "mimeType": "multipart/mixed",
            "parts": [
                {"partId": "0", "mimeType": "text/plain", "body": {"data": "Ym9keQ"}},
                {
                    "partId": "1",
                    "mimeType": "text/plain",
                    "filename": "note.txt",
                    "body": {"data": "aGVsbG8", "size": 5},
                },
            ],
        },
    }


def test_parse_attachment_url_inverts_template() -> None:
    ref = parse_attachment_url(attachment_url("msg-1", "ANGjdJ_x-9"))

    assert ref == AttachmentRef(message_id="msg-1", attachment_id="ANGjdJ_x-9")


def test_parse_part_url_names_the_part() -> None:
    ref = parse_attachment_url(part_url("msg-1", "1.2"))

    assert ref == AttachmentRef(message_id="msg-1", part_id="1.2")


@pytest.mark.parametrize(
    "url",
    [
        "",
        "https://example.com/gmail/v1/users/me/messages/m1/attachments/a1",
        "https://gmail.googleapis.com/gmail/v1/users/me/messages/m1",
        "https://gmail.googleapis.com/gmail/v1/users/me/messages/m1/attachments/",
        "https://gmail.googleapis.com/gmail/v1/users/me/messages/m1/parts/",
    ],
)
def test_parse_attachment_url_rejects_other_urls(url) -> None:
    with pytest.raises(ValidationError):
        parse_attachment_url(url)


@pytest.mark.asyncio
async def test_chunks_cover_content_in_order() -> None:
    download = AttachmentDownload(filename="f", mime_type="text/plain", content=b"abcdefghij", chunk_size=4)

    chunks = [chunk async for chunk in download.iter_chunks()]

    assert chunks == [b"abcd", b"efgh", b"ij"]
    assert download.size == 10


@pytest.mark.asyncio
async def test_fetch_failure_surfaces_before_streaming(mail_client) -> None:
    with pytest.raises(GmailAPIError):
        await fetch_attachment(mail_client, attachment_url("m1", "missing"), "f", "text/plain")


@pytest.mark.asyncio
async def test_inline_part_is_read_from_the_message(mail_client) -> None:
    mail_client.threads["t1"] = [_inline_message()]
    [attachment] = message_to_thread_record(_inline_message(), "a").attachments

    download = await fetch_attachment(mail_client, attachment.url, attachment.filename, attachment.mime_type)

    assert download.content == b"hello"
    assert download.mime_type == "text/plain"
    assert mail_client.call_names() == ["get_message"]


@pytest.mark.asyncio
async def test_part_stored_out_of_line_uses_attachment_api(mail_client) -> None:
    message = _inline_message()
    message["payload"]["parts"][1]["body"] = {"attachmentId": "att-9", "size": 3}
    mail_client.threads["t1"] = [message]
    mail_client.attachments[("m1", "att-9")] = b"big"

    download = await fetch_attachment(mail_client, part_url("m1", "1"), "note.txt", "text/plain")

    assert download.content == b"big"
    assert mail_client.call_names() == ["get_message", "get_attachment"]


@pytest.mark.asyncio
async def test_unknown_part_is_not_found(mail_client) -> None:
    mail_client.threads["t1"] = [_inline_message()]

    with pytest.raises(NotFoundError):
        await fetch_attachment(mail_client, part_url("m1", "7"), "f", "text/plain")
