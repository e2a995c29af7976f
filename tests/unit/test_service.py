"""Unit tests for account-level mailbox operations."""

from __future__ import annotations

import pytest

from gmail_sync.exceptions import AttachmentTooLargeError, AuthenticationError, NotFoundError, ValidationError
from gmail_sync.models import OutboundAttachment
from gmail_sync.service import MailboxService, validate_email


class TestAccounts:
    """Test suite for account creation and OAuth completion."""

    def test_create_account_returns_auth_url(self, service: MailboxService, settings) -> None:
        connection = service.create_account("  Alice  ", "alice@example.com")

        assert connection.account.full_name == "Alice"
        assert connection.account.token is None
        assert f"state={connection.account.id}" in connection.auth_url
        assert settings.gmail_scopes[0] in connection.auth_url

    @pytest.mark.parametrize(
        "full_name,email",
        [("", "alice@example.com"), ("Alice", "not-an-email"), ("Alice", "")],
    )
    def test_create_account_validates_input(self, service: MailboxService, full_name, email) -> None:
        with pytest.raises(ValidationError):
            service.create_account(full_name, email)

    def test_update_account(self, service: MailboxService, connected_account) -> None:
        updated = service.update_account(connected_account.id, email="new@example.com")

        assert updated.email == "new@example.com"
        assert updated.full_name == connected_account.full_name

    def test_update_unknown_account(self, service: MailboxService) -> None:
        with pytest.raises(NotFoundError):
            service.update_account("missing", full_name="Nobody")

    @pytest.mark.asyncio
    async def test_complete_oauth_stores_token(self, service: MailboxService, oauth) -> None:
        account = service.create_account("Alice", "alice@example.com").account

        connected = await service.complete_oauth("code-1", account.id)

        assert oauth.exchanged == ["code-1"]
        assert connected.access_token == "access-code-1"
        assert connected.refresh_token == "refresh-code-1"

    @pytest.mark.asyncio
    async def test_complete_oauth_rejects_missing_params(self, service: MailboxService) -> None:
        with pytest.raises(ValidationError):
            await service.complete_oauth("", "state")

    @pytest.mark.asyncio
    async def test_complete_oauth_unknown_account(self, service: MailboxService, oauth) -> None:
        with pytest.raises(NotFoundError):
            await service.complete_oauth("code-1", "missing")
        assert oauth.exchanged == []


class TestMailboxOperations:
    """Test suite for sync, label and send operations."""

    @pytest.mark.asyncio
    async def test_sync_threads(self, service, mail_client, message_factory, connected_account) -> None:
        mail_client.threads["t1"] = [message_factory("m1", "t1")]

        page = await service.sync_threads(connected_account.id)

        assert [r.thread_id for r in page] == ["t1"]

    @pytest.mark.asyncio
    async def test_sync_rejects_bad_page(self, service, connected_account) -> None:
        with pytest.raises(ValidationError):
            await service.sync_threads(connected_account.id, page=0)

    @pytest.mark.asyncio
    async def test_unknown_account_is_not_found(self, service) -> None:
        with pytest.raises(NotFoundError):
            await service.sync_threads("missing")

    @pytest.mark.asyncio
    async def test_unconnected_account_is_unauthorized(self, service, mail_client) -> None:
        account = service.create_account("Alice", "alice@example.com").account

        with pytest.raises(AuthenticationError):
            await service.mark_read(account.id, "t1")
        assert mail_client.calls == []

    @pytest.mark.asyncio
    async def test_trash_thread(self, service, mail_client, message_factory, connected_account) -> None:
        mail_client.threads["t1"] = [message_factory("m1", "t1")]
        await service.sync_threads(connected_account.id)

        trashed = await service.trash_thread(connected_account.id, "t1")

        assert "TRASH" in trashed.label_ids
        assert ("trash_message", "m1") in mail_client.calls

    @pytest.mark.asyncio
    async def test_send_email(self, service, mail_client, connected_account) -> None:
        message_id = await service.send_email(
            connected_account.id,
            "bob@example.com",
            subject="Hi",
            body="<p>Hi</p>",
            attachments=[OutboundAttachment(filename="a.txt", mime_type="text/plain", content=b"hello")],
        )

        assert message_id == "sent-1"
        assert len(mail_client.sent) == 1

    @pytest.mark.asyncio
    async def test_oversized_attachments_rejected_before_sending(
        self, service, mail_client, connected_account, monkeypatch
    ) -> None:
        def _fail(*args, **kwargs):
            raise AssertionError("message should not be built")

        monkeypatch.setattr("gmail_sync.service.build_raw_message", _fail)
        big = OutboundAttachment(filename="big.bin", content=b"\0" * (26 * 1024 * 1024))

        with pytest.raises(AttachmentTooLargeError):
            await service.send_email(connected_account.id, "bob@example.com", attachments=[big])

        assert mail_client.sent == []

    @pytest.mark.asyncio
    async def test_send_email_validates_recipients(self, service, connected_account) -> None:
        with pytest.raises(ValidationError):
            await service.send_email(connected_account.id, "bob@example.com", cc="nope")

    @pytest.mark.asyncio
    async def test_download_attachment(self, service, mail_client, connected_account) -> None:
        mail_client.attachments[("m1", "att-1")] = b"x" * 10
        url = "https://gmail.googleapis.com/gmail/v1/users/me/messages/m1/attachments/att-1"

        download = await service.download_attachment(connected_account.id, url, "a.bin", "")

        chunks = [chunk async for chunk in download.iter_chunks()]
        assert download.mime_type == "application/octet-stream"
        assert b"".join(chunks) == b"x" * 10

    @pytest.mark.asyncio
    async def test_download_inline_attachment(self, service, mail_client, connected_account) -> None:
        mail_client.threads["t1"] = [
            {
                "id": "m1",
                "threadId": "t1",
                "payload": {
                    "mimeType": "multipart/mixed",
                    "parts": [{"partId": "0", "filename": "note.txt", "body": {"data": "aGVsbG8"}}],
                },
            }
        ]
        url = "https://gmail.googleapis.com/gmail/v1/users/me/messages/m1/parts/0"

        download = await service.download_attachment(connected_account.id, url, "note.txt", "text/plain")

        assert b"".join([chunk async for chunk in download.iter_chunks()]) == b"hello"

    @pytest.mark.asyncio
    async def test_download_attachment_rejects_foreign_url(self, service, connected_account) -> None:
        with pytest.raises(ValidationError):
            await service.download_attachment(connected_account.id, "https://example.com/file", "a", "text/plain")


def test_validate_email_optional() -> None:
    assert validate_email(None, "cc", required=False) is None
    assert validate_email(" bob@example.com ", "to") == "bob@example.com"
