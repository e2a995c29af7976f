"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import base64
from typing import Any

import pytest

from gmail_sync.config import Settings
from gmail_sync.exceptions import GmailAPIError
from gmail_sync.models import GmailMessage, GmailThread, ThreadListPage, ThreadRef, Token
from gmail_sync.service import MailboxService
from gmail_sync.store import AccountRepository, ThreadRepository, create_db_engine, initialize_schema

FAR_FUTURE_MS = 4_102_444_800_000  # 2100-01-01
LONG_AGO_MS = 946_684_800_000  # 2000-01-01


def b64url(value: str | bytes) -> str:
    raw = value.encode("utf-8") if isinstance(value, str) else value
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


class FakeMailClient:
    """In-memory stand-in for the Gmail API client.

    ``threads`` maps a thread id to the full message dicts Gmail would return.
    """

    def __init__(self) -> None:
        self.threads: dict[str, list[dict[str, Any]]] = {}
        self.attachments: dict[tuple[str, str], bytes] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.sent: list[str] = []
        self.fail_list = False
        self.fail_threads: set[str] = set()
        self.fail_mutations = False

    async def list_threads(
        self,
        *,
        page_token: str | None = None,
        since: Any = None,
        is_latest: bool = True,
        max_results: int = 50,
    ) -> ThreadListPage:
        self.calls.append(("list_threads", since, is_latest, max_results))
        if self.fail_list:
            raise GmailAPIError("listing failed", status=500)
        ids = list(self.threads)[:max_results]
        return ThreadListPage(threads=[ThreadRef(id=i) for i in ids])

    async def get_thread(self, thread_id: str) -> GmailThread:
        self.calls.append(("get_thread", thread_id))
        if thread_id in self.fail_threads:
            raise GmailAPIError(f"thread {thread_id} failed", status=500)
        return GmailThread.model_validate({"id": thread_id, "messages": self.threads[thread_id]})

    async def get_message(self, message_id: str) -> GmailMessage:
        self.calls.append(("get_message", message_id))
        for messages in self.threads.values():
            for message in messages:
                if message["id"] == message_id:
                    return GmailMessage.model_validate(message)
        raise GmailAPIError(f"message {message_id} not found", status=404)

    async def send_message(self, raw: str) -> dict[str, Any]:
        self.calls.append(("send_message",))
        self.sent.append(raw)
        return {"id": f"sent-{len(self.sent)}", "threadId": "sent-thread"}

    async def modify_message(
        self,
        message_id: str,
        *,
        add_label_ids: list[str] | None = None,
        remove_label_ids: list[str] | None = None,
    ) -> None:
        self.calls.append(("modify_message", message_id, add_label_ids, remove_label_ids))
        self._maybe_fail()

    async def trash_message(self, message_id: str) -> None:
        self.calls.append(("trash_message", message_id))
        self._maybe_fail()

    async def untrash_message(self, message_id: str) -> None:
        self.calls.append(("untrash_message", message_id))
        self._maybe_fail()

    async def get_attachment(self, message_id: str, attachment_id: str) -> bytes:
        self.calls.append(("get_attachment", message_id, attachment_id))
        try:
            return self.attachments[(message_id, attachment_id)]
        except KeyError:
            raise GmailAPIError("attachment not found", status=404) from None

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]

    def _maybe_fail(self) -> None:
        if self.fail_mutations:
            raise GmailAPIError("mutation rejected", status=400)


class FakeOAuthProvider:
    """OAuth provider that never leaves the process."""

    def __init__(self) -> None:
        self.exchanged: list[str] = []
        self.refresh_calls: list[str] = []
        self.refresh_error: Exception | None = None
        self.refreshed = Token(access_token="refreshed-access", expiry_date=FAR_FUTURE_MS)

    def build_auth_url(self, scopes: list[str], state: str) -> str:
        return f"https://accounts.example.com/o/oauth2/auth?state={state}&scope={'+'.join(scopes)}"

    async def exchange_code(self, code: str) -> Token:
        self.exchanged.append(code)
        return Token(
            access_token=f"access-{code}",
            refresh_token=f"refresh-{code}",
            scope="https://www.googleapis.com/auth/gmail.modify",
            token_type="Bearer",
            expiry_date=FAR_FUTURE_MS,
        )

    async def refresh_token(self, refresh_token: str) -> Token:
        self.refresh_calls.append(refresh_token)
        if self.refresh_error is not None:
            raise self.refresh_error
        return self.refreshed


def build_message(
    message_id: str,
    thread_id: str,
    *,
    internal_date: int = 1_704_103_200_000,
    subject: str = "Quarterly report",
    date_header: str | None = "Mon, 01 Jan 2024 10:00:00 +0000",
    labels: tuple[str, ...] = ("INBOX", "UNREAD"),
    html: str | None = "<p>Hello</p>",
    plain: str | None = "Hello",
    attachments: tuple[tuple[str, str, str], ...] = (),
) -> dict[str, Any]:
    """Build a Gmail ``format=full`` message dict.

    ``attachments`` holds (filename, mime type, attachment id) triples.
    """

    headers = [
        {"name": "Subject", "value": subject},
        {"name": "From", "value": "Alice <alice@example.com>"},
        {"name": "To", "value": "bob@example.com"},
    ]
    if date_header is not None:
        headers.append({"name": "Date", "value": date_header})

    parts: list[dict[str, Any]] = []
    if plain is not None:
        parts.append({"partId": "0", "mimeType": "text/plain", "body": {"data": b64url(plain)}})
    if html is not None:
        parts.append({"partId": "1", "mimeType": "text/html", "body": {"data": b64url(html)}})
    for index, (filename, mime_type, attachment_id) in enumerate(attachments, start=2):
        parts.append(
            {
                "partId": str(index),
                "mimeType": mime_type,
                "filename": filename,
                "body": {"attachmentId": attachment_id, "size": 12},
            }
        )

    return {
        "id": message_id,
        "threadId": thread_id,
        "labelIds": list(labels),
        "snippet": subject,
        "internalDate": str(internal_date),
        "payload": {"mimeType": "multipart/mixed", "headers": headers, "body": {"size": 0}, "parts": parts},
    }


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Provide settings backed by a throwaway SQLite file."""
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'gmail_sync.sqlite3'}",
        gmail_credentials_path=tmp_path / "credentials.json",
        sync_page_size=10,
        log_level="DEBUG",
        retry_delay=0.0,
    )


@pytest.fixture
def engine(settings: Settings):
    engine = create_db_engine(settings.database_url)
    initialize_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def accounts(engine) -> AccountRepository:
    return AccountRepository(engine)


@pytest.fixture
def threads(engine) -> ThreadRepository:
    return ThreadRepository(engine)


@pytest.fixture
def mail_client() -> FakeMailClient:
    return FakeMailClient()


@pytest.fixture
def oauth() -> FakeOAuthProvider:
    return FakeOAuthProvider()


@pytest.fixture
def connected_account(accounts: AccountRepository):
    """An account that has completed OAuth with a token valid until 2100."""
    account = accounts.create(full_name="Alice Example", email="alice@example.com")
    return accounts.save_token(
        account.id,
        Token(
            access_token="stored-access",
            refresh_token="stored-refresh",
            scope="https://www.googleapis.com/auth/gmail.modify",
            token_type="Bearer",
            expiry_date=FAR_FUTURE_MS,
        ),
    )


@pytest.fixture
def service(accounts, threads, oauth, settings, mail_client) -> MailboxService:
    return MailboxService(
        accounts,
        threads,
        oauth,
        settings,
        client_factory=lambda token: mail_client,
    )


@pytest.fixture
def message_factory():
    """Provide ``build_message`` for tests that assemble Gmail payloads."""
    return build_message
