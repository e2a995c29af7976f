"""Account-level operations exposed to the HTTP layer and the CLI.

Each operation either completes or raises one ``GmailSyncError`` subclass;
callers never see partial state.
"""

from __future__ import annotations

import re
from typing import Protocol

import structlog
from pydantic import BaseModel

from gmail_sync.attachments import AttachmentDownload, fetch_attachment
from gmail_sync.config import Settings
from gmail_sync.exceptions import (
    AttachmentTooLargeError,
    AuthenticationError,
    NotFoundError,
    ValidationError,
)
from gmail_sync.gmail.client import MailClient
from gmail_sync.gmail.mime import build_raw_message
from gmail_sync.labels import LabelReconciler
from gmail_sync.models import Account, OutboundAttachment, ThreadRecord, Token
from gmail_sync.store import AccountRepository, ThreadRepository
from gmail_sync.sync import ThreadSyncEngine
from gmail_sync.tokens import ClientFactory, TokenManager

logger = structlog.get_logger()

_EMAIL_RE = re.compile(r"^[^@\s<>,;]+@[^@\s<>,;]+\.[^@\s<>,;]+$")


class OAuthProvider(Protocol):
    def build_auth_url(self, scopes: list[str], state: str) -> str: ...

    async def exchange_code(self, code: str) -> Token: ...

    async def refresh_token(self, refresh_token: str) -> Token: ...


class AccountConnection(BaseModel):
    """A newly created account and the URL that completes its OAuth consent."""

    account: Account
    auth_url: str


def validate_email(value: str | None, field: str, *, required: bool = True) -> str | None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None
    value = value.strip()
    if not _EMAIL_RE.match(value):
        raise ValidationError(f"{field} must be a valid email address")
    return value


def validate_name(value: str | None) -> str:
    if value is None or not value.strip():
        raise ValidationError("full_name must be a non-empty string")
    return value.strip()


class MailboxService:
    """Entry point for account, sync, label and send operations."""

    def __init__(
        self,
        accounts: AccountRepository,
        threads: ThreadRepository,
        oauth: OAuthProvider,
        settings: Settings | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        from gmail_sync.config import get_settings

        self.settings = settings or get_settings()
        self.accounts = accounts
        self.threads = threads
        self.oauth = oauth
        self.tokens = TokenManager(accounts, oauth, self.settings, client_factory=client_factory)
        self.sync_engine = ThreadSyncEngine(threads, self.settings)
        self.labels = LabelReconciler(threads)

    # Accounts

    def create_account(self, full_name: str, email: str) -> AccountConnection:
        """Register an account and return the consent URL for it."""

        account = self.accounts.create(
            full_name=validate_name(full_name),
            email=validate_email(email, "email"),
        )
        try:
            auth_url = self.oauth.build_auth_url(self.settings.gmail_scopes, account.id)
        except Exception:
            self.accounts.delete(account.id)
            raise
        return AccountConnection(account=account, auth_url=auth_url)

    def update_account(
        self,
        account_id: str,
        *,
        full_name: str | None = None,
        email: str | None = None,
    ) -> Account:
        fields: dict[str, str] = {}
        if full_name is not None:
            fields["full_name"] = validate_name(full_name)
        if email is not None:
            fields["email"] = validate_email(email, "email")

        account = self.accounts.update(account_id, **fields)
        if account is None:
            raise NotFoundError(f"Account {account_id} not found")
        return account

    async def complete_oauth(self, code: str, state: str) -> Account:
        """Handle the OAuth redirect: ``state`` is the account id."""

        if not code or not state:
            raise ValidationError("code and state are required")

        if self.accounts.get(state) is None:
            raise NotFoundError(f"Account {state} not found")

        token = await self.oauth.exchange_code(code)
        account = self.accounts.save_token(state, token)
        if account is None:
            raise NotFoundError(f"Account {state} not found")

        logger.info("oauth_completed", account_id=state, scope=token.scope)
        return account

    # Sync

    async def sync_threads(
        self,
        account_id: str,
        page: int = 1,
        page_size: int | None = None,
    ) -> list[ThreadRecord]:
        if page < 1:
            raise ValidationError("page must be >= 1")
        if page_size is not None and page_size < 1:
            raise ValidationError("page_size must be >= 1")

        client = await self._client_for(account_id)
        return await self.sync_engine.sync(client, account_id, page=page, page_size=page_size)

    # Labels

    async def trash_thread(self, account_id: str, thread_id: str) -> ThreadRecord:
        client = await self._client_for(account_id)
        return await self.labels.trash(client, account_id, thread_id)

    async def restore_thread(self, account_id: str, thread_id: str) -> ThreadRecord:
        client = await self._client_for(account_id)
        return await self.labels.restore(client, account_id, thread_id)

    async def mark_read(self, account_id: str, thread_id: str) -> ThreadRecord:
        client = await self._client_for(account_id)
        return await self.labels.mark_read(client, account_id, thread_id)

    async def mark_unread(self, account_id: str, thread_id: str) -> ThreadRecord:
        client = await self._client_for(account_id)
        return await self.labels.mark_unread(client, account_id, thread_id)

    # Attachments and sending

    async def download_attachment(
        self,
        account_id: str,
        url: str,
        filename: str,
        mime_type: str,
    ) -> AttachmentDownload:
        if not filename:
            raise ValidationError("filename is required")

        client = await self._client_for(account_id)
        return await fetch_attachment(
            client,
            url,
            filename,
            mime_type,
            chunk_size=self.settings.attachment_chunk_size,
        )

    async def send_email(
        self,
        account_id: str,
        to: str,
        *,
        cc: str | None = None,
        bcc: str | None = None,
        subject: str | None = None,
        body: str | None = None,
        attachments: list[OutboundAttachment] | None = None,
    ) -> str:
        """Send an email from the account and return Gmail's message id.

        Raises:
            AttachmentTooLargeError: If the attachments exceed the size limit.
                Checked before the message is built.
        """

        attachments = attachments or []
        to = validate_email(to, "to")
        cc = validate_email(cc, "cc", required=False)
        bcc = validate_email(bcc, "bcc", required=False)

        total = sum(a.size for a in attachments)
        if total > self.settings.max_attachment_bytes:
            raise AttachmentTooLargeError(
                f"Attachments total {total} bytes; limit is {self.settings.max_attachment_bytes}"
            )

        account = self._account(account_id)
        client = await self._client_for(account_id)

        raw = build_raw_message(
            account.email,
            to,
            attachments,
            subject=subject,
            body=body,
            cc=cc,
            bcc=bcc,
        )
        sent = await client.send_message(raw)

        message_id = str(sent.get("id") or "")
        logger.info(
            "email_sent",
            account_id=account_id,
            message_id=message_id,
            attachments=len(attachments),
        )
        return message_id

    def _account(self, account_id: str) -> Account:
        account = self.accounts.get(account_id)
        if account is None:
            raise NotFoundError(f"Account {account_id} not found")
        return account

    async def _client_for(self, account_id: str) -> MailClient:
        self._account(account_id)
        client = await self.tokens.prepare_client(account_id)
        if client is None:
            raise AuthenticationError(f"No usable Gmail token for account {account_id}")
        return client
