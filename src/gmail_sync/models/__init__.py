"""Data models for Gmail Sync.

This module contains Pydantic models for the locally stored account and
thread records and the values exchanged with the OAuth provider.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from gmail_sync.models.gmail import (
    GmailMessage,
    GmailThread,
    MessageHeader,
    MessagePart,
    MessagePartBody,
    ThreadListPage,
    ThreadRef,
)

LABEL_INBOX = "INBOX"
LABEL_TRASH = "TRASH"
LABEL_UNREAD = "UNREAD"


def unique_labels(labels: list[str] | None) -> list[str] | None:
    """Drop duplicate labels while keeping first-seen order."""

    if labels is None:
        return None
    return list(dict.fromkeys(str(label) for label in labels if label))


class Token(BaseModel):
    """OAuth token fields stored on an account."""

    access_token: str = Field(description="OAuth access token")
    refresh_token: str | None = Field(default=None, description="OAuth refresh token")
    scope: str | None = Field(default=None, description="Space separated granted scopes")
    token_type: str | None = Field(default=None, description="Token type, usually Bearer")
    expiry_date: int | None = Field(
        default=None, description="Access token expiry in milliseconds since epoch"
    )

    def is_expired(self, now_ms: int) -> bool:
        return self.expiry_date is not None and self.expiry_date <= now_ms

    def merged_with(self, refreshed: Token) -> Token:
        """Overlay a refreshed token, keeping prior values the provider omitted."""

        return Token(
            access_token=refreshed.access_token,
            refresh_token=refreshed.refresh_token or self.refresh_token,
            scope=refreshed.scope or self.scope,
            token_type=refreshed.token_type or self.token_type,
            expiry_date=(
                refreshed.expiry_date if refreshed.expiry_date is not None else self.expiry_date
            ),
        )


class Account(BaseModel):
    """A connected Gmail account."""

    id: str = Field(description="Local account id")
    full_name: str = Field(description="Display name")
    email: str = Field(description="Email address")
    access_token: str | None = Field(default=None)
    refresh_token: str | None = Field(default=None)
    token_type: str | None = Field(default=None)
    scope: str | None = Field(default=None)
    expiry_date: int | None = Field(default=None)

    @property
    def token(self) -> Token | None:
        """Token view of the account, or None until OAuth has completed."""

        if not self.access_token:
            return None
        return Token(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            scope=self.scope,
            token_type=self.token_type,
            expiry_date=self.expiry_date,
        )


class Attachment(BaseModel):
    """Attachment metadata extracted from a message part."""

    filename: str
    mime_type: str | None = None
    url: str = Field(description="Download URL built from the message and attachment ids")
    attachment_id: str | None = Field(default=None, description="Gmail attachment id")
    size: int | None = None


class ThreadRecord(BaseModel):
    """A mirrored Gmail thread as stored locally."""

    id: str | None = Field(default=None, description="Local row id, assigned on insert")
    account_id: str | None = Field(default=None, description="Owning account id")
    thread_id: str = Field(description="Gmail thread id")
    message_id: str | None = Field(default=None, description="Gmail id of the mirrored message")

    subject: str | None = None
    from_address: str | None = Field(default=None, description="Raw From header")
    to_address: str | None = Field(default=None, description="Raw To header")
    cc: str | None = None
    bcc: str | None = None

    date: datetime | None = Field(default=None, description="Parsed Date header, None if unknown")
    received_at: datetime | None = Field(
        default=None, description="Gmail internalDate of the mirrored message"
    )
    body: str | None = Field(default=None, description="Decoded message body")
    attachments: list[Attachment] | None = None
    label_ids: list[str] | None = None

    @field_validator("label_ids")
    @classmethod
    def _dedupe_labels(cls, v: list[str] | None) -> list[str] | None:
        return unique_labels(v)


class OutboundAttachment(BaseModel):
    """A file attached to an outgoing email."""

    filename: str
    mime_type: str = "application/octet-stream"
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


__all__ = [
    "LABEL_INBOX",
    "LABEL_TRASH",
    "LABEL_UNREAD",
    "Account",
    "Attachment",
    "GmailMessage",
    "GmailThread",
    "MessageHeader",
    "MessagePart",
    "MessagePartBody",
    "OutboundAttachment",
    "ThreadListPage",
    "ThreadRecord",
    "ThreadRef",
    "Token",
    "unique_labels",
]
