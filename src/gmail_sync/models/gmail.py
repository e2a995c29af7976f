"""Typed views of Gmail API payloads.

Only the fields the sync, mapping and label code depend on are modelled.
Everything is optional because Gmail omits empty fields.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class _GmailModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class MessageHeader(_GmailModel):
    name: str
    value: str = ""


class MessagePartBody(_GmailModel):
    attachment_id: str | None = Field(default=None, alias="attachmentId")
    size: int | None = None
    data: str | None = Field(default=None, description="base64url encoded content")


class MessagePart(_GmailModel):
    part_id: str | None = Field(default=None, alias="partId")
    mime_type: str | None = Field(default=None, alias="mimeType")
    filename: str | None = None
    headers: list[MessageHeader] = Field(default_factory=list)
    body: MessagePartBody | None = None
    parts: list[MessagePart] = Field(default_factory=list)


class GmailMessage(_GmailModel):
    id: str
    thread_id: str | None = Field(default=None, alias="threadId")
    label_ids: list[str] = Field(default_factory=list, alias="labelIds")
    snippet: str | None = None
    internal_date: int | None = Field(
        default=None, alias="internalDate", description="Milliseconds since epoch"
    )
    payload: MessagePart | None = None

    @property
    def internal_datetime(self) -> datetime | None:
        if self.internal_date is None:
            return None
        return datetime.fromtimestamp(self.internal_date / 1000.0, tz=timezone.utc)


class GmailThread(_GmailModel):
    id: str
    messages: list[GmailMessage] = Field(default_factory=list)


class ThreadRef(_GmailModel):
    id: str


class ThreadListPage(_GmailModel):
    threads: list[ThreadRef] = Field(default_factory=list)
    next_page_token: str | None = Field(default=None, alias="nextPageToken")
