"""Gmail API client implementation.

This module provides the remote mail client used by the sync and mutation
services.

Notes:
    The Google API client is synchronous. This project wraps those calls using
    `asyncio.to_thread` so the rest of the codebase can remain async-friendly.
"""

from __future__ import annotations

import asyncio
import math
from datetime import datetime
from typing import Any, Callable, Protocol, TypeVar

import structlog
from googleapiclient.errors import HttpError

from gmail_sync.config import Settings
from gmail_sync.exceptions import GmailAPIError
from gmail_sync.gmail.parsing import decode_base64url
from gmail_sync.models import GmailMessage, GmailThread, ThreadListPage
from gmail_sync.utils import retry_on_failure

logger = structlog.get_logger()

T = TypeVar("T")


class MailClient(Protocol):
    """Operations the sync and mutation services need from a mail provider."""

    async def list_threads(
        self,
        *,
        page_token: str | None = None,
        since: datetime | None = None,
        is_latest: bool = True,
        max_results: int = 50,
    ) -> ThreadListPage: ...

    async def get_thread(self, thread_id: str) -> GmailThread: ...

    async def get_message(self, message_id: str) -> GmailMessage: ...

    async def send_message(self, raw: str) -> dict[str, Any]: ...

    async def modify_message(
        self,
        message_id: str,
        *,
        add_label_ids: list[str] | None = None,
        remove_label_ids: list[str] | None = None,
    ) -> None: ...

    async def trash_message(self, message_id: str) -> None: ...

    async def untrash_message(self, message_id: str) -> None: ...

    async def get_attachment(self, message_id: str, attachment_id: str) -> bytes: ...


def thread_query(since: datetime | None, is_latest: bool) -> str | None:
    """Build the Gmail search query bounding threads by ``since``.

    Gmail's ``after:``/``before:`` operators have second granularity, so the
    bound is widened to whole seconds and callers filter precisely afterwards.
    """

    if since is None:
        return None
    seconds = since.timestamp()
    if is_latest:
        return f"after:{math.floor(seconds)}"
    return f"before:{math.ceil(seconds)}"


def _http_status(err: Exception) -> int | None:
    resp = getattr(err, "resp", None)
    status = getattr(resp, "status", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def _is_transient(err: Exception) -> bool:
    status = _http_status(err)
    return isinstance(err, HttpError) and status is not None and (status == 429 or 500 <= status < 600)


class GmailClient:
    """Gmail API client bound to one account's credentials.

    Instances are cheap; build one per operation with
    :func:`gmail_sync.gmail.oauth.build_gmail_client`.
    """

    def __init__(
        self,
        credentials: Any,
        settings: Settings | None = None,
        service: Any | None = None,
    ) -> None:
        """Initialize Gmail client.

        Args:
            credentials: google.oauth2 credentials used to authorize requests.
            settings: Application settings. If None, uses default settings.
            service: Prebuilt Gmail API resource. Built lazily when None.
        """
        from gmail_sync.config import get_settings

        self.settings = settings or get_settings()
        self._credentials = credentials
        self._service = service

    @property
    def service(self) -> Any:
        if self._service is None:
            # Imported lazily to keep import-time cost low and tests fast.
            from googleapiclient.discovery import build

            # cache_discovery=False prevents writing discovery docs to disk.
            self._service = build("gmail", "v1", credentials=self._credentials, cache_discovery=False)
        return self._service

    async def list_threads(
        self,
        *,
        page_token: str | None = None,
        since: datetime | None = None,
        is_latest: bool = True,
        max_results: int = 50,
    ) -> ThreadListPage:
        """List thread ids newer (``is_latest``) or older than ``since``.

        Raises:
            GmailAPIError: If the API request fails.
        """

        query = thread_query(since, is_latest)
        logger.info("listing_threads", query=query, max_results=max_results, page_token=page_token)

        response = await self._run(
            "list_threads",
            lambda: self._users()
            .threads()
            .list(
                userId=self.settings.gmail_user_id,
                maxResults=max_results,
                q=query,
                pageToken=page_token,
            )
            .execute(),
            retry=True,
        )
        return ThreadListPage.model_validate(response or {})

    async def get_thread(self, thread_id: str) -> GmailThread:
        response = await self._run(
            "get_thread",
            lambda: self._users()
            .threads()
            .get(userId=self.settings.gmail_user_id, id=thread_id, format="full")
            .execute(),
            retry=True,
            thread_id=thread_id,
        )
        return GmailThread.model_validate(response)

    async def get_message(self, message_id: str) -> GmailMessage:
        response = await self._run(
            "get_message",
            lambda: self._users()
            .messages()
            .get(userId=self.settings.gmail_user_id, id=message_id, format="full")
            .execute(),
            retry=True,
            message_id=message_id,
        )
        return GmailMessage.model_validate(response)

    async def send_message(self, raw: str) -> dict[str, Any]:
        """Send a base64url encoded RFC 2822 message.

        Returns:
            The Gmail message resource of the sent message.
        """

        return await self._run(
            "send_message",
            lambda: self._users()
            .messages()
            .send(userId=self.settings.gmail_user_id, body={"raw": raw})
            .execute(),
        )

    async def modify_message(
        self,
        message_id: str,
        *,
        add_label_ids: list[str] | None = None,
        remove_label_ids: list[str] | None = None,
    ) -> None:
        body: dict[str, list[str]] = {}
        if add_label_ids:
            body["addLabelIds"] = list(add_label_ids)
        if remove_label_ids:
            body["removeLabelIds"] = list(remove_label_ids)

        await self._run(
            "modify_message",
            lambda: self._users()
            .messages()
            .modify(userId=self.settings.gmail_user_id, id=message_id, body=body)
            .execute(),
            message_id=message_id,
        )

    async def trash_message(self, message_id: str) -> None:
        await self._run(
            "trash_message",
            lambda: self._users()
            .messages()
            .trash(userId=self.settings.gmail_user_id, id=message_id)
            .execute(),
            message_id=message_id,
        )

    async def untrash_message(self, message_id: str) -> None:
        await self._run(
            "untrash_message",
            lambda: self._users()
            .messages()
            .untrash(userId=self.settings.gmail_user_id, id=message_id)
            .execute(),
            message_id=message_id,
        )

    async def get_attachment(self, message_id: str, attachment_id: str) -> bytes:
        response = await self._run(
            "get_attachment",
            lambda: self._users()
            .messages()
            .attachments()
            .get(userId=self.settings.gmail_user_id, messageId=message_id, id=attachment_id)
            .execute(),
            retry=True,
            message_id=message_id,
        )
        return decode_base64url((response or {}).get("data"))

    def _users(self) -> Any:
        return self.service.users()

    async def _run(
        self,
        operation: str,
        call: Callable[[], T],
        *,
        retry: bool = False,
        **context: Any,
    ) -> T:
        if retry:
            call = retry_on_failure(
                max_retries=self.settings.max_retries,
                delay=self.settings.retry_delay,
                retry_if=_is_transient,
            )(call)

        try:
            return await asyncio.to_thread(call)
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"gmail_{operation}_failed", error=str(exc), **context)
            raise GmailAPIError(str(exc), status=_http_status(exc)) from exc
