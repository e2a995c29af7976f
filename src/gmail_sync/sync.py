"""Incremental thread synchronization.

Page 1 pulls threads newer than the most recently dated local thread; later
pages pull threads older than the least recently dated one. The caller always
gets a page read back from local storage, so pagination is the same whether
or not the remote fetch returned anything.
"""

from __future__ import annotations

import asyncio
from datetime import datetime

import structlog

from gmail_sync.config import Settings
from gmail_sync.gmail.client import MailClient
from gmail_sync.gmail.parsing import message_to_thread_record
from gmail_sync.models import GmailMessage, ThreadRecord
from gmail_sync.store import ThreadRepository

logger = structlog.get_logger()


def filter_messages(
    messages: list[GmailMessage],
    cursor: datetime | None,
    is_latest: bool,
) -> list[GmailMessage]:
    """Keep messages strictly after (latest) or before (older) the cursor.

    Without a cursor every message is kept. Messages with no internal date
    cannot be placed relative to a cursor and are dropped.
    """

    if cursor is None:
        return list(messages)

    kept: list[GmailMessage] = []
    for message in messages:
        ts = message.internal_datetime
        if ts is None:
            continue
        if (ts > cursor) if is_latest else (ts < cursor):
            kept.append(message)
    return kept


class ThreadSyncEngine:
    """Pulls Gmail threads for an account into the local thread store."""

    def __init__(self, threads: ThreadRepository, settings: Settings | None = None) -> None:
        from gmail_sync.config import get_settings

        self.settings = settings or get_settings()
        self._threads = threads

    def resolve_cursor(self, account_id: str, is_latest: bool) -> datetime | None:
        scope = account_id if self.settings.sync_cursor_scope == "account" else None
        if is_latest:
            return self._threads.latest_date(scope)
        return self._threads.oldest_date(scope)

    async def sync(
        self,
        client: MailClient,
        account_id: str,
        page: int = 1,
        page_size: int | None = None,
    ) -> list[ThreadRecord]:
        """Run one sync pass and return the requested page of local threads.

        Failures on individual threads are logged and skipped.
        """

        page = max(page, 1)
        page_size = page_size or self.settings.sync_page_size
        is_latest = page == 1
        cursor = self.resolve_cursor(account_id, is_latest)

        log = logger.bind(
            account_id=account_id,
            page=page,
            mode="latest" if is_latest else "older",
            cursor=cursor.isoformat() if cursor else None,
        )

        if not is_latest and cursor is None:
            log.info("thread_sync_skipped_empty_store")
            return self._threads.page_for_account(account_id, page, page_size)

        log.info("thread_sync_started")

        try:
            listing = await client.list_threads(since=cursor, is_latest=is_latest, max_results=page_size)
            thread_ids = [t.id for t in listing.threads]
        except Exception as exc:  # noqa: BLE001 - serve local data when listing fails
            log.warning("thread_sync_list_failed", error=str(exc))
            thread_ids = []

        records: list[ThreadRecord] = []
        failed = 0
        for thread_id in thread_ids:
            try:
                records.extend(
                    await self._process_thread(client, account_id, thread_id, cursor, is_latest)
                )
            except Exception as exc:  # noqa: BLE001 - sync pass should continue
                failed += 1
                log.warning("thread_sync_thread_failed", thread_id=thread_id, error=str(exc))

        written = self._threads.upsert_many(records)

        log.info(
            "thread_sync_done",
            listed=len(thread_ids),
            mapped=len(records),
            written=written,
            failed=failed,
        )

        return self._threads.page_for_account(account_id, page, page_size)

    async def _process_thread(
        self,
        client: MailClient,
        account_id: str,
        thread_id: str,
        cursor: datetime | None,
        is_latest: bool,
    ) -> list[ThreadRecord]:
        thread = await client.get_thread(thread_id)
        messages = filter_messages(thread.messages, cursor, is_latest)
        if not messages:
            return []

        details = await asyncio.gather(*(client.get_message(m.id) for m in messages))
        return [message_to_thread_record(d, account_id, thread_id) for d in details]
