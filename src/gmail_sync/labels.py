"""Label reconciliation for trash and read state.

Every change is applied to Gmail first. The local label set is only touched
after the remote call succeeded, so a failed request leaves the stored thread
exactly as it was.
"""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from gmail_sync.exceptions import NotFoundError
from gmail_sync.gmail.client import MailClient
from gmail_sync.models import LABEL_INBOX, LABEL_TRASH, LABEL_UNREAD, ThreadRecord
from gmail_sync.store import ThreadRepository

logger = structlog.get_logger()


def apply_label_delta(
    current: Iterable[str] | None,
    add: Iterable[str] | None = None,
    remove: Iterable[str] | None = None,
    trash: bool | None = None,
) -> list[str]:
    """Return ``current`` with ``remove`` then ``add`` applied, then the trash flag.

    ``trash=True`` adds TRASH and drops INBOX, ``trash=False`` does the
    reverse, ``None`` leaves both alone. The result never contains duplicates.
    """

    labels = list(dict.fromkeys(current or []))

    def _remove(names: Iterable[str]) -> None:
        drop = set(names)
        labels[:] = [label for label in labels if label not in drop]

    def _add(names: Iterable[str]) -> None:
        for name in names:
            if name not in labels:
                labels.append(name)

    _remove(remove or [])
    _add(add or [])

    if trash is True:
        _remove([LABEL_INBOX])
        _add([LABEL_TRASH])
    elif trash is False:
        _remove([LABEL_TRASH])
        _add([LABEL_INBOX])

    return labels


class LabelReconciler:
    """Mirrors label changes to Gmail and then to the local thread row."""

    def __init__(self, threads: ThreadRepository) -> None:
        self._threads = threads

    async def change_labels(
        self,
        client: MailClient,
        account_id: str,
        thread_id: str,
        *,
        add: list[str] | None = None,
        remove: list[str] | None = None,
        trash: bool | None = None,
    ) -> ThreadRecord:
        """Apply a label change remotely, then locally.

        Raises:
            NotFoundError: If the thread is not stored for the account.
            GmailAPIError: If Gmail rejects the change; nothing is stored.
        """

        record = self._threads.get(account_id, thread_id)
        if record is None or record.id is None:
            raise NotFoundError(f"Thread {thread_id} not found for account {account_id}")

        message_id = record.message_id or record.thread_id

        if trash is True:
            await client.trash_message(message_id)
        elif trash is False:
            await client.untrash_message(message_id)
        if add or remove:
            await client.modify_message(message_id, add_label_ids=add, remove_label_ids=remove)

        labels = apply_label_delta(record.label_ids, add=add, remove=remove, trash=trash)
        self._threads.update_labels(record.id, labels)

        logger.info(
            "thread_labels_changed",
            account_id=account_id,
            thread_id=thread_id,
            added=add or [],
            removed=remove or [],
            trash=trash,
        )
        return record.model_copy(update={"label_ids": labels})

    async def trash(self, client: MailClient, account_id: str, thread_id: str) -> ThreadRecord:
        return await self.change_labels(client, account_id, thread_id, trash=True)

    async def restore(self, client: MailClient, account_id: str, thread_id: str) -> ThreadRecord:
        return await self.change_labels(client, account_id, thread_id, trash=False)

    async def mark_read(self, client: MailClient, account_id: str, thread_id: str) -> ThreadRecord:
        return await self.change_labels(client, account_id, thread_id, remove=[LABEL_UNREAD])

    async def mark_unread(self, client: MailClient, account_id: str, thread_id: str) -> ThreadRecord:
        return await self.change_labels(client, account_id, thread_id, add=[LABEL_UNREAD])
