"""SQLAlchemy-backed repositories for accounts and mirrored threads.

Dates are stored as normalized UTC ISO-8601 text so that lexical ordering in
SQL matches chronological ordering on every supported dialect.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import text
from sqlalchemy.engine import Engine

from gmail_sync.models import Account, Attachment, ThreadRecord, Token, unique_labels

logger = structlog.get_logger()


_ACCOUNT_COLUMNS = (
    "id",
    "full_name",
    "email",
    "access_token",
    "refresh_token",
    "token_type",
    "scope",
    "expiry_date",
)

_UPDATABLE_ACCOUNT_FIELDS = frozenset(_ACCOUNT_COLUMNS) - {"id"}

_THREAD_SELECT = """
    SELECT
        id,
        account_id,
        thread_id,
        message_id,
        subject,
        from_address,
        to_address,
        cc,
        bcc,
        date_iso,
        received_at_iso,
        body,
        attachments_json,
        label_ids_json
    FROM gmail_threads
"""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_iso(value: datetime | None) -> str | None:
    """Normalize a datetime to fixed-width UTC ISO text (naive values are UTC)."""

    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


class AccountRepository:
    """Repository for Gmail accounts and their OAuth tokens."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def create(self, *, full_name: str, email: str) -> Account:
        account = Account(id=str(uuid.uuid4()), full_name=full_name, email=email)

        with self._engine.begin() as conn:
            conn.execute(
                text(
                    """
                    INSERT INTO gmail_accounts (id, full_name, email)
                    VALUES (:id, :full_name, :email)
                    """
                ),
                {"id": account.id, "full_name": account.full_name, "email": account.email},
            )

        logger.info("account_created", account_id=account.id)
        return account

    def get(self, account_id: str) -> Account | None:
        with self._engine.begin() as conn:
            row = (
                conn.execute(
                    text(f"SELECT {', '.join(_ACCOUNT_COLUMNS)} FROM gmail_accounts WHERE id = :id"),
                    {"id": account_id},
                )
                .mappings()
                .fetchone()
            )
        return None if row is None else Account(**dict(row))

    def find_by_email(self, email: str) -> list[Account]:
        """Return every account registered with ``email`` (case-insensitive)."""

        with self._engine.begin() as conn:
            rows = (
                conn.execute(
                    text(
                        f"SELECT {', '.join(_ACCOUNT_COLUMNS)} FROM gmail_accounts "
                        "WHERE LOWER(email) = LOWER(:email) ORDER BY id"
                    ),
                    {"email": email},
                )
                .mappings()
                .all()
            )
        return [Account(**dict(row)) for row in rows]

    def update(self, account_id: str, **fields: Any) -> Account | None:
        """Update the given columns and return the refreshed account.

        Returns:
            The updated account, or None if no account has ``account_id``.
        """

        unknown = set(fields) - _UPDATABLE_ACCOUNT_FIELDS
        if unknown:
            raise ValueError(f"Unknown account fields: {sorted(unknown)}")

        if fields:
            assignments = ", ".join(f"{name} = :{name}" for name in sorted(fields))
            with self._engine.begin() as conn:
                conn.execute(
                    text(f"UPDATE gmail_accounts SET {assignments} WHERE id = :id"),
                    {**fields, "id": account_id},
                )

        return self.get(account_id)

    def save_token(self, account_id: str, token: Token) -> Account | None:
        return self.update(
            account_id,
            access_token=token.access_token,
            refresh_token=token.refresh_token,
            token_type=token.token_type,
            scope=token.scope,
            expiry_date=token.expiry_date,
        )

    def delete(self, account_id: str) -> bool:
        with self._engine.begin() as conn:
            res = conn.execute(text("DELETE FROM gmail_accounts WHERE id = :id"), {"id": account_id})
        return bool(res.rowcount)


class ThreadRepository:
    """Repository for mirrored Gmail threads."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def upsert_many(self, records: list[ThreadRecord]) -> int:
        """Insert or overwrite thread records keyed by (account_id, thread_id).

        When a batch holds several records for the same key, the most recently
        dated one is written. An existing row is only overwritten by a record
        dated at or after it, so pulling older messages never regresses a
        thread to an earlier message.

        Returns:
            Number of distinct thread keys submitted.
        """

        if not records:
            return 0

        latest: dict[tuple[str | None, str], ThreadRecord] = {}
        for record in records:
            key = (record.account_id, record.thread_id)
            current = latest.get(key)
            if current is None or _sort_key(record) >= _sort_key(current):
                latest[key] = record

        now_iso = _now_iso()

        with self._engine.begin() as conn:
            conn.execute(
                text(
                    """
                    INSERT INTO gmail_threads (
                        id,
                        account_id,
                        thread_id,
                        message_id,
                        subject,
                        from_address,
                        to_address,
                        cc,
                        bcc,
                        date_iso,
                        received_at_iso,
                        body,
                        attachments_json,
                        label_ids_json,
                        updated_at_iso
                    )
                    VALUES (
                        :id,
                        :account_id,
                        :thread_id,
                        :message_id,
                        :subject,
                        :from_address,
                        :to_address,
                        :cc,
                        :bcc,
                        :date_iso,
                        :received_at_iso,
                        :body,
                        :attachments_json,
                        :label_ids_json,
                        :updated_at_iso
                    )
                    ON CONFLICT (account_id, thread_id) DO UPDATE SET
                        message_id = excluded.message_id,
                        subject = excluded.subject,
                        from_address = excluded.from_address,
                        to_address = excluded.to_address,
                        cc = excluded.cc,
                        bcc = excluded.bcc,
                        date_iso = excluded.date_iso,
                        received_at_iso = excluded.received_at_iso,
                        body = excluded.body,
                        attachments_json = excluded.attachments_json,
                        label_ids_json = excluded.label_ids_json,
                        updated_at_iso = excluded.updated_at_iso
                    WHERE gmail_threads.date_iso IS NULL
                        OR excluded.date_iso >= gmail_threads.date_iso
                    """
                ),
                [
                    {
                        "id": r.id or str(uuid.uuid4()),
                        "account_id": r.account_id,
                        "thread_id": r.thread_id,
                        "message_id": r.message_id,
                        "subject": r.subject,
                        "from_address": r.from_address,
                        "to_address": r.to_address,
                        "cc": r.cc,
                        "bcc": r.bcc,
                        "date_iso": to_iso(r.date),
                        "received_at_iso": to_iso(r.received_at),
                        "body": r.body,
                        "attachments_json": (
                            None
                            if r.attachments is None
                            else json.dumps([a.model_dump() for a in r.attachments])
                        ),
                        "label_ids_json": _labels_json(r.label_ids),
                        "updated_at_iso": now_iso,
                    }
                    for r in latest.values()
                ],
            )

        logger.debug("threads_upserted", received=len(records), written=len(latest))
        return len(latest)

    def get(self, account_id: str, thread_id: str) -> ThreadRecord | None:
        with self._engine.begin() as conn:
            row = (
                conn.execute(
                    text(_THREAD_SELECT + " WHERE account_id = :account_id AND thread_id = :thread_id"),
                    {"account_id": account_id, "thread_id": thread_id},
                )
                .mappings()
                .fetchone()
            )
        return None if row is None else self._row_to_record(row)

    def latest_date(self, account_id: str | None = None) -> datetime | None:
        """Latest receive time among stored threads (all accounts when None).

        Uses Gmail's internalDate where stored and falls back to the
        sender-supplied Date header.
        """

        return self._date_bound("MAX", account_id)

    def oldest_date(self, account_id: str | None = None) -> datetime | None:
        """Earliest receive time among stored threads, with the same fallback."""

        return self._date_bound("MIN", account_id)

    def page_for_account(self, account_id: str, page: int, page_size: int) -> list[ThreadRecord]:
        """Return one page of the account's threads, newest first.

        Threads without a date sort after every dated thread.
        """

        offset = max(page - 1, 0) * page_size
        with self._engine.begin() as conn:
            rows = (
                conn.execute(
                    text(
                        _THREAD_SELECT
                        + """
                        WHERE account_id = :account_id
                        ORDER BY
                            CASE WHEN date_iso IS NULL THEN 1 ELSE 0 END,
                            date_iso DESC,
                            id ASC
                        LIMIT :limit OFFSET :offset
                        """
                    ),
                    {"account_id": account_id, "limit": page_size, "offset": offset},
                )
                .mappings()
                .all()
            )
        return [self._row_to_record(row) for row in rows]

    def update_labels(self, record_id: str, label_ids: list[str]) -> None:
        with self._engine.begin() as conn:
            conn.execute(
                text(
                    """
                    UPDATE gmail_threads
                    SET label_ids_json = :label_ids_json, updated_at_iso = :updated_at_iso
                    WHERE id = :id
                    """
                ),
                {
                    "id": record_id,
                    "label_ids_json": _labels_json(label_ids),
                    "updated_at_iso": _now_iso(),
                },
            )

    def count(self, account_id: str | None = None) -> int:
        query = "SELECT COUNT(*) FROM gmail_threads"
        params: dict[str, Any] = {}
        if account_id is not None:
            query += " WHERE account_id = :account_id"
            params["account_id"] = account_id

        with self._engine.begin() as conn:
            return int(conn.execute(text(query), params).scalar() or 0)

    def _date_bound(self, aggregate: str, account_id: str | None) -> datetime | None:
        query = f"SELECT {aggregate}(COALESCE(received_at_iso, date_iso)) FROM gmail_threads"
        params: dict[str, Any] = {}
        if account_id is not None:
            query += " WHERE account_id = :account_id"
            params["account_id"] = account_id

        with self._engine.begin() as conn:
            value = conn.execute(text(query), params).scalar()
        return from_iso(value)

    def _row_to_record(self, row: Any) -> ThreadRecord:
        attachments_raw = row["attachments_json"]
        labels_raw = row["label_ids_json"]

        return ThreadRecord(
            id=row["id"],
            account_id=row["account_id"],
            thread_id=row["thread_id"],
            message_id=row["message_id"],
            subject=row["subject"],
            from_address=row["from_address"],
            to_address=row["to_address"],
            cc=row["cc"],
            bcc=row["bcc"],
            date=from_iso(row["date_iso"]),
            received_at=from_iso(row["received_at_iso"]),
            body=row["body"],
            attachments=(
                None
                if attachments_raw is None
                else [Attachment(**a) for a in json.loads(attachments_raw)]
            ),
            label_ids=None if labels_raw is None else json.loads(labels_raw),
        )


def _labels_json(labels: list[str] | None) -> str | None:
    deduped = unique_labels(labels)
    return None if deduped is None else json.dumps(deduped)


def _sort_key(record: ThreadRecord) -> str:
    return to_iso(record.date) or ""
