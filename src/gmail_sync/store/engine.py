"""Database engine construction and schema bootstrap.

The schema is created idempotently at startup so both fresh SQLite files and
existing Postgres databases can be used without a migration tool.
"""

from __future__ import annotations

import structlog
from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine

logger = structlog.get_logger()


_SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS gmail_accounts (
        id VARCHAR(36) PRIMARY KEY,
        full_name TEXT NOT NULL,
        email TEXT NOT NULL,
        access_token TEXT,
        refresh_token TEXT,
        token_type TEXT,
        scope TEXT,
        expiry_date BIGINT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS gmail_threads (
        id VARCHAR(36) PRIMARY KEY,
        account_id VARCHAR(36) REFERENCES gmail_accounts(id) ON DELETE SET NULL,
        thread_id TEXT NOT NULL,
        message_id TEXT,
        subject TEXT,
        from_address TEXT,
        to_address TEXT,
        cc TEXT,
        bcc TEXT,
        date_iso TEXT,
        received_at_iso TEXT,
        body TEXT,
        attachments_json TEXT,
        label_ids_json TEXT,
        updated_at_iso TEXT NOT NULL,
        UNIQUE (account_id, thread_id)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_gmail_threads_account_date
        ON gmail_threads(account_id, date_iso)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_gmail_threads_date
        ON gmail_threads(date_iso)
    """,
)


_ADDED_THREAD_COLUMNS: tuple[tuple[str, str], ...] = (("received_at_iso", "TEXT"),)


def create_db_engine(database_url: str) -> Engine:
    """Create a SQLAlchemy engine for ``database_url``.

    SQLite connections get foreign key enforcement switched on so that
    deleting an account clears ``gmail_threads.account_id``.
    """

    engine = create_engine(database_url)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def initialize_schema(engine: Engine) -> None:
    """Create the accounts and threads tables if they do not exist."""

    with engine.begin() as conn:
        for statement in _SCHEMA_STATEMENTS:
            conn.execute(text(statement))
        # Tables created before a column existed get it added in place.
        existing = {c["name"] for c in inspect(conn).get_columns("gmail_threads")}
        for column, ddl_type in _ADDED_THREAD_COLUMNS:
            if column not in existing:
                conn.execute(text(f"ALTER TABLE gmail_threads ADD COLUMN {column} {ddl_type}"))

    logger.info("database_schema_ready", dialect=engine.dialect.name)
