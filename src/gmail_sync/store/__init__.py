"""Relational storage for accounts and mirrored threads."""

from .engine import create_db_engine, initialize_schema
from .repository import AccountRepository, ThreadRepository

__all__ = ["AccountRepository", "ThreadRepository", "create_db_engine", "initialize_schema"]
