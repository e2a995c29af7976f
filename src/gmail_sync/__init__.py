"""Gmail Sync - mirror Gmail threads into a local relational store.

This package keeps per-account OAuth credentials valid, pulls newer and older
threads into a local database, and pushes mailbox changes (send, trash,
read state) back to Gmail.
"""

__version__ = "0.1.0"

from gmail_sync.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__"]
