"""Custom exceptions for Gmail Sync."""

from __future__ import annotations


class GmailSyncError(Exception):
    """Base exception for all Gmail Sync errors."""


class ValidationError(GmailSyncError):
    """Exception raised for malformed caller input."""


class NotFoundError(GmailSyncError):
    """Exception raised when an account or thread does not exist."""


class AuthenticationError(GmailSyncError):
    """Exception raised when no usable OAuth token is available."""


class GmailAPIError(GmailSyncError):
    """Exception raised for Gmail API related errors."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status

    @property
    def retryable(self) -> bool:
        """Whether the failure is transient (rate limited or server side)."""
        return self.status is not None and (self.status == 429 or 500 <= self.status < 600)


class AttachmentTooLargeError(GmailSyncError):
    """Exception raised when outgoing attachments exceed the size limit."""


class ConfigurationError(GmailSyncError):
    """Exception raised for configuration related errors."""


class InternalError(GmailSyncError):
    """Exception raised for unexpected mapping or storage failures."""
