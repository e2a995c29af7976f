"""Gmail API integration: client, OAuth, message mapping and MIME building."""

from .client import GmailClient, MailClient
from .oauth import GoogleOAuthProvider, build_gmail_client

__all__ = ["GmailClient", "GoogleOAuthProvider", "MailClient", "build_gmail_client"]
