"""Outbound MIME message construction.

Messages are accumulated as typed header and part records and serialized once
into a multipart/mixed document, then base64url encoded for
``users.messages.send``.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from gmail_sync.models import OutboundAttachment

DEFAULT_BOUNDARY = "gmail_sync_boundary"


def encode_subject(subject: str) -> str:
    """Encode a subject as a single RFC 2047 base64 encoded-word."""

    encoded = base64.b64encode(subject.encode("utf-8")).decode("ascii")
    return f"=?utf-8?B?{encoded}?="


def encode_base64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


@dataclass(frozen=True)
class MimeHeader:
    name: str
    value: str


@dataclass
class OutboundMessageBuilder:
    """Accumulates headers, an HTML body and attachments for one message."""

    boundary: str = DEFAULT_BOUNDARY
    headers: list[MimeHeader] = field(default_factory=list)
    html_body: str = ""
    attachments: list[OutboundAttachment] = field(default_factory=list)

    def add_header(self, name: str, value: str | None) -> OutboundMessageBuilder:
        if value:
            self.headers.append(MimeHeader(name, value))
        return self

    def set_html_body(self, body: str | None) -> OutboundMessageBuilder:
        self.html_body = body or ""
        return self

    def add_attachment(self, attachment: OutboundAttachment) -> OutboundMessageBuilder:
        self.attachments.append(attachment)
        return self

    def build(self) -> bytes:
        """Serialize the accumulated records into a MIME document."""

        msg = MIMEMultipart("mixed", boundary=self._safe_boundary())
        for header in self.headers:
            msg[header.name] = header.value

        msg.attach(MIMEText(self.html_body, "html", "utf-8"))

        for attachment in self.attachments:
            maintype, _, subtype = attachment.mime_type.partition("/")
            part = MIMEBase(maintype or "application", subtype or "octet-stream")
            part.set_payload(attachment.content)
            encoders.encode_base64(part)
            part.add_header(
                "Content-Disposition",
                "attachment",
                filename=_filename_param(attachment.filename),
            )
            msg.attach(part)

        return msg.as_bytes()

    def build_raw(self) -> str:
        """Serialize and base64url encode (no padding) for Gmail."""

        return encode_base64url(self.build())

    def _safe_boundary(self) -> str:
        # Bodies and attachments are base64 encoded, so only header text and
        # filenames can contain the boundary.
        user_text = [h.value for h in self.headers] + [a.filename for a in self.attachments]
        boundary = self.boundary
        suffix = 0
        while any(boundary in value for value in user_text):
            suffix += 1
            boundary = f"{self.boundary}_{suffix}"
        return boundary


def _filename_param(filename: str) -> str | tuple[str, str, str]:
    try:
        filename.encode("ascii")
    except UnicodeEncodeError:
        return ("utf-8", "", filename)
    return filename


def build_raw_message(
    from_address: str,
    to: str,
    attachments: list[OutboundAttachment],
    subject: str | None = None,
    body: str | None = None,
    cc: str | None = None,
    bcc: str | None = None,
) -> str:
    """Build a multipart/mixed message and return it base64url encoded.

    The caller is responsible for enforcing attachment size limits.
    """

    builder = (
        OutboundMessageBuilder()
        .add_header("From", from_address)
        .add_header("To", to)
        .add_header("Cc", cc)
        .add_header("Bcc", bcc)
        .add_header("Subject", encode_subject(subject) if subject else None)
        .set_html_body(body)
    )
    for attachment in attachments:
        builder.add_attachment(attachment)
    return builder.build_raw()
