"""Unit tests for outbound MIME message construction."""

from __future__ import annotations

import base64
import email
from email import policy
from email.header import decode_header, make_header

from gmail_sync.gmail.mime import (
    DEFAULT_BOUNDARY,
    OutboundMessageBuilder,
    build_raw_message,
    encode_subject,
)
from gmail_sync.models import OutboundAttachment


def _parse_raw(raw: str) -> email.message.Message:
    padded = raw + "=" * (-len(raw) % 4)
    return email.message_from_bytes(base64.urlsafe_b64decode(padded), policy=policy.compat32)


class TestBuildRawMessage:
    """Test suite for build_raw_message."""

    def test_raw_is_unpadded_base64url(self) -> None:
        raw = build_raw_message("a@example.com", "b@example.com", [], subject="Hi", body="<p>x</p>")

        assert "=" not in raw
        assert "+" not in raw
        assert "/" not in raw

    def test_headers_and_html_body(self) -> None:
        raw = build_raw_message(
            "alice@example.com",
            "bob@example.com",
            [],
            subject="Réunion demain",
            body="<p>Bonjour</p>",
            cc="carol@example.com",
        )

        msg = _parse_raw(raw)

        assert msg.get_content_type() == "multipart/mixed"
        assert msg["From"] == "alice@example.com"
        assert msg["To"] == "bob@example.com"
        assert msg["Cc"] == "carol@example.com"
        assert msg["Bcc"] is None
        assert str(make_header(decode_header(msg["Subject"]))) == "Réunion demain"

        html = msg.get_payload()[0]
        assert html.get_content_type() == "text/html"
        assert html.get_payload(decode=True).decode("utf-8") == "<p>Bonjour</p>"

    def test_attachments_round_trip(self) -> None:
        content = bytes(range(256)) * 4
        raw = build_raw_message(
            "alice@example.com",
            "bob@example.com",
            [OutboundAttachment(filename="data.bin", mime_type="application/octet-stream", content=content)],
            body="see attached",
        )

        parts = _parse_raw(raw).get_payload()

        assert len(parts) == 2
        attachment = parts[1]
        assert attachment.get_content_type() == "application/octet-stream"
        assert attachment.get_filename() == "data.bin"
        assert attachment.get_payload(decode=True) == content

    def test_subject_omitted_when_empty(self) -> None:
        msg = _parse_raw(build_raw_message("a@example.com", "b@example.com", []))

        assert msg["Subject"] is None


class TestOutboundMessageBuilder:
    """Test suite for OutboundMessageBuilder."""

    def test_boundary_changes_when_it_appears_in_user_text(self) -> None:
        builder = OutboundMessageBuilder().add_header("Subject", f"contains {DEFAULT_BOUNDARY}")

        msg = email.message_from_bytes(builder.build())

        assert msg.get_boundary() != DEFAULT_BOUNDARY
        assert msg.get_boundary().startswith(DEFAULT_BOUNDARY)
        assert len(msg.get_payload()) == 1

    def test_default_boundary_used_otherwise(self) -> None:
        msg = email.message_from_bytes(OutboundMessageBuilder().set_html_body("x").build())

        assert msg.get_boundary() == DEFAULT_BOUNDARY

    def test_non_ascii_filename(self) -> None:
        builder = OutboundMessageBuilder().add_attachment(
            OutboundAttachment(filename="résumé.pdf", mime_type="application/pdf", content=b"%PDF")
        )

        parts = email.message_from_bytes(builder.build()).get_payload()

        assert parts[1].get_filename() == "résumé.pdf"


def test_encode_subject_is_single_encoded_word() -> None:
    encoded = encode_subject("Hello")

    assert encoded == "=?utf-8?B?SGVsbG8=?="
