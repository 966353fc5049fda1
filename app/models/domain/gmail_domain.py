# app/models/domain/gmail_domain.py
"""
Gmail Domain Models
Wrap raw Gmail API payloads (messages, threads, labels) and turn them into
the InboundMessage the triage pipeline consumes.
"""

import base64
import html
import re
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime

from app.features.mail_triage.domain.models import InboundMessage

_BLANK_LINE_RUNS = re.compile(r"(\r\n|\n|\r){2,}")
_HTML_BREAKS = re.compile(r"<\s*(br|/p|/div|/tr|/li)\s*/?\s*>", re.IGNORECASE)
_HTML_TAGS = re.compile(r"<[^>]+>")


def collapse_blank_lines(text: str) -> str:
    """Collapse runs of two or more line breaks into a single newline."""
    return _BLANK_LINE_RUNS.sub("\n", text)


def html_to_text(markup: str) -> str:
    """Rough text rendering of an HTML body for mail without a text/plain part."""
    text = _HTML_BREAKS.sub("\n", markup)
    text = _HTML_TAGS.sub("", text)
    return html.unescape(text)


class GmailMessage:
    """Domain model for Gmail messages."""

    def __init__(self, data: dict):
        self.id = data.get("id")
        self.thread_id = data.get("threadId")
        self.label_ids = data.get("labelIds", [])
        self.snippet = data.get("snippet", "")
        self.internal_date = data.get("internalDate")
        self.payload = data.get("payload", {})
        self.raw_data = data

        # Parse email headers and content
        self._parse_headers()
        self._parse_body()

    def _parse_headers(self):
        """Parse email headers from payload."""
        headers = self.payload.get("headers", [])
        self.headers = {h["name"].lower(): h["value"] for h in headers}

        self.subject = self.headers.get("subject", "")
        self.sender = self._parse_email_address(self.headers.get("from", ""))
        self.reply_to = self._parse_email_address(self.headers.get("reply-to", ""))
        self.date = self.headers.get("date", "")

    def _parse_email_address(self, address_str: str) -> dict[str, str]:
        """Parse email address string into name and email components."""
        if not address_str:
            return {"name": "", "email": ""}

        # Handle formats like "John Doe <john@example.com>" or "john@example.com"
        if "<" in address_str and ">" in address_str:
            name_part = address_str.split("<")[0].strip().strip('"')
            email_part = address_str.split("<")[1].split(">")[0].strip()
            return {"name": name_part, "email": email_part}
        return {"name": "", "email": address_str.strip()}

    def _parse_body(self):
        """Parse email body content from payload."""
        self.body_text = ""
        self.body_html = ""

        if not self.payload:
            return

        if self.payload.get("body", {}).get("data"):
            # Simple message with direct body
            data = self._decode_base64_data(self.payload["body"]["data"])
            if self.payload.get("mimeType", "text/plain") == "text/html":
                self.body_html = data
            else:
                self.body_text = data
        elif self.payload.get("parts"):
            self._parse_multipart_body(self.payload["parts"])

    def _parse_multipart_body(self, parts: list):
        """Parse multipart email body; the first text part of each kind wins."""
        for part in parts:
            mime_type = part.get("mimeType", "")
            body_data = part.get("body", {}).get("data")

            if mime_type == "text/plain" and body_data and not self.body_text:
                self.body_text = self._decode_base64_data(body_data)

            elif mime_type == "text/html" and body_data and not self.body_html:
                self.body_html = self._decode_base64_data(body_data)

            elif mime_type.startswith("multipart/"):
                self._parse_multipart_body(part.get("parts", []))

    def _decode_base64_data(self, data: str) -> str:
        """Decode base64 URL-safe encoded data."""
        try:
            # Gmail uses URL-safe base64 encoding
            decoded_bytes = base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
            return decoded_bytes.decode("utf-8", errors="ignore")
        except (ValueError, TypeError):
            return ""

    def is_unread(self) -> bool:
        """Check if message is unread."""
        return "UNREAD" in self.label_ids

    def get_sender_display(self) -> str:
        """Sender as 'Name <email>' (or the bare address)."""
        if self.sender["name"]:
            return f"{self.sender['name']} <{self.sender['email']}>"
        return self.sender["email"]

    def get_plain_body(self) -> str:
        """Plain-text body with blank-line runs collapsed; HTML-only mail is flattened."""
        body = self.body_text or html_to_text(self.body_html)
        return collapse_blank_lines(body)

    def get_received_datetime(self) -> datetime | None:
        """Received datetime from internalDate, falling back to the Date header."""
        if self.internal_date:
            try:
                # Internal date is in milliseconds
                return datetime.fromtimestamp(int(self.internal_date) / 1000, tz=UTC)
            except (ValueError, OSError):
                pass
        if self.date:
            try:
                parsed = parsedate_to_datetime(self.date)
                return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
            except (TypeError, ValueError):
                pass
        return None

    def to_inbound_message(self) -> InboundMessage:
        """Build the pipeline's view of this message."""
        return InboundMessage(
            id=self.id,
            thread_id=self.thread_id,
            subject=self.subject,
            body=self.get_plain_body(),
            sender=self.get_sender_display(),
            received_at=self.get_received_datetime() or datetime.now(UTC),
        )


class GmailThread:
    """Domain model for Gmail conversation threads."""

    def __init__(self, data: dict):
        self.id = data.get("id")
        self.snippet = data.get("snippet", "")
        self.history_id = data.get("historyId")
        self.messages = [GmailMessage(msg_data) for msg_data in data.get("messages", [])]

    def get_first_message(self) -> GmailMessage | None:
        """The message that opened the thread (Gmail returns them oldest first)."""
        return self.messages[0] if self.messages else None

    def has_unread_messages(self) -> bool:
        """Check if thread has any unread messages."""
        return any(msg.is_unread() for msg in self.messages)


class GmailLabel:
    """Domain model for Gmail labels."""

    def __init__(self, data: dict):
        self.id = data.get("id")
        self.name = data.get("name", "")
        self.type = data.get("type", "user")  # "system" or "user"
        self.raw_data = data

    def is_user_label(self) -> bool:
        """Check if this is a user-created label."""
        return self.type == "user"
