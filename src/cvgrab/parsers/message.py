from __future__ import annotations

import email
import html
import re
from datetime import datetime
from email.header import decode_header
from email.message import Message
from email.utils import parseaddr, parsedate_to_datetime
from typing import Any

from dateutil import parser as dt_parser

from cvgrab.errors import DecodeError
from cvgrab.sources.models import DecodedMessage, MessageAttachment

from .utils import html_to_text

UNKNOWN_SENDER = "unknown@example.com"
NO_SUBJECT = "No Subject"
NO_CONTENT = "(No content)"

TAG_PATTERN = re.compile(r"<[^>]*>")
EXCESS_NEWLINES = re.compile(r"\n{3,}")


def coerce_message_bytes(raw: Any) -> bytes:
    """Normalize a fetched message body (bytes, bytearray, memoryview, str, int list) to bytes."""
    if isinstance(raw, bytes):
        return raw
    if isinstance(raw, (bytearray, memoryview)):
        return bytes(raw)
    if isinstance(raw, str):
        return raw.encode("utf-8")
    if isinstance(raw, (list, tuple)):
        try:
            return bytes(raw)
        except (TypeError, ValueError) as exc:
            raise DecodeError(f"Cannot convert message payload to bytes: {exc}") from exc
    raise DecodeError(f"Unsupported message payload type: {type(raw).__name__}")


def _decode_header(value: str | None) -> str:
    if not value:
        return ""
    parts: list[str] = []
    for chunk, encoding in decode_header(str(value)):
        if isinstance(chunk, bytes):
            try:
                parts.append(chunk.decode(encoding or "utf-8", errors="replace"))
            except LookupError:
                parts.append(chunk.decode("utf-8", errors="replace"))
        else:
            parts.append(chunk)
    return "".join(parts).strip()


def _decode_part_payload(part: Message) -> str:
    payload = part.get_payload(decode=True)
    if payload is None:
        return ""
    charset = part.get_content_charset() or "utf-8"
    try:
        return payload.decode(charset, errors="replace")
    except LookupError:
        return payload.decode("utf-8", errors="replace")


def _is_attachment(part: Message) -> bool:
    disposition = (part.get("Content-Disposition") or "").lower()
    return "attachment" in disposition or bool(part.get_filename())


def _extract_content(message: Message) -> tuple[str, str, list[MessageAttachment]]:
    text_body = ""
    html_body = ""
    attachments: list[MessageAttachment] = []

    parts = message.walk() if message.is_multipart() else [message]
    for part in parts:
        if part.is_multipart():
            continue
        content_type = part.get_content_type()

        if _is_attachment(part):
            filename = part.get_filename()
            attachments.append(
                MessageAttachment(
                    filename=_decode_header(filename) if filename else None,
                    content_type=content_type,
                    content=part.get_payload(decode=True) or b"",
                )
            )
            continue

        if content_type == "text/plain" and not text_body:
            text_body = _decode_part_payload(part)
        elif content_type == "text/html" and not html_body:
            html_body = _decode_part_payload(part)

    return text_body, html_body, attachments


def select_body_text(text_body: str, html_body: str) -> str:
    body = text_body.strip()
    if not body and html_body:
        body = html.unescape(TAG_PATTERN.sub("", html_body)).strip()
        if not body:
            body = html_to_text(html_body)

    body = body.replace("\r\n", "\n").replace("\r", "\n")
    body = EXCESS_NEWLINES.sub("\n\n", body).strip()
    return body or NO_CONTENT


def _parse_date(value: str | None) -> datetime:
    if value:
        try:
            return parsedate_to_datetime(value).astimezone()
        except (TypeError, ValueError, IndexError):
            pass
        try:
            return dt_parser.parse(value).astimezone()
        except (ValueError, OverflowError):
            pass
    return datetime.now().astimezone()


def _parse_sender(value: str | None) -> tuple[str, str]:
    name, address = parseaddr(value or "")
    address = address.strip() or UNKNOWN_SENDER
    display_name = _decode_header(name) if name else ""
    return address, display_name or address


def decode_message(raw: Any) -> DecodedMessage:
    """Decode a raw RFC 822 message into sender, subject, body, timestamp and attachments."""
    data = coerce_message_bytes(raw)
    if not data.strip():
        raise DecodeError("Message payload is empty")

    try:
        mime_msg = email.message_from_bytes(data)
        text_body, html_body, attachments = _extract_content(mime_msg)
    except (TypeError, ValueError, LookupError) as exc:
        raise DecodeError(f"Malformed message: {exc}") from exc

    sender, sender_name = _parse_sender(mime_msg.get("From"))
    return DecodedMessage(
        sender=sender,
        sender_name=sender_name,
        subject=_decode_header(mime_msg.get("Subject")) or NO_SUBJECT,
        body=select_body_text(text_body, html_body),
        received_at=_parse_date(mime_msg.get("Date")),
        attachments=attachments,
    )
