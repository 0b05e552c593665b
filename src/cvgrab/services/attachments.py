from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Iterable
from typing import Any

from cvgrab.core.media import MediaManager
from cvgrab.core.normalize import AttachmentData
from cvgrab.errors import EmptyAttachmentError
from cvgrab.parsers.pdf_text import DocumentTextResolver
from cvgrab.parsers.resume_parser import DEFAULT_BIRTH_YEARS, extract_resume_fields
from cvgrab.sources.models import MessageAttachment

PDF_CONTENT_TYPE = "application/pdf"


def is_pdf(attachment: MessageAttachment) -> bool:
    content_type = (attachment.content_type or "").lower()
    filename = (attachment.filename or "").lower()
    return content_type == PDF_CONTENT_TYPE or filename.endswith(".pdf")


def coerce_attachment_bytes(content: Any) -> bytes:
    """Attachment payload as bytes; strings are read as base64 first, raw binary otherwise."""
    if isinstance(content, bytes):
        data = content
    elif isinstance(content, (bytearray, memoryview)):
        data = bytes(content)
    elif isinstance(content, str):
        try:
            data = base64.b64decode("".join(content.split()), validate=True)
        except (binascii.Error, ValueError):
            data = content.encode("latin-1", errors="replace")
    elif content is None:
        data = b""
    else:
        data = bytes(content)

    if not data:
        raise EmptyAttachmentError("Attachment content is empty")
    return data


class AttachmentPipeline:
    """Saves the first PDF of a message, resolves its text and extracts candidate fields."""

    def __init__(
        self,
        media_manager: MediaManager,
        resolver: DocumentTextResolver,
        *,
        raw_text_limit: int = 5000,
        birth_years: tuple[int, int] = DEFAULT_BIRTH_YEARS,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.media_manager = media_manager
        self.resolver = resolver
        self.raw_text_limit = raw_text_limit
        self.birth_years = birth_years
        self.logger = logger or logging.getLogger(__name__)

    @staticmethod
    def select_pdf(attachments: Iterable[MessageAttachment]) -> MessageAttachment | None:
        return next((attachment for attachment in attachments if is_pdf(attachment)), None)

    def extract(self, attachment: MessageAttachment) -> AttachmentData:
        content = coerce_attachment_bytes(attachment.content)
        stored = self.media_manager.save_pdf(attachment.filename, content)
        self.logger.info("PDF saved to %s (%s bytes)", stored.path, stored.size_bytes)

        text = self.resolver.resolve(self.media_manager.read_bytes(stored))
        fields = extract_resume_fields(text, birth_years=self.birth_years)
        self.logger.info(
            "Extracted from %s: name=%r email=%r contact=%r dob=%r",
            stored.filename,
            fields.name,
            fields.email,
            fields.contact_number,
            fields.date_of_birth,
        )
        return AttachmentData.from_fields(
            fields,
            pdf_path=str(stored.path),
            pdf_filename=stored.filename,
            raw_text=text[: self.raw_text_limit],
        )

    def process(self, attachment: MessageAttachment) -> AttachmentData | None:
        """Like :meth:`extract`, but failures are logged and yield ``None``."""
        try:
            return self.extract(attachment)
        except Exception as exc:  # noqa: BLE001
            self.logger.error(
                "PDF attachment %r skipped: %s: %s",
                attachment.filename,
                exc.__class__.__name__,
                exc,
            )
            return None
