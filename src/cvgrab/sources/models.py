from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(slots=True)
class MessageDescriptor:
    uid: int
    internal_date: datetime | None = None
    envelope_date: datetime | None = None

    @property
    def date(self) -> datetime | None:
        return self.internal_date or self.envelope_date


@dataclass(slots=True)
class MessageAttachment:
    filename: str | None
    content_type: str | None
    # bytes from the MIME decoder; other sources may hand over str / bytearray / list[int]
    content: Any


@dataclass(slots=True)
class DecodedMessage:
    sender: str
    sender_name: str
    subject: str
    body: str
    received_at: datetime
    attachments: list[MessageAttachment] = field(default_factory=list)
