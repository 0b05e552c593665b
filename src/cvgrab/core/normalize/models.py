from __future__ import annotations

import json
import sqlite3
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


def _now() -> datetime:
    return datetime.now().astimezone()


@dataclass(slots=True)
class ResumeFields:
    name: str = ""
    email: str = ""
    contact_number: str = ""
    date_of_birth: str = ""


@dataclass(slots=True)
class AttachmentData:
    pdf_path: str
    pdf_filename: str
    name: str = ""
    email: str = ""
    contact_number: str = ""
    date_of_birth: str = ""
    raw_text: str = ""

    @classmethod
    def from_fields(
        cls,
        fields: ResumeFields,
        *,
        pdf_path: str,
        pdf_filename: str,
        raw_text: str,
    ) -> AttachmentData:
        return cls(
            pdf_path=pdf_path,
            pdf_filename=pdf_filename,
            name=fields.name,
            email=fields.email,
            contact_number=fields.contact_number,
            date_of_birth=fields.date_of_birth,
            raw_text=raw_text,
        )

    @classmethod
    def from_json(cls, payload: str | None) -> AttachmentData | None:
        if not payload:
            return None
        data = json.loads(payload)
        return cls(**data)

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass(slots=True)
class MailRecord:
    email_id: str
    sender: str
    sender_name: str
    subject: str
    body: str
    received_at: datetime
    has_attachment: bool = False
    attachment: AttachmentData | None = None
    created_at: datetime = field(default_factory=_now)
    id: int | None = None

    @property
    def needs_backfill(self) -> bool:
        return self.attachment is None or not self.attachment.name

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> MailRecord:
        return cls(
            id=int(row["id"]),
            email_id=row["email_id"],
            sender=row["sender"],
            sender_name=row["sender_name"],
            subject=row["subject"],
            body=row["body"],
            received_at=datetime.fromisoformat(row["received_at"]).astimezone(),
            has_attachment=bool(row["has_attachment"]),
            attachment=AttachmentData.from_json(row["attachment_json"]),
            created_at=datetime.fromisoformat(row["created_at"]).astimezone(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email_id": self.email_id,
            "from": self.sender,
            "from_name": self.sender_name,
            "subject": self.subject,
            "body": self.body,
            "received_at": self.received_at.isoformat(),
            "has_attachment": self.has_attachment,
            "attachment_data": self.attachment.to_dict() if self.attachment else None,
            "created_at": self.created_at.isoformat(),
        }
