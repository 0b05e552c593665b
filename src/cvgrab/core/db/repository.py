from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from cvgrab.core.normalize import AttachmentData, MailRecord
from cvgrab.errors import PersistenceError

from .migrations import MIGRATIONS_DIR, apply_migrations, connect_db


def _utc_iso(moment: datetime) -> str:
    # stored in UTC so ORDER BY on the text column is chronological
    return moment.astimezone(timezone.utc).isoformat()


class MailRecordRepository:
    """SQLite record store for ingested mail, keyed by correlation key (``email_id``)."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.connection = connect_db(db_path)

    def close(self) -> None:
        self.connection.close()

    def __enter__(self) -> MailRecordRepository:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.close()

    def migrate(self) -> list[str]:
        return apply_migrations(self.connection, MIGRATIONS_DIR)

    @staticmethod
    def _attachment_json(attachment: AttachmentData | None) -> str | None:
        if attachment is None:
            return None
        return json.dumps(attachment.to_dict(), ensure_ascii=False)

    def _fetch_one(self, query: str, params: tuple[Any, ...]) -> MailRecord | None:
        try:
            row = self.connection.execute(query, params).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Query failed: {exc}") from exc
        return MailRecord.from_row(row) if row is not None else None

    def find_one(self, email_id: str) -> MailRecord | None:
        return self._fetch_one("SELECT * FROM mail_records WHERE email_id = ?", (email_id,))

    def find_by_id(self, record_id: int) -> MailRecord | None:
        return self._fetch_one("SELECT * FROM mail_records WHERE id = ?", (record_id,))

    def find_all(self) -> list[MailRecord]:
        try:
            rows = self.connection.execute(
                "SELECT * FROM mail_records ORDER BY received_at DESC, created_at DESC, id DESC"
            ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Query failed: {exc}") from exc
        return [MailRecord.from_row(row) for row in rows]

    def insert(self, record: MailRecord) -> MailRecord:
        try:
            with self.connection:
                cursor = self.connection.execute(
                    """
                    INSERT INTO mail_records (
                        email_id, sender, sender_name, subject, body,
                        received_at, has_attachment, attachment_json, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.email_id,
                        record.sender,
                        record.sender_name,
                        record.subject,
                        record.body,
                        _utc_iso(record.received_at),
                        int(record.has_attachment),
                        self._attachment_json(record.attachment),
                        _utc_iso(record.created_at),
                    ),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Insert of {record.email_id} failed: {exc}") from exc
        record.id = int(cursor.lastrowid)
        return record

    def save(self, record: MailRecord) -> MailRecord:
        if record.id is None:
            raise PersistenceError(f"Record {record.email_id} has not been inserted yet")
        try:
            with self.connection:
                cursor = self.connection.execute(
                    """
                    UPDATE mail_records
                    SET sender = ?, sender_name = ?, subject = ?, body = ?, received_at = ?,
                        has_attachment = ?, attachment_json = ?
                    WHERE id = ?
                    """,
                    (
                        record.sender,
                        record.sender_name,
                        record.subject,
                        record.body,
                        _utc_iso(record.received_at),
                        int(record.has_attachment),
                        self._attachment_json(record.attachment),
                        record.id,
                    ),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Update of {record.email_id} failed: {exc}") from exc
        if cursor.rowcount == 0:
            raise PersistenceError(f"Record {record.id} no longer exists")
        return record

    def delete_by_id(self, record_id: int) -> bool:
        try:
            with self.connection:
                cursor = self.connection.execute("DELETE FROM mail_records WHERE id = ?", (record_id,))
        except sqlite3.Error as exc:
            raise PersistenceError(f"Delete of {record_id} failed: {exc}") from exc
        return cursor.rowcount > 0

    def count(self) -> int:
        try:
            row = self.connection.execute("SELECT COUNT(*) AS cnt FROM mail_records").fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Query failed: {exc}") from exc
        return int(row["cnt"])

    def fetch_export_rows(self) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for record in self.find_all():
            attachment = record.attachment
            rows.append(
                {
                    "id": record.id,
                    "email_id": record.email_id,
                    "from": record.sender,
                    "from_name": record.sender_name,
                    "subject": record.subject,
                    "received_at": record.received_at.isoformat(),
                    "has_attachment": record.has_attachment,
                    "candidate_name": attachment.name if attachment else "",
                    "candidate_email": attachment.email if attachment else "",
                    "candidate_contact": attachment.contact_number if attachment else "",
                    "candidate_dob": attachment.date_of_birth if attachment else "",
                    "pdf_path": attachment.pdf_path if attachment else "",
                    "created_at": record.created_at.isoformat(),
                }
            )
        return rows
