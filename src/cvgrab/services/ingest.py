from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from cvgrab.core.db import MailRecordRepository
from cvgrab.core.dedupe import ProcessedMessageCache, build_correlation_key
from cvgrab.core.normalize import AttachmentData, MailRecord
from cvgrab.parsers.message import decode_message
from cvgrab.sources.email_imap import CONNECTION_ERRORS
from cvgrab.sources.models import MessageDescriptor

from .attachments import AttachmentPipeline
from .notifications import (
    MSG_BACKFILLED,
    MSG_NEW,
    MSG_NEW_WITH_PDF,
    NotificationEvent,
    NotificationHub,
)

RawFetcher = Callable[[int], Any]

INSERTED = "inserted"
BACKFILLED = "backfilled"
UNCHANGED = "unchanged"


@dataclass(slots=True)
class MessageOutcome:
    status: str
    record: MailRecord
    attachment_extracted: bool = False


class IngestionService:
    def __init__(
        self,
        repository: MailRecordRepository,
        pipeline: AttachmentPipeline,
        notifier: NotificationHub,
        logger: logging.Logger | logging.LoggerAdapter,
        tracker: ProcessedMessageCache | None = None,
    ):
        self.repository = repository
        self.pipeline = pipeline
        self.notifier = notifier
        self.logger = logger
        self.tracker = tracker if tracker is not None else ProcessedMessageCache()

    @staticmethod
    def _new_stats() -> dict[str, int]:
        return {
            "messages_total": 0,
            "messages_skipped": 0,
            "messages_processed": 0,
            "records_inserted": 0,
            "records_backfilled": 0,
            "attachments_processed": 0,
            "errors": 0,
        }

    def process_batch(
        self,
        descriptors: Iterable[MessageDescriptor],
        fetch_raw: RawFetcher,
    ) -> dict[str, int]:
        stats = self._new_stats()

        for descriptor in descriptors:
            stats["messages_total"] += 1
            uid = descriptor.uid
            if uid in self.tracker:
                stats["messages_skipped"] += 1
                self.logger.debug("Message UID %s already processed, skipping", uid)
                continue

            try:
                raw = fetch_raw(uid)
            except CONNECTION_ERRORS:
                self.logger.error("Mailbox connection lost while fetching UID %s", uid)
                raise
            except Exception as exc:  # noqa: BLE001
                stats["errors"] += 1
                self.logger.error("Fetching UID %s failed, retrying next pass: %s", uid, exc)
                continue
            if not raw:
                stats["errors"] += 1
                self.logger.error("Could not fetch body for message UID %s", uid)
                continue

            try:
                outcome = self.process_message(uid, raw)
                stats["messages_processed"] += 1
                if outcome.attachment_extracted:
                    stats["attachments_processed"] += 1
                if outcome.status == INSERTED:
                    stats["records_inserted"] += 1
                elif outcome.status == BACKFILLED:
                    stats["records_backfilled"] += 1
            except Exception as exc:  # noqa: BLE001
                stats["errors"] += 1
                self.logger.error(
                    "Message UID %s processing failed: %s: %s",
                    uid,
                    exc.__class__.__name__,
                    exc,
                    exc_info=True,
                )
            finally:
                # Poison messages must not be retried forever within this run.
                self.tracker.add(uid)

        return stats

    def process_message(self, uid: int, raw: Any) -> MessageOutcome:
        """Decode one raw message, extract its first PDF and upsert the record by correlation key."""
        email_id = build_correlation_key(uid)
        decoded = decode_message(raw)
        self.logger.info(
            "Message UID %s from=%s subject=%r attachments=%s",
            uid,
            decoded.sender,
            decoded.subject,
            len(decoded.attachments),
        )

        attachment_data: AttachmentData | None = None
        pdf = self.pipeline.select_pdf(decoded.attachments)
        if pdf is not None:
            self.logger.info("Processing PDF attachment %r", pdf.filename)
            attachment_data = self.pipeline.process(pdf)
        elif decoded.attachments:
            self.logger.info("No PDF among %s attachment(s)", len(decoded.attachments))

        existing = self.repository.find_one(email_id)
        if existing is not None:
            if attachment_data is not None and existing.needs_backfill:
                existing.has_attachment = True
                existing.attachment = attachment_data
                self.repository.save(existing)
                self.logger.info("Backfilled %s with PDF data (name=%r)", email_id, attachment_data.name)
                self._notify(MSG_BACKFILLED, existing)
                return MessageOutcome(BACKFILLED, existing, attachment_extracted=True)
            self.logger.info("Message %s already stored", email_id)
            return MessageOutcome(UNCHANGED, existing, attachment_extracted=attachment_data is not None)

        record = self.repository.insert(
            MailRecord(
                email_id=email_id,
                sender=decoded.sender,
                sender_name=decoded.sender_name,
                subject=decoded.subject,
                body=decoded.body,
                received_at=decoded.received_at,
                has_attachment=pdf is not None,
                attachment=attachment_data,
            )
        )
        self.logger.info("Stored %s as record %s", email_id, record.id)
        self._notify(MSG_NEW_WITH_PDF if record.has_attachment else MSG_NEW, record)
        return MessageOutcome(INSERTED, record, attachment_extracted=attachment_data is not None)

    def _notify(self, message: str, record: MailRecord) -> None:
        delivered = self.notifier.publish(NotificationEvent(message=message, email=record))
        self.logger.debug("Notification %r delivered to %s listener(s)", message, delivered)
