from .attachments import AttachmentPipeline
from .doctor import run_doctor_checks
from .exporter import export_records
from .ingest import IngestionService
from .monitor import MailboxMonitor
from .notifications import NotificationEvent, NotificationHub

__all__ = [
    "AttachmentPipeline",
    "IngestionService",
    "MailboxMonitor",
    "NotificationEvent",
    "NotificationHub",
    "export_records",
    "run_doctor_checks",
]
