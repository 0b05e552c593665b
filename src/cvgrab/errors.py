from __future__ import annotations


class CvGrabError(Exception):
    """Base class for ingestion errors."""


class MailboxConnectionError(CvGrabError, ConnectionError):
    """Mailbox unreachable or authentication rejected."""


class DecodeError(CvGrabError):
    """Raw message could not be turned into a structured message."""


class EmptyAttachmentError(CvGrabError):
    """Attachment payload decoded to zero bytes."""


class AttachmentWriteError(CvGrabError):
    """Saved attachment size on disk does not match the payload."""


class ExtractionFailure(CvGrabError):
    """A text extraction stage produced nothing usable.

    Raised by individual stages only; the resolver turns it into empty text.
    """


class PersistenceError(CvGrabError):
    """Record store operation failed."""
