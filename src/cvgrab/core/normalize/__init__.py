from .models import AttachmentData, MailRecord, ResumeFields

__all__ = ["AttachmentData", "MailRecord", "ResumeFields"]
