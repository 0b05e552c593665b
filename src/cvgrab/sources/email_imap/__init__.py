from .source import CONNECTION_ERRORS, MailboxSession, filter_same_day, is_same_local_day

__all__ = ["CONNECTION_ERRORS", "MailboxSession", "filter_same_day", "is_same_local_day"]
