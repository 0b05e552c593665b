from .manager import MediaManager, StoredFile

__all__ = ["MediaManager", "StoredFile"]
