from __future__ import annotations

import re
import time
from dataclasses import dataclass
from pathlib import Path

from cvgrab.errors import AttachmentWriteError, EmptyAttachmentError

UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
WHITESPACE = re.compile(r"\s+")
DEFAULT_PDF_NAME = "resume.pdf"


@dataclass(slots=True)
class StoredFile:
    path: Path
    filename: str
    size_bytes: int


class MediaManager:
    """Writes attachment payloads under the uploads directory as ``{unixMillis}_{name}``."""

    def __init__(self, media_root: Path):
        self.media_root = media_root
        self.media_root.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def sanitize_filename(filename: str | None) -> str:
        original = (filename or "").strip() or DEFAULT_PDF_NAME
        cleaned = UNSAFE_FILENAME_CHARS.sub("_", original)
        return WHITESPACE.sub("_", cleaned)

    @staticmethod
    def _now_millis() -> int:
        return time.time_ns() // 1_000_000

    def _pick_path(self, safe_name: str) -> tuple[Path, str]:
        millis = self._now_millis()
        while True:
            stored_name = f"{millis}_{safe_name}"
            target = self.media_root / stored_name
            if not target.exists():
                return target, stored_name
            millis += 1

    def save_pdf(self, filename: str | None, content: bytes) -> StoredFile:
        if not content:
            raise EmptyAttachmentError(f"Attachment {filename!r} is empty")

        self.media_root.mkdir(parents=True, exist_ok=True)
        target, stored_name = self._pick_path(self.sanitize_filename(filename))
        target.write_bytes(content)

        size_bytes = target.stat().st_size
        if size_bytes != len(content):
            raise AttachmentWriteError(
                f"Saved {target} has {size_bytes} bytes, expected {len(content)}"
            )
        return StoredFile(path=target.resolve(), filename=stored_name, size_bytes=size_bytes)

    @staticmethod
    def read_bytes(stored: StoredFile) -> bytes:
        return stored.path.read_bytes()
