from __future__ import annotations

import logging
from email.message import EmailMessage
from pathlib import Path

import pytest

from cvgrab.config import Settings
from cvgrab.core.db import MailRecordRepository

RESUME_TEXT = (
    "Name: Jane Doe\n"
    "Email: Jane.Doe@Example.com\n"
    "Phone: +1 (555) 123-4567\n"
    "Date of Birth: 15/08/1992\n"
    "Experience: ten years of backend development with Python and SQL.\n"
)


@pytest.fixture()
def resume_text() -> str:
    return RESUME_TEXT


@pytest.fixture()
def repository(tmp_path: Path):
    db_path = tmp_path / "cvgrab.sqlite3"
    repo = MailRecordRepository(db_path)
    repo.migrate()
    try:
        yield repo
    finally:
        repo.close()


@pytest.fixture()
def settings(tmp_path: Path, monkeypatch) -> Settings:  # noqa: ANN001
    root = tmp_path / "project"
    root.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("CVGRAB_HOME", str(root))
    s = Settings.load(base_dir=root)
    s.ensure_directories()
    return s


@pytest.fixture()
def test_logger() -> logging.Logger:
    logger = logging.getLogger("cvgrab-test")
    logger.handlers.clear()
    logger.addHandler(logging.NullHandler())
    logger.setLevel(logging.INFO)
    return logger


@pytest.fixture()
def make_raw_message():
    def _make(
        *,
        sender: str = "Jane Doe <jane@example.com>",
        subject: str = "Application for backend role",
        date: str = "Mon, 19 Oct 2026 10:00:00 +0000",
        body: str = "Please find my CV attached.",
        html: str | None = None,
        attachments: list[tuple[str, str, bytes]] | None = None,
    ) -> bytes:
        message = EmailMessage()
        message["From"] = sender
        message["To"] = "hr@example.com"
        message["Subject"] = subject
        message["Date"] = date
        if html is not None:
            message.set_content(html, subtype="html")
        else:
            message.set_content(body)
        for filename, content_type, content in attachments or []:
            maintype, subtype = content_type.split("/", 1)
            message.add_attachment(content, maintype=maintype, subtype=subtype, filename=filename)
        return message.as_bytes()

    return _make
