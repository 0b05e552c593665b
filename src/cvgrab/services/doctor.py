from __future__ import annotations

import platform
import shutil
import sys

import pytesseract

from cvgrab.config import Settings
from cvgrab.core.db import connect_db, pending_migrations
from cvgrab.sources.email_imap import MailboxSession


def _check(name: str, ok: bool, detail: str) -> dict[str, str]:
    return {"check": name, "status": "ok" if ok else "warn", "detail": detail}


def _schema_check(settings: Settings) -> dict[str, str]:
    if not settings.db_path.exists():
        return _check("db_schema", False, f"{settings.db_path} missing, run `cvgrab init`")
    connection = connect_db(settings.db_path)
    try:
        pending = [path.name for path in pending_migrations(connection)]
    finally:
        connection.close()
    if pending:
        return _check("db_schema", False, f"pending migrations: {', '.join(pending)}")
    return _check("db_schema", True, str(settings.db_path))


def run_doctor_checks(settings: Settings) -> list[dict[str, str]]:
    checks: list[dict[str, str]] = [
        _check("python_version", sys.version_info >= (3, 11), platform.python_version()),
        _check("db_parent", settings.db_path.parent.exists(), str(settings.db_path.parent)),
        _check("uploads_dir", settings.uploads_dir.exists(), str(settings.uploads_dir)),
    ]

    checks.append(_schema_check(settings))

    try:
        version = pytesseract.get_tesseract_version()
        checks.append(_check("tesseract", True, f"{version} (lang={settings.ocr_lang})"))
    except Exception as exc:  # noqa: BLE001
        checks.append(_check("tesseract", False, f"OCR unavailable: {exc}"))

    pdftoppm = shutil.which("pdftoppm")
    checks.append(_check("poppler_pdftoppm", pdftoppm is not None, pdftoppm or "pdftoppm not found in PATH"))

    account = settings.imap_account
    if account is None:
        checks.append(_check("imap_account", False, "IMAP_USER / IMAP_PASSWORD are not set"))
        return checks

    target = f"{account.username}@{account.host}:{account.port}/{account.mailbox}"
    try:
        MailboxSession(account).check_connection()
        checks.append(_check("imap_connection", True, target))
    except Exception as exc:  # noqa: BLE001
        checks.append(_check("imap_connection", False, f"{target}: {exc}"))

    return checks
