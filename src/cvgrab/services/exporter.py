from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pandas as pd

from cvgrab.core.db import MailRecordRepository

EXPORT_STEM = "cvgrab_export"
EXPORT_COLUMNS = [
    "id",
    "email_id",
    "from",
    "from_name",
    "subject",
    "received_at",
    "has_attachment",
    "candidate_name",
    "candidate_email",
    "candidate_contact",
    "candidate_dob",
    "pdf_path",
    "created_at",
]


def build_export_frame(repository: MailRecordRepository) -> pd.DataFrame:
    return pd.DataFrame(repository.fetch_export_rows(), columns=EXPORT_COLUMNS)


def _write_csv(frame: pd.DataFrame, path: Path) -> None:
    frame.to_csv(path, index=False, encoding="utf-8-sig")


def _write_xlsx(frame: pd.DataFrame, path: Path) -> None:
    candidates = frame[frame["has_attachment"].astype(bool)]
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        frame.to_excel(writer, index=False, sheet_name="emails")
        candidates.to_excel(writer, index=False, sheet_name="candidates")


EXPORT_WRITERS: dict[str, Callable[[pd.DataFrame, Path], None]] = {
    "csv": _write_csv,
    "xlsx": _write_xlsx,
}


def export_records(repository: MailRecordRepository, formats: list[str], out_dir: Path) -> list[Path]:
    """Write every stored record to ``out_dir`` once per requested format; returns the files."""
    unknown = [fmt for fmt in formats if fmt not in EXPORT_WRITERS]
    if unknown:
        raise ValueError(f"Unsupported export formats: {unknown}")

    out_dir.mkdir(parents=True, exist_ok=True)
    frame = build_export_frame(repository)

    created_files: list[Path] = []
    for fmt in formats:
        path = (out_dir / f"{EXPORT_STEM}.{fmt}").resolve()
        EXPORT_WRITERS[fmt](frame, path)
        created_files.append(path)
    return created_files
