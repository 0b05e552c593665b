from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in TRUE_VALUES


@dataclass(slots=True)
class ImapAccountConfig:
    host: str
    port: int
    username: str
    password: str
    mailbox: str = "INBOX"
    use_tls: bool = True
    verify_tls: bool = True
    timeout_sec: float = 30.0


@dataclass(slots=True)
class Settings:
    root_dir: Path
    data_dir: Path
    db_path: Path
    uploads_dir: Path
    logs_dir: Path
    exports_dir: Path
    imap_account: ImapAccountConfig | None = None
    poll_interval_sec: float = 10.0
    max_messages: int = 300
    dedup_cache_size: int = 10_000
    ocr_min_chars: int = 50
    ocr_lang: str = "eng"
    ocr_dpi: int = 200
    dob_year_min: int = 1940
    dob_year_max: int = 2005
    raw_text_limit: int = 5000

    @classmethod
    def load(cls, base_dir: Path | None = None) -> Settings:
        load_dotenv(override=False)

        root_env = os.getenv("CVGRAB_HOME")
        root_dir = Path(root_env).expanduser().resolve() if root_env else (base_dir or Path.cwd()).resolve()

        data_dir = Path(os.getenv("CVGRAB_DATA_DIR", root_dir / "data")).expanduser().resolve()
        db_path = Path(os.getenv("CVGRAB_DB_PATH", data_dir / "cvgrab.sqlite3")).expanduser().resolve()
        uploads_dir = Path(os.getenv("CVGRAB_UPLOADS_DIR", data_dir / "uploads")).expanduser().resolve()
        logs_dir = Path(os.getenv("CVGRAB_LOG_DIR", root_dir / "logs")).expanduser().resolve()
        exports_dir = Path(os.getenv("CVGRAB_EXPORT_DIR", root_dir / "exports")).expanduser().resolve()

        return cls(
            root_dir=root_dir,
            data_dir=data_dir,
            db_path=db_path,
            uploads_dir=uploads_dir,
            logs_dir=logs_dir,
            exports_dir=exports_dir,
            imap_account=cls._load_imap_account(),
            poll_interval_sec=float(os.getenv("CVGRAB_POLL_INTERVAL_SEC", "10")),
            max_messages=int(os.getenv("CVGRAB_MAX_MESSAGES", "300")),
            dedup_cache_size=int(os.getenv("CVGRAB_DEDUP_CACHE_SIZE", "10000")),
            ocr_min_chars=int(os.getenv("CVGRAB_OCR_MIN_CHARS", "50")),
            ocr_lang=os.getenv("CVGRAB_OCR_LANG", "eng"),
            ocr_dpi=int(os.getenv("CVGRAB_OCR_DPI", "200")),
            dob_year_min=int(os.getenv("CVGRAB_DOB_YEAR_MIN", "1940")),
            dob_year_max=int(os.getenv("CVGRAB_DOB_YEAR_MAX", "2005")),
            raw_text_limit=int(os.getenv("CVGRAB_RAW_TEXT_LIMIT", "5000")),
        )

    @staticmethod
    def _load_imap_account() -> ImapAccountConfig | None:
        """
        Monitored mailbox from IMAP_* variables.
        Without IMAP_USER / IMAP_PASSWORD monitoring is disabled and None is returned.
        """
        user = os.getenv("IMAP_USER")
        password = os.getenv("IMAP_PASSWORD")
        if not user or not password:
            return None

        return ImapAccountConfig(
            host=os.getenv("IMAP_HOST", "imap.gmail.com"),
            port=int(os.getenv("IMAP_PORT", "993")),
            username=user,
            password=password,
            mailbox=os.getenv("IMAP_MAILBOX", "INBOX"),
            use_tls=_env_bool("IMAP_TLS", True),
            verify_tls=_env_bool("IMAP_TLS_VERIFY", True),
            timeout_sec=float(os.getenv("IMAP_TIMEOUT_SEC", "30")),
        )

    @property
    def birth_years(self) -> tuple[int, int]:
        return self.dob_year_min, self.dob_year_max

    def ensure_directories(self) -> None:
        for path in [self.root_dir, self.data_dir, self.uploads_dir, self.logs_dir, self.exports_dir]:
            path.mkdir(parents=True, exist_ok=True)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
