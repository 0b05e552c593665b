from __future__ import annotations

import asyncio
import signal
import subprocess
import sys
import uuid
from pathlib import Path

import typer
from rich import print, print_json
from rich.markup import escape

from cvgrab.config import ImapAccountConfig, Settings
from cvgrab.core.db import MailRecordRepository
from cvgrab.core.dedupe import ProcessedMessageCache
from cvgrab.core.logging import configure_logging, get_logger
from cvgrab.core.media import MediaManager
from cvgrab.errors import MailboxConnectionError
from cvgrab.parsers import DocumentTextResolver, TesseractOcr, extract_resume_fields
from cvgrab.services import (
    AttachmentPipeline,
    IngestionService,
    MailboxMonitor,
    NotificationEvent,
    NotificationHub,
    export_records,
    run_doctor_checks,
)
from cvgrab.services.exporter import EXPORT_WRITERS
from cvgrab.sources.email_imap import CONNECTION_ERRORS, MailboxSession

app = typer.Typer(no_args_is_help=True, help="cvgrab CLI: resume intake from an IMAP mailbox")


def _load_settings(base_dir: Path | None = None) -> Settings:
    settings = Settings.load(base_dir=base_dir)
    settings.ensure_directories()
    return settings


def _require_account(settings: Settings) -> ImapAccountConfig:
    if settings.imap_account is None:
        print("[red]IMAP is not configured[/red]: set IMAP_USER and IMAP_PASSWORD")
        raise typer.Exit(1)
    return settings.imap_account


def _build_resolver(settings: Settings, logger) -> DocumentTextResolver:
    return DocumentTextResolver(
        min_text_chars=settings.ocr_min_chars,
        ocr_engine=TesseractOcr(lang=settings.ocr_lang, dpi=settings.ocr_dpi),
        logger=logger,
    )


def _build_service(
    settings: Settings,
    repository: MailRecordRepository,
    notifier: NotificationHub,
    logger,
) -> IngestionService:
    pipeline = AttachmentPipeline(
        MediaManager(settings.uploads_dir),
        _build_resolver(settings, logger),
        raw_text_limit=settings.raw_text_limit,
        birth_years=settings.birth_years,
        logger=logger,
    )
    return IngestionService(
        repository=repository,
        pipeline=pipeline,
        notifier=notifier,
        logger=logger,
        tracker=ProcessedMessageCache(settings.dedup_cache_size),
    )


def _print_notification(event: NotificationEvent) -> None:
    record = event.email
    line = f"[cyan]{escape(event.message)}[/cyan] {escape(record.email_id)} from {escape(record.sender)}"
    if record.attachment is not None:
        line += f" | candidate: {escape(record.attachment.name or '-')}"
    print(line)


async def _watch(monitor: MailboxMonitor) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, monitor.stop)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C cancels the run instead
            pass
    await monitor.run()


@app.command("init")
def init_command(
    base_dir: Path | None = typer.Option(None, help="Project root (defaults to the current directory)"),
) -> None:
    settings = _load_settings(base_dir=base_dir)
    with MailRecordRepository(settings.db_path) as repository:
        executed = repository.migrate()
    print(f"[green]Initialized[/green]. DB: {settings.db_path}")
    print(f"Migrations: {executed if executed else 'none pending'}")


@app.command("auth")
def auth_command() -> None:
    settings = _load_settings()
    account = _require_account(settings)
    target = f"{account.username}@{account.host}:{account.port}/{account.mailbox}"
    try:
        MailboxSession(account).check_connection()
    except MailboxConnectionError as exc:
        print(f"[red]IMAP error[/red] {target}: {exc}")
        raise typer.Exit(1) from exc
    print(f"[green]IMAP OK[/green]: {target}")


@app.command("watch")
def watch_command(
    poll_interval: float | None = typer.Option(
        None,
        help="Seconds between passes (defaults to CVGRAB_POLL_INTERVAL_SEC)",
    ),
) -> None:
    settings = _load_settings()
    account = _require_account(settings)
    correlation_id = uuid.uuid4().hex
    configure_logging(settings.logs_dir, correlation_id=correlation_id)
    logger = get_logger("cvgrab.watch", correlation_id)

    with MailRecordRepository(settings.db_path) as repository:
        repository.migrate()
        hub = NotificationHub(logger=logger)
        hub.subscribe(_print_notification)
        monitor = MailboxMonitor(
            MailboxSession(account, max_messages=settings.max_messages, logger=logger),
            _build_service(settings, repository, hub, logger),
            poll_interval=poll_interval or settings.poll_interval_sec,
            logger=logger,
        )
        print(f"[green]Watching[/green] {account.username}/{account.mailbox}. correlation_id={correlation_id}")
        try:
            asyncio.run(_watch(monitor))
        except MailboxConnectionError as exc:
            print(f"[red]Mailbox unavailable[/red]: {exc}")
            raise typer.Exit(1) from exc
        except KeyboardInterrupt:
            pass

    print("[green]Stopped[/green]")


@app.command("sync")
def sync_command(
    max_messages: int | None = typer.Option(
        None,
        help="Most recent messages to inspect (defaults to CVGRAB_MAX_MESSAGES)",
    ),
) -> None:
    settings = _load_settings()
    account = _require_account(settings)
    correlation_id = uuid.uuid4().hex
    configure_logging(settings.logs_dir, correlation_id=correlation_id)
    logger = get_logger("cvgrab.sync", correlation_id)

    session = MailboxSession(
        account,
        max_messages=max_messages if max_messages is not None else settings.max_messages,
        logger=logger,
    )
    with MailRecordRepository(settings.db_path) as repository:
        repository.migrate()
        hub = NotificationHub(logger=logger)
        hub.subscribe(_print_notification)
        monitor = MailboxMonitor(session, _build_service(settings, repository, hub, logger), logger=logger)
        try:
            session.connect()
            stats = monitor.poll_once()
        except CONNECTION_ERRORS as exc:
            print(f"[red]Mailbox unavailable[/red]: {exc}")
            raise typer.Exit(1) from exc
        finally:
            session.close()

    print(f"[green]Sync finished[/green]. correlation_id={correlation_id}")
    for key, value in stats.items():
        print(f"- {key}: {value}")


@app.command("extract")
def extract_command(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="PDF file"),
    show_text: bool = typer.Option(False, "--text", help="Also print the resolved text"),
) -> None:
    settings = _load_settings()
    logger = get_logger("cvgrab.extract", uuid.uuid4().hex)
    text = _build_resolver(settings, logger).resolve(path.read_bytes())
    fields = extract_resume_fields(text, birth_years=settings.birth_years)

    print(f"[green]Extracted[/green] {escape(str(path))} ({len(text)} characters of text)")
    print(f"- name: {escape(fields.name or '-')}")
    print(f"- email: {escape(fields.email or '-')}")
    print(f"- contact_number: {escape(fields.contact_number or '-')}")
    print(f"- date_of_birth: {escape(fields.date_of_birth or '-')}")
    if show_text:
        print(escape(text[: settings.raw_text_limit]))


@app.command("list")
def list_command() -> None:
    settings = _load_settings()
    with MailRecordRepository(settings.db_path) as repository:
        repository.migrate()
        records = repository.find_all()

    if not records:
        print("No records stored")
        return
    for record in records:
        candidate = record.attachment.name if record.attachment is not None else ""
        pdf_flag = "PDF" if record.has_attachment else "   "
        print(
            f"{record.id:>5} {record.received_at:%Y-%m-%d %H:%M} {pdf_flag} "
            f"{escape(record.sender)}: {escape(record.subject)}"
            + (f" [dim]({escape(candidate)})[/dim]" if candidate else "")
        )


@app.command("show")
def show_command(record_id: int = typer.Argument(..., help="Record id")) -> None:
    settings = _load_settings()
    with MailRecordRepository(settings.db_path) as repository:
        repository.migrate()
        record = repository.find_by_id(record_id)

    if record is None:
        print(f"[red]Record {record_id} not found[/red]")
        raise typer.Exit(1)
    print_json(data=record.to_dict())


@app.command("delete")
def delete_command(record_id: int = typer.Argument(..., help="Record id")) -> None:
    settings = _load_settings()
    with MailRecordRepository(settings.db_path) as repository:
        repository.migrate()
        deleted = repository.delete_by_id(record_id)

    if not deleted:
        print(f"[red]Record {record_id} not found[/red]")
        raise typer.Exit(1)
    print(f"[green]Record {record_id} deleted[/green]")


@app.command("count")
def count_command() -> None:
    settings = _load_settings()
    with MailRecordRepository(settings.db_path) as repository:
        repository.migrate()
        total = repository.count()
    print(f"Records: {total}")


@app.command("export")
def export_command(
    format: str = typer.Option("xlsx,csv", help="Comma separated formats: xlsx,csv"),
    out: Path | None = typer.Option(None, help="Export directory"),
) -> None:
    formats = [item.strip().lower() for item in format.split(",") if item.strip()]
    unknown = [item for item in formats if item not in EXPORT_WRITERS]
    if unknown:
        raise typer.BadParameter(f"Unsupported formats: {unknown}")

    settings = _load_settings()
    out_dir = (out or settings.exports_dir).resolve()

    with MailRecordRepository(settings.db_path) as repository:
        repository.migrate()
        files = export_records(repository=repository, formats=formats, out_dir=out_dir)

    print("[green]Export finished[/green]")
    for file_path in files:
        print(f"- {file_path}")


@app.command("doctor")
def doctor_command() -> None:
    settings = _load_settings()
    checks = run_doctor_checks(settings)

    print("Doctor results:")
    for check in checks:
        status = check["status"].upper()
        print(f"- \\[{status}] {check['check']}: {escape(check['detail'])}")


@app.command("tests")
def tests_command() -> None:
    result = subprocess.run([sys.executable, "-m", "pytest", "-q"], check=False)
    if result.returncode != 0:
        raise typer.Exit(result.returncode)
    print("[green]Tests passed[/green]")


if __name__ == "__main__":
    app()
