from __future__ import annotations

import logging
import ssl
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientError

from cvgrab.config import ImapAccountConfig
from cvgrab.errors import MailboxConnectionError
from cvgrab.sources.models import MessageDescriptor

NEW_MAIL_RESPONSES = {b"EXISTS", b"RECENT"}
CONNECTION_ERRORS = (IMAPClientError, OSError)

ClientFactory = Callable[..., Any]


def _local_date(moment: datetime):
    # naive datetimes from the server are already local time
    if moment.tzinfo is not None:
        moment = moment.astimezone()
    return moment.date()


def is_same_local_day(moment: datetime, now: datetime) -> bool:
    return _local_date(moment) == _local_date(now)


def filter_same_day(
    descriptors: Iterable[MessageDescriptor],
    now: datetime | None = None,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
) -> list[MessageDescriptor]:
    """Keep messages dated on the local calendar day of ``now``; undated messages are kept."""
    now = now or datetime.now().astimezone()
    log = logger or logging.getLogger(__name__)
    result: list[MessageDescriptor] = []
    for descriptor in descriptors:
        if descriptor.date is None:
            log.info("Message UID %s has no valid date, including it anyway", descriptor.uid)
            result.append(descriptor)
        elif is_same_local_day(descriptor.date, now):
            result.append(descriptor)
        else:
            log.debug("Message UID %s is from %s, skipping", descriptor.uid, descriptor.date.date())
    return result


class MailboxSession:
    """Owns the single IMAP connection to the monitored mailbox."""

    def __init__(
        self,
        config: ImapAccountConfig,
        *,
        max_messages: int = 300,
        client_factory: ClientFactory = IMAPClient,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.config = config
        self.max_messages = max_messages
        self.client_factory = client_factory
        self.logger = logger or logging.getLogger(__name__)
        self.client: Any | None = None

    @property
    def connected(self) -> bool:
        return self.client is not None

    def _ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if not self.config.verify_tls:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
            self.logger.warning("TLS certificate verification disabled for %s", self.config.host)
        return context

    def connect(self) -> None:
        self.logger.info(
            "Connecting to %s:%s mailbox=%s (TLS=%s)",
            self.config.host,
            self.config.port,
            self.config.mailbox,
            self.config.use_tls,
        )
        client = None
        try:
            client = self.client_factory(
                self.config.host,
                port=self.config.port,
                ssl=self.config.use_tls,
                ssl_context=self._ssl_context(),
                timeout=self.config.timeout_sec,
            )
            if not self.config.use_tls and client.has_capability("STARTTLS"):
                client.starttls(self._ssl_context())
            client.login(self.config.username, self.config.password)
            client.select_folder(self.config.mailbox)
        except CONNECTION_ERRORS as exc:
            if client is not None:
                self._logout_quietly(client)
            raise MailboxConnectionError(
                f"IMAP {self.config.username}@{self.config.host}:{self.config.port}: {exc}"
            ) from exc

        self.client = client
        self.logger.info("Connected to IMAP server")

    def _logout_quietly(self, client: Any) -> None:
        try:
            client.logout()
        except Exception:  # noqa: BLE001
            self.logger.debug("Connection was already closed or logout failed")

    def close(self) -> None:
        if self.client is None:
            return
        client, self.client = self.client, None
        self._logout_quietly(client)
        self.logger.info("Disconnected from IMAP server")

    def reconnect(self) -> None:
        self.close()
        self.connect()

    def check_connection(self) -> None:
        self.connect()
        self.close()

    def _require_client(self) -> Any:
        if self.client is None:
            raise MailboxConnectionError("Mailbox session is not connected")
        return self.client

    def enumerate(self) -> list[MessageDescriptor]:
        """Most recent ``max_messages`` messages in the mailbox, newest first."""
        client = self._require_client()
        try:
            uids = sorted(client.search(["ALL"]))
        except CONNECTION_ERRORS as exc:
            raise MailboxConnectionError(f"SEARCH in {self.config.mailbox} failed: {exc}") from exc
        self.logger.info("Found %s message(s) in %s", len(uids), self.config.mailbox)
        if len(uids) > self.max_messages:
            uids = uids[-self.max_messages:]
            self.logger.info("Limited to %s most recent messages", len(uids))
        if not uids:
            return []

        try:
            fetched = client.fetch(uids, ["INTERNALDATE", "ENVELOPE"])
        except CONNECTION_ERRORS as exc:
            raise MailboxConnectionError(f"Fetching message dates failed: {exc}") from exc
        descriptors: list[MessageDescriptor] = []
        for uid in reversed(uids):
            data = fetched.get(uid, {})
            envelope = data.get(b"ENVELOPE")
            descriptors.append(
                MessageDescriptor(
                    uid=uid,
                    internal_date=data.get(b"INTERNALDATE"),
                    envelope_date=getattr(envelope, "date", None),
                )
            )
        return descriptors

    def fetch_raw(self, uid: int) -> bytes | None:
        client = self._require_client()
        try:
            fetched = client.fetch([uid], ["RFC822"])
        except CONNECTION_ERRORS as exc:
            raise MailboxConnectionError(f"Fetching UID {uid} failed: {exc}") from exc
        return fetched.get(uid, {}).get(b"RFC822")

    def supports_push(self) -> bool:
        client = self._require_client()
        return bool(client.has_capability("IDLE"))

    def wait_for_new_mail(self, timeout: float) -> bool:
        """One IDLE cycle; True when the server announced new messages within ``timeout``."""
        client = self._require_client()
        client.idle()
        try:
            responses = client.idle_check(timeout=timeout)
        finally:
            client.idle_done()
        return any(
            isinstance(response, tuple) and len(response) > 1 and response[1] in NEW_MAIL_RESPONSES
            for response in responses
        )
