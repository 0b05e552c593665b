from __future__ import annotations

from datetime import datetime
from types import SimpleNamespace

import pytest
from imapclient.exceptions import LoginError

from cvgrab.config import ImapAccountConfig
from cvgrab.errors import MailboxConnectionError
from cvgrab.sources.email_imap import MailboxSession, filter_same_day, is_same_local_day
from cvgrab.sources.models import MessageDescriptor

ACCOUNT = ImapAccountConfig(host="imap.example.com", port=993, username="hr@example.com", password="secret")


class FakeImapClient:
    def __init__(self, uids=None, *, capabilities=(b"IDLE",), login_error=None, idle_responses=None):  # noqa: ANN001
        self.uids = list(uids or [])
        self.capabilities = set(capabilities)
        self.login_error = login_error
        self.idle_responses = idle_responses or []
        self.fetch_error: Exception | None = None
        self.calls: list[str] = []
        self.connect_kwargs: dict = {}

    def __call__(self, host: str, **kwargs):  # noqa: ANN003
        self.calls.append(f"connect:{host}")
        self.connect_kwargs = kwargs
        return self

    def has_capability(self, name: str) -> bool:
        return name.encode() in self.capabilities

    def starttls(self, ssl_context=None) -> None:  # noqa: ANN001
        self.calls.append("starttls")

    def login(self, username: str, password: str) -> None:
        self.calls.append("login")
        if self.login_error is not None:
            raise self.login_error

    def select_folder(self, folder: str) -> None:
        self.calls.append(f"select:{folder}")

    def search(self, criteria):  # noqa: ANN001
        return list(reversed(self.uids))

    def fetch(self, uids, data):  # noqa: ANN001
        if self.fetch_error is not None:
            raise self.fetch_error
        if data == ["RFC822"]:
            return {uid: {b"RFC822": f"raw-{uid}".encode()} for uid in uids}
        return {
            uid: {
                b"INTERNALDATE": datetime(2026, 10, 19, 9, 0),
                b"ENVELOPE": SimpleNamespace(date=datetime(2026, 10, 19, 8, 0)),
            }
            for uid in uids
        }

    def idle(self) -> None:
        self.calls.append("idle")

    def idle_check(self, timeout=None):  # noqa: ANN001
        return self.idle_responses

    def idle_done(self):
        self.calls.append("idle_done")
        return (b"", [])

    def logout(self) -> None:
        self.calls.append("logout")


def _session(client: FakeImapClient, **kwargs) -> MailboxSession:  # noqa: ANN003
    session = MailboxSession(ACCOUNT, client_factory=client, **kwargs)
    session.connect()
    return session


def test_connect_logs_in_and_selects_mailbox() -> None:
    client = FakeImapClient()
    session = _session(client)

    assert session.connected
    assert client.calls == ["connect:imap.example.com", "login", "select:INBOX"]
    assert client.connect_kwargs["port"] == 993
    assert client.connect_kwargs["ssl"] is True


def test_plain_connection_upgrades_with_starttls() -> None:
    client = FakeImapClient(capabilities=(b"STARTTLS",))
    account = ImapAccountConfig(host="imap.example.com", port=143, username="u", password="p", use_tls=False)

    MailboxSession(account, client_factory=client).connect()

    assert client.calls[:2] == ["connect:imap.example.com", "starttls"]


def test_login_failure_raises_connection_error() -> None:
    client = FakeImapClient(login_error=LoginError("invalid credentials"))
    session = MailboxSession(ACCOUNT, client_factory=client)

    with pytest.raises(MailboxConnectionError) as excinfo:
        session.connect()

    assert isinstance(excinfo.value, ConnectionError)
    assert not session.connected
    assert client.calls[-1] == "logout"


def test_enumerate_keeps_most_recent_messages_newest_first() -> None:
    session = _session(FakeImapClient(uids=range(1, 351)))

    descriptors = session.enumerate()

    assert len(descriptors) == 300
    assert descriptors[0].uid == 350
    assert descriptors[-1].uid == 51
    assert descriptors[0].date == datetime(2026, 10, 19, 9, 0)


def test_enumerate_empty_mailbox() -> None:
    assert _session(FakeImapClient()).enumerate() == []


def test_fetch_raw_and_closed_session() -> None:
    client = FakeImapClient(uids=[5])
    session = _session(client)

    assert session.fetch_raw(5) == b"raw-5"

    session.close()
    session.close()
    assert client.calls.count("logout") == 1
    with pytest.raises(MailboxConnectionError):
        session.fetch_raw(5)


def test_wait_for_new_mail_reports_exists_push() -> None:
    client = FakeImapClient(idle_responses=[(b"OK", b"Still here"), (4, b"EXISTS")])
    session = _session(client)

    assert session.supports_push()
    assert session.wait_for_new_mail(1.0) is True
    assert client.calls[-2:] == ["idle", "idle_done"]

    client.idle_responses = [(b"OK", b"Still here")]
    assert session.wait_for_new_mail(1.0) is False


def test_same_day_filter_uses_local_calendar_day() -> None:
    now = datetime(2026, 10, 19, 12, 0)
    descriptors = [
        MessageDescriptor(uid=1, internal_date=datetime(2026, 10, 19, 0, 0, 1)),
        MessageDescriptor(uid=2, internal_date=datetime(2026, 10, 18, 23, 59, 59)),
        MessageDescriptor(uid=3),
        MessageDescriptor(uid=4, envelope_date=datetime(2026, 10, 19, 23, 59, 59)),
    ]

    kept = filter_same_day(descriptors, now=now)

    assert [descriptor.uid for descriptor in kept] == [1, 3, 4]
    assert is_same_local_day(datetime(2026, 10, 19, 23, 59, 59), now)


def test_dropped_connection_during_fetch_raises_connection_error() -> None:
    client = FakeImapClient(uids=[5, 6])
    session = _session(client)
    client.fetch_error = ConnectionResetError("connection reset by peer")

    with pytest.raises(MailboxConnectionError):
        session.fetch_raw(5)
    with pytest.raises(MailboxConnectionError):
        session.enumerate()
