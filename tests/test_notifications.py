from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from cvgrab.core.normalize import MailRecord
from cvgrab.services.notifications import MSG_NEW, NotificationEvent, NotificationHub


def _event() -> NotificationEvent:
    record = MailRecord(
        email_id="uid_1",
        sender="jane@example.com",
        sender_name="Jane Doe",
        subject="Hello",
        body="(No content)",
        received_at=datetime(2026, 10, 19, tzinfo=timezone.utc),
        id=1,
    )
    return NotificationEvent(message=MSG_NEW, email=record)


def test_publish_reaches_every_listener_despite_failures(test_logger) -> None:  # noqa: ANN001
    hub = NotificationHub(logger=test_logger)
    received: list[NotificationEvent] = []

    def broken(event: NotificationEvent) -> None:
        raise RuntimeError("listener down")

    hub.subscribe(broken)
    hub.subscribe(received.append)

    assert hub.publish(_event()) == 1
    assert received[0].to_dict()["event"] == "newEmail"
    assert received[0].to_dict()["email"]["email_id"] == "uid_1"


def test_unsubscribe_and_no_listeners(test_logger) -> None:  # noqa: ANN001
    hub = NotificationHub(logger=test_logger)
    unsubscribe = hub.subscribe(lambda event: None)
    assert hub.subscriber_count == 1

    unsubscribe()
    unsubscribe()

    assert hub.subscriber_count == 0
    assert hub.publish(_event()) == 0


@pytest.mark.asyncio
async def test_queue_subscription_receives_events_from_threads(test_logger) -> None:  # noqa: ANN001
    hub = NotificationHub(logger=test_logger)
    queue, unsubscribe = hub.subscribe_queue(asyncio.get_running_loop())

    await asyncio.to_thread(hub.publish, _event())
    event = await asyncio.wait_for(queue.get(), timeout=1)

    assert event.message == MSG_NEW
    unsubscribe()
    assert hub.subscriber_count == 0
