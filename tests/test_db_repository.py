from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from cvgrab.core.db import pending_migrations
from cvgrab.core.normalize import AttachmentData, MailRecord
from cvgrab.errors import PersistenceError

BASE_TIME = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


def _record(uid: int, *, minutes: int = 0, attachment: AttachmentData | None = None) -> MailRecord:
    return MailRecord(
        email_id=f"uid_{uid}",
        sender="jane@example.com",
        sender_name="Jane Doe",
        subject=f"Application {uid}",
        body="Please find my CV attached.",
        received_at=BASE_TIME + timedelta(minutes=minutes),
        has_attachment=attachment is not None,
        attachment=attachment,
    )


def test_insert_and_find_one_round_trip(repository) -> None:  # noqa: ANN001
    attachment = AttachmentData(
        pdf_path="/data/uploads/1_cv.pdf",
        pdf_filename="1_cv.pdf",
        name="Jane Doe",
        email="jane.doe@example.com",
        raw_text="Name: Jane Doe",
    )
    inserted = repository.insert(_record(1, attachment=attachment))

    assert inserted.id is not None
    found = repository.find_one("uid_1")
    assert found is not None
    assert found.id == inserted.id
    assert found.attachment == attachment
    assert found.has_attachment is True
    assert found.received_at == BASE_TIME
    assert repository.find_one("uid_404") is None


def test_email_id_is_unique(repository) -> None:  # noqa: ANN001
    repository.insert(_record(1))
    with pytest.raises(PersistenceError):
        repository.insert(_record(1))
    assert repository.count() == 1


def test_save_updates_existing_record(repository) -> None:  # noqa: ANN001
    record = repository.insert(_record(2))
    assert record.needs_backfill

    record.has_attachment = True
    record.attachment = AttachmentData(pdf_path="/tmp/cv.pdf", pdf_filename="cv.pdf", name="Jane Doe")
    repository.save(record)

    reloaded = repository.find_by_id(record.id)
    assert reloaded is not None
    assert reloaded.attachment is not None
    assert reloaded.attachment.name == "Jane Doe"
    assert not reloaded.needs_backfill


def test_save_requires_inserted_record(repository) -> None:  # noqa: ANN001
    with pytest.raises(PersistenceError):
        repository.save(_record(3))


def test_find_all_is_newest_first_and_delete(repository) -> None:  # noqa: ANN001
    old = repository.insert(_record(1, minutes=0))
    new = repository.insert(_record(2, minutes=30))

    assert [record.email_id for record in repository.find_all()] == ["uid_2", "uid_1"]

    assert repository.delete_by_id(old.id) is True
    assert repository.delete_by_id(old.id) is False
    assert repository.count() == 1
    assert repository.find_all()[0].id == new.id


def test_to_dict_uses_mail_field_names(repository) -> None:  # noqa: ANN001
    record = repository.insert(_record(5))
    payload = record.to_dict()

    assert payload["email_id"] == "uid_5"
    assert payload["from"] == "jane@example.com"
    assert payload["attachment_data"] is None
    assert payload["received_at"] == BASE_TIME.isoformat()


def test_migrations_are_applied_once(repository) -> None:  # noqa: ANN001
    assert repository.migrate() == []
    assert pending_migrations(repository.connection) == []


def test_find_all_orders_by_instant_across_offset_change(repository) -> None:  # noqa: ANN001
    # 01:30 EDT is 05:30 UTC, 01:10 EST an hour later is 06:10 UTC
    before_switch = _record(1)
    before_switch.received_at = datetime(2026, 11, 1, 1, 30, tzinfo=timezone(timedelta(hours=-4)))
    after_switch = _record(2)
    after_switch.received_at = datetime(2026, 11, 1, 1, 10, tzinfo=timezone(timedelta(hours=-5)))
    repository.insert(before_switch)
    repository.insert(after_switch)

    assert [record.email_id for record in repository.find_all()] == ["uid_2", "uid_1"]
    stored = [row[0] for row in repository.connection.execute("SELECT received_at FROM mail_records")]
    assert all(value.endswith("+00:00") for value in stored)
    assert repository.find_one("uid_1").received_at == before_switch.received_at
