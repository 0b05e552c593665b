from __future__ import annotations

from datetime import datetime, timezone

import pytest

from cvgrab.errors import DecodeError
from cvgrab.parsers.message import NO_CONTENT, NO_SUBJECT, UNKNOWN_SENDER, decode_message, select_body_text


def test_decode_plain_message_with_pdf(make_raw_message) -> None:  # noqa: ANN001
    raw = make_raw_message(
        body="Hello,\n\n\n\nplease see attached.",
        attachments=[
            ("notes.doc", "application/msword", b"not a resume"),
            ("cv.pdf", "application/pdf", b"%PDF-1.4 fake"),
        ],
    )

    decoded = decode_message(raw)

    assert decoded.sender == "jane@example.com"
    assert decoded.sender_name == "Jane Doe"
    assert decoded.subject == "Application for backend role"
    assert decoded.body == "Hello,\n\nplease see attached."
    assert decoded.received_at == datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc)
    assert decoded.received_at.tzinfo is not None
    assert [a.filename for a in decoded.attachments] == ["notes.doc", "cv.pdf"]
    assert decoded.attachments[1].content_type == "application/pdf"
    assert decoded.attachments[1].content == b"%PDF-1.4 fake"


def test_html_only_body_is_stripped_of_tags(make_raw_message) -> None:  # noqa: ANN001
    raw = make_raw_message(html="<p>Hello <b>world</b> &amp; team</p>")
    assert decode_message(raw).body == "Hello world & team"


def test_missing_headers_fall_back_to_defaults() -> None:
    decoded = decode_message(b"X-Mailer: test\r\n\r\n")

    assert decoded.sender == UNKNOWN_SENDER
    assert decoded.sender_name == UNKNOWN_SENDER
    assert decoded.subject == NO_SUBJECT
    assert decoded.body == NO_CONTENT
    assert decoded.attachments == []
    assert decoded.received_at.tzinfo is not None


def test_encoded_subject_and_list_payload(make_raw_message) -> None:  # noqa: ANN001
    raw = make_raw_message(subject="Résumé – Jürgen")
    decoded = decode_message(list(raw))
    assert decoded.subject == "Résumé – Jürgen"


def test_unparsable_date_uses_now() -> None:
    before = datetime.now().astimezone()
    decoded = decode_message(b"From: a@example.com\r\nDate: not a date at all\r\n\r\nhi")
    assert decoded.received_at >= before


@pytest.mark.parametrize("raw", [b"", b"   \r\n", 42, None])
def test_invalid_payload_raises_decode_error(raw) -> None:  # noqa: ANN001
    with pytest.raises(DecodeError):
        decode_message(raw)


def test_select_body_prefers_plain_text() -> None:
    assert select_body_text("plain", "<p>html</p>") == "plain"
    assert select_body_text("", "") == NO_CONTENT


def test_decoding_is_deterministic(make_raw_message) -> None:  # noqa: ANN001
    raw = make_raw_message(
        html="<p>Hello</p>",
        attachments=[("cv.pdf", "application/pdf", b"%PDF-1.4 fake")],
    )

    first = decode_message(raw)
    second = decode_message(raw)

    assert first == second
    assert first.attachments[0].content == second.attachments[0].content
