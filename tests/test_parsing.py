"""Tests for FETCH response parsing."""

from datetime import datetime, timezone

import pytest

from mailgate.errors import ParseError
from mailgate.imap.parsing import (
    build_summary,
    has_attachment_parts,
    parse_fetch_items,
    parse_summaries,
    split_fetch_responses,
)

from fakes import envelope_line

ATTACHMENT_STRUCTURE = (
    '(("text" "plain" ("charset" "utf-8") NIL NIL "7bit" 12 1 NIL NIL NIL NIL)'
    '("application" "pdf" ("name" "invoice.pdf") NIL NIL "base64" 4096 NIL '
    '("attachment" ("filename" "invoice.pdf")) NIL NIL) "mixed" ("boundary" "xyz") NIL NIL NIL)'
)


def items_of(*lines) -> dict:
    groups = split_fetch_responses(lines)
    assert len(groups) == 1
    return parse_fetch_items(groups[0][1])


class TestSplitFetchResponses:

    def test_groups_by_message(self) -> None:
        groups = split_fetch_responses([
            b"3 EXISTS",
            envelope_line(1, 101),
            envelope_line(2, 102),
            b"Fetch completed.",
        ])
        assert [seq for seq, _ in groups] == [1, 2]

    def test_literal_is_attached_to_its_message(self) -> None:
        groups = split_fetch_responses([
            b"7 FETCH (UID 42 BODY[] {5}",
            bytearray(b"hello"),
            b")",
        ])
        (seq, segments), = groups
        assert seq == 7
        assert (True, b"hello") in segments

    def test_literal_that_looks_like_fetch_start_stays_a_literal(self) -> None:
        groups = split_fetch_responses([
            b"1 FETCH (UID 9 BODY[] {16}",
            bytearray(b"2 FETCH (UID 10)"),
            b")",
        ])
        assert len(groups) == 1


class TestParseFetchItems:

    def test_simple_items(self) -> None:
        items = items_of(b"1 FETCH (UID 4711 RFC822.SIZE 2048 FLAGS (\\Seen \\Flagged))")
        assert items["UID"] == "4711"
        assert items["RFC822.SIZE"] == "2048"
        assert items["FLAGS"] == ["\\Seen", "\\Flagged"]

    def test_body_literal(self) -> None:
        raw = b"Subject: hi\r\n\r\nbody (with parens) and \"quotes\"\r\n"
        items = items_of(f"1 FETCH (UID 5 BODY[] {{{len(raw)}}}".encode(), bytearray(raw), b")")
        assert items["BODY[]"] == raw
        assert items["UID"] == "5"

    def test_peek_suffix_stripped(self) -> None:
        items = items_of(b'1 FETCH (UID 5 BODY.PEEK[HEADER.FIELDS (SUBJECT)] "x")')
        assert items["BODY[HEADER.FIELDS (SUBJECT)]"] == "x"

    def test_nil_becomes_none(self) -> None:
        items = items_of(b"1 FETCH (UID 5 X-GM-LABELS NIL)")
        assert items["X-GM-LABELS"] is None

    def test_no_item_list_is_parse_error(self) -> None:
        with pytest.raises(ParseError):
            parse_fetch_items([(False, b"1 FETCH")])


class TestEnvelopeSummary:

    def test_full_summary(self) -> None:
        summary = build_summary(items_of(envelope_line(
            1, 101, subject="Quarterly report", flags="\\Seen", size=4096
        )))

        assert summary.uid == 101
        assert summary.message_id == "<msg101@example.com>"
        assert summary.subject == "Quarterly report"
        assert summary.from_address == "alice@example.com"
        assert summary.from_name == "Alice"
        assert summary.to_addresses == ["test@example.com"]
        assert summary.is_read is True
        assert summary.is_starred is False
        assert summary.size == 4096
        assert summary.sent_at == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
        assert summary.received_at == datetime(2024, 1, 15, 10, 30, 5, tzinfo=timezone.utc)

    def test_subject_as_literal(self) -> None:
        subject = b'He said "hi" (twice)'
        items = items_of(
            b'1 FETCH (UID 3 FLAGS () ENVELOPE ("Mon, 15 Jan 2024 10:30:00 +0000" {'
            + str(len(subject)).encode() + b"}",
            bytearray(subject),
            b' (("Bob" NIL "bob" "example.org")) NIL NIL NIL NIL NIL NIL "<x@y>"))',
        )
        summary = build_summary(items)
        assert summary.subject == 'He said "hi" (twice)'
        assert summary.from_address == "bob@example.org"

    def test_encoded_words_decoded(self) -> None:
        summary = build_summary(items_of(envelope_line(
            1, 7, subject="=?utf-8?q?Gr=C3=BC=C3=9Fe?="
        )))
        assert summary.subject == "Grüße"

    def test_missing_fields_get_defaults(self) -> None:
        summary = build_summary(items_of(
            b"1 FETCH (UID 8 FLAGS (\\Flagged) ENVELOPE (NIL NIL NIL NIL NIL NIL NIL NIL NIL NIL))"
        ))
        assert summary.subject == "(No Subject)"
        assert summary.from_address == "unknown"
        assert summary.from_name is None
        assert summary.is_starred is True
        assert summary.sent_at is not None
        assert summary.received_at == summary.sent_at

    def test_missing_uid_is_parse_error(self) -> None:
        with pytest.raises(ParseError):
            build_summary(items_of(b"1 FETCH (FLAGS ())"))

    def test_to_dict_shape(self) -> None:
        data = build_summary(items_of(envelope_line(1, 101))).to_dict()
        assert data["id"] == "101"
        assert data["fromAddress"] == "alice@example.com"
        assert data["hasAttachments"] is False
        assert data["sentAt"] == "2024-01-15T10:30:00+00:00"


class TestAttachmentDetection:

    def test_single_text_part_has_none(self) -> None:
        items = items_of(envelope_line(1, 1))
        assert not has_attachment_parts(items["BODYSTRUCTURE"])

    def test_attachment_disposition_found(self) -> None:
        items = items_of(envelope_line(1, 1, bodystructure=ATTACHMENT_STRUCTURE))
        assert has_attachment_parts(items["BODYSTRUCTURE"])

    def test_inline_disposition_is_not_an_attachment(self) -> None:
        structure = (
            '(("text" "html" ("charset" "utf-8") NIL NIL "7bit" 120 3 NIL NIL NIL NIL)'
            '("image" "png" NIL "<logo>" NIL "base64" 512 NIL ("inline" NIL) NIL NIL)'
            ' "related" ("boundary" "b1") NIL NIL NIL)'
        )
        items = items_of(envelope_line(1, 1, bodystructure=structure))
        assert not has_attachment_parts(items["BODYSTRUCTURE"])

    def test_nested_multipart(self) -> None:
        structure = (
            '((("text" "plain" NIL NIL NIL "7bit" 10 1 NIL NIL NIL NIL)'
            '("text" "html" NIL NIL NIL "7bit" 20 1 NIL NIL NIL NIL) "alternative")'
            '("application" "zip" NIL NIL NIL "base64" 99 NIL ("ATTACHMENT" ("filename" "a.zip")) NIL NIL)'
            ' "mixed")'
        )
        items = items_of(envelope_line(1, 1, bodystructure=structure))
        assert has_attachment_parts(items["BODYSTRUCTURE"])

    def test_summary_flags_attachments(self) -> None:
        summary = build_summary(items_of(envelope_line(1, 1, bodystructure=ATTACHMENT_STRUCTURE)))
        assert summary.has_attachments is True


class TestParseSummaries:

    def test_malformed_message_skipped(self) -> None:
        summaries = parse_summaries([
            envelope_line(1, 101),
            b"2 FETCH (FLAGS (\\Seen))",
            envelope_line(3, 103),
            b"Fetch completed.",
        ])
        assert [s.uid for s in summaries] == [101, 103]
