"""Tests for full message download and MIME parsing."""

from email.mime.application import MIMEApplication
from email.mime.image import MIMEImage
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import pytest

from mailgate.errors import MailboxNotFoundError, MessageNotFoundError
from mailgate.imap.content import fetch_content, parse_message

from fakes import body_lines, no, ok, select_ok

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24


def plain_message() -> bytes:
    msg = MIMEText("Hello Bob,\nsee you at noon.", "plain", "utf-8")
    msg["From"] = '"Alice Example" <alice@example.com>'
    msg["To"] = "bob@example.com, carol@example.com"
    msg["Cc"] = "dave@example.com"
    msg["Reply-To"] = "replies@example.com"
    msg["Subject"] = "=?utf-8?q?Gr=C3=BC=C3=9Fe?="
    msg["Date"] = "Mon, 15 Jan 2024 10:30:00 +0100"
    msg["Message-ID"] = "<abc123@example.com>"
    return msg.as_bytes()


def rich_message() -> bytes:
    msg = MIMEMultipart("mixed")
    msg["From"] = "alice@example.com"
    msg["To"] = "bob@example.com"
    msg["Subject"] = "Report"

    related = MIMEMultipart("related")
    alternative = MIMEMultipart("alternative")
    alternative.attach(MIMEText("Plain version", "plain", "utf-8"))
    alternative.attach(MIMEText('<p>HTML <img src="cid:logo"></p>', "html", "utf-8"))
    related.attach(alternative)

    image = MIMEImage(PNG_BYTES, "png")
    image.add_header("Content-ID", "<logo>")
    image.add_header("Content-Disposition", "inline")
    related.attach(image)
    msg.attach(related)

    pdf = MIMEApplication(b"%PDF-1.4 fake", "pdf")
    pdf.add_header("Content-Disposition", "attachment", filename="report.pdf")
    msg.attach(pdf)
    return msg.as_bytes()


def html_only_message() -> bytes:
    msg = MIMEText("<html><body><h1>Sale</h1><p>Everything must go</p></body></html>", "html", "utf-8")
    msg["From"] = "shop@example.com"
    msg["Subject"] = "Sale"
    return msg.as_bytes()


def bare_attachment_message(part) -> bytes:
    part["From"] = "scanner@example.com"
    part["Subject"] = "Scan"
    return part.as_bytes()


def invite_message() -> bytes:
    msg = MIMEMultipart("mixed")
    msg["From"] = "alice@example.com"
    msg["Subject"] = "Standup"
    msg.attach(MIMEText("Join us tomorrow.", "plain", "utf-8"))
    msg.attach(MIMEText("BEGIN:VCALENDAR\r\nEND:VCALENDAR\r\n", "calendar", "utf-8"))

    notes = MIMEText("Agenda: status, blockers", "plain", "utf-8")
    notes.add_header("Content-Disposition", "inline", filename="agenda.txt")
    msg.attach(notes)
    return msg.as_bytes()


class TestParseMessage:

    def test_plain_message_headers(self) -> None:
        content = parse_message(7, plain_message())

        assert content.uid == 7
        assert content.message_id == "<abc123@example.com>"
        assert content.from_address == "alice@example.com"
        assert content.from_name == "Alice Example"
        assert content.to_addresses == ["bob@example.com", "carol@example.com"]
        assert content.cc_addresses == ["dave@example.com"]
        assert content.reply_to == "replies@example.com"
        assert content.subject == "Grüße"
        assert content.body_text == "Hello Bob,\nsee you at noon."
        assert content.body_html is None
        assert content.attachments == []
        assert content.sent_at.isoformat() == "2024-01-15T09:30:00+00:00"

    def test_bodies_and_attachments(self) -> None:
        content = parse_message(8, rich_message())

        assert content.body_text == "Plain version"
        assert "cid:logo" in content.body_html

        by_name = {a.filename: a for a in content.attachments}
        assert by_name["report.pdf"].content_type == "application/pdf"
        assert by_name["report.pdf"].size == len(b"%PDF-1.4 fake")
        assert by_name["report.pdf"].inline is False

        inline = [a for a in content.attachments if a.inline]
        assert len(inline) == 1
        assert inline[0].content_id == "logo"
        assert inline[0].filename == "attachment"
        assert inline[0].size == len(PNG_BYTES)

    def test_html_only_gets_text_rendering(self) -> None:
        content = parse_message(9, html_only_message())

        assert content.body_html.startswith("<html>")
        assert "Sale" in content.body_text
        assert "Everything must go" in content.body_text
        assert "<p>" not in content.body_text

    def test_missing_headers_get_defaults(self) -> None:
        content = parse_message(10, b"\r\nJust a body\r\n")

        assert content.from_address == "unknown"
        assert content.subject == "(No Subject)"
        assert content.sent_at is None

    def test_single_part_pdf_is_attachment(self) -> None:
        pdf = MIMEApplication(b"%PDF-1.4 scan", "pdf")
        pdf.add_header("Content-Disposition", "attachment", filename="scan.pdf")

        content = parse_message(11, bare_attachment_message(pdf))

        assert content.body_text is None
        assert content.body_html is None
        assert [(a.filename, a.content_type, a.size) for a in content.attachments] == [
            ("scan.pdf", "application/pdf", len(b"%PDF-1.4 scan"))
        ]

    def test_single_part_text_attachment_is_not_body(self) -> None:
        notes = MIMEText("line one\nline two", "plain", "utf-8")
        notes.add_header("Content-Disposition", "attachment", filename="notes.txt")

        content = parse_message(12, bare_attachment_message(notes))

        assert content.body_text is None
        assert [a.filename for a in content.attachments] == ["notes.txt"]
        assert content.attachments[0].inline is False

    def test_extra_text_parts_are_attachments(self) -> None:
        content = parse_message(13, invite_message())

        assert content.body_text == "Join us tomorrow."
        by_type = {a.content_type: a for a in content.attachments}
        assert set(by_type) == {"text/calendar", "text/plain"}
        assert by_type["text/plain"].filename == "agenda.txt"
        assert by_type["text/calendar"].size > 0

    def test_to_dict_shape(self) -> None:
        data = parse_message(8, rich_message()).to_dict()
        assert data["bodyText"] == "Plain version"
        assert {"filename", "contentType", "size", "contentId"} <= set(data["attachments"][0])


class TestFetchContent:

    async def test_fetches_with_peek_and_marks_read(self, session, imap_client) -> None:
        imap_client.select.return_value = select_ok(5)
        imap_client.uid.return_value = ok(*body_lines(3, 42, plain_message()))

        content = await fetch_content(session, "INBOX", 42)

        assert content.uid == 42
        assert content.subject == "Grüße"
        assert imap_client.uid_calls("FETCH") == [("FETCH", "42", "(UID BODY.PEEK[])")]
        assert imap_client.uid_calls("STORE") == [("STORE", "42", "+FLAGS (\\Seen)")]

    async def test_mark_read_failure_does_not_fail_fetch(self, session, imap_client) -> None:
        raw = plain_message()

        async def server(command, *args):
            if command == "STORE":
                return no(b"STORE failed: mailbox is read-only")
            return ok(*body_lines(1, 42, raw))

        imap_client.uid.side_effect = server

        content = await fetch_content(session, "INBOX", 42)

        assert content.from_address == "alice@example.com"
        assert len(imap_client.uid_calls("STORE")) == 1

    async def test_mark_read_can_be_skipped(self, session, imap_client) -> None:
        imap_client.uid.return_value = ok(*body_lines(1, 42, plain_message()))

        await fetch_content(session, "INBOX", 42, mark_read=False)

        assert imap_client.uid_calls("STORE") == []

    async def test_unsolicited_fetch_before_requested_message(self, session, imap_client) -> None:
        imap_client.uid.return_value = ok(
            b"3 FETCH (FLAGS (\\Seen))",
            *body_lines(4, 42, plain_message()),
        )

        content = await fetch_content(session, "INBOX", 42, mark_read=False)

        assert content.uid == 42
        assert content.from_address == "alice@example.com"

    async def test_other_uid_only_is_missing_message(self, session, imap_client) -> None:
        imap_client.uid.return_value = ok(*body_lines(4, 41, plain_message()))

        with pytest.raises(MessageNotFoundError):
            await fetch_content(session, "INBOX", 42)

    async def test_missing_message(self, session, imap_client) -> None:
        imap_client.uid.return_value = ok()

        with pytest.raises(MessageNotFoundError) as exc_info:
            await fetch_content(session, "INBOX", 999)

        assert exc_info.value.uid == 999
        assert exc_info.value.kind == "message_not_found"

    async def test_missing_mailbox(self, session, imap_client) -> None:
        imap_client.select.return_value = no(b"[NONEXISTENT] Unknown Mailbox: Gone")

        with pytest.raises(MailboxNotFoundError):
            await fetch_content(session, "Gone", 1)
