# =============================================================================
# Message Content
# =============================================================================
# Downloads one message in full and parses it into bodies and an attachment
# manifest.
#
# The body is fetched with BODY.PEEK[] so the download itself does not set
# \Seen. Marking the message read is a separate, best-effort STORE afterwards:
# once the user has the content, a failed flag update is not worth an error.
#
# HTML-only messages get a plain text rendering (via inscriptis) so callers
# always have something to show in text contexts such as reply quoting.
# =============================================================================

import email
import email.utils
import logging
from email.message import Message

from inscriptis import get_text

from mailgate.core import AttachmentInfo, Flag, MessageContent
from mailgate.effects import best_effort
from mailgate.errors import MessageNotFoundError, ParseError
from mailgate.imap.parsing import (
    as_text,
    decode_header_value,
    parse_fetch_items,
    parse_header_date,
    split_fetch_responses,
)
from mailgate.imap.session import MailboxSession

logger = logging.getLogger(__name__)


async def fetch_content(
    session: MailboxSession,
    path: str,
    uid: int,
    *,
    mark_read: bool = True,
) -> MessageContent:
    """
    Download and parse a single message.

    Args:
        session: An open session.
        path: Server mailbox path.
        uid: Message UID within that mailbox.
        mark_read: Set \\Seen after a successful download (best effort).

    Raises:
        MailboxNotFoundError: The mailbox does not exist.
        MessageNotFoundError: No message with that UID.
        ParseError: The server response carries no message body.
    """
    async with session.mailbox(path):
        lines = await session.uid_fetch(str(uid), "(UID BODY.PEEK[])")

        items = _response_for_uid(lines, uid)
        if items is None:
            raise MessageNotFoundError(path, uid)

        raw = items.get("BODY[]")
        if isinstance(raw, str):
            raw = raw.encode("utf-8")
        if not isinstance(raw, (bytes, bytearray)):
            raise ParseError(f"No message body in FETCH response for UID {uid}")

        content = parse_message(uid, bytes(raw))

        if mark_read:
            await best_effort(
                f"mark UID {uid} in {path} as read",
                session.uid_store(uid, "+FLAGS", [Flag.SEEN.value]),
            )

    return content


def _response_for_uid(lines, uid: int) -> dict | None:
    """
    Parsed FETCH items for the requested UID.

    Servers may interleave unsolicited FETCH responses (flag changes made by
    another client) with the one we asked for, so match on UID rather than
    position.
    """
    for _, segments in split_fetch_responses(lines):
        items = parse_fetch_items(segments)
        if as_text(items.get("UID")) == str(uid):
            return items
    return None


def parse_message(uid: int, raw: bytes) -> MessageContent:
    """
    Parse raw RFC 822 bytes into MessageContent.

    The first text/plain and first text/html parts that are not attachments
    become the bodies. Every other leaf part is listed as an attachment:
    those with an "attachment" disposition, and inline parts such as
    embedded images, calendar invites or further text parts. This holds for
    single-part messages too, so a bare PDF is an attachment, not a body.
    """
    msg = email.message_from_bytes(raw)

    body_text, body_html, attachments = _parse_body(msg)
    if body_html and not body_text:
        body_text = get_text(body_html).strip()

    from_list = _addresses(msg, "From")
    reply_to = _addresses(msg, "Reply-To")

    return MessageContent(
        uid=uid,
        message_id=(msg.get("Message-ID") or "").strip(),
        from_address=from_list[0][1] if from_list else "unknown",
        from_name=(from_list[0][0] or None) if from_list else None,
        to_addresses=[addr for _, addr in _addresses(msg, "To")],
        cc_addresses=[addr for _, addr in _addresses(msg, "Cc")],
        reply_to=reply_to[0][1] if reply_to else None,
        subject=decode_header_value(msg.get("Subject", "")) or "(No Subject)",
        body_text=body_text or None,
        body_html=body_html or None,
        attachments=attachments,
        sent_at=parse_header_date(msg.get("Date", "")),
    )


def _addresses(msg: Message, header: str) -> list[tuple[str, str]]:
    """Decoded (name, address) pairs from an address header."""
    values = [str(v) for v in msg.get_all(header, [])]
    return [
        (decode_header_value(name), addr)
        for name, addr in email.utils.getaddresses(values)
        if addr
    ]


def _parse_body(msg: Message) -> tuple[str, str, list[AttachmentInfo]]:
    """Split a message into (text body, HTML body, attachments)."""
    body_text = ""
    body_html = ""
    attachments: list[AttachmentInfo] = []

    # walk() yields a single-part message itself
    for part in msg.walk():
        if part.is_multipart():
            continue

        content_type = part.get_content_type()
        disposition = (part.get_content_disposition() or "").lower()
        named = part.get_filename() is not None

        if disposition == "attachment":
            attachments.append(_extract_attachment(part))
        elif content_type == "text/plain" and not body_text and not named:
            body_text = _decode_part(part)
        elif content_type == "text/html" and not body_html and not named:
            body_html = _decode_part(part)
        else:
            # Inline image, calendar invite, additional text part
            attachments.append(_extract_attachment(part, inline=True))

    return body_text, body_html, attachments


def _decode_part(part: Message) -> str:
    """Decode a message part to string."""
    payload = part.get_payload(decode=True)
    if isinstance(payload, bytes):
        charset = part.get_content_charset() or "utf-8"
        try:
            return payload.decode(charset, errors="replace")
        except (LookupError, UnicodeDecodeError):
            return payload.decode("utf-8", errors="replace")
    return str(payload) if payload else ""


def _extract_attachment(part: Message, inline: bool = False) -> AttachmentInfo:
    """Describe an attachment part without keeping its data."""
    filename = part.get_filename()
    filename = decode_header_value(filename) if filename else "attachment"

    payload = part.get_payload(decode=True)
    size = len(payload) if isinstance(payload, bytes) else 0

    content_id = part.get("Content-ID")
    if content_id:
        content_id = str(content_id).strip().strip("<>")

    return AttachmentInfo(
        filename=filename,
        content_type=part.get_content_type(),
        size=size,
        content_id=content_id or None,
        inline=inline,
    )
