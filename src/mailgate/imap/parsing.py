# =============================================================================
# FETCH Response Parsing
# =============================================================================
# aioimaplib hands back FETCH responses as a flat list of "lines". Most are
# plain text, but any string the server chose to send as a literal ({N}
# followed by N raw bytes) arrives as a separate bytearray item:
#
#     b'12 FETCH (UID 4711 RFC822.SIZE 2048 ENVELOPE ("Mon, 1 Jan 2024 ..." {23}'
#     bytearray(b'Subject with "quotes"')
#     b' (("Alice" NIL "alice" "example.com")) ...))'
#     b'FETCH completed.'
#
# We need to:
#   1. Group items by message (each starts with "N FETCH (")
#   2. Splice literals back in where their {N} marker was
#   3. Tokenize the IMAP s-expression into nested Python lists
#   4. Interpret ENVELOPE, FLAGS, RFC822.SIZE, INTERNALDATE, BODYSTRUCTURE
#
# Token mapping: NIL -> None, atoms and quoted strings -> str,
# literals -> bytes, parenthesized lists -> list.
# =============================================================================

import email.header
import email.utils
import logging
import re
from datetime import datetime, timezone
from typing import Any, Iterable

from mailgate.core import Flag, MessageSummary
from mailgate.errors import ParseError

logger = logging.getLogger(__name__)

_FETCH_START = re.compile(rb"^\s*(\d+)\s+FETCH\s*\(", re.IGNORECASE)
_LITERAL_MARKER = re.compile(rb"\{(\d+)\}\s*$")

# Internal paren tokens; cannot collide with string tokens
_OPEN = object()
_CLOSE = object()

# Segment of one FETCH response: (is_literal, data)
Segment = tuple[bool, bytes]


def _to_bytes(item: Any) -> bytes:
    if isinstance(item, (bytes, bytearray)):
        return bytes(item)
    return str(item).encode("utf-8")


def split_fetch_responses(lines: Iterable[Any]) -> list[tuple[int, list[Segment]]]:
    """
    Group raw response items by message.

    Args:
        lines: response.lines from an aioimaplib FETCH or UID FETCH.

    Returns:
        List of (sequence number, segments) in server order.
    """
    groups: list[tuple[int, list[Segment]]] = []
    current: list[Segment] | None = None
    expect_literal = False

    for item in lines:
        data = _to_bytes(item)

        if expect_literal and current is not None:
            current.append((True, data))
            expect_literal = False
            continue

        match = _FETCH_START.match(data)
        if match:
            current = [(False, data)]
            groups.append((int(match.group(1)), current))
        elif current is not None:
            current.append((False, data))
        else:
            # Untagged noise before the first FETCH (EXISTS, RECENT, ...)
            continue

        expect_literal = bool(_LITERAL_MARKER.search(data))

    return groups


def _lex(text: str) -> list[Any]:
    """Tokenize one text segment of an IMAP response."""
    tokens: list[Any] = []
    i = 0
    n = len(text)

    while i < n:
        char = text[i]

        if char in " \r\n\t":
            i += 1
        elif char == "(":
            tokens.append(_OPEN)
            i += 1
        elif char == ")":
            tokens.append(_CLOSE)
            i += 1
        elif char == '"':
            # Quoted string with backslash escapes
            i += 1
            buf = []
            while i < n and text[i] != '"':
                if text[i] == "\\" and i + 1 < n:
                    i += 1
                buf.append(text[i])
                i += 1
            tokens.append("".join(buf))
            i += 1  # closing quote
        else:
            # Atom. Brackets may contain spaces and parens: BODY[HEADER.FIELDS (DATE)]
            start = i
            depth = 0
            while i < n:
                c = text[i]
                if c == "[":
                    depth += 1
                elif c == "]":
                    depth -= 1
                elif depth <= 0 and (c in " ()\r\n\t" or c == '"'):
                    break
                i += 1
            atom = text[start:i]
            tokens.append(None if atom.upper() == "NIL" else atom)

    return tokens


def tokenize(segments: list[Segment]) -> list[Any]:
    """Turn the segments of one FETCH response into a flat token stream."""
    tokens: list[Any] = []
    for is_literal, data in segments:
        if is_literal:
            tokens.append(data)
            continue
        # Drop the {N} marker; the literal that follows takes its place
        data = _LITERAL_MARKER.sub(b"", data)
        tokens.extend(_lex(data.decode("utf-8", errors="replace")))
    return tokens


def build_tree(tokens: list[Any]) -> list[Any]:
    """Nest a token stream by its parentheses. Unbalanced input is tolerated."""
    root: list[Any] = []
    stack = [root]

    for token in tokens:
        if token is _OPEN:
            child: list[Any] = []
            stack[-1].append(child)
            stack.append(child)
        elif token is _CLOSE:
            if len(stack) > 1:
                stack.pop()
        else:
            stack[-1].append(token)

    return root


def parse_fetch_items(segments: list[Segment]) -> dict[str, Any]:
    """
    Parse one FETCH response into a dictionary of its data items.

    Keys are upper-cased item names ("UID", "FLAGS", "ENVELOPE",
    "RFC822.SIZE", "BODYSTRUCTURE", "INTERNALDATE", "BODY[]").

    Raises:
        ParseError: If the response has no parenthesized item list.
    """
    tree = build_tree(tokenize(segments))

    # tree: [seq, "FETCH", [items...], trailing noise...]
    items = next((node for node in tree if isinstance(node, list)), None)
    if items is None:
        raise ParseError("FETCH response has no data items")

    result: dict[str, Any] = {}
    for i in range(0, len(items) - 1, 2):
        key = items[i]
        if isinstance(key, bytes):
            key = key.decode("utf-8", errors="replace")
        if not isinstance(key, str):
            continue
        result[key.upper().replace(".PEEK", "")] = items[i + 1]
    return result


# =============================================================================
# Value Interpretation
# =============================================================================

def as_text(value: Any) -> str:
    """Coerce a token (str, bytes literal, or NIL) to a string."""
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, list):
        return ""
    return str(value)


def decode_header_value(value: str) -> str:
    """Decode an RFC 2047 encoded header value."""
    if not value:
        return ""
    try:
        decoded_parts = email.header.decode_header(value)
        result = ""
        for part, charset in decoded_parts:
            if isinstance(part, bytes):
                try:
                    result += part.decode(charset or "utf-8", errors="replace")
                except LookupError:
                    result += part.decode("utf-8", errors="replace")
            else:
                result += part
        return result
    except Exception:
        return value


def parse_address_list(value: Any) -> list[dict[str, str]]:
    """
    Parse an ENVELOPE address list.

    Format: ((name adl mailbox host) (name adl mailbox host) ...)
    Group syntax (host NIL) is skipped; its members are kept.
    """
    if not isinstance(value, list):
        return []

    addresses = []
    for entry in value:
        if not isinstance(entry, list) or len(entry) < 4:
            continue
        name, _adl, mailbox, host = entry[:4]
        mailbox = as_text(mailbox)
        host = as_text(host)
        if not mailbox or not host:
            continue
        addresses.append({
            "name": decode_header_value(as_text(name)),
            "email": f"{mailbox}@{host}",
        })
    return addresses


def parse_envelope(value: Any) -> dict[str, Any]:
    """
    Interpret an IMAP ENVELOPE structure.

    Format: (date subject from sender reply-to to cc bcc in-reply-to message-id)
    """
    if not isinstance(value, list):
        return {}

    fields = list(value) + [None] * (10 - len(value))
    return {
        "date": as_text(fields[0]),
        "subject": decode_header_value(as_text(fields[1])),
        "from": parse_address_list(fields[2]),
        "reply_to": parse_address_list(fields[4]),
        "to": parse_address_list(fields[5]),
        "cc": parse_address_list(fields[6]),
        "in_reply_to": as_text(fields[8]),
        "message_id": as_text(fields[9]),
    }


def parse_flags(value: Any) -> set[str]:
    """Return the set of flags in a FLAGS list."""
    if not isinstance(value, list):
        return set()
    return {as_text(flag) for flag in value if flag is not None}


def parse_header_date(value: str) -> datetime | None:
    """Parse an RFC 2822 date header, normalized to UTC when it has a zone."""
    if not value:
        return None
    try:
        parsed = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is not None:
        return parsed.astimezone(timezone.utc)
    return parsed


def parse_internal_date(value: Any) -> datetime | None:
    """Parse an INTERNALDATE ("17-Jul-1996 02:44:25 -0700")."""
    text = as_text(value).strip()
    if not text:
        return None
    try:
        return datetime.strptime(text, "%d-%b-%Y %H:%M:%S %z").astimezone(timezone.utc)
    except ValueError:
        return None


def has_attachment_parts(structure: Any) -> bool:
    """
    Check a BODYSTRUCTURE for any part with an "attachment" disposition.

    Multipart: (child child ... subtype [params disposition language location])
    Single:    (type subtype params id desc encoding size ... [md5 disposition ...])

    A disposition is a list whose first element is the disposition type, so
    we look for ("attachment" ...) among a part's trailing list elements and
    recurse into children.
    """
    if not isinstance(structure, list) or not structure:
        return False

    if isinstance(structure[0], list):
        split = 0
        while split < len(structure) and isinstance(structure[split], list):
            split += 1
        children, extensions = structure[:split], structure[split:]
        if any(has_attachment_parts(child) for child in children):
            return True
        return _has_attachment_disposition(extensions)

    # Single part. message/rfc822 carries an embedded body structure at index 8.
    if (
        len(structure) > 8
        and as_text(structure[0]).lower() == "message"
        and as_text(structure[1]).lower() == "rfc822"
        and has_attachment_parts(structure[8])
    ):
        return True

    return _has_attachment_disposition(structure[7:])


def _has_attachment_disposition(elements: list) -> bool:
    for element in elements:
        if (
            isinstance(element, list)
            and element
            and isinstance(element[0], str)
            and element[0].lower() == "attachment"
        ):
            return True
    return False


def build_summary(data: dict[str, Any]) -> MessageSummary:
    """
    Build a MessageSummary from parsed FETCH items.

    Raises:
        ParseError: If the response carries no UID.
    """
    uid_raw = as_text(data.get("UID"))
    if not uid_raw.isdigit():
        raise ParseError("FETCH response has no UID")

    envelope = parse_envelope(data.get("ENVELOPE"))
    flags = parse_flags(data.get("FLAGS"))

    sent_at = parse_header_date(envelope.get("date", "")) or datetime.now(timezone.utc)
    received_at = parse_internal_date(data.get("INTERNALDATE")) or sent_at

    from_list = envelope.get("from", [])
    size_raw = as_text(data.get("RFC822.SIZE"))

    return MessageSummary(
        uid=int(uid_raw),
        message_id=envelope.get("message_id", ""),
        from_address=from_list[0]["email"] if from_list else "unknown",
        from_name=(from_list[0]["name"] or None) if from_list else None,
        to_addresses=[a["email"] for a in envelope.get("to", [])],
        cc_addresses=[a["email"] for a in envelope.get("cc", [])],
        subject=envelope.get("subject") or "(No Subject)",
        is_read=Flag.SEEN.value in flags,
        is_starred=Flag.FLAGGED.value in flags,
        has_attachments=has_attachment_parts(data.get("BODYSTRUCTURE")),
        size=int(size_raw) if size_raw.isdigit() else 0,
        sent_at=sent_at,
        received_at=received_at,
    )


def parse_summaries(lines: Iterable[Any]) -> list[MessageSummary]:
    """
    Parse a FETCH response into summaries, in server order.

    A message that fails to parse is skipped and logged; the rest are
    returned. Partial results beat failing the whole listing.
    """
    summaries = []
    for seq, segments in split_fetch_responses(lines):
        try:
            summaries.append(build_summary(parse_fetch_items(segments)))
        except Exception as e:
            logger.warning(f"Skipping malformed message at sequence {seq}: {e}")
    return summaries
