# =============================================================================
# Message Models
# =============================================================================
# Value objects produced by the mail access layer:
#   - MessageSummary: one row of a folder listing (envelope + status only)
#   - MessageContent: a fully downloaded and parsed message
#   - AttachmentInfo: attachment manifest entry (no payload)
#   - MessagePage: a page of summaries plus pagination metadata
#   - OutgoingMessage / SendResult: the send path
#
# Everything here is created per request and thrown away at its end. Nothing
# is cached across requests. Each model has a to_dict() that produces the
# camelCase JSON shape the web UI consumes.
# =============================================================================

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Flag(str, Enum):
    """
    IMAP system flags the web UI can change.

    These are protocol-defined names, not free text:
        - SEEN: Message has been read
        - FLAGGED: User-flagged / starred
    """
    SEEN = "\\Seen"
    FLAGGED = "\\Flagged"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class AttachmentInfo:
    """
    Describes a file attached to a message, without its data.

    Attributes:
        filename: Original filename ("attachment" if the part has none).
        content_type: MIME type (e.g. "application/pdf").
        size: Decoded size in bytes.
        content_id: For inline images, the Content-ID without angle brackets.
                    HTML references these as: <img src="cid:content_id">
        inline: True if the part is embedded in the HTML body.
    """
    filename: str
    content_type: str
    size: int
    content_id: str | None = None
    inline: bool = False

    def to_dict(self) -> dict:
        return {
            "filename": self.filename,
            "contentType": self.content_type,
            "size": self.size,
            "contentId": self.content_id,
        }


@dataclass
class MessageSummary:
    """
    One row in a folder listing.

    Built from FETCH envelope, flags, size and body structure, so producing
    it never downloads a message body.

    Attributes:
        uid: Server-assigned UID (unique within the mailbox).
        message_id: RFC 5322 Message-ID header.
        from_address: Sender address ("unknown" if absent).
        from_name: Sender display name, if any.
        to_addresses: "To" addresses.
        cc_addresses: "Cc" addresses.
        subject: Subject ("(No Subject)" if absent).
        is_read: \\Seen is set.
        is_starred: \\Flagged is set.
        has_attachments: Body structure contains an attachment part.
        size: RFC822.SIZE in bytes.
        sent_at: Date header.
        received_at: INTERNALDATE, or the Date header if unavailable.
    """
    uid: int
    message_id: str = ""
    from_address: str = "unknown"
    from_name: str | None = None
    to_addresses: list[str] = field(default_factory=list)
    cc_addresses: list[str] = field(default_factory=list)
    subject: str = "(No Subject)"
    is_read: bool = False
    is_starred: bool = False
    has_attachments: bool = False
    size: int = 0
    sent_at: datetime | None = None
    received_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "id": str(self.uid),
            "uid": self.uid,
            "messageId": self.message_id,
            "fromAddress": self.from_address,
            "fromName": self.from_name,
            "toAddresses": list(self.to_addresses),
            "ccAddresses": list(self.cc_addresses),
            "subject": self.subject,
            "isRead": self.is_read,
            "isStarred": self.is_starred,
            "hasAttachments": self.has_attachments,
            "size": self.size,
            "sentAt": _iso(self.sent_at),
            "receivedAt": _iso(self.received_at),
        }


@dataclass
class MessageContent:
    """
    A single message, downloaded and parsed.

    Produced independently of MessageSummary; the UI merges the two.
    """
    uid: int
    message_id: str = ""
    from_address: str = "unknown"
    from_name: str | None = None
    to_addresses: list[str] = field(default_factory=list)
    cc_addresses: list[str] = field(default_factory=list)
    reply_to: str | None = None
    subject: str = "(No Subject)"
    body_text: str | None = None
    body_html: str | None = None
    attachments: list[AttachmentInfo] = field(default_factory=list)
    sent_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "uid": self.uid,
            "messageId": self.message_id,
            "fromAddress": self.from_address,
            "fromName": self.from_name,
            "toAddresses": list(self.to_addresses),
            "ccAddresses": list(self.cc_addresses),
            "replyTo": self.reply_to,
            "subject": self.subject,
            "bodyText": self.body_text,
            "bodyHtml": self.body_html,
            "attachments": [a.to_dict() for a in self.attachments],
            "sentAt": _iso(self.sent_at),
        }


@dataclass
class MessagePage:
    """A page of a folder listing, newest message first."""
    messages: list[MessageSummary] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 50
    has_more: bool = False

    def to_dict(self) -> dict:
        return {
            "emails": [m.to_dict() for m in self.messages],
            "total": self.total,
            "page": self.page,
            "pageSize": self.page_size,
            "hasMore": self.has_more,
        }


@dataclass
class OutgoingMessage:
    """
    An email composed in the web UI, ready to submit.

    Attributes:
        to: "To" recipients (at least one).
        cc: "Cc" recipients.
        bcc: "Bcc" recipients (delivered, never written to headers).
        subject: Subject line.
        text: Plain text body.
        html: HTML body.
        in_reply_to: Message-ID this replies to (for threading).
        references: References header entries (for threading).
        attachments: List of (filename, content_type, data) tuples.
    """
    to: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)
    subject: str = ""
    text: str | None = None
    html: str | None = None
    in_reply_to: str | None = None
    references: list[str] = field(default_factory=list)
    attachments: list[tuple[str, str, bytes]] = field(default_factory=list)

    @property
    def recipients(self) -> list[str]:
        """Every envelope recipient, with blanks removed."""
        return [r for r in self.to + self.cc + self.bcc if r]


@dataclass
class SendResult:
    """
    Outcome of a send.

    A send is successful once the submission server accepts it. Whether the
    copy reached the Sent mailbox is reported separately and never turns a
    delivered message into a failure.
    """
    message_id: str
    accepted: list[str] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)
    saved_to_sent: bool = False

    def to_dict(self) -> dict:
        return {
            "messageId": self.message_id,
            "accepted": list(self.accepted),
            "rejected": list(self.rejected),
            "savedToSent": self.saved_to_sent,
        }
