# =============================================================================
# Folder Resolution
# =============================================================================
# The web UI addresses folders by short slugs ("inbox", "spam", ...). Mail
# servers name them differently. This module owns the fixed mapping from
# slug to server-side mailbox path, plus classification of the folders a
# server reports in its LIST response.
#
# "starred" is a virtual folder: no server mailbox has that name. It is the
# set of INBOX messages carrying the \Flagged marker, and the listing code
# filters INBOX accordingly instead of trying to open it.
#
# Unknown slugs pass through unchanged and are treated as raw server paths.
# This is how the UI opens custom user folders ("Receipts/2024").
# =============================================================================

from dataclasses import dataclass
from enum import Enum, auto

# Slug -> server path. Exactly one path per slug.
FOLDER_MAP: dict[str, str] = {
    "inbox": "INBOX",
    "sent": "Sent",
    "drafts": "Drafts",
    "trash": "Trash",
    "spam": "Junk",
    "starred": "INBOX",
    "archive": "Archive",
}

# Slugs that do not correspond to a distinct server mailbox
VIRTUAL_FOLDERS = frozenset({"starred"})

# Fixed targets for the composite move actions
TRASH_PATH = FOLDER_MAP["trash"]
ARCHIVE_PATH = FOLDER_MAP["archive"]
SPAM_PATH = FOLDER_MAP["spam"]
SENT_PATH = FOLDER_MAP["sent"]


def resolve_folder(slug: str) -> str:
    """
    Map a folder slug to its server mailbox path.

    Pure and side-effect free. Unrecognized slugs are returned unchanged.

    Example:
        >>> resolve_folder("archive")
        'Archive'
        >>> resolve_folder("Receipts/2024")
        'Receipts/2024'
    """
    return FOLDER_MAP.get(slug, slug)


def is_virtual_folder(slug: str) -> bool:
    """Returns True if the slug is a filter over another mailbox."""
    return slug in VIRTUAL_FOLDERS


class FolderType(Enum):
    """
    Standard folder types that have special meaning in email clients.

    These map to IMAP SPECIAL-USE attributes (RFC 6154) when available,
    or are inferred from common naming conventions.
    """
    INBOX = auto()
    SENT = auto()
    DRAFTS = auto()
    TRASH = auto()
    JUNK = auto()
    ARCHIVE = auto()
    OTHER = auto()


def detect_folder_type(name: str, flags: list[str] | None = None) -> FolderType:
    """
    Classify a server folder from its SPECIAL-USE flags or its name.

    Different providers use different conventions, so names are matched
    case-insensitively against the common variants.
    """
    flags_upper = [f.upper() for f in flags or []]

    if name.upper() == "INBOX":
        return FolderType.INBOX
    if "\\SENT" in flags_upper:
        return FolderType.SENT
    if "\\DRAFTS" in flags_upper:
        return FolderType.DRAFTS
    if "\\TRASH" in flags_upper:
        return FolderType.TRASH
    if "\\JUNK" in flags_upper:
        return FolderType.JUNK
    if "\\ARCHIVE" in flags_upper or "\\ALL" in flags_upper:
        return FolderType.ARCHIVE

    name_lower = name.lower()
    if name_lower in ("sent", "sent mail", "sent items", "inbox.sent", "[gmail]/sent mail"):
        return FolderType.SENT
    if name_lower in ("drafts", "draft", "inbox.drafts", "[gmail]/drafts"):
        return FolderType.DRAFTS
    if name_lower in ("trash", "deleted", "deleted items", "inbox.trash", "[gmail]/trash"):
        return FolderType.TRASH
    if name_lower in ("junk", "spam", "junk mail", "inbox.junk", "[gmail]/spam"):
        return FolderType.JUNK
    if name_lower in ("archive", "all mail", "inbox.archive", "[gmail]/all mail"):
        return FolderType.ARCHIVE

    return FolderType.OTHER


@dataclass
class FolderInfo:
    """
    A mailbox as reported by the server's LIST response.

    Attributes:
        name: Last path component, for display.
        path: Full server path, usable with resolve_folder() passthrough.
        special_use: SPECIAL-USE attribute (e.g. "\\Sent") if the server sent one.
        delimiter: Hierarchy delimiter ("/" or ".").
        folder_type: Classified type.
    """
    name: str
    path: str
    special_use: str | None = None
    delimiter: str = "/"
    folder_type: FolderType = FolderType.OTHER

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "path": self.path,
            "specialUse": self.special_use,
            "delimiter": self.delimiter,
        }


@dataclass
class FolderStatus:
    """Message counts for a mailbox (from STATUS)."""
    unseen: int = 0
    total: int = 0

    def to_dict(self) -> dict:
        return {"unseen": self.unseen, "total": self.total}
