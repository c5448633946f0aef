# =============================================================================
# Folder Discovery
# =============================================================================
# LIST and STATUS: which mailboxes the account has, and how many unread
# messages a given mailbox holds.
#
# LIST response format:
#     (\HasNoChildren) "/" "INBOX"
#     (\HasNoChildren \Sent) "/" "Sent"
#     (\Noselect \HasChildren) "." "[Gmail]"
# =============================================================================

import logging
from typing import Any

from mailgate.core import FolderInfo, FolderStatus, detect_folder_type
from mailgate.imap.parsing import as_text, build_tree, tokenize
from mailgate.imap.session import MailboxSession

logger = logging.getLogger(__name__)

# RFC 6154 attributes worth reporting as special_use
SPECIAL_USE_FLAGS = ("\\Sent", "\\Drafts", "\\Trash", "\\Junk", "\\Archive", "\\All", "\\Flagged")


async def list_folders(session: MailboxSession) -> list[FolderInfo]:
    """
    List every mailbox on the server.

    Mailboxes marked \\Noselect (pure hierarchy nodes) are left out since
    they cannot hold messages.
    """
    logger.debug("Listing folders")
    lines = await session.list_mailboxes()

    folders = []
    for line in lines:
        folder = parse_folder_line(line)
        if folder is not None:
            folders.append(folder)

    logger.debug(f"Found {len(folders)} folders")
    return folders


def parse_folder_line(line: Any) -> FolderInfo | None:
    """
    Parse a single LIST response line into a FolderInfo.

    Returns None for completion lines, \\Noselect entries, and anything
    that does not look like a LIST entry.
    """
    data = bytes(line) if isinstance(line, (bytes, bytearray)) else str(line).encode("utf-8")
    tree = build_tree(tokenize([(False, data)]))
    if len(tree) < 3 or not isinstance(tree[0], list):
        return None

    flags = [as_text(flag) for flag in tree[0]]
    if any(flag.lower() == "\\noselect" for flag in flags):
        return None

    delimiter = as_text(tree[1])
    path = as_text(tree[2])
    if not path:
        logger.warning(f"Could not parse folder line: {line!r}")
        return None

    special_use = next(
        (flag for flag in flags if flag.lower() in {f.lower() for f in SPECIAL_USE_FLAGS}),
        None,
    )
    name = path.rsplit(delimiter, 1)[-1] if delimiter else path

    return FolderInfo(
        name=name,
        path=path,
        special_use=special_use,
        delimiter=delimiter or "/",
        folder_type=detect_folder_type(path, flags),
    )


async def folder_status(session: MailboxSession, path: str) -> FolderStatus:
    """
    Message counts for a mailbox, via STATUS (no SELECT needed).

    Raises:
        MailboxNotFoundError: If the mailbox does not exist.
    """
    status = await session.status(path, "(MESSAGES UNSEEN)")
    return FolderStatus(
        unseen=status.get("UNSEEN", 0),
        total=status.get("MESSAGES", 0),
    )
