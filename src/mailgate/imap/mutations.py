# =============================================================================
# Message Mutations
# =============================================================================
# State changes on a single message:
#   - Flags: read/unread (\Seen), starred/unstarred (\Flagged)
#   - Moves: to any mailbox, plus the fixed Trash / Archive / Junk targets
#   - Permanent delete: \Deleted + EXPUNGE
#
# Every failure surfaces as MutationError(action, target). Nothing here is
# retried: a half-applied move is worse than an honest error, and the user
# can simply try again.
#
# Flag changes are idempotent. Adding \Seen to a message that already has it
# is a no-op on the server and a success here.
# =============================================================================

import logging

from mailgate.core import Flag
from mailgate.core.folder import ARCHIVE_PATH, SPAM_PATH, TRASH_PATH
from mailgate.errors import MailAccessError, MutationError
from mailgate.imap.session import MailboxSession

logger = logging.getLogger(__name__)

DELETED_FLAG = "\\Deleted"

# (flag, on) -> action name reported in errors and logs
_FLAG_ACTIONS = {
    (Flag.SEEN, True): "mark_read",
    (Flag.SEEN, False): "mark_unread",
    (Flag.FLAGGED, True): "star",
    (Flag.FLAGGED, False): "unstar",
}


async def set_flag(
    session: MailboxSession, path: str, uid: int, flag: Flag, on: bool
) -> None:
    """
    Add or remove a flag on one message.

    Example:
        >>> await set_flag(session, "INBOX", 42, Flag.SEEN, True)   # mark read
        >>> await set_flag(session, "INBOX", 42, Flag.FLAGGED, False)  # unstar
    """
    action = _FLAG_ACTIONS[(flag, on)]
    operation = "+FLAGS" if on else "-FLAGS"
    try:
        async with session.mailbox(path):
            await session.uid_store(uid, operation, [flag.value])
    except MailAccessError as e:
        raise MutationError(action, f"message {uid} in {path}", detail=e.message) from e

    logger.debug(f"{action} on UID {uid} in {path}")


async def move_message(
    session: MailboxSession, from_path: str, uid: int, to_path: str
) -> None:
    """
    Move one message to another mailbox.

    Uses UID MOVE (RFC 6851) when the server supports it. Otherwise falls
    back to COPY, mark \\Deleted, then EXPUNGE (UID EXPUNGE with UIDPLUS so
    other \\Deleted messages are left alone).
    """
    try:
        async with session.mailbox(from_path):
            if session.has_capability("MOVE"):
                await session.uid_move(uid, to_path)
            else:
                await session.uid_copy(uid, to_path)
                await session.uid_store(uid, "+FLAGS", [DELETED_FLAG])
                await session.expunge(uid)
    except MailAccessError as e:
        raise MutationError("move", f"message {uid} to {to_path}", detail=e.message) from e

    logger.info(f"Moved UID {uid} from {from_path} to {to_path}")


async def trash_message(session: MailboxSession, path: str, uid: int) -> None:
    """Move a message to Trash."""
    await move_message(session, path, uid, TRASH_PATH)


async def archive_message(session: MailboxSession, path: str, uid: int) -> None:
    """Move a message to Archive."""
    await move_message(session, path, uid, ARCHIVE_PATH)


async def mark_spam(session: MailboxSession, path: str, uid: int) -> None:
    """Move a message to the Junk mailbox."""
    await move_message(session, path, uid, SPAM_PATH)


async def delete_message(session: MailboxSession, path: str, uid: int) -> None:
    """
    Permanently delete one message.

    This cannot be undone. The message is not moved to Trash first.
    """
    try:
        async with session.mailbox(path):
            await session.uid_store(uid, "+FLAGS", [DELETED_FLAG])
            await session.expunge(uid)
    except MailAccessError as e:
        raise MutationError("delete", f"message {uid} in {path}", detail=e.message) from e

    logger.info(f"Permanently deleted UID {uid} from {path}")
