# =============================================================================
# Folder Listing
# =============================================================================
# Produces one page of message summaries for a mailbox, newest first,
# without downloading any message bodies.
#
# Pagination works on IMAP sequence numbers. Sequence numbers are dense
# (1..EXISTS) so a page maps to a single contiguous FETCH range:
#
#     total=137, page_size=50
#       page 1 -> 88:137   (has_more)
#       page 2 -> 38:87    (has_more)
#       page 3 -> 1:37
#
# Known limitation: sequence numbers shift when mail arrives or is expunged
# between two page requests, so a row can repeat or be skipped at a page
# boundary. Listings are snapshots; callers re-request page 1 to refresh.
#
# The "starred" virtual folder is INBOX filtered to \Flagged messages. It is
# paginated over the UID list returned by SEARCH FLAGGED instead.
# =============================================================================

import logging
from dataclasses import dataclass

from mailgate.core import MessagePage, MessageSummary
from mailgate.errors import MailboxNotFoundError
from mailgate.imap.parsing import parse_summaries
from mailgate.imap.session import MailboxSession

logger = logging.getLogger(__name__)

# Everything a summary row needs, and nothing more
SUMMARY_ITEMS = "(UID FLAGS ENVELOPE RFC822.SIZE BODYSTRUCTURE INTERNALDATE)"


@dataclass(frozen=True)
class PageWindow:
    """
    A 1-indexed, inclusive range of positions for one page.

    Attributes:
        start: Lowest position (oldest message on the page).
        end: Highest position (newest message on the page).
        has_more: True if older messages exist beyond this page.
    """
    start: int
    end: int
    has_more: bool

    @property
    def sequence_set(self) -> str:
        """The window as an IMAP sequence set ("88:137")."""
        return f"{self.start}:{self.end}"


def compute_window(total: int, page: int, page_size: int) -> PageWindow:
    """
    Compute the position range for a page, counting back from the newest.

    Pure arithmetic; callers skip the FETCH when total is 0.

    Raises:
        ValueError: If page or page_size is less than 1.
    """
    if page < 1:
        raise ValueError(f"page must be >= 1, got {page}")
    if page_size < 1:
        raise ValueError(f"page_size must be >= 1, got {page_size}")

    end = max(1, total - (page - 1) * page_size)
    start = max(1, total - page * page_size + 1)
    return PageWindow(start=start, end=end, has_more=start > 1)


async def list_messages(
    session: MailboxSession,
    path: str,
    page: int = 1,
    page_size: int = 50,
    *,
    flagged_only: bool = False,
) -> MessagePage:
    """
    List one page of a mailbox, newest first.

    A mailbox that does not exist yields an empty page rather than an error:
    a server without a Junk folder simply has no spam.

    Args:
        session: An open session.
        path: Server mailbox path (already resolved from its slug).
        page: 1-based page number.
        page_size: Messages per page.
        flagged_only: Only list \\Flagged messages (the "starred" view).

    Raises:
        ValueError: For page or page_size below 1.
    """
    # Validate before touching the network
    compute_window(0, page, page_size)

    try:
        async with session.mailbox(path) as info:
            if flagged_only:
                return await _list_flagged(session, page, page_size)
            return await _list_range(session, info.exists, page, page_size)
    except MailboxNotFoundError:
        logger.info(f"Mailbox {path} does not exist; returning an empty page")
        return MessagePage(page=page, page_size=page_size)


async def _list_range(
    session: MailboxSession, total: int, page: int, page_size: int
) -> MessagePage:
    if total == 0:
        return MessagePage(page=page, page_size=page_size)

    window = compute_window(total, page, page_size)
    logger.debug(f"Fetching sequence window {window.sequence_set} of {total}")

    lines = await session.fetch(window.sequence_set, SUMMARY_ITEMS)
    messages = parse_summaries(lines)
    messages.reverse()

    return MessagePage(
        messages=messages,
        total=total,
        page=page,
        page_size=page_size,
        has_more=window.has_more,
    )


async def _list_flagged(session: MailboxSession, page: int, page_size: int) -> MessagePage:
    uids = sorted(await session.uid_search("FLAGGED"), reverse=True)
    total = len(uids)
    if total == 0:
        return MessagePage(page=page, page_size=page_size)

    # Window positions count from the oldest; uids[0] is the newest
    window = compute_window(total, page, page_size)
    selected = uids[total - window.end : total - window.start + 1]
    logger.debug(f"Fetching {len(selected)} of {total} flagged messages")

    lines = await session.uid_fetch(",".join(str(uid) for uid in selected), SUMMARY_ITEMS)
    by_uid: dict[int, MessageSummary] = {m.uid: m for m in parse_summaries(lines)}

    return MessagePage(
        messages=[by_uid[uid] for uid in selected if uid in by_uid],
        total=total,
        page=page,
        page_size=page_size,
        has_more=window.has_more,
    )


def filter_messages(messages: list[MessageSummary], query: str) -> list[MessageSummary]:
    """
    Case-insensitive substring match on subject, sender address and name.

    An empty query matches everything.
    """
    needle = query.strip().lower()
    if not needle:
        return list(messages)

    return [
        m for m in messages
        if needle in m.subject.lower()
        or needle in m.from_address.lower()
        or needle in (m.from_name or "").lower()
    ]
