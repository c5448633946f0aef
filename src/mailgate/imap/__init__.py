# =============================================================================
# IMAP Module
# =============================================================================
# Everything that talks to the user's IMAP server:
#   - Session lifecycle (connect, STARTTLS, login, SELECT, logout)
#   - FETCH response parsing (envelopes, flags, body structure, literals)
#   - Paginated folder listings and the "starred" virtual folder
#   - Full message download and MIME parsing
#   - Flag changes, moves and permanent deletes
#
# This module uses aioimaplib for async IMAP operations. Sessions are opened
# per request and never shared.
# =============================================================================

from mailgate.imap.session import (
    MailboxInfo,
    MailboxSession,
    SessionState,
    classify_transport_error,
    open_session,
)
from mailgate.imap.listing import (
    PageWindow,
    compute_window,
    filter_messages,
    list_messages,
)
from mailgate.imap.content import fetch_content, parse_message
from mailgate.imap.mutations import (
    archive_message,
    delete_message,
    mark_spam,
    move_message,
    set_flag,
    trash_message,
)
from mailgate.imap.folders import list_folders, folder_status

__all__ = [
    # Session
    "MailboxInfo",
    "MailboxSession",
    "SessionState",
    "classify_transport_error",
    "open_session",
    # Listing
    "PageWindow",
    "compute_window",
    "filter_messages",
    "list_messages",
    # Content
    "fetch_content",
    "parse_message",
    # Mutations
    "archive_message",
    "delete_message",
    "mark_spam",
    "move_message",
    "set_flag",
    "trash_message",
    # Folders
    "list_folders",
    "folder_status",
]
