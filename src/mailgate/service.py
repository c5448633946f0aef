# =============================================================================
# Mail Service
# =============================================================================
# The per-request entry point for the embedding web application.
#
# Each public method:
#   1. Resolves the folder slug to a server path
#   2. Opens a fresh IMAP session for the account
#   3. Runs exactly one logical operation
#   4. Closes the session (always, including on error and cancellation)
#
# Nothing is cached between calls. The account configuration arrives with
# every request and is never stored here.
#
# Usage:
#     >>> service = MailService(settings.vault(), settings)
#     >>> page = await service.list_messages(account, "inbox", page=1)
#     >>> content = await service.get_message(account, "inbox", page.messages[0].uid)
#     >>> await service.apply_action(account, "inbox", content.uid, "archive")
# =============================================================================

import logging

from mailgate.config import Settings
from mailgate.core import (
    Flag,
    FolderInfo,
    FolderStatus,
    MailAccountConfig,
    MessageContent,
    MessagePage,
    OutgoingMessage,
    SendResult,
    is_virtual_folder,
    resolve_folder,
)
from mailgate.errors import MailboxNotFoundError
from mailgate.imap import content, folders, listing, mutations
from mailgate.imap.session import ClientFactory, open_session
from mailgate.smtp.dispatcher import OutboundDispatcher, SmtpFactory
from mailgate.vault import CredentialVault

logger = logging.getLogger(__name__)

# Action names accepted by apply_action()
ACTIONS = ("markRead", "markUnread", "star", "unstar", "move", "trash", "spam", "archive")


class MailService:
    """
    Stateless facade over the IMAP and SMTP layers.

    Attributes:
        vault: Decrypts account credentials.
        settings: Timeouts, listing defaults and SMTP options.
    """

    def __init__(
        self,
        vault: CredentialVault,
        settings: Settings | None = None,
        *,
        imap_client_factory: ClientFactory | None = None,
        smtp_factory: SmtpFactory | None = None,
    ) -> None:
        self.vault = vault
        self.settings = settings or Settings()
        self._imap_client_factory = imap_client_factory
        self.dispatcher = OutboundDispatcher(
            vault,
            self.settings.timeouts,
            self.settings.smtp,
            smtp_factory=smtp_factory,
            imap_client_factory=imap_client_factory,
        )

    def _session(self, account: MailAccountConfig):
        return open_session(
            account, self.vault, self.settings.timeouts, self._imap_client_factory
        )

    # =========================================================================
    # Reading
    # =========================================================================

    async def list_messages(
        self,
        account: MailAccountConfig,
        folder: str = "inbox",
        page: int = 1,
        page_size: int | None = None,
        search: str | None = None,
    ) -> MessagePage:
        """
        List one page of a folder, newest first.

        Args:
            account: Account to read.
            folder: Folder slug ("inbox", "starred", ...) or raw server path.
            page: 1-based page number.
            page_size: Messages per page; defaults to the configured size and
                is capped at listing.max_page_size.
            search: Optional case-insensitive filter on subject and sender,
                applied to the fetched page.

        Raises:
            ValueError: For page or page_size below 1.
        """
        size = page_size or self.settings.listing.default_page_size
        size = min(size, self.settings.listing.max_page_size)
        path = resolve_folder(folder)

        async with self._session(account) as session:
            result = await listing.list_messages(
                session, path, page, size, flagged_only=is_virtual_folder(folder)
            )

        if search:
            result.messages = listing.filter_messages(result.messages, search)
        return result

    async def get_message(
        self, account: MailAccountConfig, folder: str, uid: int
    ) -> MessageContent:
        """
        Download and parse one message, then mark it read (best effort).

        Raises:
            MailboxNotFoundError: The folder does not exist.
            MessageNotFoundError: No message with that UID.
        """
        path = resolve_folder(folder)
        async with self._session(account) as session:
            return await content.fetch_content(session, path, uid)

    async def list_folders(self, account: MailAccountConfig) -> list[FolderInfo]:
        """List every selectable mailbox on the server."""
        async with self._session(account) as session:
            return await folders.list_folders(session)

    async def folder_status(self, account: MailAccountConfig, folder: str = "inbox") -> FolderStatus:
        """Unread and total counts for a folder; a missing folder counts as empty."""
        path = resolve_folder(folder)
        async with self._session(account) as session:
            try:
                return await folders.folder_status(session, path)
            except MailboxNotFoundError:
                return FolderStatus()

    async def unread_count(self, account: MailAccountConfig, folder: str = "inbox") -> int:
        """Number of unread messages in a folder."""
        return (await self.folder_status(account, folder)).unseen

    # =========================================================================
    # Mutations
    # =========================================================================

    async def apply_action(
        self,
        account: MailAccountConfig,
        folder: str,
        uid: int,
        action: str,
        target_folder: str | None = None,
    ) -> None:
        """
        Apply a UI action to one message.

        Actions:
            markRead / markUnread: set or clear \\Seen
            star / unstar: set or clear \\Flagged
            move: move to target_folder (a slug or raw path)
            trash / spam / archive: move to Trash / Junk / Archive

        Raises:
            ValueError: Unknown action, or "move" without a target folder.
            MutationError: The server refused the change.
        """
        if action not in ACTIONS:
            raise ValueError(f"Unknown action: {action}")
        if action == "move" and not target_folder:
            raise ValueError("The move action requires a target folder")

        path = resolve_folder(folder)
        logger.debug(f"Applying {action} to UID {uid} in {path}")

        async with self._session(account) as session:
            if action == "markRead":
                await mutations.set_flag(session, path, uid, Flag.SEEN, True)
            elif action == "markUnread":
                await mutations.set_flag(session, path, uid, Flag.SEEN, False)
            elif action == "star":
                await mutations.set_flag(session, path, uid, Flag.FLAGGED, True)
            elif action == "unstar":
                await mutations.set_flag(session, path, uid, Flag.FLAGGED, False)
            elif action == "move":
                await mutations.move_message(session, path, uid, resolve_folder(target_folder))
            elif action == "trash":
                await mutations.trash_message(session, path, uid)
            elif action == "spam":
                await mutations.mark_spam(session, path, uid)
            elif action == "archive":
                await mutations.archive_message(session, path, uid)

    async def delete_message(self, account: MailAccountConfig, folder: str, uid: int) -> None:
        """Permanently delete one message (no Trash step)."""
        path = resolve_folder(folder)
        async with self._session(account) as session:
            await mutations.delete_message(session, path, uid)

    # =========================================================================
    # Sending
    # =========================================================================

    async def send(self, account: MailAccountConfig, message: OutgoingMessage) -> SendResult:
        """Send an email and save a copy to Sent (best effort)."""
        return await self.dispatcher.send(account, message)
