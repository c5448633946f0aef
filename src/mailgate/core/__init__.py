# =============================================================================
# mailgate Core Module
# =============================================================================
# Core value objects for the mail access layer. These are plain dataclasses
# with no network dependencies, so they can be imported anywhere without
# causing circular imports.
#   - MailAccountConfig: per-request server settings + encrypted credential
#   - Folder resolution: slug -> server mailbox path
#   - Message models: summaries, parsed content, send results
# =============================================================================

from mailgate.core.account import MailAccountConfig
from mailgate.core.folder import (
    FolderInfo,
    FolderStatus,
    FolderType,
    detect_folder_type,
    is_virtual_folder,
    resolve_folder,
)
from mailgate.core.message import (
    AttachmentInfo,
    Flag,
    MessageContent,
    MessagePage,
    MessageSummary,
    OutgoingMessage,
    SendResult,
)

__all__ = [
    "MailAccountConfig",
    "FolderInfo",
    "FolderStatus",
    "FolderType",
    "detect_folder_type",
    "is_virtual_folder",
    "resolve_folder",
    "AttachmentInfo",
    "Flag",
    "MessageContent",
    "MessagePage",
    "MessageSummary",
    "OutgoingMessage",
    "SendResult",
]
