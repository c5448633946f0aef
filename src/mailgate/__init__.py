# =============================================================================
# mailgate: Mail Access Layer for Webmail
# =============================================================================
#
# mailgate is the bridge between a webmail front end and each user's own
# mail server. Per request, it logs in to the user's IMAP server, does one
# thing, and logs out again.
#
# Features:
#   - Paginated folder listings (newest first) without downloading bodies
#   - Full message download with MIME parsing and attachment manifests
#   - Read/star flags, moves, trash/archive/spam, permanent delete
#   - SMTP sending with a best-effort copy to the Sent mailbox
#   - AES-256-GCM encryption of stored mailbox passwords
#   - Step-by-step connection diagnostics
#
# =============================================================================

__version__ = "0.1.0"
__app_name__ = "mailgate"

__all__ = ["__version__", "__app_name__"]
