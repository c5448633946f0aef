# =============================================================================
# SMTP Module
# =============================================================================
# Handles sending emails via SMTP (Simple Mail Transfer Protocol).
#
# Features:
#   - Connection with implicit TLS (port 465) or STARTTLS
#   - MIME message building (text, HTML, attachments)
#   - Sent message storage (copy to Sent folder via IMAP)
# =============================================================================

from mailgate.smtp.dispatcher import (
    OutboundDispatcher,
    build_mime_message,
    classify_smtp_error,
)

__all__ = [
    "OutboundDispatcher",
    "build_mime_message",
    "classify_smtp_error",
]
