# =============================================================================
# Outbound Dispatcher
# =============================================================================
# Sends an email over SMTP, then files a copy in the Sent mailbox over IMAP.
#
# These are two writes to two different servers and cannot be atomic. The
# rules for partial failure:
#   - SMTP submission is THE operation. If it fails, nothing is appended and
#     the caller gets a classified error.
#   - The Sent append is a best-effort follow-up. If it fails (IMAP down,
#     no Sent mailbox, quota, ...) the message is still delivered; the
#     failure is logged and reported as SendResult.saved_to_sent=False.
#
# The MIME message is built and serialized exactly once, so the bytes
# submitted over SMTP and the bytes appended to Sent are identical.
#
# Uses aiosmtplib for async operations.
# =============================================================================

import asyncio
import logging
import socket
from email.encoders import encode_base64
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate, make_msgid
from typing import Any, Callable

import aiosmtplib

from mailgate.config import SmtpConfig, TimeoutConfig
from mailgate.core import Flag, MailAccountConfig, OutgoingMessage, SendResult
from mailgate.core.folder import SENT_PATH
from mailgate.effects import best_effort
from mailgate.errors import (
    AuthError,
    ConnectivityError,
    MailAccessError,
    SendError,
    TransientError,
)
from mailgate.imap.session import ClientFactory, open_session
from mailgate.vault import CredentialVault

logger = logging.getLogger(__name__)

# Builds an unconnected aiosmtplib client for an account
SmtpFactory = Callable[[MailAccountConfig, TimeoutConfig], Any]


def default_smtp_factory(account: MailAccountConfig, timeouts: TimeoutConfig) -> aiosmtplib.SMTP:
    """
    Create an aiosmtplib client.

    Port 465 uses implicit TLS. Any other port starts in plaintext and
    upgrades with STARTTLS when the server offers it.
    """
    implicit = account.smtp_implicit_tls
    return aiosmtplib.SMTP(
        hostname=account.smtp_host,
        port=account.smtp_port,
        use_tls=implicit,
        start_tls=False if implicit else None,
        timeout=timeouts.command,
    )


def classify_smtp_error(exc: BaseException, host: str, port: int) -> MailAccessError:
    """
    Map an aiosmtplib (or socket) exception to a domain error.

    This is the single place where SMTP failures are classified. Order
    matters: several aiosmtplib exceptions subclass more than one base.
    """
    if isinstance(exc, MailAccessError):
        return exc

    if isinstance(exc, aiosmtplib.SMTPAuthenticationError):
        return AuthError(
            "SMTP authentication failed. Please re-enter your mail password in settings."
        )
    if isinstance(exc, (aiosmtplib.SMTPConnectTimeoutError, aiosmtplib.SMTPTimeoutError)):
        return ConnectivityError(
            f"Connection to SMTP server {host}:{port} timed out. "
            "Check that the server is reachable and the port is open.",
            host=host,
            port=port,
        )
    if isinstance(exc, aiosmtplib.SMTPConnectError):
        return ConnectivityError(
            f"Cannot connect to SMTP server {host}:{port}. Check server settings.",
            host=host,
            port=port,
        )
    if isinstance(exc, aiosmtplib.SMTPServerDisconnected):
        return TransientError(
            f"SMTP server {host}:{port} closed the connection. Try again.",
            host=host,
            port=port,
        )
    if isinstance(exc, aiosmtplib.SMTPRecipientsRefused):
        return SendError("The mail server refused all recipients.")
    if isinstance(exc, aiosmtplib.SMTPResponseException):
        return SendError(f"The mail server rejected the message: {exc.code} {exc.message}")
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ConnectivityError(
            f"Connection to SMTP server {host}:{port} timed out.",
            host=host,
            port=port,
        )
    if isinstance(exc, (ConnectionResetError, ConnectionAbortedError, BrokenPipeError)):
        return TransientError(
            f"Connection to SMTP server {host}:{port} was reset. Try again.",
            host=host,
            port=port,
        )
    if isinstance(exc, socket.gaierror):
        return ConnectivityError(
            f"Cannot resolve SMTP server host {host}. Check server settings.",
            host=host,
            port=port,
        )
    if isinstance(exc, OSError):
        return ConnectivityError(
            f"Cannot connect to SMTP server {host}:{port}: {exc}",
            host=host,
            port=port,
        )

    return SendError(f"Failed to send email: {exc}")


def build_mime_message(
    account: MailAccountConfig, message: OutgoingMessage, x_mailer: str = "mailgate"
) -> MIMEMultipart:
    """
    Build a MIME message from an outgoing message.

    Handles:
        - Plain text only
        - HTML with plain text alternative
        - Attachments

    Bcc recipients are never written to the headers.
    """
    text = message.text or ""
    has_html = bool(message.html)
    has_attachments = bool(message.attachments)

    if has_attachments:
        # Mixed: contains body + attachments
        msg = MIMEMultipart("mixed")
        if has_html:
            body = MIMEMultipart("alternative")
            body.attach(MIMEText(text, "plain", "utf-8"))
            body.attach(MIMEText(message.html, "html", "utf-8"))
            msg.attach(body)
        else:
            msg.attach(MIMEText(text, "plain", "utf-8"))

        for filename, content_type, data in message.attachments:
            maintype, _, subtype = content_type.partition("/")
            if not subtype:
                maintype, subtype = "application", "octet-stream"
            part = MIMEBase(maintype, subtype)
            part.set_payload(data)
            encode_base64(part)
            part.add_header("Content-Disposition", "attachment", filename=filename)
            msg.attach(part)
    elif has_html:
        msg = MIMEMultipart("alternative")
        msg.attach(MIMEText(text, "plain", "utf-8"))
        msg.attach(MIMEText(message.html, "html", "utf-8"))
    else:
        msg = MIMEMultipart()
        msg.attach(MIMEText(text, "plain", "utf-8"))

    msg["From"] = formataddr((account.display_name, account.email))
    msg["To"] = ", ".join(message.to)
    if message.cc:
        msg["Cc"] = ", ".join(message.cc)
    msg["Subject"] = message.subject
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid(domain=account.domain)

    # Threading headers
    if message.in_reply_to:
        msg["In-Reply-To"] = message.in_reply_to
    if message.references:
        msg["References"] = " ".join(message.references)

    msg["X-Mailer"] = x_mailer

    return msg


class OutboundDispatcher:
    """
    Submits mail over SMTP and files it in Sent.

    Usage:
        >>> dispatcher = OutboundDispatcher(vault)
        >>> result = await dispatcher.send(account, OutgoingMessage(to=["bob@example.com"]))
        >>> result.saved_to_sent
        True

    Attributes:
        vault: Decrypts account credentials.
        timeouts: Network timeouts for both SMTP and the Sent append.
        smtp_config: X-Mailer and whether to save to Sent at all.
    """

    def __init__(
        self,
        vault: CredentialVault,
        timeouts: TimeoutConfig | None = None,
        smtp_config: SmtpConfig | None = None,
        smtp_factory: SmtpFactory | None = None,
        imap_client_factory: ClientFactory | None = None,
    ) -> None:
        self.vault = vault
        self.timeouts = timeouts or TimeoutConfig()
        self.smtp_config = smtp_config or SmtpConfig()
        self._smtp_factory = smtp_factory or default_smtp_factory
        self._imap_client_factory = imap_client_factory

    async def send(self, account: MailAccountConfig, message: OutgoingMessage) -> SendResult:
        """
        Send an email and save a copy to Sent.

        Returns:
            SendResult with the Message-ID and per-recipient outcome.

        Raises:
            SendError: No recipients, all recipients refused, or the server
                rejected the message.
            CredentialError: The stored credential cannot be decrypted.
            AuthError: SMTP login rejected.
            ConnectivityError: SMTP server unreachable or timed out.
            TransientError: Connection dropped mid-conversation.
        """
        recipients = message.recipients
        if not message.to or not recipients:
            raise SendError("No recipients specified")

        mime = build_mime_message(account, message, self.smtp_config.x_mailer)
        raw = mime.as_bytes()
        message_id = mime["Message-ID"]

        # Decrypt before connecting: a bad credential never reaches the network
        password = self.vault.decrypt(account.encrypted_credential)

        logger.info(f"Sending email to {', '.join(message.to)}")
        accepted, rejected = await self._submit(account, password, recipients, raw)
        del password
        logger.info(f"Email sent successfully: {message_id}")

        saved = False
        if self.smtp_config.save_to_sent:
            saved = await best_effort(
                f"save {message_id} to {SENT_PATH}",
                self._save_to_sent(account, raw),
            )

        return SendResult(
            message_id=message_id,
            accepted=accepted,
            rejected=rejected,
            saved_to_sent=saved,
        )

    async def _submit(
        self,
        account: MailAccountConfig,
        password: str,
        recipients: list[str],
        raw: bytes,
    ) -> tuple[list[str], list[str]]:
        """Connect, authenticate and submit; returns (accepted, rejected)."""
        host, port = account.smtp_host, account.smtp_port
        logger.info(f"Connecting to SMTP {host}:{port}")

        client = self._smtp_factory(account, self.timeouts)
        try:
            await client.connect(timeout=self.timeouts.connect)
            logger.debug("SMTP connection established")

            logger.debug(f"Authenticating as {account.email}")
            await client.login(account.email, password)

            errors, _response = await client.sendmail(account.email, recipients, raw)
        except asyncio.CancelledError:
            # Abort without QUIT
            client.close()
            raise
        except Exception as e:
            logger.error(f"Failed to send email via {host}:{port}: {e}")
            raise classify_smtp_error(e, host, port) from e
        finally:
            await self._quit(client)

        rejected = [r for r in recipients if r in (errors or {})]
        accepted = [r for r in recipients if r not in rejected]
        if rejected:
            logger.warning(f"Recipients refused: {', '.join(rejected)}")
        return accepted, rejected

    @staticmethod
    async def _quit(client: Any) -> None:
        """Disconnect from the SMTP server, ignoring errors."""
        if not getattr(client, "is_connected", False):
            return
        try:
            logger.debug("Disconnecting from SMTP")
            await client.quit()
        except Exception as e:
            logger.warning(f"Error during SMTP disconnect: {e}")

    async def _save_to_sent(self, account: MailAccountConfig, raw: bytes) -> None:
        """Append the sent message to the Sent mailbox, marked as read."""
        async with open_session(
            account, self.vault, self.timeouts, self._imap_client_factory
        ) as session:
            await session.append(raw, SENT_PATH, [Flag.SEEN.value])
