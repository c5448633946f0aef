# =============================================================================
# Account Model
# =============================================================================
# Represents one user's mail server configuration, as handed to us by the
# persistence layer for a single request. It includes connection details
# for both IMAP (receiving) and SMTP (sending) servers.
#
# IMPORTANT: the password is NOT stored here in plaintext. The persistence
# layer keeps it encrypted by the CredentialVault; we decrypt it only for the
# duration of a login and never keep the plaintext around.
# =============================================================================

from dataclasses import dataclass

# Ports that imply a TLS connection from the first byte.
# Anything else connects in plaintext and upgrades with STARTTLS if offered.
IMAP_IMPLICIT_TLS_PORT = 993
SMTP_IMPLICIT_TLS_PORT = 465


@dataclass(frozen=True)
class MailAccountConfig:
    """
    Connection settings for one mail account.

    Immutable and owned by the caller. The mail access layer reads it but
    never persists or caches it.

    Attributes:
        email: The account address. Also used as the login username.
        imap_host: Hostname of the IMAP server.
        imap_port: IMAP port (993 = implicit TLS, 143 = STARTTLS).
        smtp_host: Hostname of the SMTP submission server.
        smtp_port: SMTP port (465 = implicit TLS, 587 = STARTTLS).
        encrypted_credential: Mailbox password encrypted by CredentialVault.
        display_name: Name shown in the "From" header when sending.

    Example:
        >>> account = MailAccountConfig(
        ...     email="user@example.com",
        ...     imap_host="mail.example.com",
        ...     smtp_host="mail.example.com",
        ...     encrypted_credential=vault.encrypt("secret"),
        ... )
    """

    email: str
    imap_host: str = ""
    imap_port: int = IMAP_IMPLICIT_TLS_PORT
    smtp_host: str = ""
    smtp_port: int = 587
    encrypted_credential: str = ""
    display_name: str = ""

    @property
    def imap_implicit_tls(self) -> bool:
        """True if the IMAP connection is TLS from the start."""
        return self.imap_port == IMAP_IMPLICIT_TLS_PORT

    @property
    def smtp_implicit_tls(self) -> bool:
        """True if the SMTP connection is TLS from the start."""
        return self.smtp_port == SMTP_IMPLICIT_TLS_PORT

    @property
    def domain(self) -> str:
        """Domain part of the account address (used for Message-IDs)."""
        return self.email.rsplit("@", 1)[-1] if "@" in self.email else "localhost"

    def __repr__(self) -> str:
        """Developer-friendly representation. Never shows the credential."""
        return (
            f"MailAccountConfig(email={self.email!r}, "
            f"imap={self.imap_host}:{self.imap_port}, "
            f"smtp={self.smtp_host}:{self.smtp_port})"
        )
