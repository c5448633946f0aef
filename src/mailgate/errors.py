# =============================================================================
# Error Taxonomy
# =============================================================================
# Every failure the mail access layer reports is one of a closed set of
# exception classes. Each carries:
#   - kind: a stable machine-readable tag ("auth", "connectivity", ...)
#   - message: a user-facing sentence that says what to do next
#
# The UI layer turns these into {kind, message} pairs. It must be able to
# tell "your password is wrong" apart from "the server is unreachable" and
# "something else failed", so callers never classify errors by string
# matching themselves; that happens once, in the IMAP session and SMTP
# dispatcher adapters.
# =============================================================================


class MailAccessError(Exception):
    """
    Base class for all errors raised by the mail access layer.

    Attributes:
        kind: Stable error tag used by the UI layer.
        message: Human-readable, actionable message.
    """

    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        """Returns the {kind, message} pair sent to the UI layer."""
        return {"kind": self.kind, "message": self.message}


class ConfigurationError(MailAccessError):
    """Raised when the vault key or configuration is missing or malformed."""

    kind = "configuration"


class CredentialError(MailAccessError):
    """Raised when the stored mailbox credential cannot be used."""

    kind = "credential"


class DecryptionError(CredentialError):
    """
    Raised when an encrypted credential cannot be decrypted.

    Covers malformed tokens, failed tag verification, and a vault key that
    differs from the one used at encryption time (e.g. after key rotation).
    """

    def __init__(
        self,
        message: str = (
            "Failed to decrypt mail password. "
            "Please re-enter your mail password in settings."
        ),
    ) -> None:
        super().__init__(message)


class ConnectivityError(MailAccessError):
    """
    Raised when the remote server cannot be reached.

    Attributes:
        host: Server hostname that failed.
        port: Server port that failed.
    """

    kind = "connectivity"

    def __init__(self, message: str, host: str = "", port: int = 0) -> None:
        super().__init__(message)
        self.host = host
        self.port = port


class TransientError(ConnectivityError):
    """Raised when a connection was reset mid-conversation; retrying is safe."""

    kind = "transient"


class AuthError(MailAccessError):
    """Raised when the remote server rejects the account credentials."""

    kind = "auth"


class MailboxNotFoundError(MailAccessError):
    """Raised when a server-side mailbox does not exist."""

    kind = "mailbox_not_found"

    def __init__(self, path: str) -> None:
        super().__init__(f"Mailbox '{path}' does not exist on the server.")
        self.path = path


class MessageNotFoundError(MailAccessError):
    """Raised when a message UID is not present in the mailbox."""

    kind = "message_not_found"

    def __init__(self, path: str, uid: int) -> None:
        super().__init__(f"Message {uid} was not found in '{path}'.")
        self.path = path
        self.uid = uid


class MutationError(MailAccessError):
    """
    Raised when a flag, move, or delete operation fails.

    Mutations are never retried automatically: the server may have applied
    part of the operation (e.g. a move that copied but did not expunge).

    Attributes:
        action: The attempted action ("set_flag", "move", "delete", ...).
        target: What the action was applied to, for display.
    """

    kind = "mutation"

    def __init__(self, action: str, target: str, detail: str = "") -> None:
        message = f"Could not {action.replace('_', ' ')} {target}."
        if detail:
            message = f"{message} {detail}"
        super().__init__(message)
        self.action = action
        self.target = target


class SendError(MailAccessError):
    """Raised when the submission server refuses the message."""

    kind = "send"


class ParseError(MailAccessError):
    """Raised when a single message cannot be parsed."""

    kind = "parse"
