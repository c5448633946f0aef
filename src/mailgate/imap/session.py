# =============================================================================
# IMAP Session Manager
# =============================================================================
# Opens one authenticated IMAP session per logical operation, and guarantees
# it is torn down again on every exit path.
#
# Lifecycle:
#   CLOSED -> CONNECTING -> AUTHENTICATED -> IN_USE -> (AUTHENTICATED) -> CLOSED
#
# Key responsibilities:
#   - Decrypting the mailbox credential just long enough to log in
#   - Bounded connect / greeting / per-command timeouts
#   - STARTTLS upgrade when the server offers it on a non-TLS port
#   - Mapping transport and auth failures to the error taxonomy, once, here
#   - Scoped mailbox "locks" (SELECT) via an async context manager
#
# Design notes:
#   - Sessions are never pooled or shared. Each request pays the full
#     connect + login cost.
#   - close() is best-effort and idempotent.
# =============================================================================

import asyncio
import logging
import re
import socket
import ssl
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, AsyncIterator, Awaitable, Callable

from aioimaplib import aioimaplib

from mailgate.config import TimeoutConfig
from mailgate.core import MailAccountConfig
from mailgate.errors import (
    AuthError,
    ConnectivityError,
    MailAccessError,
    MailboxNotFoundError,
    TransientError,
)
from mailgate.vault import CredentialVault

logger = logging.getLogger(__name__)

# Builds an unconnected aioimaplib client for an account
ClientFactory = Callable[[MailAccountConfig, float], Any]

# Server responses meaning "that mailbox is not there"
_NONEXISTENT = re.compile(
    r"NONEXISTENT|doesn't exist|does not exist|no such mailbox|unknown mailbox",
    re.IGNORECASE,
)

# Server responses meaning "your credentials are wrong"
_AUTH_FAILED = re.compile(r"AUTHENTICATIONFAILED|invalid credentials|LOGIN failed", re.IGNORECASE)

# How long a graceful LOGOUT may take before we give up on it
LOGOUT_TIMEOUT = 5.0


class SessionState(Enum):
    """Where a MailboxSession is in its lifecycle."""
    CLOSED = auto()
    CONNECTING = auto()
    AUTHENTICATED = auto()
    IN_USE = auto()


@dataclass
class MailboxInfo:
    """
    State of the currently selected mailbox (from SELECT).

    Attributes:
        path: Server mailbox path.
        exists: Number of messages (EXISTS). A live value, not a snapshot.
        uidvalidity: UIDVALIDITY of the mailbox.
        uidnext: Predicted next UID.
    """
    path: str
    exists: int = 0
    uidvalidity: int | None = None
    uidnext: int | None = None


def quote_mailbox(name: str) -> str:
    """
    Quote an IMAP mailbox name if it contains special characters.

    Names with spaces, quotes, backslashes or brackets must be sent as a
    quoted string with internal quotes and backslashes escaped.
    """
    if " " in name or '"' in name or "\\" in name or any(c in name for c in "(){}[]"):
        escaped = name.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return name


def _response_text(response: Any) -> str:
    lines = []
    for line in getattr(response, "lines", []) or []:
        if isinstance(line, (bytes, bytearray)):
            line = bytes(line).decode("utf-8", errors="replace")
        lines.append(str(line))
    return " ".join(lines)


def classify_transport_error(exc: BaseException, host: str, port: int) -> MailAccessError:
    """
    Map a transport-level exception to a domain error.

    This is the single place where IMAP transport failures are classified.

    Args:
        exc: The exception raised by the socket, TLS layer, or aioimaplib.
        host: Server host, for the error message.
        port: Server port, for the error message.
    """
    if isinstance(exc, MailAccessError):
        return exc

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ConnectivityError(
            f"Connection to mail server {host}:{port} timed out. "
            "Check that the server is reachable and the port is open.",
            host=host,
            port=port,
        )
    if isinstance(exc, ConnectionRefusedError):
        return ConnectivityError(
            f"Cannot connect to mail server {host}:{port}. Check server settings.",
            host=host,
            port=port,
        )
    if isinstance(exc, (ConnectionResetError, ConnectionAbortedError, BrokenPipeError)):
        return TransientError(
            f"Connection to {host}:{port} was reset. Try again.",
            host=host,
            port=port,
        )
    if isinstance(exc, socket.gaierror):
        return ConnectivityError(
            f"Cannot resolve mail server host {host}. Check server settings.",
            host=host,
            port=port,
        )
    if isinstance(exc, ssl.SSLError):
        return ConnectivityError(
            f"TLS handshake with {host}:{port} failed. Check the server's TLS settings.",
            host=host,
            port=port,
        )
    if isinstance(exc, OSError):
        return ConnectivityError(
            f"Cannot connect to mail server {host}:{port}: {exc}",
            host=host,
            port=port,
        )

    # Last resort: some aioimaplib errors only say what happened in text
    if _AUTH_FAILED.search(str(exc)):
        return AuthError("Mail authentication failed. Check your email/password in settings.")

    return MailAccessError(f"Mail server connection failed: {exc}")


def tls_context() -> ssl.SSLContext:
    """TLS settings for STARTTLS upgrades: verified certificate and hostname."""
    return ssl.create_default_context(ssl.Purpose.SERVER_AUTH)


def default_client_factory(account: MailAccountConfig, command_timeout: float) -> Any:
    """Create an aioimaplib client (implicit TLS on port 993)."""
    if account.imap_implicit_tls:
        return aioimaplib.IMAP4_SSL(
            host=account.imap_host,
            port=account.imap_port,
            timeout=command_timeout,
        )
    return aioimaplib.IMAP4(
        host=account.imap_host,
        port=account.imap_port,
        timeout=command_timeout,
    )


class MailboxSession:
    """
    One authenticated IMAP connection, used for one logical operation.

    Prefer open_session(), which pairs connect() with close(). Direct use:

        >>> session = MailboxSession(account, TimeoutConfig())
        >>> await session.connect(password)
        >>> async with session.mailbox("INBOX") as info:
        ...     lines = await session.fetch("1:10", "(UID FLAGS)")
        >>> await session.close()

    Attributes:
        account: Account this session is logged in to.
        timeouts: Network timeouts.
        state: Current lifecycle state.
        capabilities: Server capabilities seen after the greeting.
    """

    def __init__(
        self,
        account: MailAccountConfig,
        timeouts: TimeoutConfig,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.account = account
        self.timeouts = timeouts
        self.state = SessionState.CLOSED
        self.capabilities: list[str] = []
        self.selected: MailboxInfo | None = None
        self._client_factory = client_factory or default_client_factory
        self._client: Any = None

    @property
    def is_open(self) -> bool:
        """True if authenticated (with or without a mailbox selected)."""
        return self.state in (SessionState.AUTHENTICATED, SessionState.IN_USE)

    # =========================================================================
    # Connection Management
    # =========================================================================

    async def connect(self, password: str) -> None:
        """
        Connect, upgrade to TLS if needed, and log in.

        The password is used for LOGIN and not kept on the session.

        Raises:
            ConnectivityError: Server unreachable, refused, or timed out.
            TransientError: Connection reset during the handshake.
            AuthError: Login rejected.
        """
        host, port = self.account.imap_host, self.account.imap_port
        logger.info(f"Connecting to IMAP {host}:{port}")
        self.state = SessionState.CONNECTING

        try:
            self._client = self._client_factory(self.account, self.timeouts.command)

            # The TCP/TLS connection is established by a background task
            client_task = getattr(self._client, "_client_task", None)
            if client_task is not None:
                await asyncio.wait_for(client_task, self.timeouts.connect)

            await asyncio.wait_for(
                self._client.wait_hello_from_server(), self.timeouts.greeting
            )
            self.capabilities = [c.upper() for c in getattr(self._client.protocol, "capabilities", [])]
            logger.debug(f"Server capabilities: {self.capabilities}")

            if not self.account.imap_implicit_tls and self._client.has_capability("STARTTLS"):
                await asyncio.wait_for(self._starttls(), self.timeouts.command)

            logger.debug(f"Authenticating as {self.account.email}")
            response = await asyncio.wait_for(
                self._client.login(self.account.email, password), self.timeouts.command
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise classify_transport_error(e, host, port) from e

        if response.result != "OK":
            logger.warning(f"IMAP login rejected for {self.account.email}: {_response_text(response)}")
            raise AuthError("Mail authentication failed. Check your email/password in settings.")

        self.state = SessionState.AUTHENTICATED
        logger.info(f"Authenticated to IMAP {host} as {self.account.email}")

    async def _starttls(self) -> None:
        """
        Upgrade the plaintext connection to TLS (RFC 3501 section 6.2.1).

        aioimaplib knows the STARTTLS command but has no client method for
        it, so the command goes through the protocol and the transport is
        swapped with loop.start_tls(). Capabilities are read again after the
        upgrade, since servers may advertise different ones over TLS.
        """
        host, port = self.account.imap_host, self.account.imap_port
        protocol = self._client.protocol
        logger.debug("Upgrading to TLS via STARTTLS")

        response = await protocol.execute(
            aioimaplib.Command("STARTTLS", protocol.new_tag(), loop=protocol.loop)
        )
        if response.result != "OK":
            raise ConnectivityError(
                f"Mail server {host}:{port} refused STARTTLS: {_response_text(response)}",
                host=host,
                port=port,
            )

        loop = asyncio.get_running_loop()
        protocol.transport = await loop.start_tls(
            protocol.transport, protocol, tls_context(), server_hostname=host
        )
        await protocol.capability()
        self.capabilities = [c.upper() for c in protocol.capabilities]
        logger.debug(f"Server capabilities after STARTTLS: {self.capabilities}")

    async def close(self) -> None:
        """
        Log out and drop the connection.

        Best-effort: errors are logged and swallowed. Safe to call more than
        once; only the first call does anything.
        """
        if self.state is SessionState.CLOSED and self._client is None:
            return

        client, self._client = self._client, None
        was_open = self.is_open
        self.state = SessionState.CLOSED
        self.selected = None

        if client is None:
            return

        if was_open:
            try:
                logger.debug("Sending LOGOUT")
                await asyncio.wait_for(client.logout(), LOGOUT_TIMEOUT)
                return
            except Exception as e:
                logger.warning(f"Error during IMAP logout: {e}")

        self._abort_transport(client)

    @staticmethod
    def _abort_transport(client: Any) -> None:
        """Close the underlying transport without a protocol goodbye."""
        transport = getattr(getattr(client, "protocol", None), "transport", None)
        if transport is None:
            return
        try:
            transport.close()
        except Exception as e:
            logger.debug(f"Error closing IMAP transport: {e}")

    def abort(self) -> None:
        """Drop the connection immediately (used on cancellation)."""
        client, self._client = self._client, None
        self.state = SessionState.CLOSED
        self.selected = None
        if client is not None:
            self._abort_transport(client)

    # =========================================================================
    # Command Plumbing
    # =========================================================================

    async def _run(self, command: Callable[[Any], Awaitable[Any]]) -> Any:
        """
        Run one IMAP command with the command timeout and error mapping.

        The command is built from the client only after the session is known
        to be open, so a closed session never creates a stray coroutine.
        """
        if self._client is None or not self.is_open:
            raise MailAccessError("Mail session is not open.")
        try:
            return await asyncio.wait_for(command(self._client), self.timeouts.command)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise classify_transport_error(e, self.account.imap_host, self.account.imap_port) from e

    @staticmethod
    def _check(response: Any, what: str) -> list:
        """Raise if a response is not OK; otherwise return its lines."""
        if response.result != "OK":
            raise MailAccessError(f"{what} failed: {_response_text(response)}")
        return list(response.lines)

    def has_capability(self, name: str) -> bool:
        """Check a server capability (e.g. "MOVE", "UIDPLUS")."""
        if self._client is None:
            return False
        return bool(self._client.has_capability(name))

    # =========================================================================
    # Mailbox Selection
    # =========================================================================

    @asynccontextmanager
    async def mailbox(self, path: str) -> AsyncIterator[MailboxInfo]:
        """
        Select a mailbox for the duration of a block.

        While the block runs the session is IN_USE. Message-level commands
        (fetch, store, move, expunge) act on this mailbox.

        Raises:
            MailboxNotFoundError: If the server says the mailbox is absent.
        """
        logger.debug(f"Selecting mailbox: {path}")
        response = await self._run(lambda client: client.select(quote_mailbox(path)))

        if response.result != "OK":
            text = _response_text(response)
            if _NONEXISTENT.search(text):
                raise MailboxNotFoundError(path)
            raise MailAccessError(f"Failed to open mailbox '{path}': {text}")

        info = self._parse_select_response(path, response)
        self.selected = info
        self.state = SessionState.IN_USE
        try:
            yield info
        finally:
            self.selected = None
            if self.state is SessionState.IN_USE:
                self.state = SessionState.AUTHENTICATED

    @staticmethod
    def _parse_select_response(path: str, response: Any) -> MailboxInfo:
        """Parse SELECT output into MailboxInfo."""
        info = MailboxInfo(path=path)

        for line in response.lines:
            if isinstance(line, (bytes, bytearray)):
                line = bytes(line).decode("utf-8", errors="replace")

            match = re.search(r"(\d+)\s+EXISTS", line, re.IGNORECASE)
            if match:
                info.exists = int(match.group(1))

            match = re.search(r"UIDVALIDITY\s+(\d+)", line, re.IGNORECASE)
            if match:
                info.uidvalidity = int(match.group(1))

            match = re.search(r"UIDNEXT\s+(\d+)", line, re.IGNORECASE)
            if match:
                info.uidnext = int(match.group(1))

        return info

    # =========================================================================
    # Commands
    # =========================================================================

    async def fetch(self, sequence_set: str, items: str) -> list:
        """FETCH by sequence numbers; returns raw response lines."""
        response = await self._run(lambda client: client.fetch(sequence_set, items))
        return self._check(response, "FETCH")

    async def uid_fetch(self, uid_set: str, items: str) -> list:
        """UID FETCH; returns raw response lines."""
        response = await self._run(lambda client: client.uid("FETCH", uid_set, items))
        return self._check(response, "UID FETCH")

    async def uid_search(self, *criteria: str) -> list[int]:
        """UID SEARCH; returns matching UIDs in server order."""
        response = await self._run(lambda client: client.uid_search(*criteria))
        uids: list[int] = []
        for line in self._check(response, "UID SEARCH"):
            if isinstance(line, (bytes, bytearray)):
                line = bytes(line).decode("utf-8", errors="replace")
            tokens = str(line).split()
            if tokens and tokens[0].upper() == "SEARCH":
                tokens = tokens[1:]
            if tokens and all(t.isdigit() for t in tokens):
                uids.extend(int(t) for t in tokens)
        return uids

    async def uid_store(self, uid: int, operation: str, flags: list[str]) -> None:
        """UID STORE, e.g. uid_store(42, "+FLAGS", ["\\Seen"])."""
        command = f"{operation} ({' '.join(flags)})"
        logger.debug(f"Setting flags on {uid}: {command}")
        response = await self._run(lambda client: client.uid("STORE", str(uid), command))
        self._check(response, "UID STORE")

    async def uid_move(self, uid: int, destination: str) -> None:
        """UID MOVE (RFC 6851)."""
        response = await self._run(
            lambda client: client.uid("MOVE", str(uid), quote_mailbox(destination))
        )
        self._check(response, "UID MOVE")

    async def uid_copy(self, uid: int, destination: str) -> None:
        """UID COPY."""
        response = await self._run(
            lambda client: client.uid("COPY", str(uid), quote_mailbox(destination))
        )
        self._check(response, "UID COPY")

    async def expunge(self, uid: int | None = None) -> None:
        """
        Permanently remove \\Deleted messages.

        With a uid and UIDPLUS support, only that message is expunged.
        Otherwise every \\Deleted message in the mailbox goes.
        """
        if uid is not None and self.has_capability("UIDPLUS"):
            response = await self._run(lambda client: client.uid("EXPUNGE", str(uid)))
            self._check(response, "UID EXPUNGE")
        else:
            response = await self._run(lambda client: client.expunge())
            self._check(response, "EXPUNGE")

    async def append(self, message: bytes, mailbox: str, flags: list[str] | None = None) -> None:
        """APPEND a raw message to a mailbox."""
        flag_list = f"({' '.join(flags)})" if flags else None
        response = await self._run(
            lambda client: client.append(message, mailbox=quote_mailbox(mailbox), flags=flag_list)
        )
        text = _response_text(response)
        if response.result != "OK":
            if _NONEXISTENT.search(text) or "TRYCREATE" in text.upper():
                raise MailboxNotFoundError(mailbox)
            raise MailAccessError(f"APPEND failed: {text}")

    async def status(self, mailbox: str, items: str = "(MESSAGES UNSEEN)") -> dict[str, int]:
        """
        Get mailbox counters without selecting it.

        Returns:
            Dictionary like {"MESSAGES": 12, "UNSEEN": 3}.
        """
        response = await self._run(lambda client: client.status(quote_mailbox(mailbox), items))
        if response.result != "OK":
            text = _response_text(response)
            if _NONEXISTENT.search(text):
                raise MailboxNotFoundError(mailbox)
            raise MailAccessError(f"STATUS failed: {text}")

        status: dict[str, int] = {}
        for line in response.lines:
            if isinstance(line, (bytes, bytearray)):
                line = bytes(line).decode("utf-8", errors="replace")
            match = re.search(r"\((.*)\)", str(line))
            if match:
                parts = match.group(1).split()
                for i in range(0, len(parts) - 1, 2):
                    try:
                        status[parts[i].upper()] = int(parts[i + 1])
                    except ValueError:
                        pass
        return status

    async def list_mailboxes(self) -> list:
        """LIST "" "*"; returns raw response lines."""
        response = await self._run(lambda client: client.list('""', "*"))
        return self._check(response, "LIST")


@asynccontextmanager
async def open_session(
    account: MailAccountConfig,
    vault: CredentialVault,
    timeouts: TimeoutConfig | None = None,
    client_factory: ClientFactory | None = None,
) -> AsyncIterator[MailboxSession]:
    """
    Open an authenticated session for the duration of a block.

    Every session that is opened is closed exactly once, whether the block
    returns, raises, or is cancelled. On cancellation the connection is
    dropped immediately instead of waiting for a LOGOUT round trip.

    Raises:
        CredentialError: The stored credential cannot be decrypted.
        ConnectivityError: Server unreachable, refused, or timed out.
        AuthError: Login rejected.

    Example:
        >>> async with open_session(account, vault) as session:
        ...     async with session.mailbox("INBOX") as info:
        ...         print(info.exists)
    """
    password = vault.decrypt(account.encrypted_credential)
    session = MailboxSession(account, timeouts or TimeoutConfig(), client_factory)

    try:
        await session.connect(password)
    except asyncio.CancelledError:
        session.abort()
        raise
    except BaseException:
        await session.close()
        raise
    finally:
        del password

    try:
        yield session
    except asyncio.CancelledError:
        session.abort()
        raise
    finally:
        await session.close()
