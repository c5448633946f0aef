# =============================================================================
# Configuration Management
# =============================================================================
# Handles loading, saving, and validating mailgate configuration.
#
# XDG Base Directory Compliance (https://specifications.freedesktop.org/basedir-spec/):
#   - Config:  $XDG_CONFIG_HOME/mailgate/  (default: ~/.config/mailgate/)
#
# Files:
#   - config.toml: timeouts, listing defaults, operator accounts
#
# The vault key is NOT stored in config.toml. It is read from
# the MAILGATE_VAULT_KEY environment variable, or from the system keyring
# (service "mailgate", user "vault-key") when the variable is unset.
# =============================================================================

import logging
import os
import tomllib  # Built into Python 3.11+
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import keyring
import keyring.errors
import tomli_w  # For writing TOML (tomllib is read-only)

from mailgate.core import MailAccountConfig
from mailgate.errors import ConfigurationError
from mailgate.vault import CredentialVault

logger = logging.getLogger(__name__)


# Application identifier used in XDG paths and keyring lookups
APP_NAME = "mailgate"

# Environment variable holding the hex vault key
VAULT_KEY_ENV = "MAILGATE_VAULT_KEY"

# Keyring entry used when the environment variable is unset
KEYRING_SERVICE = APP_NAME
KEYRING_VAULT_USER = "vault-key"


def get_xdg_config_home() -> Path:
    """
    Returns the XDG config directory for mailgate.

    Respects $XDG_CONFIG_HOME if set, otherwise uses ~/.config/mailgate/
    """
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        base = Path(xdg_config)
    else:
        base = Path.home() / ".config"
    return base / APP_NAME


# =============================================================================
# Configuration Data Structures
# =============================================================================

@dataclass
class TimeoutConfig:
    """
    Network timeouts, in seconds.

    Every network operation is bounded so a hung server cannot hang the
    caller indefinitely.

    Attributes:
        connect: TCP (and implicit TLS) connection establishment.
        greeting: Waiting for the server greeting after connecting.
        command: Any single protocol command (login, fetch, send, ...).
    """
    connect: float = 15.0
    greeting: float = 15.0
    command: float = 30.0


@dataclass
class ListingConfig:
    """
    Folder listing defaults.

    Attributes:
        default_page_size: Page size used when the caller gives none.
        max_page_size: Upper bound on requested page sizes.
    """
    default_page_size: int = 50
    max_page_size: int = 200


@dataclass
class SmtpConfig:
    """
    Outgoing mail settings.

    Attributes:
        x_mailer: Value of the X-Mailer header on sent messages.
        save_to_sent: Append a copy of each sent message to the Sent mailbox.
    """
    x_mailer: str = "mailgate"
    save_to_sent: bool = True


@dataclass
class Settings:
    """
    Main configuration container.

    Attributes:
        timeouts: Network timeouts.
        listing: Listing defaults.
        smtp: Outgoing mail settings.
        accounts: Operator-configured accounts, used by `mailgate diagnose`.
                  The web application passes accounts per request instead.

    Usage:
        >>> settings = Settings.load()
        >>> vault = settings.vault()
    """
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    listing: ListingConfig = field(default_factory=ListingConfig)
    smtp: SmtpConfig = field(default_factory=SmtpConfig)
    accounts: dict[str, MailAccountConfig] = field(default_factory=dict)

    # -------------------------------------------------------------------------
    # File Paths
    # -------------------------------------------------------------------------

    @staticmethod
    def config_file_path() -> Path:
        """Returns the path to the main config file."""
        return get_xdg_config_home() / "config.toml"

    # -------------------------------------------------------------------------
    # Vault Key
    # -------------------------------------------------------------------------

    @staticmethod
    def vault_key() -> str | None:
        """
        Look up the vault key.

        Checks $MAILGATE_VAULT_KEY first, then the system keyring.
        Returns None if neither has it.
        """
        key = os.environ.get(VAULT_KEY_ENV)
        if key:
            return key

        try:
            return keyring.get_password(KEYRING_SERVICE, KEYRING_VAULT_USER)
        except keyring.errors.KeyringError as e:
            logger.debug(f"Keyring lookup for vault key failed: {e}")
            return None

    def vault(self) -> CredentialVault:
        """
        Build the process-wide CredentialVault.

        Call once at startup; a missing or malformed key is a startup
        configuration error, not a per-request one.

        Raises:
            ConfigurationError: If no valid key is provisioned.
        """
        return CredentialVault(self.vault_key())

    # -------------------------------------------------------------------------
    # Loading and Saving
    # -------------------------------------------------------------------------

    @classmethod
    def load(cls, path: Path | None = None) -> "Settings":
        """
        Load configuration from the config file.

        If the config file doesn't exist, returns default configuration.

        Args:
            path: Explicit config file. Defaults to the XDG location.

        Raises:
            ConfigurationError: If the config file exists but is invalid.
        """
        config_path = path or cls.config_file_path()

        if not config_path.exists():
            return cls()

        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid config file {config_path}: {e}") from e

        return cls._from_dict(data)

    def save(self, path: Path | None = None) -> None:
        """Save configuration, creating the config directory if needed."""
        config_path = path or self.config_file_path()
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "wb") as f:
            tomli_w.dump(self._to_dict(), f)

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Settings":
        """Create Settings from a parsed TOML dictionary."""
        settings = cls()

        timeouts = data.get("timeouts", {})
        settings.timeouts = TimeoutConfig(
            connect=float(timeouts.get("connect", 15.0)),
            greeting=float(timeouts.get("greeting", 15.0)),
            command=float(timeouts.get("command", 30.0)),
        )

        listing = data.get("listing", {})
        settings.listing = ListingConfig(
            default_page_size=listing.get("default_page_size", 50),
            max_page_size=listing.get("max_page_size", 200),
        )
        if not 1 <= settings.listing.default_page_size <= settings.listing.max_page_size:
            raise ConfigurationError(
                "listing.default_page_size must be between 1 and listing.max_page_size"
            )

        smtp = data.get("smtp", {})
        settings.smtp = SmtpConfig(
            x_mailer=smtp.get("x_mailer", "mailgate"),
            save_to_sent=smtp.get("save_to_sent", True),
        )

        # Accounts - each key under [accounts] is an account name
        for name, acct in data.get("accounts", {}).items():
            settings.accounts[name] = MailAccountConfig(
                email=acct.get("email", ""),
                display_name=acct.get("display_name", ""),
                imap_host=acct.get("imap_host", ""),
                imap_port=acct.get("imap_port", 993),
                smtp_host=acct.get("smtp_host", ""),
                smtp_port=acct.get("smtp_port", 587),
                encrypted_credential=acct.get("encrypted_credential", ""),
            )

        return settings

    def _to_dict(self) -> dict[str, Any]:
        """Convert Settings to a dictionary for TOML serialization."""
        data: dict[str, Any] = {}

        data["timeouts"] = {
            "connect": self.timeouts.connect,
            "greeting": self.timeouts.greeting,
            "command": self.timeouts.command,
        }

        data["listing"] = {
            "default_page_size": self.listing.default_page_size,
            "max_page_size": self.listing.max_page_size,
        }

        data["smtp"] = {
            "x_mailer": self.smtp.x_mailer,
            "save_to_sent": self.smtp.save_to_sent,
        }

        data["accounts"] = {}
        for name, account in self.accounts.items():
            data["accounts"][name] = {
                "email": account.email,
                "display_name": account.display_name,
                "imap_host": account.imap_host,
                "imap_port": account.imap_port,
                "smtp_host": account.smtp_host,
                "smtp_port": account.smtp_port,
                "encrypted_credential": account.encrypted_credential,
            }

        return data


def print_paths() -> None:
    """Print configuration paths for debugging."""
    print(f"Config:       {get_xdg_config_home()}")
    print(f"Config file:  {Settings.config_file_path()}")
