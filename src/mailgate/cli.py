# =============================================================================
# Command Line Interface
# =============================================================================
# Operator commands for provisioning and troubleshooting:
#
#   mailgate genkey               Generate a new vault key
#   mailgate encrypt              Encrypt a mailbox password (prompted)
#   mailgate hash-login           Hash a webmail login secret (prompted)
#   mailgate diagnose <account>   Check an account from config.toml
#   mailgate --paths              Print configuration paths
#
# The web application itself does not go through this module; it imports
# mailgate.service directly.
# =============================================================================

import argparse
import asyncio
import getpass
import logging
import sys
from pathlib import Path

from mailgate import __app_name__, __version__
from mailgate.config import VAULT_KEY_ENV, Settings, print_paths
from mailgate.diagnostics import diagnose
from mailgate.errors import MailAccessError
from mailgate.vault import CredentialVault, generate_key


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        prog=__app_name__,
        description="mailgate: IMAP/SMTP access layer for webmail",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--paths",
        action="store_true",
        help="Print configuration paths and exit",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config file (default: XDG config location)",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode (verbose logging)",
    )

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("genkey", help=f"Generate a vault key for {VAULT_KEY_ENV}")
    subparsers.add_parser("encrypt", help="Encrypt a mailbox password for storage")
    subparsers.add_parser("hash-login", help="Hash a webmail login secret")

    diagnose_parser = subparsers.add_parser("diagnose", help="Check an account's IMAP and SMTP access")
    diagnose_parser.add_argument("account", help="Account name from the [accounts] config section")

    return parser.parse_args(argv)


def _prompt_secret(prompt: str) -> str:
    secret = getpass.getpass(prompt)
    if not secret:
        raise MailAccessError("Nothing entered.")
    return secret


def _run_diagnose(settings: Settings, name: str) -> int:
    account = settings.accounts.get(name)
    if account is None:
        print(f"No account named '{name}' in {Settings.config_file_path()}", file=sys.stderr)
        return 1

    report = asyncio.run(diagnose(account, settings.vault(), settings.timeouts))
    for step in report.steps:
        mark = "ok  " if step.ok else "FAIL"
        print(f"[{mark}] {step.step:<10} {step.detail}")
    return 0 if report.ok else 1


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for mailgate.

    This function:
        1. Parses command-line arguments
        2. Handles special commands (--paths, --version)
        3. Loads configuration
        4. Runs the requested subcommand

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.paths:
        print_paths()
        return 0

    try:
        if args.command == "genkey":
            print(generate_key())
            return 0

        if args.command == "hash-login":
            print(CredentialVault.hash_login_secret(_prompt_secret("Login secret: ")))
            return 0

        settings = Settings.load(args.config)

        if args.command == "encrypt":
            print(settings.vault().encrypt(_prompt_secret("Mail password: ")))
            return 0

        if args.command == "diagnose":
            return _run_diagnose(settings, args.account)

    except MailAccessError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    print(f"No command given. Run '{__app_name__} --help' for usage.", file=sys.stderr)
    return 2


if __name__ == "__main__":
    sys.exit(main())
