# =============================================================================
# Connection Diagnostics
# =============================================================================
# Walks through everything that has to work before mail can flow, and
# reports each step separately so the user knows exactly what to fix:
#
#   1. credential   - an encrypted password is stored for the account
#   2. decrypt      - the vault key can decrypt it
#   3. imap         - connect + TLS + login to the IMAP server
#   4. smtp         - connect + TLS + login to the SMTP server
#
# Steps after a failed credential step are skipped (there is nothing to log
# in with). IMAP and SMTP are checked independently of each other.
# =============================================================================

import asyncio
import logging
from dataclasses import dataclass, field

from mailgate.config import TimeoutConfig
from mailgate.core import MailAccountConfig
from mailgate.errors import MailAccessError
from mailgate.imap.session import ClientFactory, open_session
from mailgate.smtp.dispatcher import SmtpFactory, classify_smtp_error, default_smtp_factory
from mailgate.vault import CredentialVault

logger = logging.getLogger(__name__)


@dataclass
class DiagnosticStep:
    """Outcome of one diagnostic step."""
    step: str
    ok: bool
    detail: str = ""

    def to_dict(self) -> dict:
        return {"step": self.step, "ok": self.ok, "detail": self.detail}


@dataclass
class DiagnosticReport:
    """All diagnostic steps for one account, in the order they ran."""
    steps: list[DiagnosticStep] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return bool(self.steps) and all(step.ok for step in self.steps)

    def to_dict(self) -> dict:
        return {"ok": self.ok, "steps": [step.to_dict() for step in self.steps]}


async def diagnose(
    account: MailAccountConfig,
    vault: CredentialVault,
    timeouts: TimeoutConfig | None = None,
    *,
    imap_client_factory: ClientFactory | None = None,
    smtp_factory: SmtpFactory | None = None,
) -> DiagnosticReport:
    """
    Check that an account can receive and send mail.

    Never raises for mail problems; every failure becomes a failed step
    with an actionable detail message.
    """
    timeouts = timeouts or TimeoutConfig()
    report = DiagnosticReport()

    if not account.encrypted_credential:
        report.steps.append(DiagnosticStep(
            "credential", False, "No mail password stored. Enter your mail password in settings."
        ))
        return report
    report.steps.append(DiagnosticStep("credential", True, "Encrypted mail password present."))

    try:
        password = vault.decrypt(account.encrypted_credential)
    except MailAccessError as e:
        report.steps.append(DiagnosticStep("decrypt", False, e.message))
        return report
    report.steps.append(DiagnosticStep("decrypt", True, "Mail password decrypted."))

    report.steps.append(await _check_imap(account, vault, timeouts, imap_client_factory))
    report.steps.append(
        await _check_smtp(account, password, timeouts, smtp_factory or default_smtp_factory)
    )

    logger.info(f"Diagnostics for {account.email}: {'ok' if report.ok else 'failed'}")
    return report


async def _check_imap(
    account: MailAccountConfig,
    vault: CredentialVault,
    timeouts: TimeoutConfig,
    client_factory: ClientFactory | None,
) -> DiagnosticStep:
    try:
        async with open_session(account, vault, timeouts, client_factory):
            pass
    except MailAccessError as e:
        return DiagnosticStep("imap", False, e.message)

    return DiagnosticStep(
        "imap", True, f"Logged in to {account.imap_host}:{account.imap_port}."
    )


async def _check_smtp(
    account: MailAccountConfig,
    password: str,
    timeouts: TimeoutConfig,
    smtp_factory: SmtpFactory,
) -> DiagnosticStep:
    host, port = account.smtp_host, account.smtp_port
    client = smtp_factory(account, timeouts)
    try:
        await client.connect(timeout=timeouts.connect)
        await client.login(account.email, password)
    except asyncio.CancelledError:
        client.close()
        raise
    except Exception as e:
        return DiagnosticStep("smtp", False, classify_smtp_error(e, host, port).message)
    finally:
        if getattr(client, "is_connected", False):
            try:
                await client.quit()
            except Exception as e:
                logger.debug(f"Error during SMTP disconnect: {e}")

    return DiagnosticStep("smtp", True, f"Logged in to {host}:{port}.")
