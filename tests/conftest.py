# =============================================================================
# Pytest Configuration and Fixtures
# =============================================================================
# Shared fixtures for the mailgate test suite.
# =============================================================================

import pytest
import tempfile
from pathlib import Path

from mailgate.config import TimeoutConfig
from mailgate.core import MailAccountConfig
from mailgate.imap.session import MailboxSession
from mailgate.vault import CredentialVault

from fakes import FakeIMAPClient, FakeIMAPFactory, FakeSMTPClient

# Fixed key so failures are reproducible
TEST_VAULT_KEY = "6d61696c676174652d746573742d6b65792d3030303030303030303030303030"

MAILBOX_PASSWORD = "correct horse battery staple"


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def vault():
    """A CredentialVault with a fixed test key."""
    return CredentialVault(TEST_VAULT_KEY)


@pytest.fixture
def sample_account(vault):
    """A sample account whose credential decrypts with the test vault."""
    return MailAccountConfig(
        email="test@example.com",
        display_name="Test User",
        imap_host="imap.example.com",
        imap_port=993,
        smtp_host="smtp.example.com",
        smtp_port=587,
        encrypted_credential=vault.encrypt(MAILBOX_PASSWORD),
    )


@pytest.fixture
def timeouts():
    """Short timeouts so a hung fake fails fast."""
    return TimeoutConfig(connect=1.0, greeting=1.0, command=1.0)


@pytest.fixture
def imap_client():
    """A fake IMAP server connection with MOVE and UIDPLUS."""
    return FakeIMAPClient()


@pytest.fixture
def imap_factory(imap_client):
    """Client factory returning the fake IMAP connection."""
    return FakeIMAPFactory(imap_client)


@pytest.fixture
def smtp_client():
    """A fake SMTP connection that accepts everything."""
    return FakeSMTPClient()


@pytest.fixture
def smtp_factory(smtp_client):
    """Factory returning the fake SMTP connection."""
    return lambda account, timeouts: smtp_client


@pytest.fixture
async def session(sample_account, timeouts, imap_factory):
    """An authenticated session on the fake server."""
    session = MailboxSession(sample_account, timeouts, imap_factory)
    await session.connect(MAILBOX_PASSWORD)
    yield session
    await session.close()
