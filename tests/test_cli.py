"""Tests for the operator command line."""

import pytest

from mailgate import __version__
from mailgate.cli import main, parse_args
from mailgate.config import VAULT_KEY_ENV

from conftest import TEST_VAULT_KEY


def test_parse_diagnose() -> None:
    args = parse_args(["--debug", "diagnose", "work"])
    assert args.command == "diagnose"
    assert args.account == "work"
    assert args.debug is True


def test_version(capsys) -> None:
    with pytest.raises(SystemExit):
        parse_args(["--version"])
    assert __version__ in capsys.readouterr().out


def test_genkey(capsys) -> None:
    assert main(["genkey"]) == 0
    key = capsys.readouterr().out.strip()
    assert len(key) == 64
    bytes.fromhex(key)


def test_paths(capsys, monkeypatch, temp_dir) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(temp_dir))
    assert main(["--paths"]) == 0
    assert str(temp_dir / "mailgate" / "config.toml") in capsys.readouterr().out


def test_encrypt(capsys, monkeypatch, temp_dir, vault) -> None:
    monkeypatch.setenv(VAULT_KEY_ENV, TEST_VAULT_KEY)
    monkeypatch.setattr("getpass.getpass", lambda prompt: "hunter2")

    assert main(["--config", str(temp_dir / "config.toml"), "encrypt"]) == 0
    assert vault.decrypt(capsys.readouterr().out.strip()) == "hunter2"


def test_diagnose_unknown_account(capsys, temp_dir) -> None:
    assert main(["--config", str(temp_dir / "config.toml"), "diagnose", "nobody"]) == 1
    assert "nobody" in capsys.readouterr().err


def test_no_command(capsys) -> None:
    assert main([]) == 2
    assert "--help" in capsys.readouterr().err
