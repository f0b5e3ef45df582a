"""
Unit tests for the command line interface.

Tests cover:
1. Encrypted notes (create / show / list)
2. Deposit and withdraw against a persisted pool
3. Demo, metrics and stats commands
"""

import json

import pytest
from click.testing import CliRunner

from shieldpool.cli.main import cli

RECIPIENT = "0x" + "ab" * 20


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def invoke(runner, tmp_path):
    """Run a command against a temporary data directory."""
    def _invoke(*args, input=None):
        return runner.invoke(cli, ["--data-dir", str(tmp_path), *args], input=input)
    return _invoke


class TestNotes:
    """Encrypted note files."""

    def test_create_and_show(self, invoke, tmp_path):
        result = invoke("note", "create", "--name", "n1", "--password", "pw")
        assert result.exit_code == 0
        assert "Note created: n1" in result.output

        data = json.loads((tmp_path / "notes" / "n1.json").read_text())
        assert data["denomination"] == 10 ** 18
        assert "secret" not in data

        result = invoke("note", "show", "n1", "--password", "pw")
        assert result.exit_code == 0
        assert data["commitment"] in result.output

    def test_wrong_password(self, invoke):
        invoke("note", "create", "--name", "n1", "--password", "pw")
        result = invoke("note", "show", "n1", "--password", "nope")
        assert "Wrong password" in result.output

    def test_unknown_note(self, invoke):
        result = invoke("note", "show", "missing", "--password", "pw")
        assert "not found" in result.output

    def test_unconfigured_denomination(self, invoke):
        result = invoke("note", "create", "--name", "n1", "--denomination", "5", "--password", "pw")
        assert "Denomination must be one of" in result.output

    def test_list(self, invoke):
        invoke("note", "create", "--name", "a", "--password", "pw")
        invoke("note", "create", "--name", "b", "--password", "pw")
        result = invoke("note", "list")
        assert "a:" in result.output
        assert "b:" in result.output


class TestPoolCommands:
    """Deposit and withdraw through the persisted pool."""

    def test_deposit_withdraw(self, invoke):
        invoke("note", "create", "--name", "n1", "--password", "pw")

        result = invoke("deposit", "n1")
        assert result.exit_code == 0
        assert "Deposited" in result.output

        result = invoke("withdraw", "n1", RECIPIENT, "--password", "pw")
        assert result.exit_code == 0
        assert "Withdrew" in result.output

        result = invoke("withdraw", "n1", RECIPIENT, "--password", "pw")
        assert "Withdraw failed" in result.output

    def test_double_deposit(self, invoke):
        invoke("note", "create", "--name", "n1", "--password", "pw")
        invoke("deposit", "n1")
        result = invoke("deposit", "n1")
        assert "Deposit failed" in result.output

    def test_deposit_tree_error_reported(self, invoke, monkeypatch):
        from shieldpool.core.errors import MaxDepthReached
        from shieldpool.core.pool import CommitmentPool

        def full_tree(self, commitment, paid_value):
            raise MaxDepthReached("Keys collide on every level")

        monkeypatch.setattr(CommitmentPool, "deposit", full_tree)
        invoke("note", "create", "--name", "n1", "--password", "pw")
        result = invoke("deposit", "n1")
        assert result.exit_code == 0
        assert "Deposit failed: Keys collide" in result.output

    def test_deposit_corrupt_note_file(self, invoke, tmp_path):
        invoke("note", "create", "--name", "n1", "--password", "pw")
        path = tmp_path / "notes" / "n1.json"
        data = json.loads(path.read_text())
        data["commitment"] = "0x1234"
        path.write_text(json.dumps(data))

        result = invoke("deposit", "n1")
        assert result.exit_code == 0
        assert "Deposit failed" in result.output

    def test_bad_recipient(self, invoke):
        result = invoke("withdraw", "n1", "0x1234", "--password", "pw")
        assert "Recipient must be" in result.output

    def test_stats(self, invoke):
        invoke("note", "create", "--name", "n1", "--password", "pw")
        invoke("deposit", "n1")
        result = invoke("stats")
        assert result.exit_code == 0
        assert "leaves: 1" in result.output


class TestDemo:
    """Self-contained commands."""

    def test_demo(self, invoke):
        result = invoke("demo")
        assert result.exit_code == 0
        assert "Verified: True" in result.output
        assert "Demo complete" in result.output

    def test_metrics(self, invoke):
        result = invoke("metrics", "--leaves", "10", "--prove", "3", "--runs", "2")
        assert result.exit_code == 0
        assert "Avg siblings length" in result.output


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
