"""Unit tests — CLI policy commands."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from jade_guard.cli.commands.policy import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("HOME", str(tmp_path))
    # Logging really runs, on stderr and above anything the commands emit.
    monkeypatch.setenv("JADE_LOGGING__LEVEL", "critical")
    return tmp_path


@pytest.fixture
def db(tmp_path: Path) -> str:
    return str(tmp_path / "store.db")


def _policy_json(db: str, origin: str) -> dict:
    result = runner.invoke(app, ["get", origin, "--db", db, "--json"])
    assert result.exit_code == 0, result.output
    return json.loads(result.output)


@pytest.mark.unit
class TestPolicyGet:
    def test_default_policy_table(self, db: str) -> None:
        result = runner.invoke(app, ["get", "example.com", "--db", db])
        assert result.exit_code == 0
        assert "allowNetwork" in result.output
        assert "Whitelisted: False" in result.output

    def test_preset_json(self, db: str) -> None:
        document = _policy_json(db, "https://github.com/")
        assert document["capabilities"]["allowNetwork"] is True
        assert document["riskScore"] == 20


@pytest.mark.unit
class TestPolicySet:
    def test_allow_flag(self, db: str) -> None:
        result = runner.invoke(app, ["set", "example.com", "--allow", "allowNetwork", "--db", db])
        assert result.exit_code == 0
        assert "Policy saved for example.com" in result.output
        assert _policy_json(db, "example.com")["capabilities"]["allowNetwork"] is True

    def test_deny_keeps_other_flags(self, db: str) -> None:
        runner.invoke(app, ["set", "localhost", "--deny", "allowDOM", "--db", db])
        capabilities = _policy_json(db, "localhost")["capabilities"]
        assert capabilities["allowDOM"] is False
        assert capabilities["allowStorage"] is True

    def test_whitelist(self, db: str) -> None:
        runner.invoke(app, ["set", "example.com", "--whitelist", "--db", db])
        assert _policy_json(db, "example.com")["whitelisted"] is True

    def test_unknown_flag(self, db: str) -> None:
        result = runner.invoke(app, ["set", "example.com", "--allow", "allowTeleport", "--db", db])
        assert result.exit_code == 1
        assert "Unknown capability" in result.output


@pytest.mark.unit
class TestPolicyReset:
    def test_reset(self, db: str) -> None:
        runner.invoke(app, ["set", "example.com", "--allow", "allowCamera", "--whitelist", "--db", db])
        result = runner.invoke(app, ["reset", "example.com", "--db", db])
        assert result.exit_code == 0
        document = _policy_json(db, "example.com")
        assert document["whitelisted"] is False
        assert not any(document["capabilities"].values())


@pytest.mark.unit
class TestPolicyList:
    def test_empty(self, db: str) -> None:
        result = runner.invoke(app, ["list", "--db", db, "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output) == []

    def test_lists_saved_origins(self, db: str) -> None:
        runner.invoke(app, ["set", "b.com", "--allow", "allowNetwork", "--db", db])
        runner.invoke(app, ["set", "a.com", "--db", db])
        result = runner.invoke(app, ["list", "--db", db, "--json"])
        domains = json.loads(result.output)
        assert [d["origin"] for d in domains] == ["a.com", "b.com"]
        assert domains[0]["riskScore"] == 50

    def test_table(self, db: str) -> None:
        runner.invoke(app, ["set", "b.com", "--allow", "allowNetwork", "--db", db])
        result = runner.invoke(app, ["list", "--db", db])
        assert result.exit_code == 0
        assert "b.com" in result.output

