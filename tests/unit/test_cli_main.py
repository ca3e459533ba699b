"""Tests for identity_client.cli.main — CLI commands via Click test runner."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import pytest
from click.testing import CliRunner, Result

from identity_client.cli.main import cli
from identity_client.keystore.keys import DeviceKey

PASSWORD = "correct horse battery"
NEW_PASSWORD_INPUT = f"{PASSWORD}\n{PASSWORD}\n"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def runner() -> CliRunner:
    # Port 9 (discard) refuses connections, so gist lookups fail fast.
    return CliRunner(
        env={
            "IDENTITY_CLIENT_KDF_COST": "4",
            "IDENTITY_CLIENT_GITHUB_API_URL": "http://127.0.0.1:9",
            "IDENTITY_CLIENT_REQUEST_TIMEOUT": "2",
            "IDENTITY_CLIENT_ALLOW_SEED_URI": None,
        }
    )


@pytest.fixture()
def state_dir(tmp_path: Path) -> Path:
    return tmp_path / "state"


def invoke(
    runner: CliRunner, state_dir: Path, *args: str, input: Optional[str] = None
) -> Result:
    return runner.invoke(cli, ["--path", str(state_dir), *args], input=input)


def device_id(state_dir: Path) -> str:
    info = json.loads((state_dir / "keystore" / "device_key.json").read_text())
    return str(info["account_id"])


@pytest.fixture()
def registered(runner: CliRunner, state_dir: Path) -> str:
    """Set a key and create uid 0 (handle ``alice``) for it."""
    assert invoke(runner, state_dir, "key", "set", input=NEW_PASSWORD_INPUT).exit_code == 0
    account_id = device_id(state_dir)
    result = invoke(runner, state_dir, "account", "create", account_id, "--name", "alice")
    assert result.exit_code == 0, result.output
    return account_id


# ---------------------------------------------------------------------------
# Root CLI
# ---------------------------------------------------------------------------


class TestRootCLI:
    def test_help_exits_zero(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for group in ("key", "account", "device", "id"):
            assert group in result.output

    def test_version_command(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert "identity-client" in result.output.lower()

    def test_creates_state_directory(self, runner: CliRunner, state_dir: Path) -> None:
        result = invoke(runner, state_dir, "id", "resolve", "alice")
        assert result.exit_code == 1
        assert (state_dir / "keystore").is_dir()
        assert (state_dir / "ledger.json").exists()


# ---------------------------------------------------------------------------
# key
# ---------------------------------------------------------------------------


class TestKeySet:
    def test_generates_key(self, runner: CliRunner, state_dir: Path) -> None:
        result = invoke(runner, state_dir, "key", "set", input=NEW_PASSWORD_INPUT)
        assert result.exit_code == 0, result.output
        assert "Your device id is" in result.output
        assert device_id(state_dir) in result.output
        assert "no user id yet" in result.output

    def test_second_set_fails(self, runner: CliRunner, state_dir: Path) -> None:
        invoke(runner, state_dir, "key", "set", input=NEW_PASSWORD_INPUT)
        result = invoke(runner, state_dir, "key", "set", input=NEW_PASSWORD_INPUT)
        assert result.exit_code == 1
        assert "already has a key" in result.output

    def test_short_password(self, runner: CliRunner, state_dir: Path) -> None:
        result = invoke(runner, state_dir, "key", "set", input="short\nshort\n")
        assert result.exit_code == 1
        assert "Password too short" in result.output
        assert not (state_dir / "keystore" / "encrypted_device_key").exists()

    def test_seed_uri_requires_dev(self, runner: CliRunner, state_dir: Path) -> None:
        result = invoke(
            runner, state_dir, "key", "set", "--suri", "//Alice", input=NEW_PASSWORD_INPUT
        )
        assert result.exit_code == 1
        assert "disabled" in result.output

    def test_seed_uri_in_dev_mode(self, runner: CliRunner, tmp_path: Path) -> None:
        for name in ("one", "two"):
            result = runner.invoke(
                cli,
                ["--path", str(tmp_path / name), "--dev", "key", "set", "--suri", "//Alice"],
                input=NEW_PASSWORD_INPUT,
            )
            assert result.exit_code == 0, result.output
        assert device_id(tmp_path / "one") == device_id(tmp_path / "two")

    def test_restore_from_paperkey(
        self, runner: CliRunner, state_dir: Path, zero_phrase: str
    ) -> None:
        result = invoke(
            runner,
            state_dir,
            "key",
            "set",
            "--paperkey",
            input=NEW_PASSWORD_INPUT + zero_phrase + "\n",
        )
        assert result.exit_code == 0, result.output
        assert device_id(state_dir) == DeviceKey.from_mnemonic(zero_phrase).account_id


class TestLockUnlock:
    def test_lock_then_unlock(self, runner: CliRunner, state_dir: Path) -> None:
        invoke(runner, state_dir, "key", "set", input=NEW_PASSWORD_INPUT)
        result = invoke(runner, state_dir, "key", "lock")
        assert result.exit_code == 0
        assert "Locked" in result.output

        result = invoke(runner, state_dir, "device", "current")
        assert result.exit_code == 1
        assert "locked" in result.output.lower()

        result = invoke(runner, state_dir, "key", "unlock", input="wrong password\n")
        assert result.exit_code == 1
        assert "wrong password" in result.output

        result = invoke(runner, state_dir, "key", "unlock", input=PASSWORD + "\n")
        assert result.exit_code == 0
        assert "Unlocked" in result.output
        assert device_id(state_dir) in invoke(runner, state_dir, "device", "current").output

    def test_lock_without_key(self, runner: CliRunner, state_dir: Path) -> None:
        result = invoke(runner, state_dir, "key", "lock")
        assert result.exit_code == 1
        assert "No device key" in result.output


# ---------------------------------------------------------------------------
# account
# ---------------------------------------------------------------------------


class TestAccount:
    def test_create_and_resolve(
        self, runner: CliRunner, state_dir: Path, registered: str
    ) -> None:
        result = invoke(runner, state_dir, "id", "resolve", "alice")
        assert result.exit_code == 0
        assert result.output.strip() == "0"
        assert invoke(runner, state_dir, "id", "resolve", registered).output.strip() == "0"

    def test_create_rejects_bad_device(
        self, runner: CliRunner, state_dir: Path, registered: str
    ) -> None:
        result = invoke(runner, state_dir, "account", "create", "not-a-device")
        assert result.exit_code == 1
        assert "Invalid account id" in result.output

    def test_change_password(
        self, runner: CliRunner, state_dir: Path, registered: str
    ) -> None:
        new_password = "an even better password"
        result = invoke(
            runner,
            state_dir,
            "account",
            "password",
            input=f"{new_password}\n{new_password}\n",
        )
        assert result.exit_code == 0, result.output
        invoke(runner, state_dir, "key", "lock")
        assert invoke(runner, state_dir, "key", "unlock", input=PASSWORD + "\n").exit_code == 1
        assert (
            invoke(runner, state_dir, "key", "unlock", input=new_password + "\n").exit_code
            == 0
        )


# ---------------------------------------------------------------------------
# device
# ---------------------------------------------------------------------------


class TestDevice:
    def test_paperkey_listed(self, runner: CliRunner, state_dir: Path, registered: str) -> None:
        result = invoke(runner, state_dir, "device", "paperkey")
        assert result.exit_code == 0, result.output
        assert "secret paper key phrase" in result.output

        listing = invoke(runner, state_dir, "device", "list")
        assert listing.exit_code == 0
        lines = [line for line in listing.output.splitlines() if line.strip()]
        assert lines[0] == registered
        assert lines[1].endswith("(paperkey)")

    def test_add_device(self, runner: CliRunner, state_dir: Path, registered: str) -> None:
        other = DeviceKey.generate().account_id
        result = invoke(runner, state_dir, "device", "add", other)
        assert result.exit_code == 0, result.output
        assert invoke(runner, state_dir, "id", "resolve", other).output.strip() == "0"

    def test_paperkey_without_account(self, runner: CliRunner, state_dir: Path) -> None:
        invoke(runner, state_dir, "key", "set", input=NEW_PASSWORD_INPUT)
        result = invoke(runner, state_dir, "device", "paperkey")
        assert result.exit_code == 1
        assert "Failed to find account" in result.output


# ---------------------------------------------------------------------------
# id
# ---------------------------------------------------------------------------


class TestId:
    def test_resolve_unknown(self, runner: CliRunner, state_dir: Path) -> None:
        result = invoke(runner, state_dir, "id", "resolve", "nonexistent-handle")
        assert result.exit_code == 1
        assert "No identity found" in result.output

    def test_prove_and_list(self, runner: CliRunner, state_dir: Path, registered: str) -> None:
        result = invoke(runner, state_dir, "id", "prove", "octocat@github")
        assert result.exit_code == 0, result.output
        assert "identity-proof.md" in result.output
        assert "I am octocat on github." in result.output

        listing = invoke(runner, state_dir, "id", "list")
        assert listing.exit_code == 0, listing.output
        assert "octocat@github" in listing.output
        assert "pending" in listing.output

    def test_list_without_proofs(
        self, runner: CliRunner, state_dir: Path, registered: str
    ) -> None:
        result = invoke(runner, state_dir, "id", "list", "alice")
        assert result.exit_code == 0
        assert "No proofs" in result.output

    def test_prove_requires_service_form(
        self, runner: CliRunner, state_dir: Path, registered: str
    ) -> None:
        result = invoke(runner, state_dir, "id", "prove", "octocat")
        assert result.exit_code == 1
        assert "username@service" in result.output

    def test_prove_unknown_service(
        self, runner: CliRunner, state_dir: Path, registered: str
    ) -> None:
        result = invoke(runner, state_dir, "id", "prove", "octocat@myspace")
        assert result.exit_code == 1
        assert "Unknown service" in result.output

    def test_revoke(self, runner: CliRunner, state_dir: Path, registered: str) -> None:
        invoke(runner, state_dir, "id", "prove", "octocat@github")
        result = invoke(runner, state_dir, "id", "revoke", "github")
        assert result.exit_code == 0
        assert "Revoked" in result.output
        result = invoke(runner, state_dir, "id", "revoke", "octocat@github")
        assert "Nothing to revoke" in result.output

    def test_resolve_service_when_github_unreachable(
        self, runner: CliRunner, state_dir: Path, registered: str
    ) -> None:
        result = invoke(runner, state_dir, "id", "resolve", "octocat@github")
        assert result.exit_code == 1
        assert "Error" in result.output
