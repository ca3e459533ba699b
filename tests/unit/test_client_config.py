"""Tests for identity_client.config and identity_client.errors."""
from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from identity_client.config import ClientConfig
from identity_client.errors import (
    BadUidError,
    ChainTimeoutError,
    ChannelBusyError,
    ErrorCode,
    NoAccountError,
    StorageError,
    StorageTimeoutError,
    UnknownServiceError,
    error_code_for,
)


# ---------------------------------------------------------------------------
# ClientConfig
# ---------------------------------------------------------------------------


class TestClientConfig:
    def test_defaults(self) -> None:
        config = ClientConfig()
        assert config.min_password_length == 8
        assert config.allow_seed_uri is False
        assert config.kdf_cost == 14
        assert config.ledger_path is None

    def test_min_password_length_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ClientConfig(min_password_length=0)

    def test_max_workers_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ClientConfig(max_workers=0)

    def test_kdf_cost_bounds(self) -> None:
        with pytest.raises(ValidationError):
            ClientConfig(kdf_cost=0)
        with pytest.raises(ValidationError):
            ClientConfig(kdf_cost=30)


class TestFromEnv:
    def test_empty_environment_gives_defaults(self) -> None:
        assert ClientConfig.from_env({}) == ClientConfig()

    def test_reads_prefixed_variables(self) -> None:
        config = ClientConfig.from_env(
            {
                "IDENTITY_CLIENT_KDF_COST": "5",
                "IDENTITY_CLIENT_MIN_PASSWORD_LENGTH": "12",
                "IDENTITY_CLIENT_LEDGER_PATH": "/tmp/ledger.json",
                "IDENTITY_CLIENT_GITHUB_API_URL": "http://localhost:9000",
            }
        )
        assert config.kdf_cost == 5
        assert config.min_password_length == 12
        assert config.ledger_path == Path("/tmp/ledger.json")
        assert config.github_api_url == "http://localhost:9000"

    @pytest.mark.parametrize("raw,expected", [("1", True), ("YES", True), ("off", False)])
    def test_boolean_values(self, raw: str, expected: bool) -> None:
        config = ClientConfig.from_env({"IDENTITY_CLIENT_ALLOW_SEED_URI": raw})
        assert config.allow_seed_uri is expected

    def test_blank_values_are_ignored(self) -> None:
        config = ClientConfig.from_env({"IDENTITY_CLIENT_KDF_COST": "  "})
        assert config.kdf_cost == 14

    def test_invalid_value_raises(self) -> None:
        with pytest.raises(ValidationError):
            ClientConfig.from_env({"IDENTITY_CLIENT_MAX_WORKERS": "many"})


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestErrorCodes:
    def test_codes_are_unique(self) -> None:
        values = [code.value for code in ErrorCode]
        assert len(values) == len(set(values))

    def test_default_message(self) -> None:
        assert UnknownServiceError().message == "Unknown service."

    def test_custom_message(self) -> None:
        assert StorageError("gist api down").message == "gist api down"

    def test_subclasses_share_codes(self) -> None:
        assert StorageTimeoutError().code is ErrorCode.STORAGE_ERROR
        assert ChainTimeoutError().code is ErrorCode.CHAIN_ERROR
        assert NoAccountError().code is ErrorCode.BAD_UID
        assert isinstance(NoAccountError(), BadUidError)

    def test_error_code_for_known(self) -> None:
        assert error_code_for(StorageError()) is ErrorCode.STORAGE_ERROR

    def test_error_code_for_unclassified(self) -> None:
        assert error_code_for(RuntimeError("boom")) is ErrorCode.UNKNOWN
        assert error_code_for(KeyError("x")) is ErrorCode.UNKNOWN

    def test_channel_busy_mentions_port(self) -> None:
        exc = ChannelBusyError(7)
        assert exc.port == 7
        assert "7" in str(exc)
