"""ClientConfig — runtime settings for an identity client instance.

Settings can be passed explicitly or read from ``IDENTITY_CLIENT_*``
environment variables via :meth:`ClientConfig.from_env`.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "IDENTITY_CLIENT_"

_TRUE_VALUES = {"1", "true", "yes", "on"}


class ClientConfig(BaseModel):
    """Configuration for :class:`~identity_client.client.IdentityClient`.

    Parameters
    ----------
    min_password_length:
        Minimum number of characters accepted for a keystore password.
    kdf_cost:
        Scrypt work factor exponent (``n = 2**kdf_cost``) for password keys.
    allow_seed_uri:
        Accept seed URIs in ``set_key``. Seed URIs produce well-known keys
        and must only be enabled for tests and local development.
    max_workers:
        Size of the dispatcher's worker pool.
    cache_identities:
        Keep complete identity records in the resolver's read-through cache.
    audit_log:
        Append key lifecycle events to ``<base_path>/audit.jsonl``.
    ledger_path:
        File used by the file-backed reference ledger. Defaults to
        ``<base_path>/ledger.json`` when the client builds its own backends.
    storage_path:
        Directory used by the file-backed content store. Defaults to
        ``<base_path>/db``.
    github_api_url:
        Base URL of the Github REST API used by the proof verifier.
    request_timeout:
        Timeout in seconds for outbound HTTP requests.
    """

    min_password_length: int = 8
    kdf_cost: int = Field(default=14, ge=1, le=20)
    allow_seed_uri: bool = False
    max_workers: int = 8
    cache_identities: bool = True
    audit_log: bool = False
    ledger_path: Optional[Path] = None
    storage_path: Optional[Path] = None
    github_api_url: str = "https://api.github.com"
    request_timeout: float = Field(default=10.0, gt=0)

    @field_validator("min_password_length")
    @classmethod
    def validate_min_password_length(cls, value: int) -> int:
        if value < 1:
            raise ValueError("min_password_length must be at least 1.")
        return value

    @field_validator("max_workers")
    @classmethod
    def validate_max_workers(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_workers must be at least 1.")
        return value

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "ClientConfig":
        """Build a config from ``IDENTITY_CLIENT_*`` environment variables.

        Unset variables keep their defaults. Boolean variables accept
        ``1/true/yes/on`` (case-insensitive) as true.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for name, field_info in cls.model_fields.items():
            raw = env.get(ENV_PREFIX + name.upper())
            if raw is None or raw.strip() == "":
                continue
            if field_info.annotation is bool:
                values[name] = raw.strip().lower() in _TRUE_VALUES
            else:
                values[name] = raw.strip()
        return cls(**values)


__all__ = ["ClientConfig", "ENV_PREFIX"]
