"""Third-party services an identity can be proven on."""
from __future__ import annotations

from abc import ABC, abstractmethod
from enum import IntEnum
from typing import TYPE_CHECKING, Optional, Union

from identity_client.errors import UnknownServiceError

if TYPE_CHECKING:
    from identity_client.identity.claims import Claim


class Service(IntEnum):
    """Supported proof services. The integer value is the boundary tag."""

    GITHUB = 1

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: Union[int, str, "Service"]) -> "Service":
        """Resolve an integer tag or a case-insensitive name.

        Raises
        ------
        UnknownServiceError
            If *value* names no supported service.
        """
        if isinstance(value, Service):
            return value
        if isinstance(value, bool):
            raise UnknownServiceError(f"Unknown service {value!r}.")
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                raise UnknownServiceError(f"Unknown service {value!r}.") from None
        if isinstance(value, str):
            text = value.strip()
            if text.isdigit():
                return cls.parse(int(text))
            try:
                return cls[text.upper()]
            except KeyError:
                raise UnknownServiceError(f"Unknown service {value!r}.") from None
        raise UnknownServiceError(f"Unknown service {value!r}.")


class ServiceVerifier(ABC):
    """Publishes and checks proofs for one :class:`Service`.

    Verifiers talk to the service's public API. They never touch the ledger
    or content storage; the resolver combines their answers with the
    identity's claim chain.
    """

    service: Service

    @abstractmethod
    def proof_text(self, claim: "Claim", external_id: str) -> str:
        """Return the text the user publishes on the service."""

    @abstractmethod
    def instructions(self) -> str:
        """Return human-readable publishing instructions."""

    @abstractmethod
    def verify(self, external_id: str, signature: str) -> Optional[str]:
        """Return the public URL of a published proof carrying *signature*.

        Returns None when no matching proof is published or the service
        cannot be reached.
        """

    @abstractmethod
    def candidates(self, external_id: str) -> list[int]:
        """Return the uids named by proofs published by *external_id*.

        Raises
        ------
        StorageError
            If the service cannot be queried.
        """


__all__ = ["Service", "ServiceVerifier"]
