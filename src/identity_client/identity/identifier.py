"""Identifier — the forms a host can use to name an identity.

=============  ==========================  ===============================
Form           Example                     Resolved through
=============  ==========================  ===============================
uid            ``42``                      ledger keys (existence check)
account id     ``5GrwvaEF5zXb26Fz...``     ``Ledger.uid_lookup``
service        ``octocat@github``          service verifier + identity
handle         ``alice``                   ``Ledger.name_lookup``
=============  ==========================  ===============================
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from identity_client.errors import BadCstrError, BadUidError
from identity_client.identity.services import Service
from identity_client.keystore import crypto


class IdentifierKind(str, Enum):
    UID = "uid"
    ACCOUNT = "account"
    SERVICE = "service"
    HANDLE = "handle"


def parse_uid(value: object) -> int:
    """Parse a uid given as a non-negative decimal string or integer.

    Raises
    ------
    BadUidError
        If *value* is not a non-negative decimal integer.
    """
    if isinstance(value, bool):
        raise BadUidError(f"Invalid uid {value!r}.")
    if isinstance(value, int):
        if value < 0:
            raise BadUidError(f"Invalid uid {value!r}.")
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.isascii() and text.isdigit():
            return int(text)
    raise BadUidError(f"Invalid uid {value!r}.")


@dataclass(frozen=True)
class Identifier:
    kind: IdentifierKind
    value: str
    service: Optional[Service] = None

    @property
    def uid(self) -> int:
        return parse_uid(self.value)

    def __str__(self) -> str:
        if self.service is not None:
            return f"{self.value}@{self.service.label}"
        return self.value

    @classmethod
    def parse(cls, text: str) -> "Identifier":
        """Classify *text*.

        Raises
        ------
        BadCstrError
            If *text* is empty or an ``@`` form has an empty side.
        UnknownServiceError
            If the part after ``@`` names no supported service.
        """
        value = text.strip()
        if not value:
            raise BadCstrError("Identifier must not be empty.")
        if value.isascii() and value.isdigit():
            return cls(IdentifierKind.UID, value)
        if "@" in value:
            name, _, service = value.rpartition("@")
            if not name or not service:
                raise BadCstrError(
                    "Expected a service description of the form username@service."
                )
            return cls(IdentifierKind.SERVICE, name, Service.parse(service))
        if crypto.is_account_id(value):
            return cls(IdentifierKind.ACCOUNT, value)
        return cls(IdentifierKind.HANDLE, value)


__all__ = ["Identifier", "IdentifierKind", "parse_uid"]
