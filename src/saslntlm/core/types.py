"""
saslntlm Core Types

Credential records and the lookup capability mechanisms consume.

Design Principles:
- Immutable: credentials are frozen attrs records
- Fetched on demand: mechanisms ask the lookup on every leg and keep nothing
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

import attrs
from attrs import field, validators


# =============================================================================
# CREDENTIALS
# =============================================================================


@attrs.define(frozen=True, slots=True)
class Credential:
    """
    User credential for a SASL exchange.

    The user name may be a combined identity such as ``CORP\\bob`` or
    ``CORP/bob`` when no domain is given separately.

    A Credential is also a CredentialLookup that answers every request
    with itself, so a fixed credential can be handed straight to a
    mechanism.

    Attributes:
        user_name: User name or combined domain/user identity
        password: Secret (None is treated as empty)
        domain: Optional domain; overrides any domain in user_name
    """

    user_name: Optional[str] = field(
        default=None,
        validator=validators.optional(validators.instance_of(str)),
    )
    password: Optional[str] = field(
        default=None,
        repr=False,
        validator=validators.optional(validators.instance_of(str)),
    )
    domain: Optional[str] = field(
        default=None,
        validator=validators.optional(validators.instance_of(str)),
    )

    def get_credential(self, uri: str, mechanism: str) -> Credential:  # noqa: ARG002
        """Return this credential for any uri and mechanism."""
        return self


@runtime_checkable
class CredentialLookup(Protocol):
    """
    Capability that resolves credentials for a service.

    Implementations must be cheap to call repeatedly and may return a
    different credential on each call.
    """

    def get_credential(self, uri: str, mechanism: str) -> Optional[Credential]:
        """
        Resolve the credential to use.

        Args:
            uri: Target service URI
            mechanism: SASL mechanism name requesting the credential

        Returns:
            Credential, or None if nothing is available
        """
        ...
