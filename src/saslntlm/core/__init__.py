"""
saslntlm Core Module

Foundational pieces shared by mechanisms.

Components:
- types: Credential and the CredentialLookup capability
- state_machine: Table-driven state machine with invariant checking
- crypto: NTLM hashing and response computation
- exceptions: Custom exception types
"""

from saslntlm.core.types import Credential, CredentialLookup
from saslntlm.core.state_machine import StateMachineBase, Transition
from saslntlm.core.exceptions import (
    SaslError,
    AuthenticationError,
    CredentialError,
    ProtocolError,
    ChallengeParseError,
    CryptoError,
    StateError,
    InvariantViolation,
)

__all__ = [
    # Types
    "Credential",
    "CredentialLookup",
    # State Machine
    "StateMachineBase",
    "Transition",
    # Exceptions
    "SaslError",
    "AuthenticationError",
    "CredentialError",
    "ProtocolError",
    "ChallengeParseError",
    "CryptoError",
    "StateError",
    "InvariantViolation",
]
