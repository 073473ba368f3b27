"""
saslntlm - NTLM SASL client mechanism

Client side of the NTLM SASL exchange (NEGOTIATE -> CHALLENGE ->
AUTHENTICATE) for protocols that carry SASL tokens, such as IMAP,
SMTP and POP3.

Example Usage:
    from saslntlm import Credential, create_ntlm_mechanism

    mechanism = create_ntlm_mechanism(
        uri="imap://mail.example.com",
        credentials=Credential("CORP\\\\bob", "hunter2"),
    )

    negotiate = mechanism.challenge(b"")
    # ... send negotiate, receive the server's challenge ...
    authenticate = mechanism.challenge(challenge_bytes)
    assert mechanism.is_authenticated
"""

from saslntlm.core.types import Credential, CredentialLookup
from saslntlm.core.exceptions import (
    SaslError,
    AuthenticationError,
    CredentialError,
    ProtocolError,
    ChallengeParseError,
    StateError,
    InvariantViolation,
)
from saslntlm.ntlm.mechanism import NTLMMechanism, create_ntlm_mechanism
from saslntlm.sasl.mechanism import SaslMechanism
from saslntlm.sasl.exchange import run_exchange

__version__ = "0.1.0"

__all__ = [
    # Main API
    "NTLMMechanism",
    "create_ntlm_mechanism",
    "SaslMechanism",
    "run_exchange",
    # Types
    "Credential",
    "CredentialLookup",
    # Exceptions
    "SaslError",
    "AuthenticationError",
    "CredentialError",
    "ProtocolError",
    "ChallengeParseError",
    "StateError",
    "InvariantViolation",
    # Metadata
    "__version__",
]
