"""
saslntlm NTLM Module

NTLM SASL mechanism (MS-NLMP messages carried as SASL tokens).

Components:
- types: NTLM message structures and login states
- identity: Domain/user splitting of combined identities
- codec: Message codec contract and the NTLMv2 default codec
- mechanism: The two-leg login state machine

WARNING: NTLM has inherent security weaknesses (pass-the-hash, relay,
no mutual authentication). Use it only where nothing stronger is offered.
"""

from saslntlm.ntlm.types import (
    LoginState,
    LoginContext,
    NegotiateFlags,
    NegotiateMessage,
    ChallengeMessage,
    AuthenticateMessage,
    AVPair,
    AVPairType,
)
from saslntlm.ntlm.identity import split_identity
from saslntlm.ntlm.codec import DefaultNTLMCodec, NTLMMessageCodec
from saslntlm.ntlm.mechanism import (
    MECHANISM_NAME,
    NTLMLoginStateMachine,
    NTLMMechanism,
    create_ntlm_mechanism,
)

__all__ = [
    # State machine
    "LoginState",
    "LoginContext",
    "NTLMLoginStateMachine",
    # Flags
    "NegotiateFlags",
    # Messages
    "NegotiateMessage",
    "ChallengeMessage",
    "AuthenticateMessage",
    # AV Pairs
    "AVPair",
    "AVPairType",
    # Identity
    "split_identity",
    # Codec
    "NTLMMessageCodec",
    "DefaultNTLMCodec",
    # Mechanism
    "MECHANISM_NAME",
    "NTLMMechanism",
    "create_ntlm_mechanism",
]
