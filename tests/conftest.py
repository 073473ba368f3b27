"""
Pytest configuration and shared fixtures for saslntlm tests.
"""

import hashlib
import struct
from typing import Any, Callable, List, Optional, Tuple

import pytest

from saslntlm.core.exceptions import ChallengeParseError
from saslntlm.core.types import Credential
from saslntlm.ntlm.codec import DefaultNTLMCodec
from saslntlm.ntlm.mechanism import NTLMMechanism
from saslntlm.ntlm.types import (
    AVPair,
    AVPairType,
    ChallengeMessage,
    NegotiateFlags,
    build_av_pairs,
)


TEST_URI = "imap://mail.example.com"

SERVER_CHALLENGE = b"\x01\x02\x03\x04\x05\x06\x07\x08"

# 2024-01-01T00:00:00Z as FILETIME
SERVER_TIMESTAMP = struct.pack("<Q", 133485408000000000)


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================


class RecordingCodec:
    """
    Codec double that returns fixed bytes and records every call.

    decode_challenge accepts any region of at least two bytes.
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[Any, ...]] = []

    def encode_negotiate(self, domain: str, extended_security: bool) -> bytes:
        self.calls.append(("encode_negotiate", domain, extended_security))
        return b"NEGOTIATE:" + domain.encode("utf-8")

    def decode_challenge(self, data: bytes, offset: int, length: int) -> Any:
        self.calls.append(("decode_challenge", bytes(data[offset : offset + length])))
        if length < 2:
            raise ChallengeParseError("too short", length)
        return ("challenge", bytes(data[offset : offset + length]))

    def encode_authenticate(
        self, challenge: Any, user_name: str, password: str, domain: str
    ) -> bytes:
        self.calls.append(("encode_authenticate", challenge, user_name, password, domain))
        return b"AUTHENTICATE:" + f"{domain}|{user_name}|{password}".encode("utf-8")

    @property
    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]


class CountingLookup:
    """Credential lookup that serves a queue of credentials and counts calls."""

    def __init__(self, *credentials: Optional[Credential]) -> None:
        self._credentials = list(credentials)
        self.requests: List[Tuple[str, str]] = []

    def get_credential(self, uri: str, mechanism: str) -> Optional[Credential]:
        self.requests.append((uri, mechanism))
        if len(self._credentials) > 1:
            return self._credentials.pop(0)
        return self._credentials[0]


# =============================================================================
# CREDENTIAL FIXTURES
# =============================================================================


@pytest.fixture
def bob_credential() -> Credential:
    """Credential with a combined CORP\\bob identity."""
    return Credential(user_name="CORP\\bob", password="hunter2")


@pytest.fixture
def split_credential() -> Credential:
    """Credential with the domain supplied separately."""
    return Credential(user_name="bob", password="hunter2", domain="CORP")


# =============================================================================
# CODEC FIXTURES
# =============================================================================


@pytest.fixture
def recording_codec() -> RecordingCodec:
    return RecordingCodec()


@pytest.fixture
def lookup_factory() -> Callable[..., CountingLookup]:
    """Factory for CountingLookup instances."""
    return CountingLookup


@pytest.fixture
def deterministic_codec() -> DefaultNTLMCodec:
    """Default codec with fixed nonces and clock."""
    return DefaultNTLMCodec(
        workstation_name="WS01",
        nonce_factory=lambda n: b"\xaa" * n,
        clock=lambda: b"\x00" * 8,
    )


@pytest.fixture
def challenge_message() -> ChallengeMessage:
    """Typical server CHALLENGE_MESSAGE with target info."""
    target_info = build_av_pairs([
        AVPair(AVPairType.MsvAvNbDomainName.value, "CORP".encode("utf-16-le")),
        AVPair(AVPairType.MsvAvDnsDomainName.value, "corp.example.com".encode("utf-16-le")),
        AVPair(AVPairType.MsvAvTimestamp.value, SERVER_TIMESTAMP),
    ])
    return ChallengeMessage(
        target_name="CORP",
        negotiate_flags=(
            NegotiateFlags.NEGOTIATE_UNICODE.value
            | NegotiateFlags.REQUEST_TARGET.value
            | NegotiateFlags.NEGOTIATE_NTLM.value
            | NegotiateFlags.NEGOTIATE_EXTENDED_SESSIONSECURITY.value
            | NegotiateFlags.NEGOTIATE_TARGET_INFO.value
            | NegotiateFlags.TARGET_TYPE_DOMAIN.value
        ),
        server_challenge=SERVER_CHALLENGE,
        target_info=target_info,
    )


@pytest.fixture
def challenge_bytes(challenge_message: ChallengeMessage) -> bytes:
    return challenge_message.to_bytes()


# =============================================================================
# MECHANISM FIXTURES
# =============================================================================


@pytest.fixture
def make_mechanism() -> Callable[..., NTLMMechanism]:
    """Factory for fresh mechanisms backed by a RecordingCodec."""

    def _make(credentials: Any, codec: Any = None) -> NTLMMechanism:
        return NTLMMechanism(
            uri=TEST_URI,
            credentials=credentials,
            codec=codec if codec is not None else RecordingCodec(),
        )

    return _make


@pytest.fixture
def mechanism(bob_credential: Credential, recording_codec: RecordingCodec) -> NTLMMechanism:
    """Fresh mechanism using the recording codec."""
    return NTLMMechanism(uri=TEST_URI, credentials=bob_credential, codec=recording_codec)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def md4_available() -> bool:
    """Check if the platform hash library provides MD4."""
    try:
        hashlib.new("md4")
        return True
    except ValueError:
        return False


@pytest.fixture
def md4() -> None:
    """Skip tests that compute real NT hashes where MD4 is missing."""
    if not md4_available():
        pytest.skip("MD4 not available")

