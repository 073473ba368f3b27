"""
saslntlm NTLM Message Codec

Byte-level construction and parsing of the three NTLM handshake
messages. The mechanism depends only on the NTLMMessageCodec protocol;
DefaultNTLMCodec is the NTLMv2 implementation used unless another
codec is injected.
"""

from __future__ import annotations

import secrets
import struct
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

import attrs
import structlog

from saslntlm.core.crypto import (
    compute_lmv2_response,
    compute_nt_hash,
    compute_ntlmv2_hash,
    compute_ntlmv2_response,
    encrypt_rc4,
)
from saslntlm.core.exceptions import ChallengeParseError, CredentialError
from saslntlm.ntlm.types import (
    AVPairType,
    AuthenticateMessage,
    ChallengeMessage,
    NegotiateFlags,
    NegotiateMessage,
)

logger = structlog.get_logger()

# 100-ns intervals between 1601-01-01 and 1970-01-01
FILETIME_EPOCH_DIFF = 116444736000000000


class NTLMMessageCodec(Protocol):
    """Encoder/decoder for NTLM handshake messages."""

    def encode_negotiate(self, domain: str, extended_security: bool) -> bytes:
        ...

    def decode_challenge(self, data: bytes, offset: int, length: int) -> Any:
        """
        Decode a CHALLENGE_MESSAGE from ``data[offset:offset + length]``.

        The result is opaque to callers and only passed back to
        encode_authenticate.

        Raises:
            ChallengeParseError: If the region is not a valid challenge
        """
        ...

    def encode_authenticate(
        self, challenge: Any, user_name: str, password: str, domain: str
    ) -> bytes:
        """
        Build the AUTHENTICATE_MESSAGE answering ``challenge``.

        Raises:
            CredentialError: If an identity field cannot be encoded
        """
        ...


def filetime_now() -> bytes:
    """Current time as a little-endian Windows FILETIME."""
    unix_100ns = int(datetime.now(timezone.utc).timestamp() * 10000000)
    return struct.pack("<Q", unix_100ns + FILETIME_EPOCH_DIFF)


def _require_encodable(encoding: str, **fields: str) -> None:
    """Raise CredentialError if any identity field cannot be put on the wire."""
    for name, value in fields.items():
        try:
            value.encode(encoding)
        except UnicodeEncodeError as e:
            raise CredentialError(
                f"{name} cannot be encoded as {encoding}: {e.reason}"
            ) from e


@attrs.define
class DefaultNTLMCodec:
    """
    NTLMv2 message codec.

    Attributes:
        workstation_name: Sent in NEGOTIATE and AUTHENTICATE when non-empty
        nonce_factory: Source of the client challenge and the exported
            session key; fixed output makes encoding deterministic
        clock: FILETIME source when the challenge carries no MsvAvTimestamp

    Example:
        codec = DefaultNTLMCodec(workstation_name="WS01")
        negotiate = codec.encode_negotiate("CORP", extended_security=True)
        challenge = codec.decode_challenge(server_token, 0, len(server_token))
        authenticate = codec.encode_authenticate(challenge, "bob", "hunter2", "CORP")
    """

    workstation_name: str = ""
    nonce_factory: Callable[[int], bytes] = secrets.token_bytes
    clock: Callable[[], bytes] = filetime_now
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def encode_negotiate(self, domain: str, extended_security: bool) -> bytes:
        """Build and serialize a NEGOTIATE_MESSAGE."""
        _require_encodable("utf-8", domain=domain, workstation_name=self.workstation_name)

        flags = NegotiateFlags.default_client_flags()
        if extended_security:
            flags |= NegotiateFlags.NEGOTIATE_EXTENDED_SESSIONSECURITY.value

        message = NegotiateMessage(
            negotiate_flags=flags,
            domain_name=domain,
            workstation_name=self.workstation_name,
        )

        self._logger.debug(
            "encoded_negotiate_message",
            flags=hex(flags),
            domain=domain,
        )

        return message.to_bytes()

    def decode_challenge(self, data: bytes, offset: int, length: int) -> ChallengeMessage:
        """Parse a CHALLENGE_MESSAGE from a region of ``data``."""
        if offset < 0 or length < 0 or offset + length > len(data):
            raise ChallengeParseError(
                f"region [{offset}:{offset + length}] outside {len(data)}-byte buffer",
                length,
            )

        challenge = ChallengeMessage.from_bytes(bytes(data[offset : offset + length]))

        self._logger.debug(
            "decoded_challenge_message",
            target_name=challenge.target_name,
            flags=hex(challenge.negotiate_flags),
            target_info_len=len(challenge.target_info),
        )

        return challenge

    def encode_authenticate(
        self,
        challenge: ChallengeMessage,
        user_name: str,
        password: str,
        domain: str,
    ) -> bytes:
        """
        Build and serialize an NTLMv2 AUTHENTICATE_MESSAGE.

        The domain falls back to the challenge's target name when empty.
        Only flags offered by both sides are echoed back.
        """
        domain = domain or challenge.target_name
        _require_encodable(
            "utf-16-le",
            user_name=user_name,
            password=password,
            domain=domain,
            workstation_name=self.workstation_name,
        )

        flags = challenge.negotiate_flags & (
            NegotiateFlags.default_client_flags()
            | NegotiateFlags.NEGOTIATE_EXTENDED_SESSIONSECURITY.value
            | NegotiateFlags.NEGOTIATE_TARGET_INFO.value
        )

        ntlmv2_hash = compute_ntlmv2_hash(compute_nt_hash(password), user_name, domain)
        client_challenge = self.nonce_factory(8)

        timestamp = challenge.get_av_pair(AVPairType.MsvAvTimestamp)
        if timestamp is None:
            timestamp = self.clock()

        nt_response, session_base_key = compute_ntlmv2_response(
            ntlmv2_hash=ntlmv2_hash,
            server_challenge=challenge.server_challenge,
            client_challenge=client_challenge,
            timestamp=timestamp,
            target_info=challenge.target_info,
        )
        lm_response = compute_lmv2_response(
            ntlmv2_hash, challenge.server_challenge, client_challenge
        )

        if flags & NegotiateFlags.NEGOTIATE_KEY_EXCH.value:
            exported_session_key = self.nonce_factory(16)
            encrypted_session_key = encrypt_rc4(session_base_key, exported_session_key)
        else:
            encrypted_session_key = b""

        message = AuthenticateMessage(
            lm_response=lm_response,
            nt_response=nt_response,
            domain_name=domain,
            user_name=user_name,
            workstation_name=self.workstation_name,
            encrypted_session_key=encrypted_session_key,
            negotiate_flags=flags,
        )

        self._logger.debug(
            "encoded_authenticate_message",
            user_name=user_name,
            domain=domain,
            flags=hex(flags),
            key_exchange=bool(encrypted_session_key),
        )

        return message.to_bytes()
