"""
saslntlm NTLM Types

NTLM message structures per MS-NLMP and the login state machine's
states, context and events.

WARNING: NTLM has known vulnerabilities. Prefer a stronger mechanism
when the server offers one.
"""

from __future__ import annotations

from enum import Enum, Flag, auto
from typing import List, Optional, Tuple

import attrs
from attrs import field

from saslntlm.core.exceptions import ChallengeParseError


# =============================================================================
# LOGIN STATE MACHINE
# =============================================================================


class LoginState(Enum):
    """
    NTLM SASL login states.

    Only two: completion is tracked by LoginContext.authenticated,
    not by a third state.
    """

    INITIAL = auto()
    AWAITING_COMPLETION = auto()


@attrs.define(frozen=True, slots=True)
class LoginContext:
    """
    Per-attempt context carried by the login state machine.

    Holds only the completion flag; identity is re-derived on every leg.
    """

    authenticated: bool = False


@attrs.define(frozen=True, slots=True)
class NegotiateSent:
    """Event: NEGOTIATE_MESSAGE produced for the first leg."""


@attrs.define(frozen=True, slots=True)
class AuthenticateSent:
    """Event: AUTHENTICATE_MESSAGE produced for the second leg."""


# =============================================================================
# NTLM FLAGS
# =============================================================================


class NegotiateFlags(Flag):
    """NTLM negotiate flags per MS-NLMP 2.2.2.5."""

    NEGOTIATE_UNICODE = 0x00000001
    NEGOTIATE_OEM = 0x00000002
    REQUEST_TARGET = 0x00000004
    NEGOTIATE_SIGN = 0x00000010
    NEGOTIATE_SEAL = 0x00000020
    NEGOTIATE_DATAGRAM = 0x00000040
    NEGOTIATE_LM_KEY = 0x00000080
    NEGOTIATE_NTLM = 0x00000200
    NEGOTIATE_ANONYMOUS = 0x00000800
    NEGOTIATE_OEM_DOMAIN_SUPPLIED = 0x00001000
    NEGOTIATE_OEM_WORKSTATION_SUPPLIED = 0x00002000
    NEGOTIATE_ALWAYS_SIGN = 0x00008000
    TARGET_TYPE_DOMAIN = 0x00010000
    TARGET_TYPE_SERVER = 0x00020000
    NEGOTIATE_EXTENDED_SESSIONSECURITY = 0x00080000
    NEGOTIATE_IDENTIFY = 0x00100000
    REQUEST_NON_NT_SESSION_KEY = 0x00400000
    NEGOTIATE_TARGET_INFO = 0x00800000
    NEGOTIATE_VERSION = 0x02000000
    NEGOTIATE_128 = 0x20000000
    NEGOTIATE_KEY_EXCH = 0x40000000
    NEGOTIATE_56 = 0x80000000

    @classmethod
    def default_client_flags(cls) -> int:
        """
        Return default negotiate flags for a SASL client.

        Extended session security is not included; callers
        opt in per message.
        """
        return (
            cls.NEGOTIATE_UNICODE.value
            | cls.NEGOTIATE_OEM.value
            | cls.REQUEST_TARGET.value
            | cls.NEGOTIATE_NTLM.value
            | cls.NEGOTIATE_ALWAYS_SIGN.value
            | cls.NEGOTIATE_128.value
            | cls.NEGOTIATE_56.value
            | cls.NEGOTIATE_KEY_EXCH.value
        )


# =============================================================================
# AV PAIR STRUCTURES
# =============================================================================


class AVPairType(Enum):
    """AV_PAIR types per MS-NLMP 2.2.2.1."""

    MsvAvEOL = 0x0000
    MsvAvNbComputerName = 0x0001
    MsvAvNbDomainName = 0x0002
    MsvAvDnsComputerName = 0x0003
    MsvAvDnsDomainName = 0x0004
    MsvAvDnsTreeName = 0x0005
    MsvAvFlags = 0x0006
    MsvAvTimestamp = 0x0007
    MsvAvSingleHost = 0x0008
    MsvAvTargetName = 0x0009
    MsvAvChannelBindings = 0x000A


@attrs.define(frozen=True, slots=True)
class AVPair:
    """AV_PAIR structure per MS-NLMP 2.2.2.1."""

    av_id: int
    av_value: bytes

    @classmethod
    def from_bytes(cls, data: bytes) -> Tuple["AVPair", int]:
        """Parse one AV_PAIR; returns the pair and bytes consumed."""
        if len(data) < 4:
            raise ValueError("AV_PAIR too short")

        av_id = int.from_bytes(data[0:2], "little")
        av_len = int.from_bytes(data[2:4], "little")

        if len(data) < 4 + av_len:
            raise ValueError(f"AV_PAIR value truncated: need {av_len}, have {len(data) - 4}")

        return cls(av_id=av_id, av_value=data[4 : 4 + av_len]), 4 + av_len

    def to_bytes(self) -> bytes:
        """Serialize AV_PAIR to bytes."""
        return (
            self.av_id.to_bytes(2, "little")
            + len(self.av_value).to_bytes(2, "little")
            + self.av_value
        )


def parse_av_pairs(data: bytes) -> List[AVPair]:
    """Parse list of AV_PAIRs from target_info, stopping at MsvAvEOL."""
    pairs = []
    offset = 0

    while offset < len(data):
        pair, consumed = AVPair.from_bytes(data[offset:])
        pairs.append(pair)
        offset += consumed

        if pair.av_id == AVPairType.MsvAvEOL.value:
            break

    return pairs


def build_av_pairs(pairs: List[AVPair]) -> bytes:
    """Serialize list of AV_PAIRs, appending MsvAvEOL if missing."""
    result = b"".join(pair.to_bytes() for pair in pairs)

    if not pairs or pairs[-1].av_id != AVPairType.MsvAvEOL.value:
        result += AVPair(AVPairType.MsvAvEOL.value, b"").to_bytes()

    return result


# =============================================================================
# NTLM MESSAGES
# =============================================================================


NTLM_SIGNATURE = b"NTLMSSP\x00"


def _read_buffer(data: bytes, fields_at: int) -> bytes:
    """Read a (len, maxlen, offset) security buffer, checking its bounds."""
    length = int.from_bytes(data[fields_at : fields_at + 2], "little")
    offset = int.from_bytes(data[fields_at + 4 : fields_at + 8], "little")
    if offset + length > len(data):
        raise ValueError(
            f"buffer at {offset} with length {length} exceeds message"
        )
    return data[offset : offset + length]


@attrs.define(frozen=True, slots=True)
class NegotiateMessage:
    """
    NTLM NEGOTIATE_MESSAGE (Type 1).

    Client -> Server: Initiates NTLM authentication. Domain and
    workstation are sent in the OEM character set.
    """

    message_type: int = 1
    negotiate_flags: int = field(factory=NegotiateFlags.default_client_flags)
    domain_name: str = ""
    workstation_name: str = ""

    def to_bytes(self) -> bytes:
        """Serialize to wire format."""
        flags = self.negotiate_flags
        domain_bytes = self.domain_name.encode("utf-8")
        workstation_bytes = self.workstation_name.encode("utf-8")

        if domain_bytes:
            flags |= NegotiateFlags.NEGOTIATE_OEM_DOMAIN_SUPPLIED.value
        if workstation_bytes:
            flags |= NegotiateFlags.NEGOTIATE_OEM_WORKSTATION_SUPPLIED.value

        payload_offset = 32  # Fixed header size

        header = (
            NTLM_SIGNATURE
            + self.message_type.to_bytes(4, "little")
            + flags.to_bytes(4, "little")
        )

        domain_len = len(domain_bytes)
        header += domain_len.to_bytes(2, "little")  # DomainNameLen
        header += domain_len.to_bytes(2, "little")  # DomainNameMaxLen
        header += payload_offset.to_bytes(4, "little")  # DomainNameBufferOffset

        ws_len = len(workstation_bytes)
        header += ws_len.to_bytes(2, "little")  # WorkstationLen
        header += ws_len.to_bytes(2, "little")  # WorkstationMaxLen
        header += (payload_offset + domain_len).to_bytes(4, "little")  # WorkstationBufferOffset

        return header + domain_bytes + workstation_bytes

    @classmethod
    def from_bytes(cls, data: bytes) -> "NegotiateMessage":
        """Parse from wire format."""
        if len(data) < 32:
            raise ValueError("NEGOTIATE_MESSAGE too short")

        if data[:8] != NTLM_SIGNATURE:
            raise ValueError("Invalid NTLM signature")

        msg_type = int.from_bytes(data[8:12], "little")
        if msg_type != 1:
            raise ValueError(f"Expected type 1, got {msg_type}")

        return cls(
            negotiate_flags=int.from_bytes(data[12:16], "little"),
            domain_name=_read_buffer(data, 16).decode("utf-8"),
            workstation_name=_read_buffer(data, 24).decode("utf-8"),
        )


@attrs.define(frozen=True, slots=True)
class ChallengeMessage:
    """
    NTLM CHALLENGE_MESSAGE (Type 2).

    Server -> Client: Contains server challenge and target info.
    """

    message_type: int = 2
    target_name: str = ""
    negotiate_flags: int = 0
    server_challenge: bytes = field(factory=lambda: b"\x00" * 8)
    target_info: bytes = b""

    @property
    def is_unicode(self) -> bool:
        return bool(self.negotiate_flags & NegotiateFlags.NEGOTIATE_UNICODE.value)

    def get_av_pair(self, av_type: AVPairType) -> Optional[bytes]:
        """Return the value of the first AV_PAIR of the given type, if any."""
        for pair in parse_av_pairs(self.target_info):
            if pair.av_id == av_type.value:
                return pair.av_value
        return None

    def to_bytes(self) -> bytes:
        """Serialize to wire format."""
        header_size = 48

        encoding = "utf-16-le" if self.is_unicode else "utf-8"
        target_name_bytes = self.target_name.encode(encoding)
        target_info_offset = header_size + len(target_name_bytes)

        msg = NTLM_SIGNATURE
        msg += self.message_type.to_bytes(4, "little")

        msg += len(target_name_bytes).to_bytes(2, "little")  # Len
        msg += len(target_name_bytes).to_bytes(2, "little")  # MaxLen
        msg += header_size.to_bytes(4, "little")  # Offset

        msg += self.negotiate_flags.to_bytes(4, "little")
        msg += self.server_challenge[:8].ljust(8, b"\x00")
        msg += b"\x00" * 8  # Reserved

        msg += len(self.target_info).to_bytes(2, "little")  # Len
        msg += len(self.target_info).to_bytes(2, "little")  # MaxLen
        msg += target_info_offset.to_bytes(4, "little")  # Offset

        msg += target_name_bytes
        msg += self.target_info

        return msg

    @classmethod
    def from_bytes(cls, data: bytes) -> "ChallengeMessage":
        """
        Parse from wire format.

        Raises:
            ChallengeParseError: If the message is truncated, has the
                wrong signature or type, or a buffer lies outside it
        """
        try:
            return cls._parse(data)
        except (ValueError, UnicodeDecodeError) as e:
            raise ChallengeParseError(str(e), len(data)) from e

    @classmethod
    def _parse(cls, data: bytes) -> "ChallengeMessage":
        if len(data) < 32:
            raise ValueError("CHALLENGE_MESSAGE too short")

        if data[:8] != NTLM_SIGNATURE:
            raise ValueError("Invalid NTLM signature")

        msg_type = int.from_bytes(data[8:12], "little")
        if msg_type != 2:
            raise ValueError(f"Expected type 2, got {msg_type}")

        flags = int.from_bytes(data[20:24], "little")
        encoding = (
            "utf-16-le" if flags & NegotiateFlags.NEGOTIATE_UNICODE.value else "utf-8"
        )
        target_name = _read_buffer(data, 12).decode(encoding)

        # Target info fields are absent from the oldest servers' challenges
        if len(data) >= 48:
            target_info = _read_buffer(data, 40)
            parse_av_pairs(target_info)
        else:
            target_info = b""

        return cls(
            target_name=target_name,
            negotiate_flags=flags,
            server_challenge=data[24:32],
            target_info=target_info,
        )


@attrs.define(frozen=True, slots=True)
class AuthenticateMessage:
    """
    NTLM AUTHENTICATE_MESSAGE (Type 3).

    Client -> Server: Contains authentication response. Strings are
    UTF-16LE. No VERSION or MIC fields are sent.
    """

    message_type: int = 3
    lm_response: bytes = b""
    nt_response: bytes = b""
    domain_name: str = ""
    user_name: str = ""
    workstation_name: str = ""
    encrypted_session_key: bytes = field(default=b"", repr=False)
    negotiate_flags: int = 0

    def to_bytes(self) -> bytes:
        """Serialize to wire format."""
        domain_bytes = self.domain_name.encode("utf-16-le")
        user_bytes = self.user_name.encode("utf-16-le")
        workstation_bytes = self.workstation_name.encode("utf-16-le")

        buffers = [
            self.lm_response,
            self.nt_response,
            domain_bytes,
            user_bytes,
            workstation_bytes,
            self.encrypted_session_key,
        ]

        header_size = 64
        offset = header_size

        msg = NTLM_SIGNATURE
        msg += self.message_type.to_bytes(4, "little")

        for buf in buffers:
            msg += len(buf).to_bytes(2, "little")
            msg += len(buf).to_bytes(2, "little")
            msg += offset.to_bytes(4, "little")
            offset += len(buf)

        msg += self.negotiate_flags.to_bytes(4, "little")

        return msg + b"".join(buffers)

    @classmethod
    def from_bytes(cls, data: bytes) -> "AuthenticateMessage":
        """Parse from wire format."""
        if len(data) < 64:
            raise ValueError("AUTHENTICATE_MESSAGE too short")

        if data[:8] != NTLM_SIGNATURE:
            raise ValueError("Invalid NTLM signature")

        msg_type = int.from_bytes(data[8:12], "little")
        if msg_type != 3:
            raise ValueError(f"Expected type 3, got {msg_type}")

        return cls(
            lm_response=_read_buffer(data, 12),
            nt_response=_read_buffer(data, 20),
            domain_name=_read_buffer(data, 28).decode("utf-16-le"),
            user_name=_read_buffer(data, 36).decode("utf-16-le"),
            workstation_name=_read_buffer(data, 44).decode("utf-16-le"),
            encrypted_session_key=_read_buffer(data, 52),
            negotiate_flags=int.from_bytes(data[60:64], "little"),
        )
