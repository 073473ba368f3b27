"""
saslntlm SASL Mechanism Base

Client-side contract shared by SASL mechanisms: token-in/token-out
challenge processing, completion flag and reset.
"""

from __future__ import annotations

import base64
import binascii
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import attrs

from saslntlm.core.exceptions import ProtocolError
from saslntlm.core.types import CredentialLookup


@attrs.define
class SaslMechanism(ABC):
    """
    A client SASL mechanism bound to one service and one credential source.

    A session controller calls challenge() with each server token and
    sends back the returned bytes until is_authenticated is True.
    Instances are single-threaded; reuse after completion or an aborted
    exchange requires reset().

    Attributes:
        uri: Target service URI, passed to the credential lookup
        credentials: Credential lookup consulted by the mechanism
    """

    uri: str = attrs.field(on_setattr=attrs.setters.frozen)
    credentials: CredentialLookup = attrs.field(on_setattr=attrs.setters.frozen)

    @property
    @abstractmethod
    def mechanism_name(self) -> str:
        """SASL name of the mechanism (e.g. "NTLM")."""
        ...

    @property
    @abstractmethod
    def is_authenticated(self) -> bool:
        """True once the final client response has been produced."""
        ...

    @abstractmethod
    def _challenge(self, token: bytes, offset: int, length: int) -> bytes:
        """Produce the response to ``token[offset:offset + length]``."""
        ...

    @abstractmethod
    def reset(self) -> None:
        """Return the mechanism to its initial state."""
        ...

    def challenge(
        self,
        token: Optional[bytes] = None,
        offset: int = 0,
        length: Optional[int] = None,
    ) -> bytes:
        """
        Process the server's token and return the next client response.

        The region is passed through unchecked; mechanisms decide how an
        out-of-range region is reported (see region_error).

        Args:
            token: Buffer holding the server's token (None means empty)
            offset: Start of the token within the buffer
            length: Length of the token (default: rest of the buffer)

        Returns:
            Client response bytes

        Raises:
            ValueError: If offset/length fall outside the buffer where
                the mechanism treats that as an argument fault
            SaslError: Mechanism-specific failures
        """
        if token is None:
            token = b""
        if length is None:
            length = max(len(token) - offset, 0)

        return self._challenge(token, offset, length)

    @staticmethod
    def region_error(token: bytes, offset: int, length: int) -> Optional[str]:
        """Describe why ``token[offset:offset + length]`` is out of range, or None."""
        if offset < 0 or offset > len(token):
            return f"offset {offset} outside {len(token)}-byte token"
        if length < 0 or offset + length > len(token):
            return f"length {length} at offset {offset} exceeds {len(token)}-byte token"
        return None

    def challenge_base64(self, token: str) -> str:
        """
        Base64 variant of challenge() for text protocols (IMAP, SMTP, POP3).

        Raises:
            ProtocolError: If the token is not valid base64
        """
        try:
            decoded = base64.b64decode(token.strip(), validate=True)
        except (binascii.Error, ValueError) as e:
            raise ProtocolError(f"Invalid base64 SASL token: {e}") from e

        return base64.b64encode(self.challenge(decoded)).decode("ascii")

    def get_trace(self) -> List[Dict[str, Any]]:
        """Transition history of the current attempt; empty by default."""
        return []
