"""
saslntlm Exception Types

Exceptions raised by SASL mechanisms and the NTLM message codec.
"""

from typing import Optional


class SaslError(Exception):
    """Base exception for all saslntlm errors."""

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class AuthenticationError(SaslError):
    """
    Authentication cannot proceed.

    Raised when the credentials needed for the exchange are missing
    or unusable.
    """

    pass


class CredentialError(AuthenticationError):
    """
    No usable credential.

    The credential lookup returned nothing, or returned a credential
    without a user name. An absent password is not an error.
    """

    def __init__(self, message: str = "No credentials available") -> None:
        super().__init__(message)


class ProtocolError(SaslError):
    """
    Protocol-level error.

    This indicates an error in the token exchange itself,
    such as malformed messages or undecodable tokens.
    """

    pass


class ChallengeParseError(ProtocolError):
    """
    The server's CHALLENGE_MESSAGE could not be decoded.

    Attributes:
        length: Length of the token region that failed to parse
    """

    def __init__(self, reason: str, length: int) -> None:
        super().__init__(f"Invalid NTLM challenge ({length} bytes): {reason}")
        self.reason = reason
        self.length = length


class CryptoError(SaslError):
    """
    Cryptographic operation failed.

    Typically a primitive NTLM needs (MD4) is missing from the
    platform hash library.
    """

    pass


class StateError(SaslError):
    """
    Invalid operation for the current mechanism state.

    Raised when a mechanism is driven after it has already completed.
    The instance must be reset before it can be used again.
    """

    pass


class InvariantViolation(SaslError):
    """
    Internal invariant was violated.

    The mechanism reached a state that no legal sequence of calls
    produces. The instance is corrupt and must not be reused.
    """

    pass
