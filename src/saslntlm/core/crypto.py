"""
saslntlm Cryptographic Operations

NTLM response computation on top of hashlib/hmac and the cryptography
library. No custom cryptographic primitives.

WARNING: MD4, HMAC-MD5 and RC4 are only used because NTLM requires them.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Tuple

from cryptography.hazmat.decrepit.ciphers.algorithms import ARC4
from cryptography.hazmat.primitives.ciphers import Cipher

from saslntlm.core.exceptions import CryptoError

# =============================================================================
# PRIMITIVES
# =============================================================================


def md4_hash(data: bytes) -> bytes:
    """
    Compute MD4 hash (for NTLM).

    Raises:
        CryptoError: If the platform hash library does not provide MD4
    """
    try:
        h = hashlib.new("md4")
    except ValueError as e:
        # FIPS builds and OpenSSL 3 without the legacy provider
        raise CryptoError("MD4 not available - required for NTLM") from e
    h.update(data)
    return h.digest()


def hmac_md5(key: bytes, data: bytes) -> bytes:
    """Compute a 16-byte HMAC-MD5 tag."""
    return hmac.new(key, data, hashlib.md5).digest()


def encrypt_rc4(key: bytes, plaintext: bytes) -> bytes:
    """
    Encrypt using RC4.

    Used only to wrap the exported session key when the server grants
    NEGOTIATE_KEY_EXCH.
    """
    encryptor = Cipher(ARC4(key), mode=None).encryptor()
    return encryptor.update(plaintext) + encryptor.finalize()


# =============================================================================
# NTLM-SPECIFIC FUNCTIONS
# =============================================================================


def compute_nt_hash(password: str) -> bytes:
    """
    Compute NT hash from password.

    NT Hash = MD4(UTF-16LE(password))
    """
    return md4_hash(password.encode("utf-16-le"))


def compute_ntlmv2_hash(nt_hash: bytes, username: str, domain: str) -> bytes:
    """NTLMv2Hash = HMAC-MD5(NT Hash, UPPERCASE(Username) + Domain)."""
    return hmac_md5(nt_hash, (username.upper() + domain).encode("utf-16-le"))


def compute_ntlmv2_response(
    ntlmv2_hash: bytes,
    server_challenge: bytes,
    client_challenge: bytes,
    timestamp: bytes,
    target_info: bytes,
) -> Tuple[bytes, bytes]:
    """
    Compute NTLMv2 response.

    Args:
        ntlmv2_hash: Output of compute_ntlmv2_hash
        server_challenge: 8-byte server challenge
        client_challenge: 8-byte client challenge
        timestamp: 8-byte Windows FILETIME
        target_info: AV_PAIR structures from server

    Returns:
        Tuple of (NTLMv2 response, session base key)
    """
    client_blob = (
        b"\x01\x01"  # Resp type, Hi resp type
        + b"\x00\x00"  # Reserved1
        + b"\x00\x00\x00\x00"  # Reserved2
        + timestamp
        + client_challenge
        + b"\x00\x00\x00\x00"  # Reserved3
        + target_info
        + b"\x00\x00\x00\x00"  # Reserved4
    )

    nt_proof_str = hmac_md5(ntlmv2_hash, server_challenge + client_blob)
    session_base_key = hmac_md5(ntlmv2_hash, nt_proof_str)

    return nt_proof_str + client_blob, session_base_key


def compute_lmv2_response(
    ntlmv2_hash: bytes,
    server_challenge: bytes,
    client_challenge: bytes,
) -> bytes:
    """LMv2 = HMAC-MD5(NTLMv2Hash, ServerChallenge + ClientChallenge) + ClientChallenge."""
    return hmac_md5(ntlmv2_hash, server_challenge + client_challenge) + client_challenge
