"""
Unit tests for saslntlm.core.crypto module.

Known-answer values are the MS-NLMP 4.2.4 NTLMv2 examples
(User / Domain / Password).
"""

import pytest

from saslntlm.core.crypto import (
    compute_lmv2_response,
    compute_nt_hash,
    compute_ntlmv2_hash,
    compute_ntlmv2_response,
    encrypt_rc4,
    hmac_md5,
    md4_hash,
)
from saslntlm.core.exceptions import CryptoError


NT_HASH = bytes.fromhex("a4f49c406510bdcab6824ee7c30fd852")
NTLMV2_HASH = bytes.fromhex("0c868a403bfd7a93a3001ef22ef02e3f")
SERVER_CHALLENGE = bytes.fromhex("0123456789abcdef")
CLIENT_CHALLENGE = b"\xaa" * 8
# MsvAvNbDomainName "Domain", MsvAvNbComputerName "Server", MsvAvEOL
TARGET_INFO = bytes.fromhex(
    "02000c0044006f006d00610069006e00"
    "01000c00530065007200760065007200"
    "00000000"
)


class TestHashFunctions:
    """Tests for hash and HMAC primitives."""

    def test_hmac_md5_length(self):
        """Test HMAC-MD5 produces 16 bytes."""
        assert len(hmac_md5(b"key", b"data")) == 16

    def test_hmac_md5_rfc2104_vector(self):
        """Test HMAC-MD5 against the RFC 2104 example."""
        tag = hmac_md5(b"Jefe", b"what do ya want for nothing?")
        assert tag.hex() == "750c783e6ab0b503eaa86e310a5db738"

    def test_nt_hash_known_answer(self, md4):
        """Test NT hash of "Password"."""
        assert compute_nt_hash("Password") == NT_HASH

    def test_md4_empty(self, md4):
        """Test MD4 of the empty string (RFC 1320)."""
        assert md4_hash(b"").hex() == "31d6cfe0d16ae931b73c59d7e0c089c0"

    def test_md4_unavailable_raises_crypto_error(self, monkeypatch):
        """Test missing MD4 surfaces as CryptoError."""
        import hashlib

        def no_md4(name, *args, **kwargs):
            raise ValueError(f"unsupported hash type {name}")

        monkeypatch.setattr(hashlib, "new", no_md4)

        with pytest.raises(CryptoError):
            md4_hash(b"data")


class TestNTLMv2:
    """Tests for NTLMv2 response computation."""

    def test_ntlmv2_hash(self):
        """Test NTOWFv2 known answer."""
        assert compute_ntlmv2_hash(NT_HASH, "User", "Domain") == NTLMV2_HASH

    def test_ntlmv2_hash_uppercases_user_only(self):
        """Test user name is case-insensitive and domain is not."""
        assert compute_ntlmv2_hash(NT_HASH, "USER", "Domain") == NTLMV2_HASH
        assert compute_ntlmv2_hash(NT_HASH, "User", "DOMAIN") != NTLMV2_HASH

    def test_ntlmv2_response_known_answer(self):
        """Test NTProofStr and session base key."""
        response, session_base_key = compute_ntlmv2_response(
            ntlmv2_hash=NTLMV2_HASH,
            server_challenge=SERVER_CHALLENGE,
            client_challenge=CLIENT_CHALLENGE,
            timestamp=b"\x00" * 8,
            target_info=TARGET_INFO,
        )

        assert response[:16].hex() == "68cd0ab851e51c96aabc927bebef6a1c"
        assert session_base_key.hex() == "8de40ccadbc14a82f15cb0ad0de95ca3"

    def test_ntlmv2_response_blob_layout(self):
        """Test the client blob follows NTProofStr."""
        response, _ = compute_ntlmv2_response(
            ntlmv2_hash=NTLMV2_HASH,
            server_challenge=SERVER_CHALLENGE,
            client_challenge=CLIENT_CHALLENGE,
            timestamp=b"\x11" * 8,
            target_info=TARGET_INFO,
        )

        blob = response[16:]
        assert blob[:2] == b"\x01\x01"
        assert blob[8:16] == b"\x11" * 8
        assert blob[16:24] == CLIENT_CHALLENGE
        assert blob[28 : 28 + len(TARGET_INFO)] == TARGET_INFO
        assert blob.endswith(b"\x00" * 4)

    def test_lmv2_response_known_answer(self):
        """Test LMv2 response."""
        lm = compute_lmv2_response(NTLMV2_HASH, SERVER_CHALLENGE, CLIENT_CHALLENGE)
        assert lm.hex() == "86c35097ac9cec102554764a57cccc19" + "aa" * 8


class TestRC4:
    """Tests for session key wrapping."""

    def test_rc4_roundtrip(self):
        """Test RC4 is its own inverse."""
        key = b"\x55" * 16
        plaintext = b"exported session"
        ciphertext = encrypt_rc4(key, plaintext)
        assert ciphertext != plaintext
        assert encrypt_rc4(key, ciphertext) == plaintext

    def test_rc4_known_answer(self):
        """Test RC4 keystream against the RFC 6229 40-bit vector."""
        keystream = encrypt_rc4(bytes.fromhex("0102030405"), b"\x00" * 8)
        assert keystream.hex() == "b2396305f03dc027"
