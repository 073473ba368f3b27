#!/usr/bin/env python3
"""
NTLM SASL Exchange Example

Demonstrates driving saslntlm's NTLMMechanism through a complete
NEGOTIATE -> CHALLENGE -> AUTHENTICATE exchange against an in-process
server stand-in, then exporting the state machine trace.
"""

import base64

from returns.result import Failure, Success

from saslntlm import Credential, create_ntlm_mechanism, run_exchange
from saslntlm.ntlm import (
    AVPair,
    AVPairType,
    ChallengeMessage,
    NegotiateFlags,
    NegotiateMessage,
)
from saslntlm.ntlm.types import AuthenticateMessage, build_av_pairs


class FakeServer:
    """Answers NEGOTIATE with a fixed CHALLENGE and accepts any AUTHENTICATE."""

    def __init__(self) -> None:
        self.legs = 0

    def __call__(self, data: bytes) -> bytes:
        self.legs += 1
        if self.legs == 1:
            negotiate = NegotiateMessage.from_bytes(data)
            print(f"   <- NEGOTIATE domain={negotiate.domain_name!r}")
            return self._challenge(negotiate.negotiate_flags)

        authenticate = AuthenticateMessage.from_bytes(data)
        print(
            f"   <- AUTHENTICATE {authenticate.domain_name}\\{authenticate.user_name}"
            f" from {authenticate.workstation_name!r}"
        )
        return b"+OK authenticated"

    @staticmethod
    def _challenge(client_flags: int) -> bytes:
        target_info = build_av_pairs([
            AVPair(AVPairType.MsvAvNbDomainName.value, "CORP".encode("utf-16-le")),
            AVPair(AVPairType.MsvAvDnsDomainName.value, "corp.example.com".encode("utf-16-le")),
        ])
        flags = (
            client_flags
            | NegotiateFlags.NEGOTIATE_TARGET_INFO.value
            | NegotiateFlags.TARGET_TYPE_DOMAIN.value
        )
        return ChallengeMessage(
            target_name="CORP",
            negotiate_flags=flags,
            server_challenge=b"\x01\x23\x45\x67\x89\xab\xcd\xef",
            target_info=target_info,
        ).to_bytes()


def main():
    """Demonstrate a client-side NTLM SASL exchange."""

    print("=" * 70)
    print("saslntlm - NTLM SASL Exchange")
    print("=" * 70)
    print()

    # ==========================================================================
    # EXAMPLE 1: Step the mechanism by hand
    # ==========================================================================
    print("1. Manual challenge/response")
    print("-" * 40)

    mechanism = create_ntlm_mechanism(
        uri="imap://mail.example.com",
        credentials=Credential("CORP\\bob", "hunter2"),
        workstation_name="WS01",
    )
    server = FakeServer()

    negotiate = mechanism.challenge(b"")
    print(f"   -> {base64.b64encode(negotiate).decode('ascii')}")
    print(f"   State: {mechanism.state.name}")

    challenge = server(negotiate)
    authenticate = mechanism.challenge(challenge, 0, len(challenge))
    server(authenticate)
    print(f"   Authenticated: {mechanism.is_authenticated}")
    print()

    # ==========================================================================
    # EXAMPLE 2: Let run_exchange drive the legs
    # ==========================================================================
    print("2. run_exchange")
    print("-" * 40)

    mechanism.reset()
    result = run_exchange(mechanism, FakeServer())

    if isinstance(result, Success):
        print(f"   Server said: {result.unwrap().decode('ascii')}")
    elif isinstance(result, Failure):
        print(f"   Failed: {result.failure()}")
    print()

    # ==========================================================================
    # EXAMPLE 3: Trace export
    # ==========================================================================
    print("3. State machine trace")
    print("-" * 40)
    print(mechanism.export_trace_json())


if __name__ == "__main__":
    main()
