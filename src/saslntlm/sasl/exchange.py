"""
saslntlm Exchange Driver

Minimal session controller: pumps tokens between a mechanism and a
caller-supplied send/receive callback. Performs no I/O of its own.
"""

from __future__ import annotations

from typing import Callable

import structlog
from returns.result import Failure, Result, Success

from saslntlm.core.exceptions import SaslError
from saslntlm.sasl.mechanism import SaslMechanism

logger = structlog.get_logger()

SendReceive = Callable[[bytes], bytes]


def run_exchange(
    mechanism: SaslMechanism,
    send_receive: SendReceive,
    initial_token: bytes = b"",
    max_legs: int = 8,
) -> Result[bytes, str]:
    """
    Drive a mechanism until it reports completion.

    Each client response is handed to ``send_receive``, whose return
    value is the next server token. On any SaslError the mechanism is
    reset so it can be reused for a fresh attempt. Any other exception,
    such as a transport timeout raised by ``send_receive``, also resets
    the mechanism and is then re-raised.

    Args:
        mechanism: Mechanism in its initial state
        send_receive: Sends a client token, returns the server's reply
        initial_token: Server token for the first leg
        max_legs: Upper bound on client responses before giving up

    Returns:
        Success(final server reply) or Failure(error message)

    Example:
        def send_receive(data: bytes) -> bytes:
            conn.send_sasl(data)
            return conn.read_sasl()

        result = run_exchange(mechanism, send_receive)
        if isinstance(result, Failure):
            print(result.failure())
    """
    token = initial_token
    legs = 0

    try:
        while not mechanism.is_authenticated:
            if legs >= max_legs:
                mechanism.reset()
                logger.warning(
                    "sasl_exchange_too_long",
                    mechanism=mechanism.mechanism_name,
                    uri=mechanism.uri,
                    legs=legs,
                )
                return Failure(f"{mechanism.mechanism_name} did not complete in {max_legs} legs")

            response = mechanism.challenge(token)
            legs += 1
            token = send_receive(response)
    except SaslError as e:
        mechanism.reset()
        logger.warning(
            "sasl_exchange_failed",
            mechanism=mechanism.mechanism_name,
            uri=mechanism.uri,
            legs=legs,
            error=e.message,
        )
        return Failure(e.message)
    except BaseException:
        # Transport faults propagate, but never leave a half-run exchange
        mechanism.reset()
        logger.warning(
            "sasl_exchange_aborted",
            mechanism=mechanism.mechanism_name,
            uri=mechanism.uri,
            legs=legs,
        )
        raise

    logger.info(
        "sasl_exchange_complete",
        mechanism=mechanism.mechanism_name,
        uri=mechanism.uri,
        legs=legs,
    )
    return Success(token)
