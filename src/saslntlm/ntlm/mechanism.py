"""
saslntlm NTLM SASL Mechanism

Client side of the two-leg NTLM SASL exchange:

    leg 1: (empty server token)  -> NEGOTIATE_MESSAGE
    leg 2: CHALLENGE_MESSAGE     -> AUTHENTICATE_MESSAGE, authenticated

Credentials are looked up again on every leg and never stored on the
instance. A failed leg leaves the state untouched, so the same leg may
be retried with a corrected token.

WARNING: NTLM is a legacy protocol with no mutual authentication.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import attrs
import structlog
from returns.result import Failure

from saslntlm.core.exceptions import (
    ChallengeParseError,
    CredentialError,
    InvariantViolation,
    StateError,
)
from saslntlm.core.state_machine import StateMachineBase, TransitionEntry
from saslntlm.core.types import CredentialLookup
from saslntlm.ntlm.codec import DefaultNTLMCodec, NTLMMessageCodec
from saslntlm.ntlm.identity import split_identity
from saslntlm.ntlm.types import (
    AuthenticateSent,
    LoginContext,
    LoginState,
    NegotiateSent,
)
from saslntlm.sasl.mechanism import SaslMechanism

logger = structlog.get_logger()

MECHANISM_NAME = "NTLM"


# =============================================================================
# LOGIN STATE MACHINE
# =============================================================================


@attrs.define
class NTLMLoginStateMachine(
    StateMachineBase[LoginState, Any, LoginContext]
):
    """
    State machine for the NTLM SASL login.

    States:
    - INITIAL: Nothing sent yet
    - AWAITING_COMPLETION: NEGOTIATE sent, waiting for the CHALLENGE

    The second leg is a self-transition on AWAITING_COMPLETION that
    sets LoginContext.authenticated.
    """

    def __attrs_post_init__(self) -> None:
        self.add_invariant(
            "authenticated_only_after_negotiate",
            self._authenticated_only_after_negotiate,
        )

    def initial_state(self) -> LoginState:
        return LoginState.INITIAL

    def initial_context(self) -> LoginContext:
        return LoginContext()

    def transition_table(
        self,
    ) -> Dict[Tuple[LoginState, type], TransitionEntry]:
        return {
            (LoginState.INITIAL, NegotiateSent): (
                LoginState.AWAITING_COMPLETION,
                self._handle_negotiate_sent,
            ),
            (LoginState.AWAITING_COMPLETION, AuthenticateSent): (
                LoginState.AWAITING_COMPLETION,
                self._handle_authenticate_sent,
            ),
        }

    @staticmethod
    def _handle_negotiate_sent(
        event: NegotiateSent, ctx: LoginContext
    ) -> LoginContext:
        return ctx

    @staticmethod
    def _handle_authenticate_sent(
        event: AuthenticateSent, ctx: LoginContext
    ) -> LoginContext:
        if ctx.authenticated:
            raise ValueError("AUTHENTICATE already sent")
        return attrs.evolve(ctx, authenticated=True)

    @staticmethod
    def _authenticated_only_after_negotiate(
        state: LoginState, ctx: LoginContext
    ) -> bool:
        if ctx.authenticated:
            return state == LoginState.AWAITING_COMPLETION
        return True


# =============================================================================
# NTLM MECHANISM
# =============================================================================


@attrs.define
class NTLMMechanism(SaslMechanism):
    """
    The NTLM SASL mechanism.

    Example:
        mechanism = NTLMMechanism(
            uri="imap://mail.example.com",
            credentials=Credential("CORP\\\\bob", "hunter2"),
        )

        negotiate = mechanism.challenge(b"")
        # ... send negotiate, receive the server's challenge ...
        authenticate = mechanism.challenge(challenge_bytes)
        assert mechanism.is_authenticated
    """

    codec: NTLMMessageCodec = attrs.field(factory=DefaultNTLMCodec)

    _state_machine: NTLMLoginStateMachine = attrs.Factory(NTLMLoginStateMachine)
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    @property
    def mechanism_name(self) -> str:
        return MECHANISM_NAME

    @property
    def is_authenticated(self) -> bool:
        return self._state_machine.context.authenticated

    @property
    def state(self) -> LoginState:
        """Current login state."""
        return self._state_machine.state

    def _challenge(self, token: bytes, offset: int, length: int) -> bytes:
        if self.is_authenticated:
            self._logger.warning(
                "ntlm_challenge_after_completion",
                uri=self.uri,
            )
            raise StateError(
                "NTLM exchange already complete; reset() before reuse"
            )

        state = self.state

        if state == LoginState.INITIAL:
            # Token is ignored on this leg; a bad region is an argument fault
            reason = self.region_error(token, offset, length)
            if reason is not None:
                raise ValueError(reason)
            domain, user_name, _ = self._resolve_identity()
            response = self.codec.encode_negotiate(domain, extended_security=True)
            event: Any = NegotiateSent()
        elif state == LoginState.AWAITING_COMPLETION:
            domain, user_name, password = self._resolve_identity()
            challenge = self._decode_challenge(token, offset, length)
            response = self.codec.encode_authenticate(
                challenge, user_name, password, domain
            )
            event = AuthenticateSent()
        else:
            self._logger.error("ntlm_unreachable_state", state=repr(state))
            raise InvariantViolation(f"Unreachable NTLM login state: {state!r}")

        result = self._state_machine.process_event(event)
        if isinstance(result, Failure):
            raise InvariantViolation(result.failure())

        self._logger.info(
            "ntlm_leg_complete",
            uri=self.uri,
            leg=type(event).__name__,
            domain=domain,
            user_name=user_name,
            authenticated=self.is_authenticated,
        )

        return response

    def _resolve_identity(self) -> Tuple[str, str, str]:
        """
        Look up the credential and derive (domain, user_name, password).

        Raises:
            CredentialError: No credential or no user name
        """
        credential = self.credentials.get_credential(self.uri, self.mechanism_name)
        if credential is None:
            raise CredentialError(f"No credentials for {self.uri}")
        if credential.user_name is None:
            raise CredentialError(f"Credential for {self.uri} has no user name")

        domain, user_name = split_identity(credential.user_name, credential.domain)
        return domain, user_name, credential.password or ""

    def _decode_challenge(self, token: bytes, offset: int, length: int) -> Any:
        reason = self.region_error(token, offset, length)
        if reason is not None:
            self._logger.warning(
                "ntlm_challenge_parse_failed",
                uri=self.uri,
                length=length,
                reason=reason,
            )
            raise ChallengeParseError(reason, length)

        try:
            return self.codec.decode_challenge(token, offset, length)
        except ChallengeParseError as e:
            self._logger.warning(
                "ntlm_challenge_parse_failed",
                uri=self.uri,
                length=e.length,
                reason=e.reason,
            )
            raise
        except ValueError as e:
            self._logger.warning(
                "ntlm_challenge_parse_failed",
                uri=self.uri,
                length=length,
                reason=str(e),
            )
            raise ChallengeParseError(str(e), length) from e

    def reset(self) -> None:
        """Return to INITIAL, clearing the authenticated flag and history."""
        self._state_machine.reset()
        self._logger.debug("ntlm_reset", uri=self.uri)

    def get_trace(self) -> List[Dict[str, Any]]:
        """Transition history of the current attempt."""
        return [t.to_dict() for t in self._state_machine.get_trace()]

    def export_trace_json(self) -> str:
        """Export the transition history as JSON."""
        return self._state_machine.export_trace_json()


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================


def create_ntlm_mechanism(
    uri: str,
    credentials: CredentialLookup,
    workstation_name: str = "",
    codec: Optional[NTLMMessageCodec] = None,
) -> NTLMMechanism:
    """
    Create an NTLM mechanism.

    Args:
        uri: Target service URI
        credentials: Credential lookup (a Credential works directly)
        workstation_name: Workstation name for the default codec
        codec: Replacement message codec; workstation_name is ignored
            when one is given

    Returns:
        NTLMMechanism in the INITIAL state
    """
    if codec is None:
        codec = DefaultNTLMCodec(workstation_name=workstation_name)

    return NTLMMechanism(uri=uri, credentials=credentials, codec=codec)
