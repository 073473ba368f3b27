"""
Unit tests for saslntlm.sasl.exchange module.
"""

import pytest
from returns.result import Failure, Success

from saslntlm.core.types import Credential
from saslntlm.ntlm.types import LoginState
from saslntlm.sasl.exchange import run_exchange


class ScriptedServer:
    """send_receive callback that replays canned server replies."""

    def __init__(self, *replies: bytes) -> None:
        self._replies = list(replies)
        self.received = []

    def __call__(self, data: bytes) -> bytes:
        self.received.append(data)
        return self._replies.pop(0)


class TestRunExchange:
    """Tests for driving a mechanism through a callback."""

    def test_successful_exchange(self, mechanism):
        """Test both legs are sent and the final reply is returned."""
        server = ScriptedServer(b"CHALLENGE", b"+OK done")

        result = run_exchange(mechanism, server)

        assert result == Success(b"+OK done")
        assert server.received == [b"NEGOTIATE:CORP", b"AUTHENTICATE:CORP|bob|hunter2"]
        assert mechanism.is_authenticated

    def test_parse_failure_returns_failure_and_resets(self, mechanism):
        """Test a malformed challenge ends the exchange and resets the mechanism."""
        server = ScriptedServer(b"X")

        result = run_exchange(mechanism, server)

        assert isinstance(result, Failure)
        assert "1 bytes" in result.failure()
        assert mechanism.state == LoginState.INITIAL
        assert not mechanism.is_authenticated

    def test_credential_failure(self, make_mechanism, lookup_factory):
        """Test a missing credential becomes a Failure."""
        mech = make_mechanism(lookup_factory(None))

        result = run_exchange(mech, ScriptedServer())

        assert isinstance(result, Failure)
        assert "No credentials" in result.failure()

    def test_completed_mechanism_is_not_driven(self, mechanism):
        """Test an already-authenticated mechanism returns the initial token."""
        mechanism.challenge(b"")
        mechanism.challenge(b"CHALLENGE")
        server = ScriptedServer()

        result = run_exchange(mechanism, server, initial_token=b"+OK")

        assert result == Success(b"+OK")
        assert server.received == []

    def test_leg_limit(self, mechanism):
        """Test the exchange gives up after max_legs responses."""
        server = ScriptedServer(b"CHALLENGE")

        result = run_exchange(mechanism, server, max_legs=1)

        assert isinstance(result, Failure)
        assert "did not complete" in result.failure()
        assert mechanism.state == LoginState.INITIAL

    def test_mechanism_reusable_after_failure(self, make_mechanism, recording_codec):
        """Test a reset mechanism completes a second attempt."""
        mech = make_mechanism(Credential("CORP\\bob", "hunter2"), recording_codec)

        assert isinstance(run_exchange(mech, ScriptedServer(b"X")), Failure)
        assert run_exchange(mech, ScriptedServer(b"CHALLENGE", b"")) == Success(b"")

    def test_transport_error_resets_and_propagates(self, mechanism):
        """Test a failing callback leaves the mechanism ready for a new attempt."""

        def timed_out(data: bytes) -> bytes:
            raise TimeoutError("server did not answer")

        with pytest.raises(TimeoutError):
            run_exchange(mechanism, timed_out)

        assert mechanism.state == LoginState.INITIAL
        assert mechanism.get_trace() == []
        assert run_exchange(mechanism, ScriptedServer(b"CHALLENGE", b"")) == Success(b"")

    def test_transport_error_on_second_leg(self, mechanism):
        """Test a callback failing after the CHALLENGE also resets."""
        replies = iter([b"CHALLENGE"])

        def drops_connection(data: bytes) -> bytes:
            try:
                return next(replies)
            except StopIteration:
                raise ConnectionResetError("peer closed") from None

        with pytest.raises(ConnectionResetError):
            run_exchange(mechanism, drops_connection)

        assert mechanism.state == LoginState.INITIAL
        assert not mechanism.is_authenticated

    def test_unencodable_credential_is_failure(self, make_mechanism, deterministic_codec, challenge_bytes):
        """Test an identity that cannot be encoded becomes a Failure."""
        mech = make_mechanism(Credential("CORP\\b\ud800b", "pw"), deterministic_codec)

        result = run_exchange(mech, ScriptedServer(challenge_bytes))

        assert isinstance(result, Failure)
        assert "user_name" in result.failure()
        assert mech.state == LoginState.INITIAL
