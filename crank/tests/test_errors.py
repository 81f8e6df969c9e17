"""Unit tests for the error taxonomy."""

import pytest

from crank.src.errors import (
    AccountDecodeError,
    AttestationParseError,
    ConfigError,
    ConsensusExhaustedError,
    CrankError,
    ErrorKind,
    GatewayError,
    MessageCompileError,
    RateBudgetError,
    RpcError,
    SigningError,
)


class TestErrorKinds:
    """Test that every error carries a stable kind."""

    @pytest.mark.parametrize(
        "error_cls,kind",
        [
            (AccountDecodeError, ErrorKind.ACCOUNT_DECODE),
            (RpcError, ErrorKind.RPC),
            (SigningError, ErrorKind.SIGNER),
            (MessageCompileError, ErrorKind.COMPILE),
            (RateBudgetError, ErrorKind.RATE_BUDGET),
            (AttestationParseError, ErrorKind.ATTESTATION_PARSE),
            (ConfigError, ErrorKind.CONFIG),
        ],
    )
    def test_kind(self, error_cls: type[CrankError], kind: ErrorKind) -> None:
        """Each error class should map to its kind."""
        error = error_cls("boom")
        assert isinstance(error, CrankError)
        assert error.kind is kind
        assert str(error) == "boom"


class TestGatewayError:
    """Test GatewayError formatting."""

    def test_with_status(self) -> None:
        """The status code should prefix the message."""
        error = GatewayError("bad gateway", status_code=502)
        assert str(error) == "HTTP 502: bad gateway"
        assert error.status_code == 502
        assert error.kind is ErrorKind.GATEWAY

    def test_without_status(self) -> None:
        """Network errors should keep the bare message."""
        assert str(GatewayError("refused")) == "refused"


class TestConsensusExhaustedError:
    """Test ConsensusExhaustedError formatting."""

    def test_no_attempts(self) -> None:
        """Zero attempts should report that no gateway was available."""
        error = ConsensusExhaustedError(0)
        assert str(error) == "No gateways available"
        assert error.kind is ErrorKind.CONSENSUS_EXHAUSTED

    def test_with_last_error(self) -> None:
        """The last failure should be included."""
        error = ConsensusExhaustedError(3, GatewayError("timeout"))
        assert str(error) == "All 3 gateways failed; last error: timeout"
        assert error.attempts == 3
