"""Error taxonomy for the pull-feed crank.

Every failure raised by this package derives from :class:`CrankError` and
carries a stable :attr:`CrankError.kind` for programmatic handling. When a
library error is translated, the underlying exception is chained as
``__cause__`` so the full diagnostic is preserved.

.. code-block:: python

    try:
        feed = decode_feed_account(data)
    except CrankError as e:
        if e.kind is ErrorKind.ACCOUNT_DECODE:
            ...
"""

from __future__ import annotations

from enum import Enum
from typing import ClassVar


class ErrorKind(str, Enum):
    """Stable discriminant for each failure domain."""

    ACCOUNT_DECODE = "account_decode"
    RPC = "rpc"
    SIGNER = "signer"
    COMPILE = "compile"
    RATE_BUDGET = "rate_budget"
    ATTESTATION_PARSE = "attestation_parse"
    GATEWAY = "gateway"
    CONSENSUS_EXHAUSTED = "consensus_exhausted"
    CONFIG = "config"


class CrankError(Exception):
    """Base exception for crank errors.

    :cvar kind: Failure domain of this error.
    """

    kind: ClassVar[ErrorKind]


class AccountDecodeError(CrankError):
    """Raised when account bytes have a bad length or discriminator."""

    kind = ErrorKind.ACCOUNT_DECODE


class RpcError(CrankError):
    """Raised when an RPC round-trip fails at the transport or protocol level."""

    kind = ErrorKind.RPC


class SigningError(CrankError):
    """Raised when a transaction cannot be signed by the given signer set."""

    kind = ErrorKind.SIGNER


class MessageCompileError(CrankError):
    """Raised when a versioned message cannot be compiled."""

    kind = ErrorKind.COMPILE


class RateBudgetError(CrankError):
    """Raised when a rate-budget unit is requested after shutdown."""

    kind = ErrorKind.RATE_BUDGET


class AttestationParseError(CrankError):
    """Raised when a gateway attestation carries a malformed field."""

    kind = ErrorKind.ATTESTATION_PARSE


class GatewayError(CrankError):
    """Raised when a gateway or the job-resolution service cannot be reached.

    :ivar status_code: HTTP status code, or None for network errors.
    """

    kind = ErrorKind.GATEWAY

    def __init__(self, message: str, status_code: int | None = None):
        """Initialize the gateway error.

        :param message: Error message.
        :param status_code: HTTP status code if the server answered.
        """
        self.status_code = status_code
        if status_code is not None:
            message = f"HTTP {status_code}: {message}"
        super().__init__(message)


class ConsensusExhaustedError(CrankError):
    """Raised when every gateway failed to return an attestation.

    :ivar attempts: Number of gateways tried.
    :ivar last_error: The failure reported by the last gateway tried.
    """

    kind = ErrorKind.CONSENSUS_EXHAUSTED

    def __init__(self, attempts: int, last_error: BaseException | None = None):
        """Initialize the exhaustion error.

        :param attempts: Number of attempts made.
        :param last_error: Last underlying failure, if any attempt was made.
        """
        self.attempts = attempts
        self.last_error = last_error
        if attempts == 0:
            message = "No gateways available"
        else:
            message = f"All {attempts} gateways failed; last error: {last_error}"
        super().__init__(message)


class ConfigError(CrankError):
    """Raised when startup configuration is missing or invalid."""

    kind = ErrorKind.CONFIG
