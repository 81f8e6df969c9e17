"""Gateway response models.

Two response flavours come back from a gateway:

- ``fetch_signatures``: one signed value per oracle
  (:class:`OracleResponse`), parsed eagerly into typed values.
- ``fetch_signatures_consensus``: median values plus one signature per
  oracle over a consensus checksum (:class:`ConsensusResponse`). Its
  fixed-length fields are kept as transmitted (hex/base64) and decoded when
  the submission is assembled.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from solders.pubkey import Pubkey

from ..errors import AttestationParseError
from ..instructions import SIGNATURE_SIZE, fits_i128, from_mantissa


def decode_oracle_pubkey(value: str) -> Pubkey:
    """Decode a hex-encoded 32-byte oracle public key.

    :raises AttestationParseError: If the value is not 32 bytes of hex.
    """
    try:
        raw = bytes.fromhex(value)
    except (TypeError, ValueError) as e:
        raise AttestationParseError(f"Failed to decode oracle pubkey: {e}") from e
    if len(raw) != 32:
        raise AttestationParseError("Invalid oracle pubkey length")
    return Pubkey.from_bytes(raw)


def _lenient_signature(value: Any) -> bytes:
    # Oracles that failed to sample may send no usable signature
    if not isinstance(value, str):
        return bytes(SIGNATURE_SIZE)
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return bytes(SIGNATURE_SIZE)
    return raw if len(raw) == SIGNATURE_SIZE else bytes(SIGNATURE_SIZE)


def _parse_value(value: str | None) -> Decimal | None:
    try:
        mantissa = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return from_mantissa(mantissa) if fits_i128(mantissa) else None


def _text(item: dict[str, Any], key: str) -> str:
    value = item[key]
    if not isinstance(value, str):
        raise AttestationParseError(f"Field '{key}' must be a string, got {type(value).__name__}")
    return value


@dataclass(frozen=True)
class OracleResponse:
    """A single oracle's signed value for a feed.

    :ivar oracle: Oracle identity.
    :ivar value: Value at scale 18, or None if the oracle failed to sample.
    :ivar signature: 64-byte signature (zeroed if absent).
    :ivar recovery_id: Signature recovery id.
    :ivar error: Failure message reported by the oracle, if any.
    """

    oracle: Pubkey
    value: Decimal | None
    signature: bytes
    recovery_id: int
    error: str | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> OracleResponse:
        """Parse one entry of a ``fetch_signatures`` response.

        :raises AttestationParseError: If the oracle key or recovery id is malformed.
        """
        try:
            oracle = decode_oracle_pubkey(data["oracle_pubkey"])
            recovery_id = int(data.get("recovery_id", 0))
        except (KeyError, TypeError, ValueError) as e:
            raise AttestationParseError(f"Malformed oracle response: {e}") from e

        return cls(
            oracle=oracle,
            value=_parse_value(data.get("success_value")),
            signature=_lenient_signature(data.get("signature")),
            recovery_id=recovery_id,
            error=data.get("failure_error") or None,
        )


def parse_oracle_responses(payload: dict[str, Any]) -> list[OracleResponse]:
    """Parse a ``fetch_signatures`` response body.

    :raises AttestationParseError: If the body or an entry is malformed.
    """
    responses = payload.get("responses") if isinstance(payload, dict) else None
    if not isinstance(responses, list):
        raise AttestationParseError("Missing 'responses' in gateway response")
    return [OracleResponse.from_json(item) for item in responses]


@dataclass(frozen=True)
class FeedResponse:
    """An oracle's raw result for one feed inside a consensus response."""

    oracle_pubkey: str
    success_value: str
    failure_error: str = ""


@dataclass(frozen=True)
class MedianResponse:
    """Median value agreed on for one feed."""

    value: str
    feed_hash: str
    num_oracles: int


@dataclass(frozen=True)
class ConsensusOracleResponse:
    """One oracle's signature over the consensus checksum.

    :ivar eth_address: Hex-encoded 20-byte signer address.
    :ivar signature: Base64-encoded 64-byte signature.
    :ivar checksum: Base64-encoded 32-byte signed message.
    :ivar recovery_id: Signature recovery id.
    :ivar feed_responses: Per-feed raw results from this oracle.
    """

    eth_address: str
    signature: str
    checksum: str
    recovery_id: int
    feed_responses: tuple[FeedResponse, ...]


@dataclass(frozen=True)
class ConsensusResponse:
    """A consensus attestation set.

    Oracle order is significant: signatures, values and accounts are
    assembled in this order.
    """

    median_responses: tuple[MedianResponse, ...]
    oracle_responses: tuple[ConsensusOracleResponse, ...]
    slot: int | None = None

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> ConsensusResponse:
        """Parse a ``fetch_signatures_consensus`` response body.

        :raises AttestationParseError: If required keys are missing or not strings.
        """
        try:
            medians = tuple(
                MedianResponse(
                    value=str(item["value"]),
                    feed_hash=item.get("feed_hash", ""),
                    num_oracles=int(item.get("num_oracles", 0)),
                )
                for item in payload["median_responses"]
            )
            oracles = tuple(
                ConsensusOracleResponse(
                    eth_address=_text(item, "eth_address"),
                    signature=_text(item, "signature"),
                    checksum=_text(item, "checksum"),
                    recovery_id=int(item["recovery_id"]),
                    feed_responses=tuple(
                        FeedResponse(
                            oracle_pubkey=_text(fr, "oracle_pubkey"),
                            success_value=str(fr.get("success_value", "")),
                            failure_error=fr.get("failure_error") or "",
                        )
                        for fr in item.get("feed_responses", [])
                    ),
                )
                for item in payload["oracle_responses"]
            )
        except (KeyError, TypeError, ValueError) as e:
            raise AttestationParseError(f"Malformed consensus response: {e}") from e

        slot = payload.get("slot")
        return cls(
            median_responses=medians,
            oracle_responses=oracles,
            slot=int(slot) if isinstance(slot, int) else None,
        )
