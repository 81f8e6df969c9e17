"""Switchboard on-demand instruction encoding.

Program-derived addresses, Anchor instruction discriminators and the Borsh
payloads for ``pull_feed_submit_response`` and
``pull_feed_submit_response_consensus``.

Numeric values travel as signed 128-bit mantissas at a fixed decimal scale
of 18. ``I128_MAX`` is the sentinel for "no value", which keeps an oracle's
sampling failure distinguishable from a genuine zero.

.. code-block:: python

    >>> to_mantissa(Decimal("1.5"))
    1500000000000000000
    >>> to_mantissa(None) == I128_MAX
    True
"""

from __future__ import annotations

import hashlib
import struct
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.sysvar import SLOT_HASHES
from spl.token.constants import TOKEN_PROGRAM_ID, WRAPPED_SOL_MINT
from spl.token.instructions import get_associated_token_address

from .errors import AttestationParseError

ON_DEMAND_MAINNET_PID = Pubkey.from_string("SBondMDrcV3K4kxZR1HNVT7osZxAHVHgYXL5Ze1oMUv")

SCALE = 18
I128_MIN = -(2**127)
I128_MAX = 2**127 - 1

SIGNATURE_SIZE = 64


def to_mantissa(value: Decimal | None) -> int:
    """Rescale a value to a signed 128-bit mantissa at scale 18.

    :param value: Value to encode, or None for "no value".
    :returns: Mantissa, or ``I128_MAX`` when value is None.
    :raises AttestationParseError: If the mantissa does not fit in 128 bits.
    """
    if value is None:
        return I128_MAX

    with localcontext() as ctx:
        ctx.prec = 80
        try:
            mantissa = int(value.scaleb(SCALE).to_integral_value(rounding=ROUND_HALF_UP))
        except (InvalidOperation, ValueError, OverflowError) as e:
            raise AttestationParseError(f"Cannot encode value {value!r}: {e}") from e

    if not fits_i128(mantissa):
        raise AttestationParseError(f"Value {value} overflows a signed 128-bit mantissa")
    return mantissa


def from_mantissa(mantissa: int) -> Decimal:
    """Decode a scale-18 mantissa into a Decimal.

    :param mantissa: Signed 128-bit mantissa.
    :returns: Exact decimal value.
    """
    with localcontext() as ctx:
        ctx.prec = 80
        return Decimal(mantissa).scaleb(-SCALE)


def fits_i128(value: int) -> bool:
    """Whether an integer is representable as a signed 128-bit mantissa."""
    return I128_MIN <= value <= I128_MAX


def instruction_discriminator(name: str) -> bytes:
    """Compute the Anchor instruction discriminator.

    :param name: Instruction name (e.g., "pull_feed_submit_response").
    :returns: First 8 bytes of ``sha256("global:<name>")``.
    """
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


def _i128(value: int) -> bytes:
    try:
        return value.to_bytes(16, "little", signed=True)
    except OverflowError as e:
        raise AttestationParseError(f"Value {value} overflows a signed 128-bit mantissa") from e


def state_pda(program_id: Pubkey = ON_DEMAND_MAINNET_PID) -> Pubkey:
    """Program state account."""
    return Pubkey.find_program_address([b"STATE"], program_id)[0]


def oracle_stats_key(oracle: Pubkey, program_id: Pubkey = ON_DEMAND_MAINNET_PID) -> Pubkey:
    """Per-oracle statistics account."""
    return Pubkey.find_program_address([b"OracleStats", bytes(oracle)], program_id)[0]


def reward_vault(queue: Pubkey) -> Pubkey:
    """Wrapped-SOL token account holding the queue's rewards."""
    return get_associated_token_address(queue, WRAPPED_SOL_MINT)


@dataclass(frozen=True)
class SubmitParams:
    """Accounts identifying a submission.

    :ivar feed: Pull feed account.
    :ivar queue: Queue the feed is routed through.
    :ivar payer: Fee payer and signer.
    """

    feed: Pubkey
    queue: Pubkey
    payer: Pubkey


@dataclass(frozen=True)
class Submission:
    """One oracle's entry in a ``pull_feed_submit_response`` payload.

    :ivar value: Scale-18 mantissa, ``I128_MAX`` when the oracle had no value.
    :ivar signature: 64-byte secp256k1 signature.
    :ivar recovery_id: Signature recovery id.
    :ivar offset: Reserved, always 0.
    """

    value: int
    signature: bytes
    recovery_id: int
    offset: int = 0

    def encode(self) -> bytes:
        """Borsh-encode the submission."""
        if len(self.signature) != SIGNATURE_SIZE:
            raise AttestationParseError(
                f"Invalid signature length: {len(self.signature)}"
            )
        return (
            _i128(self.value)
            + self.signature
            + struct.pack("<BB", self.recovery_id, self.offset)
        )


def encode_submit_response(slot: int, submissions: Sequence[Submission]) -> bytes:
    """Encode ``pull_feed_submit_response`` instruction data."""
    return (
        instruction_discriminator("pull_feed_submit_response")
        + struct.pack("<QI", slot, len(submissions))
        + b"".join(s.encode() for s in submissions)
    )


def encode_submit_response_consensus(slot: int, values: Sequence[int]) -> bytes:
    """Encode ``pull_feed_submit_response_consensus`` instruction data."""
    return (
        instruction_discriminator("pull_feed_submit_response_consensus")
        + struct.pack("<QI", slot, len(values))
        + b"".join(_i128(v) for v in values)
    )


def _common_accounts(params: SubmitParams) -> list[AccountMeta]:
    return [
        AccountMeta(params.queue, is_signer=False, is_writable=False),
        AccountMeta(state_pda(), is_signer=False, is_writable=False),
        AccountMeta(SLOT_HASHES, is_signer=False, is_writable=False),
        AccountMeta(params.payer, is_signer=True, is_writable=True),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(reward_vault(params.queue), is_signer=False, is_writable=True),
        AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(WRAPPED_SOL_MINT, is_signer=False, is_writable=False),
    ]


def submit_response_accounts(params: SubmitParams) -> list[AccountMeta]:
    """Fixed accounts of ``pull_feed_submit_response``."""
    return [AccountMeta(params.feed, is_signer=False, is_writable=True), *_common_accounts(params)]


def submit_response_consensus_accounts(params: SubmitParams) -> list[AccountMeta]:
    """Fixed accounts of ``pull_feed_submit_response_consensus``."""
    return _common_accounts(params)


def oracle_accounts(oracles: Sequence[Pubkey]) -> list[AccountMeta]:
    """Remaining accounts: (oracle read-only, oracle stats writable) per oracle."""
    accounts: list[AccountMeta] = []
    for oracle in oracles:
        accounts.append(AccountMeta(oracle, is_signer=False, is_writable=False))
        accounts.append(AccountMeta(oracle_stats_key(oracle), is_signer=False, is_writable=True))
    return accounts


def build_instruction(data: bytes, accounts: Sequence[AccountMeta]) -> Instruction:
    """Build an instruction for the on-demand program."""
    return Instruction(ON_DEMAND_MAINNET_PID, data, list(accounts))
