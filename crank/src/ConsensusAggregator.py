"""ConsensusAggregator: Turn gateway attestations into submission instructions.

Consensus mode
    A secp256k1 verification instruction carrying every oracle's signature,
    followed by ``pull_feed_submit_response_consensus`` carrying the median
    values. The submit instruction references only the first oracle of the
    signature batch.

Per-oracle mode
    A single ``pull_feed_submit_response`` with one submission per oracle and
    an (oracle, oracle stats) account pair per oracle, in response order.

Oracle order is preserved from the gateway response through signature
building to account assembly; reordering any one of them invalidates the
submission.
"""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Sequence

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from .errors import AttestationParseError
from .gateway import ConsensusResponse, OracleResponse, decode_oracle_pubkey
from .instructions import (
    I128_MAX,
    Submission,
    SubmitParams,
    build_instruction,
    encode_submit_response,
    encode_submit_response_consensus,
    fits_i128,
    oracle_accounts,
    oracle_stats_key,
    submit_response_accounts,
    submit_response_consensus_accounts,
    to_mantissa,
)
from .secp256k1 import SecpSignature, build_secp256k1_instruction

logger = logging.getLogger(__name__)

# Position of the secp256k1 instruction in the consensus transaction
SECP_INSTRUCTION_INDEX = 0


def extract_consensus_values(response: ConsensusResponse) -> list[int]:
    """Median values as scale-18 mantissas.

    Values that do not parse as a signed 128-bit integer become ``I128_MAX``.
    """
    values: list[int] = []
    for median in response.median_responses:
        try:
            value = int(median.value)
        except ValueError:
            value = I128_MAX
        values.append(value if fits_i128(value) else I128_MAX)
    return values


def extract_oracle_keys(response: ConsensusResponse) -> list[Pubkey]:
    """Oracle identities in signature order.

    :raises AttestationParseError: If an oracle has no feed response or a
        malformed key.
    """
    keys: list[Pubkey] = []
    for oracle_response in response.oracle_responses:
        if not oracle_response.feed_responses:
            raise AttestationParseError("No feed responses found")
        keys.append(decode_oracle_pubkey(oracle_response.feed_responses[0].oracle_pubkey))
    return keys


def _b64(value: str, field: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, TypeError, ValueError) as e:
        raise AttestationParseError(f"Invalid {field}: {e}") from e


def build_secp_signatures(response: ConsensusResponse) -> list[SecpSignature]:
    """Decode every oracle's signature tuple, in oracle order.

    :raises AttestationParseError: If any field fails to decode to its
        expected fixed length.
    """
    signatures: list[SecpSignature] = []
    for oracle_response in response.oracle_responses:
        try:
            eth_address = bytes.fromhex(oracle_response.eth_address.removeprefix("0x"))
        except (AttributeError, TypeError, ValueError) as e:
            raise AttestationParseError(f"Invalid eth_address: {e}") from e

        signatures.append(
            SecpSignature(
                eth_address=eth_address,
                signature=_b64(oracle_response.signature, "signature"),
                message=_b64(oracle_response.checksum, "checksum"),
                recovery_id=oracle_response.recovery_id,
            )
        )
    return signatures


def verify_secp_signatures(signatures: Sequence[SecpSignature]) -> None:
    """Check that every signature recovers to its advertised address.

    :raises AttestationParseError: On the first mismatching signature.
    """
    for index, signature in enumerate(signatures):
        if not signature.verify():
            raise AttestationParseError(
                f"Signature {index} does not recover to 0x{signature.eth_address.hex()}"
            )


def build_consensus_instructions(
    params: SubmitParams,
    response: ConsensusResponse,
    slot: int,
    verify: bool = False,
) -> list[Instruction]:
    """Build the secp256k1 + consensus-submit instruction pair.

    :param params: Feed, queue and payer.
    :param response: Consensus attestation set.
    :param slot: Recent slot the submission refers to.
    :param verify: Recover and check every signature before building.
    :returns: ``[secp256k1_ix, submit_ix]``.
    :raises AttestationParseError: If the response has no oracles or a
        malformed field.
    """
    values = extract_consensus_values(response)
    logger.info(f"consensus_ix_data values: {values}")

    oracle_keys = extract_oracle_keys(response)
    if not oracle_keys:
        raise AttestationParseError("Consensus response has no oracle responses")

    signatures = build_secp_signatures(response)
    logger.info(f"secp_signatures (length): {len(signatures)}")
    if verify:
        verify_secp_signatures(signatures)

    secp_ix = build_secp256k1_instruction(signatures, SECP_INSTRUCTION_INDEX)

    oracle = oracle_keys[0]
    accounts = [
        *submit_response_consensus_accounts(params),
        AccountMeta(params.feed, is_signer=False, is_writable=True),
        AccountMeta(oracle, is_signer=False, is_writable=False),
        AccountMeta(oracle_stats_key(oracle), is_signer=False, is_writable=True),
    ]
    submit_ix = build_instruction(encode_submit_response_consensus(slot, values), accounts)
    return [secp_ix, submit_ix]


def build_submissions(responses: Sequence[OracleResponse]) -> list[Submission]:
    """One submission per oracle response, ``I128_MAX`` for sampling failures."""
    return [
        Submission(
            value=to_mantissa(response.value),
            signature=response.signature,
            recovery_id=response.recovery_id,
        )
        for response in responses
    ]


def build_submit_responses_instruction(
    params: SubmitParams,
    responses: Sequence[OracleResponse],
    slot: int,
) -> Instruction:
    """Build a per-oracle ``pull_feed_submit_response`` instruction.

    :param params: Feed, queue and payer.
    :param responses: Oracle responses in gateway order.
    :param slot: Recent slot the submission refers to.
    :returns: Submit instruction with one account pair per oracle.
    :raises AttestationParseError: If a value cannot be encoded.
    """
    submissions = build_submissions(responses)
    failed = sum(1 for s in submissions if s.value == I128_MAX)
    if failed:
        logger.warning(f"{failed}/{len(submissions)} oracles reported no value")

    accounts = [
        *submit_response_accounts(params),
        *oracle_accounts([response.oracle for response in responses]),
    ]
    return build_instruction(encode_submit_response(slot, submissions), accounts)
