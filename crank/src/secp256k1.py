"""Secp256k1 signature batches for the native signature-verification program.

The native ``KeccakSecp256k1`` program checks that each signature over
``keccak256(message)`` recovers to the given 20-byte Ethereum-style address.
Instruction data layout::

    u8                       number of signatures
    [SecpSignatureOffsets]   11 bytes per signature
    per signature:           eth_address (20) | signature (64) | recovery_id (1) | message
"""

from __future__ import annotations

import struct
from collections.abc import Sequence
from dataclasses import dataclass

from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError
from solders.instruction import Instruction
from solders.pubkey import Pubkey

from .errors import AttestationParseError

SECP256K1_PROGRAM_ID = Pubkey.from_string("KeccakSecp256k11111111111111111111111111111")

ETH_ADDRESS_SIZE = 20
SIGNATURE_SIZE = 64
MESSAGE_SIZE = 32
OFFSETS_SIZE = 11


@dataclass(frozen=True)
class SecpSignature:
    """One oracle's signature over a consensus checksum.

    :ivar eth_address: 20-byte address of the signing key.
    :ivar signature: 64-byte compact signature (r || s).
    :ivar message: 32-byte signed checksum.
    :ivar recovery_id: Recovery id (0 or 1).
    """

    eth_address: bytes
    signature: bytes
    message: bytes
    recovery_id: int

    def __post_init__(self) -> None:
        if len(self.eth_address) != ETH_ADDRESS_SIZE:
            raise AttestationParseError(f"Invalid eth_address length: {len(self.eth_address)}")
        if len(self.signature) != SIGNATURE_SIZE:
            raise AttestationParseError(f"Invalid signature length: {len(self.signature)}")
        if len(self.message) != MESSAGE_SIZE:
            raise AttestationParseError(f"Invalid checksum length: {len(self.message)}")
        if not 0 <= self.recovery_id <= 255:
            raise AttestationParseError(f"Invalid recovery_id: {self.recovery_id}")

    def recover_address(self) -> bytes:
        """Recover the signer's 20-byte address from the signature.

        :raises AttestationParseError: If the signature is not recoverable.
        """
        if self.recovery_id not in (0, 1):
            raise AttestationParseError(f"Unrecoverable signature: recovery_id {self.recovery_id}")
        try:
            signature = keys.Signature(signature_bytes=self.signature + bytes([self.recovery_id]))
            public_key = signature.recover_public_key_from_msg(self.message)
        except (BadSignature, ValidationError) as e:
            raise AttestationParseError(f"Unrecoverable signature: {e}") from e
        return public_key.to_canonical_address()

    def verify(self) -> bool:
        """Check that the signature recovers to :attr:`eth_address`."""
        return self.recover_address() == self.eth_address


def build_secp256k1_instruction(
    signatures: Sequence[SecpSignature],
    instruction_index: int = 0,
) -> Instruction:
    """Build a signature-verification instruction for a batch of signatures.

    :param signatures: Signatures in submission order.
    :param instruction_index: Index of this instruction in the transaction.
    :returns: Instruction for the native secp256k1 program.
    :raises AttestationParseError: If the batch is empty or too large.
    """
    if not signatures:
        raise AttestationParseError("No signatures to verify")
    if len(signatures) > 255:
        raise AttestationParseError(f"Too many signatures: {len(signatures)}")

    offsets = bytearray([len(signatures)])
    payload = bytearray()
    data_start = 1 + OFFSETS_SIZE * len(signatures)

    for sig in signatures:
        eth_address_offset = data_start + len(payload)
        signature_offset = eth_address_offset + ETH_ADDRESS_SIZE
        message_offset = signature_offset + SIGNATURE_SIZE + 1
        if message_offset + len(sig.message) > 0xFFFF:
            raise AttestationParseError("Signature batch exceeds instruction size")

        offsets += struct.pack(
            "<HBHBHHB",
            signature_offset,
            instruction_index,
            eth_address_offset,
            instruction_index,
            message_offset,
            len(sig.message),
            instruction_index,
        )
        payload += sig.eth_address + sig.signature + bytes([sig.recovery_id]) + sig.message

    return Instruction(SECP256K1_PROGRAM_ID, bytes(offsets + payload), [])
