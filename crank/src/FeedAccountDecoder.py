"""FeedAccountDecoder: Byte-safe decoding of Switchboard on-demand accounts.

Account data is read with little-endian ``struct.unpack_from`` at explicit
offsets, so the decoders never assume anything about the alignment of the
source buffer. Every decoder is a pure function over ``bytes`` returning a
frozen record; the buffer is not retained.

Layouts (offsets relative to the end of the 8-byte Anchor discriminator):

``PullFeedAccountData`` (3200 bytes)::

    0     submissions        [OracleSubmission; 32] (64 bytes each)
    2048  authority          Pubkey
    2080  queue              Pubkey
    2112  feed_hash          [u8; 32]
    2144  initialized_at     i64
    2152  permissions        u64
    2160  max_variance       u64
    2168  min_responses      u32
    2172  name               [u8; 32]
    2206  historical_idx     u8
    2207  min_sample_size    u8
    2208  last_update_ts     i64
    2216  lut_slot           u64
    2384  max_staleness      u32

``QueueAccountData``::

    0     authority          Pubkey
    32    mr_enclaves        [[u8; 32]; 32]
    1056  oracle_keys        [Pubkey; 128]
    5196  oracle_keys_len    u32

``OracleAccountData``::

    0     enclave            Quote (3424 bytes)
    3424  authority          Pubkey
    3456  queue              Pubkey
    3504  secp_authority     [u8; 64]
    3568  gateway_uri        [u8; 64]
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass

from solders.pubkey import Pubkey

from .errors import AccountDecodeError

DISCRIMINATOR_SIZE = 8


def account_discriminator(name: str) -> bytes:
    """Compute the Anchor account discriminator for an account type name.

    :param name: Account type name (e.g., "PullFeedAccountData").
    :returns: First 8 bytes of ``sha256("account:<name>")``.
    """
    return hashlib.sha256(f"account:{name}".encode()).digest()[:DISCRIMINATOR_SIZE]


PULL_FEED_DISCRIMINATOR = account_discriminator("PullFeedAccountData")
QUEUE_DISCRIMINATOR = account_discriminator("QueueAccountData")

PULL_FEED_SIZE = 3200
_FEED_AUTHORITY = 2048
_FEED_QUEUE = 2080
_FEED_HASH = 2112
_FEED_MAX_VARIANCE = 2160
_FEED_MIN_RESPONSES = 2168
_FEED_NAME = 2172
_FEED_MIN_SAMPLE_SIZE = 2207
_FEED_LAST_UPDATE = 2208
_FEED_LUT_SLOT = 2216
_FEED_MAX_STALENESS = 2384

QUEUE_SIZE = 5200
MAX_QUEUE_ORACLES = 128
_QUEUE_ORACLE_KEYS = 1056
_QUEUE_ORACLE_KEYS_LEN = 5196

ORACLE_SIZE = 3632
_ORACLE_AUTHORITY = 3424
_ORACLE_QUEUE = 3456
_ORACLE_SECP_AUTHORITY = 3504
_ORACLE_GATEWAY_URI = 3568


@dataclass(frozen=True)
class FeedConfig:
    """Feed configuration decoded from a pull feed account snapshot.

    :ivar feed_hash: 32-byte digest identifying the job definition.
    :ivar min_sample_size: Minimum oracle samples for a valid update.
    :ivar max_variance: Maximum variance, scaled by 1e9.
    :ivar min_responses: Minimum job responses per oracle.
    :ivar authority: Feed authority.
    :ivar queue: Queue the feed is routed through.
    :ivar name: Human readable feed name.
    :ivar max_staleness: Maximum staleness in slots.
    :ivar last_update_timestamp: Unix time of the last update.
    :ivar lut_slot: Slot of the feed's address lookup table.
    """

    feed_hash: bytes
    min_sample_size: int
    max_variance: int
    min_responses: int
    authority: Pubkey
    queue: Pubkey
    name: str
    max_staleness: int
    last_update_timestamp: int
    lut_slot: int

    @property
    def feed_hash_hex(self) -> str:
        """Hex encoding of the feed hash, as used by the job-resolution service."""
        return self.feed_hash.hex()


@dataclass(frozen=True)
class QueueConfig:
    """Queue configuration decoded from a queue account.

    :ivar authority: Queue authority.
    :ivar oracle_keys: Oracles registered on the queue, in registry order.
    """

    authority: Pubkey
    oracle_keys: tuple[Pubkey, ...]


@dataclass(frozen=True)
class OracleRecord:
    """Oracle account fields needed to reach its gateway.

    :ivar authority: Oracle authority.
    :ivar queue: Queue the oracle belongs to.
    :ivar secp_authority: 64-byte secp256k1 public key of the oracle.
    :ivar gateway_uri: Gateway base URL, or None if unset.
    """

    authority: Pubkey
    queue: Pubkey
    secp_authority: bytes
    gateway_uri: str | None


def _check_discriminator(data: bytes, expected: bytes, size: int, name: str) -> None:
    if len(data) < DISCRIMINATOR_SIZE:
        raise AccountDecodeError(f"Invalid {name} account: {len(data)} bytes")
    if data[:DISCRIMINATOR_SIZE] != expected:
        raise AccountDecodeError(f"Invalid {name} account: discriminator mismatch")
    if len(data) < DISCRIMINATOR_SIZE + size:
        raise AccountDecodeError(
            f"Invalid {name} account: expected {DISCRIMINATOR_SIZE + size} bytes, "
            f"got {len(data)}"
        )


def _pubkey(body: bytes, offset: int) -> Pubkey:
    return Pubkey.from_bytes(body[offset:offset + 32])


def _text(raw: bytes) -> str:
    return raw.rstrip(b"\x00").decode("utf-8", errors="replace")


def decode_feed_account(data: bytes) -> FeedConfig:
    """Decode a pull feed account into its configuration.

    :param data: Raw account data including the discriminator.
    :returns: Decoded feed configuration.
    :raises AccountDecodeError: If the length or discriminator is invalid.

    .. code-block:: python

        >>> decode_feed_account(b"\\x00" * 4)
        Traceback (most recent call last):
        AccountDecodeError: Invalid PullFeedAccountData account: 4 bytes
    """
    _check_discriminator(data, PULL_FEED_DISCRIMINATOR, PULL_FEED_SIZE, "PullFeedAccountData")
    body = bytes(data[DISCRIMINATOR_SIZE:DISCRIMINATOR_SIZE + PULL_FEED_SIZE])

    (max_variance,) = struct.unpack_from("<Q", body, _FEED_MAX_VARIANCE)
    (min_responses,) = struct.unpack_from("<I", body, _FEED_MIN_RESPONSES)
    (min_sample_size,) = struct.unpack_from("<B", body, _FEED_MIN_SAMPLE_SIZE)
    last_update, lut_slot = struct.unpack_from("<qQ", body, _FEED_LAST_UPDATE)
    (max_staleness,) = struct.unpack_from("<I", body, _FEED_MAX_STALENESS)

    return FeedConfig(
        feed_hash=body[_FEED_HASH:_FEED_HASH + 32],
        min_sample_size=min_sample_size,
        max_variance=max_variance,
        min_responses=min_responses,
        authority=_pubkey(body, _FEED_AUTHORITY),
        queue=_pubkey(body, _FEED_QUEUE),
        name=_text(body[_FEED_NAME:_FEED_NAME + 32]),
        max_staleness=max_staleness,
        last_update_timestamp=last_update,
        lut_slot=lut_slot,
    )


def decode_queue_account(data: bytes) -> QueueConfig:
    """Decode a queue account into its oracle registry.

    :param data: Raw account data including the discriminator.
    :returns: Decoded queue configuration.
    :raises AccountDecodeError: If the account is malformed.
    """
    _check_discriminator(data, QUEUE_DISCRIMINATOR, QUEUE_SIZE, "QueueAccountData")
    body = bytes(data[DISCRIMINATOR_SIZE:DISCRIMINATOR_SIZE + QUEUE_SIZE])

    (oracle_keys_len,) = struct.unpack_from("<I", body, _QUEUE_ORACLE_KEYS_LEN)
    if oracle_keys_len > MAX_QUEUE_ORACLES:
        raise AccountDecodeError(
            f"Invalid QueueAccountData account: {oracle_keys_len} oracle keys"
        )

    oracle_keys = tuple(
        _pubkey(body, _QUEUE_ORACLE_KEYS + 32 * i) for i in range(oracle_keys_len)
    )
    return QueueConfig(authority=_pubkey(body, 0), oracle_keys=oracle_keys)


def decode_oracle_account(data: bytes) -> OracleRecord:
    """Decode an oracle account, skipping its 8-byte header.

    :param data: Raw account data including the discriminator.
    :returns: Decoded oracle record.
    :raises AccountDecodeError: If the account is too short.
    """
    if len(data) < DISCRIMINATOR_SIZE + ORACLE_SIZE:
        raise AccountDecodeError(f"Invalid OracleAccountData account: {len(data)} bytes")
    body = bytes(data[DISCRIMINATOR_SIZE:DISCRIMINATOR_SIZE + ORACLE_SIZE])

    gateway_uri = _text(body[_ORACLE_GATEWAY_URI:_ORACLE_GATEWAY_URI + 64]) or None
    return OracleRecord(
        authority=_pubkey(body, _ORACLE_AUTHORITY),
        queue=_pubkey(body, _ORACLE_QUEUE),
        secp_authority=body[_ORACLE_SECP_AUTHORITY:_ORACLE_SECP_AUTHORITY + 64],
        gateway_uri=gateway_uri,
    )
