"""Oracle gateway client.

Endpoints:
    POST {gateway}/gateway/api/v1/fetch_signatures
    POST {gateway}/gateway/api/v1/fetch_signatures_consensus

A :class:`Gateway` is an opaque handle to one oracle's gateway URL. It asks
the gateway's oracles to run a feed's jobs against a recent blockhash and
returns their signed results.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from ..FeedAccountDecoder import FeedConfig
from .base import HttpService
from .models import ConsensusResponse, OracleResponse, parse_oracle_responses

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

# max_variance is stored on-chain scaled by 1e9
VARIANCE_SCALE = 1_000_000_000


def per_oracle_signature_count(min_sample_size: int) -> int:
    """Number of signatures to request in per-oracle mode.

    Asks for a third more than the minimum sample size so a few failing
    oracles do not sink the update.

    .. code-block:: python

        >>> per_oracle_signature_count(3)
        4
    """
    return min_sample_size + math.ceil(min_sample_size / 3)


class Gateway(HttpService):
    """Handle to a single oracle gateway."""

    def __repr__(self) -> str:
        return f"Gateway({self.base_url!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Gateway):
            return NotImplemented
        return self.base_url == other.base_url

    def __hash__(self) -> int:
        return hash(self.base_url)

    @staticmethod
    def _feed_request(feed: FeedConfig, encoded_jobs: list[str]) -> dict[str, Any]:
        return {
            "jobs_b64_encoded": encoded_jobs,
            "max_variance": feed.max_variance // VARIANCE_SCALE,
            "min_responses": feed.min_responses,
            "use_timestamp": False,
        }

    async def fetch_signatures(
        self,
        feed: FeedConfig,
        encoded_jobs: list[str],
        recent_hash: str,
        num_signatures: int | None = None,
    ) -> list[OracleResponse]:
        """Request one signed value per oracle.

        :param feed: Decoded feed configuration.
        :param encoded_jobs: Encoded job definitions.
        :param recent_hash: Recent blockhash (base58) anchoring the signatures.
        :param num_signatures: Oracles to sample (default: derived from
            ``min_sample_size``).
        :returns: Oracle responses in gateway order.
        :raises GatewayError: If the request fails.
        :raises AttestationParseError: If the response is malformed.
        """
        if num_signatures is None:
            num_signatures = per_oracle_signature_count(feed.min_sample_size)

        body = {
            "api_version": API_VERSION,
            "recent_chainhash": recent_hash,
            "signature_scheme": "Secp256k1",
            "hash_scheme": "Sha256",
            "num_signatures": num_signatures,
            **self._feed_request(feed, encoded_jobs),
        }
        logger.debug(f"Requesting {num_signatures} oracle signatures from {self.base_url}")
        payload = await self._post("/gateway/api/v1/fetch_signatures", json=body)
        return parse_oracle_responses(payload)

    async def fetch_signatures_consensus(
        self,
        feed: FeedConfig,
        encoded_jobs: list[str],
        recent_hash: str,
        num_signatures: int = 1,
    ) -> ConsensusResponse:
        """Request a consensus attestation for a feed.

        :param feed: Decoded feed configuration.
        :param encoded_jobs: Encoded job definitions.
        :param recent_hash: Recent blockhash (base58) anchoring the signatures.
        :param num_signatures: Oracles to sign the consensus (default: 1).
        :returns: Parsed consensus response.
        :raises GatewayError: If the request fails.
        :raises AttestationParseError: If the response is malformed.
        """
        body = {
            "api_version": API_VERSION,
            "recent_hash": recent_hash,
            "signature_scheme": "Secp256k1",
            "hash_scheme": "Sha256",
            "feed_requests": [self._feed_request(feed, encoded_jobs)],
            "num_oracles": num_signatures,
            "use_timestamp": False,
        }
        logger.debug(f"Requesting consensus from {num_signatures} oracles at {self.base_url}")
        payload = await self._post("/gateway/api/v1/fetch_signatures_consensus", json=body)
        return ConsensusResponse.from_json(payload)
