"""
Off-chain collaborators reached over HTTP.

Usage:
    from crank.src.gateway import CrossbarClient, Gateway

    crossbar = CrossbarClient()
    jobs = await crossbar.fetch_encoded_jobs(feed.feed_hash_hex)

    gateway = Gateway("https://oracle.example.com")
    response = await gateway.fetch_signatures_consensus(feed, jobs, str(blockhash))
"""

from .base import HttpService
from .crossbar import DEFAULT_CROSSBAR_URL, CrossbarClient, JobEncoder, encode_jobs_json
from .gateway import Gateway, per_oracle_signature_count
from .models import (
    ConsensusOracleResponse,
    ConsensusResponse,
    FeedResponse,
    MedianResponse,
    OracleResponse,
    decode_oracle_pubkey,
    parse_oracle_responses,
)

__all__ = [
    # Base classes
    "HttpService",
    # Clients
    "CrossbarClient",
    "DEFAULT_CROSSBAR_URL",
    "Gateway",
    "JobEncoder",
    "encode_jobs_json",
    "per_oracle_signature_count",
    # Models
    "ConsensusOracleResponse",
    "ConsensusResponse",
    "FeedResponse",
    "MedianResponse",
    "OracleResponse",
    "decode_oracle_pubkey",
    "parse_oracle_responses",
]
