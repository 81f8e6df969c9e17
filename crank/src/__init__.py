"""
Switchboard Pull-Feed Crank

This module submits pull feed updates through simulated transactions:
- RateBudget: Periodic full-refill admission control for RPC calls
- RateLimitedRpcClient: Budgeted Solana RPC access with chunked account reads
- FeedAccountDecoder: Alignment-agnostic decoding of feed, queue and oracle accounts
- GatewayResolver: Queue oracles to gateway endpoints
- ConsensusFetcher: Linear failover across gateways
- ConsensusAggregator: Attestations to submission instructions
- TransactionAssembler: Signing and simulation
- FeedUpdater: Main orchestrator for submission cycles
- gateway: Gateway and Crossbar HTTP clients
"""

from .ConsensusAggregator import build_consensus_instructions, build_submit_responses_instruction
from .ConsensusFetcher import ConsensusFetcher, FetchOutcome
from .errors import (
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
from .FeedAccountDecoder import FeedConfig, decode_feed_account
from .FeedUpdater import FeedUpdater, SubmitMode
from .GatewayResolver import GatewayResolver, OracleEntry
from .RateBudget import RateBudget
from .RateLimitedRpcClient import RateLimitedRpcClient, load_keypair
from .TransactionAssembler import SimulationReport, TransactionAssembler

__all__ = [
    "AccountDecodeError",
    "AttestationParseError",
    "ConfigError",
    "ConsensusExhaustedError",
    "ConsensusFetcher",
    "CrankError",
    "ErrorKind",
    "FeedConfig",
    "FeedUpdater",
    "FetchOutcome",
    "GatewayError",
    "GatewayResolver",
    "MessageCompileError",
    "OracleEntry",
    "RateBudget",
    "RateBudgetError",
    "RateLimitedRpcClient",
    "RpcError",
    "SigningError",
    "SimulationReport",
    "SubmitMode",
    "TransactionAssembler",
    "build_consensus_instructions",
    "build_submit_responses_instruction",
    "decode_feed_account",
    "load_keypair",
]
