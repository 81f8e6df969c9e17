"""FeedUpdater: Orchestrates one submission cycle per feed.

A cycle:
    1. Fetch and decode the pull feed account
    2. Resolve the gateways of the queue's oracles
    3. Fetch the latest blockhash and slot concurrently
    4. Resolve the feed's jobs from Crossbar
    5. Request attestations with linear gateway failover
    6. Build the submission instructions
    7. Sign and simulate the transaction

Any failure aborts the cycle for that feed: it is logged with its context
and the cycle returns None. Nothing is retried except the gateway failover.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from solders.hash import Hash
from solders.pubkey import Pubkey

from .ConsensusAggregator import build_consensus_instructions, build_submit_responses_instruction
from .ConsensusFetcher import ConsensusFetcher
from .errors import CrankError
from .FeedAccountDecoder import FeedConfig, decode_feed_account
from .gateway import CrossbarClient, Gateway, HttpService
from .GatewayResolver import GatewayResolver
from .instructions import SubmitParams
from .RateLimitedRpcClient import RateLimitedRpcClient
from .TransactionAssembler import SimulationReport, TransactionAssembler

logger = logging.getLogger(__name__)


class SubmitMode(str, Enum):
    """How attestations are submitted on-chain."""

    CONSENSUS = "consensus"
    RESPONSES = "responses"


@dataclass(frozen=True)
class CycleContext:
    """Everything a cycle gathers before asking gateways to sign.

    :ivar feed_key: Pull feed account address.
    :ivar feed: Decoded feed configuration.
    :ivar queue: Queue whose oracles attest the feed.
    :ivar gateways: Resolved gateways in attempt order.
    :ivar blockhash: Latest blockhash.
    :ivar slot: Current slot.
    :ivar encoded_jobs: Encoded job definitions for the feed.
    """

    feed_key: Pubkey
    feed: FeedConfig
    queue: Pubkey
    gateways: list[Gateway]
    blockhash: Hash
    slot: int
    encoded_jobs: list[str]

    def describe(self) -> str:
        return (
            f"feed: {self.feed_key} ({self.feed.name or self.feed.feed_hash_hex}) "
            f"latest_blockhash: {self.blockhash}"
        )


class FeedUpdater:
    """Runs submission cycles for pull feeds.

    :ivar client: Rate-limited RPC client.
    :ivar crossbar: Job-resolution service client.
    :ivar queue: Queue override; None uses each feed's own queue.
    :ivar num_signatures: Oracles asked to sign a consensus.
    :ivar verify_signatures: Recover consensus signatures before submitting.
    """

    def __init__(
        self,
        client: RateLimitedRpcClient,
        crossbar: CrossbarClient | None = None,
        queue: Pubkey | None = None,
        num_signatures: int = 1,
        verify_signatures: bool = False,
        concurrency_limit: int | None = None,
    ) -> None:
        """Initialize the updater.

        :param client: Rate-limited RPC client.
        :param crossbar: Crossbar client (default: public Crossbar).
        :param queue: Queue override (default: the feed's queue).
        :param num_signatures: Oracles asked to sign a consensus (default: 1).
        :param verify_signatures: Check consensus signatures locally.
        :param concurrency_limit: Chunk fan-out for oracle account reads.
        :raises ValueError: If num_signatures is not positive.
        """
        if num_signatures < 1:
            raise ValueError("num_signatures must be at least 1")

        self.client = client
        self.crossbar = crossbar or CrossbarClient()
        self.queue = queue
        self.num_signatures = num_signatures
        self.verify_signatures = verify_signatures
        self.resolver = GatewayResolver(client, concurrency_limit)
        self.assembler = TransactionAssembler(client)

    async def load_feed(self, feed_key: Pubkey) -> FeedConfig:
        """Fetch and decode a pull feed account.

        :raises RpcError: If the account cannot be fetched.
        :raises AccountDecodeError: If it is not a pull feed account.
        """
        account = await self.client.get_account(feed_key)
        feed = decode_feed_account(bytes(account.data))
        logger.info(f"Successfully deserialized - {feed_key} to {feed}")
        return feed

    async def prepare(self, feed_key: Pubkey) -> CycleContext:
        """Gather the on-chain and off-chain inputs of a cycle."""
        feed = await self.load_feed(feed_key)
        queue = self.queue or feed.queue
        gateways = await self.resolver.resolve(queue)
        logger.info(f"Constructed queue_gateways => {gateways}")

        blockhash, slot = await asyncio.gather(
            self.client.get_latest_blockhash(), self.client.get_slot()
        )
        encoded_jobs = await self.crossbar.fetch_encoded_jobs(feed.feed_hash_hex)

        return CycleContext(
            feed_key=feed_key,
            feed=feed,
            queue=queue,
            gateways=gateways,
            blockhash=blockhash,
            slot=slot,
            encoded_jobs=encoded_jobs,
        )

    def _params(self, ctx: CycleContext) -> SubmitParams:
        return SubmitParams(feed=ctx.feed_key, queue=ctx.queue, payer=self.client.payer)

    async def submit_consensus(self, feed_key: Pubkey) -> SimulationReport | None:
        """Run a consensus-mode cycle for a feed.

        :param feed_key: Pull feed account address.
        :returns: Simulation report, or None if the cycle was aborted.
        """
        ctx: CycleContext | None = None
        try:
            ctx = await self.prepare(feed_key)
            fetcher = ConsensusFetcher(ctx.describe())
            outcome = await fetcher.fetch(
                ctx.gateways,
                lambda gateway: gateway.fetch_signatures_consensus(
                    ctx.feed, ctx.encoded_jobs, str(ctx.blockhash), self.num_signatures
                ),
            )
            instructions = build_consensus_instructions(
                self._params(ctx), outcome.response, ctx.slot, verify=self.verify_signatures
            )
            report = await self.assembler.simulate(instructions, ctx.blockhash)
        except CrankError as e:
            context = ctx.describe() if ctx else f"feed: {feed_key}"
            logger.error(f"Failed to submit consensus for {context}: [{e.kind.value}] {e}")
            return None

        logger.info(f"Simulated pull_feed_submit_response_consensus for {feed_key}")
        return report

    async def submit_responses(self, feed_key: Pubkey) -> SimulationReport | None:
        """Run a per-oracle-mode cycle for a feed.

        :param feed_key: Pull feed account address.
        :returns: Simulation report, or None if the cycle was aborted.
        """
        ctx: CycleContext | None = None
        try:
            ctx = await self.prepare(feed_key)
            fetcher = ConsensusFetcher(ctx.describe())
            outcome = await fetcher.fetch(
                ctx.gateways,
                lambda gateway: gateway.fetch_signatures(
                    ctx.feed, ctx.encoded_jobs, str(ctx.blockhash)
                ),
            )
            logger.info(
                f"Retrieved {len(outcome.response)} oracle responses for {feed_key}"
            )
            instruction = build_submit_responses_instruction(
                self._params(ctx), outcome.response, ctx.slot
            )
            report = await self.assembler.simulate([instruction], ctx.blockhash)
        except CrankError as e:
            context = ctx.describe() if ctx else f"feed: {feed_key}"
            logger.error(f"Failed to submit responses for {context}: [{e.kind.value}] {e}")
            return None

        logger.info(f"Simulated pull_feed_submit_response for {feed_key}")
        return report

    async def run(
        self,
        feeds: list[Pubkey],
        mode: SubmitMode = SubmitMode.CONSENSUS,
    ) -> dict[Pubkey, SimulationReport | None]:
        """Run one cycle per feed, in order.

        :param feeds: Pull feed account addresses.
        :param mode: Submission mode.
        :returns: Report per feed (None for aborted cycles).
        """
        submit = (
            self.submit_consensus if mode is SubmitMode.CONSENSUS else self.submit_responses
        )
        results: dict[Pubkey, SimulationReport | None] = {}
        try:
            for feed_key in feeds:
                results[feed_key] = await submit(feed_key)
        finally:
            await HttpService.close_shared_client()
        return results
