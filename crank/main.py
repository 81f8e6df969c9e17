#!/usr/bin/env python3
"""Switchboard Pull-Feed Crank.

Reads pull feed configurations from Solana, requests signed attestations
from the queue's oracle gateways and simulates the resulting submission
transaction against a rate-limited RPC endpoint.

Configure via CLI args or env vars. Transactions are simulated, never sent.
"""

import argparse
import asyncio
import logging
import os
import sys

from solders.pubkey import Pubkey

from .src.FeedUpdater import FeedUpdater, SubmitMode
from .src.gateway import DEFAULT_CROSSBAR_URL, CrossbarClient
from .src.RateBudget import RateBudget
from .src.RateLimitedRpcClient import RateLimitedRpcClient, load_keypair

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

DEFAULT_KEYPAIR_PATH = "~/.config/solana/id.json"


def parse_pubkeys(value: str | None) -> list[Pubkey]:
    """Parse a comma-separated list of base58 public keys.

    :param value: Comma-separated keys.
    :returns: Parsed keys, in order.
    :raises ValueError: If a key is not valid base58.
    """
    if not value:
        return []

    keys = []
    for item in value.split(","):
        item = item.strip()
        if item:
            keys.append(Pubkey.from_string(item))
    return keys


def env_flag(name: str) -> bool:
    """Read a boolean flag from the environment."""
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Switchboard Pull-Feed Crank: simulated pull feed submissions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Consensus submission for one feed
  python -m crank.main --rpc-url https://api.mainnet-beta.solana.com \\
      --feeds 6CyMpkE6kb1MkcxhNH5PM7wAPwm2Agu2P4Qa51nQgWfi

  # Per-oracle submissions with a custom keypair
  python -m crank.main --mode responses --keypair ./id.json \\
      --feeds 6CyMpkE6kb1MkcxhNH5PM7wAPwm2Agu2P4Qa51nQgWfi

Environment variables (CLI args take precedence):
  RPC_URL, KEYPAIR_PATH, FEEDS, QUEUE, MODE, CROSSBAR_URL, NUM_SIGNATURES,
  RATE_CAPACITY, RATE_INTERVAL, CONCURRENCY, RPC_TIMEOUT, VERIFY_SIGNATURES
""",
    )

    parser.add_argument(
        "--rpc-url",
        dest="rpc_url",
        type=str,
        help="Solana RPC endpoint URL",
        default=os.environ.get("RPC_URL"),
    )

    parser.add_argument(
        "--keypair",
        type=str,
        help=f"Path to a Solana JSON keypair (default: {DEFAULT_KEYPAIR_PATH})",
        default=os.environ.get("KEYPAIR_PATH") or DEFAULT_KEYPAIR_PATH,
    )

    parser.add_argument(
        "--feeds",
        type=str,
        help="Comma-separated pull feed addresses",
        default=os.environ.get("FEEDS"),
    )

    parser.add_argument(
        "--queue",
        type=str,
        help="Queue address (default: each feed's own queue)",
        default=os.environ.get("QUEUE"),
    )

    parser.add_argument(
        "--mode",
        type=str,
        choices=[m.value for m in SubmitMode],
        help="Submission mode (default: consensus)",
        default=os.environ.get("MODE") or SubmitMode.CONSENSUS.value,
    )

    parser.add_argument(
        "--crossbar-url",
        dest="crossbar_url",
        type=str,
        help=f"Crossbar job-resolution service (default: {DEFAULT_CROSSBAR_URL})",
        default=os.environ.get("CROSSBAR_URL") or DEFAULT_CROSSBAR_URL,
    )

    parser.add_argument(
        "--num-signatures",
        dest="num_signatures",
        type=int,
        help="Oracles asked to sign a consensus (default: 1)",
        default=int(os.environ.get("NUM_SIGNATURES") or "1"),
    )

    parser.add_argument(
        "--rate-capacity",
        dest="rate_capacity",
        type=int,
        help="RPC calls allowed per refill window (default: 15)",
        default=int(os.environ.get("RATE_CAPACITY") or RateBudget.DEFAULT_CAPACITY),
    )

    parser.add_argument(
        "--rate-interval",
        dest="rate_interval",
        type=float,
        help="Seconds between rate budget refills (default: 15.0)",
        default=float(os.environ.get("RATE_INTERVAL") or RateBudget.DEFAULT_REFILL_INTERVAL),
    )

    parser.add_argument(
        "--concurrency",
        type=int,
        help="Concurrent chunks for multi-account reads (default: 5)",
        default=int(os.environ.get("CONCURRENCY") or RateLimitedRpcClient.DEFAULT_CONCURRENCY),
    )

    parser.add_argument(
        "--rpc-timeout",
        dest="rpc_timeout",
        type=float,
        help="RPC connection timeout in seconds (default: 180.0)",
        default=float(os.environ.get("RPC_TIMEOUT") or RateLimitedRpcClient.DEFAULT_TIMEOUT),
    )

    parser.add_argument(
        "--verify-signatures",
        dest="verify_signatures",
        action="store_true",
        help="Recover consensus signatures locally before simulating",
        default=env_flag("VERIFY_SIGNATURES"),
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    return parser


async def run(args: argparse.Namespace, feeds: list[Pubkey], queue: Pubkey | None) -> int:
    """Run one submission cycle per feed.

    :returns: Process exit code (0 if every cycle simulated successfully).
    """
    keypair = load_keypair(args.keypair)
    budget = RateBudget(capacity=args.rate_capacity, refill_interval=args.rate_interval)

    async with RateLimitedRpcClient(
        args.rpc_url, keypair, budget=budget, timeout=args.rpc_timeout
    ) as client:
        updater = FeedUpdater(
            client,
            crossbar=CrossbarClient(args.crossbar_url),
            queue=queue,
            num_signatures=args.num_signatures,
            verify_signatures=args.verify_signatures,
            concurrency_limit=args.concurrency,
        )
        results = await updater.run(feeds, SubmitMode(args.mode))

    failed = [str(feed) for feed, report in results.items() if report is None or not report.ok]
    if failed:
        logger.warning(f"Unsuccessful feeds: {', '.join(failed)}")
        return 1
    return 0


def main() -> None:
    """Main entry point for the pull-feed crank CLI."""
    parser = build_parser()
    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Validate arguments
    if not args.rpc_url:
        parser.error("--rpc-url (or RPC_URL) is required")

    if args.num_signatures < 1:
        parser.error("--num-signatures must be at least 1")

    if args.rate_capacity < 1:
        parser.error("--rate-capacity must be at least 1")

    if args.rate_interval <= 0:
        parser.error("--rate-interval must be positive")

    if args.concurrency < 1:
        parser.error("--concurrency must be at least 1")

    try:
        feeds = parse_pubkeys(args.feeds)
        queues = parse_pubkeys(args.queue)
    except ValueError as e:
        parser.error(f"Invalid address: {e}")

    if not feeds:
        parser.error("At least one feed must be specified")

    if len(queues) > 1:
        parser.error("Only one queue may be specified")
    queue = queues[0] if queues else None

    # Log configuration
    logger.info("=" * 60)
    logger.info("Switchboard Pull-Feed Crank")
    logger.info("=" * 60)
    logger.info(f"RPC URL:           {args.rpc_url}")
    logger.info(f"Feeds:             {', '.join(str(f) for f in feeds)}")
    logger.info(f"Queue:             {queue or 'from feed'}")
    logger.info(f"Mode:              {args.mode}")
    logger.info(f"Crossbar:          {args.crossbar_url}")
    logger.info(f"Rate Budget:       {args.rate_capacity} calls / {args.rate_interval}s")
    logger.info(f"Concurrency:       {args.concurrency}")
    logger.info("=" * 60)

    try:
        exit_code = asyncio.run(run(args, feeds, queue))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        return
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
