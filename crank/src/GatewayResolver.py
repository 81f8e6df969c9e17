"""GatewayResolver: Resolve a queue's oracles to their gateway endpoints.

Loads the queue's oracle registry, fetches every oracle account in one
batched read and extracts each oracle's gateway URL. Oracles whose account
is missing, undecodable or has no gateway are skipped; the remaining
gateways keep the registry order.

Resolution is done fresh for every submission attempt; oracle gateways are
never cached across cycles.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from solders.pubkey import Pubkey

from .errors import AccountDecodeError
from .FeedAccountDecoder import decode_oracle_account, decode_queue_account
from .gateway import Gateway
from .RateLimitedRpcClient import RateLimitedRpcClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OracleEntry:
    """An oracle and the gateway it advertises.

    :ivar oracle: Oracle account address.
    :ivar gateway_uri: Gateway URL, or None if the oracle could not be resolved.
    """

    oracle: Pubkey
    gateway_uri: str | None = None


class GatewayResolver:
    """Resolves gateways for the oracles registered on a queue.

    :ivar client: Rate-limited RPC client.
    :ivar concurrency_limit: Chunk fan-out for the oracle account read.
    """

    def __init__(
        self,
        client: RateLimitedRpcClient,
        concurrency_limit: int | None = None,
        gateway_factory: Callable[[str], Gateway] = Gateway,
    ) -> None:
        """Initialize the resolver.

        :param client: Rate-limited RPC client.
        :param concurrency_limit: Chunk fan-out for multi-account reads.
        :param gateway_factory: Builds a gateway handle from a URL.
        """
        self.client = client
        self.concurrency_limit = concurrency_limit
        self.gateway_factory = gateway_factory

    async def load_oracle_keys(self, queue: Pubkey) -> list[Pubkey]:
        """Load the oracle registry of a queue.

        :raises RpcError: If the queue account cannot be fetched.
        :raises AccountDecodeError: If the queue account is malformed.
        """
        account = await self.client.get_account(queue)
        return list(decode_queue_account(bytes(account.data)).oracle_keys)

    async def resolve_entries(self, queue: Pubkey) -> list[OracleEntry]:
        """Resolve every oracle of a queue, including unresolved ones.

        :param queue: Queue account address.
        :returns: One entry per registered oracle, in registry order.
        """
        oracle_keys = await self.load_oracle_keys(queue)
        accounts = await self.client.get_multiple_accounts(
            oracle_keys, self.concurrency_limit
        )

        entries: list[OracleEntry] = []
        for oracle, account in zip(oracle_keys, accounts, strict=True):
            if account is None:
                logger.warning(
                    f"getMultipleAccounts returned None for - oracle_pubkey: {oracle}"
                )
                entries.append(OracleEntry(oracle))
                continue

            try:
                record = decode_oracle_account(bytes(account.data))
            except AccountDecodeError as e:
                logger.warning(f"Failed to decode oracle account {oracle}: {e}")
                entries.append(OracleEntry(oracle))
                continue

            logger.debug(f"Oracle {oracle} has gateway {record.gateway_uri!r}")
            entries.append(OracleEntry(oracle, record.gateway_uri))

        return entries

    async def resolve(self, queue: Pubkey) -> list[Gateway]:
        """Resolve the gateways of a queue's oracles.

        :param queue: Queue account address.
        :returns: Gateway handles in registry order; may be empty.
        :raises RpcError: If the queue account cannot be fetched.
        :raises AccountDecodeError: If the queue account is malformed.
        """
        entries = await self.resolve_entries(queue)
        gateways = [
            self.gateway_factory(entry.gateway_uri)
            for entry in entries
            if entry.gateway_uri is not None
        ]
        logger.info(
            f"Resolved {len(gateways)}/{len(entries)} gateways for queue {queue}"
        )
        return gateways
