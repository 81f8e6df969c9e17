"""RateLimitedRpcClient: Rate-limited, fault-tolerant Solana RPC access.

Wraps solana-py's ``AsyncClient`` and gates every RPC round-trip behind a
shared :class:`~.RateBudget.RateBudget`. Only the calls this crank needs are
exposed: account reads, blockhash/slot reads and transaction simulation.

Multi-account reads are split into fixed-size chunks fetched with bounded
concurrency. A chunk that fails is degraded to ``None`` entries instead of
failing the whole read, so the result always lines up with the input keys.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed, Processed
from solana.rpc.core import RPCException
from solders.account import Account
from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.errors import SerdeJSONError, SignerError
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import CompileError, Message, MessageV0
from solders.pubkey import Pubkey
from solders.rpc.responses import RpcSimulateTransactionResult
from solders.transaction import VersionedTransaction

from .errors import ConfigError, MessageCompileError, RpcError, SigningError
from .RateBudget import RateBudget

logger = logging.getLogger(__name__)

# Errors raised by solana-py for transport and JSON-RPC failures
RPC_FAILURES = (SolanaRpcException, RPCException, httpx.HTTPError)


def load_keypair(path: str | Path) -> Keypair:
    """Load a Solana CLI JSON keypair file.

    :param path: Path to a file holding a JSON array of 64 integers.
    :returns: Loaded keypair.
    :raises ConfigError: If the file is missing or malformed.
    """
    key_path = Path(path).expanduser()
    try:
        raw = key_path.read_text()
    except OSError as e:
        raise ConfigError(f"Failed to read keypair file {key_path}: {e}") from e

    try:
        return Keypair.from_json(raw)
    except (ValueError, SerdeJSONError) as e:
        raise ConfigError(f"Invalid keypair file {key_path}: {e}") from e


class RateLimitedRpcClient:
    """Solana RPC client with a shared call budget.

    :cvar CHUNK_SIZE: Keys per getMultipleAccounts request.
    :cvar DEFAULT_CONCURRENCY: Chunks dispatched concurrently by default.
    :cvar DEFAULT_TIMEOUT: Connection-level timeout in seconds.
    :ivar rpc_url: RPC endpoint URL.
    :ivar budget: Shared rate budget.
    """

    CHUNK_SIZE = 5
    DEFAULT_CONCURRENCY = 5
    DEFAULT_TIMEOUT = 180.0

    def __init__(
        self,
        rpc_url: str,
        keypair: Keypair,
        budget: RateBudget | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        rpc_client: AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        :param rpc_url: RPC endpoint URL.
        :param keypair: Default signing identity and fee payer.
        :param budget: Shared rate budget (default: capacity 15, refill every 15s).
        :param timeout: Connection-level timeout in seconds (default: 180).
        :param rpc_client: Optional pre-built AsyncClient.
        """
        self.rpc_url = rpc_url
        self._keypair = keypair
        self.budget = budget or RateBudget()
        self.rpc_client = rpc_client or AsyncClient(
            rpc_url, commitment=Confirmed, timeout=timeout
        )
        logger.info(f"Connected wallet - {self.payer}")

    @property
    def payer(self) -> Pubkey:
        """Public key of the default signer, used as fee payer."""
        return self._keypair.pubkey()

    @property
    def keypair(self) -> Keypair:
        """Default signing keypair."""
        return self._keypair

    async def start(self) -> None:
        """Start the rate budget refill task."""
        self.budget.start()

    async def close(self) -> None:
        """Stop the rate budget and close the RPC connection."""
        await self.budget.close()
        await self.rpc_client.close()

    async def __aenter__(self) -> RateLimitedRpcClient:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def get_account(self, key: Pubkey) -> Account:
        """Fetch a single account.

        :param key: Account address.
        :returns: The account.
        :raises RpcError: If the request fails or the account does not exist.
        :raises RateBudgetError: If the budget is closed.
        """
        await self.budget.acquire()
        try:
            response = await self.rpc_client.get_account_info(key)
        except RPC_FAILURES as e:
            raise RpcError(f"getAccountInfo failed for {key}: {e}") from e

        if response.value is None:
            raise RpcError(f"Account {key} not found")
        return response.value

    async def get_multiple_accounts(
        self,
        keys: Sequence[Pubkey],
        concurrency_limit: int | None = None,
    ) -> list[Account | None]:
        """Fetch many accounts in chunks, degrading failed chunks to None.

        The result has exactly one entry per input key, in input order.

        :param keys: Account addresses.
        :param concurrency_limit: Max chunks in flight (default: 5).
        :returns: Accounts or None for each key.
        :raises RateBudgetError: If the budget is closed.
        """
        if not keys:
            return []

        await self.budget.acquire()

        chunks = [
            list(keys[i:i + self.CHUNK_SIZE])
            for i in range(0, len(keys), self.CHUNK_SIZE)
        ]
        semaphore = asyncio.Semaphore(concurrency_limit or self.DEFAULT_CONCURRENCY)

        async def fetch_chunk(chunk: list[Pubkey]) -> list[Account | None]:
            async with semaphore:
                try:
                    response = await self.rpc_client.get_multiple_accounts(chunk)
                except RPC_FAILURES as e:
                    logger.warning(
                        f"Failed to get multiple accounts with chunk size - "
                        f"{self.CHUNK_SIZE}: {e}"
                    )
                    return [None] * len(chunk)

            accounts = list(response.value)
            if len(accounts) != len(chunk):
                logger.warning(
                    f"getMultipleAccounts returned {len(accounts)} accounts "
                    f"for {len(chunk)} keys"
                )
                return [None] * len(chunk)
            return accounts

        # gather keeps dispatch order regardless of completion order
        results = await asyncio.gather(*(fetch_chunk(chunk) for chunk in chunks))
        return [account for chunk_result in results for account in chunk_result]

    async def get_latest_blockhash(self) -> Hash:
        """Fetch the latest blockhash.

        :raises RpcError: If the request fails.
        """
        await self.budget.acquire()
        try:
            response = await self.rpc_client.get_latest_blockhash()
        except RPC_FAILURES as e:
            raise RpcError(f"getLatestBlockhash failed: {e}") from e
        return response.value.blockhash

    async def get_slot(self) -> int:
        """Fetch the current slot.

        :raises RpcError: If the request fails.
        """
        await self.budget.acquire()
        try:
            response = await self.rpc_client.get_slot()
        except RPC_FAILURES as e:
            raise RpcError(f"getSlot failed: {e}") from e
        return response.value

    def build_transaction(
        self,
        lookup_tables: Sequence[AddressLookupTableAccount] | None,
        instructions: Sequence[Instruction],
        blockhash: Hash,
        signers: Sequence[Keypair] | None = None,
    ) -> VersionedTransaction:
        """Compile and sign a transaction.

        A legacy message is used when ``lookup_tables`` is None, otherwise a
        v0 message compiled against the given tables.

        :param lookup_tables: Address lookup tables, or None for a legacy message.
        :param instructions: Instructions to include.
        :param blockhash: Recent blockhash.
        :param signers: Signing keypairs (default: the client's keypair).
        :returns: Signed versioned transaction.
        :raises MessageCompileError: If the v0 message cannot be compiled.
        :raises SigningError: If the signers do not match the message.
        """
        signing_keypairs = list(signers) if signers else [self._keypair]

        message: Message | MessageV0
        if lookup_tables is None:
            message = Message.new_with_blockhash(list(instructions), self.payer, blockhash)
        else:
            try:
                message = MessageV0.try_compile(
                    self.payer, list(instructions), list(lookup_tables), blockhash
                )
            except CompileError as e:
                raise MessageCompileError(f"Failed to compile v0 message: {e}") from e

        try:
            return VersionedTransaction(message, signing_keypairs)
        except SignerError as e:
            raise SigningError(f"Failed to sign transaction: {e}") from e

    async def call_instructions(
        self,
        lookup_tables: Sequence[AddressLookupTableAccount] | None,
        instructions: Sequence[Instruction],
        blockhash: Hash,
        signers: Sequence[Keypair] | None = None,
    ) -> RpcSimulateTransactionResult:
        """Build, sign and simulate a transaction.

        The transaction is simulated only, never broadcast.

        :param lookup_tables: Address lookup tables, or None for a legacy message.
        :param instructions: Instructions to include.
        :param blockhash: Recent blockhash.
        :param signers: Signing keypairs (default: the client's keypair).
        :returns: Simulation result.
        :raises MessageCompileError: If the v0 message cannot be compiled.
        :raises SigningError: If signing fails.
        :raises RpcError: If the simulation request fails.
        """
        logger.debug(f"call_instructions: {list(instructions)}")

        transaction = self.build_transaction(lookup_tables, instructions, blockhash, signers)
        logger.info(f"VersionedTransaction serialized_size: {len(bytes(transaction))}")

        await self.budget.acquire()
        try:
            response = await self.rpc_client.simulate_transaction(
                transaction, sig_verify=False, commitment=Processed
            )
        except RPC_FAILURES as e:
            raise RpcError(f"simulateTransaction failed: {e}") from e
        return response.value
