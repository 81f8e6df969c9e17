"""Unit tests for RateLimitedRpcClient."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from solana.rpc.commitment import Processed
from solana.rpc.core import RPCException
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import CompileError, Message, MessageV0
from solders.pubkey import Pubkey

from crank.src.errors import ConfigError, MessageCompileError, RpcError, SigningError
from crank.src.RateBudget import RateBudget
from crank.src.RateLimitedRpcClient import RateLimitedRpcClient, load_keypair
from crank.tests.builders import fake_account, rpc_response

RPC_URL = "http://localhost:8899"


def make_client(rpc: AsyncMock | None = None, keypair: Keypair | None = None) -> RateLimitedRpcClient:
    return RateLimitedRpcClient(
        RPC_URL,
        keypair or Keypair(),
        budget=RateBudget(capacity=15, refill_interval=60.0),
        rpc_client=rpc or AsyncMock(),
    )


def noop_instruction(payer: Pubkey) -> Instruction:
    return Instruction(
        Pubkey.new_unique(),
        b"\x01",
        [AccountMeta(payer, is_signer=True, is_writable=True)],
    )


class TestLoadKeypair:
    """Test keypair file loading."""

    def test_load_valid_keypair(self, tmp_path) -> None:
        """A Solana CLI JSON keypair should load."""
        keypair = Keypair()
        path = tmp_path / "id.json"
        path.write_text(keypair.to_json())

        loaded = load_keypair(path)
        assert loaded.pubkey() == keypair.pubkey()

    def test_missing_file(self, tmp_path) -> None:
        """A missing file should raise ConfigError."""
        with pytest.raises(ConfigError, match="Failed to read keypair"):
            load_keypair(tmp_path / "missing.json")

    def test_malformed_file(self, tmp_path) -> None:
        """A malformed file should raise ConfigError."""
        path = tmp_path / "id.json"
        path.write_text("not a keypair")
        with pytest.raises(ConfigError, match="Invalid keypair"):
            load_keypair(path)


class TestGetMultipleAccounts:
    """Test chunked multi-account reads."""

    def test_chunks_and_degrades_failed_chunk(self) -> None:
        """12 keys should be read in chunks of 5, 5 and 2; a failed chunk yields Nones."""
        keys = [Pubkey.new_unique() for _ in range(12)]
        chunks: list[list[Pubkey]] = []

        async def get_multiple(chunk):
            chunks.append(list(chunk))
            if chunk[0] == keys[5]:
                raise httpx.ConnectError("node unavailable")
            return rpc_response([fake_account(bytes(k)) for k in chunk])

        async def scenario():
            rpc = AsyncMock()
            rpc.get_multiple_accounts.side_effect = get_multiple
            client = make_client(rpc)
            result = await client.get_multiple_accounts(keys)
            return result, client.budget.available

        result, available = asyncio.run(scenario())

        assert sorted(len(c) for c in chunks) == [2, 5, 5]
        assert len(result) == 12
        for i in range(5):
            assert result[i].data == bytes(keys[i])
        assert result[5:10] == [None] * 5
        assert result[10].data == bytes(keys[10])
        assert result[11].data == bytes(keys[11])
        # One unit per multi-account read
        assert available == 14

    def test_preserves_order_when_chunks_complete_out_of_order(self) -> None:
        """Results should follow input order even if later chunks finish first."""
        keys = [Pubkey.new_unique() for _ in range(10)]

        async def get_multiple(chunk):
            if chunk[0] == keys[0]:
                await asyncio.sleep(0.01)
            return rpc_response([fake_account(bytes(k)) for k in chunk])

        async def scenario():
            rpc = AsyncMock()
            rpc.get_multiple_accounts.side_effect = get_multiple
            return await make_client(rpc).get_multiple_accounts(keys)

        result = asyncio.run(scenario())
        assert [a.data for a in result] == [bytes(k) for k in keys]

    def test_wrong_length_chunk_degrades_to_none(self) -> None:
        """A chunk answered with the wrong number of accounts should yield Nones."""
        keys = [Pubkey.new_unique() for _ in range(5)]

        async def scenario():
            rpc = AsyncMock()
            rpc.get_multiple_accounts.return_value = rpc_response([fake_account(b"")] * 4)
            return await make_client(rpc).get_multiple_accounts(keys)

        assert asyncio.run(scenario()) == [None] * 5

    def test_missing_accounts_are_none(self) -> None:
        """Accounts that do not exist should come back as None."""
        keys = [Pubkey.new_unique() for _ in range(2)]

        async def scenario():
            rpc = AsyncMock()
            rpc.get_multiple_accounts.return_value = rpc_response([None, fake_account(b"x")])
            return await make_client(rpc).get_multiple_accounts(keys)

        result = asyncio.run(scenario())
        assert result[0] is None
        assert result[1].data == b"x"

    def test_empty_input(self) -> None:
        """No keys should mean no RPC call and no budget spent."""

        async def scenario():
            rpc = AsyncMock()
            client = make_client(rpc)
            result = await client.get_multiple_accounts([])
            return result, rpc, client.budget.available

        result, rpc, available = asyncio.run(scenario())
        assert result == []
        rpc.get_multiple_accounts.assert_not_called()
        assert available == 15

    def test_concurrency_limit(self) -> None:
        """No more than concurrency_limit chunks should be in flight."""
        keys = [Pubkey.new_unique() for _ in range(20)]
        in_flight = 0
        peak = 0

        async def get_multiple(chunk):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.005)
            in_flight -= 1
            return rpc_response([fake_account(b"") for _ in chunk])

        async def scenario():
            rpc = AsyncMock()
            rpc.get_multiple_accounts.side_effect = get_multiple
            return await make_client(rpc).get_multiple_accounts(keys, concurrency_limit=2)

        result = asyncio.run(scenario())
        assert len(result) == 20
        assert peak == 2


class TestSingleReads:
    """Test single-value RPC reads."""

    def test_get_account(self) -> None:
        """An existing account should be returned."""

        async def scenario():
            rpc = AsyncMock()
            rpc.get_account_info.return_value = rpc_response(fake_account(b"data"))
            return await make_client(rpc).get_account(Pubkey.new_unique())

        assert asyncio.run(scenario()).data == b"data"

    def test_get_account_not_found(self) -> None:
        """A missing account should raise RpcError."""

        async def scenario():
            rpc = AsyncMock()
            rpc.get_account_info.return_value = rpc_response(None)
            await make_client(rpc).get_account(Pubkey.new_unique())

        with pytest.raises(RpcError, match="not found"):
            asyncio.run(scenario())

    def test_get_account_transport_failure(self) -> None:
        """Transport failures should be translated and chained."""

        async def scenario():
            rpc = AsyncMock()
            rpc.get_account_info.side_effect = httpx.ConnectError("connection reset")
            await make_client(rpc).get_account(Pubkey.new_unique())

        with pytest.raises(RpcError) as exc_info:
            asyncio.run(scenario())
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    def test_get_latest_blockhash_and_slot(self) -> None:
        """Blockhash and slot should be unwrapped from their responses."""
        blockhash = Hash.new_unique()

        async def scenario():
            rpc = AsyncMock()
            rpc.get_latest_blockhash.return_value = rpc_response(MagicMock(blockhash=blockhash))
            rpc.get_slot.return_value = rpc_response(321)
            client = make_client(rpc)
            return (
                await client.get_latest_blockhash(),
                await client.get_slot(),
                client.budget.available,
            )

        assert asyncio.run(scenario()) == (blockhash, 321, 13)


class TestBuildTransaction:
    """Test transaction compilation and signing."""

    def test_legacy_message_without_lookup_tables(self) -> None:
        """No lookup tables should produce a signed legacy transaction."""
        keypair = Keypair()
        client = make_client(keypair=keypair)
        tx = client.build_transaction(None, [noop_instruction(keypair.pubkey())], Hash.default())

        assert isinstance(tx.message, Message)
        assert tx.message.account_keys[0] == keypair.pubkey()
        assert len(tx.signatures) == 1

    def test_v0_message_with_lookup_tables(self) -> None:
        """An empty lookup-table list should still produce a v0 message."""
        keypair = Keypair()
        client = make_client(keypair=keypair)
        tx = client.build_transaction([], [noop_instruction(keypair.pubkey())], Hash.default())

        assert isinstance(tx.message, MessageV0)

    def test_signer_mismatch(self) -> None:
        """Signers that do not match the message should raise SigningError."""
        keypair = Keypair()
        client = make_client(keypair=keypair)
        with pytest.raises(SigningError):
            client.build_transaction(
                None, [noop_instruction(keypair.pubkey())], Hash.default(), signers=[Keypair()]
            )

    def test_compile_failure(self) -> None:
        """A v0 compile failure should raise MessageCompileError."""
        keypair = Keypair()
        client = make_client(keypair=keypair)

        with patch("crank.src.RateLimitedRpcClient.MessageV0") as message_v0:
            message_v0.try_compile.side_effect = CompileError("account index overflow")
            with pytest.raises(MessageCompileError, match="account index overflow") as exc_info:
                client.build_transaction([], [noop_instruction(keypair.pubkey())], Hash.default())

        assert isinstance(exc_info.value.__cause__, CompileError)


class TestCallInstructions:
    """Test simulation."""

    def test_simulates_without_signature_verification(self) -> None:
        """Simulation should skip signature checks at processed commitment."""
        keypair = Keypair()
        result = MagicMock(err=None, logs=[], units_consumed=10)

        async def scenario():
            rpc = AsyncMock()
            rpc.simulate_transaction.return_value = rpc_response(result)
            client = make_client(rpc, keypair)
            value = await client.call_instructions(
                None, [noop_instruction(keypair.pubkey())], Hash.default()
            )
            return value, rpc, client.budget.available

        value, rpc, available = asyncio.run(scenario())
        assert value is result
        _, kwargs = rpc.simulate_transaction.call_args
        assert kwargs == {"sig_verify": False, "commitment": Processed}
        assert available == 14

    def test_simulation_failure(self) -> None:
        """A failed simulation request should raise RpcError."""
        keypair = Keypair()

        async def scenario():
            rpc = AsyncMock()
            rpc.simulate_transaction.side_effect = RPCException("blockhash not found")
            client = make_client(rpc, keypair)
            await client.call_instructions(
                None, [noop_instruction(keypair.pubkey())], Hash.default()
            )

        with pytest.raises(RpcError, match="simulateTransaction failed"):
            asyncio.run(scenario())


class TestLifecycle:
    """Test start/close handling."""

    def test_context_manager(self) -> None:
        """The context manager should run the budget and close the connection."""

        async def scenario():
            rpc = AsyncMock()
            client = make_client(rpc)
            async with client:
                running = client.budget.running
            return running, client.budget.closed, rpc

        running, closed, rpc = asyncio.run(scenario())
        assert running
        assert closed
        rpc.close.assert_awaited_once()

    def test_payer_is_keypair_pubkey(self) -> None:
        """The payer should be the default signer."""
        keypair = Keypair()
        client = make_client(keypair=keypair)
        assert client.payer == keypair.pubkey()
        assert client.keypair is keypair
