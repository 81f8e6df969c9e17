"""TransactionAssembler: Sign and simulate submission instructions.

Thin coordination over :meth:`RateLimitedRpcClient.call_instructions`. No
retries happen here; a failed simulation is terminal for the attempt.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair

from .RateLimitedRpcClient import RateLimitedRpcClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulationReport:
    """Outcome of a simulated submission.

    :ivar err: Transaction error reported by the simulation, if any.
    :ivar logs: Program logs.
    :ivar units_consumed: Compute units consumed, if reported.
    """

    err: object | None
    logs: tuple[str, ...]
    units_consumed: int | None

    @property
    def ok(self) -> bool:
        """Whether the simulated transaction succeeded."""
        return self.err is None


class TransactionAssembler:
    """Assembles, signs and simulates instruction sets.

    :ivar client: Rate-limited RPC client.
    """

    def __init__(self, client: RateLimitedRpcClient) -> None:
        """Initialize the assembler.

        :param client: Rate-limited RPC client.
        """
        self.client = client

    async def simulate(
        self,
        instructions: Sequence[Instruction],
        blockhash: Hash,
        lookup_tables: Sequence[AddressLookupTableAccount] | None = None,
        signers: Sequence[Keypair] | None = None,
    ) -> SimulationReport:
        """Sign and simulate an instruction set.

        :param instructions: Instructions in transaction order.
        :param blockhash: Recent blockhash.
        :param lookup_tables: Optional address lookup tables (v0 message).
        :param signers: Signers (default: the client's keypair).
        :returns: Simulation report.
        :raises MessageCompileError: If the message cannot be compiled.
        :raises SigningError: If signing fails.
        :raises RpcError: If the simulation request fails.
        """
        result = await self.client.call_instructions(
            lookup_tables, instructions, blockhash, signers
        )
        report = SimulationReport(
            err=result.err,
            logs=tuple(result.logs or ()),
            units_consumed=result.units_consumed,
        )

        if report.ok:
            logger.info(f"Simulation succeeded (units_consumed={report.units_consumed})")
        else:
            logger.warning(f"Simulation failed: {report.err}")
        for line in report.logs:
            logger.debug(f"  {line}")
        return report
