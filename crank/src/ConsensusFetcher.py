"""ConsensusFetcher: Linear failover across oracle gateways.

Attempts a request against each gateway of the resolved list in order and
returns the first success. A failed gateway is never retried and there is
no delay between attempts, so a given ordered list always produces the
same attempt sequence for the same failure pattern.

States::

    Attempting(0) --fail--> Attempting(1) --fail--> ... --fail--> Exhausted
          |                       |
          +--------ok-------------+---------------------------> Succeeded
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

import httpx

from .errors import ConsensusExhaustedError, CrankError
from .gateway import Gateway

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures that move on to the next gateway
GATEWAY_FAILURES = (CrankError, httpx.HTTPError)


@dataclass(frozen=True)
class FetchOutcome(Generic[T]):
    """Successful result of a failover fetch.

    :ivar response: Response returned by the gateway.
    :ivar gateway: Gateway that answered.
    :ivar attempts: Number of gateways tried, including the successful one.
    """

    response: T
    gateway: Gateway
    attempts: int


class ConsensusFetcher:
    """Runs a gateway request with linear failover.

    :ivar context: Free-form description (feed, blockhash) used in logs.
    """

    def __init__(self, context: str = "") -> None:
        """Initialize the fetcher.

        :param context: Description of the request for log messages.
        """
        self.context = context

    async def fetch(
        self,
        gateways: Sequence[Gateway],
        request: Callable[[Gateway], Awaitable[T]],
    ) -> FetchOutcome[T]:
        """Try ``request`` against each gateway until one succeeds.

        :param gateways: Resolved gateways in attempt order.
        :param request: Coroutine function issuing the request to one gateway.
        :returns: The first successful outcome.
        :raises ConsensusExhaustedError: If the list is empty or every gateway
            failed.
        """
        max_attempts = len(gateways)
        if max_attempts == 0:
            logger.error(f"No gateways to fetch from ({self.context})")
            raise ConsensusExhaustedError(attempts=0)

        last_error: BaseException | None = None
        for attempt, gateway in enumerate(gateways, start=1):
            logger.debug(f"#{attempt} attempt using - {gateway!r}")
            try:
                response = await request(gateway)
            except GATEWAY_FAILURES as e:
                last_error = e
                logger.warning(
                    f"Gateway {gateway.base_url} failed ({self.context}): {e} "
                    f"[{attempt}/{max_attempts}]"
                )
                continue

            logger.info(
                f"Gateway {gateway.base_url} succeeded ({self.context}) "
                f"after {attempt}/{max_attempts} attempts"
            )
            return FetchOutcome(response=response, gateway=gateway, attempts=attempt)

        logger.error(f"All {max_attempts} gateways failed ({self.context}): {last_error}")
        raise ConsensusExhaustedError(attempts=max_attempts, last_error=last_error)
