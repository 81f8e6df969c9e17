"""Unit tests for ConsensusFetcher."""

import asyncio
import logging

import httpx
import pytest

from crank.src.ConsensusFetcher import ConsensusFetcher
from crank.src.errors import ConsensusExhaustedError, GatewayError
from crank.src.gateway import Gateway

GATEWAYS = [
    Gateway("https://a.example.com"),
    Gateway("https://b.example.com"),
    Gateway("https://c.example.com"),
]


def scripted(results: dict[str, object]):
    """Request function answering per gateway URL; exceptions are raised."""
    calls: list[str] = []

    async def request(gateway: Gateway):
        calls.append(gateway.base_url)
        result = results[gateway.base_url]
        if isinstance(result, BaseException):
            raise result
        return result

    return request, calls


class TestConsensusFetcher:
    """Test linear gateway failover."""

    def test_first_gateway_succeeds(self) -> None:
        """A successful first attempt should not touch other gateways."""
        request, calls = scripted({"https://a.example.com": "ok"})

        outcome = asyncio.run(ConsensusFetcher().fetch(GATEWAYS, request))

        assert outcome.response == "ok"
        assert outcome.gateway == GATEWAYS[0]
        assert outcome.attempts == 1
        assert calls == ["https://a.example.com"]

    def test_fails_over_in_order(self, caplog: pytest.LogCaptureFixture) -> None:
        """Failures should move to the next gateway, logging one warning each."""
        request, calls = scripted(
            {
                "https://a.example.com": GatewayError("down", status_code=502),
                "https://b.example.com": httpx.ConnectError("refused"),
                "https://c.example.com": "ok",
            }
        )

        with caplog.at_level(logging.WARNING):
            outcome = asyncio.run(ConsensusFetcher("feed: X").fetch(GATEWAYS, request))

        assert outcome.response == "ok"
        assert outcome.gateway == GATEWAYS[2]
        assert outcome.attempts == 3
        assert calls == [g.base_url for g in GATEWAYS]
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 2
        assert "feed: X" in warnings[0].getMessage()

    def test_all_gateways_fail(self) -> None:
        """Exhaustion should report every attempt and the last error."""
        last = GatewayError("timeout")
        request, calls = scripted(
            {
                "https://a.example.com": GatewayError("down"),
                "https://b.example.com": GatewayError("down"),
                "https://c.example.com": last,
            }
        )

        with pytest.raises(ConsensusExhaustedError) as exc_info:
            asyncio.run(ConsensusFetcher().fetch(GATEWAYS, request))

        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error is last
        assert len(calls) == 3

    def test_no_gateways(self) -> None:
        """An empty list should fail without calling the request."""
        request, calls = scripted({})

        with pytest.raises(ConsensusExhaustedError, match="No gateways") as exc_info:
            asyncio.run(ConsensusFetcher().fetch([], request))

        assert exc_info.value.attempts == 0
        assert exc_info.value.last_error is None
        assert calls == []

    def test_each_gateway_tried_once(self) -> None:
        """Duplicate-free input should never retry a gateway."""
        request, calls = scripted(
            {g.base_url: GatewayError("down") for g in GATEWAYS}
        )

        with pytest.raises(ConsensusExhaustedError):
            asyncio.run(ConsensusFetcher().fetch(GATEWAYS, request))
        assert len(set(calls)) == len(calls) == 3

    def test_unexpected_errors_propagate(self) -> None:
        """Programming errors should not be treated as gateway failures."""
        request, calls = scripted({"https://a.example.com": RuntimeError("bug")})

        with pytest.raises(RuntimeError, match="bug"):
            asyncio.run(ConsensusFetcher().fetch(GATEWAYS, request))
        assert calls == ["https://a.example.com"]
