"""Crossbar job-definition resolution service.

Endpoint: {crossbar}/fetch/{feed_hash_hex}
Returns the job definition document stored under a feed hash; the
``jobs`` list is what gateways execute.

Gateways expect each job base64-encoded. The wire encoding of a job is
owned by the oracle protocol, so it is pluggable via :data:`JobEncoder`.

Production Switchboard gateways decode jobs as protobuf ``OracleJob``
messages. The default :func:`encode_jobs_json` sends the JSON document
instead, which only gateways that accept JSON job documents (local or test
gateways) understand. Inject a protobuf encoder to talk to live gateways.
"""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import Callable
from typing import Any

from ..errors import AttestationParseError
from .base import HttpService

logger = logging.getLogger(__name__)

DEFAULT_CROSSBAR_URL = "https://crossbar.switchboard.xyz"

JobEncoder = Callable[[list[dict[str, Any]]], list[str]]


def encode_jobs_json(jobs: list[dict[str, Any]]) -> list[str]:
    """Encode job documents as base64 of their compact JSON form.

    This is not the protobuf ``OracleJob`` encoding production gateways
    expect; a gateway that only accepts protobuf will reject these jobs.

    :param jobs: Job definition documents.
    :returns: One base64 string per job, in order.
    """
    return [
        base64.b64encode(json.dumps(job, separators=(",", ":")).encode()).decode()
        for job in jobs
    ]


class CrossbarClient(HttpService):
    """Client for the Crossbar job-resolution service.

    :ivar job_encoder: Encoder turning job documents into gateway payloads.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_CROSSBAR_URL,
        job_encoder: JobEncoder = encode_jobs_json,
        **kwargs: Any,
    ) -> None:
        """Initialize the Crossbar client.

        :param base_url: Crossbar base URL.
        :param job_encoder: Job encoder (default: base64 of compact JSON).
        """
        super().__init__(base_url, **kwargs)
        self.job_encoder = job_encoder

        if job_encoder is encode_jobs_json:
            logger.warning(
                "Encoding jobs as JSON; gateways that require protobuf OracleJob "
                "messages will reject them"
            )

    async def fetch(self, feed_hash: str) -> dict[str, Any]:
        """Fetch the job definition document for a feed hash.

        :param feed_hash: Hex-encoded feed hash.
        :returns: Job definition document.
        :raises GatewayError: If the request fails.
        """
        return await self._get(f"/fetch/{feed_hash}")

    async def fetch_jobs(self, feed_hash: str) -> list[dict[str, Any]]:
        """Fetch the job list for a feed hash.

        :raises AttestationParseError: If the document has no job list.
        """
        document = await self.fetch(feed_hash)
        jobs = document.get("jobs") if isinstance(document, dict) else None
        if not isinstance(jobs, list):
            raise AttestationParseError(f"No jobs found for feed hash {feed_hash}")
        logger.debug(f"Resolved {len(jobs)} jobs for feed hash {feed_hash}")
        return jobs

    async def fetch_encoded_jobs(self, feed_hash: str) -> list[str]:
        """Fetch and encode the job list for a feed hash."""
        return self.job_encoder(await self.fetch_jobs(feed_hash))
