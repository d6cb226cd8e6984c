"""Amazon EC2 environment probe.

Uses the instance metadata service in session mode (IMDSv2): a token is
requested with a PUT and then presented on every metadata read.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp

from ..config import AgentConfig
from ..core.models import FingerprintResponse, NetworkResource
from .base import BaseFingerprint
from .metadata import MetadataClient

LOGGER = logging.getLogger(__name__)

PROVIDER = "aws"
TOKEN_PATH = "api/token"
TOKEN_TTL_HEADER = "X-aws-ec2-metadata-token-ttl-seconds"
TOKEN_HEADER = "X-aws-ec2-metadata-token"
TOKEN_TTL_SECONDS = 21600
PRIMARY_DEVICE = "eth0"

METADATA_FIELDS = (
    "ami-id",
    "hostname",
    "instance-id",
    "instance-type",
    "local-hostname",
    "local-ipv4",
    "public-hostname",
    "public-ipv4",
    "placement/availability-zone",
)


def _attribute_key(field: str) -> str:
    return f"platform.{PROVIDER}.{field.replace('/', '.')}"


class EnvAWSFingerprint(BaseFingerprint):
    """Detects EC2 instances."""

    def __init__(
        self,
        *,
        client: Optional[MetadataClient] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._client = client
        self._session = session
        self._not_applicable = False

    @property
    def name(self) -> str:
        return "env_aws"

    def _client_for(self, config: AgentConfig) -> MetadataClient:
        if self._client is None:
            self._client = MetadataClient(
                config.metadata.aws_url,
                timeout=config.metadata.request_timeout_seconds,
                session=self._session,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()

    async def fingerprint(self, config: AgentConfig) -> FingerprintResponse:
        response = FingerprintResponse()
        if self._not_applicable:
            return response

        client = self._client_for(config)
        token = await client.put(
            TOKEN_PATH, headers={TOKEN_TTL_HEADER: str(TOKEN_TTL_SECONDS)}
        )
        if not token.found or not token.value:
            LOGGER.debug("EC2 metadata token not available (%s)", token.status.value)
            self._not_applicable = True
            return response

        headers = {TOKEN_HEADER: token.value}
        results = await asyncio.gather(
            *(
                client.get(f"meta-data/{field}", headers=headers)
                for field in METADATA_FIELDS
            )
        )
        values = {
            field: result.value
            for field, result in zip(METADATA_FIELDS, results)
            if result.found and result.value
        }

        instance_id = values.get("instance-id")
        if instance_id is None:
            LOGGER.debug("EC2 metadata answered without an instance id")
            self._not_applicable = True
            return response

        malformed = {
            field
            for field, result in zip(METADATA_FIELDS, results)
            if result.malformed
        }

        response.detected = True
        for field in METADATA_FIELDS:
            if field in malformed:
                message = f"meta-data/{field}: body is not valid text"
                LOGGER.warning("Ignoring EC2 field %s", message)
                response.errors.append(message)
                continue
            response.add_attribute(_attribute_key(field), values.get(field))

        zone = values.get("placement/availability-zone")
        link = f"{zone}.{instance_id}" if zone else instance_id
        response.add_link("aws.ec2", link)

        ip = values.get("local-ipv4")
        if ip:
            response.add_attribute("network.ip-address", ip)
            response.networks.append(
                NetworkResource.for_address(
                    PRIMARY_DEVICE, ip, mbits=config.fingerprint.network_speed_mbits
                )
            )

        return response
