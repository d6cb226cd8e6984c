"""Google Compute Engine environment probe.

Reads the instance metadata server. Every request carries the
``Metadata-Flavor: Google`` header, without which the server refuses to
answer. The base URL comes from ``[metadata] gce_url`` (or ``GCE_ENV_URL``).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

import aiohttp

from ..config import AgentConfig
from ..core.models import FingerprintResponse, NetworkResource
from .base import BaseFingerprint
from .metadata import MetadataClient, MetadataParseError, MetadataResponse

LOGGER = logging.getLogger(__name__)

PROVIDER = "gce"
METADATA_HEADERS = {"Metadata-Flavor": "Google"}
PRIMARY_DEVICE = "eth0"

# Metadata path -> whether only the last path component is kept
SCALAR_FIELDS: Dict[str, bool] = {
    "hostname": False,
    "zone": True,
    "machine-type": True,
    "cpu-platform": False,
    "scheduling/automatic-restart": False,
    "scheduling/on-host-maintenance": False,
}

PRIVATE_IP_PATH = "network-interfaces/0/ip"
EXTERNAL_IP_PATH = "network-interfaces/0/access-configs/0/external-ip"
TAGS_PATH = "tags"
ATTRIBUTES_PATH = "attributes/?recursive=true"


def _attribute_key(field: str) -> str:
    return f"platform.{PROVIDER}.{field.replace('/', '.')}"


def _field_error(response: FingerprintResponse, path: str) -> None:
    message = f"{path}: body is not valid text"
    LOGGER.warning("Ignoring GCE field %s", message)
    response.errors.append(message)


class EnvGCEFingerprint(BaseFingerprint):
    """Detects GCE instances and records their identity and network facts."""

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
        return "env_gce"

    def _client_for(self, config: AgentConfig) -> MetadataClient:
        if self._client is None:
            self._client = MetadataClient(
                config.metadata.gce_url,
                headers=METADATA_HEADERS,
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
        instance_id = await self._instance_id(client)
        if instance_id is None:
            self._not_applicable = True
            return response

        response.detected = True
        response.add_attribute(_attribute_key("id"), instance_id)
        response.add_link(PROVIDER, instance_id)

        fields = list(SCALAR_FIELDS)
        results = await asyncio.gather(
            *(client.get(field) for field in fields),
            client.get(PRIVATE_IP_PATH),
            client.get(EXTERNAL_IP_PATH),
        )
        scalars = dict(zip(fields, results[: len(fields)]))
        private_ip, external_ip = results[len(fields) :]

        for field, result in scalars.items():
            if result.malformed:
                _field_error(response, field)
                continue
            value = result.value if result.found else None
            if not value:
                continue
            if SCALAR_FIELDS[field]:
                value = value.rsplit("/", 1)[-1]
            response.add_attribute(_attribute_key(field), value)

        self._apply_network(config, response, private_ip, external_ip)

        try:
            await self._apply_tags(client, response)
        except MetadataParseError as exc:
            LOGGER.warning("Ignoring GCE tags: %s", exc)
            response.errors.append(str(exc))

        try:
            await self._apply_custom_attributes(client, response)
        except MetadataParseError as exc:
            LOGGER.warning("Ignoring GCE custom attributes: %s", exc)
            response.errors.append(str(exc))

        return response

    async def _instance_id(self, client: MetadataClient) -> Optional[str]:
        result = await client.get("id")
        if not result.found:
            LOGGER.debug("GCE metadata not available (%s)", result.status.value)
            return None

        value = result.value or ""
        if not value.isdigit():
            LOGGER.debug("GCE metadata returned a non-numeric instance id")
            return None
        return value

    def _apply_network(
        self,
        config: AgentConfig,
        response: FingerprintResponse,
        private_ip: MetadataResponse,
        external_ip: MetadataResponse,
    ) -> None:
        if private_ip.malformed:
            _field_error(response, PRIVATE_IP_PATH)
        ip = private_ip.value if private_ip.found else None
        if ip:
            response.add_attribute("network.ip-address", ip)
            response.networks.append(
                NetworkResource.for_address(
                    PRIMARY_DEVICE, ip, mbits=config.fingerprint.network_speed_mbits
                )
            )

        if external_ip.malformed:
            _field_error(response, EXTERNAL_IP_PATH)
            return
        external = external_ip.value if external_ip.found else None
        response.add_attribute(_attribute_key("external-ip"), external or None)

    async def _apply_tags(
        self, client: MetadataClient, response: FingerprintResponse
    ) -> None:
        _, tags = await client.get_json(TAGS_PATH)
        if tags is None:
            return
        if not isinstance(tags, list) or not all(
            isinstance(tag, str) for tag in tags
        ):
            raise MetadataParseError(TAGS_PATH, "expected a list of strings")

        for tag in tags:
            response.add_attribute(f"platform.{PROVIDER}.tag.{tag}", "true")

    async def _apply_custom_attributes(
        self, client: MetadataClient, response: FingerprintResponse
    ) -> None:
        _, attributes = await client.get_json(ATTRIBUTES_PATH)
        if attributes is None:
            return
        if not isinstance(attributes, dict):
            raise MetadataParseError(ATTRIBUTES_PATH, "expected a JSON object")

        if not all(isinstance(value, str) for value in attributes.values()):
            raise MetadataParseError(
                ATTRIBUTES_PATH, "expected a map of string values"
            )

        for key, value in attributes.items():
            response.add_attribute(f"platform.{PROVIDER}.attr.{key}", value)
