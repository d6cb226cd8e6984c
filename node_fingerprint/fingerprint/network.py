"""Local network interface probe.

Runs periodically so that a reassigned address is picked up without an
agent restart. The merger replaces the previous entry for the same device.
"""

from __future__ import annotations

import ipaddress
import logging
import socket
from typing import Optional, Tuple

import psutil

from ..config import AgentConfig
from ..core.models import FingerprintResponse, NetworkResource
from .base import BaseFingerprint

LOGGER = logging.getLogger(__name__)


class NetworkInterfaceError(Exception):
    """Raised when the configured interface does not exist or has no address."""


class NetworkFingerprint(BaseFingerprint):
    """Address and link speed of the node's primary interface."""

    def __init__(self, *, interval: float = 0.0) -> None:
        self.periodic_interval = interval

    @property
    def name(self) -> str:
        return "network"

    async def fingerprint(self, config: AgentConfig) -> FingerprintResponse:
        response = FingerprintResponse()

        wanted = config.fingerprint.network_interface
        found = _find_interface(wanted)
        if found is None:
            if wanted:
                raise NetworkInterfaceError(
                    f"interface {wanted!r} not found or has no IPv4 address"
                )
            LOGGER.debug("No usable network interface found")
            return response

        device, ip = found
        mbits = _link_speed(device) or config.fingerprint.network_speed_mbits

        response.detected = True
        response.add_attribute("network.ip-address", ip)
        response.networks.append(NetworkResource.for_address(device, ip, mbits=mbits))
        return response


def _find_interface(wanted: Optional[str]) -> Optional[Tuple[str, str]]:
    """Return ``(device, ipv4)`` for the wanted or first usable interface."""
    addresses = psutil.net_if_addrs()
    stats = psutil.net_if_stats()

    for device, entries in addresses.items():
        if wanted and device != wanted:
            continue

        device_stats = stats.get(device)
        if not wanted and device_stats is not None and not device_stats.isup:
            continue

        for entry in entries:
            if entry.family != socket.AF_INET:
                continue
            try:
                address = ipaddress.ip_address(entry.address)
            except ValueError:
                continue
            if address.is_loopback and not wanted:
                continue
            return device, str(address)

    return None


def _link_speed(device: str) -> Optional[int]:
    stats = psutil.net_if_stats().get(device)
    if stats is None or stats.speed <= 0:
        return None
    return stats.speed
