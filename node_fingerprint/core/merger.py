"""Single writer for the shared node record.

Every probe commit funnels through :class:`NodeMerger`. A commit is applied
while holding an ``asyncio.Lock`` and without suspending, so readers using
:meth:`NodeMerger.snapshot` never observe a half-applied response.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List

from .models import FingerprintResponse, NetworkResource, Node

LOGGER = logging.getLogger(__name__)


class NodeMerger:
    """Applies probe responses onto a node with last-write-wins semantics."""

    def __init__(self, node: Node) -> None:
        self._node = node
        self._lock = asyncio.Lock()
        self._closed = False
        self._commits = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def commit_count(self) -> int:
        return self._commits

    def close(self) -> None:
        """Reject all further commits."""
        self._closed = True

    async def commit(self, name: str, response: FingerprintResponse) -> bool:
        """Apply ``response`` from probe ``name`` atomically.

        Returns False when the merger is closed and nothing was applied.
        """
        async with self._lock:
            if self._closed:
                LOGGER.debug("Dropping commit from '%s'; merger closed", name)
                return False

            self._apply(response)
            self._commits += 1

        LOGGER.debug(
            "Committed '%s': %d attributes, %d links, %d networks",
            name,
            len(response.attributes),
            len(response.links),
            len(response.networks),
        )
        return True

    async def snapshot(self) -> Node:
        """Return a deep copy of the node as of the last completed commit."""
        async with self._lock:
            return self._node.copy()

    def _apply(self, response: FingerprintResponse) -> None:
        node = self._node

        for key, value in response.attributes.items():
            if value is None:
                node.attributes.pop(key, None)
            else:
                node.attributes[key] = value

        for key, value in response.links.items():
            if value is None:
                node.links.pop(key, None)
            else:
                node.links[key] = value

        update = response.resources
        resources = node.resources
        if update.cpu_mhz is not None:
            resources.cpu_mhz = update.cpu_mhz
        if update.cpu_cores is not None:
            resources.cpu_cores = update.cpu_cores
        if update.memory_mb is not None:
            resources.memory_mb = update.memory_mb
        if update.disk_mb is not None:
            resources.disk_mb = update.disk_mb

        if response.networks:
            resources.networks = merge_networks(resources.networks, response.networks)


def merge_networks(
    existing: List[NetworkResource], incoming: List[NetworkResource]
) -> List[NetworkResource]:
    """Merge detected network entries into the current list.

    Devices not yet known are appended in detection order. A device that is
    already present has all of its previous entries replaced, at the
    position of its first previous entry, by the incoming entries for it.
    """
    by_device: Dict[str, List[NetworkResource]] = {}
    for network in incoming:
        by_device.setdefault(network.device, []).append(network)

    merged: List[NetworkResource] = []
    replaced: set[str] = set()
    for network in existing:
        if network.device not in by_device:
            merged.append(network)
            continue
        if network.device not in replaced:
            merged.extend(by_device[network.device])
            replaced.add(network.device)

    for network in incoming:
        if network.device not in replaced:
            merged.append(network)

    return merged
