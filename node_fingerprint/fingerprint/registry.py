"""Probe registry.

The registry is an explicit object built once by the agent. Tests build
registries with reduced or fake probe sets.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Iterable, Iterator, List, Optional, Sequence

import aiohttp

from ..config import AgentConfig
from .base import BaseFingerprint, current_system
from .cgroup import CgroupFingerprint
from .env_aws import EnvAWSFingerprint
from .env_gce import EnvGCEFingerprint
from .host import (
    CPUFingerprint,
    HostFingerprint,
    MemoryFingerprint,
    StorageFingerprint,
)
from .network import NetworkFingerprint

LOGGER = logging.getLogger(__name__)


class FingerprintConfigurationError(Exception):
    """Raised when the probe set or operator filter lists are invalid."""


class FingerprintRegistry:
    """Ordered, name-keyed collection of probes."""

    def __init__(self, probes: Iterable[BaseFingerprint] = ()) -> None:
        self._probes: "OrderedDict[str, BaseFingerprint]" = OrderedDict()
        for probe in probes:
            self.add(probe)

    def add(self, probe: BaseFingerprint) -> None:
        if probe.name in self._probes:
            raise FingerprintConfigurationError(
                f"Duplicate probe name: {probe.name}"
            )
        self._probes[probe.name] = probe

    def get(self, name: str) -> Optional[BaseFingerprint]:
        return self._probes.get(name)

    @property
    def names(self) -> List[str]:
        return list(self._probes)

    def __iter__(self) -> Iterator[BaseFingerprint]:
        return iter(list(self._probes.values()))

    def __len__(self) -> int:
        return len(self._probes)

    def __contains__(self, name: object) -> bool:
        return name in self._probes

    def filtered(
        self,
        *,
        allow: Sequence[str] = (),
        deny: Sequence[str] = (),
        system: Optional[str] = None,
    ) -> "FingerprintRegistry":
        """Return a registry with only the probes enabled on this host.

        Args:
            allow: Probe names to keep; empty keeps every probe.
            deny: Probe names to drop; applied after ``allow``.
            system: OS family to filter by; defaults to the running host.

        Raises:
            FingerprintConfigurationError: If a list names an unknown probe.
        """
        unknown = sorted({*allow, *deny} - set(self._probes))
        if unknown:
            raise FingerprintConfigurationError(
                f"Unknown probe(s) in fingerprint filter: {', '.join(unknown)}"
            )

        host_system = (system or current_system()).lower()
        selected = FingerprintRegistry()
        for name, probe in self._probes.items():
            if allow and name not in allow:
                continue
            if name in deny:
                LOGGER.debug("Probe '%s' disabled by configuration", name)
                continue
            if not probe.supports(host_system):
                LOGGER.debug(
                    "Probe '%s' not supported on %s", name, host_system
                )
                continue
            selected.add(probe)

        return selected

    async def close(self) -> None:
        """Release resources held by all probes."""
        for probe in self._probes.values():
            try:
                await probe.close()
            except Exception as exc:
                LOGGER.debug("Error closing probe %s: %s", probe.name, exc)


def build_default_registry(
    config: AgentConfig, *, session: Optional[aiohttp.ClientSession] = None
) -> FingerprintRegistry:
    """Build the full probe set in run order (base probes first)."""
    fingerprint = config.fingerprint
    return FingerprintRegistry(
        [
            HostFingerprint(),
            CPUFingerprint(),
            MemoryFingerprint(),
            StorageFingerprint(),
            NetworkFingerprint(interval=fingerprint.network_refresh_seconds),
            CgroupFingerprint(interval=fingerprint.cgroup_refresh_seconds),
            EnvAWSFingerprint(session=session),
            EnvGCEFingerprint(session=session),
        ]
    )


def build_registry(
    config: AgentConfig,
    *,
    session: Optional[aiohttp.ClientSession] = None,
    system: Optional[str] = None,
) -> FingerprintRegistry:
    """Build the default registry and apply the operator's filter lists."""
    registry = build_default_registry(config, session=session)
    return registry.filtered(
        allow=config.fingerprint.allowlist,
        deny=config.fingerprint.denylist,
        system=system,
    )
