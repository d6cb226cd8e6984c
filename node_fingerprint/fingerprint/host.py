"""Probes for the local host: kernel/OS, CPU, memory and storage.

These read the operating system directly (``platform`` and ``psutil``) and
apply on every host, so they are the mandatory base of a fingerprint pass.
"""

from __future__ import annotations

import logging
import platform
import socket
from pathlib import Path
from typing import Optional

import psutil

from ..config import AgentConfig
from ..core.models import FingerprintResponse
from .base import BaseFingerprint

LOGGER = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024


class HostFingerprint(BaseFingerprint):
    """Kernel, OS release, architecture and hostname."""

    mandatory = True

    @property
    def name(self) -> str:
        return "host"

    async def fingerprint(self, config: AgentConfig) -> FingerprintResponse:
        uname = platform.uname()
        response = FingerprintResponse(detected=True)
        response.add_attribute("kernel.name", uname.system.lower())
        response.add_attribute("kernel.version", uname.release)
        response.add_attribute("cpu.arch", uname.machine)
        response.add_attribute("unique.hostname", socket.gethostname())

        os_name, os_version = _os_release()
        if os_name:
            response.add_attribute("os.name", os_name)
        if os_version:
            response.add_attribute("os.version", os_version)

        return response


def _os_release() -> tuple[Optional[str], Optional[str]]:
    """Distribution id and version where the OS exposes them."""
    try:
        release = platform.freedesktop_os_release()
    except OSError:
        release = {}

    if release:
        return release.get("ID"), release.get("VERSION_ID")

    system = platform.system().lower()
    if system == "darwin":
        return system, platform.mac_ver()[0] or None
    if system == "windows":
        return system, platform.version() or None
    return system or None, None


class CPUFingerprint(BaseFingerprint):
    """Core count and clock speed.

    ``[fingerprint] cpu_total_compute`` overrides the computed total when the
    host does not expose a frequency (common on virtualised ARM machines).
    """

    mandatory = True

    @property
    def name(self) -> str:
        return "cpu"

    async def fingerprint(self, config: AgentConfig) -> FingerprintResponse:
        response = FingerprintResponse(detected=True)

        cores = psutil.cpu_count(logical=True)
        if cores:
            response.add_attribute("cpu.numcores", str(cores))
            response.resources.cpu_cores = cores

        mhz = _cpu_frequency_mhz()
        if mhz:
            response.add_attribute("cpu.frequency", str(mhz))

        total = config.fingerprint.cpu_total_compute
        if total is None and mhz and cores:
            total = mhz * cores

        if total:
            response.add_attribute("cpu.totalcompute", str(total))
            response.resources.cpu_mhz = total
        else:
            LOGGER.warning(
                "Unable to determine CPU frequency; set cpu_total_compute to override"
            )

        return response


def _cpu_frequency_mhz() -> Optional[int]:
    try:
        frequency = psutil.cpu_freq()
    except (NotImplementedError, OSError) as exc:
        LOGGER.debug("CPU frequency unavailable: %s", exc)
        return None

    if frequency is None:
        return None
    value = frequency.max or frequency.current
    return int(value) if value else None


class MemoryFingerprint(BaseFingerprint):
    mandatory = True

    @property
    def name(self) -> str:
        return "memory"

    async def fingerprint(self, config: AgentConfig) -> FingerprintResponse:
        total = psutil.virtual_memory().total
        response = FingerprintResponse(detected=True)
        response.add_attribute("memory.totalbytes", str(total))
        response.resources.memory_mb = total // BYTES_PER_MB
        return response


class StorageFingerprint(BaseFingerprint):
    """Capacity of the volume backing the agent data directory."""

    @property
    def name(self) -> str:
        return "storage"

    async def fingerprint(self, config: AgentConfig) -> FingerprintResponse:
        volume = _existing_ancestor(config.agent.data_dir)
        usage = psutil.disk_usage(str(volume))

        response = FingerprintResponse(detected=True)
        response.add_attribute("unique.storage.volume", str(volume))
        response.add_attribute("unique.storage.bytestotal", str(usage.total))
        response.add_attribute("unique.storage.bytesfree", str(usage.free))
        response.resources.disk_mb = usage.free // BYTES_PER_MB
        return response


def _existing_ancestor(path: Path) -> Path:
    # The data directory may not be created until after the first pass.
    candidate = path.expanduser().absolute()
    while not candidate.exists() and candidate != candidate.parent:
        candidate = candidate.parent
    return candidate
