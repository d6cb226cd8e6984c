"""Linux cgroup mount probe."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Tuple

from ..config import AgentConfig
from ..core.models import FingerprintResponse
from .base import BaseFingerprint

LOGGER = logging.getLogger(__name__)

MOUNTINFO_PATH = Path("/proc/self/mountinfo")

MOUNTPOINT_ATTRIBUTE = "unique.cgroup.mountpoint"
VERSION_ATTRIBUTE = "unique.cgroup.version"


class CgroupFingerprint(BaseFingerprint):
    """Locates the cgroup hierarchy used for task isolation.

    Periodic, because cgroup filesystems can be mounted after the agent
    starts. A mount that disappears is retracted from the node.
    """

    platforms = frozenset({"linux"})

    def __init__(
        self, *, interval: float = 0.0, mountinfo_path: Path = MOUNTINFO_PATH
    ) -> None:
        self.periodic_interval = interval
        self._mountinfo_path = mountinfo_path
        self._last_seen = False

    @property
    def name(self) -> str:
        return "cgroup"

    async def fingerprint(self, config: AgentConfig) -> FingerprintResponse:
        response = FingerprintResponse()

        found = self._find_mount()
        if found is None:
            if self._last_seen:
                LOGGER.warning("cgroup mount is no longer present")
                response.add_attribute(MOUNTPOINT_ATTRIBUTE, None)
                response.add_attribute(VERSION_ATTRIBUTE, None)
            self._last_seen = False
            return response

        mountpoint, version = found
        response.detected = True
        response.add_attribute(MOUNTPOINT_ATTRIBUTE, mountpoint)
        response.add_attribute(VERSION_ATTRIBUTE, version)
        self._last_seen = True
        return response

    def _find_mount(self) -> Optional[Tuple[str, str]]:
        try:
            lines = self._mountinfo_path.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            LOGGER.debug("Cannot read %s: %s", self._mountinfo_path, exc)
            return None

        return find_cgroup_mount(lines)


def find_cgroup_mount(lines: list[str]) -> Optional[Tuple[str, str]]:
    """Return ``(mountpoint, version)`` from ``mountinfo`` lines.

    A unified (v2) hierarchy wins over v1 controllers. For v1 the parent of
    the first controller mount is reported (``/sys/fs/cgroup``).
    """
    v1_mount: Optional[str] = None

    for line in lines:
        fields = line.split()
        if " - " not in line or len(fields) < 5:
            continue

        mountpoint = fields[4]
        fstype = line.split(" - ", 1)[1].split()[0]

        if fstype == "cgroup2":
            return mountpoint, "v2"
        if fstype == "cgroup" and v1_mount is None:
            v1_mount = str(Path(mountpoint).parent)

    if v1_mount is not None:
        return v1_mount, "v1"
    return None
