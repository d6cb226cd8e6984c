"""Probe contract and per-invocation result types.

Each probe detects one environment family (a cloud provider, the kernel,
network interfaces, ...). Probes never touch the node directly: they return a
:class:`~node_fingerprint.core.models.FingerprintResponse` which the runner
commits through the merger.
"""

from __future__ import annotations

import platform
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional

from ..config import AgentConfig
from ..core.models import FingerprintResponse


class FingerprintOutcome(str, Enum):
    APPLICABLE = "applicable"
    NOT_APPLICABLE = "not_applicable"
    ERROR = "error"


@dataclass(slots=True)
class FingerprintResult:
    name: str
    outcome: FingerprintOutcome
    error: Optional[str] = None
    duration: float = 0.0
    committed: bool = False

    @property
    def failed(self) -> bool:
        return self.outcome is FingerprintOutcome.ERROR


def current_system() -> str:
    """Lower-case OS family name as reported by ``platform.system()``."""
    return platform.system().lower()


class BaseFingerprint(ABC):
    """Base class for probes with descriptor defaults.

    Subclasses override the class attributes to describe themselves:

    ``periodic_interval``
        Seconds between re-runs after the initial pass; ``0`` runs once.
    ``platforms``
        OS families the probe may run on; empty means any.
    ``mandatory``
        Base probes whose failure alongside every other probe fails the pass.
    """

    periodic_interval: float = 0.0
    platforms: FrozenSet[str] = frozenset()
    mandatory: bool = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Probe name, unique within a registry."""
        ...

    @property
    def periodic(self) -> bool:
        return self.periodic_interval > 0

    def supports(self, system: str) -> bool:
        return not self.platforms or system.lower() in self.platforms

    @abstractmethod
    async def fingerprint(self, config: AgentConfig) -> FingerprintResponse:
        """Detect facts about this host.

        Returns a response with ``detected=False`` when the probe's
        environment is absent. Raises on abnormal failure.
        """
        ...

    async def close(self) -> None:
        """Release resources held by the probe."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"
