"""Node fingerprinting: probes, registry and runner.

Key components:
- MetadataClient: short-timeout HTTP reads from cloud metadata services
- Probe classes: detect one environment family each
  - HostFingerprint, CPUFingerprint, MemoryFingerprint, StorageFingerprint
  - NetworkFingerprint, CgroupFingerprint (periodic)
  - EnvGCEFingerprint, EnvAWSFingerprint (cloud providers)
- FingerprintRegistry: ordered probe set with allow/deny/platform filtering
- FingerprintRunner: initial concurrent pass plus periodic re-runs

Usage:
    registry = build_registry(config)
    runner = FingerprintRunner(registry, NodeMerger(node), config)
    report = await runner.run_initial()
    runner.start_periodic()
    ...
    await runner.stop()
"""

from .base import BaseFingerprint, FingerprintOutcome, FingerprintResult
from .cgroup import CgroupFingerprint
from .env_aws import EnvAWSFingerprint
from .env_gce import EnvGCEFingerprint
from .host import (
    CPUFingerprint,
    HostFingerprint,
    MemoryFingerprint,
    StorageFingerprint,
)
from .metadata import (
    MetadataClient,
    MetadataParseError,
    MetadataResponse,
    MetadataStatus,
)
from .network import NetworkFingerprint, NetworkInterfaceError
from .registry import (
    FingerprintConfigurationError,
    FingerprintRegistry,
    build_default_registry,
    build_registry,
)
from .runner import FingerprintPassError, FingerprintReport, FingerprintRunner

__all__ = [
    "BaseFingerprint",
    "CPUFingerprint",
    "CgroupFingerprint",
    "EnvAWSFingerprint",
    "EnvGCEFingerprint",
    "FingerprintConfigurationError",
    "FingerprintOutcome",
    "FingerprintPassError",
    "FingerprintRegistry",
    "FingerprintReport",
    "FingerprintResult",
    "FingerprintRunner",
    "HostFingerprint",
    "MemoryFingerprint",
    "MetadataClient",
    "MetadataParseError",
    "MetadataResponse",
    "MetadataStatus",
    "NetworkFingerprint",
    "NetworkInterfaceError",
    "StorageFingerprint",
    "build_default_registry",
    "build_registry",
]
