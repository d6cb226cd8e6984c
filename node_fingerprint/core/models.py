"""Domain models for the node record and probe output."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(slots=True)
class NetworkResource:
    device: str
    ip: str
    cidr: str
    mbits: Optional[int] = None

    @classmethod
    def for_address(
        cls, device: str, ip: str, *, mbits: Optional[int] = None
    ) -> "NetworkResource":
        """Build a single-address entry (``ip/32``) for an observed address."""
        return cls(device=device, ip=ip, cidr=f"{ip}/32", mbits=mbits)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "device": self.device,
            "ip": self.ip,
            "cidr": self.cidr,
            "mbits": self.mbits,
        }


@dataclass(slots=True)
class Resources:
    cpu_mhz: Optional[int] = None
    cpu_cores: Optional[int] = None
    memory_mb: Optional[int] = None
    disk_mb: Optional[int] = None
    networks: List[NetworkResource] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "cpuMhz": self.cpu_mhz,
            "cpuCores": self.cpu_cores,
            "memoryMb": self.memory_mb,
            "diskMb": self.disk_mb,
            "networks": [network.as_dict() for network in self.networks],
        }


@dataclass(slots=True)
class ResourceUpdate:
    """Scalar resource facts reported by one probe; ``None`` means unknown."""

    cpu_mhz: Optional[int] = None
    cpu_cores: Optional[int] = None
    memory_mb: Optional[int] = None
    disk_mb: Optional[int] = None

    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (self.cpu_mhz, self.cpu_cores, self.memory_mb, self.disk_mb)
        )


@dataclass(slots=True)
class Node:
    """The node record built up by probes and handed to registration."""

    id: str
    name: str
    datacenter: str
    node_class: str = ""
    meta: Dict[str, str] = field(default_factory=dict)
    attributes: Dict[str, str] = field(default_factory=dict)
    links: Dict[str, str] = field(default_factory=dict)
    resources: Resources = field(default_factory=Resources)

    def copy(self) -> "Node":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "datacenter": self.datacenter,
            "nodeClass": self.node_class,
            "meta": dict(self.meta),
            "attributes": dict(sorted(self.attributes.items())),
            "links": dict(sorted(self.links.items())),
            "resources": self.resources.as_dict(),
        }


@dataclass(slots=True)
class FingerprintResponse:
    """Output of one probe invocation, committed as a single unit.

    An attribute or link mapped to ``None`` is removed from the node, which
    lets periodic probes retract facts that disappeared since the last run.
    ``errors`` lists fields that could not be read even though the probe
    applies to this host.
    """

    detected: bool = False
    attributes: Dict[str, Optional[str]] = field(default_factory=dict)
    links: Dict[str, Optional[str]] = field(default_factory=dict)
    resources: ResourceUpdate = field(default_factory=ResourceUpdate)
    networks: List[NetworkResource] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def add_attribute(self, key: str, value: Optional[str]) -> None:
        self.attributes[key] = value

    def add_link(self, key: str, value: Optional[str]) -> None:
        self.links[key] = value

    def is_empty(self) -> bool:
        return (
            not self.attributes
            and not self.links
            and not self.networks
            and self.resources.is_empty()
        )
